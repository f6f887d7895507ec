from roomhub.constants import GLOBAL_ROOM
from roomhub.rooms import RoomDirectory
from roomhub.util import private_room_name


def test_join_is_idempotent_and_lazy() -> None:
    rooms = RoomDirectory()
    assert "devs" not in rooms.rooms

    rooms.join("devs", "bob")
    rooms.join("devs", "bob")

    assert rooms.members_of("devs") == {"bob"}


def test_leave_non_member_is_noop() -> None:
    rooms = RoomDirectory()
    rooms.join("devs", "bob")

    assert rooms.leave("devs", "alice") is False
    assert rooms.leave("nowhere", "alice") is False
    assert rooms.members_of("devs") == {"bob"}


def test_empty_rooms_are_collected() -> None:
    rooms = RoomDirectory()
    rooms.join("devs", "bob")
    assert rooms.leave("devs", "bob") is True
    assert "devs" not in rooms.rooms
    assert rooms.members_of("devs") == set()


def test_room_names_always_include_global() -> None:
    rooms = RoomDirectory()
    assert rooms.room_names() == [GLOBAL_ROOM]
    rooms.join("devs", "bob")
    assert rooms.room_names() == ["devs", GLOBAL_ROOM]


def test_leave_all() -> None:
    rooms = RoomDirectory()
    rooms.join(GLOBAL_ROOM, "alice")
    rooms.join("devs", "alice")
    rooms.join("devs", "bob")

    assert sorted(rooms.leave_all("alice")) == ["devs", GLOBAL_ROOM]
    assert rooms.rooms_of("alice") == []
    assert rooms.members_of("devs") == {"bob"}


def test_members_of_returns_copy() -> None:
    rooms = RoomDirectory()
    rooms.join("devs", "bob")
    rooms.members_of("devs").add("mallory")
    assert rooms.members_of("devs") == {"bob"}


def test_private_room_name_is_symmetric() -> None:
    assert private_room_name("alice", "bob") == private_room_name("bob", "alice")
    assert private_room_name("alice", "bob") == "private_alice_bob"
