import pytest

from roomhub.history import FileRef, MessageLog


def _fill(log: MessageLog, room: str, n: int) -> None:
    for i in range(n):
        log.append(room, "alice", text=f"m{i + 1}")


def test_ids_increase_across_rooms() -> None:
    log = MessageLog()
    ids = [
        log.append("global", "alice", text="a").id,
        log.append("devs", "bob", text="b").id,
        log.append("global", "carol", text="c").id,
    ]
    assert ids == [1, 2, 3]
    assert log.last_id == 3


def test_append_requires_text_or_file() -> None:
    log = MessageLog()
    with pytest.raises(ValueError):
        log.append("global", "alice")
    with pytest.raises(ValueError):
        log.append("global", "alice", text="")
    assert log.last_id == 0


def test_file_only_message() -> None:
    log = MessageLog()
    msg = log.append(
        "global", "alice", file=FileRef(url="file:///tmp/1-cat.png", name="cat.png")
    )
    wire = msg.to_wire()
    assert wire["text"] is None
    assert wire["file"] == {"url": "file:///tmp/1-cat.png", "name": "cat.png"}
    assert wire["from"] == "alice"
    assert wire["readBy"] == []
    assert wire["reactions"] == {}


def test_eviction_keeps_newest() -> None:
    log = MessageLog()
    _fill(log, "global", 1005)

    recent = log.recent("global", 1000)
    assert len(recent) == 1000
    assert recent[0].id == 6
    assert recent[-1].id == 1005
    assert log.get_stats()["messages_evicted"] == 5


def test_recent_default_count() -> None:
    log = MessageLog()
    _fill(log, "global", 60)
    recent = log.recent("global")
    assert [m.id for m in recent] == list(range(11, 61))


def test_pagination() -> None:
    log = MessageLog()
    _fill(log, "global", 50)

    assert [m.text for m in log.page("global", 0, 20)] == [f"m{i}" for i in range(31, 51)]
    assert [m.text for m in log.page("global", 20, 20)] == [f"m{i}" for i in range(11, 31)]
    assert log.page("global", 100, 20) == []
    assert [m.id for m in log.page("global", 40, 20)] == list(range(1, 11))


@pytest.mark.parametrize("offset, limit", [(-1, 20), (0, 0), (0, -5), ("x", 20), (None, None)])
def test_page_out_of_range_is_empty(offset, limit) -> None:
    log = MessageLog()
    _fill(log, "global", 5)
    assert log.page("global", offset, limit) == []


def test_page_of_unknown_room() -> None:
    assert MessageLog().page("nowhere", 0, 20) == []


def test_mark_read_is_idempotent() -> None:
    log = MessageLog()
    msg = log.append("global", "bob", text="hi")

    log.mark_read("global", msg.id, "alice")
    log.mark_read("global", msg.id, "alice")
    log.mark_read("global", msg.id, "carol")

    assert msg.read_by == ["alice", "carol"]


def test_mark_read_unknown_or_evicted() -> None:
    log = MessageLog(max_messages=2)
    first = log.append("global", "bob", text="1")
    log.append("global", "bob", text="2")
    log.append("global", "bob", text="3")

    assert log.mark_read("global", first.id, "alice") is None
    assert log.mark_read("global", 999, "alice") is None
    assert log.mark_read("devs", 2, "alice") is None


def test_reactions_have_set_semantics() -> None:
    log = MessageLog()
    msg = log.append("global", "bob", text="hi")

    log.add_reaction("global", msg.id, "alice", "+1")
    log.add_reaction("global", msg.id, "alice", "+1")
    log.add_reaction("global", msg.id, "carol", "+1")
    log.add_reaction("global", msg.id, "alice", "heart")

    assert msg.to_wire()["reactions"] == {"+1": ["alice", "carol"], "heart": ["alice"]}


def test_lookup_is_scoped_to_room() -> None:
    log = MessageLog()
    msg = log.append("global", "bob", text="hi")
    assert log.get("devs", msg.id) is None
    assert log.get("global", msg.id) is msg
