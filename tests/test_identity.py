import pytest

from roomhub.errors import InvalidUsername
from roomhub.identity import IdentityRegistry


def _assert_inverse(reg: IdentityRegistry) -> None:
    for name in reg.online_usernames():
        conn = reg.resolve(name)
        assert conn is not None
        assert reg.who_is(conn) == name


@pytest.mark.parametrize("bad", ["", "   ", None, 42, "a\nb", "x" * 33, "a_b", "_"])
def test_login_rejects_invalid_usernames(bad) -> None:
    reg = IdentityRegistry()
    with pytest.raises(InvalidUsername):
        reg.login(object(), bad)
    assert reg.online_usernames() == []


def test_login_strips_whitespace() -> None:
    reg = IdentityRegistry()
    conn = object()
    reg.login(conn, "  alice ")
    assert reg.who_is(conn) == "alice"
    assert reg.resolve("alice") is conn


def test_takeover_moves_username_to_new_connection() -> None:
    reg = IdentityRegistry()
    first, second = object(), object()

    assert reg.login(first, "alice") is None
    assert reg.login(second, "alice") is first

    assert reg.resolve("alice") is second
    assert reg.who_is(first) is None
    assert reg.who_is(second) == "alice"
    assert len(reg) == 1
    _assert_inverse(reg)


def test_logout_of_taken_over_connection_keeps_new_holder() -> None:
    reg = IdentityRegistry()
    first, second = object(), object()
    reg.login(first, "alice")
    reg.login(second, "alice")

    assert reg.logout(first) is None
    assert reg.resolve("alice") is second


def test_relogin_with_new_name_releases_old_one() -> None:
    reg = IdentityRegistry()
    conn = object()
    reg.login(conn, "alice")
    reg.login(conn, "alicia")

    assert reg.resolve("alice") is None
    assert reg.online_usernames() == ["alicia"]
    _assert_inverse(reg)


def test_logout_is_idempotent() -> None:
    reg = IdentityRegistry()
    conn = object()
    reg.login(conn, "alice")

    assert reg.logout(conn) == "alice"
    assert reg.logout(conn) is None
    assert reg.resolve("alice") is None


def test_online_usernames_sorted() -> None:
    reg = IdentityRegistry()
    for name in ("carol", "alice", "bob"):
        reg.login(object(), name)
    assert reg.online_usernames() == ["alice", "bob", "carol"]
