from __future__ import annotations

import logging
from collections.abc import Hashable

from .constants import USERNAME_MAX_CHARS
from .errors import InvalidUsername
from .util import normalize_username


class IdentityRegistry:
    """
    Binds live connections to self-declared usernames.

    A username maps to exactly one connection at a time. Logging in with a
    username that another connection holds takes it over: the old binding is
    dropped in the same step the new one is made, so both indexes stay mutual
    inverses.

    Must be called with the router state lock held.
    """

    def __init__(self, *, max_username_chars: int = USERNAME_MAX_CHARS) -> None:
        self.log = logging.getLogger("roomhub.identity")
        self.max_username_chars = int(max_username_chars)
        self._by_username: dict[str, Hashable] = {}
        self._by_connection: dict[Hashable, str] = {}

    def login(self, connection: Hashable, username) -> Hashable | None:
        """
        Bind `username` to `connection`.

        Returns the connection that previously held the username (take-over),
        or None. Raises InvalidUsername for empty or malformed names.
        """
        name = normalize_username(username, max_chars=self.max_username_chars)
        if name is None:
            raise InvalidUsername(f"invalid username {username!r}")

        # A connection holds at most one username.
        current = self._by_connection.get(connection)
        if current is not None and current != name:
            self._by_username.pop(current, None)

        previous = self._by_username.get(name)
        if previous is not None and previous != connection:
            self._by_connection.pop(previous, None)
            self.log.info("Username %r taken over by a new connection", name)
        else:
            previous = None

        self._by_username[name] = connection
        self._by_connection[connection] = name
        return previous

    def logout(self, connection: Hashable) -> str | None:
        """Release the connection's username, if any. Idempotent."""
        name = self._by_connection.pop(connection, None)
        if name is not None and self._by_username.get(name) == connection:
            self._by_username.pop(name, None)
        return name

    def resolve(self, username: str) -> Hashable | None:
        return self._by_username.get(username)

    def who_is(self, connection: Hashable) -> str | None:
        return self._by_connection.get(connection)

    def online_usernames(self) -> list[str]:
        """Sorted snapshot of bound usernames."""
        return sorted(self._by_username)

    def clear_all(self) -> None:
        self._by_username.clear()
        self._by_connection.clear()

    def __len__(self) -> int:
        return len(self._by_username)
