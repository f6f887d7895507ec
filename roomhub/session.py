from __future__ import annotations

import itertools
import logging
from collections.abc import Hashable
from dataclasses import dataclass
from typing import Any

_conn_ids = itertools.count(1)


@dataclass
class Session:
    """Per-connection state. `username` is None while the session is anonymous."""

    connection: Hashable
    conn_id: str
    username: str | None = None
    current_room: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.username is not None


class SessionManager:
    """
    Manages session lifecycle for hub connections.

    This class is responsible for:
    - Session creation on connect
    - Session lookup for inbound events
    - Session teardown on disconnect (exactly once per connection)

    Must be called with the router state lock held.
    """

    def __init__(self) -> None:
        self.log = logging.getLogger("roomhub.session")
        self.sessions: dict[Hashable, Session] = {}

    def on_connect(self, connection: Hashable, conn_id: str | None = None) -> Session:
        sess = self.sessions.get(connection)
        if sess is not None:
            return sess

        sess = Session(connection=connection, conn_id=conn_id or f"c{next(_conn_ids)}")
        self.sessions[connection] = sess
        self.log.info("Session created conn_id=%s", sess.conn_id)
        return sess

    def on_disconnect(self, connection: Hashable) -> Session | None:
        """Pop the session. A second call for the same connection returns None."""
        return self.sessions.pop(connection, None)

    def get_session(self, connection: Hashable) -> Session | None:
        return self.sessions.get(connection)

    def connections(self) -> list[Hashable]:
        return list(self.sessions)

    def revoke(self, connection: Hashable) -> None:
        """Return a session to the anonymous state after its username was taken over."""
        sess = self.sessions.get(connection)
        if sess is None:
            return
        sess.username = None
        sess.current_room = None

    def clear_all(self) -> list[Hashable]:
        """Clear all sessions and return their connections for teardown."""
        connections = list(self.sessions.keys())
        self.sessions.clear()
        return connections

    def get_stats(self) -> dict[str, Any]:
        total = len(self.sessions)
        authenticated = sum(1 for s in self.sessions.values() if s.authenticated)
        return {"total": total, "authenticated": authenticated}
