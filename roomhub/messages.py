"""Outbound event queueing for the room hub."""

from __future__ import annotations

from collections.abc import Hashable, Iterable
from typing import TYPE_CHECKING, Any

from .codec import encode
from .constants import T_ERROR, T_NOTIFICATION
from .envelope import make_envelope

if TYPE_CHECKING:
    from .router import SessionRouter

Outgoing = list[tuple[Hashable, bytes]]


class MessageHelper:
    """
    Helper methods for queueing outbound events.

    Handles:
    - Envelope construction and encoding
    - Fan-out to a set of usernames (resolved to their live connections)
    - Notification and error emission

    Nothing here sends; the transport drains the outgoing list once the
    state lock is released.
    """

    def __init__(self, router: SessionRouter) -> None:
        self.router = router

    def queue_payload(self, outgoing: Outgoing, connection: Hashable, payload: bytes) -> None:
        self.router.stats.inc("bytes_out", len(payload))
        outgoing.append((connection, payload))

    def queue_event(
        self,
        outgoing: Outgoing,
        connection: Hashable,
        event: int,
        body: Any = None,
    ) -> None:
        self.queue_payload(outgoing, connection, encode(make_envelope(event, body=body)))

    def queue_to_connections(
        self,
        outgoing: Outgoing,
        connections: Iterable[Hashable],
        event: int,
        body: Any = None,
    ) -> int:
        """Queue one event to each distinct connection. Returns the recipient count."""
        payload = encode(make_envelope(event, body=body))
        seen: set[Hashable] = set()
        for conn in connections:
            if conn is None or conn in seen:
                continue
            seen.add(conn)
            self.queue_payload(outgoing, conn, payload)
        return len(seen)

    def queue_to_users(
        self,
        outgoing: Outgoing,
        usernames: Iterable[str],
        event: int,
        body: Any = None,
    ) -> int:
        """Queue one event to the live connection of each username, sorted for determinism."""
        identities = self.router.identities
        connections = [identities.resolve(u) for u in sorted(set(usernames))]
        return self.queue_to_connections(outgoing, connections, event, body)

    def queue_to_room(
        self,
        outgoing: Outgoing,
        room: str,
        event: int,
        body: Any = None,
    ) -> int:
        return self.queue_to_users(outgoing, self.router.rooms.members_of(room), event, body)

    def notify(self, outgoing: Outgoing, connection: Hashable, text: str) -> None:
        self.queue_event(outgoing, connection, T_NOTIFICATION, {"message": text})

    def notify_room(self, outgoing: Outgoing, room: str, text: str) -> int:
        return self.queue_to_room(outgoing, room, T_NOTIFICATION, {"message": text})

    def emit_error(self, outgoing: Outgoing, connection: Hashable, text: str) -> None:
        self.queue_event(outgoing, connection, T_ERROR, {"message": text})
