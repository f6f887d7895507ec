"""Bounded per-room message history."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .constants import HISTORY_MAX_MESSAGES, RECENT_MESSAGES
from .envelope import now_ms


@dataclass(frozen=True)
class FileRef:
    """Reference to a blob held by the upload store."""

    url: str
    name: str

    def to_wire(self) -> dict[str, str]:
        return {"url": self.url, "name": self.name}


@dataclass
class Message:
    id: int
    sender: str
    text: str | None
    file: FileRef | None
    ts: int
    read_by: list[str] = field(default_factory=list)
    reactions: dict[str, list[str]] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from": self.sender,
            "text": self.text,
            "file": self.file.to_wire() if self.file is not None else None,
            "ts": self.ts,
            "readBy": list(self.read_by),
            "reactions": {k: list(v) for k, v in self.reactions.items()},
        }


class MessageLog:
    """
    Append-only message history, one bounded list per room.

    Message ids come from a single counter shared by every room, so an id
    identifies a message across the whole process lifetime. When a room holds
    more than `max_messages` entries the oldest are evicted.

    Must be called with the router state lock held.
    """

    def __init__(self, *, max_messages: int = HISTORY_MAX_MESSAGES) -> None:
        self.log = logging.getLogger("roomhub.history")
        self.max_messages = max(1, int(max_messages))
        self._logs: dict[str, list[Message]] = {}
        self._last_id = 0
        self._evicted = 0

    @property
    def last_id(self) -> int:
        return self._last_id

    def append(
        self,
        room: str,
        sender: str,
        *,
        text: str | None = None,
        file: FileRef | None = None,
        ts: int | None = None,
    ) -> Message:
        """Store a new message and return it; its `id` is freshly assigned."""
        if not text and file is None:
            raise ValueError("message needs text or a file")

        self._last_id += 1
        msg = Message(
            id=self._last_id,
            sender=sender,
            text=text or None,
            file=file,
            ts=ts or now_ms(),
        )

        entries = self._logs.setdefault(room, [])
        entries.append(msg)
        overflow = len(entries) - self.max_messages
        if overflow > 0:
            del entries[:overflow]
            self._evicted += overflow
            if self.log.isEnabledFor(logging.DEBUG):
                self.log.debug(
                    "Evicted %d message(s) room=%s oldest_kept=%s",
                    overflow,
                    room,
                    entries[0].id,
                )

        return msg

    def recent(self, room: str, count: int = RECENT_MESSAGES) -> list[Message]:
        """The newest `count` messages of a room, oldest first."""
        return self.page(room, 0, count)

    def page(self, room: str, offset: int, limit: int) -> list[Message]:
        """
        Up to `limit` messages ending `offset` messages before the newest.

        Out-of-range values yield an empty list rather than an error.
        """
        entries = self._logs.get(room)
        if not entries:
            return []

        try:
            offset = int(offset)
            limit = int(limit)
        except (TypeError, ValueError):
            return []
        if offset < 0 or limit <= 0:
            return []

        end = len(entries) - offset
        if end <= 0:
            return []
        start = max(0, end - limit)
        return entries[start:end]

    def get(self, room: str, message_id: int) -> Message | None:
        entries = self._logs.get(room)
        if not entries or not isinstance(message_id, int):
            return None

        # Ids are strictly increasing within a room; search from the newest end
        # since receipts and reactions mostly target recent messages.
        for msg in reversed(entries):
            if msg.id == message_id:
                return msg
            if msg.id < message_id:
                break
        return None

    def mark_read(self, room: str, message_id: int, username: str) -> Message | None:
        msg = self.get(room, message_id)
        if msg is None:
            return None
        if username not in msg.read_by:
            msg.read_by.append(username)
        return msg

    def add_reaction(
        self, room: str, message_id: int, username: str, kind: str
    ) -> Message | None:
        msg = self.get(room, message_id)
        if msg is None:
            return None
        users = msg.reactions.setdefault(kind, [])
        if username not in users:
            users.append(username)
        return msg

    def room_names(self) -> list[str]:
        return sorted(self._logs)

    def clear_all(self) -> None:
        self._logs.clear()

    def get_stats(self) -> dict[str, Any]:
        return {
            "rooms_with_history": len(self._logs),
            "messages_held": sum(len(v) for v in self._logs.values()),
            "messages_evicted": self._evicted,
            "last_id": self._last_id,
        }
