"""Room membership for the room hub.

Rooms are keyed by name and hold usernames, not connections, so a
taken-over username keeps its memberships on the new connection. Rooms come
into existence on first join and their entries are dropped again once empty;
message history lives in the MessageLog and is unaffected.
"""

from __future__ import annotations

import logging
from typing import Any

from .constants import GLOBAL_ROOM


class RoomDirectory:
    """Tracks room name -> member usernames. Must be called with the state lock held."""

    def __init__(self) -> None:
        self.log = logging.getLogger("roomhub.rooms")
        self.rooms: dict[str, set[str]] = {}

    def get_or_create(self, room: str) -> set[str]:
        """Return the live member set for a room, creating the room if needed."""
        members = self.rooms.get(room)
        if members is None:
            members = set()
            self.rooms[room] = members
            self.log.debug("Room created room=%s", room)
        return members

    def join(self, room: str, username: str) -> None:
        self.get_or_create(room).add(username)

    def leave(self, room: str, username: str) -> bool:
        """Remove a member. Returns False if they were not in the room."""
        members = self.rooms.get(room)
        if members is None or username not in members:
            return False

        members.discard(username)
        if not members:
            self.rooms.pop(room, None)
            self.log.debug("Room emptied room=%s", room)
        return True

    def leave_all(self, username: str) -> list[str]:
        """Remove a member from every room. Returns the rooms left."""
        left = [r for r, members in self.rooms.items() if username in members]
        for room in left:
            self.leave(room, username)
        return left

    def members_of(self, room: str) -> set[str]:
        return set(self.rooms.get(room, ()))

    def rooms_of(self, username: str) -> list[str]:
        return sorted(r for r, members in self.rooms.items() if username in members)

    def room_names(self) -> list[str]:
        """Sorted names of active rooms; the global room is always listed."""
        return sorted(set(self.rooms) | {GLOBAL_ROOM})

    def clear_all(self) -> None:
        self.rooms.clear()

    def get_stats(self) -> dict[str, Any]:
        rooms_total = len(self.rooms)
        memberships = sum(len(v) for v in self.rooms.values())
        top_rooms = sorted(
            ((room, len(members)) for room, members in self.rooms.items()),
            key=lambda x: (-x[1], x[0]),
        )[:5]
        return {
            "rooms_total": rooms_total,
            "memberships": memberships,
            "top_rooms": top_rooms,
        }
