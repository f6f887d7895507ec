"""Exceptions raised by the room hub state objects.

None of these are fatal: the router absorbs them at its boundary and either
ignores the event or answers the sender with a notification.
"""

from __future__ import annotations


class RoomHubError(Exception):
    pass


class InvalidUsername(RoomHubError, ValueError):
    pass


class InvalidRoomName(RoomHubError, ValueError):
    pass


class UnauthenticatedAction(RoomHubError):
    pass


class RecipientOffline(RoomHubError):
    def __init__(self, username: str) -> None:
        super().__init__(f"{username} is offline")
        self.username = username


class MessageNotFound(RoomHubError, LookupError):
    pass
