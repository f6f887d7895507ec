from __future__ import annotations

from typing import TYPE_CHECKING

from .constants import T_ONLINE_USERS

if TYPE_CHECKING:
    from .messages import Outgoing
    from .router import SessionRouter


class PresenceBroadcaster:
    """Publishes the online-user list to every connected session."""

    def __init__(self, router: SessionRouter) -> None:
        self.router = router

    def online_usernames(self) -> list[str]:
        return self.router.identities.online_usernames()

    def queue_online_users(self, outgoing: Outgoing) -> int:
        """Must be called with the state lock held, after the membership change."""
        return self.router.message_helper.queue_to_connections(
            outgoing,
            self.router.sessions.connections(),
            T_ONLINE_USERS,
            {"users": self.online_usernames()},
        )
