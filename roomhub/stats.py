"""Statistics tracking and reporting for the room hub."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .router import SessionRouter


class StatsManager:
    """
    Lifetime counters for the hub.

    Tracks counters for:
    - Events in, malformed and dropped
    - Logins and take-overs
    - Room joins/parts
    - Messages stored, private messages, receipts and reactions
    - Bytes in/out
    - Uploads and outbound resource transfers
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "events_in": 0,
            "events_bad": 0,
            "events_dropped": 0,
            "logins": 0,
            "takeovers": 0,
            "joins": 0,
            "parts": 0,
            "messages_stored": 0,
            "private_messages": 0,
            "reads": 0,
            "reactions": 0,
            "bytes_in": 0,
            "bytes_out": 0,
            "uploads_received": 0,
            "uploads_rejected": 0,
            "resources_sent": 0,
        }

    def set_start_time(self) -> None:
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        with self._lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        with self._lock:
            return int(self._counters.get(key, 0))

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def format_stats(self, router: SessionRouter) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        now_mono = time.monotonic()
        started_mono = self.started_monotonic
        uptime_s = (now_mono - started_mono) if started_mono is not None else 0.0

        with router.lock:
            session_stats = router.sessions.get_stats()
            room_stats = router.rooms.get_stats()
            history_stats = router.history.get_stats()
        c = self.snapshot()

        lines: list[str] = []
        lines.append(f"roomhub {__version__} stats")
        lines.append(f"uptime_s={uptime_s:.1f}")
        lines.append(
            f"sessions_total={session_stats['total']} "
            f"sessions_authenticated={session_stats['authenticated']}"
        )
        lines.append(
            f"rooms={room_stats['rooms_total']} memberships={room_stats['memberships']}"
        )
        if room_stats["top_rooms"]:
            lines.append(
                "top_rooms="
                + ", ".join(f"{r}:{n}" for r, n in room_stats["top_rooms"])
            )
        lines.append(
            "history: rooms={} held={} evicted={} last_id={}".format(
                history_stats["rooms_with_history"],
                history_stats["messages_held"],
                history_stats["messages_evicted"],
                history_stats["last_id"],
            )
        )
        lines.append(
            "io: events_in={} events_bad={} events_dropped={} bytes_in={} bytes_out={}".format(
                c.get("events_in", 0),
                c.get("events_bad", 0),
                c.get("events_dropped", 0),
                c.get("bytes_in", 0),
                c.get("bytes_out", 0),
            )
        )
        lines.append(
            "events: logins={} takeovers={} joins={} parts={} stored={} private={} reads={} reactions={}".format(
                c.get("logins", 0),
                c.get("takeovers", 0),
                c.get("joins", 0),
                c.get("parts", 0),
                c.get("messages_stored", 0),
                c.get("private_messages", 0),
                c.get("reads", 0),
                c.get("reactions", 0),
            )
        )
        lines.append(
            "transfers: uploads={} uploads_rejected={} resources_sent={}".format(
                c.get("uploads_received", 0),
                c.get("uploads_rejected", 0),
                c.get("resources_sent", 0),
            )
        )

        return "\n".join(lines)
