from __future__ import annotations

import os

from .constants import PRIVATE_ROOM_PREFIX, USERNAME_MAX_CHARS


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def _clean_name(value, max_chars: int) -> str | None:
    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None

    if max_chars > 0 and len(s) > int(max_chars):
        return None

    # Embedded newlines or NUL break log lines and client rendering.
    if "\n" in s or "\r" in s or "\x00" in s:
        return None

    try:
        s.encode("utf-8", "strict")
    except UnicodeError:
        return None

    return s


def normalize_username(value, *, max_chars: int = USERNAME_MAX_CHARS) -> str | None:
    name = _clean_name(value, max_chars)
    # "_" separates the two names in a private room name.
    if name is None or "_" in name:
        return None
    return name


def normalize_room(value, *, max_chars: int = 64) -> str | None:
    return _clean_name(value, max_chars)


def private_room_name(a: str, b: str) -> str:
    """Canonical room name for a two-party conversation.

    Both participants resolve the same name regardless of who asks.
    """
    first, second = sorted((a, b))
    return f"{PRIVATE_ROOM_PREFIX}{first}_{second}"
