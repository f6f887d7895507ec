from __future__ import annotations

import os
import time

from .constants import K_BODY, K_ID, K_T, K_TS, K_V, WIRE_VERSION


def now_ms() -> int:
    return int(time.time() * 1000)


def envelope_id() -> bytes:
    return os.urandom(8)


def make_envelope(
    event: int,
    *,
    body=None,
    eid: bytes | None = None,
    ts: int | None = None,
) -> dict:
    env: dict[int, object] = {
        K_V: WIRE_VERSION,
        K_T: int(event),
        K_ID: eid or envelope_id(),
        K_TS: ts or now_ms(),
    }
    if body is not None:
        env[K_BODY] = body
    return env


def validate_envelope(env: dict) -> None:
    if not isinstance(env, dict):
        raise TypeError("envelope must be a CBOR map (dict)")

    for k in env.keys():
        if not isinstance(k, int):
            raise TypeError("envelope keys must be integers")
        if k < 0:
            raise ValueError("envelope keys must be unsigned integers")

    for k in (K_V, K_T, K_ID, K_TS):
        if k not in env:
            raise ValueError(f"missing envelope key {k}")

    v = env[K_V]
    if not isinstance(v, int):
        raise TypeError("protocol version must be an integer")
    if v != WIRE_VERSION:
        raise ValueError(f"unsupported version {v}")

    t = env[K_T]
    if not isinstance(t, int) or isinstance(t, bool):
        raise TypeError("event type must be an integer")

    eid = env[K_ID]
    if not isinstance(eid, (bytes, bytearray)):
        raise TypeError("envelope id must be bytes")

    ts = env[K_TS]
    if not isinstance(ts, int):
        raise TypeError("timestamp must be an integer")
    if ts < 0:
        raise ValueError("timestamp must be unsigned")

    if K_BODY in env and not isinstance(env[K_BODY], dict):
        raise TypeError("envelope body must be a map")
