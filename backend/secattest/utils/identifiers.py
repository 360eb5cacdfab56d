from __future__ import annotations

import os
import threading
import time
import uuid

_lock = threading.Lock()
_last_ms = 0
_sequence = 0


def _next_stamp() -> tuple[int, int]:
    global _last_ms, _sequence
    with _lock:
        now_ms = int(time.time() * 1000)
        if now_ms > _last_ms:
            _last_ms = now_ms
            _sequence = int.from_bytes(os.urandom(2), "big") & 0x3FF
        else:
            _sequence += 1
            if _sequence > 0xFFF:
                _last_ms += 1
                _sequence = 0
        return _last_ms, _sequence


def generate_uuid7() -> str:
    """
    Record identity assigned by storage: a UUIDv7 string.

    The 12-bit ``rand_a`` field holds a per-process counter seeded randomly
    each millisecond, so ids minted by one process within the same
    millisecond still sort in creation order.
    """
    ts_ms, sequence = _next_stamp()
    raw = bytearray(ts_ms.to_bytes(6, "big") + sequence.to_bytes(2, "big") + os.urandom(8))
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))
