from __future__ import annotations

import pickle
from datetime import datetime

from shardcache.storage.codec import FALSE_PAYLOAD, MISS, decode, encode


def test_false_uses_reserved_payload() -> None:
    assert encode(False) == FALSE_PAYLOAD
    assert decode(FALSE_PAYLOAD) is False


def test_decode_returns_miss_for_garbage() -> None:
    assert decode(b"definitely not a pickle") is MISS
    assert decode(b"") is MISS


def test_decode_returns_miss_for_truncated_payload() -> None:
    payload = encode({"a": [1, 2, 3]})

    assert decode(payload[:-3]) is MISS


def test_encode_preserves_python_types() -> None:
    value = {
        "tuple": (1, 2),
        "bytes": b"\x00\x01",
        "set": {"x", "y"},
        "when": datetime(2026, 1, 2, 3, 4, 5),
        "none": None,
        "zero": 0,
    }

    decoded = decode(encode(value))

    assert decoded == value
    assert isinstance(decoded["tuple"], tuple)


def test_decode_accepts_plain_pickle_payloads() -> None:
    assert decode(pickle.dumps([1, "two"], protocol=2)) == [1, "two"]
