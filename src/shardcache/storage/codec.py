"""Payload encoding for cache entries.

Entries are pickled at the highest protocol. ``False`` has a reserved byte
literal that is matched before unpickling, so a stored ``False`` can never be
mistaken for a payload that failed to decode.
"""

from __future__ import annotations

import logging
import pickle
from enum import Enum
from typing import Any, Literal

logger = logging.getLogger(__name__)

PICKLE_PROTOCOL = pickle.HIGHEST_PROTOCOL
FALSE_PAYLOAD = pickle.dumps(False, protocol=PICKLE_PROTOCOL)


class Miss(Enum):
    """Outcome of a read step that produced no usable value."""

    MISS = "miss"


MISS: Literal[Miss.MISS] = Miss.MISS


def encode(value: Any) -> bytes:
    if value is False:
        return FALSE_PAYLOAD
    return pickle.dumps(value, protocol=PICKLE_PROTOCOL)


def decode(payload: bytes) -> Any | Literal[Miss.MISS]:
    if payload == FALSE_PAYLOAD:
        return False

    try:
        return pickle.loads(payload)
    except Exception as exc:
        logger.debug("file_cache decode failed size=%s error=%s", len(payload), type(exc).__name__)
        return MISS
