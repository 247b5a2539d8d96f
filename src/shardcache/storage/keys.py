from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Any

from shardcache.errors import ValidationError

RESERVED_KEY_CHARACTERS = "{}()/\\@:"
_RESERVED_PATTERN = re.compile(f"[{re.escape(RESERVED_KEY_CHARACTERS)}]")


def validate_key(key: Any) -> str:
    if not isinstance(key, str):
        raise ValidationError(f"invalid key type: {type(key).__name__} given")
    if key == "":
        raise ValidationError("invalid key: empty string given")

    match = _RESERVED_PATTERN.search(key)
    if match is not None:
        raise ValidationError(f"invalid character in key: {match.group(0)}")
    return key


def key_digest(key: str) -> str:
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def derive_path(root: Path, key: str) -> Path:
    """Map a key onto ``<root>/<X>/<Y>/<rest>`` without touching the filesystem.

    ``X`` and ``Y`` are the first two digest characters upper-cased, so every
    entry lives in one of 256 shard directories.
    """
    digest = key_digest(validate_key(key))
    return root / digest[0].upper() / digest[1].upper() / digest[2:]
