"""Storage engine: sharded entry files with mtime-encoded expiration."""

from .cache import DISTANT_FUTURE, FileCache
from .codec import MISS, Miss
from .keys import derive_path, validate_key

__all__ = ["DISTANT_FUTURE", "MISS", "FileCache", "Miss", "derive_path", "validate_key"]
