"""shardcache: a filesystem-backed key-value cache with TTL expiration."""

from .config import CacheConfig, load_config
from .errors import CacheError, ValidationError
from .storage import FileCache

__all__ = [
    "CacheConfig",
    "CacheError",
    "FileCache",
    "ValidationError",
    "load_config",
]
