from __future__ import annotations


class CacheError(Exception):
    """Base class for errors raised by shardcache."""


class ValidationError(CacheError, ValueError):
    """Raised for invalid keys, TTLs, counter steps, roots and config values."""
