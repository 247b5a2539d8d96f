from __future__ import annotations

from pathlib import Path

from filelock import FileLock

LOCK_FILENAME = ".lock"


def shard_lock(shard_dir: Path, *, mode: int = 0o664) -> FileLock:
    """Return the exclusive lock shared by every key hashing into ``shard_dir``.

    Acquisition blocks without a timeout, so a stalled holder stalls every
    counter update in the same shard.
    """
    return FileLock(str(shard_dir / LOCK_FILENAME), timeout=-1, mode=mode)
