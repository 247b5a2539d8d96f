from __future__ import annotations

import contextlib
import logging
import os
import tempfile
import time
from collections.abc import Iterable, Iterator, Mapping
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from shardcache.errors import ValidationError

from .codec import MISS, Miss, decode, encode
from .keys import derive_path, validate_key
from .locking import LOCK_FILENAME, shard_lock

if TYPE_CHECKING:
    from shardcache.config import CacheConfig

logger = logging.getLogger(__name__)

# 3000-01-01T00:00:00Z, stored as the mtime of entries that never expire.
DISTANT_FUTURE = 32_503_680_000
TEMP_PREFIX = ".tmp-"
# Temp files older than this are debris from writers that died before renaming.
TEMP_GRACE_SECONDS = 3600
MAX_MODE = 0o7777

Ttl = int | timedelta | None

_ABSENT = object()


class FileCache:
    """File-per-entry cache with expiration stored in each file's mtime.

    Entries live at ``<root>/<X>/<Y>/<rest-of-sha256>``. Writes go through a
    temp file in the root and an atomic rename, so a reader sees either the old
    or the new entry. Absent, expired and undecodable entries are all misses.
    Call :meth:`clean_expired` periodically (e.g. from cron) to sweep entries
    nobody reads anymore.
    """

    def __init__(
        self,
        root: str | Path,
        default_ttl: int | None = None,
        dir_mode: int = 0o775,
        file_mode: int = 0o664,
    ) -> None:
        if default_ttl is not None and (
            isinstance(default_ttl, bool) or not isinstance(default_ttl, int) or default_ttl < 0
        ):
            raise ValidationError("default_ttl must be an int >= 0")

        check_mode("dir_mode", dir_mode)
        check_mode("file_mode", file_mode)
        self._default_ttl = default_ttl
        self._dir_mode = dir_mode
        self._file_mode = file_mode

        path = Path(root).expanduser().absolute()
        if not path.exists() and path.parent.exists():
            try:
                self._make_dirs(path)
            except OSError as exc:
                raise ValidationError(f"cache path could not be created: {root}") from exc

        if not path.exists():
            raise ValidationError(f"cache path does not exist: {root}")
        if not path.is_dir():
            raise ValidationError(f"cache path is not a directory: {root}")
        if not os.access(path, os.W_OK | os.X_OK):
            raise ValidationError(f"cache path is not writable: {root}")

        self._root = path.resolve()

    @classmethod
    def from_config(cls, config: CacheConfig) -> FileCache:
        return cls(
            config.root,
            default_ttl=config.default_ttl,
            dir_mode=config.dir_mode,
            file_mode=config.file_mode,
        )

    @property
    def root(self) -> Path:
        return self._root

    @property
    def default_ttl(self) -> int | None:
        return self._default_ttl

    @property
    def dir_mode(self) -> int:
        return self._dir_mode

    @property
    def file_mode(self) -> int:
        return self._file_mode

    def now(self) -> int:
        return int(time.time())

    def path_for(self, key: str) -> Path:
        return derive_path(self._root, key)

    def get(self, key: str, default: Any = None) -> Any:
        value = self._load(self.path_for(key))
        if value is MISS:
            return default
        return value

    def set(self, key: str, value: Any, ttl: Ttl = None) -> bool:
        path = self.path_for(key)
        return self._store(path, value, self._expiration_for(ttl))

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return True
        except OSError as exc:
            logger.warning("file_cache delete failed key=%s error=%s", _log_key(path), exc)
            return False
        return True

    def clear(self) -> bool:
        self._reap_stale_temp_files()
        success = True
        for path in self.iter_entry_paths():
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("file_cache clear failed path=%s error=%s", path, exc)
                success = False
        return success

    def get_multiple(self, keys: Iterable[str], default: Any = None) -> dict[str, Any]:
        validated = [validate_key(key) for key in keys]
        return {key: self.get(key) or default for key in validated}

    def set_multiple(
        self,
        values: Mapping[Any, Any] | Iterable[tuple[Any, Any]],
        ttl: Ttl = None,
    ) -> bool:
        items = values.items() if isinstance(values, Mapping) else values
        pairs = [(validate_key(_normalize_key(key)), value) for key, value in items]

        ok = True
        for key, value in pairs:
            ok = self.set(key, value, ttl) and ok
        return ok

    def delete_multiple(self, keys: Iterable[str]) -> bool:
        validated = [validate_key(key) for key in keys]

        ok = True
        for key in validated:
            ok = self.delete(key) and ok
        return ok

    def has(self, key: str) -> bool:
        return self.get(key, _ABSENT) is not _ABSENT

    def increment(self, key: str, step: int = 1) -> int | Literal[False]:
        """Add ``step`` to an integer entry under the shard lock.

        A missing entry counts as ``0``. An existing entry keeps its expiration;
        a new one gets the default TTL.
        """
        _validate_step(step)
        path = self.path_for(key)
        try:
            self._make_dirs(path.parent)
            with shard_lock(path.parent, mode=self._file_mode):
                return self._apply_step(path, step)
        except OSError as exc:
            logger.warning("file_cache increment failed key=%s error=%s", _log_key(path), exc)
            return False

    def decrement(self, key: str, step: int = 1) -> int | Literal[False]:
        _validate_step(step)
        return self.increment(key, -step)

    def clean_expired(self) -> int:
        now = self.now()
        removed = 0
        for path in self.iter_entry_paths():
            expires_at = self._read_expiration(path)
            if expires_at is MISS or expires_at > now:
                continue
            if self._discard(path):
                removed += 1

        removed += self._reap_stale_temp_files()
        logger.info("file_cache clean_expired removed=%s", removed)
        return removed

    def iter_entry_paths(self) -> Iterator[Path]:
        """Yield every entry file below the root, in no particular order.

        Root-level temp files and shard lock files are not entries.
        """
        root = str(self._root)
        for dirpath, _dirnames, filenames in os.walk(root):
            if dirpath == root:
                continue
            for filename in filenames:
                if filename == LOCK_FILENAME:
                    continue
                path = Path(dirpath) / filename
                if path.is_file():
                    yield path

    def _reap_stale_temp_files(self) -> int:
        cutoff = self.now() - TEMP_GRACE_SECONDS
        reaped = 0
        with os.scandir(self._root) as entries:
            for entry in entries:
                if not entry.name.startswith(TEMP_PREFIX) or not entry.is_file():
                    continue
                try:
                    if entry.stat().st_ctime >= cutoff:
                        continue
                    os.unlink(entry.path)
                except OSError:
                    continue
                reaped += 1

        if reaped:
            logger.info("file_cache reaped stale temp files count=%s", reaped)
        return reaped

    def _apply_step(self, path: Path, step: int) -> int | Literal[False]:
        expires_at = self._read_expiration(path)
        current = self._load(path)
        if current is MISS:
            current = 0
            expires_at = self._expiration_for(None)
        elif expires_at is MISS:
            expires_at = self._expiration_for(None)

        if isinstance(current, bool) or not isinstance(current, int):
            logger.warning(
                "file_cache increment failed key=%s reason=not_an_integer type=%s",
                _log_key(path),
                type(current).__name__,
            )
            return False

        value = current + step
        if not self._store(path, value, expires_at):
            return False
        return value

    def _load(self, path: Path) -> Any | Literal[Miss.MISS]:
        expires_at = self._read_expiration(path)
        if expires_at is MISS:
            logger.debug("file_cache miss key=%s reason=not_found", _log_key(path))
            return MISS

        if self._is_expired(expires_at):
            self._discard(path)
            logger.debug("file_cache miss key=%s reason=expired", _log_key(path))
            return MISS

        payload = self._read_payload(path)
        if payload is MISS:
            logger.debug("file_cache miss key=%s reason=unreadable", _log_key(path))
            return MISS

        value = decode(payload)
        if value is MISS:
            logger.info("file_cache miss key=%s reason=undecodable", _log_key(path))
            return MISS

        logger.debug("file_cache hit key=%s", _log_key(path))
        return value

    def _store(self, path: Path, value: Any, expires_at: int) -> bool:
        try:
            payload = encode(value)
        except Exception as exc:
            logger.warning(
                "file_cache set failed key=%s reason=unencodable error=%s", _log_key(path), exc
            )
            return False

        try:
            self._make_dirs(path.parent)
            fd, temp_name = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=self._root)
        except OSError as exc:
            logger.warning("file_cache set failed key=%s error=%s", _log_key(path), exc)
            return False

        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
            temp_path.chmod(self._file_mode)
            os.utime(temp_path, (expires_at, expires_at))
            os.replace(temp_path, path)
        except (OSError, OverflowError) as exc:
            logger.warning("file_cache set failed key=%s error=%s", _log_key(path), exc)
            with contextlib.suppress(OSError):
                temp_path.unlink(missing_ok=True)
            return False

        logger.debug("file_cache set key=%s expires_at=%s", _log_key(path), expires_at)
        return True

    def _expiration_for(self, ttl: Ttl) -> int:
        if ttl is None:
            if self._default_ttl is None:
                return DISTANT_FUTURE
            ttl = self._default_ttl

        if isinstance(ttl, bool):
            raise ValidationError(f"invalid TTL: {ttl!r}")
        if isinstance(ttl, int):
            return self.now() + ttl
        if isinstance(ttl, timedelta):
            return self.now() + int(ttl.total_seconds())
        raise ValidationError(f"invalid TTL: {ttl!r}")

    def _is_expired(self, expires_at: int) -> bool:
        return expires_at != DISTANT_FUTURE and self.now() >= expires_at

    def _make_dirs(self, target: Path) -> None:
        missing: list[Path] = []
        current = target
        while not current.exists():
            missing.append(current)
            current = current.parent

        for directory in reversed(missing):
            try:
                directory.mkdir()
            except FileExistsError:
                continue
            directory.chmod(self._dir_mode)

    @staticmethod
    def _read_expiration(path: Path) -> int | Literal[Miss.MISS]:
        try:
            return int(path.stat().st_mtime)
        except OSError:
            return MISS

    @staticmethod
    def _read_payload(path: Path) -> bytes | Literal[Miss.MISS]:
        try:
            return path.read_bytes()
        except OSError:
            return MISS

    @staticmethod
    def _discard(path: Path) -> bool:
        try:
            path.unlink()
        except OSError:
            return False
        return True


def check_mode(name: str, mode: Any) -> int:
    if isinstance(mode, bool) or not isinstance(mode, int) or not 0 <= mode <= MAX_MODE:
        raise ValidationError(f"{name} must be a permission mode between 0 and 0o7777")
    return mode


def _normalize_key(key: Any) -> Any:
    if isinstance(key, int) and not isinstance(key, bool):
        return str(key)
    return key


def _validate_step(step: Any) -> None:
    if isinstance(step, bool) or not isinstance(step, int):
        raise ValidationError(f"invalid step: {step!r}")


def _log_key(path: Path) -> str:
    return f"{path.parent.parent.name}{path.parent.name}{path.name[:10]}"
