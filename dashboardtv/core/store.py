"""File-backed key-value store with JSON-encoded values.

Each key maps to a JSON document stored as a string, the way the display
application keeps its preferences. A missing or unreadable store file is
treated as empty; a value that no longer decodes reads as absent.

Several processes may share one file (``run`` alongside ``configure`` or
``next``). Every write re-reads the file under an exclusive lock and merges
only the changed key, so one process never writes back another's stale
values. Reads are served from a cache; ``changed_on_disk`` tells a
long-running process when to ``reload``.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, TextIO, Tuple

from dashboardtv.utils.log import get_logger


logger = get_logger()

TARGETS_KEY = "dashboardtv.targets"
SETTINGS_KEY = "dashboardtv.settings"
CURRENT_INDEX_KEY = "dashboardtv.current_index"
BACKEND_PREFERENCES_KEY = "ai_backend.preferences"

FileStamp = Tuple[int, int, int]


def has_fcntl() -> bool:
    """Check if the fcntl module is available (Unix-like systems only)."""
    try:
        import fcntl  # noqa: F401

        return True
    except ImportError:
        return False


HAS_FCNTL = has_fcntl()


@contextlib.contextmanager
def file_lock(file_handle: TextIO) -> Iterator[None]:
    """Hold an exclusive lock on ``file_handle``; a no-op without fcntl."""
    if not HAS_FCNTL:
        yield
        return

    import fcntl

    try:
        fcntl.flock(file_handle.fileno(), fcntl.LOCK_EX)
        yield
    finally:
        with contextlib.suppress(OSError):
            fcntl.flock(file_handle.fileno(), fcntl.LOCK_UN)


class KeyValueStore:
    """Mapping of string keys to JSON-encoded values persisted in one file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._values: Optional[Dict[str, str]] = None
        self._stamp: Optional[FileStamp] = None
        self._changed_elsewhere = False

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(f".{self.path.name}.lock")

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.lock_path.open("a+", encoding="utf-8") as handle:
            with file_lock(handle):
                yield

    def _file_stamp(self) -> Optional[FileStamp]:
        # Atomic replaces give the file a new inode, so the inode catches
        # writes that land within the mtime resolution.
        try:
            stat = os.stat(self.path)
        except OSError:
            return None
        return (stat.st_ino, stat.st_mtime_ns, stat.st_size)

    def _read_file(self) -> Dict[str, str]:
        stamp = self._file_stamp()
        if self._values is not None and stamp != self._stamp:
            self._changed_elsewhere = True
        values: Dict[str, str] = {}
        if stamp is not None:
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
                if isinstance(data, dict):
                    values = {str(k): v for k, v in data.items() if isinstance(v, str)}
                else:
                    logger.warning(
                        "[store] Ignoring store file with unexpected layout",
                        extra={"path": str(self.path), "type": type(data).__name__},
                    )
            except (json.JSONDecodeError, OSError, UnicodeDecodeError, ValueError) as e:
                logger.warning(
                    "Error loading store: %s: %s",
                    type(e).__name__,
                    e,
                    extra={"path": str(self.path)},
                )
        self._values = values
        self._stamp = stamp
        return values

    def _load(self) -> Dict[str, str]:
        if self._values is not None:
            return self._values
        return self._read_file()

    def _write(self, values: Dict[str, str]) -> None:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(values, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except OSError:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
        self._values = values
        self._stamp = self._file_stamp()

    def get_raw(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_raw(self, key: str, value: str) -> None:
        with self._locked():
            values = self._read_file()
            values[key] = value
            self._write(values)

    def get_json(self, key: str) -> Optional[Any]:
        """Return the decoded value for ``key`` or None if missing or corrupt."""
        raw = self.get_raw(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError, ValueError) as exc:
            logger.warning(
                "[store] Discarding undecodable value: %s: %s",
                type(exc).__name__,
                exc,
                extra={"key": key, "length": len(raw)},
            )
            return None

    def set_json(self, key: str, value: Any) -> None:
        self.set_raw(key, json.dumps(value, ensure_ascii=False, default=str))

    def remove(self, key: str) -> None:
        with self._locked():
            values = self._read_file()
            if key in values:
                del values[key]
                self._write(values)

    def keys(self) -> list[str]:
        return sorted(self._load())

    def changed_on_disk(self) -> bool:
        """True when another writer touched the file since the last ``reload``."""
        if self._changed_elsewhere:
            return True
        return self._values is not None and self._file_stamp() != self._stamp

    def reload(self) -> None:
        """Re-read the file, discarding cached values."""
        self._read_file()
        self._changed_elsewhere = False
