"""Filesystem primitives shared by the record store and the analysis lease."""

import json
import logging
import os
import re
import tempfile
import threading
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from .errors import PersistenceFailure

try:  # pragma: no cover - platform dependent
    import fcntl  # type: ignore
except ImportError:  # pragma: no cover - e.g., Windows
    fcntl = None  # type: ignore

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"[^a-zA-Z0-9_.-]")


def safe_key(value: str) -> str:
    """Return ``value`` reduced to characters safe for a single path component."""
    return _SAFE_KEY.sub("_", Path(str(value)).name)


def atomic_write_json(path: Path, data: Dict[str, Any]) -> None:
    """Write JSON atomically with a unique temp file to avoid cross-process races."""
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(data, indent=2, ensure_ascii=False)
    fd = None
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=path.name + ".", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            fd = None
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    finally:
        if fd is not None:
            with suppress(OSError):
                os.close(fd)
        if tmp_name and os.path.exists(tmp_name):
            with suppress(OSError):
                os.remove(tmp_name)


def acquire_process_lock(path: Path) -> Optional[int]:
    """Attempt a non-blocking cross-process exclusive lock. Returns fd if held.

    Returns None when the lock is held elsewhere. When ``fcntl`` is unavailable
    the caller gets -1, meaning "no cross-process lock, proceed". Any other
    ``OSError`` (unwritable lock dir, fd exhaustion) propagates.
    """
    if fcntl is None:  # pragma: no cover - platform dependent
        return -1
    path.parent.mkdir(parents=True, exist_ok=True)
    fd: Optional[int] = None
    try:
        fd = os.open(str(path), os.O_RDWR | os.O_CREAT, 0o644)
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        return fd
    except OSError as exc:
        if fd is not None:
            with suppress(OSError):
                os.close(fd)
        if isinstance(exc, BlockingIOError):
            return None
        raise


def release_process_lock(fd: Optional[int]) -> None:
    if fd is None or fd < 0:
        return
    try:
        if fcntl is not None:  # pragma: no cover - platform dependent
            with suppress(OSError):
                fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        with suppress(OSError):
            os.close(fd)


class KeyedLease:
    """Non-blocking exclusive leases keyed by a string.

    Combines an in-process lock (threads of one worker) with an fcntl file lock
    under ``lock_dir`` (separate gunicorn workers).
    """

    def __init__(self, lock_dir: Path):
        self.lock_dir = lock_dir
        self._guard = threading.Lock()
        self._held: Dict[str, int] = {}

    def _path(self, key: str) -> Path:
        return self.lock_dir / f"{safe_key(key)}.lock"

    def try_acquire(self, key: str) -> bool:
        """Take the lease for ``key``; False if it is already held anywhere.

        Raises ``PersistenceFailure`` when the lock file cannot be opened.
        """
        with self._guard:
            if key in self._held:
                return False
            try:
                fd = acquire_process_lock(self._path(key))
            except OSError as exc:
                logger.error("Cannot open lock file for %s under %s: %s", key, self.lock_dir, exc)
                raise PersistenceFailure(f"Failed to acquire analysis lock: {exc}") from exc
            if fd is None:
                return False
            self._held[key] = fd
            return True

    def release(self, key: str) -> None:
        with self._guard:
            fd = self._held.pop(key, None)
        release_process_lock(fd)

    def is_held(self, key: str) -> bool:
        with self._guard:
            return key in self._held

    def discard(self, key: str) -> bool:
        """Remove the lock file for ``key`` unless someone holds it. Returns True if removed."""
        if not self._path(key).exists() or not self.try_acquire(key):
            return False
        try:
            with suppress(FileNotFoundError):
                self._path(key).unlink()
        finally:
            self.release(key)
        return True

    @contextmanager
    def hold(self, key: str) -> Iterator[bool]:
        acquired = self.try_acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)
