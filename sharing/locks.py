# sharing/locks.py
"""Named per-session mutexes.

A lock is acquired with bounded retries and exponential backoff. A lock held
longer than ``stale_seconds`` is presumed to belong to a crashed holder and is
reclaimed. Two backends share that contract:

- :class:`FileSessionLocks` keeps one ``<name>.lock`` file per session via
  :class:`filelock.SoftFileLock`, so several worker processes on one node
  exclude each other. The lock file's age is its holding time.
- :class:`MemorySessionLocks` keeps the table in process memory, for a
  single-process deployment.
"""
from __future__ import annotations

import contextlib
import logging
import os
import threading
import time
import uuid
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, Tuple

from filelock import SoftFileLock, Timeout
from tenacity import RetryError, Retrying, retry_if_result, stop_after_attempt, wait_exponential

from .errors import ConcurrencyBusyError

logger = logging.getLogger(__name__)


class SessionLocks:
    """Base class: retry loop and context manager around ``_try_acquire``."""

    def __init__(
        self,
        stale_seconds: float = 30.0,
        max_attempts: int = 10,
        backoff_base: float = 0.05,
        backoff_max: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.stale_seconds = stale_seconds
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._sleep = sleep

    @contextlib.contextmanager
    def hold(self, name: str) -> Iterator[None]:
        handle = self.acquire(name)
        try:
            yield
        finally:
            self.release(name, handle)

    def acquire(self, name: str):
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
            retry=retry_if_result(lambda handle: handle is None),
            sleep=self._sleep,
        )
        try:
            handle = retrying(self._try_acquire, name)
        except RetryError:
            logger.warning("lock %s still busy after %d attempts", name, self.max_attempts)
            raise ConcurrencyBusyError(
                f"Upload {name} is busy, retry the chunk later",
                retry_after=max(1, int(round(self.backoff_max))),
                file_id=name,
            ) from None
        attempts = retrying.statistics.get("attempt_number", 1)
        if attempts > 1:
            logger.debug("lock %s acquired after %d attempts", name, attempts)
        return handle

    def _try_acquire(self, name: str):
        raise NotImplementedError

    def release(self, name: str, handle) -> None:
        raise NotImplementedError


class FileSessionLocks(SessionLocks):
    def __init__(self, lock_dir, **kwargs):
        super().__init__(**kwargs)
        self.lock_dir = Path(lock_dir)
        self.lock_dir.mkdir(parents=True, exist_ok=True)

    def lock_path(self, name: str) -> Path:
        return self.lock_dir / f"{name}.lock"

    def _reclaim_if_stale(self, path: Path) -> None:
        try:
            st = path.stat()
        except FileNotFoundError:
            return
        age = time.time() - st.st_mtime
        if age <= self.stale_seconds:
            return
        try:
            # only drop the file we judged stale, not a fresh one created since
            if os.stat(path).st_ino == st.st_ino:
                path.unlink()
                logger.warning("reclaimed stale lock %s (held %.1fs)", path.name, age)
        except FileNotFoundError:
            pass

    def _try_acquire(self, name: str) -> Optional[SoftFileLock]:
        path = self.lock_path(name)
        self._reclaim_if_stale(path)
        lock = SoftFileLock(str(path))
        try:
            lock.acquire(timeout=0)
        except Timeout:
            return None
        return lock

    def release(self, name: str, handle: SoftFileLock) -> None:
        handle.release()


class MemorySessionLocks(SessionLocks):
    def __init__(self, clock: Callable[[], float] = time.monotonic, **kwargs):
        super().__init__(**kwargs)
        self._clock = clock
        self._guard = threading.Lock()
        self._held: Dict[str, Tuple[str, float]] = {}

    def _try_acquire(self, name: str) -> Optional[str]:
        now = self._clock()
        with self._guard:
            entry = self._held.get(name)
            if entry is not None and now - entry[1] > self.stale_seconds:
                logger.warning("reclaimed stale lock %s (held %.1fs)", name, now - entry[1])
                entry = None
            if entry is not None:
                return None
            token = uuid.uuid4().hex
            self._held[name] = (token, now)
            return token

    def release(self, name: str, handle: str) -> None:
        with self._guard:
            entry = self._held.get(name)
            # a reclaimed lock now belongs to someone else
            if entry is not None and entry[0] == handle:
                del self._held[name]

    def is_held(self, name: str) -> bool:
        with self._guard:
            return name in self._held


def build_locks(backend: str, lock_dir=None, **kwargs) -> SessionLocks:
    if backend == "file":
        return FileSessionLocks(lock_dir, **kwargs)
    if backend == "memory":
        return MemorySessionLocks(**kwargs)
    raise ValueError(f"unknown lock backend: {backend!r}")
