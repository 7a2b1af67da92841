"""
SessionLockManager - per-attempt locks for step/end handling.

A threading lock serializes requests inside one process (FastAPI runs sync
handlers in a threadpool); an fcntl file lock serializes workers across
processes.
"""

from __future__ import annotations

import hashlib
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import fcntl

from dooriq.settings import settings


class SessionLockManager:
    """Acquire per-attempt locks within and across processes."""

    def __init__(self, lock_dir: Optional[str] = None):
        self._lock_dir = Path(
            lock_dir or os.getenv("SESSION_LOCK_DIR") or settings.storage.lock_dir
        ).resolve()
        self._lock_dir.mkdir(parents=True, exist_ok=True)
        self._guard = threading.Lock()
        # attempt_id -> [lock, holders and waiters]
        self._thread_locks: Dict[str, List] = {}

    @property
    def lock_dir(self) -> Path:
        return self._lock_dir

    def _lock_path(self, attempt_id: str) -> Path:
        digest = hashlib.sha256(attempt_id.encode("utf-8")).hexdigest()
        return self._lock_dir / f"{digest}.lock"

    def _acquire_entry(self, attempt_id: str) -> threading.Lock:
        with self._guard:
            entry = self._thread_locks.get(attempt_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._thread_locks[attempt_id] = entry
            entry[1] += 1
            return entry[0]

    def _release_entry(self, attempt_id: str) -> None:
        # Entries live only while someone holds or waits for the lock
        with self._guard:
            entry = self._thread_locks.get(attempt_id)
            if entry is None:
                return
            entry[1] -= 1
            if entry[1] <= 0:
                del self._thread_locks[attempt_id]

    @contextmanager
    def lock(self, attempt_id: str) -> Iterator[None]:
        """Context manager for the attempt lock."""
        thread_lock = self._acquire_entry(attempt_id)
        try:
            with thread_lock:
                path = self._lock_path(attempt_id)
                with open(path, "a", encoding="utf-8") as handle:
                    fcntl.flock(handle, fcntl.LOCK_EX)
                    try:
                        yield
                    finally:
                        fcntl.flock(handle, fcntl.LOCK_UN)
        finally:
            self._release_entry(attempt_id)
