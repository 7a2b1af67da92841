"""
Attempt stores - durable and in-memory persistence for attempts.

SQLiteAttemptStore keeps one JSON snapshot per attempt and is safe to share
across processes (WAL journal). Every save is a compare-and-swap on the
`version` column: a writer that loaded an older version gets
StaleAttemptError instead of overwriting a newer turn.

InMemoryAttemptStore has the same contract and is used for demo mode and
the CLI simulator.
"""

from __future__ import annotations

import copy
import json
import os
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from dooriq.attempt import Attempt
from dooriq.errors import AttemptNotFoundError, StaleAttemptError
from dooriq.logger import logger
from dooriq.settings import settings


class AttemptStore(ABC):
    """Store contract."""

    @abstractmethod
    def create(self, attempt: Attempt) -> Attempt:
        pass

    @abstractmethod
    def get(self, attempt_id: str) -> Attempt:
        pass

    @abstractmethod
    def save(self, attempt: Attempt, expected_version: int) -> Attempt:
        """
        Persist `attempt` if the stored version still equals expected_version.

        Returns:
            The attempt with its version bumped

        Raises:
            AttemptNotFoundError: Unknown attempt id
            StaleAttemptError: Another writer saved first
        """
        pass

    @abstractmethod
    def list_ids(self, user_id: Optional[str] = None) -> List[str]:
        pass


class SQLiteAttemptStore(AttemptStore):
    """Attempts as JSON snapshots in SQLite."""

    DEFAULT_DB_NAME = "attempts.db"

    def __init__(self, db_path: Optional[str] = None):
        self._db_path = Path(
            db_path or os.getenv("DB_PATH", self.DEFAULT_DB_NAME)
        ).resolve()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS attempts (
                        attempt_id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL DEFAULT '',
                        snapshot_json TEXT NOT NULL,
                        version INTEGER NOT NULL,
                        created_at REAL NOT NULL,
                        updated_at REAL NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_attempts_user_id
                    ON attempts(user_id)
                    """
                )
        finally:
            conn.close()

    def create(self, attempt: Attempt) -> Attempt:
        attempt.version = 1
        payload = json.dumps(attempt.to_snapshot())
        now = time.time()
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO attempts
                    (attempt_id, user_id, snapshot_json, version, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (attempt.attempt_id, attempt.user_id, payload, attempt.version, now, now),
                )
        finally:
            conn.close()
        return attempt

    def get(self, attempt_id: str) -> Attempt:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT snapshot_json, version FROM attempts WHERE attempt_id = ?",
                (attempt_id,),
            ).fetchone()
        finally:
            conn.close()

        if not row:
            raise AttemptNotFoundError(attempt_id)
        attempt = Attempt.from_snapshot(json.loads(row[0]))
        attempt.version = int(row[1])
        return attempt

    def save(self, attempt: Attempt, expected_version: int) -> Attempt:
        new_version = expected_version + 1
        snapshot = attempt.to_snapshot()
        snapshot["version"] = new_version
        payload = json.dumps(snapshot)

        conn = self._connect()
        try:
            with conn:
                cur = conn.execute(
                    """
                    UPDATE attempts
                    SET snapshot_json = ?, version = ?, updated_at = ?
                    WHERE attempt_id = ? AND version = ?
                    """,
                    (payload, new_version, time.time(), attempt.attempt_id, expected_version),
                )
                updated = cur.rowcount
                exists = updated or conn.execute(
                    "SELECT 1 FROM attempts WHERE attempt_id = ?",
                    (attempt.attempt_id,),
                ).fetchone()
        finally:
            conn.close()

        if not exists:
            raise AttemptNotFoundError(attempt.attempt_id)
        if not updated:
            logger.warning(
                "Stale attempt write rejected",
                attempt_id=attempt.attempt_id,
                expected_version=expected_version,
            )
            raise StaleAttemptError(attempt.attempt_id, expected_version)

        attempt.version = new_version
        return attempt

    def list_ids(self, user_id: Optional[str] = None) -> List[str]:
        conn = self._connect()
        try:
            if user_id is not None:
                rows = conn.execute(
                    "SELECT attempt_id FROM attempts WHERE user_id = ? ORDER BY created_at",
                    (user_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT attempt_id FROM attempts ORDER BY created_at"
                ).fetchall()
        finally:
            conn.close()
        return [row[0] for row in rows]


class InMemoryAttemptStore(AttemptStore):
    """Process-local store; snapshots are deep-copied so callers never share state."""

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshots: Dict[str, dict] = {}

    def create(self, attempt: Attempt) -> Attempt:
        attempt.version = 1
        with self._lock:
            self._snapshots[attempt.attempt_id] = copy.deepcopy(attempt.to_snapshot())
        return attempt

    def get(self, attempt_id: str) -> Attempt:
        with self._lock:
            snapshot = self._snapshots.get(attempt_id)
            if snapshot is None:
                raise AttemptNotFoundError(attempt_id)
            return Attempt.from_snapshot(copy.deepcopy(snapshot))

    def save(self, attempt: Attempt, expected_version: int) -> Attempt:
        with self._lock:
            current = self._snapshots.get(attempt.attempt_id)
            if current is None:
                raise AttemptNotFoundError(attempt.attempt_id)
            if current.get("version") != expected_version:
                raise StaleAttemptError(attempt.attempt_id, expected_version)
            attempt.version = expected_version + 1
            self._snapshots[attempt.attempt_id] = copy.deepcopy(attempt.to_snapshot())
        return attempt

    def list_ids(self, user_id: Optional[str] = None) -> List[str]:
        with self._lock:
            return [
                attempt_id
                for attempt_id, snapshot in self._snapshots.items()
                if user_id is None or snapshot.get("user_id") == user_id
            ]


def create_attempt_store(backend: Optional[str] = None) -> AttemptStore:
    """Store for the configured backend (sqlite | memory)."""
    backend = backend or settings.storage.backend
    if backend == "memory":
        return InMemoryAttemptStore()
    if backend == "sqlite":
        return SQLiteAttemptStore(os.getenv("DB_PATH") or settings.storage.db_path)
    raise ValueError(f"Unknown storage backend: {backend}")
