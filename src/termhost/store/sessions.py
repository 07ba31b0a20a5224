"""Durable session metadata.

Keeps ``{id, name, createdAt, lastActivity}`` for every known session in
a single JSON file so sessions can be listed and reattached after a
server restart, whether or not their process is running.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from termhost.domain.models import SessionMeta, utcnow

logger = logging.getLogger(__name__)

SESSIONS_FILENAME = "sessions.json"

_records_adapter = TypeAdapter(list[SessionMeta])


class SessionStore:
    """File-backed metadata store, one instance per server process.

    Every mutation is written to disk before it returns. Writes go to a
    temporary file that atomically replaces the previous one, so a crash
    mid-write leaves the last good file in place. When a write fails the
    error is logged and the in-memory records remain authoritative for
    the rest of the process lifetime.
    """

    def __init__(self, sessions_dir: Path | str) -> None:
        self._dir = Path(sessions_dir)
        self._path = self._dir / SESSIONS_FILENAME
        self._records: list[SessionMeta] = []
        self._lock = threading.Lock()
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreInitError(f"Cannot create sessions directory {self._dir}: {e}") from e
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            self._records = _records_adapter.validate_json(self._path.read_bytes())
            logger.info("Loaded %d session record(s) from %s", len(self._records), self._path)
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", self._path, e)
            self._records = []

    def _save(self) -> None:
        payload = _records_adapter.dump_json(self._records, by_alias=True, indent=2)
        try:
            fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=".sessions-", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, self._path)
            except BaseException:
                os.unlink(tmp)
                raise
        except OSError as e:
            raise DurableStoreError(f"Failed to write {self._path}: {e}") from e

    def _flush(self) -> None:
        try:
            self._save()
        except DurableStoreError as e:
            logger.error("Session metadata not persisted: %s", e)

    def _find(self, session_id: str) -> SessionMeta | None:
        return next((r for r in self._records if r.id == session_id), None)

    def add(self, session_id: str, name: str) -> None:
        """Insert a record, or rename an existing one and bump its activity."""
        with self._lock:
            now = utcnow()
            existing = self._find(session_id)
            if existing is not None:
                existing.name = name
                existing.last_activity = now
            else:
                self._records.append(
                    SessionMeta(id=session_id, name=name, created_at=now, last_activity=now)
                )
            self._flush()

    def update_activity(self, session_id: str) -> None:
        with self._lock:
            existing = self._find(session_id)
            if existing is None:
                return
            existing.last_activity = utcnow()
            self._flush()

    def remove(self, session_id: str) -> None:
        with self._lock:
            self._records = [r for r in self._records if r.id != session_id]
            self._flush()

    def get(self, session_id: str) -> SessionMeta | None:
        with self._lock:
            record = self._find(session_id)
            return record.model_copy() if record is not None else None

    def list(self) -> list[SessionMeta]:
        """All records, in insertion order. Callers sort as they need."""
        with self._lock:
            return [r.model_copy() for r in self._records]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class DurableStoreError(Exception):
    """Raised when session metadata cannot be written to disk."""


class StoreInitError(DurableStoreError):
    """Raised when the storage location cannot be prepared at startup."""
