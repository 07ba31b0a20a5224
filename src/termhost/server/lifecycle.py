"""Session lifecycle operations exposed to API consumers.

Merges the live registry with the durable metadata store: the store
knows every session that ever existed, the registry knows which of them
currently have a running process.
"""

from __future__ import annotations

import logging
import secrets
import string
import time

from termhost.domain.models import SessionCreated, SessionInfo
from termhost.store.sessions import SessionStore
from termhost.terminal.registry import Session, SessionRegistry, UnknownSessionError

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_session_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"session-{int(time.time() * 1000)}-{suffix}"


class SessionLifecycle:
    """Create, list, delete and open sessions."""

    def __init__(self, registry: SessionRegistry, store: SessionStore) -> None:
        self._registry = registry
        self._store = store

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def store(self) -> SessionStore:
        return self._store

    def list(self) -> list[SessionInfo]:
        """Every known session with its current liveness.

        A record without a registered session is reported as not alive
        with no clients: it existed once but is not running now.
        """
        sessions = []
        for record in self._store.list():
            live = self._registry.get_session(record.id)
            sessions.append(
                SessionInfo(
                    id=record.id,
                    name=record.name,
                    created_at=record.created_at,
                    last_activity=record.last_activity,
                    alive=live.alive if live is not None else False,
                    client_count=live.client_count if live is not None else 0,
                )
            )
        return sessions

    def create(self, name: str | None = None) -> SessionCreated:
        """Start a new session under a freshly generated id.

        Raises:
            SpawnError: If the session program cannot be launched.
        """
        session_id = generate_session_id()
        session_name = name or f"Session {len(self._store) + 1}"
        self._registry.create_session(session_id, session_name)
        self._store.add(session_id, session_name)
        return SessionCreated(id=session_id, name=session_name)

    def delete(self, session_id: str) -> None:
        """Destroy the live session, if any, and forget its metadata."""
        self._registry.destroy_session(session_id)
        self._store.remove(session_id)
        logger.info("Deleted session %s", session_id)

    def open(self, session_id: str) -> Session:
        """Resolve the session a connection asked for.

        Sessions known only from stored metadata (for example after a
        server restart) are started again under their stored name.

        Raises:
            UnknownSessionError: If the id is neither live nor stored.
            SpawnError: If a stored session cannot be restarted.
        """
        session = self._registry.get_session(session_id)
        if session is None:
            record = self._store.get(session_id)
            if record is None:
                raise UnknownSessionError(session_id)
            logger.info("Restarting stored session %s (%s)", session_id, record.name)
            session = self._registry.create_session(session_id, record.name)
        self._store.update_activity(session_id)
        return session
