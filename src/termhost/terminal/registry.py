"""Session registry -- live terminal sessions and their connections.

The registry is the single source of truth for which sessions are
backed by a running process. It also multiplexes connections: output
from a session's process is appended to the session backlog and fanned
out to every attached connection, and input from any connection is
routed to the process.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Callable, Protocol

from termhost.config.settings import TerminalConfig
from termhost.domain.models import (
    DestroyedMessage,
    ExitMessage,
    LaunchConfig,
    OutputMessage,
    ServerMessage,
    SessionInfo,
    utcnow,
)
from termhost.terminal.buffer import OutputBuffer
from termhost.terminal.launch import build_args, build_env, load_launch_config
from termhost.terminal.process import ProcessHandle, ProcessOptions

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """A live duplex transport attached to a session.

    The registry only holds a reference for fan-out; the connection's
    lifetime is managed by whoever accepted it.
    """

    @property
    def is_open(self) -> bool: ...

    def send(self, message: ServerMessage) -> None: ...


class Process(Protocol):
    @property
    def alive(self) -> bool: ...

    def write(self, data: str) -> None: ...

    def resize(self, cols: int, rows: int) -> None: ...

    def kill(self) -> None: ...


Spawner = Callable[..., Process]
LaunchProvider = Callable[[], LaunchConfig]


@dataclass(eq=False)
class Session:
    """A named long-lived process plus its backlog and attached connections."""

    id: str
    name: str
    buffer: OutputBuffer
    process: Process | None = None
    connections: set[Connection] = field(default_factory=set)
    created_at: datetime = field(default_factory=utcnow)
    last_activity: datetime = field(default_factory=utcnow)
    alive: bool = True
    exit_code: int | None = None

    @property
    def client_count(self) -> int:
        return len(self.connections)

    def info(self) -> SessionInfo:
        return SessionInfo(
            id=self.id,
            name=self.name,
            created_at=self.created_at,
            last_activity=self.last_activity,
            alive=self.alive,
            client_count=self.client_count,
        )


class SessionRegistry:
    """Owns every live session of the server process.

    Construct once at startup and pass it to the components that need
    it. All state changes (registration, backlog appends, connection set
    changes, the alive flag) happen under one registry-wide lock, so the
    registry may be driven from the event loop and from worker threads
    alike. Session counts are human-scale, so one lock is enough.
    """

    def __init__(
        self,
        terminal: TerminalConfig | None = None,
        launch_provider: LaunchProvider | None = None,
        spawner: Spawner | None = None,
        launch_config_path: Path | str | None = None,
    ) -> None:
        self._terminal = terminal or TerminalConfig()
        if launch_provider is None:
            if launch_config_path is not None:
                launch_provider = partial(load_launch_config, launch_config_path)
            else:
                launch_provider = load_launch_config
        self._launch_provider = launch_provider
        self._spawner = spawner or ProcessHandle.spawn
        self._sessions: dict[str, Session] = {}
        self._attachments: dict[int, str] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_session(self, session_id: str, name: str | None = None) -> Session:
        """Spawn a process for ``session_id`` and register it.

        Idempotent: if the id is already registered, the existing session
        is returned unchanged and no process is spawned.

        Raises:
            SpawnError: If the program cannot be launched. Nothing is
                registered in that case.
        """
        with self._lock:
            existing = self._sessions.get(session_id)
            if existing is not None:
                return existing

            launch = self._launch_provider()
            term = self._terminal
            options = ProcessOptions(
                cwd=term.cwd,
                env=build_env(launch, home=term.home, term_name=term.term_name),
                cols=term.cols,
                rows=term.rows,
                term_name=term.term_name,
            )

            session = Session(
                id=session_id,
                name=name or f"Session {len(self._sessions) + 1}",
                buffer=OutputBuffer(term.buffer_size),
            )
            session.process = self._spawner(
                term.command,
                build_args(launch),
                options,
                on_data=lambda data: self._on_output(session, data),
                on_exit=lambda code: self._on_exit(session, code),
            )
            self._sessions[session_id] = session

        logger.info("Created session %s (%s)", session_id, session.name)
        return session

    def destroy_session(self, session_id: str) -> None:
        """Kill the session's process and forget the session entirely.

        Attached connections receive a ``destroyed`` notice and are
        detached. A later exit callback from the killed process is
        ignored. Unknown ids are a no-op.
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return
            if session.alive and session.process is not None:
                session.process.kill()
            session.alive = False
            self._broadcast(session, DestroyedMessage())
            for conn in session.connections:
                self._attachments.pop(id(conn), None)
            session.connections.clear()

        logger.info("Destroyed session %s", session_id)

    def shutdown(self) -> None:
        """Kill every live process. Called when the server stops."""
        with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            if session.alive and session.process is not None:
                session.process.kill()
        logger.info("Stopped %d session(s)", len(sessions))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def list_sessions(self) -> list[SessionInfo]:
        """Snapshot of every registered session, dead ones included."""
        with self._lock:
            return [s.info() for s in self._sessions.values()]

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    # ------------------------------------------------------------------
    # Input routing (best effort)
    # ------------------------------------------------------------------

    def write_to_session(self, session_id: str, data: str) -> None:
        """Route input to the session's process.

        Input for unknown or exited sessions is dropped: keystrokes that
        race with process teardown are meaningless, not errors.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.alive or session.process is None:
                logger.debug("Ignoring input for unavailable session %s", session_id)
                return
            session.process.write(data)

    def resize_session(self, session_id: str, cols: int, rows: int) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.alive or session.process is None:
                logger.debug("Ignoring resize for unavailable session %s", session_id)
                return
            session.process.resize(cols, rows)

    # ------------------------------------------------------------------
    # Connection multiplexing
    # ------------------------------------------------------------------

    def attach_client(self, session_id: str, connection: Connection) -> list[str]:
        """Attach ``connection`` and return the backlog it must replay first.

        The connection joins the fan-out set and the backlog is copied in
        the same critical section, so every chunk produced afterwards is
        delivered live and none is both replayed and delivered.

        Raises:
            UnknownSessionError: If no session is registered under the id.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise UnknownSessionError(session_id)

            previous = self._attachments.get(id(connection))
            if previous is not None and previous != session_id:
                self.detach_client(previous, connection)

            session.connections.add(connection)
            self._attachments[id(connection)] = session_id
            backlog = session.buffer.snapshot()

        logger.debug(
            "Session %s: client attached (total=%d, backlog=%d)",
            session_id, len(session.connections), len(backlog),
        )
        return backlog

    def detach_client(self, session_id: str, connection: Connection) -> None:
        """Remove ``connection`` from the session. Safe to call repeatedly."""
        with self._lock:
            if self._attachments.get(id(connection)) == session_id:
                del self._attachments[id(connection)]
            session = self._sessions.get(session_id)
            if session is None or connection not in session.connections:
                return
            session.connections.discard(connection)
            remaining = len(session.connections)

        logger.debug("Session %s: client detached (total=%d)", session_id, remaining)

    # ------------------------------------------------------------------
    # Process callbacks
    # ------------------------------------------------------------------

    def _on_output(self, session: Session, data: str) -> None:
        with self._lock:
            if self._sessions.get(session.id) is not session:
                return
            session.last_activity = utcnow()
            session.buffer.append(data)
            self._broadcast(session, OutputMessage(data=data))

    def _on_exit(self, session: Session, exit_code: int) -> None:
        with self._lock:
            if self._sessions.get(session.id) is not session:
                # Destroyed already; its connections were told.
                logger.debug("Ignoring exit of destroyed session %s", session.id)
                return
            session.alive = False
            session.exit_code = exit_code
            self._broadcast(session, ExitMessage(exit_code=exit_code))

        logger.info("Session %s exited (code=%s)", session.id, exit_code)

    def _broadcast(self, session: Session, message: ServerMessage) -> None:
        for conn in list(session.connections):
            if not conn.is_open:
                continue
            try:
                conn.send(message)
            except Exception as e:
                # The connection's own close handler detaches it.
                logger.debug("Session %s: send failed: %s", session.id, e)


class UnknownSessionError(KeyError):
    """Raised when an operation names a session that is not registered."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session {self.session_id} not found"
