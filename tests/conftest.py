"""Shared test fixtures for the termhost test suite.

Provides fake process handles and connections so the registry,
lifecycle and server can be exercised without spawning real programs.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from pydantic import BaseModel

from termhost.config.settings import TerminalConfig
from termhost.domain.models import LaunchConfig
from termhost.store.sessions import SessionStore
from termhost.terminal.process import ProcessOptions
from termhost.terminal.registry import SessionRegistry


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeProcess:
    """Stands in for a ProcessHandle; the test drives output and exit."""

    def __init__(
        self,
        command: str,
        args: list[str],
        options: ProcessOptions,
        on_data: Callable[[str], None],
        on_exit: Callable[[int], None],
    ) -> None:
        self.command = command
        self.args = args
        self.options = options
        self._on_data = on_data
        self._on_exit = on_exit
        self.alive = True
        self.written: list[str] = []
        self.resizes: list[tuple[int, int]] = []
        self.kill_count = 0

    def write(self, data: str) -> None:
        self.written.append(data)

    def resize(self, cols: int, rows: int) -> None:
        self.resizes.append((cols, rows))

    def kill(self) -> None:
        # Like a real pty, termination is reported later via exit()
        self.kill_count += 1

    def emit(self, data: str) -> None:
        self._on_data(data)

    def exit(self, code: int = 0) -> None:
        self.alive = False
        self._on_exit(code)


class FakeSpawner:
    """Records every spawn and hands back FakeProcess instances."""

    def __init__(self) -> None:
        self.processes: list[FakeProcess] = []
        self.error: Exception | None = None

    def __call__(self, command, args, options, on_data, on_exit) -> FakeProcess:
        if self.error is not None:
            raise self.error
        proc = FakeProcess(command, args, options, on_data, on_exit)
        self.processes.append(proc)
        return proc

    @property
    def last(self) -> FakeProcess:
        return self.processes[-1]


class FakeConnection:
    """Collects every message the registry sends it."""

    def __init__(self, is_open: bool = True) -> None:
        self.is_open = is_open
        self.messages: list[dict] = []

    def send(self, message: BaseModel) -> None:
        self.messages.append(message.model_dump(by_alias=True))

    @property
    def outputs(self) -> list[str]:
        return [m["data"] for m in self.messages if m["type"] == "output"]

    def of_type(self, message_type: str) -> list[dict]:
        return [m for m in self.messages if m["type"] == message_type]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def launch_config() -> LaunchConfig:
    return LaunchConfig(anthropic_api_key="sk-test", model="sonnet", permission_mode="default")


@pytest.fixture
def terminal_config() -> TerminalConfig:
    return TerminalConfig(command="claude", cwd="/tmp", home="/root", cols=120, rows=40, buffer_size=5000)


@pytest.fixture
def registry(
    spawner: FakeSpawner, launch_config: LaunchConfig, terminal_config: TerminalConfig
) -> SessionRegistry:
    return SessionRegistry(
        terminal=terminal_config,
        launch_provider=lambda: launch_config,
        spawner=spawner,
    )


@pytest.fixture
def sessions_dir(tmp_path: Path) -> Path:
    return tmp_path / "sessions"


@pytest.fixture
def store(sessions_dir: Path) -> SessionStore:
    return SessionStore(sessions_dir)
