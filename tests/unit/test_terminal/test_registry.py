"""Tests for the session registry and connection multiplexing."""

from __future__ import annotations

import pytest

from termhost.config.settings import TerminalConfig
from termhost.domain.models import LaunchConfig
from termhost.terminal.process import SpawnError
from termhost.terminal.registry import SessionRegistry, UnknownSessionError

from conftest import FakeConnection, FakeSpawner


class TestCreateSession:
    def test_spawns_configured_command(self, registry: SessionRegistry, spawner: FakeSpawner) -> None:
        session = registry.create_session("s1", "build")
        assert session.id == "s1"
        assert session.name == "build"
        assert session.alive
        proc = spawner.last
        assert proc.command == "claude"
        assert proc.options.cols == 120
        assert proc.options.rows == 40
        assert proc.options.cwd == "/tmp"
        assert proc.options.env["ANTHROPIC_API_KEY"] == "sk-test"
        assert proc.options.env["HOME"] == "/root"

    def test_create_is_idempotent(self, registry: SessionRegistry, spawner: FakeSpawner) -> None:
        first = registry.create_session("s1", "A")
        second = registry.create_session("s1", "A")
        assert first is second
        assert first.process is second.process
        assert len(spawner.processes) == 1

    def test_create_existing_keeps_name(self, registry: SessionRegistry) -> None:
        registry.create_session("s1", "A")
        assert registry.create_session("s1", "B").name == "A"

    def test_default_name_counts_sessions(self, registry: SessionRegistry) -> None:
        assert registry.create_session("a").name == "Session 1"
        assert registry.create_session("b").name == "Session 2"

    def test_launch_flags_from_config(self, spawner: FakeSpawner) -> None:
        config = LaunchConfig(model="opus", permission_mode="plan")
        registry = SessionRegistry(launch_provider=lambda: config, spawner=spawner)
        registry.create_session("s1")
        assert spawner.last.args == ["--permission-mode", "plan", "--model", "opus"]

    def test_spawn_error_registers_nothing(
        self, registry: SessionRegistry, spawner: FakeSpawner
    ) -> None:
        spawner.error = SpawnError("no such binary", command="claude")
        with pytest.raises(SpawnError):
            registry.create_session("s1")
        assert registry.get_session("s1") is None
        assert registry.list_sessions() == []


class TestOutputBuffering:
    def test_output_is_buffered(self, registry: SessionRegistry, spawner: FakeSpawner) -> None:
        session = registry.create_session("s1")
        spawner.last.emit("a")
        spawner.last.emit("b")
        assert session.buffer.snapshot() == ["a", "b"]

    def test_buffer_bound_evicts_oldest(self, spawner: FakeSpawner, launch_config: LaunchConfig) -> None:
        registry = SessionRegistry(
            terminal=TerminalConfig(buffer_size=3),
            launch_provider=lambda: launch_config,
            spawner=spawner,
        )
        session = registry.create_session("s1")
        for chunk in ["1", "2", "3", "4"]:
            spawner.last.emit(chunk)
            assert len(session.buffer) <= 3
        assert session.buffer.snapshot() == ["2", "3", "4"]

    def test_output_updates_last_activity(self, registry: SessionRegistry, spawner: FakeSpawner) -> None:
        session = registry.create_session("s1")
        before = session.last_activity
        spawner.last.emit("x")
        assert session.last_activity >= before


class TestMultiplexing:
    def test_replay_then_live_ordering(self, registry: SessionRegistry, spawner: FakeSpawner) -> None:
        registry.create_session("s1")
        proc = spawner.last
        for chunk in ["chunk1", "chunk2", "chunk3"]:
            proc.emit(chunk)

        conn = FakeConnection()
        backlog = registry.attach_client("s1", conn)
        proc.emit("chunk4")
        proc.emit("chunk5")

        assert backlog + conn.outputs == ["chunk1", "chunk2", "chunk3", "chunk4", "chunk5"]

    def test_fan_out_to_all_connections(self, registry: SessionRegistry, spawner: FakeSpawner) -> None:
        registry.create_session("s1")
        first, second = FakeConnection(), FakeConnection()
        registry.attach_client("s1", second)
        registry.attach_client("s1", first)
        for chunk in ["x", "y", "z"]:
            spawner.last.emit(chunk)
        assert first.outputs == ["x", "y", "z"]
        assert second.outputs == ["x", "y", "z"]

    def test_closed_connection_is_skipped(self, registry: SessionRegistry, spawner: FakeSpawner) -> None:
        registry.create_session("s1")
        closed, open_ = FakeConnection(is_open=False), FakeConnection()
        registry.attach_client("s1", closed)
        registry.attach_client("s1", open_)
        spawner.last.emit("hi")
        assert closed.messages == []
        assert open_.outputs == ["hi"]
        # Detaching is the connection's own responsibility
        assert registry.get_session("s1").client_count == 2

    def test_failing_connection_does_not_affect_others(
        self, registry: SessionRegistry, spawner: FakeSpawner
    ) -> None:
        registry.create_session("s1")
        broken, healthy = FakeConnection(), FakeConnection()

        def boom(message: object) -> None:
            raise RuntimeError("socket gone")

        broken.send = boom  # type: ignore[method-assign]
        registry.attach_client("s1", broken)
        registry.attach_client("s1", healthy)
        spawner.last.emit("data")
        assert healthy.outputs == ["data"]

    def test_attach_unknown_session_raises(self, registry: SessionRegistry) -> None:
        with pytest.raises(UnknownSessionError, match="missing"):
            registry.attach_client("missing", FakeConnection())

    def test_detach_is_idempotent(self, registry: SessionRegistry, spawner: FakeSpawner) -> None:
        registry.create_session("s1")
        conn = FakeConnection()
        registry.attach_client("s1", conn)
        registry.detach_client("s1", conn)
        registry.detach_client("s1", conn)
        registry.detach_client("missing", conn)
        spawner.last.emit("after")
        assert conn.messages == []
        assert registry.get_session("s1").client_count == 0

    def test_reattach_moves_connection(self, registry: SessionRegistry, spawner: FakeSpawner) -> None:
        registry.create_session("a")
        proc_a = spawner.last
        registry.create_session("b")
        conn = FakeConnection()
        registry.attach_client("a", conn)
        registry.attach_client("b", conn)
        assert registry.get_session("a").client_count == 0
        assert registry.get_session("b").client_count == 1
        proc_a.emit("from a")
        assert conn.outputs == []


class TestInputRouting:
    def test_write_and_resize_reach_process(
        self, registry: SessionRegistry, spawner: FakeSpawner
    ) -> None:
        registry.create_session("s1")
        registry.write_to_session("s1", "ls\n")
        registry.resize_session("s1", 100, 30)
        assert spawner.last.written == ["ls\n"]
        assert spawner.last.resizes == [(100, 30)]

    def test_unknown_session_is_ignored(self, registry: SessionRegistry) -> None:
        registry.write_to_session("missing", "ls\n")
        registry.resize_session("missing", 100, 30)

    def test_dead_session_is_ignored(self, registry: SessionRegistry, spawner: FakeSpawner) -> None:
        registry.create_session("s1")
        spawner.last.exit(0)
        registry.write_to_session("s1", "ls\n")
        registry.resize_session("s1", 100, 30)
        assert spawner.last.written == []
        assert spawner.last.resizes == []


class TestExitAndDestroy:
    def test_natural_exit_keeps_dead_record(
        self, registry: SessionRegistry, spawner: FakeSpawner
    ) -> None:
        registry.create_session("s1", "build")
        conn = FakeConnection()
        registry.attach_client("s1", conn)
        spawner.last.exit(3)

        assert conn.of_type("exit") == [{"type": "exit", "exitCode": 3}]
        [info] = registry.list_sessions()
        assert info.id == "s1"
        assert info.alive is False
        assert info.client_count == 1

    def test_destroy_is_terminal(self, registry: SessionRegistry, spawner: FakeSpawner) -> None:
        registry.create_session("s1")
        proc = spawner.last
        conn = FakeConnection()
        registry.attach_client("s1", conn)

        registry.destroy_session("s1")
        assert proc.kill_count == 1
        assert conn.of_type("destroyed") == [{"type": "destroyed"}]
        assert registry.get_session("s1") is None
        assert registry.list_sessions() == []

        # The killed process reports its exit late; nobody hears about it
        proc.emit("late output")
        proc.exit(-1)
        assert conn.of_type("exit") == []
        assert conn.outputs == []

    def test_destroy_frees_the_id(self, registry: SessionRegistry, spawner: FakeSpawner) -> None:
        registry.create_session("s1")
        registry.destroy_session("s1")
        registry.create_session("s1")
        assert len(spawner.processes) == 2

    def test_destroy_dead_session_does_not_kill(
        self, registry: SessionRegistry, spawner: FakeSpawner
    ) -> None:
        registry.create_session("s1")
        spawner.last.exit(0)
        registry.destroy_session("s1")
        assert spawner.last.kill_count == 0

    def test_destroy_unknown_is_noop(self, registry: SessionRegistry) -> None:
        registry.destroy_session("missing")

    def test_shutdown_kills_live_processes(
        self, registry: SessionRegistry, spawner: FakeSpawner
    ) -> None:
        registry.create_session("a")
        registry.create_session("b")
        spawner.processes[1].exit(0)
        registry.shutdown()
        assert [p.kill_count for p in spawner.processes] == [1, 0]


class TestEndToEnd:
    def test_build_session_scenario(self, registry: SessionRegistry, spawner: FakeSpawner) -> None:
        registry.create_session("build-id", "build")
        proc = spawner.last
        conn = FakeConnection()
        registry.attach_client("build-id", conn)

        registry.write_to_session("build-id", "echo hi\n")
        assert proc.written == ["echo hi\n"]
        proc.emit("hi\n")
        proc.exit(0)

        assert conn.messages == [
            {"type": "output", "data": "hi\n"},
            {"type": "exit", "exitCode": 0},
        ]
        [info] = registry.list_sessions()
        assert info.alive is False
        assert info.client_count == 1
