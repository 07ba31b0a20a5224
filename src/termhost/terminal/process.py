"""Pseudo-terminal process handle.

Runs one interactive program on a pty and reports its output and exit
through callbacks invoked on the asyncio event loop.
"""

from __future__ import annotations

import asyncio
import codecs
import fcntl
import logging
import os
import pty
import select
import signal
import struct
import subprocess
import termios
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096

DataCallback = Callable[[str], None]
ExitCallback = Callable[[int], None]


@dataclass
class ProcessOptions:
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    cols: int = 80
    rows: int = 24
    term_name: str = "xterm-256color"


def _set_winsize(fd: int, cols: int, rows: int) -> None:
    winsize = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


def _make_controlling_tty() -> None:
    # Runs in the child after setsid(); stdin is the pty slave
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class ProcessHandle:
    """Owns one spawned program attached to a pseudo-terminal.

    Output is read by a single background task, so every chunk reaches
    ``on_data`` exactly once and in the order the program wrote it.
    ``on_exit`` fires exactly once, after the last chunk, with the exit
    code. Signals terminate the whole process group.
    """

    def __init__(
        self,
        proc: subprocess.Popen,
        master_fd: int,
        on_data: DataCallback,
        on_exit: ExitCallback,
    ) -> None:
        self._proc = proc
        self._master_fd: int | None = master_fd
        self._on_data = on_data
        self._on_exit = on_exit
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._is_alive = True
        self._exit_code: int | None = None
        self._read_task: asyncio.Task[None] | None = None

    @classmethod
    def spawn(
        cls,
        command: str,
        args: list[str],
        options: ProcessOptions,
        on_data: DataCallback,
        on_exit: ExitCallback,
    ) -> ProcessHandle:
        """Launch ``command`` on a new pty and start streaming its output.

        Must be called from within a running event loop.

        Raises:
            SpawnError: If the program cannot be launched.
        """
        master_fd, slave_fd = pty.openpty()
        _set_winsize(slave_fd, options.cols, options.rows)

        env = {**options.env}
        env["TERM"] = options.term_name
        env["COLUMNS"] = str(options.cols)
        env["LINES"] = str(options.rows)

        try:
            proc = subprocess.Popen(
                [command, *args],
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=options.cwd,
                env=env,
                start_new_session=True,
                preexec_fn=_make_controlling_tty,
            )
        except (OSError, subprocess.SubprocessError) as e:
            os.close(master_fd)
            raise SpawnError(f"Failed to launch {command!r}: {e}", command=command) from e
        finally:
            os.close(slave_fd)

        handle = cls(proc, master_fd, on_data, on_exit)
        handle._read_task = asyncio.get_running_loop().create_task(handle._read_output_loop())
        logger.info(
            "Started %s (pid=%d, %dx%d)",
            " ".join([command, *args]), proc.pid, options.cols, options.rows,
        )
        return handle

    @property
    def alive(self) -> bool:
        return self._is_alive

    @property
    def pid(self) -> int:
        return self._proc.pid

    def write(self, data: str) -> None:
        """Send input to the program via the pty."""
        if not self._is_alive or self._master_fd is None:
            logger.debug("Dropping input for exited process %d", self.pid)
            return
        payload = data.encode()
        try:
            while payload:
                written = os.write(self._master_fd, payload)
                payload = payload[written:]
        except OSError as e:
            logger.warning("Failed to write to process %d: %s", self.pid, e)

    def resize(self, cols: int, rows: int) -> None:
        if not self._is_alive or self._master_fd is None:
            return
        try:
            _set_winsize(self._master_fd, cols, rows)
        except OSError as e:
            logger.warning("Failed to resize process %d: %s", self.pid, e)
            return
        logger.debug("Resized process %d to %dx%d", self.pid, cols, rows)

    def kill(self, sig: int = signal.SIGHUP) -> None:
        """Ask the process group to terminate. Does not wait for it."""
        if not self._is_alive:
            return
        try:
            os.killpg(os.getpgid(self._proc.pid), sig)
            logger.info("Sent signal %d to process %d", sig, self.pid)
        except ProcessLookupError:
            logger.debug("Process %d already gone", self.pid)

    async def wait(self) -> int | None:
        """Wait until the output task finishes and return the exit code."""
        if self._read_task is not None:
            await asyncio.shield(self._read_task)
        return self._exit_code

    async def _read_output_loop(self) -> None:
        """Background task that reads pty output until the program exits."""
        loop = asyncio.get_running_loop()
        try:
            while True:
                data = await loop.run_in_executor(None, self._read_master)
                if data is None:
                    continue
                if not data:
                    break
                text = self._decoder.decode(data)
                if text:
                    self._dispatch(text)
            tail = self._decoder.decode(b"", final=True)
            if tail:
                self._dispatch(tail)
            exit_code = await loop.run_in_executor(None, self._proc.wait)
        except asyncio.CancelledError:
            self._proc.kill()
            exit_code = self._proc.wait()
            self._finish(exit_code)
            raise
        self._finish(exit_code)

    def _read_master(self) -> bytes | None:
        """Read from the master pty fd (blocking call, run in executor).

        Returns None when nothing arrived within the poll interval and
        empty bytes once the slave side is closed.
        """
        fd = self._master_fd
        if fd is None:
            return b""
        try:
            r, _, _ = select.select([fd], [], [], 0.1)
            if r:
                return os.read(fd, READ_CHUNK_SIZE)
        except (OSError, ValueError):
            # EIO: every slave descriptor is closed, the program is gone
            return b""
        return None

    def _dispatch(self, text: str) -> None:
        try:
            self._on_data(text)
        except Exception:
            logger.exception("Error in output callback for process %d", self.pid)

    def _finish(self, exit_code: int) -> None:
        if self._exit_code is not None:
            return
        self._exit_code = exit_code
        self._is_alive = False
        if self._master_fd is not None:
            try:
                os.close(self._master_fd)
            except OSError:
                pass
            self._master_fd = None
        logger.info("Process %d exited (code=%s)", self.pid, exit_code)
        try:
            self._on_exit(exit_code)
        except Exception:
            logger.exception("Error in exit callback for process %d", self.pid)


class SpawnError(Exception):
    """Raised when a session program cannot be launched."""

    def __init__(self, message: str, command: str = "") -> None:
        super().__init__(message)
        self.command = command
