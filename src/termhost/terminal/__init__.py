"""Terminal session core for termhost.

Owns the pseudo-terminal processes behind every session, keeps a
bounded backlog of their output, and fans that output out to all
attached browser connections.
"""

from termhost.terminal.buffer import OutputBuffer
from termhost.terminal.process import ProcessHandle, ProcessOptions, SpawnError
from termhost.terminal.registry import Session, SessionRegistry, UnknownSessionError

__all__ = [
    "OutputBuffer",
    "ProcessHandle",
    "ProcessOptions",
    "Session",
    "SessionRegistry",
    "SpawnError",
    "UnknownSessionError",
]
