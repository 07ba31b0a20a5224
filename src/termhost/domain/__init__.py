"""Domain models for termhost.

This package contains the data structures and message types used
throughout the system. All models use Pydantic v2 for validation and
serialization.
"""

from termhost.domain.models import (
    ClientMessage,
    CreateSessionRequest,
    DestroyedMessage,
    ErrorMessage,
    ExitMessage,
    InputMessage,
    LaunchConfig,
    OutputMessage,
    ResizeMessage,
    ServerMessage,
    SessionCreated,
    SessionInfo,
    SessionMessage,
    SessionMeta,
)

__all__ = [
    "ClientMessage",
    "CreateSessionRequest",
    "DestroyedMessage",
    "ErrorMessage",
    "ExitMessage",
    "InputMessage",
    "LaunchConfig",
    "OutputMessage",
    "ResizeMessage",
    "ServerMessage",
    "SessionCreated",
    "SessionInfo",
    "SessionMessage",
    "SessionMeta",
]
