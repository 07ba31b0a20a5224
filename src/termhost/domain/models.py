"""Core domain models for the termhost system.

These models represent the data structures crossing the server's
boundaries: durable session metadata, session listings returned by the
REST API, the process launch configuration, and the messages exchanged
with browser clients over the terminal WebSocket.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Session Models
# ---------------------------------------------------------------------------


class SessionMeta(CamelModel):
    """Durable record of a session, independent of its process.

    This is the only session state that survives a server restart.
    """

    id: str = Field(description="Unique session identifier")
    name: str = Field(description="Human-readable session name")
    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)


class SessionInfo(CamelModel):
    """Point-in-time view of a session as reported by the API."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    created_at: datetime
    last_activity: datetime
    alive: bool = Field(description="Whether a process is currently running")
    client_count: int = Field(ge=0, description="Number of attached connections")


class CreateSessionRequest(BaseModel):
    name: str | None = Field(default=None, description="Optional session name")


class SessionCreated(BaseModel):
    id: str
    name: str


# ---------------------------------------------------------------------------
# Launch Configuration
# ---------------------------------------------------------------------------


class LaunchConfig(CamelModel):
    """Credentials and flags used to launch the session program.

    Read from the add-on's server config file every time a session is
    created, so edits take effect for the next session without a restart.
    """

    anthropic_api_key: str = Field(default="")
    model: str = Field(default="sonnet")
    permission_mode: str = Field(default="default")
    auto_backup: bool = Field(default=True)


# ---------------------------------------------------------------------------
# Terminal WebSocket Messages (discriminated unions)
# ---------------------------------------------------------------------------


class InputMessage(BaseModel):
    """Keystrokes typed in the browser terminal."""

    type: Literal["input"] = "input"
    data: str


class ResizeMessage(BaseModel):
    """Browser terminal geometry change."""

    type: Literal["resize"] = "resize"
    cols: int = Field(gt=0)
    rows: int = Field(gt=0)


ClientMessage = Annotated[
    Union[InputMessage, ResizeMessage],
    Field(discriminator="type"),
]


class SessionMessage(BaseModel):
    """Sent once when a connection attaches, before any output."""

    type: Literal["session"] = "session"
    id: str
    name: str
    alive: bool


class OutputMessage(BaseModel):
    type: Literal["output"] = "output"
    data: str


class ExitMessage(CamelModel):
    """Sent once when the session process terminates on its own."""

    type: Literal["exit"] = "exit"
    exit_code: int


class DestroyedMessage(BaseModel):
    """Sent once when the session is destroyed through the API."""

    type: Literal["destroyed"] = "destroyed"


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    message: str


ServerMessage = Union[
    SessionMessage, OutputMessage, ExitMessage, DestroyedMessage, ErrorMessage
]
