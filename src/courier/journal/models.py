"""Pydantic v2 models for journal events."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag


class _EventBase(BaseModel):
    """Common envelope fields shared by every journal event."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    ts: str = Field(default="", description="ISO 8601 timestamp with milliseconds")
    seq: int = Field(default=0, ge=0, description="Monotonic sequence number")


class RunStartEvent(_EventBase):
    """Emitted once when ``courier up`` starts."""

    type: Literal["run_start"] = "run_start"
    run_id: str = Field(description="Unique run identifier")
    agent_phone_number: str = Field(description="The assistant's own number")
    model: str = Field(description="Claude model identifier")


class RunEndEvent(_EventBase):
    """Emitted once when the run ends."""

    type: Literal["run_end"] = "run_end"
    reason: Literal["shutdown", "ctrl_c", "error"] = Field(
        description="Why the run ended",
    )
    duration_ms: int = Field(description="Total run duration in milliseconds")
    turns: int = Field(description="Number of agent turns started")


class MessageReceivedEvent(_EventBase):
    """A routable message was queued for a conversation."""

    type: Literal["message_received"] = "message_received"
    chat_id: str
    chat_type: Literal["dm", "group"]
    kind: Literal["text", "reaction"]
    source: str = Field(description="Sender phone / id")


class TurnStartEvent(_EventBase):
    """An agent turn began for a conversation."""

    type: Literal["turn_start"] = "turn_start"
    chat_id: str
    messages: int = Field(ge=0, description="Messages in the delivered batch")
    resumed: bool = Field(description="Whether a prior session id was supplied")


class TurnEndEvent(_EventBase):
    """An agent turn finished (successfully or not)."""

    type: Literal["turn_end"] = "turn_end"
    chat_id: str
    outcome: Literal["success", "timeout", "error"]
    duration_ms: int
    session_id: str | None = None


class TransportRestartEvent(_EventBase):
    """The receive loop exited and a restart was scheduled."""

    type: Literal["transport_restart"] = "transport_restart"
    code: int | None = Field(description="Exit code, or null for a spawn failure")
    delay: float = Field(description="Seconds until the restart")


class ErrorEvent(_EventBase):
    """An error contained somewhere in the runtime."""

    type: Literal["error"] = "error"
    chat_id: str | None = Field(
        default=None,
        description="Conversation that hit the error (null for process-level errors)",
    )
    error: str = Field(description="Error description")
    context: str | None = Field(
        default=None,
        description="Error context: transport, turn, persistence, ...",
    )


def _event_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


JournalEvent = Annotated[
    Annotated[RunStartEvent, Tag("run_start")]
    | Annotated[RunEndEvent, Tag("run_end")]
    | Annotated[MessageReceivedEvent, Tag("message_received")]
    | Annotated[TurnStartEvent, Tag("turn_start")]
    | Annotated[TurnEndEvent, Tag("turn_end")]
    | Annotated[TransportRestartEvent, Tag("transport_restart")]
    | Annotated[ErrorEvent, Tag("error")],
    Discriminator(_event_discriminator),
]
"""Discriminated union of all journal event types."""
