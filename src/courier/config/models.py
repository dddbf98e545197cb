"""Pydantic v2 models for courier.yaml configuration."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from courier.constants import DEFAULT_MODEL, DEFAULT_TURN_TIMEOUT

_PHONE_RE = re.compile(r"^\+[1-9][0-9]{6,14}$")


class TransportConfig(BaseModel):
    """How the signal-cli receive loop is launched."""

    model_config = ConfigDict(extra="forbid")

    command: str = Field(
        default="signal-cli",
        description="signal-cli executable (name on PATH or absolute path)",
    )
    attachments_dir: Path = Field(
        default=Path("~/.local/share/signal-cli/attachments"),
        description="Directory where signal-cli stores received attachments",
    )

    @field_validator("attachments_dir")
    @classmethod
    def _expand_user(cls, value: Path) -> Path:
        return value.expanduser()


class StdioServerConfig(BaseModel):
    """An MCP server spoken to over stdin/stdout."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["stdio"] = "stdio"
    command: str = Field(description="Executable to launch")
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    enabled: bool = True


class SseServerConfig(BaseModel):
    """An MCP server reached over server-sent events."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["sse"] = "sse"
    url: str = Field(description="SSE endpoint URL")
    enabled: bool = True


McpServerConfig = Annotated[
    StdioServerConfig | SseServerConfig,
    Field(discriminator="type"),
]


class CourierConfig(BaseModel):
    """Top-level courier.yaml configuration."""

    model_config = ConfigDict(extra="forbid")

    agent_name: str = Field(description="Display name of the assistant")
    agent_phone_number: str = Field(
        description="The assistant's own Signal number in E.164 format",
    )
    model: str = Field(default=DEFAULT_MODEL, description="Claude model identifier")
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory for sessions.json, the journal, and downloads",
    )
    workspace: Path = Field(
        default=Path("."),
        description="Working directory handed to the agent runtime",
    )
    prompts_dir: Path | None = Field(
        default=None,
        description="Directory with common.md, dm.md and group.md (defaults to bundled)",
    )
    turn_timeout: float = Field(
        default=DEFAULT_TURN_TIMEOUT,
        gt=0,
        description="Seconds before an agent turn is abandoned",
    )
    transport: TransportConfig = Field(default_factory=TransportConfig)
    mcp_servers: dict[str, McpServerConfig] = Field(
        default_factory=dict,
        description="Extra MCP servers exposed to every conversation agent",
    )

    @field_validator("agent_phone_number")
    @classmethod
    def _validate_phone(cls, value: str) -> str:
        if not _PHONE_RE.match(value):
            msg = f"Invalid phone number '{value}': expected E.164, e.g. '+15551234567'"
            raise ValueError(msg)
        return value

    @model_validator(mode="after")
    def _validate_agent_name(self) -> CourierConfig:
        if not self.agent_name.strip():
            msg = "agent_name must not be blank"
            raise ValueError(msg)
        return self

    @property
    def sessions_file(self) -> Path:
        """Path to the persisted conversation → session mapping."""
        return self.data_dir / "sessions.json"

    @property
    def downloads_dir(self) -> Path:
        """Directory where received attachments are copied."""
        return self.workspace / "downloads"

    @property
    def journal_dir(self) -> Path:
        """Directory for per-run JSONL journals."""
        return self.data_dir / "journal"

    def enabled_mcp_servers(self) -> dict[str, StdioServerConfig | SseServerConfig]:
        """Return only the servers that are not switched off."""
        return {
            name: server for name, server in self.mcp_servers.items() if server.enabled
        }
