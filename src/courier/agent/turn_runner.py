"""ConversationAgent — one Claude agent session per Signal conversation."""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, Literal

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKClient,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
)
from pydantic import BaseModel, ConfigDict, Field

from courier.agent.prompts import PromptProvider
from courier.agent.tools import (
    TOOL_SERVER_NAME,
    build_hooks,
    courier_tool_names,
    create_tool_server,
)
from courier.constants import DEFAULT_MODEL, DEFAULT_TURN_TIMEOUT, ChatType

if TYPE_CHECKING:
    from courier.config.models import CourierConfig

logger = logging.getLogger(__name__)

#: Built-in runtime tools every conversation agent may use.
BUILTIN_TOOLS = [
    "Read",
    "Write",
    "Edit",
    "Bash",
    "Glob",
    "Grep",
    "WebSearch",
    "WebFetch",
]

#: Characters of assistant text / tool input shown in log lines.
_LOG_PREVIEW = 200


class TurnFailedError(Exception):
    """The agent runtime ended a turn with a non-success result."""

    def __init__(self, subtype: str, detail: str | None = None) -> None:
        self.subtype = subtype
        self.detail = detail
        message = f"Turn ended with result '{subtype}'"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class AgentNotInitializedError(RuntimeError):
    """A turn was requested before :meth:`ConversationAgent.initialize`."""


# ------------------------------------------------------------------ #
# Configuration
# ------------------------------------------------------------------ #


class _AgentConfigBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    chat_id: str
    agent_phone_number: str
    model: str = DEFAULT_MODEL
    existing_session_id: str | None = Field(
        default=None,
        description="Session to resume on the first turn",
    )


class DmAgentConfig(_AgentConfigBase):
    type: Literal["dm"] = "dm"
    contact_phone: str
    contact_name: str | None = None


class GroupAgentConfig(_AgentConfigBase):
    type: Literal["group"] = "group"
    group_id: str
    group_name: str | None = None


AgentConfig = Annotated[DmAgentConfig | GroupAgentConfig, Field(discriminator="type")]


@dataclass
class AgentRuntime:
    """Collaborators shared by every conversation agent."""

    prompts: PromptProvider
    workspace: Path
    mcp_servers: dict[str, dict[str, Any]] = field(default_factory=dict)
    client_factory: Callable[..., Any] = ClaudeSDKClient

    @classmethod
    def from_config(
        cls,
        config: CourierConfig,
        prompts: PromptProvider | None = None,
    ) -> AgentRuntime:
        """Build the runtime from validated config (enabled MCP servers only)."""
        servers: dict[str, dict[str, Any]] = {}
        for name, server in config.enabled_mcp_servers().items():
            if server.type == "stdio":
                servers[name] = {
                    "type": "stdio",
                    "command": server.command,
                    "args": list(server.args),
                    "env": dict(server.env),
                }
            else:
                servers[name] = {"type": "sse", "url": server.url}
        return cls(
            prompts=prompts or PromptProvider(config.prompts_dir),
            workspace=config.workspace,
            mcp_servers=servers,
        )


@dataclass(frozen=True)
class InlineImage:
    """An image passed to the model alongside the batch text."""

    data: bytes
    media_type: str


@dataclass(frozen=True)
class TurnResult:
    timed_out: bool
    response: str | None = None


@dataclass
class _Execution:
    """State of one background execution of a turn."""

    resume: str | None
    session_seen: bool = False


# ------------------------------------------------------------------ #
# Agent
# ------------------------------------------------------------------ #


class ConversationAgent:
    """Runs agent turns for a single conversation.

    Each turn opens a runtime client, resuming the conversation's session
    when one is known.  The session id is updated from every runtime event
    that carries one, so a new session started mid-way is picked up too.

    A turn that exceeds its timeout is abandoned rather than cancelled:
    the caller gets ``TurnResult(timed_out=True)`` immediately while the
    execution keeps running in the background.  Only the execution that
    :meth:`run_turn` is waiting on may change the session id or discard
    the stored session; anything an abandoned one sees later is ignored.
    """

    def __init__(
        self,
        config: AgentConfig,
        runtime: AgentRuntime,
        on_session_discarded: Callable[[str], None] | None = None,
    ) -> None:
        self.config = config
        self.chat_id = config.chat_id
        self.type: ChatType = config.type
        self._runtime = runtime
        self._on_session_discarded = on_session_discarded

        self._system_prompt: str | None = None
        self._session_id: str | None = None
        self._current: _Execution | None = None
        self._abandoned: set[asyncio.Task[str | None]] = set()

    @property
    def session_id(self) -> str | None:
        """Latest session id seen, or None before the first one."""
        return self._session_id

    @property
    def initialized(self) -> bool:
        return self._system_prompt is not None

    @property
    def system_prompt(self) -> str:
        if self._system_prompt is None:
            msg = f"Agent for {self.chat_id} not initialized. Call initialize() first."
            raise AgentNotInitializedError(msg)
        return self._system_prompt

    @property
    def abandoned_turns(self) -> int:
        """Timed-out executions still running in the background."""
        return len(self._abandoned)

    def initialize(self) -> None:
        """Build the system prompt and adopt any existing session id.

        Safe to call more than once; each call starts from the config again.
        """
        self._system_prompt = self._build_system_prompt()
        self._session_id = self.config.existing_session_id
        if self._session_id:
            logger.info("%s: will resume session %s", self.chat_id, self._session_id)

    def close(self) -> None:
        """Forget session state.  Abandoned executions are left to finish."""
        self._system_prompt = None
        self._session_id = None
        self._current = None

    # ------------------------------------------------------------------ #
    # Turns
    # ------------------------------------------------------------------ #

    async def run_turn(
        self,
        batch: str,
        timeout: float = DEFAULT_TURN_TIMEOUT,
        images: Sequence[InlineImage] = (),
    ) -> TurnResult:
        """Deliver *batch* to the agent and wait at most *timeout* seconds.

        Raises:
            AgentNotInitializedError: If :meth:`initialize` was not called.
            TurnFailedError: If the runtime reports a non-success result.
        """
        if not self.initialized:
            msg = f"Agent for {self.chat_id} not initialized. Call initialize() first."
            raise AgentNotInitializedError(msg)

        start = time.monotonic()
        execution = _Execution(resume=self._session_id)
        self._current = execution
        task = asyncio.create_task(self._execute(batch, tuple(images), execution))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._current is execution:
                self._current = None

        if task not in done:
            logger.warning(
                "%s: Turn timed out after %s", self.chat_id, _format_timeout(timeout)
            )
            self._abandon(task)
            return TurnResult(timed_out=True, response=None)

        response = task.result()
        logger.info(
            "%s: turn finished in %.1fs", self.chat_id, time.monotonic() - start
        )
        return TurnResult(timed_out=False, response=response)

    def _abandon(self, task: asyncio.Task[str | None]) -> None:
        self._abandoned.add(task)

        def _finished(t: asyncio.Task[str | None]) -> None:
            self._abandoned.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.warning(
                    "%s: abandoned turn failed after timeout: %s", self.chat_id, exc
                )
            else:
                logger.info("%s: abandoned turn completed after timeout", self.chat_id)

        task.add_done_callback(_finished)

    async def _execute(
        self, batch: str, images: tuple[InlineImage, ...], execution: _Execution
    ) -> str | None:
        resume = execution.resume
        try:
            return await self._query(batch, images, execution, resume)
        except Exception as exc:
            if resume is None or execution.session_seen:
                raise
            logger.warning(
                "%s: Failed to resume session %s, starting fresh: %s",
                self.chat_id,
                resume,
                exc,
            )

        # The stored session is only dropped once a fresh one exists.
        try:
            return await self._query(batch, images, execution, None)
        finally:
            if (
                execution.session_seen
                and execution is self._current
                and self._on_session_discarded is not None
            ):
                self._on_session_discarded(self.chat_id)

    async def _query(
        self,
        batch: str,
        images: tuple[InlineImage, ...],
        execution: _Execution,
        resume: str | None,
    ) -> str | None:
        response: str | None = None
        options = self._build_options(resume)

        async with self._runtime.client_factory(options=options) as client:
            if images:
                await client.query(_multimodal_prompt(batch, images))
            else:
                await client.query(batch)

            async for message in client.receive_response():
                self._observe(message, execution)
                if isinstance(message, ResultMessage):
                    if message.subtype != "success":
                        raise TurnFailedError(message.subtype, message.result)
                    response = message.result

        return response

    def _build_options(self, resume: str | None) -> ClaudeAgentOptions:
        mcp_servers: dict[str, Any] = {TOOL_SERVER_NAME: create_tool_server()}
        mcp_servers.update(self._runtime.mcp_servers)

        allowed_tools = [*BUILTIN_TOOLS, *courier_tool_names()]
        allowed_tools.extend(f"mcp__{name}" for name in self._runtime.mcp_servers)

        return ClaudeAgentOptions(
            model=self.config.model,
            system_prompt=self.system_prompt,
            allowed_tools=allowed_tools,
            mcp_servers=mcp_servers,
            permission_mode="bypassPermissions",
            cwd=self._runtime.workspace,
            hooks=build_hooks(),
            resume=resume,
        )

    def _build_system_prompt(self) -> str:
        config = self.config
        if isinstance(config, DmAgentConfig):
            return self._runtime.prompts.load(
                "dm",
                {
                    "AGENT_PHONE_NUMBER": config.agent_phone_number,
                    "CONTACT_NAME": config.contact_name or config.contact_phone,
                    "CONTACT_PHONE": config.contact_phone,
                },
            )
        return self._runtime.prompts.load(
            "group",
            {
                "AGENT_PHONE_NUMBER": config.agent_phone_number,
                "GROUP_NAME": config.group_name or config.group_id,
                "GROUP_ID": config.group_id,
            },
        )

    # ------------------------------------------------------------------ #
    # Event observation
    # ------------------------------------------------------------------ #

    def _observe(self, message: Any, execution: _Execution) -> None:
        """Track session ids and log what the agent is doing."""
        session_id = getattr(message, "session_id", None)
        if isinstance(message, SystemMessage) and isinstance(message.data, dict):
            session_id = message.data.get("session_id", session_id)
        if session_id:
            execution.session_seen = True
            if execution is self._current:
                if session_id != self._session_id:
                    logger.debug("%s: session id %s", self.chat_id, session_id)
                self._session_id = session_id

        if isinstance(message, AssistantMessage):
            for block in message.content:
                if isinstance(block, TextBlock):
                    logger.info("%s: %s", self.chat_id, block.text[:_LOG_PREVIEW])
                elif isinstance(block, ToolUseBlock):
                    logger.info(
                        "%s: tool %s %s",
                        self.chat_id,
                        block.name,
                        str(block.input)[:_LOG_PREVIEW],
                    )
                elif isinstance(block, ThinkingBlock):
                    logger.debug(
                        "%s: thinking %s", self.chat_id, block.thinking[:_LOG_PREVIEW]
                    )
        elif isinstance(message, UserMessage) and isinstance(message.content, list):
            for block in message.content:
                if isinstance(block, ToolResultBlock):
                    logger.debug(
                        "%s: tool result %s%s",
                        self.chat_id,
                        str(block.content)[:_LOG_PREVIEW],
                        " (error)" if block.is_error else "",
                    )


async def _multimodal_prompt(
    batch: str, images: tuple[InlineImage, ...]
) -> AsyncIterator[dict[str, Any]]:
    """Yield one user message carrying the batch text and base64 images."""
    content: list[dict[str, Any]] = [{"type": "text", "text": batch}]
    for image in images:
        content.append(
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": image.media_type,
                    "data": base64.b64encode(image.data).decode("ascii"),
                },
            }
        )
    yield {
        "type": "user",
        "message": {"role": "user", "content": content},
        "parent_tool_use_id": None,
    }


def _format_timeout(seconds: float) -> str:
    if seconds >= 60:
        return f"{seconds / 60:g} minutes"
    return f"{seconds:g} seconds"
