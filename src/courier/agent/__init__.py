"""Conversation agents backed by the Claude agent runtime."""

from courier.agent.prompts import PromptProvider
from courier.agent.tools import validate_bash_command
from courier.agent.turn_runner import (
    AgentConfig,
    AgentNotInitializedError,
    AgentRuntime,
    ConversationAgent,
    DmAgentConfig,
    GroupAgentConfig,
    InlineImage,
    TurnFailedError,
    TurnResult,
)

__all__ = [
    "AgentConfig",
    "AgentNotInitializedError",
    "AgentRuntime",
    "ConversationAgent",
    "DmAgentConfig",
    "GroupAgentConfig",
    "InlineImage",
    "PromptProvider",
    "TurnFailedError",
    "TurnResult",
    "validate_bash_command",
]
