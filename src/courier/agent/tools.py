"""In-process tools and tool-use validation for conversation agents."""

from __future__ import annotations

import logging
from typing import Any

from claude_agent_sdk import HookMatcher, create_sdk_mcp_server, tool

logger = logging.getLogger(__name__)

#: Name of the in-process MCP server exposing courier's own tools.
TOOL_SERVER_NAME = "courier"

#: Reply returned to the model after it passes on a batch.
PASS_ACKNOWLEDGEMENT = "Acknowledged - no action taken."

#: Denial shown to the model when it tries to read the Signal inbox itself.
RECEIVE_DENIED_MESSAGE = (
    "signal-cli receive is managed by the system. "
    "Messages are automatically delivered to your context."
)


@tool(
    "pass",
    "Explicitly do nothing this turn. Use when observing messages but choosing not to engage.",
    {
        "type": "object",
        "properties": {
            "reason": {
                "type": "string",
                "description": "Why you are passing",
            },
        },
    },
)
async def pass_tool(args: dict[str, Any]) -> dict[str, Any]:
    reason = str(args.get("reason") or "").strip() or "No reason given"
    logger.info("[pass] %s", reason)
    return {"content": [{"type": "text", "text": PASS_ACKNOWLEDGEMENT}]}


def create_tool_server() -> Any:
    """Build the in-process MCP server carrying the ``pass`` tool."""
    return create_sdk_mcp_server(
        name=TOOL_SERVER_NAME,
        version="1.0.0",
        tools=[pass_tool],
    )


def courier_tool_names() -> list[str]:
    """Fully-qualified names of courier's own tools, for ``allowed_tools``."""
    return [f"mcp__{TOOL_SERVER_NAME}__pass"]


def validate_bash_command(command: str) -> str | None:
    """Return a denial reason for *command*, or None when it may run.

    The assistant must not start its own ``signal-cli receive``: a second
    receiver would steal messages from the transport loop.
    """
    if "signal-cli" in command and "receive" in command:
        return RECEIVE_DENIED_MESSAGE
    return None


async def bash_guard_hook(
    input_data: dict[str, Any],
    tool_use_id: str | None,
    context: Any,
) -> dict[str, Any]:
    """PreToolUse hook denying Bash commands rejected by :func:`validate_bash_command`."""
    tool_input = input_data.get("tool_input") if isinstance(input_data, dict) else None
    command = tool_input.get("command") if isinstance(tool_input, dict) else None
    if not isinstance(command, str):
        return {}

    reason = validate_bash_command(command)
    if reason is None:
        return {}

    logger.warning("Blocked Bash command: %s", command.strip()[:120])
    return {
        "hookSpecificOutput": {
            "hookEventName": "PreToolUse",
            "permissionDecision": "deny",
            "permissionDecisionReason": reason,
        }
    }


def build_hooks() -> dict[str, list[HookMatcher]]:
    """Hook table passed to the agent runtime."""
    return {"PreToolUse": [HookMatcher(matcher="Bash", hooks=[bash_guard_hook])]}
