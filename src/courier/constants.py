"""Shared constants and type aliases for the Courier runtime."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Literal

#: Conversation kinds: a direct-message thread or a group.
ChatType = Literal["dm", "group"]

#: Default wall-clock budget for one agent turn (seconds).
DEFAULT_TURN_TIMEOUT = 600.0

#: Default Claude model when neither config nor env override it.
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

#: Restart delay after the first transport failure (seconds).
BACKOFF_INITIAL = 1.0

#: Upper bound on the transport restart delay (seconds).
BACKOFF_MAX = 60.0

#: Callback type for an inbound message handler; may be sync or async.
MessageCallback = Callable[..., Awaitable[None] | None]
