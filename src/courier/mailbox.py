"""Mailbox — per-conversation message queue with busy/wake scheduling."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from courier.constants import ChatType

#: Callback invoked when the mailbox decides its agent should run a turn.
WakeCallback = Callable[[], None]


@dataclass
class FormattedMessage:
    """A message rendered for delivery to an agent."""

    timestamp: str
    sender_name: str
    sender_phone: str
    text: str
    attachment_path: str | None = None
    inline_image: bytes | None = None
    inline_image_type: str | None = None


class Mailbox:
    """Queue of pending messages for a single conversation.

    The busy flag plus the rule that :meth:`wake` is a no-op while busy
    or empty is what keeps at most one turn in flight per conversation.
    No lock is involved: every mutation happens on the event loop thread.

    The caller drives the protocol: mark busy, drain, run the turn,
    mark idle, then :meth:`wake` again to pick up messages that arrived
    while the turn was running.
    """

    def __init__(self, chat_id: str, chat_type: ChatType) -> None:
        self.chat_id = chat_id
        self.type: ChatType = chat_type
        self._queue: list[FormattedMessage] = []
        self._agent_busy = False
        self._wake_callback: WakeCallback | None = None

    @property
    def agent_busy(self) -> bool:
        """True while the conversation's agent is running a turn."""
        return self._agent_busy

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    def on_wake(self, callback: WakeCallback) -> None:
        """Register the single wake listener, replacing any previous one."""
        self._wake_callback = callback

    def set_agent_busy(self, busy: bool) -> None:
        self._agent_busy = busy

    def enqueue(self, message: FormattedMessage) -> None:
        self._queue.append(message)

    def wake(self) -> None:
        """Invoke the wake callback iff idle and something is queued."""
        if self._agent_busy:
            return
        if not self._queue:
            return
        if self._wake_callback is not None:
            self._wake_callback()

    def drain_queue(self) -> list[FormattedMessage]:
        """Remove and return every queued message in arrival order."""
        messages = self._queue
        self._queue = []
        return messages
