"""Router — dispatches inbound Signal messages to per-conversation agents."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Literal

from courier.agent.prompts import PromptProvider
from courier.agent.turn_runner import (
    AgentConfig,
    AgentRuntime,
    ConversationAgent,
    DmAgentConfig,
    GroupAgentConfig,
    InlineImage,
)
from courier.attachments import AttachmentResult, process_attachment
from courier.config.models import CourierConfig
from courier.format import format_batch_for_delivery, to_formatted_message
from courier.groups import GroupCache
from courier.journal.models import (
    ErrorEvent,
    MessageReceivedEvent,
    TransportRestartEvent,
    TurnEndEvent,
    TurnStartEvent,
)
from courier.journal.recorder import Journal
from courier.mailbox import FormattedMessage, Mailbox
from courier.sessions.store import SessionRecord, SessionStore
from courier.transport.envelope import ParsedMessage, TextMessage
from courier.transport.supervisor import TransportSupervisor

logger = logging.getLogger(__name__)

SupervisorFactory = Callable[..., Any]


class Router:
    """Owns one mailbox and at most one agent per conversation.

    Messages are handed over by the transport supervisor in arrival order.
    Each is formatted, queued on its conversation's mailbox, and the mailbox
    is woken.  A woken mailbox marks itself busy before the turn task is
    scheduled, so a conversation never has two turns in flight while
    separate conversations run concurrently.

    Failures are contained per conversation: an error in one turn is
    logged and the conversation accepts the next batch normally.
    """

    def __init__(
        self,
        config: CourierConfig,
        store: SessionStore,
        supervisor_factory: SupervisorFactory | None = None,
        runtime: AgentRuntime | None = None,
        group_cache: GroupCache | None = None,
        prompts: PromptProvider | None = None,
        journal: Journal | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._runtime = runtime or AgentRuntime.from_config(config, prompts)
        self._group_cache = group_cache or GroupCache(
            config.agent_phone_number, config.transport.command
        )
        self._journal = journal

        factory = supervisor_factory or TransportSupervisor
        self._supervisor = factory(
            phone_number=config.agent_phone_number,
            on_message=self.handle_message,
            on_error=self._on_transport_error,
            on_close=self._on_transport_close,
            command=config.transport.command,
        )

        self._mailboxes: dict[str, Mailbox] = {}
        self._agents: dict[str, ConversationAgent] = {}
        self._contact_names: dict[str, str] = {}
        self._pending_tasks: set[asyncio.Task[None]] = set()
        self._stopping = False

    # ------------------------------------------------------------------ #
    # Inspection
    # ------------------------------------------------------------------ #

    @property
    def pending_tasks(self) -> set[asyncio.Task[None]]:
        """Currently in-flight turn tasks."""
        return self._pending_tasks

    @property
    def supervisor(self) -> Any:
        return self._supervisor

    @property
    def conversation_count(self) -> int:
        return len(self._mailboxes)

    def get_mailbox(self, chat_id: str) -> Mailbox | None:
        return self._mailboxes.get(chat_id)

    def get_agent(self, chat_id: str) -> ConversationAgent | None:
        return self._agents.get(chat_id)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Load group names and start the transport."""
        self._stopping = False
        await self._group_cache.load()
        await self._supervisor.start()
        logger.info("Started receiver for %s", self._config.agent_phone_number)

    def stop_receiving(self) -> None:
        """Stop the transport; running turns finish but no new ones start."""
        self._stopping = True
        self._supervisor.stop()

    def stop(self) -> None:
        """Stop the transport and close every agent."""
        logger.info("Stopping...")
        self.stop_receiving()
        for agent in self._agents.values():
            agent.close()
        self._agents.clear()
        logger.info("Stopped")

    # ------------------------------------------------------------------ #
    # Inbound
    # ------------------------------------------------------------------ #

    async def handle_message(self, message: ParsedMessage) -> None:
        """Format *message*, queue it on its conversation, and wake the mailbox."""
        logger.info(
            "Message from %s in %s",
            message.source_name or message.source,
            message.chat_id,
        )

        mailbox = self._get_or_create_mailbox(message)
        if message.chat_type == "dm" and message.source_name:
            self._contact_names[message.chat_id] = message.source_name

        formatted = to_formatted_message(message)
        if isinstance(message, TextMessage) and message.attachments:
            await self._attach(message, formatted)

        mailbox.enqueue(formatted)
        self._record(
            MessageReceivedEvent(
                chat_id=message.chat_id,
                chat_type=message.chat_type,
                kind=message.kind,
                source=message.source,
            )
        )
        mailbox.wake()

    def _get_or_create_mailbox(self, message: ParsedMessage) -> Mailbox:
        mailbox = self._mailboxes.get(message.chat_id)
        if mailbox is None:
            mailbox = Mailbox(message.chat_id, message.chat_type)
            chat_id = message.chat_id
            mailbox.on_wake(lambda: self._on_wake(chat_id))
            self._mailboxes[chat_id] = mailbox
        return mailbox

    async def _attach(self, message: TextMessage, formatted: FormattedMessage) -> None:
        """Save attachments into the workspace and describe them on *formatted*.

        The first saved file becomes the message's attachment; the first
        image is also passed inline.  Everything else is listed in the text.
        """
        extra_lines: list[str] = []
        for attachment in message.attachments:
            result = await process_attachment(
                attachment,
                self._config.transport.attachments_dir / attachment.id,
                message.timestamp,
                self._config.downloads_dir,
            )
            if result.saved_path is not None and formatted.attachment_path is None:
                formatted.attachment_path = str(result.saved_path)
            else:
                extra_lines.append(result.format_line)

            if result.pass_inline and formatted.inline_image is None:
                image = await _read_image(result)
                if image is not None:
                    formatted.inline_image = image
                    formatted.inline_image_type = result.mime_type

        if extra_lines:
            formatted.text = "\n".join(filter(None, [formatted.text, *extra_lines]))

    # ------------------------------------------------------------------ #
    # Turns
    # ------------------------------------------------------------------ #

    def _on_wake(self, chat_id: str) -> None:
        if self._stopping:
            return
        mailbox = self._mailboxes[chat_id]
        # Busy before scheduling: a second wake in the same tick is a no-op.
        mailbox.set_agent_busy(True)
        task = asyncio.create_task(self._run_turn(mailbox))
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)

    async def _run_turn(self, mailbox: Mailbox) -> None:
        chat_id = mailbox.chat_id
        try:
            messages = mailbox.drain_queue()
            if not messages:
                return

            logger.info("%s: Processing %d message(s)", chat_id, len(messages))
            agent = await self._get_or_create_agent(mailbox)
            batch = format_batch_for_delivery(messages)
            logger.debug("%s: Batch:\n%s", chat_id, batch)
            images = [
                InlineImage(m.inline_image, m.inline_image_type or "image/jpeg")
                for m in messages
                if m.inline_image is not None
            ]

            self._record(
                TurnStartEvent(
                    chat_id=chat_id,
                    messages=len(messages),
                    resumed=agent.session_id is not None,
                )
            )
            start = time.monotonic()
            try:
                result = await agent.run_turn(
                    batch, timeout=self._config.turn_timeout, images=images
                )
            except Exception:
                self._record_turn_end(chat_id, "error", start, agent.session_id)
                raise

            if result.timed_out:
                self._record_turn_end(chat_id, "timeout", start, agent.session_id)
            else:
                self._record_turn_end(chat_id, "success", start, agent.session_id)

            if agent.session_id is not None:
                self._save_session(mailbox, agent.session_id)
        except Exception as exc:
            logger.exception("%s: Error during turn", chat_id)
            self._record(ErrorEvent(chat_id=chat_id, error=str(exc), context="turn"))
        finally:
            mailbox.set_agent_busy(False)
            mailbox.wake()

    async def _get_or_create_agent(self, mailbox: Mailbox) -> ConversationAgent:
        chat_id = mailbox.chat_id
        agent = self._agents.get(chat_id)
        if agent is not None:
            return agent

        existing = self._store.get_session(chat_id)
        existing_session_id = existing.session_id if existing is not None else None

        config: AgentConfig
        if mailbox.type == "dm":
            config = DmAgentConfig(
                chat_id=chat_id,
                contact_phone=chat_id,
                contact_name=self._contact_names.get(chat_id),
                agent_phone_number=self._config.agent_phone_number,
                model=self._config.model,
                existing_session_id=existing_session_id,
            )
        else:
            config = GroupAgentConfig(
                chat_id=chat_id,
                group_id=chat_id,
                group_name=await self._group_cache.get_name_with_refresh(chat_id),
                agent_phone_number=self._config.agent_phone_number,
                model=self._config.model,
                existing_session_id=existing_session_id,
            )

        agent = ConversationAgent(
            config, self._runtime, on_session_discarded=self._discard_session
        )
        agent.initialize()
        self._agents[chat_id] = agent
        logger.info("Created %s agent for %s", mailbox.type, chat_id)
        return agent

    # ------------------------------------------------------------------ #
    # Session persistence
    # ------------------------------------------------------------------ #

    def _save_session(self, mailbox: Mailbox, session_id: str) -> None:
        try:
            self._store.save_session(
                mailbox.chat_id, SessionRecord.now(mailbox.type, session_id)
            )
        except OSError as exc:
            # The in-memory mapping is already updated; the next save retries.
            logger.error("%s: Failed to persist session: %s", mailbox.chat_id, exc)
            self._record(
                ErrorEvent(chat_id=mailbox.chat_id, error=str(exc), context="persistence")
            )

    def _discard_session(self, chat_id: str) -> None:
        logger.warning("%s: Discarding stale session", chat_id)
        try:
            self._store.remove_session(chat_id)
        except OSError as exc:
            logger.error("%s: Failed to persist session removal: %s", chat_id, exc)

    # ------------------------------------------------------------------ #
    # Transport callbacks
    # ------------------------------------------------------------------ #

    def _on_transport_error(self, error: Exception) -> None:
        logger.error("Receiver error: %s", error)
        self._record(ErrorEvent(error=str(error), context="transport"))

    def _on_transport_close(self, code: int | None) -> None:
        logger.info("Receiver exited with code %s, will restart with backoff", code)
        self._record(
            TransportRestartEvent(code=code, delay=self._supervisor.next_delay)
        )

    # ------------------------------------------------------------------ #
    # Journal
    # ------------------------------------------------------------------ #

    def _record_turn_end(
        self,
        chat_id: str,
        outcome: Literal["success", "timeout", "error"],
        start: float,
        session_id: str | None,
    ) -> None:
        self._record(
            TurnEndEvent(
                chat_id=chat_id,
                outcome=outcome,
                duration_ms=int((time.monotonic() - start) * 1000),
                session_id=session_id,
            )
        )

    def _record(self, event: Any) -> None:
        if self._journal is not None:
            self._journal.record(event)


async def _read_image(result: AttachmentResult) -> bytes | None:
    path: Path | None = result.saved_path
    if path is None:
        return None
    try:
        return await asyncio.get_running_loop().run_in_executor(None, path.read_bytes)
    except OSError as exc:
        logger.warning("Could not read image %s for inline delivery: %s", path, exc)
        return None
