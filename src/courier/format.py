"""Render parsed messages as display lines for an agent's context."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from courier.mailbox import FormattedMessage
from courier.transport.envelope import ReactionMessage, SignalQuote, TextMessage

#: Header line that opens every batch delivered to an agent.
BATCH_HEADER = "New messages:"


def format_timestamp(timestamp_ms: int) -> str:
    """Format Unix milliseconds as ISO 8601 UTC, e.g. ``2024-01-15T10:30:45.123Z``."""
    dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def sender_display_name(source: str, source_name: str | None) -> str:
    """Display name, falling back to the phone for a missing or empty name."""
    return source_name or source


def _format_quote(quote: SignalQuote, author_name: str) -> str:
    result = f"(replying to msg@{quote.target_timestamp} from {author_name}"
    if quote.text:
        result += f': "{quote.text}"'
    return result + ")"


def format_text_message(
    message: TextMessage,
    quote_author_name: str | None = None,
) -> str:
    """Format a text message as ``[{ts}] {name} ({phone}): {text}``.

    Replies carry ``(replying to msg@{ts} from {author}: "{preview}")``
    between the sender and the text.
    """
    timestamp = format_timestamp(message.timestamp)
    name = sender_display_name(message.source, message.source_name)

    result = f"[{timestamp}] {name} ({message.source})"
    if message.quote is not None:
        author = quote_author_name or message.quote.target_author
        result += f" {_format_quote(message.quote, author)}"
    return f"{result}: {message.text}"


def format_reaction_message(
    reaction: ReactionMessage,
    target_author_name: str | None = None,
    message_preview: str | None = None,
) -> str:
    """Format a reaction as ``[{ts}] {name} ({phone}) reacted {emoji} to msg@{ts} from {author}``.

    A ``: "{preview}"`` suffix is added only when *message_preview* is given.
    """
    timestamp = format_timestamp(reaction.timestamp)
    name = sender_display_name(reaction.source, reaction.source_name)
    author = target_author_name or reaction.target_author

    result = (
        f"[{timestamp}] {name} ({reaction.source}) reacted {reaction.emoji} "
        f"to msg@{reaction.target_timestamp} from {author}"
    )
    if message_preview is not None:
        result += f': "{message_preview}"'
    return result


def to_formatted_message(
    message: TextMessage | ReactionMessage,
    author_name: str | None = None,
) -> FormattedMessage:
    """Build the queue entry for *message* (attachments are added by the caller).

    Reactions become ``reacted {emoji} to msg@{ts} from {author}``; replies
    are prefixed with their quote context.  *author_name* overrides the
    phone shown for the quoted or reacted-to author.
    """
    match message:
        case ReactionMessage():
            author = author_name or message.target_author
            text = (
                f"reacted {message.emoji} to msg@{message.target_timestamp} "
                f"from {author}"
            )
        case TextMessage():
            text = message.text
            if message.quote is not None:
                author = author_name or message.quote.target_author
                text = f"{_format_quote(message.quote, author)} {text}".rstrip()

    return FormattedMessage(
        timestamp=format_timestamp(message.timestamp),
        sender_name=sender_display_name(message.source, message.source_name),
        sender_phone=message.source,
        text=text,
    )


def format_batch_for_delivery(messages: Iterable[FormattedMessage]) -> str:
    """Render queued messages as one multi-line delivery.

    Returns an empty string for an empty batch.
    """
    lines: list[str] = []
    for msg in messages:
        lines.append(f"[{msg.timestamp}] {msg.sender_name} ({msg.sender_phone}): {msg.text}")
        if msg.attachment_path:
            lines.append(f"  📎 Attachment: {msg.attachment_path}")
        if msg.inline_image is not None:
            lines.append("  🖼️ [Image included for visual analysis]")

    if not lines:
        return ""
    return f"{BATCH_HEADER}\n\n" + "\n".join(lines)
