"""Decode raw signal-cli envelopes into normalized messages."""

from __future__ import annotations

from courier.transport.envelope import (
    ParsedMessage,
    ReactionMessage,
    SignalEnvelope,
    TextMessage,
)


def parse_envelope(envelope: SignalEnvelope) -> ParsedMessage | None:
    """Parse a signal-cli envelope into a routable message.

    Returns ``None`` for everything that should not reach an agent:
    receipts, typing indicators, envelopes without a data message, and
    data messages carrying neither text, attachments, nor a reaction.
    """
    if envelope.receipt_message is not None:
        return None
    if envelope.typing_message is not None:
        return None

    data = envelope.data_message
    if data is None:
        return None

    group_id = data.group_info.group_id if data.group_info else ""
    is_group = bool(group_id)

    base = {
        "chat_id": group_id if is_group else envelope.source,
        "chat_type": "group" if is_group else "dm",
        "source": envelope.source,
        "source_name": envelope.source_name,
        "timestamp": envelope.timestamp,
        "group_id": group_id if is_group else None,
    }

    if data.reaction is not None:
        return ReactionMessage(
            **base,
            emoji=data.reaction.emoji,
            target_author=data.reaction.target_author,
            target_timestamp=data.reaction.target_timestamp,
        )

    has_text = data.message is not None
    has_attachments = bool(data.attachments)
    if not has_text and not has_attachments:
        return None

    return TextMessage(
        **base,
        text=data.message or "",
        attachments=tuple(data.attachments or ()),
        quote=data.quote,
    )
