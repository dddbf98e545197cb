"""Tests for signal-cli envelope models and the envelope parser."""

from __future__ import annotations

from typing import Any

import pytest
from pydantic import TypeAdapter

from courier.transport.envelope import (
    ParsedMessage,
    ReactionMessage,
    SignalEnvelope,
    TextMessage,
)
from courier.transport.parser import parse_envelope

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #

ALICE = "+15550000001"
GROUP_ID = "Z3JvdXAtaWQtMTIz"


def _envelope(**overrides: Any) -> SignalEnvelope:
    raw: dict[str, Any] = {
        "source": ALICE,
        "sourceNumber": ALICE,
        "sourceName": "Alice",
        "timestamp": 1705314645123,
    }
    raw.update(overrides)
    return SignalEnvelope.model_validate(raw)


def _data(**fields: Any) -> dict[str, Any]:
    return {"timestamp": 1705314645123, **fields}


# ------------------------------------------------------------------ #
# Envelope models
# ------------------------------------------------------------------ #


class TestSignalEnvelope:
    def test_unknown_fields_ignored(self) -> None:
        env = _envelope(sourceUuid="abc", serverReceivedTimestamp=1, dataMessage=_data(message="hi", expiresInSeconds=0))
        assert env.data_message is not None
        assert env.data_message.message == "hi"

    def test_attachment_aliases(self) -> None:
        env = _envelope(
            dataMessage=_data(
                attachments=[{"contentType": "image/png", "id": "abc.png", "size": 10}]
            )
        )
        assert env.data_message is not None
        att = env.data_message.attachments[0]
        assert att.content_type == "image/png"
        assert att.id == "abc.png"
        assert att.filename is None

    def test_reaction_accepts_number_alias(self) -> None:
        env = _envelope(
            dataMessage=_data(
                reaction={
                    "emoji": "👍",
                    "targetAuthorNumber": "+15550000002",
                    "targetSentTimestamp": 1705314600000,
                }
            )
        )
        assert env.data_message is not None
        reaction = env.data_message.reaction
        assert reaction is not None
        assert reaction.target_author == "+15550000002"
        assert reaction.target_timestamp == 1705314600000


# ------------------------------------------------------------------ #
# parse_envelope
# ------------------------------------------------------------------ #


class TestParseEnvelopeFiltering:
    def test_receipt_returns_none(self) -> None:
        assert parse_envelope(_envelope(receiptMessage={"isDelivery": True})) is None

    def test_typing_returns_none(self) -> None:
        assert parse_envelope(_envelope(typingMessage={"action": "STARTED"})) is None

    def test_no_data_message_returns_none(self) -> None:
        assert parse_envelope(_envelope()) is None

    def test_empty_data_message_returns_none(self) -> None:
        assert parse_envelope(_envelope(dataMessage=_data())) is None


class TestParseText:
    def test_dm_text(self) -> None:
        parsed = parse_envelope(_envelope(dataMessage=_data(message="Hello")))
        assert isinstance(parsed, TextMessage)
        assert parsed.chat_id == ALICE
        assert parsed.chat_type == "dm"
        assert parsed.source == ALICE
        assert parsed.source_name == "Alice"
        assert parsed.timestamp == 1705314645123
        assert parsed.text == "Hello"
        assert parsed.group_id is None

    def test_group_text(self) -> None:
        parsed = parse_envelope(
            _envelope(dataMessage=_data(message="hi all", groupInfo={"groupId": GROUP_ID}))
        )
        assert isinstance(parsed, TextMessage)
        assert parsed.chat_id == GROUP_ID
        assert parsed.chat_type == "group"
        assert parsed.group_id == GROUP_ID

    def test_empty_group_id_is_dm(self) -> None:
        parsed = parse_envelope(
            _envelope(dataMessage=_data(message="hi", groupInfo={"groupId": ""}))
        )
        assert parsed is not None
        assert parsed.chat_type == "dm"
        assert parsed.chat_id == ALICE

    def test_empty_string_text_is_still_text(self) -> None:
        parsed = parse_envelope(_envelope(dataMessage=_data(message="")))
        assert isinstance(parsed, TextMessage)
        assert parsed.text == ""

    def test_attachment_only(self) -> None:
        parsed = parse_envelope(
            _envelope(
                dataMessage=_data(
                    attachments=[{"contentType": "application/pdf", "id": "doc1", "filename": "a.pdf"}]
                )
            )
        )
        assert isinstance(parsed, TextMessage)
        assert parsed.text == ""
        assert len(parsed.attachments) == 1
        assert parsed.attachments[0].filename == "a.pdf"

    def test_quote_attached(self) -> None:
        parsed = parse_envelope(
            _envelope(
                dataMessage=_data(
                    message="agreed",
                    quote={"id": 1705314600000, "author": "+15550000002", "text": "lunch?"},
                )
            )
        )
        assert isinstance(parsed, TextMessage)
        assert parsed.quote is not None
        assert parsed.quote.target_timestamp == 1705314600000
        assert parsed.quote.target_author == "+15550000002"
        assert parsed.quote.text == "lunch?"

    def test_missing_source_name(self) -> None:
        env = SignalEnvelope.model_validate(
            {"source": ALICE, "timestamp": 1, "dataMessage": _data(message="x")}
        )
        parsed = parse_envelope(env)
        assert parsed is not None
        assert parsed.source_name is None


class TestParseReaction:
    def test_reaction(self) -> None:
        parsed = parse_envelope(
            _envelope(
                dataMessage=_data(
                    reaction={
                        "emoji": "❤️",
                        "targetAuthor": "+15550000002",
                        "targetTimestamp": 1705314600000,
                    }
                )
            )
        )
        assert isinstance(parsed, ReactionMessage)
        assert parsed.emoji == "❤️"
        assert parsed.target_author == "+15550000002"
        assert parsed.target_timestamp == 1705314600000

    def test_reaction_wins_over_text(self) -> None:
        parsed = parse_envelope(
            _envelope(
                dataMessage=_data(
                    message="ignored",
                    reaction={
                        "emoji": "👍",
                        "targetAuthor": ALICE,
                        "targetTimestamp": 1,
                    },
                )
            )
        )
        assert isinstance(parsed, ReactionMessage)

    def test_group_reaction(self) -> None:
        parsed = parse_envelope(
            _envelope(
                dataMessage=_data(
                    groupInfo={"groupId": GROUP_ID},
                    reaction={"emoji": "😂", "targetAuthor": ALICE, "targetTimestamp": 5},
                )
            )
        )
        assert isinstance(parsed, ReactionMessage)
        assert parsed.chat_id == GROUP_ID
        assert parsed.chat_type == "group"


class TestParsedMessageUnion:
    def test_discriminates_on_kind(self) -> None:
        adapter: TypeAdapter[Any] = TypeAdapter(ParsedMessage)
        parsed = adapter.validate_python(
            {
                "kind": "reaction",
                "chat_id": ALICE,
                "chat_type": "dm",
                "source": ALICE,
                "timestamp": 1,
                "emoji": "👍",
                "target_author": ALICE,
                "target_timestamp": 1,
            }
        )
        assert isinstance(parsed, ReactionMessage)

    def test_parsed_messages_are_frozen(self) -> None:
        parsed = parse_envelope(_envelope(dataMessage=_data(message="x")))
        assert parsed is not None
        with pytest.raises(Exception):  # noqa: B017
            parsed.text = "changed"  # type: ignore[misc]
