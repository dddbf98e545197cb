"""Tests for message formatting and batch rendering."""

from __future__ import annotations

from courier.format import (
    format_batch_for_delivery,
    format_reaction_message,
    format_text_message,
    format_timestamp,
    sender_display_name,
    to_formatted_message,
)
from courier.mailbox import FormattedMessage
from courier.transport.envelope import ReactionMessage, SignalQuote, TextMessage

ALICE = "+15550000001"
BOB = "+15550000002"
TS = 1705314645123  # 2024-01-15T10:30:45.123Z


def _text(**overrides: object) -> TextMessage:
    fields: dict[str, object] = {
        "chat_id": ALICE,
        "chat_type": "dm",
        "source": ALICE,
        "source_name": "Alice",
        "timestamp": TS,
        "text": "Hello",
    }
    fields.update(overrides)
    return TextMessage(**fields)  # type: ignore[arg-type]


def _reaction(**overrides: object) -> ReactionMessage:
    fields: dict[str, object] = {
        "chat_id": ALICE,
        "chat_type": "dm",
        "source": ALICE,
        "source_name": "Alice",
        "timestamp": TS,
        "emoji": "👍",
        "target_author": BOB,
        "target_timestamp": 1705314600000,
    }
    fields.update(overrides)
    return ReactionMessage(**fields)  # type: ignore[arg-type]


class TestFormatTimestamp:
    def test_iso_with_millis(self) -> None:
        assert format_timestamp(TS) == "2024-01-15T10:30:45.123Z"

    def test_epoch(self) -> None:
        assert format_timestamp(0) == "1970-01-01T00:00:00.000Z"


class TestSenderDisplayName:
    def test_uses_name(self) -> None:
        assert sender_display_name(ALICE, "Alice") == "Alice"

    def test_falls_back_to_phone_for_missing_name(self) -> None:
        assert sender_display_name(ALICE, None) == ALICE

    def test_falls_back_to_phone_for_empty_name(self) -> None:
        assert sender_display_name(ALICE, "") == ALICE


class TestFormatTextMessage:
    def test_plain(self) -> None:
        assert (
            format_text_message(_text())
            == f"[2024-01-15T10:30:45.123Z] Alice ({ALICE}): Hello"
        )

    def test_reply_with_preview(self) -> None:
        quote = SignalQuote(target_timestamp=1705314600000, target_author=BOB, text="lunch?")
        line = format_text_message(_text(text="yes", quote=quote), quote_author_name="Bob")
        assert line == (
            f"[2024-01-15T10:30:45.123Z] Alice ({ALICE}) "
            '(replying to msg@1705314600000 from Bob: "lunch?"): yes'
        )

    def test_reply_without_text_or_name(self) -> None:
        quote = SignalQuote(target_timestamp=7, target_author=BOB)
        line = format_text_message(_text(text="ok", quote=quote))
        assert f"(replying to msg@7 from {BOB})" in line
        assert line.endswith(": ok")


class TestFormatReactionMessage:
    def test_without_preview(self) -> None:
        assert format_reaction_message(_reaction()) == (
            f"[2024-01-15T10:30:45.123Z] Alice ({ALICE}) reacted 👍 "
            f"to msg@1705314600000 from {BOB}"
        )

    def test_with_name_and_preview(self) -> None:
        line = format_reaction_message(_reaction(), "Bob", "see you")
        assert line.endswith('from Bob: "see you"')


class TestToFormattedMessage:
    def test_text(self) -> None:
        fm = to_formatted_message(_text())
        assert fm == FormattedMessage(
            timestamp="2024-01-15T10:30:45.123Z",
            sender_name="Alice",
            sender_phone=ALICE,
            text="Hello",
        )

    def test_reaction(self) -> None:
        fm = to_formatted_message(_reaction())
        assert fm.text == f"reacted 👍 to msg@1705314600000 from {BOB}"

    def test_reply_text_prefixed_with_quote(self) -> None:
        quote = SignalQuote(target_timestamp=9, target_author=BOB, text="q")
        fm = to_formatted_message(_text(text="a", quote=quote), author_name="Bob")
        assert fm.text == '(replying to msg@9 from Bob: "q") a'

    def test_unnamed_sender(self) -> None:
        fm = to_formatted_message(_text(source_name=None))
        assert fm.sender_name == ALICE


class TestFormatBatchForDelivery:
    def test_empty_batch(self) -> None:
        assert format_batch_for_delivery([]) == ""

    def test_two_messages(self) -> None:
        batch = format_batch_for_delivery(
            [
                FormattedMessage("2024-01-15T10:30:45.123Z", "Alice", ALICE, "Hi"),
                FormattedMessage("2024-01-15T10:31:00.000Z", "Bob", BOB, "Hey"),
            ]
        )
        assert batch == (
            "New messages:\n\n"
            f"[2024-01-15T10:30:45.123Z] Alice ({ALICE}): Hi\n"
            f"[2024-01-15T10:31:00.000Z] Bob ({BOB}): Hey"
        )

    def test_attachment_and_inline_image_lines(self) -> None:
        batch = format_batch_for_delivery(
            [
                FormattedMessage(
                    "t",
                    "Alice",
                    ALICE,
                    "look",
                    attachment_path="/w/downloads/1_cat.jpg",
                    inline_image=b"\xff\xd8",
                    inline_image_type="image/jpeg",
                )
            ]
        )
        lines = batch.splitlines()
        assert lines[0] == "New messages:"
        assert lines[2] == f"[t] Alice ({ALICE}): look"
        assert lines[3] == "  📎 Attachment: /w/downloads/1_cat.jpg"
        assert lines[4] == "  🖼️ [Image included for visual analysis]"
