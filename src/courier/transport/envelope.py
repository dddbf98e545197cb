"""Pydantic v2 models for signal-cli ``--json`` output and parsed messages."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Discriminator, Field, Tag

from courier.constants import ChatType


class _SignalModel(BaseModel):
    """signal-cli adds fields between releases; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SignalAttachment(_SignalModel):
    content_type: str = Field(alias="contentType")
    filename: str | None = None
    id: str


class SignalReaction(_SignalModel):
    emoji: str
    target_author: str = Field(
        validation_alias=AliasChoices("targetAuthor", "targetAuthorNumber"),
    )
    target_timestamp: int = Field(
        validation_alias=AliasChoices("targetTimestamp", "targetSentTimestamp"),
    )


class SignalQuote(_SignalModel):
    target_timestamp: int = Field(
        validation_alias=AliasChoices("targetTimestamp", "id"),
    )
    target_author: str = Field(
        validation_alias=AliasChoices("targetAuthor", "author", "authorNumber"),
    )
    text: str | None = None


class SignalGroupInfo(_SignalModel):
    group_id: str = Field(default="", alias="groupId")
    type: str | None = None


class SignalDataMessage(_SignalModel):
    message: str | None = None
    group_info: SignalGroupInfo | None = Field(default=None, alias="groupInfo")
    attachments: list[SignalAttachment] | None = None
    reaction: SignalReaction | None = None
    quote: SignalQuote | None = None


class SignalEnvelope(_SignalModel):
    """One inbound transport record."""

    source: str
    source_number: str | None = Field(default=None, alias="sourceNumber")
    source_name: str | None = Field(default=None, alias="sourceName")
    timestamp: int
    data_message: SignalDataMessage | None = Field(default=None, alias="dataMessage")
    receipt_message: dict[str, Any] | None = Field(
        default=None, alias="receiptMessage"
    )
    typing_message: dict[str, Any] | None = Field(default=None, alias="typingMessage")


# ------------------------------------------------------------------ #
# Parsed (normalized) messages
# ------------------------------------------------------------------ #


class _ParsedBase(BaseModel):
    """Fields common to every normalized message."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    chat_id: str = Field(description="Conversation id: group id or sender phone")
    chat_type: ChatType
    source: str = Field(description="Sender phone / id")
    source_name: str | None = None
    timestamp: int = Field(description="Unix milliseconds")
    group_id: str | None = None


class TextMessage(_ParsedBase):
    """Text with optional attachments and quote."""

    kind: Literal["text"] = "text"
    text: str = ""
    attachments: tuple[SignalAttachment, ...] = ()
    quote: SignalQuote | None = None


class ReactionMessage(_ParsedBase):
    """An emoji reaction to an earlier message."""

    kind: Literal["reaction"] = "reaction"
    emoji: str
    target_author: str
    target_timestamp: int


def _kind_discriminator(v: Any) -> str:
    if isinstance(v, dict):
        return str(v.get("kind", ""))
    return str(getattr(v, "kind", ""))


ParsedMessage = Annotated[
    Annotated[TextMessage, Tag("text")]
    | Annotated[ReactionMessage, Tag("reaction")],
    Discriminator(_kind_discriminator),
]
"""Discriminated union of all routable message kinds."""
