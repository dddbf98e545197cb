"""signal-cli transport — envelope models, parser, and supervised receiver."""

from courier.transport.envelope import (
    ParsedMessage,
    ReactionMessage,
    SignalAttachment,
    SignalEnvelope,
    SignalQuote,
    TextMessage,
)
from courier.transport.parser import parse_envelope
from courier.transport.supervisor import (
    Backoff,
    TransportParseError,
    TransportSupervisor,
)

__all__ = [
    "Backoff",
    "ParsedMessage",
    "ReactionMessage",
    "SignalAttachment",
    "SignalEnvelope",
    "SignalQuote",
    "TextMessage",
    "TransportParseError",
    "TransportSupervisor",
    "parse_envelope",
]
