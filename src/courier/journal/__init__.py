"""Run journal — event models and JSONL recorder."""

from courier.journal.models import (
    ErrorEvent,
    JournalEvent,
    MessageReceivedEvent,
    RunEndEvent,
    RunStartEvent,
    TransportRestartEvent,
    TurnEndEvent,
    TurnStartEvent,
)
from courier.journal.recorder import EndReason, Journal

__all__ = [
    "EndReason",
    "ErrorEvent",
    "Journal",
    "JournalEvent",
    "MessageReceivedEvent",
    "RunEndEvent",
    "RunStartEvent",
    "TransportRestartEvent",
    "TurnEndEvent",
    "TurnStartEvent",
]
