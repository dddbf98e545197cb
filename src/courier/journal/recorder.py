"""Journal — append-only JSONL record of one courier run."""

from __future__ import annotations

import threading
import time
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, Literal

from courier.journal.models import JournalEvent, RunEndEvent, RunStartEvent

EndReason = Literal["shutdown", "ctrl_c", "error"]


class Journal:
    """Records runtime events to an append-only JSONL file.

    Thread-safe: all writes are serialized through a ``threading.Lock``.
    Crash-safe: the file is flushed after every event.
    """

    def __init__(
        self,
        journal_dir: Path,
        agent_phone_number: str,
        model: str,
    ) -> None:
        self._lock = threading.Lock()
        self._seq = 0
        self._turns = 0
        self._closed = False
        self._start_ns = time.monotonic_ns()
        self._run_id = uuid.uuid4().hex[:12]

        journal_dir.mkdir(parents=True, exist_ok=True)
        date_str = datetime.now(tz=UTC).strftime("%Y-%m-%d")
        self._path = journal_dir / f"{date_str}_{self._run_id}.jsonl"

        self._fh: IO[str] | None = None
        try:
            self._fh = self._path.open("a", encoding="utf-8")
            self.record(
                RunStartEvent(
                    run_id=self._run_id,
                    agent_phone_number=agent_phone_number,
                    model=model,
                )
            )
        except Exception:
            self._close_handle()
            raise

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def run_id(self) -> str:
        """Unique run identifier (12-char hex)."""
        return self._run_id

    @property
    def path(self) -> Path:
        return self._path

    @property
    def event_count(self) -> int:
        return self._seq

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(self, event: JournalEvent) -> None:
        """Stamp ``ts`` and ``seq`` on *event* and append it.

        Silently drops events after the journal has been closed.
        """
        with self._lock:
            if self._closed or self._fh is None:
                return
            event.seq = self._seq
            event.ts = _iso_now()
            self._seq += 1
            if event.type == "turn_start":
                self._turns += 1
            self._fh.write(event.model_dump_json(by_alias=True) + "\n")
            self._fh.flush()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def end(self, reason: EndReason) -> None:
        """Write a ``run_end`` event and close the file.  Idempotent."""
        if self._closed:
            return

        elapsed_ns = time.monotonic_ns() - self._start_ns
        self.record(
            RunEndEvent(
                reason=reason,
                duration_ms=int(elapsed_ns / 1_000_000),
                turns=self._turns,
            )
        )
        self.close()

    def close(self) -> None:
        """Close the file **without** writing a ``run_end`` event."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._close_handle()

    def _close_handle(self) -> None:
        if self._fh is not None and not self._fh.closed:
            self._fh.close()


def _iso_now() -> str:
    """Return the current UTC time as ISO 8601 with milliseconds."""
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
