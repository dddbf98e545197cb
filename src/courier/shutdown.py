"""ShutdownManager — stops a running courier without losing turns."""

from __future__ import annotations

import asyncio
import logging
import time

import click

from courier.journal.recorder import EndReason, Journal
from courier.router import Router

logger = logging.getLogger(__name__)


def _format_duration(seconds: float) -> str:
    """``1m 22s`` from a minute up, ``34.2s`` below."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs:02d}s"


class ShutdownManager:
    """Stops a running courier in four steps.

    1. signal: set the shutdown event and stop the receive loop, so no
       new turn can start.
    2. drain: give in-flight turns ``drain_timeout`` seconds to finish.
    3. kill: cancel the turns that are still running.
    4. close: close every agent, write ``run_end`` and print a summary.

    Executions abandoned after a turn timeout are not waited for.
    """

    DRAIN_TIMEOUT = 10.0

    def __init__(
        self,
        router: Router,
        journal: Journal,
        shutdown_event: asyncio.Event,
        drain_timeout: float | None = None,
        started_at: float | None = None,
    ) -> None:
        self._router = router
        self._journal = journal
        self._shutdown_event = shutdown_event
        self._drain_timeout = (
            self.DRAIN_TIMEOUT if drain_timeout is None else drain_timeout
        )
        self._started_at = time.monotonic() if started_at is None else started_at

    async def execute(self, reason: EndReason) -> None:
        self._signal()
        if not await self._drain():
            await self._kill()
        self._close(reason)

    def _signal(self) -> None:
        self._shutdown_event.set()
        self._router.stop_receiving()

    async def _drain(self) -> bool:
        """Wait for in-flight turns.  False if any outlived the timeout."""
        turns = set(self._router.pending_tasks)
        if not turns:
            return True

        click.echo(f"\nWaiting for {len(turns)} in-flight turn(s)...")
        _, still_running = await asyncio.wait(turns, timeout=self._drain_timeout)
        if still_running:
            logger.warning(
                "%d turn(s) still running after %.0fs",
                len(still_running),
                self._drain_timeout,
            )
            return False
        return True

    async def _kill(self) -> None:
        running = [t for t in self._router.pending_tasks if not t.done()]
        if not running:
            return
        for task in running:
            task.cancel()
        await asyncio.wait(running)
        click.echo(f"Cancelled {len(running)} remaining turn(s).")

    def _close(self, reason: EndReason) -> None:
        conversations = self._router.conversation_count
        self._router.stop()
        self._journal.end(reason)

        elapsed = _format_duration(time.monotonic() - self._started_at)
        click.echo(
            f"\nRun ended ({reason}) | {elapsed} | "
            f"{self._journal.event_count} events | {conversations} conversation(s)"
        )
        click.echo(f"Journal: {self._journal.path}")
