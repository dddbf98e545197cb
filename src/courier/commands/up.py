"""courier up — start the Signal receiver and route messages to agents."""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from pathlib import Path

import click

from courier import __version__
from courier.config.models import CourierConfig
from courier.config.parser import ConfigError, load_config
from courier.journal.models import ErrorEvent
from courier.journal.recorder import EndReason, Journal
from courier.pidfile import remove_pidfile, write_pidfile
from courier.router import Router
from courier.sessions.store import SessionStore
from courier.shutdown import ShutdownManager

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class _UTCFormatter(logging.Formatter):
    """ISO 8601 UTC timestamps with milliseconds, e.g. ``2024-01-15T10:30:45.123Z``."""

    converter = time.gmtime

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: N802
        stamp = time.strftime("%Y-%m-%dT%H:%M:%S", self.converter(record.created))
        return f"{stamp}.{int(record.msecs):03d}Z"


def configure_logging(verbose: bool) -> None:
    """Send courier's log records to stderr with UTC timestamps."""
    handler = logging.StreamHandler()
    handler.setFormatter(_UTCFormatter(_LOG_FORMAT))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.INFO)


@click.command()
@click.option(
    "-f",
    "--file",
    "config_file",
    type=click.Path(exists=False),
    default=None,
    help="Path to courier.yaml (default: ./courier.yaml).",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def up(config_file: str | None, verbose: bool) -> None:
    """Start receiving Signal messages and run conversation agents."""
    try:
        config = load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    configure_logging(verbose)
    asyncio.run(_run(config))


async def _run(config: CourierConfig) -> None:
    """Wire up all components and run until a shutdown signal arrives."""
    started_at = time.monotonic()
    journal = Journal(config.journal_dir, config.agent_phone_number, config.model)
    store = SessionStore(config.sessions_file)
    router = Router(config=config, store=store, journal=journal)

    click.echo(f"\n  courier {__version__} -- {config.agent_name}")
    click.echo(f"  Number: {config.agent_phone_number} | Model: {config.model}")
    click.echo(f"  Sessions: {len(store)} | Journal: {journal.path}")
    click.echo()

    shutdown_event = asyncio.Event()
    reason: EndReason = "shutdown"

    def _signal_shutdown(sig_name: str) -> None:
        nonlocal reason
        click.echo(f"\nReceived {sig_name}, shutting down...", err=True)
        reason = "ctrl_c" if sig_name == "SIGINT" else "shutdown"
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_shutdown, sig.name)

    write_pidfile(journal.run_id, config.agent_phone_number)
    try:
        try:
            await router.start()
            logger.info("Starting %s agent...", config.agent_name)
            await shutdown_event.wait()
        except Exception as exc:
            logger.exception("Fatal error")
            journal.record(ErrorEvent(error=str(exc), context="runtime"))
            reason = "error"
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            await ShutdownManager(
                router=router,
                journal=journal,
                shutdown_event=shutdown_event,
                started_at=started_at,
            ).execute(reason)
    finally:
        remove_pidfile()
