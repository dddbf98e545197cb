"""courier down — ask a running courier to shut down gracefully."""

from __future__ import annotations

import contextlib
import os
import signal
import time

import click

from courier.pidfile import (
    is_process_running,
    pidfile_path,
    read_pidfile,
    remove_pidfile,
)

#: Highest PID the kernel hands out (Linux PID_MAX_LIMIT).
_PID_MAX = 4_194_304

#: Seconds the process gets to exit after SIGTERM.
_EXIT_WAIT = 10.0

_POLL_INTERVAL = 0.1


def _wait_for_exit(pid: int, timeout: float) -> bool:
    """Poll until *pid* is gone.  False if it outlives *timeout* seconds."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        time.sleep(_POLL_INTERVAL)
        if not is_process_running(pid):
            return True
    return False


@click.command()
def down() -> None:
    """Stop the courier started from this directory."""
    data = read_pidfile()
    if data is None:
        click.echo(f"No running courier found (no pidfile at {pidfile_path()})")
        raise SystemExit(1)

    pid = data.get("pid")
    if not isinstance(pid, int) or not 1 < pid <= _PID_MAX:
        click.echo("Invalid pidfile: PID missing or out of range")
        remove_pidfile()
        raise SystemExit(1)

    run_id = data.get("run_id", "unknown")
    if not is_process_running(pid):
        click.echo(f"Run {run_id} (PID {pid}) is no longer running; removing stale pidfile.")
        remove_pidfile()
        raise SystemExit(0)

    phone = data.get("phone_number", "unknown")
    click.echo(f"Shutting down run {run_id} ({phone}, PID {pid})...")
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        click.echo("Process already exited.")
        remove_pidfile()
        return
    except PermissionError:
        click.echo(f"Permission denied: cannot signal PID {pid}")
        raise SystemExit(1) from None

    if _wait_for_exit(pid, _EXIT_WAIT):
        click.echo("Courier stopped.")
    else:
        click.echo(f"Courier didn't exit within {_EXIT_WAIT:.0f}s. Sending SIGKILL...")
        with contextlib.suppress(ProcessLookupError, PermissionError):
            os.kill(pid, signal.SIGKILL)
        click.echo("Courier killed.")
    remove_pidfile()
