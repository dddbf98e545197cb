"""Pidfile management for ``courier down``."""

from __future__ import annotations

import json
import os
from pathlib import Path

#: Pidfile directory, relative to CWD so it is project-scoped.
#: ``courier up`` and ``courier down`` must be run from the same directory.
PIDFILE_DIR = Path(".courier")
PIDFILE_NAME = "courier.pid"


def pidfile_path() -> Path:
    return PIDFILE_DIR / PIDFILE_NAME


def write_pidfile(run_id: str, phone_number: str) -> Path:
    """Record the current PID with the run id and the assistant's number."""
    PIDFILE_DIR.mkdir(parents=True, exist_ok=True)
    pidfile = pidfile_path()
    data = {
        "pid": os.getpid(),
        "run_id": run_id,
        "phone_number": phone_number,
    }
    pidfile.write_text(json.dumps(data))
    return pidfile


def read_pidfile() -> dict[str, object] | None:
    """Read and return pidfile contents, or None if not found."""
    pidfile = pidfile_path()
    if not pidfile.exists():
        return None
    try:
        result = json.loads(pidfile.read_text())
    except (json.JSONDecodeError, OSError):
        return None
    return result if isinstance(result, dict) else None


def remove_pidfile() -> None:
    pidfile_path().unlink(missing_ok=True)


def is_process_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        return True  # exists, owned by someone else
