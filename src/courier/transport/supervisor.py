"""Transport supervisor — keeps the signal-cli receive loop alive.

The receive loop is expected to run forever, so *any* exit of the
subprocess (including a clean exit with code 0) is treated as a failure
and followed by a restart after an exponential backoff delay.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import json
import logging
from collections.abc import Callable

from pydantic import ValidationError

from courier.constants import BACKOFF_INITIAL, BACKOFF_MAX, MessageCallback
from courier.transport.envelope import ParsedMessage, SignalEnvelope
from courier.transport.parser import parse_envelope

logger = logging.getLogger(__name__)

#: Bytes requested per stdout read.
_READ_CHUNK = 65_536

#: Max characters of an offending line echoed into error messages.
_PREVIEW_LEN = 200


class TransportParseError(Exception):
    """Raised (and reported, never propagated) for an undecodable stdout line."""

    def __init__(self, message: str, line: str) -> None:
        super().__init__(message)
        self.line = line


class Backoff:
    """Doubling delay with a ceiling: 1, 2, 4, ... capped at *maximum*."""

    def __init__(
        self,
        initial: float = BACKOFF_INITIAL,
        maximum: float = BACKOFF_MAX,
    ) -> None:
        self._initial = initial
        self._maximum = maximum
        self._current = initial

    @property
    def current(self) -> float:
        """The delay the next call to :meth:`next` will return."""
        return self._current

    def next(self) -> float:
        """Return the delay for this failure and advance for the next one."""
        delay = self._current
        self._current = min(self._current * 2, self._maximum)
        return delay

    def reset(self) -> None:
        self._current = self._initial


class TransportSupervisor:
    """Owns the ``signal-cli receive`` subprocess.

    Output is parsed line by line; each routable message is handed to
    *on_message* in arrival order.  Receipts, typing indicators and
    messages sent by *phone_number* itself never reach *on_message*.
    """

    def __init__(
        self,
        phone_number: str,
        on_message: MessageCallback,
        on_error: Callable[[Exception], None] | None = None,
        on_close: Callable[[int | None], None] | None = None,
        command: str = "signal-cli",
        backoff: Backoff | None = None,
    ) -> None:
        self._phone_number = phone_number
        self._on_message = on_message
        self._on_error = on_error
        self._on_close = on_close
        self._command = command
        self._backoff = backoff or Backoff()

        self._process: asyncio.subprocess.Process | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._spawn_task: asyncio.Task[None] | None = None
        self._restart_handle: asyncio.TimerHandle | None = None
        self._stopped = True
        self._restart_count = 0

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    @property
    def args(self) -> list[str]:
        """Fixed argument vector used for every spawn."""
        return [
            self._command,
            "-a",
            self._phone_number,
            "receive",
            "-t",
            "-1",
            "--json",
        ]

    @property
    def next_delay(self) -> float:
        """Seconds the supervisor will wait before the next restart."""
        return self._backoff.current

    @property
    def restart_count(self) -> int:
        """Number of restarts scheduled since :meth:`start`."""
        return self._restart_count

    @property
    def running(self) -> bool:
        return not self._stopped

    async def start(self) -> None:
        """Spawn the receive loop.  Failures are retried, never raised."""
        self._stopped = False
        await self._spawn()

    def stop(self) -> None:
        """Stop the receive loop and prevent any further restart."""
        self._stopped = True

        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None

        proc = self._process
        if proc is not None and proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
        self._process = None

    async def wait_closed(self) -> None:
        """Wait for the current output pump to finish (used at shutdown)."""
        task = self._pump_task
        if task is not None and not task.done():
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # ------------------------------------------------------------------ #
    # Process lifecycle
    # ------------------------------------------------------------------ #

    async def _spawn(self) -> None:
        if self._stopped:
            return

        try:
            proc = await asyncio.create_subprocess_exec(
                *self.args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            # A spawn failure is observed both as an error and as a close.
            logger.error("Failed to spawn %s: %s", self._command, exc)
            self._report_error(exc)
            self._handle_close(None)
            return

        if self._stopped:
            # stop() ran while the process was starting.
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            return

        self._process = proc
        logger.info("Started %s receive loop (pid %s)", self._command, proc.pid)
        self._pump_task = asyncio.create_task(self._pump(proc))

    async def _pump(self, proc: asyncio.subprocess.Process) -> None:
        """Read stdout and stderr until EOF, then report the exit."""
        try:
            await asyncio.gather(
                self._read_stdout(proc),
                self._read_stderr(proc),
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Error reading %s output: %s", self._command, exc)
            self._report_error(exc)

        code = await proc.wait()
        if proc is self._process:
            self._process = None
        self._handle_close(code)

    def _handle_close(self, code: int | None) -> None:
        """Treat any exit as a failure and schedule a restart."""
        if self._stopped:
            return

        if self._on_close is not None:
            try:
                self._on_close(code)
            except Exception:
                logger.exception("on_close callback failed")

        delay = self._backoff.next()
        self._restart_count += 1
        logger.warning(
            "%s exited with code %s; restarting in %.0fs",
            self._command,
            code,
            delay,
        )
        loop = asyncio.get_running_loop()
        self._restart_handle = loop.call_later(delay, self._restart)

    def _restart(self) -> None:
        self._restart_handle = None
        if self._stopped:
            return
        self._spawn_task = asyncio.create_task(self._spawn())

    # ------------------------------------------------------------------ #
    # Output handling
    # ------------------------------------------------------------------ #

    async def _read_stdout(self, proc: asyncio.subprocess.Process) -> None:
        if proc.stdout is None:
            return

        buffer = b""
        while True:
            chunk = await proc.stdout.read(_READ_CHUNK)
            if not chunk:
                break
            buffer += chunk

            # Only complete lines are processed; the tail waits for more data.
            while (newline := buffer.find(b"\n")) != -1:
                line = buffer[:newline]
                buffer = buffer[newline + 1 :]
                await self._handle_line(line.decode(errors="replace"))

        if buffer.strip():
            logger.debug(
                "Discarding %d bytes of incomplete output at EOF", len(buffer)
            )

    async def _read_stderr(self, proc: asyncio.subprocess.Process) -> None:
        if proc.stderr is None:
            return

        while True:
            line = await proc.stderr.readline()
            if not line:
                break
            text = line.decode(errors="replace").strip()
            if text:
                logger.warning("%s stderr: %s", self._command, text)

    async def _handle_line(self, line: str) -> None:
        """Decode one stdout line and deliver it if it is routable."""
        if not line.strip():
            return

        try:
            payload = json.loads(line)
        except json.JSONDecodeError as exc:
            self._report_error(
                TransportParseError(
                    f"Malformed JSON from {self._command}: {exc}",
                    line[:_PREVIEW_LEN],
                )
            )
            return

        if not isinstance(payload, dict) or "envelope" not in payload:
            return

        try:
            envelope = SignalEnvelope.model_validate(payload["envelope"])
        except ValidationError as exc:
            self._report_error(
                TransportParseError(
                    f"Unexpected envelope shape: {exc.error_count()} error(s)",
                    line[:_PREVIEW_LEN],
                )
            )
            return

        parsed = parse_envelope(envelope)
        if parsed is None:
            return

        # A parsed message proves the loop is healthy again.
        self._backoff.reset()

        if parsed.source == self._phone_number:
            return

        await self._deliver(parsed)

    async def _deliver(self, message: ParsedMessage) -> None:
        try:
            result = self._on_message(message)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Message handler failed for %s", message.chat_id)

    def _report_error(self, error: Exception) -> None:
        if self._on_error is None:
            logger.error("%s", error)
            return
        try:
            self._on_error(error)
        except Exception:
            logger.exception("on_error callback failed")
