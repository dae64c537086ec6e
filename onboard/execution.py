"""Async command execution utilities.

Two run modes share one spawn path:

- ``run_buffered`` runs a command to completion (or timeout) and returns its
  captured output.
- ``run_streaming`` publishes every output line on an :class:`OutputBus` as it
  arrives and keeps the live process registered under a correlation id so that
  :meth:`ProcessExecutor.cancel` can terminate it.
"""

import asyncio
import logging
import os
import shutil
import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

DEFAULT_TIMEOUT = 30
TIMEOUT_EXIT_CODE = 124
SPAWN_FAILURE_EXIT_CODE = 1
STREAM_LIMIT = 1024 * 1024

STDOUT = "stdout"
STDERR = "stderr"

_logging = logging.getLogger(__name__)


@dataclass
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class OutputEvent:
    data: str
    stream: str
    correlation_id: str


OutputCallback = Callable[[OutputEvent], None]


class OutputBus:
    """Routes streamed output to whoever is subscribed to a correlation id.

    Subscribing with ``None`` receives events for every id.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str | None, list[OutputCallback]] = {}

    def subscribe(
        self, correlation_id: str | None, callback: OutputCallback
    ) -> Callable[[], None]:
        self._subscribers.setdefault(correlation_id, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(correlation_id, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def publish(self, event: OutputEvent) -> None:
        callbacks = [
            *self._subscribers.get(event.correlation_id, []),
            *self._subscribers.get(None, []),
        ]
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                _logging.exception(
                    f"Output subscriber failed for {event.correlation_id}"
                )


@dataclass
class _LiveProcess:
    process: asyncio.subprocess.Process
    cancelled: bool = False
    done: asyncio.Event = field(default_factory=asyncio.Event)


def get_shell_env() -> dict[str, str]:
    """Return the environment with common tool locations prepended to PATH.

    GUI launches and login shells disagree about PATH; Homebrew and user-local
    bin directories are added so check commands see freshly installed tools.
    """
    home = Path.home()
    extra_paths = [
        "/opt/homebrew/bin",
        "/usr/local/bin",
        "/usr/bin",
        "/bin",
        "/usr/sbin",
        "/sbin",
        f"{home}/.local/bin",
        f"{home}/.cargo/bin",
    ]
    env = dict(os.environ)
    env["PATH"] = ":".join(extra_paths) + ":" + os.environ.get("PATH", "")
    return env


def _shell_executable() -> str:
    return shutil.which("bash") or "/bin/sh"


def _signal_process(process: asyncio.subprocess.Process, sig: int) -> None:
    """Signal the process group the command runs in, falling back to the process."""
    if process.returncode is not None:
        return
    try:
        os.killpg(process.pid, sig)
    except (ProcessLookupError, PermissionError, OSError):
        try:
            process.send_signal(sig)
        except ProcessLookupError:
            pass


def _close_transport(process: asyncio.subprocess.Process | None) -> None:
    if process:
        transport = getattr(process, "_transport", None)
        if transport:
            transport.close()


class ProcessExecutor:
    """Runs shell commands and tracks streaming ones by correlation id.

    At most one live process is tracked per correlation id. Starting a new
    streaming run under an id that is still running cancels and awaits the
    previous process first.
    """

    def __init__(
        self, bus: OutputBus | None = None, env: dict[str, str] | None = None
    ) -> None:
        self.bus = bus or OutputBus()
        self._env = env
        self._live: dict[str, _LiveProcess] = {}

    def is_running(self, correlation_id: str) -> bool:
        return correlation_id in self._live

    @property
    def running_ids(self) -> list[str]:
        return list(self._live)

    async def _spawn(self, command: str) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            executable=_shell_executable(),
            env=self._env if self._env is not None else get_shell_env(),
            start_new_session=True,
            limit=STREAM_LIMIT,
        )

    async def run_buffered(
        self, command: str, timeout: float = DEFAULT_TIMEOUT
    ) -> CommandResult:
        """Run a command to completion and return its buffered output."""
        process = None
        try:
            _logging.debug(f"Running command: {command}")
            process = await self._spawn(command)
            try:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(), timeout=timeout
                )
            except asyncio.TimeoutError:
                _signal_process(process, signal.SIGKILL)
                _ = await process.wait()
                _logging.error(f"Command timed out after {timeout} seconds: {command}")
                return CommandResult(
                    stdout="",
                    stderr=f"Command timed out after {timeout} seconds",
                    exit_code=TIMEOUT_EXIT_CODE,
                )
            returncode = process.returncode if process.returncode is not None else 1
            return CommandResult(
                stdout=stdout.decode(errors="replace").strip(),
                stderr=stderr.decode(errors="replace").strip(),
                exit_code=returncode,
            )
        except Exception as e:
            _logging.error(
                f"Command execution failed: {type(e).__name__}: {e} | Command: {command}"
            )
            return CommandResult(
                stdout="", stderr=f"Error: {e}", exit_code=SPAWN_FAILURE_EXIT_CODE
            )
        finally:
            _close_transport(process)

    async def run_streaming(self, command: str, correlation_id: str) -> CommandResult:
        """Run a command, publishing each output line under ``correlation_id``."""
        await self._release(correlation_id)

        _logging.debug(f"Streaming command [{correlation_id}]: {command}")
        try:
            process = await self._spawn(command)
        except Exception as e:
            _logging.error(
                f"Command execution failed: {type(e).__name__}: {e} | Command: {command}"
            )
            return CommandResult(
                stdout="", stderr=str(e), exit_code=SPAWN_FAILURE_EXIT_CODE
            )

        live = _LiveProcess(process)
        self._live[correlation_id] = live
        try:
            stdout, stderr = await asyncio.gather(
                self._pump(process.stdout, STDOUT, correlation_id),
                self._pump(process.stderr, STDERR, correlation_id),
            )
            returncode = await process.wait()
        except asyncio.CancelledError:
            live.cancelled = True
            _signal_process(process, signal.SIGTERM)
            raise
        except Exception as e:
            _logging.error(
                f"Reading output of [{correlation_id}] failed: {type(e).__name__}: {e}"
            )
            _signal_process(process, signal.SIGTERM)
            raise
        finally:
            if self._live.get(correlation_id) is live:
                del self._live[correlation_id]
            live.done.set()
            _close_transport(process)

        if live.cancelled:
            _logging.info(f"Process [{correlation_id}] cancelled (exit {returncode})")
        return CommandResult(
            stdout=stdout.strip(),
            stderr=stderr.strip(),
            exit_code=returncode,
            cancelled=live.cancelled,
        )

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        stream_name: str,
        correlation_id: str,
    ) -> str:
        if stream is None:
            return ""
        chunks = []
        while True:
            line = await stream.readline()
            if not line:
                break
            text = line.decode(errors="replace")
            chunks.append(text)
            self.bus.publish(OutputEvent(text, stream_name, correlation_id))
        return "".join(chunks)

    async def _release(self, correlation_id: str) -> None:
        live = self._live.get(correlation_id)
        if live is None:
            return
        _logging.warning(
            f"Process [{correlation_id}] still running; cancelling before restart"
        )
        self.cancel(correlation_id)
        await live.done.wait()

    def cancel(self, correlation_id: str) -> bool:
        """Request termination of the process registered under ``correlation_id``.

        Returns whether a live process was found. The run that owns it reports
        ``cancelled=True`` once the process exits.
        """
        live = self._live.get(correlation_id)
        if live is None:
            return False
        live.cancelled = True
        _signal_process(live.process, signal.SIGTERM)
        return True

    def cancel_all(self) -> int:
        return sum(1 for cid in list(self._live) if self.cancel(cid))


__all__ = [
    "DEFAULT_TIMEOUT",
    "TIMEOUT_EXIT_CODE",
    "STDOUT",
    "STDERR",
    "CommandResult",
    "OutputEvent",
    "OutputBus",
    "ProcessExecutor",
    "get_shell_env",
]
