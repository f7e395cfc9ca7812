"""Process supervisor: spawns, streams, and kills OS processes.

Each spawned process gets a ProcessHandle. Two reader tasks drain
stdout and stderr into a single event queue, so events from one
stream arrive in order; a waiter task appends the final ``close``
event once both pipes are drained and the process has exited.

Consumers iterate ``handle.events()`` instead of registering
callbacks.
"""
from __future__ import annotations

import asyncio
import codecs
import logging
import os
import shutil
import signal
import uuid
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass

from .errors import SpawnError

logger = logging.getLogger(__name__)

_READ_CHUNK = 4096


@dataclass(frozen=True)
class ProcessEvent:
    """One event from a supervised process.

    kind is "data" (stream + chunk), "error" (error) or "close"
    (exit_code). "close" is always the last event of a handle.
    """
    kind: str
    stream: str = ""
    chunk: str = ""
    exit_code: int | None = None
    error: str | None = None


class ProcessHandle:
    """A live (or finished) supervised process."""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        command: str,
        args: Sequence[str],
        cwd: str | None,
    ) -> None:
        self.handle_id = str(uuid.uuid4())[:12]
        self.process = process
        self.command = command
        self.args = list(args)
        self.cwd = cwd
        self.exit_code: int | None = None
        self._events: asyncio.Queue[ProcessEvent] = asyncio.Queue()
        self._closed = asyncio.Event()
        self._readers: list[asyncio.Task[None]] = []
        self._waiter: asyncio.Task[None] | None = None
        self._kill_task: asyncio.Task[None] | None = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def is_alive(self) -> bool:
        return self.process.returncode is None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _start(self) -> None:
        for name, stream in (
            ("stdout", self.process.stdout),
            ("stderr", self.process.stderr),
        ):
            if stream is None:
                continue
            self._readers.append(asyncio.create_task(
                self._read_stream(name, stream),
                name=f"proc-{self.handle_id}-{name}",
            ))
        self._waiter = asyncio.create_task(
            self._wait_for_exit(), name=f"proc-{self.handle_id}-wait",
        )

    async def _read_stream(
        self, name: str, stream: asyncio.StreamReader,
    ) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                chunk = await stream.read(_READ_CHUNK)
                if not chunk:
                    tail = decoder.decode(b"", final=True)
                    if tail:
                        self._events.put_nowait(
                            ProcessEvent(kind="data", stream=name, chunk=tail)
                        )
                    break
                text = decoder.decode(chunk)
                if text:
                    self._events.put_nowait(
                        ProcessEvent(kind="data", stream=name, chunk=text)
                    )
        except (OSError, ValueError) as exc:
            logger.warning(
                "Read error on %s of pid=%s: %s", name, self.pid, exc,
            )
            self._events.put_nowait(
                ProcessEvent(kind="error", stream=name, error=str(exc))
            )

    async def _wait_for_exit(self) -> None:
        await asyncio.gather(*self._readers, return_exceptions=True)
        self.exit_code = await self.process.wait()
        logger.debug(
            "Process %s (pid=%s) exited with code %s",
            self.command, self.pid, self.exit_code,
        )
        self._events.put_nowait(
            ProcessEvent(kind="close", exit_code=self.exit_code)
        )
        self._closed.set()

    async def events(self) -> AsyncIterator[ProcessEvent]:
        """Yield events in arrival order until (and including) close.

        Single consumer: iterate from exactly one task.
        """
        while True:
            event = await self._events.get()
            yield event
            if event.kind == "close":
                return

    async def wait(self) -> int:
        """Wait until the process has exited and both pipes are drained."""
        await self._closed.wait()
        return self.exit_code if self.exit_code is not None else -1

    def __repr__(self) -> str:
        return (
            f"ProcessHandle(id={self.handle_id}, pid={self.pid}, "
            f"command={self.command!r}, alive={self.is_alive})"
        )


class ProcessSupervisor:
    """Spawns and kills processes; tracks every live handle it created."""

    def __init__(self, kill_grace_seconds: float = 5.0) -> None:
        self._kill_grace_seconds = kill_grace_seconds
        self._handles: dict[str, ProcessHandle] = {}

    @property
    def live_handles(self) -> list[ProcessHandle]:
        return [h for h in self._handles.values() if h.is_alive]

    async def spawn(
        self,
        command: str,
        args: Sequence[str] = (),
        cwd: str | os.PathLike[str] | None = None,
        env: dict[str, str] | None = None,
    ) -> ProcessHandle:
        """Start a process with piped stdio in its own process group.

        Raises:
            SpawnError: If the OS cannot start the process.
        """
        full_env = {**os.environ, **env} if env else None
        cwd_str = os.fspath(cwd) if cwd is not None else None
        try:
            # Argument array, no shell
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd_str,
                env=full_env,
                start_new_session=True,
            )
        except OSError as exc:
            logger.error("Failed to spawn %s: %s", command, exc)
            raise SpawnError(command, str(exc)) from exc

        handle = ProcessHandle(process, command, args, cwd_str)
        self._handles[handle.handle_id] = handle
        handle._start()
        logger.info(
            "Spawned %s pid=%s cwd=%s", command, process.pid, cwd_str,
        )
        return handle

    async def write(self, handle: ProcessHandle, text: str) -> bool:
        """Write text to the process stdin. False if it cannot accept input."""
        stdin = handle.process.stdin
        if not handle.is_alive or stdin is None or stdin.is_closing():
            return False
        try:
            stdin.write(text.encode("utf-8"))
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            logger.warning(
                "Write to pid=%s failed: %s", handle.pid, exc,
            )
            return False
        return True

    def close_stdin(self, handle: ProcessHandle) -> None:
        stdin = handle.process.stdin
        if stdin is not None and not stdin.is_closing():
            stdin.close()

    @staticmethod
    def _signal_group(handle: ProcessHandle, sig: signal.Signals) -> bool:
        """Send a signal to the process group when available."""
        if not handle.is_alive:
            return False
        try:
            if hasattr(os, "killpg"):
                os.killpg(handle.pid, sig)
            else:
                handle.process.send_signal(sig)
            return True
        except ProcessLookupError:
            return False

    async def kill(
        self,
        handle: ProcessHandle,
        grace_seconds: float | None = None,
    ) -> None:
        """SIGTERM now, SIGKILL if still alive after the grace period.

        Idempotent: repeated calls share the first escalation.
        """
        if not handle.is_alive and handle._kill_task is None:
            return
        if handle._kill_task is None:
            grace = (
                self._kill_grace_seconds
                if grace_seconds is None else grace_seconds
            )
            sent = self._signal_group(handle, signal.SIGTERM)
            logger.info(
                "Sent SIGTERM to pid=%s (sent=%s, grace=%.1fs)",
                handle.pid, sent, grace,
            )
            handle._kill_task = asyncio.create_task(
                self._escalate(handle, grace),
                name=f"proc-{handle.handle_id}-kill",
            )
        await asyncio.shield(handle._kill_task)

    async def _escalate(self, handle: ProcessHandle, grace: float) -> None:
        try:
            await asyncio.wait_for(handle.process.wait(), timeout=grace)
            return
        except asyncio.TimeoutError:
            pass
        sent = self._signal_group(handle, signal.SIGKILL)
        logger.warning(
            "Process pid=%s still running after SIGTERM; escalated to "
            "SIGKILL (sent=%s)",
            handle.pid, sent,
        )
        if not sent and handle.is_alive:
            try:
                handle.process.kill()
            except ProcessLookupError:
                return
        await handle.process.wait()

    async def shutdown(self) -> None:
        """Kill every live process this supervisor spawned."""
        live = self.live_handles
        if live:
            logger.info("Supervisor shutdown: killing %d process(es)", len(live))
        await asyncio.gather(
            *(self.kill(h) for h in live), return_exceptions=True,
        )
        self._handles.clear()


async def discover_executable(
    candidates: Sequence[str],
    probe_args: Sequence[str] = ("--version",),
    timeout: float = 2.0,
) -> str:
    """Return the first candidate that runs ``probe_args`` and exits 0.

    Each probe is bounded by ``timeout`` seconds.

    Raises:
        SpawnError: If no candidate works.
    """
    for candidate in candidates:
        resolved = shutil.which(os.path.expanduser(candidate))
        if resolved is None:
            logger.debug("Executable candidate %s not found", candidate)
            continue
        try:
            proc = await asyncio.create_subprocess_exec(
                resolved,
                *probe_args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            logger.debug("Probe of %s failed to start: %s", resolved, exc)
            continue
        try:
            code = await asyncio.wait_for(proc.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug(
                "Probe of %s timed out after %.1fs", resolved, timeout,
            )
            proc.kill()
            await proc.wait()
            continue
        if code == 0:
            logger.info("Using coding-assistant executable: %s", resolved)
            return resolved
        logger.debug("Probe of %s exited with code %s", resolved, code)

    raise SpawnError(
        candidates[0] if candidates else "<none>",
        "coding-assistant CLI not found; tried "
        + (", ".join(candidates) or "no candidates"),
    )
