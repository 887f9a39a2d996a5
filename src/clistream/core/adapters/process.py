"""Child process lifecycle for vendor CLIs.

A :class:`CliProcess` owns one spawned executable. Its stdout and stderr are
drained by two pump tasks into a single message channel, followed by exactly
one :class:`ProcessExit`, so consumers see a serialized sequence of inbound
messages regardless of how the operating system batches pipe reads.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Union

from ..errors import CliSpawnError

LOGGER = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 64 * 1024


class ProcessState(str, Enum):
    """Lifecycle states of a :class:`CliProcess`."""

    PENDING = "pending"
    SPAWNED = "spawned"
    STREAMING = "streaming"
    CLOSING = "closing"
    CLOSED = "closed"
    ERRORED = "errored"


@dataclass(frozen=True, slots=True)
class StdoutChunk:
    data: bytes


@dataclass(frozen=True, slots=True)
class StderrChunk:
    data: bytes


@dataclass(frozen=True, slots=True)
class ProcessExit:
    returncode: int | None
    aborted: bool = False


@dataclass(frozen=True, slots=True)
class SpawnFailure:
    """The process could not be started at all."""

    message: str


ProcessMessage = Union[StdoutChunk, StderrChunk, ProcessExit, SpawnFailure]


@dataclass(frozen=True, slots=True)
class LaunchSpec:
    """Everything needed to spawn one vendor invocation."""

    argv: tuple[str, ...]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None

    def __post_init__(self) -> None:
        if not self.argv:
            msg = "argv must contain at least the executable"
            raise ValueError(msg)

    @classmethod
    def build(
        cls,
        executable: str,
        args: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> LaunchSpec:
        return cls(
            argv=(executable, *args),
            cwd=Path(cwd) if cwd is not None else None,
            env=env,
        )

    @property
    def executable(self) -> str:
        return self.argv[0]

    def resolved_cwd(self) -> Path:
        return self.cwd or Path.cwd()


class CliProcess:
    """Spawn a vendor CLI and expose its output as a message channel."""

    def __init__(
        self,
        spec: LaunchSpec,
        *,
        abort_signal: asyncio.Event | None = None,
        read_size: int = DEFAULT_READ_SIZE,
        kill_timeout: float = 5.0,
    ) -> None:
        self._spec = spec
        self._abort_signal = abort_signal
        self._read_size = read_size
        self._kill_timeout = kill_timeout
        self._queue: asyncio.Queue[ProcessMessage] = asyncio.Queue()
        self._process: asyncio.subprocess.Process | None = None
        self._pumps: list[asyncio.Task[None]] = []
        self._watchers: list[asyncio.Task[None]] = []
        self._state = ProcessState.PENDING
        self._signalled = False
        self._aborted = False
        self._exit_delivered = False
        self._released = False

    @property
    def spec(self) -> LaunchSpec:
        return self._spec

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def returncode(self) -> int | None:
        if self._process is None:
            return None
        return self._process.returncode

    @property
    def pid(self) -> int | None:
        if self._process is None:
            return None
        return self._process.pid

    async def start(self) -> None:
        if self._state is not ProcessState.PENDING:
            msg = "process has already been started"
            raise RuntimeError(msg)

        cwd = self._spec.resolved_cwd()
        LOGGER.info("Spawning %s in %s", self._spec.executable, cwd)
        try:
            process = await asyncio.create_subprocess_exec(
                *self._spec.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd),
                env=dict(self._spec.env) if self._spec.env is not None else None,
            )
        except OSError as exc:
            self._state = ProcessState.ERRORED
            msg = f"failed to start {self._spec.executable}: {exc}"
            raise CliSpawnError(msg) from exc

        self._process = process
        self._state = ProcessState.SPAWNED
        assert process.stdout is not None and process.stderr is not None
        self._pumps = [
            asyncio.create_task(self._pump(process.stdout, StdoutChunk)),
            asyncio.create_task(self._pump(process.stderr, StderrChunk)),
        ]
        self._watchers = [asyncio.create_task(self._watch_exit())]

        if self._abort_signal is not None:
            if self._abort_signal.is_set():
                self.abort()
            else:
                self._watchers.append(asyncio.create_task(self._watch_abort()))

    def abort(self) -> bool:
        """Terminate the process on behalf of the caller.

        The process is killed if it is still running ``kill_timeout``
        seconds after SIGTERM.
        """

        if self._process is None or self._state in (ProcessState.CLOSED, ProcessState.ERRORED):
            return False
        if self._process.returncode is not None:
            return False
        self._aborted = True
        LOGGER.info("Aborting %s (pid=%s)", self._spec.executable, self._process.pid)
        if not self._terminate():
            return False
        self._watchers.append(asyncio.create_task(self._reap()))
        return True

    async def next_message(self) -> ProcessMessage:
        """Return the next inbound message; raise when the exit was delivered."""

        if self._exit_delivered:
            raise StopAsyncIteration
        if self._process is None:
            msg = "process has not been started"
            raise RuntimeError(msg)

        message = await self._queue.get()
        if isinstance(message, ProcessExit):
            self._exit_delivered = True
        return message

    async def messages(self) -> AsyncIterator[ProcessMessage]:
        """Iterate over inbound messages up to and including the exit."""

        while not self._exit_delivered:
            yield await self.next_message()

    async def aclose(self, *, grace: float = 0.0) -> None:
        """Make sure the process is gone, giving it ``grace`` seconds to exit."""

        process = self._process
        if process is None or self._released:
            return
        self._released = True

        if process.returncode is None and grace > 0:
            try:
                await asyncio.wait_for(process.wait(), timeout=grace)
            except asyncio.TimeoutError:
                LOGGER.debug("%s did not exit within %.1fs", self._spec.executable, grace)

        if process.returncode is None:
            self._terminate()
            await self._reap()

        for task in (*self._watchers, *self._pumps):
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._watchers, *self._pumps, return_exceptions=True)
        if self._state not in (ProcessState.CLOSED, ProcessState.ERRORED):
            self._state = ProcessState.CLOSED

    def _terminate(self) -> bool:
        process = self._process
        if process is None or self._signalled:
            return False
        self._signalled = True
        self._state = ProcessState.CLOSING
        try:
            process.terminate()
        except ProcessLookupError:
            return False
        return True

    async def _reap(self) -> None:
        """Wait ``kill_timeout`` seconds after SIGTERM, then kill."""

        process = self._process
        assert process is not None
        try:
            await asyncio.wait_for(process.wait(), timeout=self._kill_timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("Killing %s after SIGTERM timeout", self._spec.executable)
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    async def _pump(
        self,
        reader: asyncio.StreamReader,
        wrap: type[StdoutChunk] | type[StderrChunk],
    ) -> None:
        while True:
            data = await reader.read(self._read_size)
            if not data:
                return
            if self._state is ProcessState.SPAWNED:
                self._state = ProcessState.STREAMING
            self._queue.put_nowait(wrap(data))

    async def _watch_exit(self) -> None:
        assert self._process is not None
        await asyncio.gather(*self._pumps, return_exceptions=True)
        if self._state is not ProcessState.CLOSING:
            self._state = ProcessState.CLOSING
        returncode = await self._process.wait()
        LOGGER.info("%s exited with code %s", self._spec.executable, returncode)
        self._state = ProcessState.CLOSED if returncode == 0 else ProcessState.ERRORED
        self._queue.put_nowait(ProcessExit(returncode=returncode, aborted=self._aborted))

    async def _watch_abort(self) -> None:
        assert self._abort_signal is not None
        await self._abort_signal.wait()
        self.abort()
