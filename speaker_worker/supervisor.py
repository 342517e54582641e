"""
Supervision of the isolated playback unit.

Each playback runs in a child process (see ``speaker_worker.stream``) that
receives its job as a JSON argument and reports back through its exit
status alone. Waiting on it never blocks the event loop, and killing it
is unconditional.
"""

import asyncio
import logging
import signal
import sys
from typing import Callable, Iterable, List, NamedTuple, Optional

from .models import PlaybackJob

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = [sys.executable, "-m", "speaker_worker.stream"]


class PlaybackExit(NamedTuple):
    """How a playback unit ended: an exit code or a terminating signal."""

    code: Optional[int]
    signal: Optional[int]

    @classmethod
    def from_returncode(cls, returncode: int) -> "PlaybackExit":
        # asyncio reports death by signal N as returncode -N
        if returncode < 0:
            return cls(None, -returncode)
        return cls(returncode, None)

    def describe(self) -> str:
        if self.signal is not None:
            try:
                return f"signal {signal.Signals(self.signal).name}"
            except ValueError:
                return f"signal {self.signal}"
        return f"exit code {self.code}"


class PlaybackHandle:
    """A running playback unit."""

    def __init__(self, process: asyncio.subprocess.Process, job: PlaybackJob):
        self.process = process
        self.job = job
        self.killed = False
        self._exit = asyncio.ensure_future(self._wait())

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    async def _wait(self) -> PlaybackExit:
        returncode = await self.process.wait()
        result = PlaybackExit.from_returncode(returncode)
        logger.info(f"Playback unit {self.pid} finished with {result.describe()}")
        return result

    def kill(self) -> None:
        """Terminate the unit immediately; a no-op once it has exited."""
        if not self.running:
            return
        self.killed = True
        try:
            self.process.kill()
        except ProcessLookupError:
            pass

    def on_exit(self, callback: Callable[[Optional[int], Optional[int]], None]) -> None:
        """Call callback(code, signal) once, when the unit has exited."""
        self._exit.add_done_callback(lambda task: callback(*task.result()))

    async def wait(self) -> PlaybackExit:
        return await asyncio.shield(self._exit)


class PlaybackSupervisor:
    """
    Starts playback units and keeps track of the active one.

    Args:
        command: Command line of the unit; the job JSON is appended to it
        success_signals: Signals whose termination still counts as success
    """

    def __init__(self, command: Optional[List[str]] = None, success_signals: Iterable[int] = ()):
        self.command = list(command or DEFAULT_COMMAND)
        self.success_signals = set(success_signals)
        self.active: Optional[PlaybackHandle] = None

    async def start(self, job: PlaybackJob) -> PlaybackHandle:
        process = await asyncio.create_subprocess_exec(
            *self.command,
            job.model_dump_json(),
            stdin=asyncio.subprocess.DEVNULL,
        )
        handle = PlaybackHandle(process, job)
        logger.info(f"Started playback unit {handle.pid} for {job.request.cache_key}")

        self.active = handle
        handle.on_exit(lambda code, sig: self._release(handle))
        return handle

    def _release(self, handle: PlaybackHandle) -> None:
        if self.active is handle:
            self.active = None

    def kill_active(self) -> bool:
        """Kill the active unit, if any. Does not wait for it to exit."""
        handle = self.active
        if handle is None or not handle.running:
            return False
        logger.info(f"Killing playback unit {handle.pid}")
        handle.kill()
        return True

    def succeeded(self, handle: PlaybackHandle, result: PlaybackExit) -> bool:
        """
        Whether a finished unit completed its playback.

        A unit killed by this supervisor never succeeded, whatever signal
        it died from.
        """
        if handle.killed:
            return False
        if result.code == 0:
            return True
        return result.signal is not None and result.signal in self.success_signals
