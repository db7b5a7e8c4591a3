"""Cross-platform OS detection and process-group management utilities.

Uses psutil's built-in OS detection constants for platform identification.
"""

import asyncio
import contextlib
import os
import signal
from enum import Enum, auto
from functools import cache

import psutil


class HostOS(Enum):
    """Supported host operating systems."""

    LINUX = auto()
    MACOS = auto()
    UNKNOWN = auto()
    """No POSIX process groups assumed; falls back to psutil tree kills."""


@cache
def detect_host_os() -> HostOS:
    """Detect current host operating system using psutil constants."""
    if psutil.LINUX:
        return HostOS.LINUX
    if psutil.MACOS:
        return HostOS.MACOS
    return HostOS.UNKNOWN


def has_process_groups() -> bool:
    """Whether children can be launched as leaders of their own process group."""
    return detect_host_os() is not HostOS.UNKNOWN


class ProcessWrapper:
    """Wrapper around a process launched as a process-group leader.

    The child is started with start_new_session=True, so its pgid equals its
    pid and everything it forks (unless it calls setsid itself) shares that
    group. kill_group() takes the whole group down in one signal.
    """

    def __init__(self, async_proc: asyncio.subprocess.Process) -> None:
        self.async_proc = async_proc
        self.psutil_proc: psutil.Process | None = None

        if async_proc.pid:
            with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
                # Process already died or inaccessible
                self.psutil_proc = psutil.Process(async_proc.pid)

    @property
    def pid(self) -> int:
        """Process ID (also the process group ID)."""
        return self.async_proc.pid

    @property
    def returncode(self) -> int | None:
        """Process return code (None if still running)."""
        return self.async_proc.returncode

    @property
    def stdout(self) -> asyncio.StreamReader | None:
        return self.async_proc.stdout

    @property
    def stderr(self) -> asyncio.StreamReader | None:
        return self.async_proc.stderr

    async def wait(self) -> int:
        """Wait for the leader to exit and every pipe to close."""
        return await self.async_proc.wait()

    async def wait_exited(self, poll_interval: float) -> int:
        """Wait for the leader itself to exit and return its exit code.

        Unlike wait(), this does not wait for pipe EOF, so a background
        child still holding stdout does not keep it pending. The event
        loop's child watcher reaps the leader and sets returncode.
        """
        while (code := self.async_proc.returncode) is None:
            await asyncio.sleep(poll_interval)
        return code

    async def kill_group(self) -> None:
        """SIGKILL the leader and every process in its group. No grace period.

        Safe to call after the leader exited: leftover group members are
        still killed, and an empty group is ignored.
        """
        if has_process_groups():
            with contextlib.suppress(ProcessLookupError, PermissionError):
                os.killpg(self.pid, signal.SIGKILL)
            return

        # No process groups: walk the tree with psutil instead.
        if self.psutil_proc is None:
            with contextlib.suppress(ProcessLookupError):
                self.async_proc.kill()
            return
        await asyncio.to_thread(_kill_tree, self.psutil_proc)


def _kill_tree(root: psutil.Process) -> None:
    """SIGKILL root and all of its descendants."""
    try:
        victims = [*root.children(recursive=True), root]
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        victims = [root]
    for proc in victims:
        with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
            proc.kill()
