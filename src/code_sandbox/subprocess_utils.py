"""Subprocess lifecycle utilities.

- spawn_process_group: launch a child as leader of a new process group
- run_bounded: timed, output-bounded run of one command
- log_task_exception: done-callback that surfaces background task failures

run_bounded races three outcomes against each other:

    leader exit      ─┐
    overflow future  ─┼─> first to resolve wins
    deadline         ─┘

Leader exit is the process itself, not pipe EOF: a program may exit while
a background child it forked still holds stdout open.

A deadline or overflow win kills the whole process group with SIGKILL, no
grace period. A normal exit also kills the group afterwards so that helper
processes forked by the program never outlive the request.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import errno
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from code_sandbox import constants
from code_sandbox._logging import get_logger
from code_sandbox.platform_utils import ProcessWrapper, has_process_groups

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

logger = get_logger(__name__)


class ProcessStatus(str, Enum):
    """Terminal state of one bounded run."""

    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    OUTPUT_EXCEEDED = "output_exceeded"
    LAUNCH_FAILED = "launch_failed"


@dataclass(frozen=True)
class ProcessOutcome:
    """What run_bounded observed.

    exit_code is only set for COMPLETED; killed or unlaunched processes have
    no exit code. duration_ms is None only for LAUNCH_FAILED.
    """

    status: ProcessStatus
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    duration_ms: int | None = None
    stderr_truncated: bool = False
    launch_error: str | None = None


class BoundedBuffer:
    """Byte buffer that keeps at most `limit` bytes.

    The first byte past the limit sets `overflowed`; later bytes are
    discarded so the pipe keeps draining.
    """

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.overflowed = asyncio.Event()
        self._chunks: list[bytes] = []
        self._size = 0

    @property
    def truncated(self) -> bool:
        return self.overflowed.is_set()

    def feed(self, chunk: bytes) -> None:
        room = self.limit - self._size
        if len(chunk) > room:
            if room > 0:
                self._chunks.append(chunk[:room])
                self._size += room
            self.overflowed.set()
            return
        self._chunks.append(chunk)
        self._size += len(chunk)

    def text(self) -> str:
        """Decode as UTF-8, replacing invalid bytes.

        A multi-byte character cut by truncation is dropped rather than
        rendered as a replacement character.
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        return decoder.decode(b"".join(self._chunks), final=not self.truncated)


async def _pump(stream: asyncio.StreamReader | None, buffer: BoundedBuffer) -> None:
    """Read stream until EOF into buffer."""
    if stream is None:
        return
    while chunk := await stream.read(constants.READ_CHUNK_SIZE):
        buffer.feed(chunk)


def _is_text_busy(exc: BaseException) -> bool:
    # exec of a binary another thread still holds open for writing
    return isinstance(exc, OSError) and exc.errno == errno.ETXTBSY


async def spawn_process_group(argv: Sequence[str], *, cwd: Path) -> ProcessWrapper:
    """Launch argv as the leader of a new process group with piped output.

    Retries only ETXTBSY, which a freshly compiled binary can raise when a
    concurrent fork still holds its write descriptor.

    Raises:
        OSError: The executable could not be started (missing, not executable, ...)
    """
    async for attempt in AsyncRetrying(
        retry=retry_if_exception(_is_text_busy),
        stop=stop_after_attempt(constants.LAUNCH_RETRY_ATTEMPTS),
        wait=wait_random_exponential(multiplier=0.01, max=constants.LAUNCH_RETRY_MAX_WAIT_SECONDS),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        reraise=True,
    ):
        with attempt:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=has_process_groups(),  # pgid == pid
            )
    return ProcessWrapper(proc)


async def _drain_readers(readers: list[asyncio.Task[None]], context_id: str) -> bool:
    """Wait for pipe readers to reach EOF; cancel any that don't in time.

    A reader can stay blocked when a descendant escaped the process group
    (e.g. via setsid) and still holds the pipe open.

    Returns:
        True if every pipe reached EOF
    """
    _, pending = await asyncio.wait(readers, timeout=constants.READER_DRAIN_TIMEOUT_SECONDS)
    if pending:
        logger.warning(
            "Output pipes still open after process group kill, abandoning readers",
            extra={"context_id": context_id, "pending_readers": len(pending)},
        )
        for task in pending:
            task.cancel()
    await asyncio.gather(*readers, return_exceptions=True)
    return not pending


async def run_bounded(
    argv: Sequence[str],
    *,
    cwd: Path,
    timeout_seconds: float,
    max_stdout_bytes: int,
    max_stderr_bytes: int,
    context_id: str,
) -> ProcessOutcome:
    """Run argv to completion under a wall-clock deadline and an output cap.

    The deadline is measured from launch. stdout beyond max_stdout_bytes
    terminates the run; stderr beyond max_stderr_bytes is only truncated.

    Args:
        argv: Command and arguments
        cwd: Working directory for the child
        timeout_seconds: Wall-clock budget from launch
        max_stdout_bytes: stdout cap; exceeding it kills the process group
        max_stderr_bytes: stderr cap; exceeding it truncates
        context_id: Identifier for log correlation

    Returns:
        ProcessOutcome describing the terminal state. Never raises for
        failures of the launched program itself.
    """
    try:
        proc = await spawn_process_group(argv, cwd=cwd)
    except OSError as e:
        logger.error(
            "Failed to launch process",
            extra={"context_id": context_id, "command": argv[0], "error": str(e)},
        )
        return ProcessOutcome(status=ProcessStatus.LAUNCH_FAILED, launch_error=f"{argv[0]}: {e.strerror or e}")

    started = time.monotonic()
    stdout_buffer = BoundedBuffer(max_stdout_bytes)
    stderr_buffer = BoundedBuffer(max_stderr_bytes)
    readers = [
        asyncio.create_task(_pump(proc.stdout, stdout_buffer), name=f"{context_id}-stdout"),
        asyncio.create_task(_pump(proc.stderr, stderr_buffer), name=f"{context_id}-stderr"),
    ]
    # Leader exit, not pipe EOF: a background child may still hold stdout
    exit_future = asyncio.create_task(
        proc.wait_exited(constants.EXIT_POLL_INTERVAL_SECONDS), name=f"{context_id}-exit"
    )
    overflow_future = asyncio.create_task(stdout_buffer.overflowed.wait(), name=f"{context_id}-overflow")

    logger.debug(
        "Process started",
        extra={"context_id": context_id, "pid": proc.pid, "timeout_seconds": timeout_seconds},
    )

    try:
        done, _ = await asyncio.wait(
            {exit_future, overflow_future},
            timeout=timeout_seconds,
            return_when=asyncio.FIRST_COMPLETED,
        )
        duration_ms = round((time.monotonic() - started) * 1000)
    finally:
        # Runs on every path, including caller cancellation.
        await proc.kill_group()
        overflow_future.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await overflow_future
        await exit_future  # leader is dead and reaped
        if await _drain_readers(readers, context_id):
            await proc.wait()  # pipes closed; lets the transport finish

    if stdout_buffer.truncated:
        status = ProcessStatus.OUTPUT_EXCEEDED
    elif exit_future in done:
        status = ProcessStatus.COMPLETED
    else:
        status = ProcessStatus.TIMED_OUT

    if status is not ProcessStatus.COMPLETED:
        logger.info(
            "Process group killed",
            extra={"context_id": context_id, "pid": proc.pid, "status": status.value, "duration_ms": duration_ms},
        )

    return ProcessOutcome(
        status=status,
        stdout=stdout_buffer.text(),
        stderr=stderr_buffer.text(),
        exit_code=proc.returncode if status is ProcessStatus.COMPLETED else None,
        duration_ms=duration_ms,
        stderr_truncated=stderr_buffer.truncated,
    )


def log_task_exception(task: asyncio.Task[None]) -> None:
    """Log exceptions from background tasks.

    Callback for asyncio.Task.add_done_callback() so background failures are
    never silent.
    """
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "Background task failed",
            extra={"task_name": task.get_name()},
            exc_info=exc,
        )
