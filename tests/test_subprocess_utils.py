"""Tests for run_bounded, spawn_process_group and BoundedBuffer.

Uses the running interpreter (sys.executable) as the child program so the
tests need no toolchain beyond Python itself.
"""

from __future__ import annotations

import asyncio
import errno
import sys
import textwrap
import time
from pathlib import Path
from unittest.mock import patch

import psutil

from code_sandbox.subprocess_utils import BoundedBuffer, ProcessStatus, run_bounded, spawn_process_group
from tests.conftest import skip_unless_posix

# ============================================================================
# Helpers
# ============================================================================


async def _run_python(
    script: str,
    cwd: Path,
    *,
    timeout: float = 10,
    max_stdout: int = 64 * 1024,
    max_stderr: int = 64 * 1024,
):
    return await run_bounded(
        [sys.executable, "-c", textwrap.dedent(script)],
        cwd=cwd,
        timeout_seconds=timeout,
        max_stdout_bytes=max_stdout,
        max_stderr_bytes=max_stderr,
        context_id="test",
    )


async def _wait_gone(pid: int, timeout: float = 5.0) -> bool:
    """True once pid no longer runs (gone or zombie awaiting reap)."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            if psutil.Process(pid).status() == psutil.STATUS_ZOMBIE:
                return True
        except psutil.NoSuchProcess:
            return True
        await asyncio.sleep(0.05)
    return False


# Forks a sleeping grandchild, prints its pid, then does `tail`
_SPAWN_CHILD = """
    import subprocess, sys, time
    child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
    print(child.pid, flush=True)
    {tail}
"""


# ============================================================================
# Completed
# ============================================================================


class TestCompleted:
    async def test_captures_stdout_and_stderr(self, tmp_path: Path) -> None:
        outcome = await _run_python(
            """
            import sys
            print("hello")
            sys.stderr.write("warning")
            """,
            tmp_path,
        )
        assert outcome.status is ProcessStatus.COMPLETED
        assert outcome.stdout == "hello\n"
        assert outcome.stderr == "warning"
        assert outcome.exit_code == 0
        assert outcome.duration_ms is not None and outcome.duration_ms >= 0
        assert not outcome.stderr_truncated

    async def test_non_zero_exit(self, tmp_path: Path) -> None:
        outcome = await _run_python("raise SystemExit(3)", tmp_path)
        assert outcome.status is ProcessStatus.COMPLETED
        assert outcome.exit_code == 3

    async def test_runs_in_cwd(self, tmp_path: Path) -> None:
        outcome = await _run_python("import os; print(os.getcwd())", tmp_path)
        assert Path(outcome.stdout.strip()).resolve() == tmp_path.resolve()

    async def test_stdin_is_empty(self, tmp_path: Path) -> None:
        """Programs read EOF instead of blocking on a terminal."""
        outcome = await _run_python("import sys; print(repr(sys.stdin.read()))", tmp_path, timeout=5)
        assert outcome.status is ProcessStatus.COMPLETED
        assert outcome.stdout.strip() == "''"

    async def test_invalid_utf8_replaced(self, tmp_path: Path) -> None:
        outcome = await _run_python(r"import sys; sys.stdout.buffer.write(b'a\xffb')", tmp_path)
        assert outcome.stdout == "a�b"

    @skip_unless_posix
    async def test_normal_exit_kills_leftover_children(self, tmp_path: Path) -> None:
        """Background helpers never outlive the request."""
        outcome = await _run_python(_SPAWN_CHILD.format(tail="sys.exit(0)"), tmp_path)
        assert outcome.status is ProcessStatus.COMPLETED
        assert outcome.exit_code == 0
        # Completion is the leader's exit, not the child's pipe closing at the deadline
        assert outcome.duration_ms is not None and outcome.duration_ms < 5000
        assert await _wait_gone(int(outcome.stdout.split()[0]))

    @skip_unless_posix
    async def test_child_holding_stdout_does_not_delay_completion(self, tmp_path: Path) -> None:
        started = time.monotonic()
        outcome = await run_bounded(
            ["/bin/sh", "-c", "sleep 30 &\necho done\n"],
            cwd=tmp_path,
            timeout_seconds=3,
            max_stdout_bytes=1024,
            max_stderr_bytes=1024,
            context_id="test",
        )
        assert outcome.status is ProcessStatus.COMPLETED
        assert outcome.exit_code == 0
        assert outcome.stdout == "done\n"
        assert time.monotonic() - started < 3


# ============================================================================
# Timed Out
# ============================================================================


class TestTimedOut:
    async def test_timeout(self, tmp_path: Path) -> None:
        started = time.monotonic()
        outcome = await _run_python("import time; time.sleep(30)", tmp_path, timeout=0.5)
        assert outcome.status is ProcessStatus.TIMED_OUT
        assert outcome.exit_code is None
        assert time.monotonic() - started < 0.5 + 1.5
        assert outcome.duration_ms is not None
        assert 490 <= outcome.duration_ms < 2000

    async def test_partial_output_kept(self, tmp_path: Path) -> None:
        outcome = await _run_python(
            """
            import time
            print("started", flush=True)
            time.sleep(30)
            """,
            tmp_path,
            timeout=1,
        )
        assert outcome.status is ProcessStatus.TIMED_OUT
        assert outcome.stdout == "started\n"

    @skip_unless_posix
    async def test_timeout_kills_process_group(self, tmp_path: Path) -> None:
        """Grandchildren die with the leader, no orphan keeps running."""
        outcome = await _run_python(_SPAWN_CHILD.format(tail="time.sleep(60)"), tmp_path, timeout=1)
        assert outcome.status is ProcessStatus.TIMED_OUT
        assert await _wait_gone(int(outcome.stdout.split()[0]))


# ============================================================================
# Output Exceeded
# ============================================================================


class TestOutputExceeded:
    async def test_stdout_cap_enforced(self, tmp_path: Path) -> None:
        outcome = await _run_python("import sys; sys.stdout.write('x' * 10000)", tmp_path, max_stdout=1024)
        assert outcome.status is ProcessStatus.OUTPUT_EXCEEDED
        assert outcome.stdout == "x" * 1024
        assert outcome.exit_code is None

    async def test_infinite_output_stopped_before_deadline(self, tmp_path: Path) -> None:
        outcome = await _run_python(
            """
            while True:
                print("y" * 100)
            """,
            tmp_path,
            timeout=30,
            max_stdout=4096,
        )
        assert outcome.status is ProcessStatus.OUTPUT_EXCEEDED
        assert len(outcome.stdout) <= 4096
        assert outcome.duration_ms is not None and outcome.duration_ms < 30_000

    async def test_exact_cap_is_not_exceeded(self, tmp_path: Path) -> None:
        outcome = await _run_python("import sys; sys.stdout.write('z' * 1024)", tmp_path, max_stdout=1024)
        assert outcome.status is ProcessStatus.COMPLETED
        assert len(outcome.stdout) == 1024

    async def test_stderr_overflow_only_truncates(self, tmp_path: Path) -> None:
        outcome = await _run_python(
            """
            import sys
            sys.stderr.write("e" * 5000)
            print("done")
            """,
            tmp_path,
            max_stderr=100,
        )
        assert outcome.status is ProcessStatus.COMPLETED
        assert outcome.exit_code == 0
        assert outcome.stderr_truncated
        assert outcome.stderr == "e" * 100
        assert outcome.stdout == "done\n"


# ============================================================================
# Launch Failures
# ============================================================================


class TestLaunchFailed:
    async def test_missing_executable(self, tmp_path: Path) -> None:
        outcome = await run_bounded(
            [str(tmp_path / "does-not-exist")],
            cwd=tmp_path,
            timeout_seconds=5,
            max_stdout_bytes=1024,
            max_stderr_bytes=1024,
            context_id="test",
        )
        assert outcome.status is ProcessStatus.LAUNCH_FAILED
        assert outcome.duration_ms is None
        assert outcome.exit_code is None
        assert outcome.launch_error is not None
        assert "does-not-exist" in outcome.launch_error

    async def test_text_file_busy_is_retried(self, tmp_path: Path) -> None:
        real_exec = asyncio.create_subprocess_exec
        calls = 0

        async def flaky_exec(*args, **kwargs):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise OSError(errno.ETXTBSY, "Text file busy")
            return await real_exec(*args, **kwargs)

        with patch("code_sandbox.subprocess_utils.asyncio.create_subprocess_exec", new=flaky_exec):
            proc = await spawn_process_group([sys.executable, "-c", "pass"], cwd=tmp_path)
        assert await proc.wait() == 0
        assert calls == 2

    async def test_other_errors_not_retried(self, tmp_path: Path) -> None:
        calls = 0

        async def missing_exec(*args, **kwargs):
            nonlocal calls
            calls += 1
            raise FileNotFoundError(errno.ENOENT, "No such file or directory")

        with patch("code_sandbox.subprocess_utils.asyncio.create_subprocess_exec", new=missing_exec):
            outcome = await run_bounded(
                ["nope"],
                cwd=tmp_path,
                timeout_seconds=5,
                max_stdout_bytes=1024,
                max_stderr_bytes=1024,
                context_id="test",
            )
        assert outcome.status is ProcessStatus.LAUNCH_FAILED
        assert calls == 1


# ============================================================================
# BoundedBuffer
# ============================================================================


class TestBoundedBuffer:
    def test_within_limit(self) -> None:
        buffer = BoundedBuffer(10)
        buffer.feed(b"abc")
        buffer.feed(b"def")
        assert buffer.text() == "abcdef"
        assert not buffer.truncated

    def test_overflow_keeps_prefix(self) -> None:
        buffer = BoundedBuffer(4)
        buffer.feed(b"abcdef")
        buffer.feed(b"more")
        assert buffer.truncated
        assert buffer.overflowed.is_set()
        assert buffer.text() == "abcd"

    def test_cut_multibyte_character_dropped(self) -> None:
        buffer = BoundedBuffer(4)
        buffer.feed("abcé".encode())  # é is two bytes, only the first fits
        assert buffer.truncated
        assert buffer.text() == "abc"

    def test_zero_room_after_exact_fill(self) -> None:
        buffer = BoundedBuffer(3)
        buffer.feed(b"abc")
        assert not buffer.truncated
        buffer.feed(b"d")
        assert buffer.truncated
        assert buffer.text() == "abc"
