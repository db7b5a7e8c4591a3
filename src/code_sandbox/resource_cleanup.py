"""Resource cleanup utilities for the shared work directory.

- cleanup_file: delete one file, log instead of raising
- sweep_temp_files: delete every temp-prefixed file, aggregating failures
- TempFileSweeper: background task running sweep_temp_files periodically
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from pathlib import Path

import aiofiles.os

from code_sandbox import constants
from code_sandbox._logging import get_logger
from code_sandbox.exceptions import CleanupError
from code_sandbox.models import CleanupReport
from code_sandbox.subprocess_utils import log_task_exception

logger = get_logger(__name__)


async def cleanup_file(
    file_path: Path | None,
    context_id: str,
    description: str = "file",
) -> bool:
    """Delete file.

    Silently succeeds if file doesn't exist.

    - aiofiles.os.remove() for async deletion
    - FileNotFoundError handled manually (aiofiles lacks missing_ok)
    - Never raises (logs instead)

    Args:
        file_path: Path to file to delete (None safe - returns immediately)
        context_id: Context for logging
        description: Description for logging (e.g., "temp source", "artifact")

    Returns:
        True if file cleaned successfully, False if issues occurred
    """
    if file_path is None:
        return True

    try:
        await aiofiles.os.remove(file_path)
        logger.debug(
            f"{description} deleted",
            extra={"context_id": context_id, "path": str(file_path)},
        )
        return True

    except FileNotFoundError:
        logger.debug(
            f"{description} already deleted",
            extra={"context_id": context_id, "path": str(file_path)},
        )
        return True

    except OSError as e:
        # Permission denied, read-only filesystem, directory in the way, etc.
        logger.error(
            f"{description} OS error during deletion",
            extra={"context_id": context_id, "path": str(file_path), "error": str(e), "error_type": type(e).__name__},
        )
        return False


async def sweep_temp_files(
    work_dir: Path,
    *,
    prefix: str = constants.TEMP_FILE_PREFIX,
    older_than_seconds: float | None = None,
) -> CleanupReport:
    """Remove temp-prefixed files from work_dir.

    Every candidate is attempted even when earlier removals fail; failures
    are collected and raised together at the end.

    Args:
        work_dir: Directory to sweep (non-recursive)
        prefix: Only files whose name starts with this are candidates
        older_than_seconds: Skip files modified more recently than this

    Returns:
        CleanupReport with removed paths and the number of skipped young files

    Raises:
        CleanupError: One or more removals failed (carries all failures)
    """
    try:
        entries = await aiofiles.os.scandir(work_dir)
    except FileNotFoundError:
        return CleanupReport()

    cutoff = time.time() - older_than_seconds if older_than_seconds is not None else None
    report = CleanupReport()
    failures: dict[Path, str] = {}

    with entries:
        candidates = [
            Path(entry.path)
            for entry in entries
            if entry.name.startswith(prefix) and entry.is_file(follow_symlinks=False)
        ]

    for path in candidates:
        try:
            if cutoff is not None and (await aiofiles.os.stat(path)).st_mtime > cutoff:
                report.skipped += 1
                continue
            await aiofiles.os.remove(path)
            report.removed.append(path)
        except FileNotFoundError:
            continue  # removed concurrently, e.g. by its own request
        except OSError as e:
            failures[path] = str(e)

    logger.info(
        "Temp file sweep finished",
        extra={
            "work_dir": str(work_dir),
            "removed": len(report.removed),
            "skipped": report.skipped,
            "failed": len(failures),
        },
    )
    if failures:
        raise CleanupError(failures, removed=report.removed)
    return report


class TempFileSweeper:
    """Background task that sweeps old temp files on a fixed interval.

    Failures of one pass are logged and never stop later passes.
    """

    def __init__(
        self,
        work_dir: Path,
        interval_seconds: float,
        max_age_seconds: float = constants.TEMP_FILE_MAX_AGE_SECONDS,
        prefix: str = constants.TEMP_FILE_PREFIX,
    ) -> None:
        self._work_dir = work_dir
        self._interval = interval_seconds
        self._max_age = max_age_seconds
        self._prefix = prefix
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._sweep_loop(), name="temp-file-sweeper")
        self._task.add_done_callback(log_task_exception)
        logger.info(
            "Temp file sweeper started",
            extra={"interval_seconds": self._interval, "max_age_seconds": self._max_age},
        )

    async def stop(self) -> None:
        """Stop the background sweep task."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Temp file sweeper stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await sweep_temp_files(self._work_dir, prefix=self._prefix, older_than_seconds=self._max_age)
            except CleanupError as e:
                logger.error(e.message, extra=e.context)
