"""Environment - main entry point for executing untrusted source code.

The Environment wires the language registry, advisory screening,
compiler, executor, admission slots and temp-file cleanup into one
pipeline:

    screen ──> stage copy ──> compile / syntax check ──> run ──> cleanup

Example:
    ```python
    from code_sandbox import Environment

    async with Environment() as env:
        report = await env.execute_code("print('hello')", "python")
        print(report)

        result = await env.run_file(Path("solution.c"))
        assert result.success, result.error
    ```

Lifecycle:
    - start() creates the work directory and the optional temp-file sweeper
    - run_file()/run_code() return structured ExecutionResult
    - execute()/execute_code() return the human-readable report
    - check_syntax() runs a syntax-only pass, building and running nothing
    - close() stops the sweeper (called automatically by context manager)

Program failures (compile error, timeout, crash, output flood) are
returned as data. Only caller errors and infrastructure failures raise.
"""

from __future__ import annotations

import time
import uuid
from pathlib import Path
from typing import Self

import aiofiles
import aiofiles.os

from code_sandbox import constants
from code_sandbox._logging import get_logger
from code_sandbox.admission import ExecutionSlots
from code_sandbox.compiler import Compiler
from code_sandbox.config import SandboxConfig
from code_sandbox.exceptions import CodeValidationError, SourceNotFoundError, WorkDirError
from code_sandbox.executor import Executor
from code_sandbox.languages import LanguageRegistry
from code_sandbox.metrics import GLOBAL_METRICS, ExecutionMetrics
from code_sandbox.models import (
    CleanupReport,
    CompileFailureReason,
    CompileResult,
    ExecutionResult,
    FailureKind,
    Language,
    LanguageProfile,
    SecurityReport,
)
from code_sandbox.report import format_report
from code_sandbox.resource_cleanup import TempFileSweeper, cleanup_file, sweep_temp_files
from code_sandbox.security import check_file_security

logger = get_logger(__name__)

_COPY_CHUNK_SIZE = 64 * 1024


def _temp_name(suffix: str) -> str:
    """Unique temp file name: prefix, nanosecond clock, random tag."""
    return f"{constants.TEMP_FILE_PREFIX}{time.time_ns()}_{uuid.uuid4().hex[:8]}{suffix}"


class Environment:
    """Multi-language execution environment over a shared work directory.

    Safe for concurrent use from one event loop: every request stages its
    own uniquely named copy, so concurrent identical requests never share
    files. Concurrency is bounded by execution slots.

    Attributes:
        config: Effective configuration
        registry: Language registry used for every lookup
        compiler: Compile / syntax-check step
        executor: Run step
    """

    def __init__(
        self,
        config: SandboxConfig | None = None,
        *,
        registry: LanguageRegistry | None = None,
        metrics: ExecutionMetrics | None = None,
    ) -> None:
        self.config = config or SandboxConfig()
        self.registry = registry or LanguageRegistry.default(self.config.default_timeout_seconds)
        self.compiler = Compiler(
            self.config.work_dir,
            max_output_bytes=self.config.max_output_bytes,
            max_stderr_bytes=self.config.max_stderr_bytes,
        )
        self.executor = Executor(
            self.config.work_dir,
            max_output_bytes=self.config.max_output_bytes,
            max_stderr_bytes=self.config.max_stderr_bytes,
        )
        self._metrics = metrics if metrics is not None else GLOBAL_METRICS
        self._slots = ExecutionSlots(
            self.config.get_max_concurrent_executions(),
            self.config.admission_timeout_seconds,
        )
        self._sweeper: TempFileSweeper | None = None
        if self.config.cleanup_interval_seconds is not None:
            self._sweeper = TempFileSweeper(
                self.config.work_dir,
                interval_seconds=self.config.cleanup_interval_seconds,
                max_age_seconds=self.config.temp_file_max_age_seconds,
            )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def work_dir(self) -> Path:
        return self.config.work_dir

    @property
    def executions_completed(self) -> int:
        """Completed executions counted by this environment's metrics."""
        return self._metrics.executions

    @property
    def metrics(self) -> ExecutionMetrics:
        return self._metrics

    @property
    def slots(self) -> ExecutionSlots:
        return self._slots

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Create the work directory and start the background sweeper."""
        await self._ensure_work_dir()
        if self._sweeper is not None:
            await self._sweeper.start()
        logger.info(
            "Sandbox environment started",
            extra={
                "work_dir": str(self.work_dir),
                "languages": [lang.value for lang in self.registry.languages()],
                "max_slots": self._slots.max_slots,
            },
        )

    async def close(self) -> None:
        """Stop the background sweeper. Idempotent."""
        if self._sweeper is not None:
            await self._sweeper.stop()
        logger.info("Sandbox environment stopped", extra={"executions": self._metrics.executions})

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self, _exc_type: type[BaseException] | None, _exc_val: BaseException | None, _exc_tb: object
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def check_file_security(self, path: Path) -> SecurityReport:
        """Advisory screening of path. Findings are logged, never enforced.

        Raises:
            SourceNotFoundError: path is not an existing regular file
            UnsupportedLanguageError: Extension not registered
            FileTooLargeError: File above max_file_size_bytes
        """
        path = Path(path)
        if not await aiofiles.os.path.isfile(path):
            raise SourceNotFoundError(path)
        return await check_file_security(path, self.registry, max_size_bytes=self.config.max_file_size_bytes)

    async def run_file(self, path: Path, *, timeout_seconds: float | None = None) -> ExecutionResult:
        """Execute a source file and return the structured result.

        The file is copied into the work directory first; the original is
        never modified. Language is chosen by file extension.

        Args:
            path: Source file anywhere on disk
            timeout_seconds: Overrides the language's run timeout

        Returns:
            ExecutionResult describing the outcome

        Raises:
            SourceNotFoundError: path does not exist
            UnsupportedLanguageError: Extension not registered (nothing is launched)
            FileTooLargeError: File above max_file_size_bytes
            CapacityError: No execution slot within the admission timeout
            WorkDirError: Work directory or staged copy could not be written
        """
        path = Path(path)
        profile = self.registry.profile_for_path(path)
        return await self._run_path(path, profile, timeout_seconds, stage=True)

    async def check_syntax(self, path: Path, *, timeout_seconds: float | None = None) -> CompileResult:
        """Syntax-only check of a source file. Nothing is built or run.

        Compiled languages use their syntax-only mode (gcc -fsyntax-only,
        go vet); interpreted languages use their usual checker. The staged
        copy is removed before returning and no execution is counted.

        Raises:
            SourceNotFoundError: path does not exist
            UnsupportedLanguageError: Extension not registered
            FileTooLargeError: File above max_file_size_bytes
            CapacityError: No execution slot within the admission timeout
            WorkDirError: Work directory or staged copy could not be written
        """
        path = Path(path)
        profile = self.registry.profile_for_path(path)
        await self.check_file_security(path)
        await self._ensure_work_dir()

        async with self._slots.slot(path.name):
            staged = await self._stage_copy(path)
            try:
                return await self.compiler.check_syntax(staged, profile, timeout_seconds=timeout_seconds)
            finally:
                await cleanup_file(staged, staged.name, "staged copy")

    async def run_code(
        self,
        code: str,
        language: str | Language,
        *,
        timeout_seconds: float | None = None,
    ) -> ExecutionResult:
        """Execute a code string.

        The code is written to a uniquely named temp file in the work
        directory and then goes down the same path as run_file. The temp
        file already lives in the work directory, so it is run in place
        rather than staged again, and removed when the request ends.

        Args:
            code: Program source
            language: Language name, alias or extension ("python", "js", ".cpp")
            timeout_seconds: Overrides the language's run timeout

        Raises:
            CodeValidationError: Empty code or code containing null bytes
            UnsupportedLanguageError: Language not registered (nothing is written)
            FileTooLargeError: Code above max_file_size_bytes
            CapacityError: No execution slot within the admission timeout
            WorkDirError: Temp file could not be written
        """
        if not code or not code.strip():
            raise CodeValidationError("Code cannot be empty")
        if "\x00" in code:
            raise CodeValidationError("Code contains null bytes")

        profile = self.registry.resolve(language)
        await self._ensure_work_dir()

        source = self.work_dir / _temp_name(profile.extensions[0])
        try:
            try:
                async with aiofiles.open(source, "w", encoding="utf-8") as f:
                    await f.write(code)
            except OSError as e:
                raise WorkDirError(
                    f"Could not write temporary source file: {e}",
                    context={"path": str(source), "error_type": type(e).__name__},
                ) from e

            return await self._run_path(source, profile, timeout_seconds, stage=False)
        finally:
            await cleanup_file(source, source.name, "temp source")

    async def execute(self, path: Path, *, timeout_seconds: float | None = None) -> str:
        """Execute a source file and return a human-readable report."""
        return format_report(await self.run_file(path, timeout_seconds=timeout_seconds))

    async def execute_code(
        self,
        code: str,
        language: str | Language,
        *,
        timeout_seconds: float | None = None,
    ) -> str:
        """Execute a code string and return a human-readable report."""
        return format_report(await self.run_code(code, language, timeout_seconds=timeout_seconds))

    async def cleanup_temp_files(self, older_than_seconds: float | None = None) -> CleanupReport:
        """Remove temp-prefixed files from the work directory.

        Raises:
            CleanupError: One or more files could not be removed (all were attempted)
        """
        return await sweep_temp_files(self.work_dir, older_than_seconds=older_than_seconds)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    async def _ensure_work_dir(self) -> None:
        try:
            await aiofiles.os.makedirs(self.work_dir, exist_ok=True)
        except OSError as e:
            raise WorkDirError(
                f"Could not create work directory {self.work_dir}: {e}",
                context={"work_dir": str(self.work_dir), "error_type": type(e).__name__},
            ) from e

    async def _stage_copy(self, path: Path) -> Path:
        """Copy path into the work directory under a unique temp name.

        The staged copy is left for the temp-file sweep; only compiled
        artifacts are removed at the end of the request.
        """
        staged = self.work_dir / _temp_name(path.suffix.lower())
        try:
            async with aiofiles.open(path, "rb") as src, aiofiles.open(staged, "wb") as dst:
                while chunk := await src.read(_COPY_CHUNK_SIZE):
                    await dst.write(chunk)
        except OSError as e:
            await cleanup_file(staged, staged.name, "partial staged copy")
            raise WorkDirError(
                f"Could not stage {path.name} into {self.work_dir}: {e}",
                context={"source": str(path), "staged": str(staged), "error_type": type(e).__name__},
            ) from e

        logger.debug("Source staged", extra={"source": str(path), "staged": str(staged)})
        return staged

    async def _run_path(
        self,
        path: Path,
        profile: LanguageProfile,
        timeout_seconds: float | None,
        *,
        stage: bool,
    ) -> ExecutionResult:
        """Screen, take a slot, optionally stage, execute, count."""
        await self.check_file_security(path)
        await self._ensure_work_dir()

        async with self._slots.slot(path.name):
            source = await self._stage_copy(path) if stage else path
            result = await self._execute(source, profile, timeout_seconds)

        self._metrics.record(result)
        return result

    async def _execute(
        self,
        source: Path,
        profile: LanguageProfile,
        timeout_seconds: float | None,
    ) -> ExecutionResult:
        """Compile (or syntax-check) then run a staged source."""
        context_id = source.name
        artifact = source
        compile_time_ms: int | None = None

        if profile.needs_compile or self.config.syntax_check_interpreted:
            compiled = await self.compiler.compile(source, profile)
            compile_time_ms = compiled.compile_time_ms
            if not compiled.success:
                if compiled.reason is CompileFailureReason.LAUNCH_FAILED and not profile.needs_compile:
                    # The checker is the interpreter: the program cannot be started at all
                    return ExecutionResult(
                        success=False,
                        language=profile.language,
                        compiled=False,
                        failure=FailureKind.LAUNCH_FAILED,
                        error=compiled.error,
                    )
                if profile.needs_compile:
                    # A killed compiler can leave a partial artifact behind
                    await cleanup_file(
                        LanguageRegistry.artifact_path(source, profile), context_id, "partial artifact"
                    )
                # No run phase: execution_time_ms stays None
                return ExecutionResult(
                    success=False,
                    stderr=compiled.diagnostics,
                    compile_time_ms=compile_time_ms,
                    compiled=profile.needs_compile,
                    language=profile.language,
                    failure=FailureKind.COMPILE_FAILED,
                    error=compiled.error,
                )
            if compiled.artifact is not None:
                artifact = compiled.artifact

        try:
            result = await self.executor.run(artifact, profile, timeout_seconds=timeout_seconds)
        finally:
            if artifact != source:
                await cleanup_file(artifact, context_id, "compiled artifact")

        if compile_time_ms is not None:
            result = result.model_copy(update={"compile_time_ms": compile_time_ms})
        return result
