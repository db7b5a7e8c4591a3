"""Compile step: build native artifacts or syntax-check interpreted sources.

Compiled profiles run `command + compile_args + [output_flag, artifact] + [source]`.
Interpreted profiles run `command + compile_args + [source]` as a syntax
check and hand the source itself on as the runnable artifact.

check_syntax() runs `command + syntax_check_args + [source]` instead: a
syntax-only pass (gcc -fsyntax-only, go vet, ...) that builds nothing.

Every failure comes back as a CompileResult with a CompileFailureReason;
nothing raises for a bad program.
"""

from __future__ import annotations

import asyncio
import os
import stat
from pathlib import Path

import aiofiles.os

from code_sandbox import constants
from code_sandbox._logging import get_logger
from code_sandbox.languages import LanguageRegistry
from code_sandbox.models import CompileFailureReason, CompileResult, LanguageProfile
from code_sandbox.subprocess_utils import ProcessStatus, run_bounded

logger = get_logger(__name__)


class Compiler:
    """Runs a profile's compile or syntax-check command under its own timeout.

    Attributes:
        work_dir: Directory the compiler runs in
        max_output_bytes: Cap on captured compiler stdout
        max_stderr_bytes: Cap on captured compiler diagnostics
    """

    def __init__(
        self,
        work_dir: Path,
        *,
        max_output_bytes: int = constants.MAX_STDOUT_SIZE,
        max_stderr_bytes: int = constants.MAX_STDERR_SIZE,
    ) -> None:
        self.work_dir = work_dir
        self.max_output_bytes = max_output_bytes
        self.max_stderr_bytes = max_stderr_bytes

    def build_command(self, source: Path, profile: LanguageProfile) -> tuple[list[str], Path]:
        """Compiler argv and the artifact it is expected to produce."""
        argv = [profile.command, *profile.compile_args]
        if not profile.needs_compile:
            return [*argv, str(source)], source

        artifact = LanguageRegistry.artifact_path(source, profile)
        if profile.output_flag:
            argv += [profile.output_flag, str(artifact)]
        return [*argv, str(source)], artifact

    def build_syntax_check_command(self, source: Path, profile: LanguageProfile) -> list[str]:
        """Argv for a syntax-only check of source.

        Raises:
            ValueError: Compiled profile without syntax_check_args; its
                compile_args would build an artifact
        """
        args = profile.syntax_check_args
        if args is None:
            if profile.needs_compile:
                raise ValueError(f"No syntax-only check configured for {profile.language.value}")
            args = profile.compile_args
        return [profile.command, *args, str(source)]

    async def compile(
        self,
        source: Path,
        profile: LanguageProfile,
        *,
        timeout_seconds: float | None = None,
    ) -> CompileResult:
        """Compile (or syntax-check) source according to profile.

        Args:
            source: Staged source file inside the work directory
            profile: Language profile for the source
            timeout_seconds: Overrides profile.compile_timeout_seconds

        Returns:
            CompileResult; success carries the runnable artifact path
        """
        argv, artifact = self.build_command(source, profile)
        return await self._run_tool(
            argv,
            profile,
            context_id=source.name,
            timeout_seconds=timeout_seconds,
            artifact=artifact,
            builds_artifact=profile.needs_compile,
        )

    async def check_syntax(
        self,
        source: Path,
        profile: LanguageProfile,
        *,
        timeout_seconds: float | None = None,
    ) -> CompileResult:
        """Check source for syntax errors without building anything.

        Works for compiled languages too; the result never carries an
        artifact and nothing is written to the work directory.
        """
        argv = self.build_syntax_check_command(source, profile)
        return await self._run_tool(
            argv,
            profile,
            context_id=source.name,
            timeout_seconds=timeout_seconds,
            artifact=None,
            builds_artifact=False,
        )

    async def _run_tool(
        self,
        argv: list[str],
        profile: LanguageProfile,
        *,
        context_id: str,
        timeout_seconds: float | None,
        artifact: Path | None,
        builds_artifact: bool,
    ) -> CompileResult:
        timeout = timeout_seconds if timeout_seconds is not None else profile.compile_timeout_seconds
        step = "Compilation" if builds_artifact else "Syntax check"
        tool = "compiler" if profile.needs_compile else "syntax checker"

        logger.info(
            "Compiling" if builds_artifact else "Checking syntax",
            extra={"context_id": context_id, "language": profile.language.value, "command": profile.command},
        )

        outcome = await run_bounded(
            argv,
            cwd=self.work_dir,
            timeout_seconds=timeout,
            max_stdout_bytes=self.max_output_bytes,
            max_stderr_bytes=self.max_stderr_bytes,
            context_id=context_id,
        )

        match outcome.status:
            case ProcessStatus.LAUNCH_FAILED:
                return CompileResult(
                    success=False,
                    reason=CompileFailureReason.LAUNCH_FAILED,
                    error=f"Could not start {tool}: {outcome.launch_error}",
                )
            case ProcessStatus.TIMED_OUT:
                logger.warning(
                    f"{step} timed out",
                    extra={"context_id": context_id, "timeout_seconds": timeout},
                )
                return CompileResult(
                    success=False,
                    reason=CompileFailureReason.TIMEOUT,
                    error=f"{step} timed out after {timeout:g} seconds",
                    diagnostics=outcome.stderr,
                    compile_time_ms=outcome.duration_ms,
                )
            case ProcessStatus.OUTPUT_EXCEEDED:
                return CompileResult(
                    success=False,
                    reason=CompileFailureReason.OUTPUT_EXCEEDED,
                    error=f"Compiler output exceeded {self.max_output_bytes} bytes",
                    diagnostics=outcome.stderr,
                    compile_time_ms=outcome.duration_ms,
                )

        # Some checkers report on stdout instead of stderr
        diagnostics = outcome.stderr or outcome.stdout
        if outcome.exit_code != 0:
            exit_code = outcome.exit_code
            known = profile.known_exit_codes.get(exit_code) if exit_code is not None else None
            if known:
                error = f"{known} (exit code {exit_code}): {diagnostics}"
            else:
                error = f"Compiler exited with code {exit_code}: {diagnostics}"
            logger.info(
                f"{step} failed",
                extra={"context_id": context_id, "exit_code": exit_code},
            )
            return CompileResult(
                success=False,
                reason=CompileFailureReason.NON_ZERO_EXIT,
                error=error,
                diagnostics=diagnostics,
                exit_code=exit_code,
                compile_time_ms=outcome.duration_ms,
            )

        if builds_artifact and artifact is not None:
            if not await aiofiles.os.path.isfile(artifact):
                logger.error(
                    "Compiler reported success without producing an artifact",
                    extra={"context_id": context_id, "artifact": str(artifact)},
                )
                return CompileResult(
                    success=False,
                    reason=CompileFailureReason.ARTIFACT_MISSING,
                    error="Compilation succeeded but produced no output file",
                    diagnostics=diagnostics,
                    exit_code=0,
                    compile_time_ms=outcome.duration_ms,
                )
            await _make_executable(artifact)

        return CompileResult(
            success=True,
            artifact=artifact,
            diagnostics=diagnostics,
            exit_code=0,
            compile_time_ms=outcome.duration_ms,
        )


async def _make_executable(path: Path) -> None:
    mode = (await aiofiles.os.stat(path)).st_mode
    await asyncio.to_thread(os.chmod, path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
