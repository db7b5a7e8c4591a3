"""Run phase: execute a runnable artifact under timeout and output bounds.

State machine per request:

    Staged ──launch──> Running ──exit──────────> Completed
       │                  ├──deadline─────────> TimedOut
       │                  └──stdout > cap─────> OutputExceeded
       └──exec fails──> LaunchFailed

TimedOut and OutputExceeded kill the whole process group and report no
exit code. LaunchFailed records no timing.
"""

from __future__ import annotations

from pathlib import Path

from code_sandbox import constants
from code_sandbox._logging import get_logger
from code_sandbox.models import ExecutionResult, FailureKind, LanguageProfile
from code_sandbox.subprocess_utils import ProcessOutcome, ProcessStatus, run_bounded

logger = get_logger(__name__)


class Executor:
    """Launches artifacts as process-group leaders and captures bounded output.

    Attributes:
        work_dir: Directory the program runs in
        max_output_bytes: stdout cap; exceeding it kills the process group
        max_stderr_bytes: stderr cap; exceeding it truncates
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

    @staticmethod
    def build_command(artifact: Path, profile: LanguageProfile) -> list[str]:
        """Interpreter + source, or the compiled artifact on its own."""
        if profile.needs_compile:
            return [str(artifact)]
        return [*profile.run_command, str(artifact)]

    async def run(
        self,
        artifact: Path,
        profile: LanguageProfile,
        *,
        timeout_seconds: float | None = None,
    ) -> ExecutionResult:
        """Run artifact and return its result.

        Args:
            artifact: Compiled binary, or the source for interpreted languages
            profile: Language profile of the artifact
            timeout_seconds: Overrides profile.timeout_seconds

        Returns:
            ExecutionResult; success is True only for exit code 0
        """
        timeout = timeout_seconds if timeout_seconds is not None else profile.timeout_seconds
        context_id = artifact.name

        logger.info(
            "Execution started",
            extra={"context_id": context_id, "language": profile.language.value, "timeout_seconds": timeout},
        )

        outcome = await run_bounded(
            self.build_command(artifact, profile),
            cwd=self.work_dir,
            timeout_seconds=timeout,
            max_stdout_bytes=self.max_output_bytes,
            max_stderr_bytes=self.max_stderr_bytes,
            context_id=context_id,
        )
        result = self._to_result(outcome, profile, timeout)

        logger.info(
            "Execution completed",
            extra={
                "context_id": context_id,
                "success": result.success,
                "exit_code": result.exit_code,
                "failure": result.failure.value if result.failure else None,
                "execution_time_ms": result.execution_time_ms,
            },
        )
        return result

    def _to_result(self, outcome: ProcessOutcome, profile: LanguageProfile, timeout: float) -> ExecutionResult:
        common = {
            "stdout": outcome.stdout,
            "stderr": outcome.stderr,
            "execution_time_ms": outcome.duration_ms,
            "compiled": profile.needs_compile,
            "language": profile.language,
            "stderr_truncated": outcome.stderr_truncated,
        }

        match outcome.status:
            case ProcessStatus.LAUNCH_FAILED:
                return ExecutionResult(
                    success=False,
                    language=profile.language,
                    compiled=profile.needs_compile,
                    failure=FailureKind.LAUNCH_FAILED,
                    error=f"Could not start program: {outcome.launch_error}",
                )
            case ProcessStatus.TIMED_OUT:
                return ExecutionResult(
                    success=False,
                    failure=FailureKind.TIMEOUT,
                    error=f"Execution timed out after {timeout:g} seconds",
                    **common,
                )
            case ProcessStatus.OUTPUT_EXCEEDED:
                return ExecutionResult(
                    success=False,
                    failure=FailureKind.OUTPUT_EXCEEDED,
                    error=f"Output exceeded {self.max_output_bytes} bytes",
                    **common,
                )

        if outcome.exit_code == 0:
            return ExecutionResult(success=True, exit_code=0, **common)
        return ExecutionResult(
            success=False,
            exit_code=outcome.exit_code,
            failure=FailureKind.RUNTIME_ERROR,
            error=_describe_exit(outcome.exit_code),
            **common,
        )


def _describe_exit(exit_code: int | None) -> str:
    # asyncio reports death-by-signal as a negative return code
    if exit_code is not None and exit_code < 0:
        return f"Program terminated by signal {-exit_code}"
    return f"Program exited with code {exit_code}"
