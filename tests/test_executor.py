"""Tests for Executor.

Maps every run outcome to an ExecutionResult: success, runtime error,
signal death, timeout, output overflow and launch failure.
"""

from pathlib import Path

import pytest

from code_sandbox.executor import Executor
from code_sandbox.languages import LanguageRegistry
from code_sandbox.models import FailureKind, Language, LanguageProfile
from tests.conftest import requires_bash, skip_unless_posix

# ============================================================================
# Helpers
# ============================================================================


@pytest.fixture
def bash_profile() -> LanguageProfile:
    return LanguageRegistry.default(base_timeout_seconds=10).resolve("bash")


@pytest.fixture
def executor(work_dir: Path) -> Executor:
    return Executor(work_dir, max_output_bytes=4096, max_stderr_bytes=512)


def _script(work_dir: Path, body: str) -> Path:
    path = work_dir / "tmp_run.sh"
    path.write_text(body)
    return path


# ============================================================================
# Command Construction
# ============================================================================


class TestBuildCommand:
    def test_interpreted(self) -> None:
        profile = LanguageRegistry.default().resolve("python")
        assert Executor.build_command(Path("/w/tmp_1.py"), profile) == ["python3", "/w/tmp_1.py"]

    def test_compiled_runs_artifact_directly(self) -> None:
        profile = LanguageRegistry.default().resolve("c")
        assert Executor.build_command(Path("/w/tmp_1.out"), profile) == ["/w/tmp_1.out"]


# ============================================================================
# Outcomes
# ============================================================================


@requires_bash
class TestRunOutcomes:
    async def test_success(self, executor: Executor, bash_profile: LanguageProfile, work_dir: Path) -> None:
        result = await executor.run(_script(work_dir, "echo hello\n"), bash_profile)
        assert result.success
        assert result.failure is None
        assert result.stdout == "hello\n"
        assert result.exit_code == 0
        assert result.language is Language.BASH
        assert result.compiled is False
        assert result.execution_time_ms is not None

    async def test_runtime_error(self, executor: Executor, bash_profile: LanguageProfile, work_dir: Path) -> None:
        result = await executor.run(_script(work_dir, "echo oops >&2\nexit 4\n"), bash_profile)
        assert not result.success
        assert result.failure is FailureKind.RUNTIME_ERROR
        assert result.exit_code == 4
        assert result.stderr == "oops\n"
        assert result.error == "Program exited with code 4"

    @skip_unless_posix
    async def test_killed_by_signal(self, executor: Executor, bash_profile: LanguageProfile, work_dir: Path) -> None:
        result = await executor.run(_script(work_dir, "kill -SEGV $$\n"), bash_profile)
        assert result.failure is FailureKind.RUNTIME_ERROR
        assert result.exit_code == -11
        assert result.error == "Program terminated by signal 11"

    async def test_timeout(self, executor: Executor, bash_profile: LanguageProfile, work_dir: Path) -> None:
        result = await executor.run(_script(work_dir, "sleep 30\n"), bash_profile, timeout_seconds=0.5)
        assert not result.success
        assert result.failure is FailureKind.TIMEOUT
        assert result.exit_code is None
        assert result.error == "Execution timed out after 0.5 seconds"
        assert result.execution_time_ms is not None
        assert 490 <= result.execution_time_ms < (0.5 + 1.5) * 1000

    async def test_output_exceeded(self, executor: Executor, bash_profile: LanguageProfile, work_dir: Path) -> None:
        result = await executor.run(_script(work_dir, "while true; do echo xxxxxxxx; done\n"), bash_profile)
        assert not result.success
        assert result.failure is FailureKind.OUTPUT_EXCEEDED
        assert result.exit_code is None
        assert len(result.stdout) <= 4096
        assert result.error == "Output exceeded 4096 bytes"

    async def test_stderr_truncated_run_continues(
        self, executor: Executor, bash_profile: LanguageProfile, work_dir: Path
    ) -> None:
        result = await executor.run(
            _script(work_dir, "head -c 2000 /dev/zero | tr '\\0' e >&2\necho finished\n"),
            bash_profile,
        )
        assert result.success
        assert result.stderr_truncated
        assert len(result.stderr) == 512
        assert result.stdout == "finished\n"


class TestLaunchFailed:
    async def test_missing_artifact(self, executor: Executor, work_dir: Path) -> None:
        profile = LanguageRegistry.default().resolve("c")
        result = await executor.run(work_dir / "tmp_missing.out", profile)
        assert not result.success
        assert result.failure is FailureKind.LAUNCH_FAILED
        assert result.execution_time_ms is None
        assert result.exit_code is None
        assert result.error is not None
        assert result.error.startswith("Could not start program: ")
