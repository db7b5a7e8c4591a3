"""Tests for the code-sandbox command-line interface.

Uses click's CliRunner; programs still run for real in a temp work dir.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from code_sandbox.cli import (
    EXIT_CANNOT_EXECUTE,
    EXIT_CLI_ERROR,
    EXIT_FAILURE,
    EXIT_SUCCESS,
    EXIT_TIMEOUT,
    exit_code_for,
    format_error,
    main,
)
from code_sandbox.models import ExecutionResult, FailureKind, Language
from tests.conftest import requires_bash, requires_python3


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _invoke(runner: CliRunner, work_dir: Path, *args: str, stdin: str | None = None):
    return runner.invoke(main, ["--work-dir", str(work_dir), "-q", *args], input=stdin)


# ============================================================================
# Exit Code Mapping
# ============================================================================


class TestExitCodeFor:
    @pytest.mark.parametrize(
        ("failure", "exit_code", "expected"),
        [
            (None, 0, EXIT_SUCCESS),
            (FailureKind.RUNTIME_ERROR, 3, 3),
            (FailureKind.RUNTIME_ERROR, -9, 137),
            (FailureKind.TIMEOUT, None, EXIT_TIMEOUT),
            (FailureKind.LAUNCH_FAILED, None, EXIT_CANNOT_EXECUTE),
            (FailureKind.COMPILE_FAILED, None, EXIT_FAILURE),
            (FailureKind.OUTPUT_EXCEEDED, None, EXIT_FAILURE),
        ],
    )
    def test_mapping(self, failure: FailureKind | None, exit_code: int | None, expected: int) -> None:
        result = ExecutionResult(success=failure is None, language=Language.C, failure=failure, exit_code=exit_code)
        assert exit_code_for(result) == expected


def test_format_error_lists_suggestions() -> None:
    text = format_error("Bad", "Something broke", ["Try this", "Or that"])
    assert "Error: Bad" in text
    assert "Something broke" in text
    assert "• Try this" in text


# ============================================================================
# Invocation
# ============================================================================


class TestMain:
    @requires_bash
    def test_inline_code(self, runner: CliRunner, work_dir: Path) -> None:
        result = _invoke(runner, work_dir, "-l", "bash", "-c", "echo hi")
        assert result.exit_code == EXIT_SUCCESS
        assert "hi" in result.output

    @requires_python3
    def test_file_source(self, runner: CliRunner, work_dir: Path, tmp_path: Path) -> None:
        source = tmp_path / "prog.py"
        source.write_text("print('from file')\n")
        result = _invoke(runner, work_dir, str(source))
        assert result.exit_code == EXIT_SUCCESS
        assert "from file" in result.output

    @requires_bash
    def test_stdin_source(self, runner: CliRunner, work_dir: Path) -> None:
        result = _invoke(runner, work_dir, "-l", "sh", "-", stdin="echo piped\n")
        assert result.exit_code == EXIT_SUCCESS
        assert "piped" in result.output

    @requires_bash
    def test_program_exit_code_propagates(self, runner: CliRunner, work_dir: Path) -> None:
        result = _invoke(runner, work_dir, "-l", "bash", "-c", "exit 7")
        assert result.exit_code == 7

    @requires_bash
    def test_timeout(self, runner: CliRunner, work_dir: Path) -> None:
        result = _invoke(runner, work_dir, "-l", "bash", "-t", "0.5", "-c", "sleep 30")
        assert result.exit_code == EXIT_TIMEOUT

    @requires_bash
    def test_json_output(self, runner: CliRunner, work_dir: Path) -> None:
        result = _invoke(runner, work_dir, "--json", "-l", "bash", "-c", "echo json")
        assert result.exit_code == EXIT_SUCCESS
        payload = json.loads(result.stdout)
        assert payload["stdout"] == "json\n"
        assert payload["language"] == "bash"
        assert payload["failure"] is None

    @requires_bash
    def test_report_output(self, runner: CliRunner, work_dir: Path) -> None:
        result = _invoke(runner, work_dir, "--report", "-l", "bash", "-c", "echo reported")
        assert result.output.startswith("Execution succeeded (bash")

    @requires_bash
    def test_syntax_error_exit_code(self, runner: CliRunner, work_dir: Path) -> None:
        result = _invoke(runner, work_dir, "-l", "bash", "-c", "if then")
        assert result.exit_code == EXIT_FAILURE

    def test_unknown_language(self, runner: CliRunner, work_dir: Path) -> None:
        result = _invoke(runner, work_dir, "-l", "cobol", "-c", "DISPLAY 'HI'")
        assert result.exit_code == EXIT_CLI_ERROR
        assert "Unsupported language" in result.output

    def test_no_source(self, runner: CliRunner, work_dir: Path) -> None:
        result = _invoke(runner, work_dir)
        assert result.exit_code == EXIT_CLI_ERROR

    def test_empty_code(self, runner: CliRunner, work_dir: Path) -> None:
        result = _invoke(runner, work_dir, "-c", "   ")
        assert result.exit_code == EXIT_CLI_ERROR

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "code-sandbox" in result.output
