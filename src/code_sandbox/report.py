"""Human-readable rendering of an ExecutionResult.

Each failure kind gets its own headline so a reader can tell "did not
compile" from "ran but failed" from "timed out" from "too much output".
"""

from __future__ import annotations

from code_sandbox.models import ExecutionResult, FailureKind


def _format_ms(ms: int | None) -> str:
    if ms is None:
        return "n/a"
    if ms < 1000:
        return f"{ms}ms"
    return f"{ms / 1000:.2f}s"


def _timing_line(result: ExecutionResult) -> str:
    parts = []
    if result.compiled and result.compile_time_ms is not None:
        parts.append(f"compile {_format_ms(result.compile_time_ms)}")
    parts.append(f"run {_format_ms(result.execution_time_ms)}")
    return ", ".join(parts)


def _headline(result: ExecutionResult) -> str:
    name = result.language.value
    match result.failure:
        case None:
            return f"Execution succeeded ({name}, {_timing_line(result)})"
        case FailureKind.COMPILE_FAILED:
            step = "Compilation" if result.compiled else "Syntax check"
            return f"{step} failed ({name}), program was not run"
        case FailureKind.LAUNCH_FAILED:
            return f"Program could not be started ({name})"
        case FailureKind.TIMEOUT:
            return f"Execution timed out ({name}, {_timing_line(result)})"
        case FailureKind.OUTPUT_EXCEEDED:
            return f"Output limit exceeded, program was stopped ({name}, {_timing_line(result)})"
        case FailureKind.RUNTIME_ERROR:
            return f"Execution failed with exit code {result.exit_code} ({name}, {_timing_line(result)})"


def format_report(result: ExecutionResult) -> str:
    """Render result as plain text: headline, error, output sections."""
    sections = [_headline(result)]

    if result.error and result.failure is not None:
        sections.append(result.error.rstrip())

    if result.stdout:
        title = "Output:" if result.success else "Program output:"
        if result.failure is FailureKind.OUTPUT_EXCEEDED:
            title = "Program output (truncated):"
        sections.append(f"{title}\n{result.stdout.rstrip()}")

    if result.stderr and result.failure is not FailureKind.COMPILE_FAILED:
        # Compile diagnostics are already part of result.error
        title = "Errors (truncated):" if result.stderr_truncated else "Errors:"
        sections.append(f"{title}\n{result.stderr.rstrip()}")

    return "\n\n".join(sections) + "\n"
