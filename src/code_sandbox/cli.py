"""Command-line interface for code-sandbox.

Usage:
    code-sandbox solution.c                      # Run file (language from extension)
    code-sandbox -l js -c 'console.log(1)'       # Run inline code
    echo 'print(1)' | code-sandbox -l python -   # Run from stdin
    code-sandbox --report main.go                # Human-readable report
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn

import click

from code_sandbox import __version__, constants
from code_sandbox._logging import configure_logging
from code_sandbox.config import SandboxConfig
from code_sandbox.environment import Environment
from code_sandbox.exceptions import (
    CapacityError,
    InputValidationError,
    SandboxError,
    UnsupportedLanguageError,
)
from code_sandbox.models import ExecutionResult, FailureKind
from code_sandbox.report import format_report

# Exit codes following Unix conventions
EXIT_SUCCESS = 0
EXIT_FAILURE = 1  # Compile failure, output limit exceeded
EXIT_CLI_ERROR = 2
EXIT_TIMEOUT = 124  # Matches `timeout` command
EXIT_SANDBOX_ERROR = 125
EXIT_CANNOT_EXECUTE = 126  # Matches shell "found but not executable"


def format_error(title: str, message: str, suggestions: list[str] | None = None) -> str:
    """Format an error message following What → Why → Fix pattern.

    Args:
        title: Short error title
        message: Detailed explanation
        suggestions: Optional list of suggestions to fix the issue

    Returns:
        Formatted error string
    """
    lines = [
        click.style(f"Error: {title}", fg="red", bold=True),
        "",
        f"  {message}",
    ]

    if suggestions:
        lines.extend(["", "  Suggestions:"])
        lines.extend(f"    • {suggestion}" for suggestion in suggestions)

    return "\n".join(lines)


def format_result_json(result: ExecutionResult) -> str:
    """Format execution result as JSON."""
    output: dict[str, Any] = result.model_dump(mode="json")
    return json.dumps(output, indent=2)


def exit_code_for(result: ExecutionResult) -> int:
    """Map an execution outcome to the CLI exit code."""
    match result.failure:
        case None:
            return EXIT_SUCCESS
        case FailureKind.TIMEOUT:
            return EXIT_TIMEOUT
        case FailureKind.LAUNCH_FAILED:
            return EXIT_CANNOT_EXECUTE
        case FailureKind.RUNTIME_ERROR if result.exit_code is not None:
            # Killed by signal N is reported the way shells do: 128 + N
            return 128 - result.exit_code if result.exit_code < 0 else result.exit_code
        case _:
            return EXIT_FAILURE


def is_tty() -> bool:
    """Check if stdout is connected to a terminal."""
    return sys.stdout.isatty()


def _echo_failure(result: ExecutionResult) -> None:
    suggestions: list[str] = []
    match result.failure:
        case FailureKind.COMPILE_FAILED:
            title = "Compilation failed" if result.compiled else "Syntax check failed"
        case FailureKind.TIMEOUT:
            title = "Execution timed out"
            suggestions = ["Increase timeout with -t/--timeout", "Check for infinite loops in your code"]
        case FailureKind.OUTPUT_EXCEEDED:
            title = "Output limit exceeded"
            suggestions = ["Raise the limit with --max-output", "Print less output"]
        case FailureKind.LAUNCH_FAILED:
            title = "Program could not be started"
            suggestions = ["Check that the language toolchain is installed and on PATH"]
        case _:
            title = "Program failed"
    click.echo(format_error(title, result.error or "", suggestions), err=True)


async def run_source(
    *,
    path: Path | None,
    code: str | None,
    language: str,
    timeout: float | None,
    config: SandboxConfig,
    json_output: bool,
    report: bool,
    quiet: bool,
) -> int:
    """Execute a file or code string and return the CLI exit code."""
    try:
        async with Environment(config) as env:
            if path is not None:
                result = await env.run_file(path, timeout_seconds=timeout)
            else:
                result = await env.run_code(code or "", language, timeout_seconds=timeout)

    except UnsupportedLanguageError as e:
        click.echo(
            format_error(
                "Unsupported language",
                e.message,
                [f"Supported extensions: {', '.join(e.supported)}"] if e.supported else None,
            ),
            err=True,
        )
        return EXIT_CLI_ERROR

    except InputValidationError as e:
        click.echo(format_error("Invalid input", e.message), err=True)
        return EXIT_CLI_ERROR

    except CapacityError as e:
        click.echo(
            format_error("Sandbox busy", e.message, ["Retry later", "Raise CODE_SANDBOX_MAX_CONCURRENT_EXECUTIONS"]),
            err=True,
        )
        return EXIT_SANDBOX_ERROR

    except SandboxError as e:
        click.echo(
            format_error("Sandbox error", e.message, ["Check that the work directory is writable (--work-dir)"]),
            err=True,
        )
        return EXIT_SANDBOX_ERROR

    if json_output:
        click.echo(format_result_json(result))
    elif report:
        click.echo(format_report(result), nl=False)
    else:
        if result.stdout:
            click.echo(result.stdout, nl=False)
        if result.stderr and result.failure is not FailureKind.COMPILE_FAILED:
            click.echo(result.stderr, nl=False, err=True)
        if result.failure is not None:
            _echo_failure(result)
        elif is_tty() and not quiet:
            click.echo(
                click.style(f"✓ Done in {result.execution_time_ms}ms", fg="green", dim=True),
                err=True,
            )

    return exit_code_for(result)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("source", required=False)
@click.option("-c", "--code", "inline_code", help="Code to execute (alternative to SOURCE)")
@click.option(
    "-l",
    "--language",
    default="python",
    show_default=True,
    help="Language for inline code: name, alias or extension (auto-detected for files)",
)
@click.option(
    "-t",
    "--timeout",
    type=click.FloatRange(min=0, min_open=True, max=constants.MAX_TIMEOUT_SECONDS),
    help="Run timeout in seconds [default: per language]",
)
@click.option("--max-output", type=click.IntRange(min=1), help="stdout limit in bytes")
@click.option("--work-dir", type=click.Path(file_okay=False, path_type=Path), help="Shared work directory")
@click.option("--json", "json_output", is_flag=True, help="Output result as JSON")
@click.option("--report", is_flag=True, help="Print a human-readable report")
@click.option("-q", "--quiet", is_flag=True, help="Suppress progress output and warnings")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, "-V", "--version", prog_name="code-sandbox")
def main(
    source: str | None,
    inline_code: str | None,
    language: str,
    timeout: float | None,
    max_output: int | None,
    work_dir: Path | None,
    json_output: bool,
    report: bool,
    quiet: bool,
    verbose: bool,
) -> NoReturn:
    """Compile and run source code with a timeout and output limit.

    SOURCE can be:

    \b
      - File path:    code-sandbox solution.cpp
      - Stdin:        echo 'print(1)' | code-sandbox -
      - Inline code:  code-sandbox 'print("hello")'

    Files pick their language from the extension; inline code and stdin
    use -l/--language. Processes run with the invoking user's privileges:
    this is not an isolation boundary.

    Examples:

    \b
      code-sandbox main.go                           # Compile and run
      code-sandbox -l bash -c 'echo hi'              # Inline shell
      code-sandbox -t 5 --max-output 4096 script.py  # Tighter limits
      code-sandbox --json main.c | jq .exit_code     # JSON output
    """
    configure_logging(level=logging.DEBUG if verbose else None, quiet=quiet)

    path: Path | None = None
    code: str | None = None

    if inline_code:
        # -c/--code takes precedence
        code = inline_code
    elif source == "-":
        if sys.stdin.isatty():
            raise click.UsageError("No input provided. Pipe code to stdin or use -c flag.")
        code = sys.stdin.read()
    elif source:
        # Existing file runs as a file, anything else is inline code
        candidate = Path(source)
        if candidate.is_file():
            path = candidate
        else:
            code = source
    else:
        raise click.UsageError("No code provided. Provide SOURCE argument or use -c flag.")

    if code is not None and not code.strip():
        raise click.UsageError("Empty code provided.")

    overrides: dict[str, Any] = {"max_concurrent_executions": 1}  # CLI runs one program
    if max_output is not None:
        overrides["max_output_bytes"] = max_output
    if work_dir is not None:
        overrides["work_dir"] = work_dir
    config = SandboxConfig(**overrides)

    exit_code = asyncio.run(
        run_source(
            path=path,
            code=code,
            language=language,
            timeout=timeout,
            config=config,
            json_output=json_output,
            report=report,
            quiet=quiet,
        )
    )

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
