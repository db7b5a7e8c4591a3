"""code-sandbox: Compile and run untrusted source code with bounded time and output.

A Python library that executes Python, JavaScript, Go, C, C++ and Bash
programs in a shared work directory, killing the whole process tree on
timeout or output overflow and reporting every outcome as data.

Quick Start:
    ```python
    from code_sandbox import Environment

    async with Environment() as env:
        report = await env.execute_code("print('hello')", "python")
        print(report)  # "Execution succeeded (python, ...)\\n\\nOutput:\\nhello\\n"
    ```

Structured results:
    ```python
    from code_sandbox import Environment, FailureKind, SandboxConfig

    config = SandboxConfig(default_timeout_seconds=5, max_output_bytes=64 * 1024)
    async with Environment(config) as env:
        result = await env.run_file(Path("solution.cpp"))
        if result.failure is FailureKind.COMPILE_FAILED:
            print(result.error)
    ```

Security model:
    NOT AN ISOLATION BOUNDARY. Programs run with the caller's privileges.
    Enforced bounds are the wall-clock timeout, the stdout cap and the
    process-group kill. Content screening only logs warnings.

Requirements:
    - Python 3.12+
    - Toolchains for the languages you use: python3, node, go, gcc, g++, bash
"""

from code_sandbox.config import SandboxConfig
from code_sandbox.environment import Environment
from code_sandbox.exceptions import (
    CapacityError,
    CleanupError,
    CodeValidationError,
    FileTooLargeError,
    InputValidationError,
    PermanentError,
    SandboxError,
    SourceNotFoundError,
    TransientError,
    UnsupportedLanguageError,
    WorkDirError,
)
from code_sandbox.languages import LanguageRegistry
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

__all__ = [
    "CapacityError",
    "CleanupError",
    "CleanupReport",
    "CodeValidationError",
    "CompileFailureReason",
    "CompileResult",
    "Environment",
    "ExecutionResult",
    "FailureKind",
    "FileTooLargeError",
    "InputValidationError",
    "Language",
    "LanguageProfile",
    "LanguageRegistry",
    "PermanentError",
    "SandboxConfig",
    "SandboxError",
    "SecurityReport",
    "SourceNotFoundError",
    "TransientError",
    "UnsupportedLanguageError",
    "WorkDirError",
    "format_report",
]

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("code-sandbox")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"
