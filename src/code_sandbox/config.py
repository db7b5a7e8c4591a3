"""Sandbox configuration for code-sandbox.

SandboxConfig holds every tunable of the execution pipeline. Values come
from keyword arguments first, then CODE_SANDBOX_* environment variables,
then the defaults below.

Example:
    ```python
    from code_sandbox import Environment, SandboxConfig

    # Default configuration
    async with Environment() as env:
        report = await env.execute_code("print('hello')", "python")

    # Custom configuration
    config = SandboxConfig(
        work_dir=Path("/var/tmp/runs"),
        default_timeout_seconds=10,
        max_output_bytes=64 * 1024,
    )
    async with Environment(config) as env:
        report = await env.execute("solution.cpp")
    ```
"""

from __future__ import annotations

from pathlib import Path

import psutil
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from code_sandbox import constants


class SandboxConfig(BaseSettings):
    """Configuration for Environment.

    All settings can be overridden via environment variables with the
    CODE_SANDBOX_ prefix, e.g. CODE_SANDBOX_DEFAULT_TIMEOUT_SECONDS=5.

    Attributes:
        work_dir: Shared directory for staged sources and compiled artifacts.
        default_timeout_seconds: Run budget for interpreted languages.
            Compiled languages get twice this value.
        max_output_bytes: stdout cap; exceeding it kills the process group.
        max_stderr_bytes: stderr cap; exceeding it only truncates.
        max_file_size_bytes: Largest source file accepted by screening.
        max_concurrent_executions: Execution slots. None sizes from CPU count.
        admission_timeout_seconds: How long a request waits for a slot.
        syntax_check_interpreted: Run the syntax checker before interpreted code.
        cleanup_interval_seconds: Period of the background temp-file sweep.
            None disables the sweeper.
        temp_file_max_age_seconds: Periodic sweeps skip younger temp files.
    """

    model_config = SettingsConfigDict(
        env_prefix="CODE_SANDBOX_",
        frozen=True,  # Immutable after creation
        extra="forbid",  # Reject unknown fields
    )

    # Paths
    work_dir: Path = Field(
        default=Path(constants.DEFAULT_WORK_DIR),
        description="Shared working directory for staged files",
    )

    # Limits
    default_timeout_seconds: int = Field(
        default=constants.DEFAULT_TIMEOUT_SECONDS,
        ge=1,
        le=constants.MAX_TIMEOUT_SECONDS,
        description="Base run budget in seconds",
    )
    max_output_bytes: int = Field(
        default=constants.MAX_STDOUT_SIZE,
        ge=1,
        description="stdout cap in bytes",
    )
    max_stderr_bytes: int = Field(
        default=constants.MAX_STDERR_SIZE,
        ge=1,
        description="stderr cap in bytes",
    )
    max_file_size_bytes: int = Field(
        default=constants.MAX_FILE_SIZE,
        ge=1,
        description="Maximum source file size",
    )

    # Admission
    max_concurrent_executions: int | None = Field(
        default=None,
        ge=1,
        le=1024,
        description="Concurrent execution slots (None = 2 x CPU count)",
    )
    admission_timeout_seconds: float = Field(
        default=constants.ADMISSION_TIMEOUT_SECONDS,
        gt=0,
        description="Seconds to wait for a free slot",
    )

    # Features
    syntax_check_interpreted: bool = Field(
        default=True,
        description="Syntax-check interpreted sources before running them",
    )

    # Temp-file sweeping
    cleanup_interval_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Background sweep period (None disables)",
    )
    temp_file_max_age_seconds: int = Field(
        default=constants.TEMP_FILE_MAX_AGE_SECONDS,
        ge=0,
        description="Minimum age before a periodic sweep removes a temp file",
    )

    def get_max_concurrent_executions(self) -> int:
        """Resolve the slot count, sizing from the host CPU count when unset."""
        if self.max_concurrent_executions is not None:
            return self.max_concurrent_executions
        return (psutil.cpu_count() or 1) * 2
