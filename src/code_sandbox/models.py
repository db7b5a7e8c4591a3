"""Data models for code-sandbox."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class Language(str, Enum):
    """Supported programming languages."""

    PYTHON = "python"
    JAVASCRIPT = "javascript"
    GO = "go"
    C = "c"
    CPP = "cpp"
    BASH = "bash"


class FailureKind(str, Enum):
    """Why an execution did not succeed.

    Each kind implies a different remediation, so reports never merge them.
    """

    COMPILE_FAILED = "compile_failed"
    LAUNCH_FAILED = "launch_failed"
    RUNTIME_ERROR = "runtime_error"
    TIMEOUT = "timeout"
    OUTPUT_EXCEEDED = "output_exceeded"


class CompileFailureReason(str, Enum):
    """Why a compile (or syntax check) step failed."""

    NON_ZERO_EXIT = "non_zero_exit"
    TIMEOUT = "timeout"
    ARTIFACT_MISSING = "artifact_missing"
    LAUNCH_FAILED = "launch_failed"
    OUTPUT_EXCEEDED = "output_exceeded"


class LanguageProfile(BaseModel):
    """Static build/run profile for one language.

    Created once when the registry is built and shared read-only by every
    concurrent execution.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    language: Language
    extensions: tuple[str, ...] = Field(description="File extensions, lowercase with leading dot")
    command: str = Field(description="Compiler, or syntax checker for interpreted languages")
    compile_args: tuple[str, ...] = ()
    syntax_check_args: tuple[str, ...] | None = Field(
        default=None,
        description="Arguments for a syntax-only check that writes no artifact; None reuses compile_args",
    )
    output_flag: str | None = Field(default=None, description="Flag preceding the artifact path (e.g. -o)")
    run_command: tuple[str, ...] = Field(
        default=(),
        description="Interpreter argv prefix; empty when the artifact is executed directly",
    )
    needs_compile: bool = False
    artifact_suffix: str = Field(default="", description="Appended to the extension-less source path")
    timeout_seconds: int = Field(ge=1, description="Wall-clock run budget")
    compile_timeout_seconds: int = Field(ge=1, description="Wall-clock compile/check budget")
    known_exit_codes: dict[int, str] = Field(default_factory=dict)


class CompileResult(BaseModel):
    """Outcome of the compile or syntax-check step.

    On success `artifact` is the runnable file: the compiled binary for
    compiled languages, the source itself for interpreted ones. A
    syntax-only check produces no artifact and leaves it None.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    artifact: Path | None = None
    reason: CompileFailureReason | None = None
    error: str | None = Field(default=None, description="Human-readable failure text")
    diagnostics: str = Field(default="", description="Raw compiler stderr")
    exit_code: int | None = None
    compile_time_ms: int | None = None


class ExecutionResult(BaseModel):
    """Result of one execution request. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = Field(default=None, description="None when killed or never started")
    execution_time_ms: int | None = Field(default=None, description="Run phase wall clock; None if no run phase")
    compile_time_ms: int | None = None
    compiled: bool = False
    language: Language
    failure: FailureKind | None = None
    error: str | None = Field(default=None, description="Failure summary (compiler message, timeout, ...)")
    stderr_truncated: bool = False


class SecurityReport(BaseModel):
    """Advisory screening outcome. Findings never block execution."""

    model_config = ConfigDict(frozen=True)

    path: Path
    size_bytes: int
    language: Language
    findings: tuple[str, ...] = ()

    @property
    def suspicious(self) -> bool:
        return bool(self.findings)


class CleanupReport(BaseModel):
    """Files removed by one temp-file sweep."""

    removed: list[Path] = Field(default_factory=list)
    skipped: int = Field(default=0, description="Candidates younger than the age threshold")
