"""Exception hierarchy for code-sandbox.

All exceptions inherit from SandboxError base class.

Hierarchy:
    SandboxError (base)
    ├── TransientError (retryable marker base)
    │   └── CapacityError             ← no execution slot within timeout
    ├── PermanentError (non-retryable marker base)
    │   └── WorkDirError              ← work dir / staging I/O failed
    ├── InputValidationError (caller-bug marker base)
    │   ├── UnsupportedLanguageError  ← extension/name not registered
    │   ├── SourceNotFoundError       ← file to execute is missing
    │   ├── CodeValidationError       ← empty/null-byte code
    │   └── FileTooLargeError         ← source above size limit
    └── CleanupError                  ← aggregated temp-file removal failures

Compile and run failures of the submitted program are NOT exceptions.
They are reported as data on ExecutionResult (see models.FailureKind).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class SandboxError(Exception):
    """Base exception for all sandbox errors with structured context.

    Attributes:
        message: Human-readable error message
        context: Dictionary of structured error context for logging/debugging
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


# =============================================================================
# Transient vs Permanent Error Base Classes
# =============================================================================


class TransientError(SandboxError):
    """Base for transient errors that may succeed on retry."""


class PermanentError(SandboxError):
    """Base for permanent errors that won't succeed on retry."""


class CapacityError(TransientError):
    """No execution slot became available within the admission timeout.

    With backoff, capacity may become available as other executions finish.
    """


class WorkDirError(PermanentError):
    """Work directory could not be created, or a file could not be staged.

    Infrastructure failure unrelated to the executed program itself.
    """


# =============================================================================
# Input Validation Errors
# =============================================================================


class InputValidationError(SandboxError):
    """Base for input validation errors (caller bugs, not program failures).

    No process is launched when one of these is raised.
    """


class UnsupportedLanguageError(InputValidationError):
    """File extension or language name is not in the language registry."""

    def __init__(self, language: str, supported: list[str] | None = None):
        supported = supported or []
        super().__init__(
            f"Unsupported language or file type: {language!r}",
            context={"language": language, "supported": supported},
        )
        self.language = language
        self.supported = supported


class SourceNotFoundError(InputValidationError):
    """Source file to execute does not exist or is not a regular file."""

    def __init__(self, path: Path):
        super().__init__(f"Source file not found: {path}", context={"path": str(path)})
        self.path = path


class CodeValidationError(InputValidationError):
    """Code validation failed.

    Raised when the code string is empty, whitespace-only, or contains
    null bytes.
    """


class FileTooLargeError(InputValidationError):
    """Source file exceeds the configured maximum size."""

    def __init__(self, path: Path, size: int, limit: int):
        super().__init__(
            f"File {path.name} is {size} bytes, limit is {limit} bytes",
            context={"path": str(path), "size": size, "limit": limit},
        )
        self.path = path
        self.size = size
        self.limit = limit


# =============================================================================
# Cleanup
# =============================================================================


class CleanupError(SandboxError):
    """One or more temporary files could not be removed.

    Raised once, after every candidate file was attempted.

    Attributes:
        failures: Mapping of path to the error text for each failed removal
        removed: Paths that were removed successfully in the same pass
    """

    def __init__(self, failures: dict[Path, str], removed: list[Path] | None = None):
        details = "; ".join(f"{path.name}: {error}" for path, error in failures.items())
        super().__init__(
            f"Failed to remove {len(failures)} temporary file(s): {details}",
            context={"failures": {str(p): e for p, e in failures.items()}},
        )
        self.failures = failures
        self.removed = removed or []
