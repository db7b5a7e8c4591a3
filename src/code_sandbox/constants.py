"""Constants for code-sandbox configuration and limits."""

from typing import Final

# ============================================================================
# Execution Timeouts
# ============================================================================

DEFAULT_TIMEOUT_SECONDS: Final[int] = 30
"""Default run budget for interpreted languages, in seconds."""

MAX_TIMEOUT_SECONDS: Final[int] = 300
"""Maximum run budget in seconds (5 minutes)."""

COMPILED_TIMEOUT_MULTIPLIER: Final[int] = 2
"""Compiled languages get this multiple of the base budget (compile + run cost)."""

READER_DRAIN_TIMEOUT_SECONDS: Final[float] = 2.0
"""How long to wait for pipe readers to hit EOF after the process group is gone."""

EXIT_POLL_INTERVAL_SECONDS: Final[float] = 0.005
"""Poll interval for the leader's exit status, independent of pipe EOF."""

ADMISSION_TIMEOUT_SECONDS: Final[float] = 300.0
"""Maximum time to wait for an execution slot before raising CapacityError."""

# ============================================================================
# Output and Input Limits
# ============================================================================

MAX_STDOUT_SIZE: Final[int] = 1024 * 1024  # 1 MiB
"""Default stdout cap in bytes. Exceeding it kills the process group."""

MAX_STDERR_SIZE: Final[int] = 100_000  # 100 KB
"""Default stderr cap in bytes. Exceeding it only truncates."""

MAX_FILE_SIZE: Final[int] = 10 * 1024 * 1024  # 10 MiB
"""Maximum accepted source file size in bytes."""

READ_CHUNK_SIZE: Final[int] = 64 * 1024
"""Pipe read size for bounded capture."""

# ============================================================================
# Work Directory
# ============================================================================

DEFAULT_WORK_DIR: Final[str] = "/tmp/code-sandbox"
"""Default shared working directory for staged sources and artifacts."""

TEMP_FILE_PREFIX: Final[str] = "tmp_"
"""Prefix for every file the sandbox creates; marks it eligible for sweeping."""

TEMP_FILE_MAX_AGE_SECONDS: Final[int] = 600
"""Periodic sweeps skip temp files younger than this (protects in-flight requests)."""

# ============================================================================
# Launch Retry
# ============================================================================

LAUNCH_RETRY_ATTEMPTS: Final[int] = 5
"""Attempts for exec of a freshly written binary that reports ETXTBSY."""

LAUNCH_RETRY_MAX_WAIT_SECONDS: Final[float] = 0.2
"""Upper bound for the jittered backoff between launch attempts."""

# ============================================================================
# Advisory Security Screening
# ============================================================================

SUSPICIOUS_PATTERNS: Final[tuple[str, ...]] = (
    # Process spawning
    "os.system",
    "subprocess",
    "os.popen",
    "os.fork",
    "child_process",
    "os/exec",
    "syscall.Exec",
    "system(",
    "popen(",
    "fork(",
    "execve(",
    # Network libraries
    "import socket",
    "import requests",
    "urllib",
    "http.client",
    "require('http')",
    'require("http")',
    "require('net')",
    'require("net")',
    "net/http",
    "sys/socket.h",
    # Destructive shell commands
    "rm -rf",
    "mkfs",
    "dd if=",
    ":(){ :|:& };:",
    "shutdown",
    "chmod 777",
)
"""Substrings that trigger an advisory warning. Matching never blocks execution."""
