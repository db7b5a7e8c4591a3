"""Advisory security screening for submitted source files.

NOT AN ISOLATION BOUNDARY. check_file_security() rejects oversized files and
unknown file types, then scans the content for a fixed list of suspicious
substrings (process spawning, network libraries, destructive shell commands)
and logs a warning for each hit. Matches never block execution: a program
that avoids these exact strings, or obfuscates them, runs unhindered.
The only enforced bounds on a running program are the wall-clock timeout,
the output cap and the process-group kill.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import aiofiles
import aiofiles.os

from code_sandbox import constants
from code_sandbox._logging import get_logger
from code_sandbox.exceptions import FileTooLargeError
from code_sandbox.languages import LanguageRegistry
from code_sandbox.models import SecurityReport

logger = get_logger(__name__)


def scan_for_suspicious_patterns(
    content: str,
    patterns: Iterable[str] = constants.SUSPICIOUS_PATTERNS,
) -> tuple[str, ...]:
    """Return the patterns that occur in content, in pattern order."""
    return tuple(pattern for pattern in patterns if pattern in content)


async def check_file_security(
    path: Path,
    registry: LanguageRegistry,
    *,
    max_size_bytes: int = constants.MAX_FILE_SIZE,
    patterns: Iterable[str] = constants.SUSPICIOUS_PATTERNS,
) -> SecurityReport:
    """Screen a source file before staging.

    Args:
        path: Source file to screen
        registry: Language registry used to validate the extension
        max_size_bytes: Largest accepted file
        patterns: Substrings that trigger a warning

    Returns:
        SecurityReport listing matched patterns (advisory only)

    Raises:
        UnsupportedLanguageError: Extension not registered
        FileTooLargeError: File larger than max_size_bytes
        FileNotFoundError: path does not exist
    """
    profile = registry.profile_for_path(path)

    size = (await aiofiles.os.stat(path)).st_size
    if size > max_size_bytes:
        raise FileTooLargeError(path, size, max_size_bytes)

    async with aiofiles.open(path, encoding="utf-8", errors="replace") as f:
        content = await f.read()

    findings = scan_for_suspicious_patterns(content, patterns)
    if findings:
        logger.warning(
            "Suspicious content detected (advisory, execution not blocked)",
            extra={"path": str(path), "language": profile.language.value, "patterns": list(findings)},
        )

    return SecurityReport(path=path, size_bytes=size, language=profile.language, findings=findings)
