"""Process-wide execution counters.

Guarded by a threading.Lock so that environments running on different
event loops (or threads) can share one instance.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from code_sandbox.models import ExecutionResult, FailureKind


@dataclass(frozen=True)
class MetricsSnapshot:
    started_at: float
    executions: int
    succeeded: int
    failures: dict[FailureKind, int] = field(default_factory=dict)


class ExecutionMetrics:
    """Counts completed executions by outcome."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()
        self._executions = 0
        self._succeeded = 0
        self._failures: dict[FailureKind, int] = dict.fromkeys(FailureKind, 0)

    @property
    def executions(self) -> int:
        with self._lock:
            return self._executions

    def record(self, result: ExecutionResult) -> None:
        with self._lock:
            self._executions += 1
            if result.success:
                self._succeeded += 1
            elif result.failure is not None:
                self._failures[result.failure] += 1

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                started_at=self._started_at,
                executions=self._executions,
                succeeded=self._succeeded,
                failures=dict(self._failures),
            )


# Shared by every Environment unless one is given its own instance.
GLOBAL_METRICS = ExecutionMetrics()
