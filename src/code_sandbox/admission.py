"""Admission control for concurrent executions.

Each execution holds one slot from acquire to release. When all slots are
taken, new requests block until a slot frees up or the admission timeout
elapses, which raises CapacityError.

Slot count defaults to 2 x host CPU count (psutil), see
SandboxConfig.get_max_concurrent_executions().
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from code_sandbox._logging import get_logger
from code_sandbox.exceptions import CapacityError

logger = get_logger(__name__)


@dataclass(frozen=True)
class SlotSnapshot:
    """Point-in-time view of slot usage."""

    max_slots: int
    in_use: int
    waiting: int

    @property
    def available(self) -> int:
        return max(0, self.max_slots - self.in_use)


class ExecutionSlots:
    """Bounded pool of execution slots backed by asyncio.Semaphore."""

    def __init__(self, max_slots: int, timeout_seconds: float) -> None:
        if max_slots < 1:
            raise ValueError("max_slots must be >= 1")
        self._max_slots = max_slots
        self._timeout = timeout_seconds
        self._semaphore = asyncio.Semaphore(max_slots)
        self._in_use = 0
        self._waiting = 0

    @property
    def max_slots(self) -> int:
        return self._max_slots

    def snapshot(self) -> SlotSnapshot:
        return SlotSnapshot(max_slots=self._max_slots, in_use=self._in_use, waiting=self._waiting)

    @asynccontextmanager
    async def slot(self, context_id: str) -> AsyncIterator[None]:
        """Hold one slot for the duration of the block.

        Raises:
            CapacityError: No slot became free within the admission timeout
        """
        self._waiting += 1
        try:
            async with asyncio.timeout(self._timeout):
                await self._semaphore.acquire()
        except TimeoutError as e:
            logger.warning(
                "No execution slot available",
                extra={"context_id": context_id, "max_slots": self._max_slots, "timeout_seconds": self._timeout},
            )
            raise CapacityError(
                f"No execution slot available within {self._timeout:g}s",
                context={"context_id": context_id, "max_slots": self._max_slots},
            ) from e
        finally:
            self._waiting -= 1

        self._in_use += 1
        try:
            yield
        finally:
            self._in_use -= 1
            self._semaphore.release()
