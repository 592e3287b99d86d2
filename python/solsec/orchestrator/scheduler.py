"""Admission control for concurrent work."""

import asyncio
from contextlib import asynccontextmanager
from enum import Enum, auto
from typing import Any, AsyncIterator, Dict
import logging

logger = logging.getLogger(__name__)


class ExecutionMode(Enum):
    """Execution modes for rule evaluation and fuzz jobs."""
    PARALLEL = auto()    # Bounded pool of concurrent workers
    SEQUENTIAL = auto()  # One at a time

    @classmethod
    def parse(cls, value) -> "ExecutionMode":
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown execution mode: {value}") from None


class JobScheduler:
    """
    Bounded worker slots.

    Features:
    - Semaphore admission control: never more than ``max_concurrent`` holders
    - Running and peak counters for campaign statistics
    - SEQUENTIAL mode collapses the pool to a single slot
    """

    def __init__(
        self,
        max_concurrent: int = 4,
        mode: ExecutionMode = ExecutionMode.PARALLEL
    ):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        self.mode = mode
        self.max_concurrent = 1 if mode == ExecutionMode.SEQUENTIAL else max_concurrent

        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._running = 0
        self._peak = 0
        self._admitted = 0

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one worker slot for the duration of the block."""
        async with self._semaphore:
            self._running += 1
            self._admitted += 1
            self._peak = max(self._peak, self._running)
            try:
                yield
            finally:
                self._running -= 1

    @property
    def running(self) -> int:
        return self._running

    @property
    def peak(self) -> int:
        return self._peak

    def get_stats(self) -> Dict[str, Any]:
        """Get scheduler statistics."""
        return {
            "mode": self.mode.name,
            "max_concurrent": self.max_concurrent,
            "running": self._running,
            "peak_running": self._peak,
            "admitted": self._admitted,
        }
