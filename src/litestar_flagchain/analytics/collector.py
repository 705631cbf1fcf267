"""In-memory analytics collector."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from litestar_flagchain.analytics.models import FlagEvaluationEvent

__all__ = ["InMemoryAnalyticsCollector"]

DEFAULT_MAX_SIZE = 10_000


class InMemoryAnalyticsCollector:
    """Keeps the most recent evaluation events in memory.

    Oldest events are evicted once ``max_size`` is reached. Suitable for tests,
    development and single-process deployments feeding an
    :class:`~litestar_flagchain.analytics.AnalyticsAggregator`.

    Args:
        max_size: Maximum number of events retained.

    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE) -> None:
        if max_size <= 0:
            msg = "max_size must be positive"
            raise ValueError(msg)
        self._max_size = max_size
        self._events: deque[FlagEvaluationEvent] = deque(maxlen=max_size)
        self._lock = asyncio.Lock()

    @property
    def max_size(self) -> int:
        return self._max_size

    async def record(self, event: FlagEvaluationEvent) -> None:
        async with self._lock:
            self._events.append(event)

    async def get_events(self, flag_key: str | None = None, limit: int | None = None) -> list[FlagEvaluationEvent]:
        """Return stored events, oldest first.

        Args:
            flag_key: Only return events for this flag.
            limit: Only return the most recent ``limit`` matching events.

        """
        async with self._lock:
            events = [e for e in self._events if flag_key is None or e.flag_key == flag_key]
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    async def get_event_count(self, flag_key: str | None = None) -> int:
        async with self._lock:
            if flag_key is None:
                return len(self._events)
            return sum(1 for e in self._events if e.flag_key == flag_key)

    async def clear(self) -> None:
        async with self._lock:
            self._events.clear()

    async def flush(self) -> None:
        """No-op; events are already in memory."""

    async def close(self) -> None:
        await self.clear()

    def __len__(self) -> int:
        return len(self._events)
