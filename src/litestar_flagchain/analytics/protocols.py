"""Protocols for analytics collectors and sinks."""

from __future__ import annotations

from collections.abc import Awaitable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from litestar_flagchain.analytics.models import FlagEvaluationEvent

__all__ = ["AnalyticsCollector", "AnalyticsSink"]


@runtime_checkable
class AnalyticsCollector(Protocol):
    """Stores evaluation events for later aggregation."""

    async def record(self, event: FlagEvaluationEvent) -> None:
        """Record one evaluation event."""
        ...

    async def flush(self) -> None:
        """Push any buffered events to their destination."""
        ...

    async def close(self) -> None:
        """Release resources held by the collector."""
        ...


@runtime_checkable
class AnalyticsSink(Protocol):
    """Fire-and-forget destination for evaluation events.

    ``track`` may be synchronous or return an awaitable. Failures are logged by
    the dispatcher and never reach flag callers.
    """

    def track(self, event_name: str, properties: dict[str, Any]) -> None | Awaitable[None]: ...
