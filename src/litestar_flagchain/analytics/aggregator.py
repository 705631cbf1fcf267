"""Metric aggregation over collected evaluation events."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from litestar_flagchain.analytics.models import FlagMetrics

if TYPE_CHECKING:
    from litestar_flagchain.analytics.collector import InMemoryAnalyticsCollector
    from litestar_flagchain.analytics.models import FlagEvaluationEvent

__all__ = ["AnalyticsAggregator"]

DEFAULT_PERCENTILES = (50.0, 90.0, 99.0)


def _percentile(sorted_values: Sequence[float], percentile: float) -> float:
    """Linear-interpolated percentile of pre-sorted values."""
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return sorted_values[0]
    rank = (len(sorted_values) - 1) * percentile / 100
    lower = int(rank)
    upper = min(lower + 1, len(sorted_values) - 1)
    fraction = rank - lower
    return sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * fraction


def _rate(part: int, total: int) -> float:
    return (part / total) * 100 if total else 0.0


class AnalyticsAggregator:
    """Computes per-flag metrics from an in-memory collector.

    Every query optionally takes ``window_seconds`` to only consider events
    newer than that; ``None`` means all retained events.

    Args:
        collector: The collector holding the events.

    Example:
        >>> aggregator = AnalyticsAggregator(collector)
        >>> metrics = await aggregator.get_flag_metrics("new-checkout")  # doctest: +SKIP

    """

    def __init__(self, collector: InMemoryAnalyticsCollector) -> None:
        self._collector = collector

    async def _events(self, flag_key: str, window_seconds: float | None = None) -> list[FlagEvaluationEvent]:
        events = await self._collector.get_events(flag_key=flag_key)
        if window_seconds is None:
            return events
        cutoff = datetime.now(UTC) - timedelta(seconds=window_seconds)
        return [e for e in events if e.timestamp >= cutoff]

    async def get_evaluation_count(self, flag_key: str, window_seconds: float | None = None) -> int:
        return len(await self._events(flag_key, window_seconds))

    async def get_evaluation_rate(self, flag_key: str, window_seconds: float = 60) -> float:
        """Evaluations per second over the window."""
        if window_seconds <= 0:
            return 0.0
        return len(await self._events(flag_key, window_seconds)) / window_seconds

    async def get_unique_identities(self, flag_key: str, window_seconds: float | None = None) -> int:
        events = await self._events(flag_key, window_seconds)
        return len({e.identity_hash for e in events if e.identity_hash})

    async def get_source_distribution(self, flag_key: str, window_seconds: float | None = None) -> dict[str, int]:
        """Count evaluations by the tier that answered."""
        events = await self._events(flag_key, window_seconds)
        return dict(Counter(e.source.value for e in events))

    async def get_failure_rate(self, flag_key: str, window_seconds: float | None = None) -> float:
        """Percentage of evaluations where at least one remote tier failed."""
        events = await self._events(flag_key, window_seconds)
        return _rate(sum(1 for e in events if e.has_failures), len(events))

    async def get_fallback_rate(self, flag_key: str, window_seconds: float | None = None) -> float:
        """Percentage of evaluations answered by the offline tier."""
        events = await self._events(flag_key, window_seconds)
        return _rate(sum(1 for e in events if e.is_fallback), len(events))

    async def get_latency_percentiles(
        self,
        flag_key: str,
        percentiles: Sequence[float] = DEFAULT_PERCENTILES,
        window_seconds: float | None = None,
    ) -> dict[float, float]:
        """Evaluation latency percentiles in milliseconds."""
        events = await self._events(flag_key, window_seconds)
        durations = sorted(e.evaluation_duration_ms for e in events)
        return {p: _percentile(durations, p) for p in percentiles}

    async def get_flag_metrics(self, flag_key: str, window_seconds: float = 3600) -> FlagMetrics:
        """Compute every metric for ``flag_key`` over one window."""
        window_end = datetime.now(UTC)
        window_start = window_end - timedelta(seconds=window_seconds)
        events = await self._events(flag_key, window_seconds)
        durations = sorted(e.evaluation_duration_ms for e in events)
        total = len(events)
        return FlagMetrics(
            flag_key=flag_key,
            total_evaluations=total,
            evaluation_rate=total / window_seconds if window_seconds > 0 else 0.0,
            unique_identities=len({e.identity_hash for e in events if e.identity_hash}),
            source_distribution=dict(Counter(e.source.value for e in events)),
            failure_rate=_rate(sum(1 for e in events if e.has_failures), total),
            fallback_rate=_rate(sum(1 for e in events if e.is_fallback), total),
            latency_p50=_percentile(durations, 50.0),
            latency_p90=_percentile(durations, 90.0),
            latency_p99=_percentile(durations, 99.0),
            window_start=window_start,
            window_end=window_end,
        )
