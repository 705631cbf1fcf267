"""Evaluation analytics: events, collection, aggregation and dispatch."""

from __future__ import annotations

from litestar_flagchain.analytics.aggregator import AnalyticsAggregator
from litestar_flagchain.analytics.collector import InMemoryAnalyticsCollector
from litestar_flagchain.analytics.dispatcher import AnalyticsDispatcher
from litestar_flagchain.analytics.models import FlagEvaluationEvent, FlagMetrics
from litestar_flagchain.analytics.protocols import AnalyticsCollector, AnalyticsSink

__all__ = [
    "AnalyticsAggregator",
    "AnalyticsCollector",
    "AnalyticsDispatcher",
    "AnalyticsSink",
    "FlagEvaluationEvent",
    "FlagMetrics",
    "InMemoryAnalyticsCollector",
]
