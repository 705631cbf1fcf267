"""Benchmark fixtures for litestar-flagchain performance testing.

This module provides fixtures for benchmarking offline evaluation, chain
resolution and analytics dispatch. Run with::

    pytest benchmarks -o python_files="benchmark_*.py" --benchmark-only
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from typing import Any

import pytest

from litestar_flagchain import (
    AdapterChain,
    AnalyticsDispatcher,
    EnvironmentOverrides,
    FlagRegistry,
    FlagResolver,
    InMemoryAnalyticsCollector,
    OfflineEvaluator,
    OfflineFallbackConfig,
    RequestContext,
    UnifiedContext,
    UserContext,
    VisitorContext,
)


class StaticRemote:
    """Remote tier answering immediately."""

    def __init__(self, value: Any) -> None:
        self.value = value

    async def decide(self, context: UnifiedContext) -> Any:
        return self.value


class DownRemote:
    """Remote tier that is always unreachable."""

    async def decide(self, context: UnifiedContext) -> Any:
        msg = "flag service unreachable"
        raise ConnectionError(msg)


# -----------------------------------------------------------------------------
# Event Loop
# -----------------------------------------------------------------------------


@pytest.fixture
def loop() -> Iterator[asyncio.AbstractEventLoop]:
    """A private event loop for driving coroutines from the benchmark callable."""
    event_loop = asyncio.new_event_loop()
    yield event_loop
    event_loop.close()


# -----------------------------------------------------------------------------
# Resolver Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def evaluator() -> OfflineEvaluator:
    """Offline evaluator isolated from the process environment."""
    return OfflineEvaluator(overrides=EnvironmentOverrides(source={}))


@pytest.fixture
def resolver(evaluator: OfflineEvaluator) -> FlagResolver:
    """Resolver without analytics."""
    return FlagResolver(evaluator, timeout=0.5)


@pytest.fixture
def resolver_with_analytics(evaluator: OfflineEvaluator) -> FlagResolver:
    """Resolver feeding a large analytics queue."""
    dispatcher = AnalyticsDispatcher(collector=InMemoryAnalyticsCollector(), max_queue_size=1_000_000)
    return FlagResolver(evaluator, timeout=0.5, dispatcher=dispatcher)


# -----------------------------------------------------------------------------
# Policy and Chain Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def percentage_policy() -> OfflineFallbackConfig:
    """A 50% rollout policy."""
    return OfflineFallbackConfig(type="percentage", percentage=50)


@pytest.fixture
def variant_policy() -> OfflineFallbackConfig:
    """A four-way variant policy."""
    return OfflineFallbackConfig(type="variant", variants=("a", "b", "c", "d"))


@pytest.fixture
def primary_chain(percentage_policy: OfflineFallbackConfig) -> AdapterChain:
    """Chain whose primary tier answers."""
    return AdapterChain(percentage_policy, primary=StaticRemote(True))


@pytest.fixture
def outage_chain(percentage_policy: OfflineFallbackConfig) -> AdapterChain:
    """Chain whose remote tiers are both down."""
    return AdapterChain(percentage_policy, primary=DownRemote(), secondary=DownRemote())


# -----------------------------------------------------------------------------
# Context Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def context() -> UnifiedContext:
    """A signed-in user's context."""
    return UnifiedContext(
        visitor=VisitorContext(id="visitor-bench"),
        user=UserContext(id="user-bench", tier="premium"),
        request=RequestContext(country="US", environment="production"),
    )


@pytest.fixture
def contexts() -> list[UnifiedContext]:
    """1000 distinct anonymous contexts."""
    return [UnifiedContext(visitor=VisitorContext(id=f"visitor-{i}")) for i in range(1000)]


def _registry(size: int, resolver: FlagResolver) -> FlagRegistry:
    registry = FlagRegistry(resolver)
    for i in range(size):
        registry.define(f"flag-{i}", offline={"type": "percentage", "percentage": i % 100})
    return registry


@pytest.fixture
def registry_100(resolver: FlagResolver) -> FlagRegistry:
    """Registry of 100 offline-only flags."""
    return _registry(100, resolver)


@pytest.fixture
def registry_1000(resolver: FlagResolver) -> FlagRegistry:
    """Registry of 1000 offline-only flags."""
    return _registry(1000, resolver)
