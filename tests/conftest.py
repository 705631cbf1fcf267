"""Test fixtures for litestar-flagchain."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from litestar_flagchain import (
    AnalyticsDispatcher,
    EnvironmentOverrides,
    FlagEvaluationEvent,
    FlagResolver,
    InMemoryAnalyticsCollector,
    OfflineEvaluator,
    RequestContext,
    ResolutionSource,
    UnifiedContext,
    UserContext,
    VisitorContext,
    generate_secret,
)

# -----------------------------------------------------------------------------
# pytest-asyncio Configuration
# -----------------------------------------------------------------------------
pytest_plugins = ["pytest_asyncio"]


# -----------------------------------------------------------------------------
# Environment Isolation
# -----------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def clean_flag_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove flag overrides and environment settings leaking in from the shell."""
    for name in list(os.environ):
        if name.startswith("FLAG_") or name.startswith("FLAGS_") or name == "ENVIRONMENT":
            monkeypatch.delenv(name, raising=False)


# -----------------------------------------------------------------------------
# Context Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def make_context() -> Callable[..., UnifiedContext]:
    """Factory for evaluation contexts."""

    def factory(
        visitor_id: str = "visitor-1",
        user_id: str = "anonymous",
        tier: str = "anonymous",
        **request: Any,
    ) -> UnifiedContext:
        return UnifiedContext(
            visitor=VisitorContext(id=visitor_id),
            user=UserContext(id=user_id, tier=tier),
            request=RequestContext(**request),
        )

    return factory


@pytest.fixture
def context(make_context: Callable[..., UnifiedContext]) -> UnifiedContext:
    """A signed-in user's context."""
    return make_context(visitor_id="visitor-123", user_id="user-123", tier="premium", environment="production")


@pytest.fixture
def anonymous_context(make_context: Callable[..., UnifiedContext]) -> UnifiedContext:
    """An anonymous visitor's context."""
    return make_context(visitor_id="visitor-456")


# -----------------------------------------------------------------------------
# Resolver Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def overrides() -> dict[str, str]:
    """Mutable override variables read by the evaluator fixture."""
    return {}


@pytest.fixture
def evaluator(overrides: dict[str, str]) -> OfflineEvaluator:
    """Offline evaluator reading overrides from the ``overrides`` fixture."""
    return OfflineEvaluator(overrides=EnvironmentOverrides(source=overrides))


@pytest.fixture
def collector() -> InMemoryAnalyticsCollector:
    """Create an in-memory analytics collector."""
    return InMemoryAnalyticsCollector(max_size=1000)


@pytest.fixture
def dispatcher(collector: InMemoryAnalyticsCollector) -> AnalyticsDispatcher:
    """Create an analytics dispatcher feeding the collector."""
    return AnalyticsDispatcher(collector=collector, max_queue_size=100)


@pytest.fixture
def resolver(evaluator: OfflineEvaluator, dispatcher: AnalyticsDispatcher) -> FlagResolver:
    """Create a resolver with a short adapter timeout."""
    return FlagResolver(evaluator, timeout=0.2, dispatcher=dispatcher)


@pytest.fixture
def secret() -> str:
    """A valid flags secret."""
    return generate_secret()


# -----------------------------------------------------------------------------
# Adapter Doubles
# -----------------------------------------------------------------------------
class RecordingAdapter:
    """Answers with a fixed value and records every call."""

    def __init__(self, value: Any) -> None:
        self.value = value
        self.calls: list[UnifiedContext] = []

    async def decide(self, context: UnifiedContext) -> Any:
        self.calls.append(context)
        return self.value


class FailingAdapter:
    """Always raises."""

    def __init__(self, exc: Exception | None = None) -> None:
        self.exc = exc or ConnectionError("remote flag service unreachable")
        self.calls = 0

    async def decide(self, context: UnifiedContext) -> Any:
        self.calls += 1
        raise self.exc


class SlowAdapter:
    """Answers after a delay."""

    def __init__(self, value: Any, delay: float) -> None:
        self.value = value
        self.delay = delay
        self.started = asyncio.Event()
        self.finished = asyncio.Event()

    async def decide(self, context: UnifiedContext) -> Any:
        self.started.set()
        await asyncio.sleep(self.delay)
        self.finished.set()
        return self.value


# -----------------------------------------------------------------------------
# Analytics Helpers
# -----------------------------------------------------------------------------
def make_event(
    flag_key: str = "test-flag",
    *,
    value: Any = True,
    source: ResolutionSource = ResolutionSource.PRIMARY,
    identity_hash: str | None = "abc123",
    duration_ms: float = 1.0,
    failures: tuple[ResolutionSource, ...] = (),
    age: timedelta = timedelta(0),
) -> FlagEvaluationEvent:
    """Build an evaluation event for analytics tests."""
    return FlagEvaluationEvent(
        timestamp=datetime.now(UTC) - age,
        flag_key=flag_key,
        value=value,
        source=source,
        identity_hash=identity_hash,
        evaluation_duration_ms=duration_ms,
        failures=failures,
    )
