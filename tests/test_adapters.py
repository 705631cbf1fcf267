"""Tests for adapter normalization and lazy adapters."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from conftest import RecordingAdapter

from litestar_flagchain import (
    AdapterChain,
    CallableAdapter,
    ConfigurationError,
    EvaluationResult,
    FlagAdapter,
    LazyAdapter,
    OfflineFallbackConfig,
    ResolutionSource,
    StaticAdapter,
    UnifiedContext,
    define,
)
from litestar_flagchain.adapters import as_adapter


# -----------------------------------------------------------------------------
# as_adapter
# -----------------------------------------------------------------------------
class TestAsAdapter:
    """Tests for as_adapter."""

    def test_none(self) -> None:
        """Test that a missing tier stays missing."""
        assert as_adapter(None) is None

    def test_adapter_instance_is_kept(self) -> None:
        """Test that objects with decide are used unchanged."""
        adapter = RecordingAdapter(True)
        assert as_adapter(adapter) is adapter
        assert isinstance(adapter, FlagAdapter)

    async def test_coroutine_function(self, context: UnifiedContext) -> None:
        """Test that async functions become callable adapters."""

        async def decide(ctx: UnifiedContext) -> str:
            return ctx.user.tier

        adapter = as_adapter(decide)
        assert isinstance(adapter, CallableAdapter)
        assert await adapter.decide(context) == "premium"

    async def test_factory(self, context: UnifiedContext) -> None:
        """Test that plain callables are treated as factories."""
        adapter = as_adapter(lambda: StaticAdapter("blue"))
        assert isinstance(adapter, LazyAdapter)
        assert await adapter.decide(context) == "blue"

    async def test_adapter_class_is_a_factory(self, context: UnifiedContext) -> None:
        """Test that passing the class rather than an instance is lazy."""

        class EdgeConfig:
            async def decide(self, context: UnifiedContext) -> Any:
                return "edge"

        adapter = as_adapter(EdgeConfig)
        assert isinstance(adapter, LazyAdapter)
        assert await adapter.decide(context) == "edge"

    def test_factory_with_optional_arguments(self) -> None:
        """Test that a factory whose parameters all have defaults is accepted."""

        def make_client(region: str = "eu", **settings: Any) -> StaticAdapter:
            return StaticAdapter(region)

        assert isinstance(as_adapter(make_client), LazyAdapter)

    @pytest.mark.parametrize(
        "candidate",
        [lambda ctx: True, RecordingAdapter, lambda *, region: StaticAdapter(region)],
        ids=["sync-decide-function", "class-with-required-args", "keyword-only-factory"],
    )
    def test_rejects_sync_callables_with_arguments(self, candidate: Any) -> None:
        """Test that sync callables needing arguments fail when the chain is declared."""
        with pytest.raises(ConfigurationError, match="takes arguments"):
            as_adapter(candidate)

    def test_define_rejects_sync_decide_function(self) -> None:
        """Test that define surfaces the mistake instead of failing every evaluation."""
        with pytest.raises(ConfigurationError, match="takes arguments"):
            define("beta", offline={"type": "boolean"}, primary=lambda ctx: True)

    @pytest.mark.parametrize("candidate", [42, "primary", {"decide": None}])
    def test_rejects_non_adapters(self, candidate: Any) -> None:
        """Test that unusable tiers are a configuration error."""
        with pytest.raises(ConfigurationError):
            as_adapter(candidate)


# -----------------------------------------------------------------------------
# LazyAdapter
# -----------------------------------------------------------------------------
class TestLazyAdapter:
    """Tests for LazyAdapter."""

    async def test_factory_runs_once(self, context: UnifiedContext) -> None:
        """Test that the factory runs on first use only."""
        calls = 0

        def factory() -> StaticAdapter:
            nonlocal calls
            calls += 1
            return StaticAdapter(True)

        adapter = LazyAdapter(factory)
        assert not adapter.is_resolved
        for _ in range(3):
            assert await adapter.decide(context) is True
        assert calls == 1
        assert adapter.is_resolved

    async def test_concurrent_first_use(self, context: UnifiedContext) -> None:
        """Test that concurrent first calls share one factory run."""
        calls = 0

        async def factory() -> StaticAdapter:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return StaticAdapter("on")

        adapter = LazyAdapter(factory)
        results = await asyncio.gather(*(adapter.decide(context) for _ in range(10)))
        assert results == ["on"] * 10
        assert calls == 1

    async def test_reset(self, context: UnifiedContext) -> None:
        """Test that reset makes the factory run again."""
        values = iter(["first", "second"])
        adapter = LazyAdapter(lambda: StaticAdapter(next(values)))

        assert await adapter.decide(context) == "first"
        adapter.reset()
        assert not adapter.is_resolved
        assert await adapter.decide(context) == "second"

    async def test_failing_factory_is_not_cached(self, context: UnifiedContext) -> None:
        """Test that a factory error is retried on the next call."""
        attempts = 0

        def factory() -> StaticAdapter:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                msg = "client not ready"
                raise ConnectionError(msg)
            return StaticAdapter(True)

        adapter = LazyAdapter(factory)
        with pytest.raises(ConnectionError):
            await adapter.decide(context)
        assert await adapter.decide(context) is True

    async def test_factory_returning_non_adapter(self, context: UnifiedContext) -> None:
        """Test that a factory must produce an adapter."""
        adapter = LazyAdapter(lambda: "not an adapter")  # type: ignore[arg-type,return-value]
        with pytest.raises(ConfigurationError, match="decide"):
            await adapter.get()


# -----------------------------------------------------------------------------
# AdapterChain
# -----------------------------------------------------------------------------
class TestAdapterChain:
    """Tests for AdapterChain."""

    def test_requires_offline_config(self) -> None:
        """Test that a chain cannot be built without an offline policy."""
        with pytest.raises(ConfigurationError):
            AdapterChain({"type": "boolean"})  # type: ignore[arg-type]

    def test_remote_tiers_order(self) -> None:
        """Test that tiers are yielded primary first."""
        primary, secondary = StaticAdapter(1), StaticAdapter(2)
        chain = AdapterChain(OfflineFallbackConfig(type="boolean"), primary=primary, secondary=secondary)
        assert list(chain.remote_tiers()) == [
            (ResolutionSource.PRIMARY, primary),
            (ResolutionSource.SECONDARY, secondary),
        ]

    def test_secondary_only(self) -> None:
        """Test a chain with only a secondary tier."""
        chain = AdapterChain(OfflineFallbackConfig(type="boolean"), secondary=StaticAdapter(2))
        assert [source for source, _ in chain.remote_tiers()] == [ResolutionSource.SECONDARY]

    async def test_reset_lazy_tiers(self, context: UnifiedContext) -> None:
        """Test that reset forgets lazily built adapters."""
        chain = AdapterChain(OfflineFallbackConfig(type="boolean"), primary=lambda: StaticAdapter(True))
        await chain.primary.decide(context)  # type: ignore[union-attr]
        assert chain.primary.is_resolved  # type: ignore[union-attr]
        chain.reset()
        assert not chain.primary.is_resolved  # type: ignore[union-attr]

    def test_is_immutable(self) -> None:
        """Test that chains cannot be mutated once shared."""
        chain = AdapterChain(OfflineFallbackConfig(type="boolean"))
        with pytest.raises(AttributeError):
            chain.primary = StaticAdapter(True)  # type: ignore[misc]


class TestEvaluationResult:
    """Tests for EvaluationResult."""

    def test_to_dict(self) -> None:
        """Test serialization of a result."""
        result = EvaluationResult(
            flag_key="beta",
            value=True,
            source=ResolutionSource.OFFLINE,
            duration_ms=1.5,
            failures=(ResolutionSource.PRIMARY,),
        )
        assert result.is_fallback
        assert result.to_dict() == {
            "flag_key": "beta",
            "value": True,
            "source": "offline",
            "duration_ms": 1.5,
            "failures": ["primary"],
        }
