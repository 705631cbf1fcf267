"""Benchmarks for flag evaluation performance.

These benchmarks measure:
- Offline policy evaluation (hashing and bucketing)
- Chain resolution when the primary tier answers
- Chain resolution during a full remote outage
- Batch evaluation of a registry
- Payload encryption

Performance Targets:
- Offline percentage evaluation: <50us
- Resolution via primary: <1ms
- Resolution during outage: <2ms
- Batch 100 flags: <100ms
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from litestar_flagchain import FlagCodec, generate_secret
from litestar_flagchain.hashing import murmur3_32

if TYPE_CHECKING:
    from litestar_flagchain import (
        AdapterChain,
        FlagRegistry,
        FlagResolver,
        OfflineEvaluator,
        OfflineFallbackConfig,
        UnifiedContext,
    )


# -----------------------------------------------------------------------------
# Offline Evaluation
# -----------------------------------------------------------------------------


class TestOfflineEvaluation:
    """Benchmarks for the offline tier.

    This is the baseline every evaluation pays during an outage.
    """

    @pytest.mark.benchmark(group="offline")
    def test_murmurhash(self, benchmark) -> None:
        """Benchmark the raw hash."""
        result = benchmark(murmur3_32, b"checkout-flowuser-benchvisitor-bench")
        assert 0 <= result < 2**32

    @pytest.mark.benchmark(group="offline")
    def test_percentage_policy(
        self,
        benchmark,
        evaluator: OfflineEvaluator,
        percentage_policy: OfflineFallbackConfig,
        context: UnifiedContext,
    ) -> None:
        """Benchmark a percentage rollout decision."""
        result = benchmark(evaluator.evaluate, "checkout-flow", percentage_policy, context)
        assert isinstance(result, bool)

    @pytest.mark.benchmark(group="offline")
    def test_variant_policy(
        self,
        benchmark,
        evaluator: OfflineEvaluator,
        variant_policy: OfflineFallbackConfig,
        context: UnifiedContext,
    ) -> None:
        """Benchmark variant bucketing."""
        result = benchmark(evaluator.evaluate, "experiment", variant_policy, context)
        assert result in variant_policy.variants

    @pytest.mark.benchmark(group="offline")
    def test_rollout_distribution(
        self,
        benchmark,
        evaluator: OfflineEvaluator,
        percentage_policy: OfflineFallbackConfig,
        contexts: list[UnifiedContext],
    ) -> None:
        """Benchmark bucketing 1000 identities and check the split."""

        def evaluate_all() -> int:
            return sum(1 for ctx in contexts if evaluator.evaluate("distribution", percentage_policy, ctx))

        enabled = benchmark(evaluate_all)
        assert 400 <= enabled <= 600


# -----------------------------------------------------------------------------
# Chain Resolution
# -----------------------------------------------------------------------------


class TestChainResolution:
    """Benchmarks for the full resolver state machine."""

    @pytest.mark.benchmark(group="resolution")
    def test_primary_answers(
        self,
        benchmark,
        loop: asyncio.AbstractEventLoop,
        resolver: FlagResolver,
        primary_chain: AdapterChain,
        context: UnifiedContext,
    ) -> None:
        """Benchmark resolution when the primary tier answers."""
        result = benchmark(lambda: loop.run_until_complete(resolver.evaluate("checkout-flow", primary_chain, context)))
        assert result.value is True

    @pytest.mark.benchmark(group="resolution")
    def test_full_outage(
        self,
        benchmark,
        loop: asyncio.AbstractEventLoop,
        resolver: FlagResolver,
        outage_chain: AdapterChain,
        context: UnifiedContext,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Benchmark resolution falling through both remote tiers."""
        caplog.set_level("CRITICAL")
        result = benchmark(lambda: loop.run_until_complete(resolver.evaluate("checkout-flow", outage_chain, context)))
        assert result.is_fallback
        assert len(result.failures) == 2

    @pytest.mark.benchmark(group="resolution")
    def test_with_analytics(
        self,
        benchmark,
        loop: asyncio.AbstractEventLoop,
        resolver_with_analytics: FlagResolver,
        primary_chain: AdapterChain,
        context: UnifiedContext,
    ) -> None:
        """Benchmark the cost of enqueuing an analytics event."""
        result = benchmark(
            lambda: loop.run_until_complete(resolver_with_analytics.evaluate("checkout-flow", primary_chain, context))
        )
        assert result.value is True


# -----------------------------------------------------------------------------
# Batch Evaluation
# -----------------------------------------------------------------------------


class TestBatchEvaluation:
    """Benchmarks for evaluating a whole registry."""

    @pytest.mark.benchmark(group="batch")
    def test_batch_100_flags(
        self,
        benchmark,
        loop: asyncio.AbstractEventLoop,
        registry_100: FlagRegistry,
        context: UnifiedContext,
    ) -> None:
        """Benchmark evaluating 100 flags. Target: <100ms."""
        values = benchmark(lambda: loop.run_until_complete(registry_100.get_values(context)))
        assert len(values) == 100

    @pytest.mark.benchmark(group="batch")
    def test_batch_1000_flags(
        self,
        benchmark,
        loop: asyncio.AbstractEventLoop,
        registry_1000: FlagRegistry,
        context: UnifiedContext,
    ) -> None:
        """Benchmark evaluating 1000 flags. Target: <1000ms."""
        values = benchmark(lambda: loop.run_until_complete(registry_1000.get_values(context)))
        assert len(values) == 1000


# -----------------------------------------------------------------------------
# Encryption
# -----------------------------------------------------------------------------


class TestEncryption:
    """Benchmarks for encrypting flag values for clients."""

    @pytest.mark.benchmark(group="encryption")
    def test_encrypt_100_values(self, benchmark) -> None:
        """Benchmark encrypting a typical payload."""
        codec = FlagCodec(generate_secret())
        payload = {f"flag-{i}": i % 2 == 0 for i in range(100)}
        encoded = benchmark(codec.encrypt, payload)
        assert codec.decrypt(encoded) == payload
