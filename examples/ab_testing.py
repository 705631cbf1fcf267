"""A/B Testing Example.

This example demonstrates using litestar-flagchain for A/B testing:
- Variant flags that bucket visitors deterministically
- A remote experiment service as the primary tier
- Consistent assignment when the experiment service is down
- Reading experiment metrics from the analytics aggregator

Offline variant assignment hashes the flag key together with the user and
visitor ids, so a visitor keeps their variant whether the remote service
answered or not, as long as the remote service uses the same buckets.

To run this example:
    uvicorn examples.ab_testing:app --reload

Then visit:
    - http://localhost:8000/experiment
    - http://localhost:8000/button-color
    - http://localhost:8000/distribution-test?samples=1000
    - http://localhost:8000/metrics/checkout-experiment
"""

from __future__ import annotations

import asyncio
from collections import Counter
from typing import Any

from litestar import Litestar, Request, get

from litestar_flagchain import (
    AnalyticsAggregator,
    FlagChainPlugin,
    FlagRegistry,
    InMemoryAnalyticsCollector,
    OfflineEvaluator,
    OfflineFallbackConfig,
    UnifiedContext,
    UserContext,
    VisitorContext,
    get_request_context,
)

CHECKOUT_VARIANTS = ["control", "streamlined"]
BUTTON_COLORS = ["blue", "green", "orange"]


class ExperimentService:
    """Remote experiment service that only knows about signed-in users."""

    def __init__(self, assignments: dict[str, str]) -> None:
        self.assignments = assignments

    async def decide(self, context: UnifiedContext) -> Any:
        await asyncio.sleep(0.005)
        # None means "no assignment here"; the offline tier buckets the visitor
        return self.assignments.get(context.user.id)


collector = InMemoryAnalyticsCollector(max_size=50_000)
aggregator = AnalyticsAggregator(collector)
registry = FlagRegistry()

registry.define(
    "checkout-experiment",
    offline={"type": "variant", "variants": CHECKOUT_VARIANTS},
    primary=ExperimentService({"user-qa": "streamlined"}),
    options={"description": "Streamlined checkout vs. existing flow", "options": CHECKOUT_VARIANTS},
)

registry.define(
    "button-color",
    offline={"type": "variant", "variants": BUTTON_COLORS},
    options={"description": "Primary button color test", "options": BUTTON_COLORS},
)


# Route Handlers


@get("/")
async def index() -> dict:
    """Root endpoint with basic information."""
    return {
        "message": "A/B Testing Example",
        "experiments": registry.keys(),
    }


@get("/experiment")
async def get_experiment_variant(request: Request, flags: FlagRegistry) -> dict:
    """Return this visitor's checkout variant and where it came from."""
    context = get_request_context(request)
    assert context is not None
    result = await flags.get("checkout-experiment").evaluate(context)  # type: ignore[union-attr]
    return {
        "variant": result.value,
        "source": result.source.value,
        "visitor_id": context.visitor.id,
    }


@get("/button-color")
async def get_button_color(request: Request, flags: FlagRegistry) -> dict:
    """Return this visitor's button color."""
    context = get_request_context(request)
    assert context is not None
    return {"color": await flags.get("button-color")(context)}  # type: ignore[misc]


@get("/distribution-test")
async def test_distribution(samples: int = 1000) -> dict:
    """Bucket synthetic visitors offline to show the traffic split."""
    evaluator = OfflineEvaluator()
    config = OfflineFallbackConfig(type="variant", variants=BUTTON_COLORS)
    counts: Counter[str] = Counter()
    for i in range(samples):
        context = UnifiedContext(visitor=VisitorContext(id=f"visitor-{i}"), user=UserContext())
        counts[evaluator.evaluate("button-color", config, context)] += 1
    return {
        "samples": samples,
        "distribution": {color: round(counts[color] / samples * 100, 1) for color in BUTTON_COLORS},
    }


@get("/metrics/{key:str}")
async def get_metrics(key: str) -> dict:
    """Metrics for one experiment over the last hour."""
    metrics = await aggregator.get_flag_metrics(key)
    return metrics.to_dict()


app = Litestar(
    route_handlers=[index, get_experiment_variant, get_button_color, test_distribution, get_metrics],
    plugins=[FlagChainPlugin(registry=registry, collector=collector)],
    debug=True,
)


# Standalone demonstration (runs without Litestar server)
async def standalone_ab_demo() -> None:
    """Show that assignments are stable across repeated evaluations."""
    print("\n--- Standalone A/B Testing Demo ---\n")

    flag = registry.get("checkout-experiment")
    assert flag is not None
    for user_id in ("user-qa", "user-123", "user-456"):
        context = UnifiedContext(visitor=VisitorContext(id="visitor-1"), user=UserContext(id=user_id, tier="free"))
        first = await flag.evaluate(context)
        second = await flag.evaluate(context)
        assert first.value == second.value
        print(f"{user_id}: {first.value} (from {first.source.value})")


if __name__ == "__main__":
    asyncio.run(standalone_ab_demo())
