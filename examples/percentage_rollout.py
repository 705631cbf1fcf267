"""Percentage Rollout Example.

This example demonstrates gradual feature rollouts using litestar-flagchain:
- Percentage policies evaluated offline with MurmurHash3 bucketing
- Time-based policies for scheduled launches
- Custom policies keyed on the user's tier or country
- Operator overrides through ``FLAG_*`` environment variables

Percentage rollouts are useful for:
- Reducing risk when launching new features
- Gradual migration from old to new systems
- Keeping a safe default when the remote flag service is unreachable

To run this example:
    uvicorn examples.percentage_rollout:app --reload

Then visit:
    - http://localhost:8000/feature
    - http://localhost:8000/rollout-status
    - http://localhost:8000/simulate?percentage=25&samples=1000
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from litestar import Litestar, Request, get

from litestar_flagchain import (
    FlagChainPlugin,
    FlagRegistry,
    OfflineEvaluator,
    OfflineFallbackConfig,
    Schedule,
    UnifiedContext,
    UserContext,
    VisitorContext,
    get_request_context,
)

registry = FlagRegistry()

# Example 1: Simple percentage rollout, 25% of identities
registry.define(
    "new-search-algorithm",
    offline={"type": "percentage", "percentage": 25},
    options={"description": "Improved search with ML-based ranking"},
)

# Example 2: Scheduled launch, on during business hours on weekdays
registry.define(
    "live-support-widget",
    offline=OfflineFallbackConfig(
        type="time-based",
        schedule=Schedule(days=(1, 2, 3, 4, 5), hours=tuple(range(9, 17)), timezone="America/New_York"),
    ),
    options={"description": "Live support during staffed hours"},
)

# Example 3: Launch window that starts tomorrow
launch = datetime.now(UTC) + timedelta(days=1)
registry.define(
    "holiday-theme",
    offline=OfflineFallbackConfig(type="time-based", schedule=Schedule(start=launch, end=launch + timedelta(days=7))),
)

# Example 4: Segment rollout, premium and enterprise users only
registry.define(
    "priority-queue",
    offline={"type": "custom", "custom_logic": lambda context: context.user.tier in {"premium", "enterprise"}},
)

# Example 5: Country rollout
registry.define(
    "local-payment-methods",
    offline={"type": "custom", "custom_logic": lambda context: context.request.country in {"DE", "NL", "FR"}},
)


@get("/")
async def index() -> dict:
    """Root endpoint with basic information."""
    return {
        "message": "Percentage Rollout Example",
        "flags": registry.keys(),
        "tip": "Set FLAG_NEW_SEARCH_ALGORITHM=true to force the rollout on",
    }


@get("/feature")
async def check_feature(request: Request, flags: FlagRegistry) -> dict:
    """Evaluate every rollout for the current visitor."""
    context = get_request_context(request)
    assert context is not None
    return {
        "visitor_id": context.visitor.id,
        "country": context.request.country,
        "tier": context.user.tier,
        "flags": await flags.get_values(context),
    }


@get("/rollout-status")
async def get_rollout_status(flags: FlagRegistry) -> dict:
    """Describe the offline policy of each flag."""
    return {
        flag.key: {
            "policy": flag.chain.offline.type.value,
            "percentage": flag.chain.offline.percentage,
            "description": flag.options.description,
        }
        for flag in flags
    }


@get("/simulate")
async def simulate_rollout(percentage: float = 25, samples: int = 1000) -> dict:
    """Bucket synthetic visitors to show how close the rollout gets to its target."""
    evaluator = OfflineEvaluator()
    config = OfflineFallbackConfig(type="percentage", percentage=percentage)
    enabled = sum(
        1
        for i in range(samples)
        if evaluator.evaluate("simulated-rollout", config, UnifiedContext(visitor=VisitorContext(id=f"v-{i}")))
    )
    return {
        "target_percentage": percentage,
        "samples": samples,
        "actual_percentage": round(enabled / samples * 100, 2) if samples else 0.0,
    }


app = Litestar(
    route_handlers=[index, check_feature, get_rollout_status, simulate_rollout],
    plugins=[FlagChainPlugin(registry=registry)],
    debug=True,
)


async def standalone_rollout_demo() -> None:
    """Show that increasing the percentage only ever adds identities."""
    print("\n--- Standalone Rollout Demo ---\n")

    evaluator = OfflineEvaluator()
    contexts = [
        UnifiedContext(visitor=VisitorContext(id=f"visitor-{i}"), user=UserContext(id=f"user-{i}", tier="free"))
        for i in range(200)
    ]
    previous: set[int] = set()
    for percentage in (5, 10, 25, 50, 100):
        config = OfflineFallbackConfig(type="percentage", percentage=percentage)
        enabled = {i for i, ctx in enumerate(contexts) if evaluator.evaluate("gradual", config, ctx)}
        assert previous <= enabled
        previous = enabled
        print(f"{percentage:>3}% -> {len(enabled)} of {len(contexts)} users")


if __name__ == "__main__":
    asyncio.run(standalone_rollout_demo())
