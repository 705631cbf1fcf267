"""Basic Feature Flag Usage Example.

This example demonstrates the fundamental usage of litestar-flagchain:
- Setting up a Litestar application with the FlagChainPlugin
- Declaring flags with a remote primary tier and an offline policy
- Evaluating flags in route handlers with the request's context
- Surviving a remote flag service outage

To run this example:
    uvicorn examples.basic_usage:app --reload

Then visit:
    - http://localhost:8000/
    - http://localhost:8000/feature
    - http://localhost:8000/all-flags
    - http://localhost:8000/flag/dark-mode

Set ``FLAG_BETA_FEATURE=true`` in the environment to force a flag on when
the remote service is unreachable.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any

from litestar import Litestar, Request, get
from litestar.exceptions import NotFoundException

from litestar_flagchain import (
    AdapterChain,
    FlagChainConfig,
    FlagChainPlugin,
    FlagRegistry,
    FlagResolver,
    OfflineFallbackConfig,
    UnifiedContext,
    VisitorContext,
    get_request_context,
)


class FlakyRemoteFlags:
    """Stands in for a hosted flag service that is down half of the time."""

    def __init__(self, values: dict[str, Any], failure_rate: float = 0.5) -> None:
        self.values = values
        self.failure_rate = failure_rate

    async def decide(self, context: UnifiedContext) -> Any:
        await asyncio.sleep(0.01)
        if random.random() < self.failure_rate:
            msg = "flag service unavailable"
            raise ConnectionError(msg)
        return self.values.get("answer")


# Declare flags once, at import time
registry = FlagRegistry()

registry.define(
    "dark-mode",
    offline={"type": "boolean", "percentage": 100},
    primary=FlakyRemoteFlags({"answer": True}),
    options={"description": "Enable dark mode theme for the application", "options": [True, False]},
)

registry.define(
    "beta-feature",
    offline={"type": "boolean"},  # off unless overridden with FLAG_BETA_FEATURE
    primary=FlakyRemoteFlags({"answer": None}),
    options={"description": "A new feature currently in beta testing"},
)

registry.define(
    "welcome-message",
    offline={"type": "variant", "variants": ["Welcome to our application!"]},
    options={"description": "Customizable welcome message for users"},
)

config = FlagChainConfig(adapter_timeout=0.25, default_environment="development")


# Route Handlers


@get("/")
async def index() -> dict:
    """Root endpoint with basic information."""
    return {
        "message": "Litestar Flag Chain Example",
        "endpoints": {
            "/feature": "Check feature flags for this visitor",
            "/all-flags": "Evaluate every registered flag",
            "/flag/{key}": "Evaluation details for one flag",
        },
    }


@get("/feature")
async def check_feature(request: Request, flags: FlagRegistry) -> dict:
    """Check the status of feature flags.

    The context (visitor, user, country, environment) was extracted by the
    plugin's middleware; a first-time visitor also gets a visitor cookie.
    """
    context = get_request_context(request)
    assert context is not None

    dark_mode = await flags.get("dark-mode")(context)  # type: ignore[misc]
    beta = await flags.get("beta-feature")(context)  # type: ignore[misc]
    welcome = await flags.get("welcome-message")(context)  # type: ignore[misc]

    return {
        "visitor_id": context.visitor.id,
        "dark_mode": dark_mode,
        "beta_feature": beta,
        "welcome_message": welcome,
    }


@get("/all-flags")
async def get_all_flags(request: Request, flags: FlagRegistry) -> dict:
    """Evaluate every registered flag for this request."""
    context = get_request_context(request)
    assert context is not None
    return await flags.get_values(context)


@get("/flag/{key:str}")
async def get_flag_details(key: str, request: Request, flags: FlagRegistry) -> dict:
    """Show which tier answered a flag and what failed on the way."""
    flag = flags.get(key)
    if flag is None:
        raise NotFoundException(detail=f"Unknown flag '{key}'")
    context = get_request_context(request)
    assert context is not None
    result = await flag.evaluate(context)
    return result.to_dict()


@get("/definitions")
async def definitions(flags: FlagRegistry) -> dict:
    """Discovery metadata for every flag."""
    return flags.get_provider_data()


app = Litestar(
    route_handlers=[index, check_feature, get_all_flags, get_flag_details, definitions],
    plugins=[FlagChainPlugin(config=config, registry=registry)],
    debug=True,
)


# Standalone demonstration (runs without Litestar server)
async def standalone_demo() -> None:
    """Demonstrate resolving flags directly without Litestar.

    This is useful for:
    - Background jobs
    - CLI applications
    - Testing
    """
    print("\n--- Standalone Flag Chain Demo ---\n")

    resolver = FlagResolver(timeout=0.1)
    chain = AdapterChain(
        OfflineFallbackConfig(type="percentage", percentage=50),
        primary=FlakyRemoteFlags({"answer": "remote-on"}, failure_rate=0.7),
    )

    for visitor in ("visitor-1", "visitor-2", "visitor-3"):
        context = UnifiedContext(visitor=VisitorContext(id=visitor))
        result = await resolver.evaluate("standalone-feature", chain, context)
        print(f"{visitor}: value={result.value!r} source={result.source.value} failures={len(result.failures)}")


if __name__ == "__main__":
    asyncio.run(standalone_demo())
