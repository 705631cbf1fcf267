"""Resilient feature flag resolution for Litestar.

Flags resolve through a chain of remote adapters (primary, then secondary)
and always end in a deterministic offline policy, so every evaluation
produces a value even when every remote service is down.
"""

from __future__ import annotations

from litestar_flagchain.adapters import CallableAdapter, FlagAdapter, LazyAdapter, StaticAdapter
from litestar_flagchain.analytics import (
    AnalyticsAggregator,
    AnalyticsDispatcher,
    FlagEvaluationEvent,
    FlagMetrics,
    InMemoryAnalyticsCollector,
)
from litestar_flagchain.chain import AdapterChain, EvaluationResult
from litestar_flagchain.config import FlagChainConfig
from litestar_flagchain.context import RequestContext, UnifiedContext, UserContext, VisitorContext
from litestar_flagchain.definition import FlagDefinition, FlagOptions, define
from litestar_flagchain.encryption import FlagCodec, decrypt, encrypt, generate_secret, validate_secret
from litestar_flagchain.evaluator import OfflineEvaluator, OfflineFallbackConfig, Schedule
from litestar_flagchain.exceptions import (
    AdapterFailure,
    ConfigurationError,
    DecryptionError,
    FlagChainError,
    InvalidSecretError,
    OfflineEvaluationError,
)
from litestar_flagchain.extraction import ContextExtractor
from litestar_flagchain.middleware import FlagChainMiddleware, create_context_middleware, get_request_context
from litestar_flagchain.overrides import EnvironmentOverrides
from litestar_flagchain.plugin import FlagChainPlugin
from litestar_flagchain.registry import FlagRegistry
from litestar_flagchain.resolver import FlagResolver
from litestar_flagchain.singleflight import RequestScope, SingleFlight, request_scope
from litestar_flagchain.types import OfflinePolicyType, ResolutionSource, UserTier

__version__ = "0.1.0"

__all__ = [
    "AdapterChain",
    "AdapterFailure",
    "AnalyticsAggregator",
    "AnalyticsDispatcher",
    "CallableAdapter",
    "ConfigurationError",
    "ContextExtractor",
    "DecryptionError",
    "EnvironmentOverrides",
    "EvaluationResult",
    "FlagAdapter",
    "FlagChainConfig",
    "FlagChainError",
    "FlagChainMiddleware",
    "FlagChainPlugin",
    "FlagCodec",
    "FlagDefinition",
    "FlagEvaluationEvent",
    "FlagMetrics",
    "FlagOptions",
    "FlagRegistry",
    "FlagResolver",
    "InMemoryAnalyticsCollector",
    "InvalidSecretError",
    "LazyAdapter",
    "OfflineEvaluationError",
    "OfflineEvaluator",
    "OfflineFallbackConfig",
    "OfflinePolicyType",
    "RequestContext",
    "RequestScope",
    "ResolutionSource",
    "Schedule",
    "SingleFlight",
    "StaticAdapter",
    "UnifiedContext",
    "UserContext",
    "UserTier",
    "VisitorContext",
    "__version__",
    "create_context_middleware",
    "decrypt",
    "define",
    "encrypt",
    "generate_secret",
    "get_request_context",
    "request_scope",
    "validate_secret",
]
