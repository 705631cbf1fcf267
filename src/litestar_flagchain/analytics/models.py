"""Analytics data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from litestar_flagchain.security import hash_identity
from litestar_flagchain.types import ResolutionSource

if TYPE_CHECKING:
    from litestar_flagchain.chain import EvaluationResult
    from litestar_flagchain.context import UnifiedContext

__all__ = ["FlagEvaluationEvent", "FlagMetrics"]


@dataclass(slots=True)
class FlagEvaluationEvent:
    """A single resolved flag evaluation.

    Events never carry raw user or visitor ids; the evaluation identity is
    stored as a one-way hash so events can be grouped per identity.

    Attributes:
        timestamp: When the evaluation finished.
        flag_key: The evaluated flag.
        value: The resolved value.
        source: The tier that produced the value.
        identity_hash: Hash of the context identity.
        context_attributes: Non-identifying context fields (tier, country,
            environment, deployment).
        evaluation_duration_ms: Time spent resolving.
        failures: Tiers that failed before ``source`` answered.

    """

    timestamp: datetime
    flag_key: str
    value: Any
    source: ResolutionSource
    identity_hash: str | None = None
    context_attributes: dict[str, Any] = field(default_factory=dict)
    evaluation_duration_ms: float = 0.0
    failures: tuple[ResolutionSource, ...] = ()

    @classmethod
    def from_result(cls, result: EvaluationResult, context: UnifiedContext | None = None) -> FlagEvaluationEvent:
        """Build an event from an evaluation result and its context."""
        attributes: dict[str, Any] = {}
        identity_hash = None
        if context is not None:
            identity_hash = hash_identity(context.identity)
            attributes = {
                "tier": context.user.tier,
                "country": context.request.country,
                "environment": context.request.environment,
                "deployment": context.request.deployment,
            }
        return cls(
            timestamp=datetime.now(UTC),
            flag_key=result.flag_key,
            value=result.value,
            source=result.source,
            identity_hash=identity_hash,
            context_attributes=attributes,
            evaluation_duration_ms=result.duration_ms,
            failures=result.failures,
        )

    @property
    def is_fallback(self) -> bool:
        return self.source is ResolutionSource.OFFLINE

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "flag_key": self.flag_key,
            "value": self.value,
            "source": self.source.value,
            "identity_hash": self.identity_hash,
            "context_attributes": dict(self.context_attributes),
            "evaluation_duration_ms": self.evaluation_duration_ms,
            "failures": [failure.value for failure in self.failures],
        }


@dataclass(slots=True)
class FlagMetrics:
    """Aggregated metrics for one flag over a time window.

    Rates are percentages in the range 0-100.
    """

    flag_key: str
    total_evaluations: int = 0
    evaluation_rate: float = 0.0
    unique_identities: int = 0
    source_distribution: dict[str, int] = field(default_factory=dict)
    failure_rate: float = 0.0
    fallback_rate: float = 0.0
    latency_p50: float = 0.0
    latency_p90: float = 0.0
    latency_p99: float = 0.0
    window_start: datetime | None = None
    window_end: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "flag_key": self.flag_key,
            "total_evaluations": self.total_evaluations,
            "evaluation_rate": self.evaluation_rate,
            "unique_identities": self.unique_identities,
            "source_distribution": dict(self.source_distribution),
            "failure_rate": self.failure_rate,
            "fallback_rate": self.fallback_rate,
            "latency_p50": self.latency_p50,
            "latency_p90": self.latency_p90,
            "latency_p99": self.latency_p99,
            "window_start": self.window_start.isoformat() if self.window_start else None,
            "window_end": self.window_end.isoformat() if self.window_end else None,
        }
