"""Adapter chains and evaluation results."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from litestar_flagchain.adapters import AdapterLike, FlagAdapter, LazyAdapter, as_adapter
from litestar_flagchain.evaluator import OfflineFallbackConfig
from litestar_flagchain.exceptions import ConfigurationError
from litestar_flagchain.types import ResolutionSource

__all__ = [
    "AdapterChain",
    "EvaluationResult",
]


@dataclass(frozen=True, slots=True, init=False)
class AdapterChain:
    """The ordered tiers consulted for one flag.

    Chains are immutable and shared across concurrent evaluations. Tiers given
    as coroutine functions or factories are normalized to adapters on
    construction.

    Attributes:
        offline: The offline policy; always present, always last.
        primary: First remote tier, if any.
        secondary: Second remote tier, if any.

    """

    offline: OfflineFallbackConfig
    primary: FlagAdapter | None = None
    secondary: FlagAdapter | None = None

    def __init__(
        self,
        offline: OfflineFallbackConfig,
        primary: AdapterLike | None = None,
        secondary: AdapterLike | None = None,
    ) -> None:
        if not isinstance(offline, OfflineFallbackConfig):
            msg = f"An adapter chain requires an OfflineFallbackConfig, got {type(offline).__name__}"
            raise ConfigurationError(msg)
        object.__setattr__(self, "offline", offline)
        object.__setattr__(self, "primary", as_adapter(primary))
        object.__setattr__(self, "secondary", as_adapter(secondary))

    def remote_tiers(self) -> Iterator[tuple[ResolutionSource, FlagAdapter]]:
        """Yield the configured remote tiers in evaluation order."""
        if self.primary is not None:
            yield ResolutionSource.PRIMARY, self.primary
        if self.secondary is not None:
            yield ResolutionSource.SECONDARY, self.secondary

    def reset(self) -> None:
        """Reset any lazily resolved adapters in the chain."""
        for _, adapter in self.remote_tiers():
            if isinstance(adapter, LazyAdapter):
                adapter.reset()


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """The outcome of one flag evaluation.

    Attributes:
        flag_key: The evaluated flag.
        value: The resolved value.
        source: The tier that produced ``value``.
        duration_ms: Wall-clock time spent resolving.
        failures: Tiers that errored, timed out or gave no answer before
            ``source`` answered.

    """

    flag_key: str
    value: Any
    source: ResolutionSource
    duration_ms: float = 0.0
    failures: tuple[ResolutionSource, ...] = field(default_factory=tuple)

    @property
    def is_fallback(self) -> bool:
        """Whether the value came from the offline tier."""
        return self.source is ResolutionSource.OFFLINE

    def to_dict(self) -> dict[str, Any]:
        return {
            "flag_key": self.flag_key,
            "value": self.value,
            "source": self.source.value,
            "duration_ms": self.duration_ms,
            "failures": [failure.value for failure in self.failures],
        }
