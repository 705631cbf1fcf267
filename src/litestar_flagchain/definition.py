"""Declaring flags."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from litestar_flagchain.chain import AdapterChain, EvaluationResult
from litestar_flagchain.evaluator import OfflineFallbackConfig
from litestar_flagchain.exceptions import ConfigurationError
from litestar_flagchain.resolver import FlagResolver
from litestar_flagchain.security import validate_flag_key

if TYPE_CHECKING:
    from litestar_flagchain.adapters import AdapterLike
    from litestar_flagchain.context import UnifiedContext
    from litestar_flagchain.registry import FlagRegistry

__all__ = ["FlagDefinition", "FlagOptions", "define"]


@dataclass(frozen=True, slots=True)
class FlagOptions:
    """Descriptive and per-flag resolution options.

    Attributes:
        description: Human-readable description, published for discovery.
        timeout: Per-adapter timeout for this flag, overriding the resolver's.
        options: Values the flag may take, published for discovery. Items are
            plain values or ``{"value": ..., "label": ...}`` mappings.

    """

    description: str | None = None
    timeout: float | None = None
    options: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        if self.timeout is not None and self.timeout <= 0:
            msg = f"Flag timeout must be positive, got {self.timeout}"
            raise ConfigurationError(msg)
        if not isinstance(self.options, tuple):
            object.__setattr__(self, "options", tuple(self.options))


class FlagDefinition:
    """A declared flag: a key bound to its adapter chain.

    Call it with a context to get the value, or use :meth:`evaluate` for the
    full :class:`~litestar_flagchain.chain.EvaluationResult`::

        enabled = await new_checkout(context)

    """

    __slots__ = ("_resolver", "chain", "key", "options")

    def __init__(
        self,
        key: str,
        chain: AdapterChain,
        options: FlagOptions | None = None,
        resolver: FlagResolver | None = None,
    ) -> None:
        self.key = key
        self.chain = chain
        self.options = options or FlagOptions()
        self._resolver = resolver

    @property
    def resolver(self) -> FlagResolver:
        if self._resolver is None:
            self._resolver = FlagResolver()
        return self._resolver

    def bind(self, resolver: FlagResolver) -> None:
        """Resolve this flag through ``resolver`` from now on."""
        self._resolver = resolver

    async def evaluate(self, context: UnifiedContext) -> EvaluationResult:
        return await self.resolver.evaluate(self.key, self.chain, context, timeout=self.options.timeout)

    async def __call__(self, context: UnifiedContext) -> Any:
        result = await self.evaluate(context)
        return result.value

    def provider_data(self) -> dict[str, Any]:
        """Discovery metadata for this flag."""
        return {"description": self.options.description, "options": list(self.options.options)}

    def __repr__(self) -> str:
        return f"FlagDefinition(key={self.key!r})"


def _coerce_offline(offline: OfflineFallbackConfig | Mapping[str, Any] | None) -> OfflineFallbackConfig:
    if isinstance(offline, OfflineFallbackConfig):
        return offline
    if isinstance(offline, Mapping):
        try:
            return OfflineFallbackConfig(**offline)
        except TypeError as exc:
            msg = f"Invalid offline configuration: {exc}"
            raise ConfigurationError(msg) from exc
    msg = "Every flag requires an offline fallback configuration"
    raise ConfigurationError(msg)


def define(
    key: str,
    *,
    offline: OfflineFallbackConfig | Mapping[str, Any],
    primary: AdapterLike | None = None,
    secondary: AdapterLike | None = None,
    options: FlagOptions | Mapping[str, Any] | None = None,
    resolver: FlagResolver | None = None,
    registry: FlagRegistry | None = None,
) -> FlagDefinition:
    """Declare a flag.

    Args:
        key: Flag key: a letter followed by letters, digits, ``-`` or ``_``.
        offline: Offline policy, as a config or a mapping of its fields.
        primary: First remote tier (adapter, ``async def`` or factory).
        secondary: Second remote tier.
        options: Description, timeout and advertised values.
        resolver: Resolver to evaluate with; a private default otherwise.
        registry: Registry to register the flag in.

    Returns:
        The flag definition.

    Raises:
        ConfigurationError: If the key, the offline policy or the options
            are invalid, or ``registry`` already has the key.

    Example:
        >>> beta = define("beta-x", offline={"type": "percentage", "percentage": 10})
        >>> await beta(context)  # doctest: +SKIP
        False

    """
    if not validate_flag_key(key):
        msg = f"Invalid flag key: {key!r}"
        raise ConfigurationError(msg)
    offline_config = _coerce_offline(offline)
    offline_config.validate()
    if isinstance(options, Mapping):
        try:
            options = FlagOptions(**options)
        except TypeError as exc:
            msg = f"Invalid options for flag '{key}': {exc}"
            raise ConfigurationError(msg) from exc

    definition = FlagDefinition(
        key,
        AdapterChain(offline_config, primary=primary, secondary=secondary),
        options=options,
        resolver=resolver,
    )
    if registry is not None:
        registry.register(definition)
    return definition
