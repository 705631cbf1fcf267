"""A registry of declared flags."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from litestar_flagchain.definition import define
from litestar_flagchain.exceptions import ConfigurationError

if TYPE_CHECKING:
    from litestar_flagchain.chain import EvaluationResult
    from litestar_flagchain.context import UnifiedContext
    from litestar_flagchain.definition import FlagDefinition
    from litestar_flagchain.resolver import FlagResolver

__all__ = ["FlagRegistry"]

logger = logging.getLogger(__name__)


class FlagRegistry:
    """Owns flag definitions by key.

    Example:
        >>> registry = FlagRegistry()
        >>> registry.define("beta-x", offline={"type": "boolean", "percentage": 50})
        FlagDefinition(key='beta-x')
        >>> "beta-x" in registry
        True

    """

    def __init__(self, resolver: FlagResolver | None = None) -> None:
        self._definitions: dict[str, FlagDefinition] = {}
        self._resolver = resolver

    def register(self, definition: FlagDefinition) -> FlagDefinition:
        """Add a definition.

        Raises:
            ConfigurationError: If a flag with the same key is registered.

        """
        if definition.key in self._definitions:
            msg = f"Flag '{definition.key}' is already registered"
            raise ConfigurationError(msg)
        if self._resolver is not None:
            definition.bind(self._resolver)
        self._definitions[definition.key] = definition
        logger.debug("Registered flag '%s'", definition.key)
        return definition

    def define(self, key: str, **kwargs: Any) -> FlagDefinition:
        """Declare a flag and register it. Accepts :func:`define` arguments."""
        return define(key, registry=self, **kwargs)

    def bind(self, resolver: FlagResolver) -> None:
        """Route every current and future flag through ``resolver``."""
        self._resolver = resolver
        for definition in self._definitions.values():
            definition.bind(resolver)

    def get(self, key: str) -> FlagDefinition | None:
        return self._definitions.get(key)

    def keys(self) -> list[str]:
        return list(self._definitions)

    def clear(self) -> None:
        self._definitions.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._definitions

    def __iter__(self) -> Iterator[FlagDefinition]:
        return iter(list(self._definitions.values()))

    def __len__(self) -> int:
        return len(self._definitions)

    async def evaluate_all(self, context: UnifiedContext) -> dict[str, EvaluationResult]:
        """Evaluate every registered flag for ``context``.

        Flags are resolved concurrently; within each flag the tiers are still
        tried one after another.
        """
        definitions = list(self._definitions.values())
        results = await asyncio.gather(*(definition.evaluate(context) for definition in definitions))
        return {definition.key: result for definition, result in zip(definitions, results, strict=True)}

    async def get_values(self, context: UnifiedContext) -> dict[str, Any]:
        """Evaluate every registered flag and return only the values."""
        return {key: result.value for key, result in (await self.evaluate_all(context)).items()}

    def get_provider_data(self) -> dict[str, Any]:
        """Describe registered flags for a discovery endpoint."""
        return {
            "definitions": {key: definition.provider_data() for key, definition in self._definitions.items()},
            "hints": [],
        }
