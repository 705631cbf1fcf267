"""Litestar plugin wiring the flag chain into an application."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from litestar.di import Provide
from litestar.plugins import InitPluginProtocol

from litestar_flagchain.analytics import AnalyticsDispatcher, InMemoryAnalyticsCollector
from litestar_flagchain.config import FlagChainConfig
from litestar_flagchain.evaluator import OfflineEvaluator
from litestar_flagchain.extraction import ContextExtractor
from litestar_flagchain.middleware import create_context_middleware
from litestar_flagchain.overrides import EnvironmentOverrides
from litestar_flagchain.registry import FlagRegistry
from litestar_flagchain.resolver import FlagResolver

if TYPE_CHECKING:
    from litestar import Litestar
    from litestar.config.app import AppConfig

    from litestar_flagchain.analytics import AnalyticsCollector, AnalyticsSink
    from litestar_flagchain.encryption import FlagCodec

__all__ = ["FlagChainPlugin"]

logger = logging.getLogger(__name__)

RESOLVER_STATE_KEY = "flag_resolver"
REGISTRY_STATE_KEY = "flag_registry"
DISPATCHER_STATE_KEY = "flag_analytics"
CODEC_STATE_KEY = "flag_codec"


class FlagChainPlugin(InitPluginProtocol):
    """Integrates flag resolution with a Litestar application.

    On init the plugin:

    - installs the context middleware (unless ``enable_middleware`` is off),
    - registers the resolver and the registry as dependencies under the
      configured keys,
    - binds the registry's flags to the plugin's resolver,
    - starts the analytics dispatcher on startup and drains it on shutdown.

    Args:
        config: Integration config.
        registry: Registry of flags to serve; a new one when omitted.
        collector: Analytics collector; in-memory when omitted.
        sinks: Extra analytics sinks.

    Example:
        >>> registry = FlagRegistry()
        >>> registry.define("new-checkout", offline={"type": "percentage", "percentage": 20})
        FlagDefinition(key='new-checkout')
        >>> app = Litestar(route_handlers=[...], plugins=[FlagChainPlugin(registry=registry)])  # doctest: +SKIP

    """

    __slots__ = ("_codec", "_config", "_dispatcher", "_extractor", "_registry", "_resolver")

    def __init__(
        self,
        config: FlagChainConfig | None = None,
        registry: FlagRegistry | None = None,
        collector: AnalyticsCollector | None = None,
        sinks: Iterable[AnalyticsSink] = (),
    ) -> None:
        self._config = config or FlagChainConfig()
        self._registry = registry if registry is not None else FlagRegistry()
        self._dispatcher: AnalyticsDispatcher | None = None
        if self._config.analytics_enabled:
            self._dispatcher = AnalyticsDispatcher(
                collector=collector if collector is not None else InMemoryAnalyticsCollector(),
                sinks=sinks,
                max_queue_size=self._config.analytics_queue_size,
                sink_timeout=self._config.analytics_sink_timeout,
            )
        self._resolver = FlagResolver(
            OfflineEvaluator(overrides=EnvironmentOverrides(prefix=self._config.override_prefix)),
            timeout=self._config.adapter_timeout,
            dispatcher=self._dispatcher,
        )
        self._registry.bind(self._resolver)
        self._extractor = ContextExtractor(
            names=self._config.names,
            default_environment=self._config.default_environment,
        )
        self._codec = self._config.create_codec()

    @property
    def config(self) -> FlagChainConfig:
        return self._config

    @property
    def registry(self) -> FlagRegistry:
        return self._registry

    @property
    def resolver(self) -> FlagResolver:
        return self._resolver

    @property
    def codec(self) -> FlagCodec | None:
        """Codec for the configured secret; None when no secret is set."""
        return self._codec

    @property
    def dispatcher(self) -> AnalyticsDispatcher | None:
        return self._dispatcher

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        config = self._config
        app_config.dependencies[config.resolver_dependency_key] = Provide(self._provide_resolver, sync_to_thread=False)
        app_config.dependencies[config.registry_dependency_key] = Provide(self._provide_registry, sync_to_thread=False)
        app_config.signature_namespace.update(
            {
                "FlagResolver": FlagResolver,
                "FlagRegistry": FlagRegistry,
            }
        )
        if config.enable_middleware:
            app_config.middleware.insert(0, create_context_middleware(config, self._extractor))
        app_config.on_startup.append(self._on_startup)
        app_config.on_shutdown.append(self._on_shutdown)
        return app_config

    async def _on_startup(self, app: Litestar) -> None:
        app.state[RESOLVER_STATE_KEY] = self._resolver
        app.state[REGISTRY_STATE_KEY] = self._registry
        if self._codec is not None:
            app.state[CODEC_STATE_KEY] = self._codec
        if self._dispatcher is not None:
            app.state[DISPATCHER_STATE_KEY] = self._dispatcher
            await self._dispatcher.start()
        logger.info("Flag chain started with %d registered flags", len(self._registry))

    async def _on_shutdown(self, app: Litestar) -> None:
        if self._dispatcher is not None:
            await self._dispatcher.stop()
        logger.info(
            "Flag chain stopped",
            extra={
                "analytics_sent": self._dispatcher.sent if self._dispatcher else 0,
                "analytics_dropped": self._dispatcher.dropped if self._dispatcher else 0,
            },
        )

    def _provide_resolver(self) -> FlagResolver:
        return self._resolver

    def _provide_registry(self) -> FlagRegistry:
        return self._registry

