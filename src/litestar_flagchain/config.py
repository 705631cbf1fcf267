"""Configuration for the Litestar integration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from litestar_flagchain.analytics.dispatcher import DEFAULT_SINK_TIMEOUT
from litestar_flagchain.encryption import FlagCodec, validate_secret
from litestar_flagchain.exceptions import ConfigurationError, InvalidSecretError
from litestar_flagchain.extraction import ExtractionNames
from litestar_flagchain.overrides import DEFAULT_OVERRIDE_PREFIX
from litestar_flagchain.resolver import DEFAULT_ADAPTER_TIMEOUT

__all__ = ["FlagChainConfig"]

_ENV_SECRET = "FLAGS_SECRET"
_ENV_ENVIRONMENT = "FLAGS_ENVIRONMENT"
_ENV_TIMEOUT = "FLAGS_ADAPTER_TIMEOUT"


@dataclass
class FlagChainConfig:
    """Configuration for :class:`~litestar_flagchain.plugin.FlagChainPlugin`.

    Attributes:
        visitor_cookie: Cookie holding the visitor id.
        visitor_header: Header an upstream hop may set the visitor id in.
        user_cookie: Cookie holding the user id.
        user_header: Header holding the user id.
        session_cookie: Cookie holding the session id.
        subscription_cookie: Cookie the user tier is derived from.
        environment_header: Header naming the deployment environment.
        deployment_header: Header naming the deployment.
        default_environment: Environment for requests without the header.
            Defaults to ``FLAGS_ENVIRONMENT``/``ENVIRONMENT`` at request time.
        adapter_timeout: Default per-adapter timeout in seconds.
        analytics_enabled: Whether evaluations are dispatched to analytics.
        analytics_queue_size: Events buffered before new ones are dropped.
        analytics_sink_timeout: Seconds an async analytics sink may take per event.
        secret: Secret for encrypting flag values sent to clients.
        strict_secret: Also validate the secret's character set.
        override_prefix: Prefix of operator override variables.
        enable_middleware: Install the context middleware.
        set_visitor_cookie: Persist newly minted visitor ids in a cookie.
        visitor_cookie_max_age: Lifetime of the visitor cookie in seconds.
        exclude_paths: Path patterns the middleware skips.
        resolver_dependency_key: Dependency name of the resolver.
        registry_dependency_key: Dependency name of the flag registry.
        extra: Additional application-specific settings.

    """

    visitor_cookie: str = "flags-visitor-id"
    visitor_header: str = "x-visitor-id"
    user_cookie: str = "user-id"
    user_header: str = "x-user-id"
    session_cookie: str = "session-id"
    subscription_cookie: str = "subscription"
    environment_header: str = "x-environment"
    deployment_header: str = "x-deployment-id"

    default_environment: str | None = None
    adapter_timeout: float | None = DEFAULT_ADAPTER_TIMEOUT

    analytics_enabled: bool = True
    analytics_queue_size: int = 1000
    analytics_sink_timeout: float | None = DEFAULT_SINK_TIMEOUT

    secret: str | None = None
    strict_secret: bool = False

    override_prefix: str = DEFAULT_OVERRIDE_PREFIX

    enable_middleware: bool = True
    set_visitor_cookie: bool = True
    visitor_cookie_max_age: int = 60 * 60 * 24 * 365
    exclude_paths: tuple[str, ...] = ()

    resolver_dependency_key: str = "flag_resolver"
    registry_dependency_key: str = "flags"

    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.adapter_timeout is not None and self.adapter_timeout <= 0:
            msg = "adapter_timeout must be positive or None"
            raise ConfigurationError(msg)
        if self.analytics_queue_size <= 0:
            msg = "analytics_queue_size must be positive"
            raise ConfigurationError(msg)
        if self.analytics_sink_timeout is not None and self.analytics_sink_timeout <= 0:
            msg = "analytics_sink_timeout must be positive or None"
            raise ConfigurationError(msg)
        if not self.override_prefix:
            msg = "override_prefix must not be empty"
            raise ConfigurationError(msg)
        if self.secret is not None:
            result = validate_secret(self.secret, strict=self.strict_secret)
            if not result.valid:
                raise InvalidSecretError(result.issue, result.reason or "Invalid secret")  # type: ignore[arg-type]
        self.exclude_paths = tuple(self.exclude_paths)

    @property
    def names(self) -> ExtractionNames:
        """Cookie and header names for the context extractor."""
        return ExtractionNames(
            visitor_cookie=self.visitor_cookie,
            visitor_header=self.visitor_header,
            user_cookie=self.user_cookie,
            user_header=self.user_header,
            session_cookie=self.session_cookie,
            subscription_cookie=self.subscription_cookie,
            environment_header=self.environment_header,
            deployment_header=self.deployment_header,
        )

    def create_codec(self) -> FlagCodec | None:
        """Return a codec for the configured secret, or None without one."""
        if self.secret is None:
            return None
        return FlagCodec(self.secret, strict=self.strict_secret)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> FlagChainConfig:
        """Build a config from ``FLAGS_*`` environment variables.

        Reads ``FLAGS_SECRET``, ``FLAGS_ENVIRONMENT`` and
        ``FLAGS_ADAPTER_TIMEOUT``. Keyword arguments take precedence.

        Raises:
            ConfigurationError: If a variable holds an invalid value.

        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        if secret := env.get(_ENV_SECRET):
            values["secret"] = secret
        if environment := env.get(_ENV_ENVIRONMENT):
            values["default_environment"] = environment
        if raw_timeout := env.get(_ENV_TIMEOUT):
            try:
                values["adapter_timeout"] = float(raw_timeout)
            except ValueError as exc:
                msg = f"{_ENV_TIMEOUT} must be a number, got {raw_timeout!r}"
                raise ConfigurationError(msg) from exc
        values.update(overrides)
        return cls(**values)
