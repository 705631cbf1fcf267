"""Request context extraction.

Turns cookie and header accessors from any transport into a
:class:`~litestar_flagchain.context.UnifiedContext`. Extraction never raises:
on failure a minimal anonymous context is returned so evaluation can proceed.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable
from uuid import uuid4

from litestar_flagchain.context import (
    ANONYMOUS_USER_ID,
    DEFAULT_COUNTRY,
    UNKNOWN,
    RequestContext,
    UnifiedContext,
    UserContext,
    VisitorContext,
)
from litestar_flagchain.singleflight import RequestScope, current_scope
from litestar_flagchain.types import UserTier

__all__ = [
    "COUNTRY_HEADERS",
    "ContextExtractor",
    "CookieSource",
    "ExtractionNames",
    "HeaderSource",
    "extract_request_context",
    "extract_user_context",
    "fallback_context",
    "generate_visitor_id",
    "get_or_generate_visitor_id",
    "process_environment",
]

logger = logging.getLogger(__name__)

#: Geo headers in priority order (Cloudflare, Vercel, generic).
COUNTRY_HEADERS = ("cf-ipcountry", "x-vercel-ip-country", "x-country-code")

_VISITOR_ID_KEY = "visitor_id"
_CONTEXT_KEY = "context"
_FALLBACK_KEY = "fallback_context"


@runtime_checkable
class CookieSource(Protocol):
    """Cookie-store-like accessor.

    ``get`` may return an object with a ``value`` attribute, a mapping with a
    ``"value"`` key, a plain string, or ``None``.
    """

    def get(self, name: str) -> Any: ...


@runtime_checkable
class HeaderSource(Protocol):
    """Header-store-like accessor returning a string or ``None``."""

    def get(self, name: str) -> str | None: ...


@dataclass(frozen=True, slots=True)
class ExtractionNames:
    """Cookie and header names consulted during extraction."""

    visitor_cookie: str = "flags-visitor-id"
    visitor_header: str = "x-visitor-id"
    user_cookie: str = "user-id"
    user_header: str = "x-user-id"
    session_cookie: str = "session-id"
    subscription_cookie: str = "subscription"
    environment_header: str = "x-environment"
    deployment_header: str = "x-deployment-id"
    user_agent_header: str = "user-agent"


_DEFAULT_NAMES = ExtractionNames()


def process_environment() -> str:
    """Return the process-wide default environment name."""
    return os.environ.get("FLAGS_ENVIRONMENT") or os.environ.get("ENVIRONMENT") or "development"


def generate_visitor_id() -> str:
    """Mint a fresh random visitor id."""
    return str(uuid4())


def _cookie_value(cookies: CookieSource | Mapping[str, Any] | None, name: str) -> str | None:
    if cookies is None:
        return None
    raw = cookies.get(name)
    if raw is None:
        return None
    if isinstance(raw, str):
        value = raw
    elif isinstance(raw, Mapping):
        value = raw.get("value")
    else:
        value = getattr(raw, "value", None)
    return value or None


def _header_value(headers: HeaderSource | Mapping[str, str] | None, name: str) -> str | None:
    if headers is None:
        return None
    value = headers.get(name)
    if value is None and isinstance(headers, Mapping):
        # Plain dicts are case sensitive; transports' header stores are not.
        lowered = name.lower()
        value = next((v for k, v in headers.items() if k.lower() == lowered), None)
    if not isinstance(value, str):
        return None
    return value.strip() or None


async def get_or_generate_visitor_id(
    cookies: CookieSource | Mapping[str, Any] | None,
    headers: HeaderSource | Mapping[str, str] | None,
    cookie_name: str = _DEFAULT_NAMES.visitor_cookie,
    *,
    header_name: str = _DEFAULT_NAMES.visitor_header,
    scope: RequestScope | None = None,
) -> str:
    """Return the visitor id for a request, minting one if needed.

    Lookup order is the cookie store, then ``header_name`` (an upstream hop
    may already have minted an id), then a fresh random id. Calls sharing a
    request scope are single-flight, so concurrent evaluations never mint two
    different ids for one visitor.

    Args:
        cookies: Cookie accessor.
        headers: Header accessor.
        cookie_name: Cookie holding the visitor id.
        header_name: Header an upstream hop may have set.
        scope: Request scope to memoize in. Defaults to the scope bound to the
            current context; without one, no deduplication happens.

    Returns:
        The visitor id.

    """

    async def resolve() -> str:
        return (
            _cookie_value(cookies, cookie_name) or _header_value(headers, header_name) or generate_visitor_id()
        )

    scope = scope or current_scope()
    if scope is None:
        return await resolve()
    return await scope.flight.do(_VISITOR_ID_KEY, resolve)


def _tier_from_subscription(subscription: str | None) -> str:
    if not subscription:
        return UserTier.FREE.value
    lowered = subscription.lower()
    if "enterprise" in lowered:
        return UserTier.ENTERPRISE.value
    if "premium" in lowered or "pro" in lowered:
        return UserTier.PREMIUM.value
    return UserTier.FREE.value


def extract_user_context(
    cookies: CookieSource | Mapping[str, Any] | None,
    headers: HeaderSource | Mapping[str, str] | None,
    names: ExtractionNames = _DEFAULT_NAMES,
) -> UserContext:
    """Derive the user portion of the context.

    The tier comes from subscription-cookie heuristics: ``enterprise`` maps to
    the enterprise tier, ``pro`` or ``premium`` to premium, anything else to
    free. Requests without a user id are anonymous.
    """
    user_id = _cookie_value(cookies, names.user_cookie) or _header_value(headers, names.user_header)
    session_id = _cookie_value(cookies, names.session_cookie)
    if not user_id:
        return UserContext(id=ANONYMOUS_USER_ID, tier=UserTier.ANONYMOUS.value, session_id=session_id)
    return UserContext(
        id=user_id,
        tier=_tier_from_subscription(_cookie_value(cookies, names.subscription_cookie)),
        session_id=session_id,
    )


def extract_request_context(
    headers: HeaderSource | Mapping[str, str] | None,
    default_environment: str | None = None,
    names: ExtractionNames = _DEFAULT_NAMES,
) -> RequestContext:
    """Derive the request portion of the context.

    Country comes from the first geo header present (see
    :data:`COUNTRY_HEADERS`), defaulting to ``"US"``. Environment comes from
    the environment header, else ``default_environment``, else the process
    default.
    """
    country = next(
        (value for value in (_header_value(headers, name) for name in COUNTRY_HEADERS) if value),
        DEFAULT_COUNTRY,
    )
    return RequestContext(
        country=country.upper(),
        user_agent=_header_value(headers, names.user_agent_header) or UNKNOWN,
        environment=_header_value(headers, names.environment_header) or default_environment or process_environment(),
        deployment=_header_value(headers, names.deployment_header) or UNKNOWN,
    )


def fallback_context(visitor_id: str | None = None) -> UnifiedContext:
    """Build the minimal context used when extraction fails."""
    return UnifiedContext(
        visitor=VisitorContext(id=visitor_id or generate_visitor_id()),
        user=UserContext(),
        request=RequestContext(),
    )


class ContextExtractor:
    """Builds and memoizes the evaluation context for a request.

    Args:
        names: Cookie and header names to consult.
        default_environment: Environment used when the request carries none.

    Example:
        >>> extractor = ContextExtractor()
        >>> context = await extractor.extract(request.cookies, request.headers)  # doctest: +SKIP

    """

    def __init__(
        self,
        names: ExtractionNames | None = None,
        default_environment: str | None = None,
    ) -> None:
        self.names = names or ExtractionNames()
        self.default_environment = default_environment

    async def extract(
        self,
        cookies: CookieSource | Mapping[str, Any] | None,
        headers: HeaderSource | Mapping[str, str] | None,
        scope: RequestScope | None = None,
    ) -> UnifiedContext:
        """Build the context for a request; never raises.

        Concurrent calls sharing a request scope converge on a single
        extraction result.

        Args:
            cookies: Cookie accessor.
            headers: Header accessor.
            scope: Request scope to memoize in; defaults to the bound scope.

        Returns:
            The request's :class:`UnifiedContext`, or a minimal fallback
            context when extraction fails.

        """
        scope = scope or current_scope()

        async def build() -> UnifiedContext:
            return await self._build(cookies, headers, scope)

        try:
            if scope is None:
                return await build()
            return await scope.flight.do(_CONTEXT_KEY, build)
        except Exception:
            logger.exception("Context extraction failed; using anonymous fallback context")
            if scope is None:
                return fallback_context()
            # Every caller in the scope must see the same fallback visitor.
            visitor_id = scope.values.setdefault(_VISITOR_ID_KEY, generate_visitor_id())
            return scope.values.setdefault(_FALLBACK_KEY, fallback_context(visitor_id))

    async def _build(
        self,
        cookies: CookieSource | Mapping[str, Any] | None,
        headers: HeaderSource | Mapping[str, str] | None,
        scope: RequestScope | None,
    ) -> UnifiedContext:
        visitor_id = await get_or_generate_visitor_id(
            cookies,
            headers,
            self.names.visitor_cookie,
            header_name=self.names.visitor_header,
            scope=scope,
        )
        if scope is not None:
            scope.values[_VISITOR_ID_KEY] = visitor_id
        return UnifiedContext(
            visitor=VisitorContext(id=visitor_id),
            user=extract_user_context(cookies, headers, self.names),
            request=extract_request_context(headers, self.default_environment, self.names),
        )
