"""Middleware that builds the evaluation context for each request."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from litestar.connection import ASGIConnection
from litestar.datastructures import Cookie, MutableScopeHeaders
from litestar.enums import ScopeType
from litestar.middleware import ASGIMiddleware

from litestar_flagchain.config import FlagChainConfig
from litestar_flagchain.extraction import ContextExtractor
from litestar_flagchain.singleflight import RequestScope, request_scope

if TYPE_CHECKING:
    from litestar import Request
    from litestar.types import ASGIApp, Message, Receive, Scope, Send

    from litestar_flagchain.context import UnifiedContext

__all__ = [
    "CONTEXT_STATE_KEY",
    "REQUEST_SCOPE_STATE_KEY",
    "FlagChainMiddleware",
    "create_context_middleware",
    "get_request_context",
]

logger = logging.getLogger(__name__)

CONTEXT_STATE_KEY = "flagchain_context"
REQUEST_SCOPE_STATE_KEY = "flagchain_request_scope"


class FlagChainMiddleware(ASGIMiddleware):
    """Extracts a :class:`~litestar_flagchain.context.UnifiedContext` per request.

    The context is stored in the scope state (see :func:`get_request_context`)
    and the request's single-flight scope is bound for the rest of the
    request, so every evaluation in the request shares one visitor id. A
    freshly minted visitor id is persisted with a ``Set-Cookie`` header when
    ``config.set_visitor_cookie`` is on.

    Args:
        config: Integration config; defaults are used when omitted.
        extractor: Context extractor; built from ``config`` when omitted.

    """

    scopes = (ScopeType.HTTP, ScopeType.WEBSOCKET)

    def __init__(self, config: FlagChainConfig | None = None, extractor: ContextExtractor | None = None) -> None:
        self.config = config or FlagChainConfig()
        self.extractor = extractor or ContextExtractor(
            names=self.config.names,
            default_environment=self.config.default_environment,
        )
        self.exclude_path_pattern = self.config.exclude_paths or None

    async def handle(self, scope: Scope, receive: Receive, send: Send, next_app: ASGIApp) -> None:
        connection: ASGIConnection[Any, Any, Any, Any] = ASGIConnection(scope)
        cookies = connection.cookies
        state = scope.setdefault("state", {})  # type: ignore[typeddict-item]

        with request_scope(RequestScope()) as memo:
            context = await self.extractor.extract(cookies, connection.headers, memo)
            state[CONTEXT_STATE_KEY] = context
            state[REQUEST_SCOPE_STATE_KEY] = memo

            if scope["type"] != ScopeType.HTTP or not self._should_set_cookie(cookies, context):
                await next_app(scope, receive, send)
                return

            logger.debug("Persisting visitor id in cookie '%s'", self.config.visitor_cookie)
            cookie = Cookie(
                key=self.config.visitor_cookie,
                value=context.visitor.id,
                max_age=self.config.visitor_cookie_max_age,
                httponly=True,
                samesite="lax",
            )

            async def send_with_cookie(message: Message) -> None:
                if message["type"] == "http.response.start":
                    headers = MutableScopeHeaders.from_message(message)
                    headers.add("set-cookie", cookie.to_header(header=""))
                await send(message)

            await next_app(scope, receive, send_with_cookie)

    def _should_set_cookie(self, cookies: dict[str, str], context: UnifiedContext) -> bool:
        return self.config.set_visitor_cookie and cookies.get(self.config.visitor_cookie) != context.visitor.id


def create_context_middleware(
    config: FlagChainConfig | None = None,
    extractor: ContextExtractor | None = None,
) -> FlagChainMiddleware:
    """Create the context middleware for an app's ``middleware`` list.

    Example:
        >>> app = Litestar(route_handlers=[...], middleware=[create_context_middleware()])  # doctest: +SKIP

    """
    return FlagChainMiddleware(config=config, extractor=extractor)


def get_request_context(request: Request[Any, Any, Any]) -> UnifiedContext | None:
    """Return the context the middleware stored for ``request``, if any."""
    return request.scope.get("state", {}).get(CONTEXT_STATE_KEY)
