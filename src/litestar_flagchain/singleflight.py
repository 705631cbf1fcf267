"""Single-flight deduplication and per-request memoization."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, TypeVar

__all__ = [
    "RequestScope",
    "SingleFlight",
    "current_scope",
    "request_scope",
]

T = TypeVar("T")

_current_scope: ContextVar[RequestScope | None] = ContextVar("litestar_flagchain_request_scope", default=None)


class SingleFlight:
    """Deduplicate concurrent calls that share a key.

    The first caller for a key runs the function; every caller that arrives
    while it is running awaits the same future. Results are kept, so later
    callers in the same ``SingleFlight`` get the memoized value. Failures are
    not kept: the next caller retries.

    Example:
        >>> flight = SingleFlight()
        >>> await flight.do("visitor-id", mint_visitor_id)  # doctest: +SKIP

    """

    __slots__ = ("_futures",)

    def __init__(self) -> None:
        self._futures: dict[str, asyncio.Future[Any]] = {}

    async def do(self, key: str, func: Callable[[], Awaitable[T]]) -> T:
        """Run ``func`` once for ``key`` and share the result.

        Args:
            key: Deduplication key.
            func: Zero-argument coroutine function producing the value.

        Returns:
            The value produced by the single execution for ``key``.

        """
        future = self._futures.get(key)
        if future is not None:
            return await asyncio.shield(future)

        future = asyncio.get_running_loop().create_future()
        self._futures[key] = future
        try:
            result = await func()
        except BaseException as exc:
            del self._futures[key]
            if isinstance(exc, asyncio.CancelledError):
                future.cancel()
            else:
                future.set_exception(exc)
                # Waiters re-raise it; mark retrieved so an unwaited future stays quiet.
                future.exception()
            raise
        future.set_result(result)
        return result

    def has(self, key: str) -> bool:
        """Whether ``key`` has a completed or in-flight computation."""
        return key in self._futures

    def forget(self, key: str) -> None:
        """Drop the memoized value for ``key``."""
        self._futures.pop(key, None)


class RequestScope:
    """Memo holder for one logical request.

    The context extractor stores its single-flight state here, so concurrent
    evaluations in the same request converge on one context and one visitor
    id. Scopes are cheap and meant to be discarded with the request.
    """

    __slots__ = ("flight", "values")

    def __init__(self) -> None:
        self.flight = SingleFlight()
        self.values: dict[str, Any] = {}


def current_scope() -> RequestScope | None:
    """Return the request scope bound to the running context, if any."""
    return _current_scope.get()


@contextmanager
def request_scope(scope: RequestScope | None = None) -> Iterator[RequestScope]:
    """Bind a request scope to the current context for the duration of a block.

    Args:
        scope: Scope to bind. A new one is created when omitted.

    Yields:
        The bound scope.

    """
    scope = scope or RequestScope()
    token = _current_scope.set(scope)
    try:
        yield scope
    finally:
        _current_scope.reset(token)
