"""Adapter protocol and helpers for remote flag tiers.

An adapter is anything with ``async decide(context) -> value | None``. Returning
``None`` means "no answer" and lets the chain advance; every other value,
including ``False`` and ``""``, is a decision.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from litestar_flagchain.context import UnifiedContext
from litestar_flagchain.exceptions import ConfigurationError

__all__ = [
    "AdapterFactory",
    "AdapterLike",
    "CallableAdapter",
    "FlagAdapter",
    "LazyAdapter",
    "StaticAdapter",
    "as_adapter",
]


@runtime_checkable
class FlagAdapter(Protocol):
    """Protocol for a remote decision source.

    Implementations may raise; the resolver treats errors and timeouts the
    same as a ``None`` result.
    """

    async def decide(self, context: UnifiedContext) -> Any:
        """Return the flag value for ``context``, or ``None`` for no answer."""
        ...


AdapterFactory = Callable[[], FlagAdapter | Awaitable[FlagAdapter]]
AdapterLike = FlagAdapter | AdapterFactory | Callable[[UnifiedContext], Awaitable[Any]]


class CallableAdapter:
    """Wraps a plain ``async def decide(context)`` function."""

    __slots__ = ("func",)

    def __init__(self, func: Callable[[UnifiedContext], Awaitable[Any]]) -> None:
        self.func = func

    async def decide(self, context: UnifiedContext) -> Any:
        return await self.func(context)

    def __repr__(self) -> str:
        return f"CallableAdapter({getattr(self.func, '__qualname__', self.func)!r})"


class StaticAdapter:
    """Always answers with the same value.

    Handy in tests and for pinning a tier to a known answer. A value of
    ``None`` makes the tier always defer.
    """

    __slots__ = ("value",)

    def __init__(self, value: Any) -> None:
        self.value = value

    async def decide(self, context: UnifiedContext) -> Any:
        return self.value

    def __repr__(self) -> str:
        return f"StaticAdapter({self.value!r})"


class LazyAdapter:
    """Resolves an adapter factory once and reuses the instance.

    Replaces module-level client singletons: the factory runs on first use,
    concurrent first uses share one call, and :meth:`reset` drops the cached
    instance so tests can swap it. A failing factory is not cached.

    Args:
        factory: Zero-argument callable returning an adapter, or an awaitable
            of one.

    """

    __slots__ = ("_factory", "_instance", "_lock")

    def __init__(self, factory: AdapterFactory) -> None:
        self._factory = factory
        self._instance: FlagAdapter | None = None
        self._lock = asyncio.Lock()

    @property
    def is_resolved(self) -> bool:
        return self._instance is not None

    async def get(self) -> FlagAdapter:
        """Return the adapter, running the factory on first use.

        Raises:
            ConfigurationError: If the factory returns something that is not
                an adapter.

        """
        if self._instance is not None:
            return self._instance
        async with self._lock:
            if self._instance is None:
                instance = self._factory()
                if inspect.isawaitable(instance):
                    instance = await instance
                if not isinstance(instance, FlagAdapter):
                    msg = f"Adapter factory returned {type(instance).__name__}, which has no 'decide' method"
                    raise ConfigurationError(msg)
                self._instance = instance
        return self._instance

    async def decide(self, context: UnifiedContext) -> Any:
        adapter = await self.get()
        return await adapter.decide(context)

    def reset(self) -> None:
        """Forget the resolved instance; the factory runs again on next use."""
        self._instance = None

    def __repr__(self) -> str:
        return f"LazyAdapter({getattr(self._factory, '__qualname__', self._factory)!r})"


def as_adapter(candidate: AdapterLike | None) -> FlagAdapter | None:
    """Normalize what a user passes as a tier into a :class:`FlagAdapter`.

    - objects with ``decide`` are used as is,
    - ``async def`` functions become a :class:`CallableAdapter`,
    - any other callable is treated as a zero-argument factory and wrapped
      in a :class:`LazyAdapter`.

    Raises:
        ConfigurationError: If ``candidate`` is none of the above, or is a
            synchronous callable that requires arguments.

    """
    if candidate is None:
        return None
    if isinstance(candidate, FlagAdapter) and not isinstance(candidate, type):
        return candidate
    if inspect.iscoroutinefunction(candidate):
        return CallableAdapter(candidate)
    if callable(candidate):
        if _requires_arguments(candidate):
            name = getattr(candidate, "__qualname__", type(candidate).__name__)
            msg = (
                f"{name} takes arguments; pass an async function or an object with decide(context), "
                "or a factory that takes none"
            )
            raise ConfigurationError(msg)
        return LazyAdapter(candidate)  # type: ignore[arg-type]
    msg = f"Cannot use {type(candidate).__name__} as a flag adapter"
    raise ConfigurationError(msg)


def _requires_arguments(func: Callable[..., Any]) -> bool:
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return False
    return any(
        param.default is inspect.Parameter.empty
        and param.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
        for param in signature.parameters.values()
    )
