"""The adapter chain resolver.

Each evaluation walks a small state machine::

    TRY_PRIMARY -> TRY_SECONDARY -> OFFLINE -> DONE

A remote tier that raises, times out, or answers ``None`` gives no answer and
the walk moves on; any other value (``False`` and ``""`` included) ends it.
The offline tier always produces a value, so :meth:`FlagResolver.evaluate`
never raises except when the calling task is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import time
from functools import partial
from typing import TYPE_CHECKING, Any

from litestar_flagchain.analytics.models import FlagEvaluationEvent
from litestar_flagchain.chain import EvaluationResult
from litestar_flagchain.evaluator import OfflineEvaluator
from litestar_flagchain.exceptions import AdapterFailure
from litestar_flagchain.security import create_safe_log_context
from litestar_flagchain.types import ResolutionSource, ResolutionStage

if TYPE_CHECKING:
    from litestar_flagchain.adapters import FlagAdapter
    from litestar_flagchain.analytics.dispatcher import AnalyticsDispatcher
    from litestar_flagchain.chain import AdapterChain
    from litestar_flagchain.context import UnifiedContext

__all__ = ["DEFAULT_ADAPTER_TIMEOUT", "FlagResolver"]

logger = logging.getLogger(__name__)

DEFAULT_ADAPTER_TIMEOUT = 2.0

_NEXT_STAGE = {
    ResolutionStage.TRY_PRIMARY: ResolutionStage.TRY_SECONDARY,
    ResolutionStage.TRY_SECONDARY: ResolutionStage.OFFLINE,
}
_STAGE_SOURCE = {
    ResolutionStage.TRY_PRIMARY: ResolutionSource.PRIMARY,
    ResolutionStage.TRY_SECONDARY: ResolutionSource.SECONDARY,
}


def _log_detached_outcome(flag_key: str, source: ResolutionSource, task: asyncio.Future[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(
            "%s adapter for flag '%s' failed after its caller was cancelled",
            source.value,
            flag_key,
            exc_info=exc,
        )
    else:
        logger.debug("%s adapter for flag '%s' finished after its caller was cancelled", source.value, flag_key)


class FlagResolver:
    """Resolves flags through their adapter chains.

    Args:
        evaluator: Offline evaluator for the last tier.
        timeout: Default per-adapter timeout in seconds; ``None`` disables it.
        dispatcher: Receives one analytics event per evaluation.

    Example:
        >>> resolver = FlagResolver(timeout=0.5)
        >>> result = await resolver.evaluate("new-checkout", chain, context)  # doctest: +SKIP
        >>> result.source
        <ResolutionSource.PRIMARY: 'primary'>

    """

    def __init__(
        self,
        evaluator: OfflineEvaluator | None = None,
        *,
        timeout: float | None = DEFAULT_ADAPTER_TIMEOUT,
        dispatcher: AnalyticsDispatcher | None = None,
    ) -> None:
        if timeout is not None and timeout <= 0:
            msg = "timeout must be positive or None"
            raise ValueError(msg)
        self.evaluator = evaluator or OfflineEvaluator()
        self.timeout = timeout
        self.dispatcher = dispatcher

    async def evaluate(
        self,
        flag_key: str,
        chain: AdapterChain,
        context: UnifiedContext,
        *,
        timeout: float | None = None,
    ) -> EvaluationResult:
        """Resolve ``flag_key`` for ``context``.

        Args:
            flag_key: The flag to resolve.
            chain: Its adapter chain.
            context: The evaluation context.
            timeout: Per-adapter timeout overriding the resolver default.

        Returns:
            The value and the tier that produced it.

        """
        started = time.perf_counter()
        limit = timeout if timeout is not None else self.timeout
        adapters = {
            ResolutionStage.TRY_PRIMARY: chain.primary,
            ResolutionStage.TRY_SECONDARY: chain.secondary,
        }
        failures: list[ResolutionSource] = []
        value: Any = None
        source = ResolutionSource.OFFLINE
        stage = ResolutionStage.TRY_PRIMARY

        while stage is not ResolutionStage.DONE:
            if stage is ResolutionStage.OFFLINE:
                value = self.evaluator.evaluate(flag_key, chain.offline, context)
                source = ResolutionSource.OFFLINE
                stage = ResolutionStage.DONE
                continue

            adapter = adapters[stage]
            if adapter is not None:
                answer = await self._call_adapter(flag_key, _STAGE_SOURCE[stage], adapter, context, limit)
                if answer is not None:
                    value = answer
                    source = _STAGE_SOURCE[stage]
                    stage = ResolutionStage.DONE
                    continue
                failures.append(_STAGE_SOURCE[stage])
            stage = _NEXT_STAGE[stage]

        result = EvaluationResult(
            flag_key=flag_key,
            value=value,
            source=source,
            duration_ms=(time.perf_counter() - started) * 1000,
            failures=tuple(failures),
        )
        self._emit(result, context)
        return result

    async def _call_adapter(
        self,
        flag_key: str,
        source: ResolutionSource,
        adapter: FlagAdapter,
        context: UnifiedContext,
        timeout: float | None,
    ) -> Any:
        """Run one remote tier; ``None`` means no answer."""
        try:
            task = asyncio.ensure_future(adapter.decide(context))
        except Exception as exc:
            self._record_failure(AdapterFailure(flag_key, source, f"{type(exc).__name__}: {exc}"), context, exc)
            return None

        try:
            value = await asyncio.wait_for(asyncio.shield(task), timeout)
        except TimeoutError:
            task.cancel()
            self._record_failure(
                AdapterFailure(flag_key, source, f"timed out after {timeout}s", timed_out=True), context
            )
            return None
        except asyncio.CancelledError:
            # The caller is gone; the adapter call is left to finish on its own.
            task.add_done_callback(partial(_log_detached_outcome, flag_key, source))
            raise
        except Exception as exc:
            self._record_failure(AdapterFailure(flag_key, source, f"{type(exc).__name__}: {exc}"), context, exc)
            return None

        if value is None:
            logger.debug("%s adapter gave no answer for flag '%s'", source.value, flag_key)
        return value

    @staticmethod
    def _record_failure(failure: AdapterFailure, context: UnifiedContext, cause: BaseException | None = None) -> None:
        if cause is not None:
            failure.__cause__ = cause
        logger.warning(
            "%s",
            failure,
            exc_info=cause,
            extra=create_safe_log_context(
                failure.flag_key,
                context.identity,
                source=failure.source.value,
                timed_out=failure.timed_out,
            ),
        )

    def _emit(self, result: EvaluationResult, context: UnifiedContext) -> None:
        if self.dispatcher is None:
            return
        try:
            self.dispatcher.send(FlagEvaluationEvent.from_result(result, context))
        except Exception:
            logger.exception("Failed to enqueue analytics event for flag '%s'", result.flag_key)
