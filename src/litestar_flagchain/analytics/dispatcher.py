"""Non-blocking delivery of evaluation events.

The resolver must never wait on analytics. :meth:`AnalyticsDispatcher.send`
only does a ``put_nowait`` on a bounded queue; a background task drains the
queue into the collector and sinks. When the queue is full the event is
dropped and counted.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from litestar_flagchain.analytics.models import FlagEvaluationEvent
    from litestar_flagchain.analytics.protocols import AnalyticsCollector, AnalyticsSink

__all__ = ["DEFAULT_EVENT_NAME", "DEFAULT_QUEUE_SIZE", "DEFAULT_SINK_TIMEOUT", "AnalyticsDispatcher"]

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000
DEFAULT_EVENT_NAME = "flag_evaluated"
DEFAULT_SINK_TIMEOUT = 1.0


class AnalyticsDispatcher:
    """Bounded queue between the resolver and analytics destinations.

    Args:
        collector: Collector every event is recorded in.
        sinks: Additional ``track(event_name, properties)`` destinations.
        max_queue_size: Events buffered before new ones are dropped.
        event_name: Name passed to sinks.
        sink_timeout: Seconds an async sink may take per event; a sink that
            runs longer is abandoned and counted as failed. None waits forever.

    """

    def __init__(
        self,
        collector: AnalyticsCollector | None = None,
        sinks: Iterable[AnalyticsSink] = (),
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
        event_name: str = DEFAULT_EVENT_NAME,
        sink_timeout: float | None = DEFAULT_SINK_TIMEOUT,
    ) -> None:
        if max_queue_size <= 0:
            msg = "max_queue_size must be positive"
            raise ValueError(msg)
        if sink_timeout is not None and sink_timeout <= 0:
            msg = "sink_timeout must be positive or None"
            raise ValueError(msg)
        self.sink_timeout = sink_timeout
        self.collector = collector
        self.sinks = list(sinks)
        self.event_name = event_name
        self._queue: asyncio.Queue[FlagEvaluationEvent] = asyncio.Queue(maxsize=max_queue_size)
        self._task: asyncio.Task[None] | None = None
        self.sent = 0
        self.dropped = 0
        self.delivered = 0
        self.failed = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def add_sink(self, sink: AnalyticsSink) -> None:
        self.sinks.append(sink)

    def send(self, event: FlagEvaluationEvent) -> bool:
        """Enqueue ``event`` without blocking.

        Returns:
            False if the queue was full and the event was dropped.

        """
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.debug("Analytics queue full; dropped event for flag '%s'", event.flag_key)
            return False
        self.sent += 1
        return True

    async def start(self) -> None:
        """Start the background consumer."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._consume(), name="litestar-flagchain-analytics")

    async def stop(self, timeout: float = 5.0) -> None:
        """Drain pending events (up to ``timeout`` seconds), then stop the consumer."""
        if self._task is not None:
            try:
                await asyncio.wait_for(self._queue.join(), timeout)
            except TimeoutError:
                logger.warning("Analytics queue not drained within %.1fs; %d events lost", timeout, self.pending)
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self.collector is not None:
            await self.collector.flush()

    async def flush(self) -> None:
        """Deliver everything queued so far.

        Waits for the consumer when it is running, otherwise delivers inline.
        """
        if self.is_running:
            await self._queue.join()
            return
        while not self._queue.empty():
            event = self._queue.get_nowait()
            try:
                await self._deliver(event)
            finally:
                self._queue.task_done()

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            finally:
                self._queue.task_done()

    async def _deliver(self, event: FlagEvaluationEvent) -> None:
        ok = True
        if self.collector is not None:
            try:
                await self.collector.record(event)
            except Exception:
                ok = False
                logger.exception("Analytics collector failed", extra={"flag_key": event.flag_key})
        if self.sinks:
            properties = event.to_dict()
            for sink in self.sinks:
                try:
                    result = sink.track(self.event_name, properties)
                    if inspect.isawaitable(result):
                        await asyncio.wait_for(result, self.sink_timeout)
                except TimeoutError:
                    ok = False
                    logger.warning(
                        "Analytics sink %s timed out after %.2fs",
                        type(sink).__name__,
                        self.sink_timeout,
                        extra={"flag_key": event.flag_key},
                    )
                except Exception:
                    ok = False
                    logger.exception(
                        "Analytics sink %s failed",
                        type(sink).__name__,
                        extra={"flag_key": event.flag_key},
                    )
        if ok:
            self.delivered += 1
        else:
            self.failed += 1
