"""Hands admitted events to the downstream sink one at a time."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Iterable

from eventpoll.core.cancellation import CancelToken
from eventpoll.core.errors import BufferFull, DeliveryError
from eventpoll.core.logging import get_logger
from eventpoll.ingestion.responses import Event
from .sink import DeliveryMessage, EventSink

log = get_logger("delivery.shipper")

SUBMIT_TIMEOUT_SECONDS = 10.0
BACKPRESSURE_TIMEOUT_SECONDS = 60.0 * 60.0


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class EventShipper:
    """Submits each event with a short wait, then one long wait on BufferFull.

    A full buffer blocks the poll cycle instead of dropping data. Anything
    that still fails is raised as DeliveryError for the adapter to stop on.
    """

    def __init__(
        self,
        sink: EventSink,
        token: CancelToken,
        clock_ms: Callable[[], int] = now_ms,
        submit_timeout: float = SUBMIT_TIMEOUT_SECONDS,
        backpressure_timeout: float = BACKPRESSURE_TIMEOUT_SECONDS,
    ):
        self.sink = sink
        self._token = token
        self._clock_ms = clock_ms
        self._submit_timeout = submit_timeout
        self._backpressure_timeout = backpressure_timeout

    async def ship(self, events: Iterable[Event]) -> int:
        shipped = 0
        for event in events:
            message = DeliveryMessage(payload=event, timestamp_ms=self._clock_ms())
            try:
                await self._token.guard(self.sink.submit(message, self._submit_timeout))
            except BufferFull:
                log.warning("stream falling behind")
                try:
                    await self._token.guard(self.sink.submit(message, self._backpressure_timeout))
                except DeliveryError as exc:
                    log.error(f"submit failed after extended wait: {exc}")
                    raise
            except DeliveryError as exc:
                log.error(f"submit failed: {exc}")
                raise
            shipped += 1
        return shipped
