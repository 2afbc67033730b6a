"""Adapter lifecycle: background task, cancellation and idempotent shutdown."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

import httpx

from eventpoll.core.cancellation import CancelToken
from eventpoll.core.errors import DeliveryError, OperationCancelled
from eventpoll.core.logging import get_logger
from eventpoll.delivery.shipper import EventShipper
from eventpoll.delivery.sink import EventSink
from .auth import Authenticator
from .base import SourceDescriptor
from .http import REQUEST_TIMEOUT_SECONDS, RetryExecutor, utcnow
from .scheduler import POLL_INTERVAL_SECONDS, CycleReport, PollScheduler
from .walker import PageWalker

log = get_logger("ingestion.adapter")

DRAIN_TIMEOUT_SECONDS = 60.0


def default_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(REQUEST_TIMEOUT_SECONDS, connect=10.0),
        limits=httpx.Limits(keepalive_expiry=90.0),
    )


class PollingAdapter:
    """One vendor connector: owns its token, task, HTTP client and sink.

    Usage:
        adapter = PollingAdapter("darktrace", base_url, auth, sources, sink).start()
        ...
        await adapter.close()          # safe to call more than once
        await adapter.stopped.wait()   # set once shutdown has completed
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        authenticator: Authenticator,
        sources: Sequence[SourceDescriptor],
        sink: EventSink,
        interval: float = POLL_INTERVAL_SECONDS,
        lookback: float = 0.0,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = utcnow,
        drain_timeout: float = DRAIN_TIMEOUT_SECONDS,
    ):
        self.name = name
        self.token = CancelToken()
        self.client = client or default_http_client()
        self.sink = sink
        self.executor = RetryExecutor(base_url, authenticator, self.client, self.token, clock=clock)
        self.scheduler = PollScheduler(
            name,
            sources,
            PageWalker(self.executor),
            EventShipper(sink, self.token),
            self.token,
            start_time=clock() - timedelta(seconds=lookback),
            interval=interval,
        )
        self.stopped = asyncio.Event()
        self.stop_reason: Optional[BaseException] = None
        self._drain_timeout = drain_timeout
        self._task: Optional[asyncio.Task] = None
        self._shutdown: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and self._shutdown is None

    @property
    def last_report(self) -> Optional[CycleReport]:
        return self.scheduler.last_report

    def start(self) -> "PollingAdapter":
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"poll-{self.name}")
        return self

    async def _run(self) -> None:
        try:
            await self.scheduler.run_forever(self._on_delivery_failure)
        except OperationCancelled:
            log.debug(f"fetching of {self.name} events exiting")
        except Exception as exc:  # noqa: BLE001
            log.exception(f"{self.name} poll loop crashed: {exc}")
            self.stop_reason = exc
            self._begin_shutdown()

    async def _on_delivery_failure(self, exc: DeliveryError) -> None:
        self.stop_reason = exc
        self._begin_shutdown()

    def _begin_shutdown(self) -> asyncio.Task:
        if self._shutdown is None:
            log.debug(f"{self.name} closing")
            self._shutdown = asyncio.create_task(self._shutdown_once(), name=f"close-{self.name}")
        return self._shutdown

    async def close(self) -> None:
        """Stop polling, drain and close the sink, release HTTP connections.

        The shutdown runs once. Every caller waits for it to finish and sees
        the first DeliveryError it hit, if any.
        """
        shutdown = self._begin_shutdown()
        if self._task is not None and self._task is asyncio.current_task():
            # the shutdown waits for the poll task to exit
            return
        error = await asyncio.shield(shutdown)
        if error is not None:
            raise error

    async def _shutdown_once(self) -> Optional[DeliveryError]:
        self.token.cancel()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

        errors: List[DeliveryError] = []
        try:
            await self.sink.drain(self._drain_timeout)
        except DeliveryError as exc:
            errors.append(exc)
        try:
            await self.sink.close()
        except DeliveryError as exc:
            errors.append(exc)
        await self.client.aclose()

        for exc in errors:
            log.error(f"{self.name} shutdown error: {exc}")
        self.stopped.set()
        log.info(f"{self.name} adapter stopped")
        return errors[0] if errors else None

    async def wait_stopped(self) -> None:
        await self.stopped.wait()
