"""Fixed-interval poll cycle across every source of one adapter."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from eventpoll.core.cancellation import CancelToken
from eventpoll.core.errors import DeliveryError, SourceError
from eventpoll.core.logging import get_logger
from eventpoll.delivery.shipper import EventShipper
from .base import SourceDescriptor
from .responses import Event
from .state import SourceState
from .walker import PageWalker

log = get_logger("ingestion.scheduler")

POLL_INTERVAL_SECONDS = 60.0


@dataclass(frozen=True)
class SourceOutcome:
    key: str
    watermark: datetime
    admitted: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class CycleReport:
    started_at: datetime
    finished_at: datetime
    sources: List[SourceOutcome] = field(default_factory=list)
    shipped: int = 0


class PollScheduler:
    """Runs one cycle per interval: walk each source in turn, then ship.

    Sources are walked sequentially to bound vendor API load. A failing
    source keeps its pre-cycle watermark and is retried next cycle.
    """

    def __init__(
        self,
        name: str,
        sources: Sequence[SourceDescriptor],
        walker: PageWalker,
        shipper: EventShipper,
        token: CancelToken,
        start_time: datetime,
        interval: float = POLL_INTERVAL_SECONDS,
    ):
        keys = [source.key for source in sources]
        if len(set(keys)) != len(keys):
            raise ValueError(f"duplicate source keys for {name}: {keys}")
        self.name = name
        self.sources = list(sources)
        self.walker = walker
        self.shipper = shipper
        self.interval = interval
        self._token = token
        self._states: Dict[str, SourceState] = {key: SourceState(watermark=start_time) for key in keys}
        self.last_report: Optional[CycleReport] = None
        self.cycles = 0

    def state_for(self, key: str) -> SourceState:
        return self._states[key]

    async def run_cycle(self) -> CycleReport:
        started_at = datetime.now(timezone.utc)
        batch: List[Event] = []
        outcomes: List[SourceOutcome] = []

        for source in self.sources:
            state = self._states[source.key]
            try:
                result = await self.walker.walk(source, state)
            except SourceError as exc:
                log.error(f"{self.name} {source.key} fetch failed: {exc}")
                outcomes.append(SourceOutcome(key=source.key, watermark=state.watermark, error=str(exc)))
                continue
            batch.extend(result.events)
            outcomes.append(SourceOutcome(key=source.key, watermark=state.watermark, admitted=result.admitted))

        shipped = 0
        if batch:
            shipped = await self.shipper.ship(batch)

        report = CycleReport(
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            sources=outcomes,
            shipped=shipped,
        )
        self.last_report = report
        self.cycles += 1
        log.info(
            f"{self.name} cycle {self.cycles} | shipped={shipped} "
            f"failed={sum(1 for o in outcomes if not o.success)}/{len(outcomes)}"
        )
        return report

    async def run_forever(self, on_delivery_failure: Callable[[DeliveryError], Awaitable[None]]) -> None:
        """Tick every ``interval`` seconds until the token is cancelled.

        Ticks missed while a slow cycle was running are skipped, not queued.
        """
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.interval
        log.info(f"{self.name} polling started (interval: {self.interval:.0f}s)")

        while not self._token.cancelled:
            await self._token.sleep(next_tick - loop.time())
            while next_tick <= loop.time():
                next_tick += self.interval
            try:
                await self.run_cycle()
            except DeliveryError as exc:
                log.error(f"{self.name} delivery failed, stopping adapter: {exc}")
                await on_delivery_failure(exc)
                return
