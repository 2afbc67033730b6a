"""Shared test doubles for the polling connector tests."""

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import httpx
import pytest

from eventpoll.core.cancellation import CancelToken
from eventpoll.core.errors import BufferFull, DeliveryError
from eventpoll.delivery.sink import DeliveryMessage, EventSink
from eventpoll.ingestion.auth import BearerTokenAuth
from eventpoll.ingestion.http import RetryExecutor

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
BASE_URL = "https://vendor.example.com/v1"


class FakeClock:
    def __init__(self, now: datetime = T0 + timedelta(minutes=5)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingToken(CancelToken):
    """Token whose sleeps return at once and are recorded."""

    def __init__(self) -> None:
        super().__init__()
        self.sleeps: List[float] = []

    async def sleep(self, seconds: float) -> None:
        self.raise_if_cancelled()
        self.sleeps.append(seconds)


class FakeSink(EventSink):
    def __init__(self, full_times: int = 0, fail_with: Optional[DeliveryError] = None):
        self.full_times = full_times
        self.fail_with = fail_with
        self.messages: List[DeliveryMessage] = []
        self.timeouts: List[float] = []
        self.drained = False
        self.closed = False

    async def submit(self, message: DeliveryMessage, timeout: float) -> None:
        self.timeouts.append(timeout)
        if self.full_times > 0:
            self.full_times -= 1
            raise BufferFull("buffer full")
        if self.fail_with is not None:
            raise self.fail_with
        self.messages.append(message)

    async def drain(self, timeout: float) -> None:
        self.drained = True

    async def close(self) -> None:
        self.closed = True


def make_executor(
    handler: Callable[[httpx.Request], httpx.Response],
    token: Optional[CancelToken] = None,
    clock: Optional[FakeClock] = None,
    **kwargs,
) -> RetryExecutor:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RetryExecutor(
        BASE_URL,
        BearerTokenAuth("secret-token"),
        client,
        token or RecordingToken(),
        clock=clock or FakeClock(),
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def token():
    return RecordingToken()
