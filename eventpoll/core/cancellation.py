"""Cancellation token shared by every wait an adapter performs."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from eventpoll.core.errors import OperationCancelled

T = TypeVar("T")


class CancelToken:
    """One-shot cancellation signal scoped to an adapter's lifetime.

    ``sleep`` and ``guard`` race their wait against the token so that
    ``cancel()`` unblocks them immediately instead of after the full duration.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("operation cancelled")

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` or raise OperationCancelled when cancelled first."""
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise OperationCancelled("sleep cancelled")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first."""
        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()
                await asyncio.gather(work, return_exceptions=True)
        if work in done:
            return work.result()
        raise OperationCancelled("wait cancelled")
