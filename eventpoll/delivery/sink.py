"""Downstream sink boundary and a JSON-lines implementation."""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from eventpoll.core.errors import BufferFull, DeliveryError
from eventpoll.core.logging import get_logger

log = get_logger("delivery.sink")

WRITE_BATCH_SIZE = 500


@dataclass(frozen=True)
class DeliveryMessage:
    payload: Dict[str, Any]
    timestamp_ms: int


class EventSink(ABC):
    """Tri-state submission contract.

    ``submit`` returns normally on success, raises :class:`BufferFull` when the
    buffer stayed full for the whole ``timeout``, and raises any other
    :class:`DeliveryError` for unrecoverable failures.
    """

    @abstractmethod
    async def submit(self, message: DeliveryMessage, timeout: float) -> None:
        ...

    @abstractmethod
    async def drain(self, timeout: float) -> None:
        """Wait for pending submissions to be flushed, up to ``timeout``."""

    @abstractmethod
    async def close(self) -> None:
        ...


class JsonlFileSink(EventSink):
    """Bounded in-memory buffer drained into a JSON-lines file by a writer task."""

    def __init__(self, path: str | Path, buffer_size: int = 10_000):
        self.path = Path(path)
        self._queue: asyncio.Queue[DeliveryMessage] = asyncio.Queue(maxsize=buffer_size)
        self._writer: Optional[asyncio.Task] = None
        self._failure: Optional[BaseException] = None
        self._closed = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def submit(self, message: DeliveryMessage, timeout: float) -> None:
        if self._closed:
            raise DeliveryError("sink is closed")
        if self._failure is not None:
            raise DeliveryError(f"sink writer failed: {self._failure}")
        self._ensure_writer()
        try:
            await asyncio.wait_for(self._queue.put(message), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise BufferFull(f"buffer full after {timeout:.0f}s") from exc

    async def drain(self, timeout: float) -> None:
        if self._writer is None:
            return
        # join() also covers a batch the writer has taken but not yet written
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise DeliveryError(f"drain timed out with {self._queue.qsize()} pending events") from exc

    async def close(self) -> None:
        self._closed = True
        if self._writer is not None:
            self._writer.cancel()
            await asyncio.gather(self._writer, return_exceptions=True)
            self._writer = None
        if self._failure is not None:
            raise DeliveryError(f"sink writer failed: {self._failure}")

    def _ensure_writer(self) -> None:
        if self._writer is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._writer = asyncio.create_task(self._write_loop())

    async def _write_loop(self) -> None:
        while True:
            batch = [await self._queue.get()]
            while len(batch) < WRITE_BATCH_SIZE and not self._queue.empty():
                batch.append(self._queue.get_nowait())
            try:
                lines = "".join(
                    json.dumps({"ts": m.timestamp_ms, "event": m.payload}, default=str) + "\n" for m in batch
                )
                await asyncio.to_thread(self._append, lines)
            except (OSError, TypeError, ValueError) as exc:
                log.error(f"Failed to write {len(batch)} events to {self.path}: {exc}")
                self._failure = exc
                raise
            finally:
                for _ in batch:
                    self._queue.task_done()

    def _append(self, lines: str) -> None:
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(lines)
