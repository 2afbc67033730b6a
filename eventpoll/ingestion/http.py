"""Authenticated GET with rate-limit back-off."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Mapping, Optional

import httpx

from eventpoll.core.cancellation import CancelToken
from eventpoll.core.errors import (
    AuthenticationError,
    ResponseDecodeError,
    TransportError,
    UnexpectedStatusError,
)
from eventpoll.core.logging import get_logger
from .auth import Authenticator
from .responses import Page, ResponseShape

log = get_logger("ingestion.http")

REQUEST_TIMEOUT_SECONDS = 30.0
DEFAULT_RETRY_AFTER_SECONDS = 60.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_retry_after(value: Optional[str], now: datetime) -> Optional[float]:
    """Seconds to wait according to a Retry-After header.

    Accepts delta-seconds or an HTTP-date. Returns None when the header is
    absent, zero or unparseable so the caller falls back to its default.
    """
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        seconds = int(value)
        return float(seconds) if seconds > 0 else None
    try:
        deadline = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if deadline.tzinfo is None:
        deadline = deadline.replace(tzinfo=timezone.utc)
    return max(0.0, (deadline - now).total_seconds())


class RetryExecutor:
    """Issues authenticated GETs against one vendor base URL.

    A 429 is retried on the same URL for as long as the vendor keeps
    answering 429; every other failure is raised to the caller at once.
    """

    def __init__(
        self,
        base_url: str,
        authenticator: Authenticator,
        client: httpx.AsyncClient,
        token: CancelToken,
        clock: Callable[[], datetime] = utcnow,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
        default_retry_after: float = DEFAULT_RETRY_AFTER_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self._auth = authenticator
        self._client = client
        self._token = token
        self._clock = clock
        self._request_timeout = request_timeout
        self._default_retry_after = default_retry_after

    @property
    def token(self) -> CancelToken:
        return self._token

    def now(self) -> datetime:
        return self._clock()

    def build_url(self, source: str, path: str, params: Optional[Mapping[str, Any]] = None) -> httpx.URL:
        try:
            url = httpx.URL(f"{self.base_url}{path}")
        except httpx.InvalidURL as exc:
            raise TransportError(source, f"invalid url {self.base_url}{path}: {exc}") from exc
        if params:
            url = url.copy_merge_params(dict(params))
        return url

    async def execute(self, url: httpx.URL, shape: ResponseShape, source: str) -> Page:
        while True:
            response = await self._send(url, source)

            if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
                delay = parse_retry_after(response.headers.get("Retry-After"), self._clock())
                if delay is None:
                    log.warning(
                        f"{source} got 429 without 'Retry-After' header, sleeping {self._default_retry_after:.0f}s before retry"
                    )
                    delay = self._default_retry_after
                else:
                    log.warning(f"{source} got 429 with 'Retry-After' header, sleeping {delay:.0f}s before retry")
                await self._token.sleep(delay)
                continue

            if response.status_code == httpx.codes.UNAUTHORIZED:
                log.error(f"{source} api rejected credentials (401)")
                raise AuthenticationError(source)

            if response.status_code != httpx.codes.OK:
                log.error(f"{source} api non-200: {response.status_code}")
                raise UnexpectedStatusError(source, response.status_code, response.text)

            try:
                return shape.decode(response.json())
            except ValueError as exc:
                log.error(f"{source} api invalid json: {exc}")
                raise ResponseDecodeError(source, f"api invalid json: {exc}") from exc

    async def _send(self, url: httpx.URL, source: str) -> httpx.Response:
        headers = self._auth.headers(url, self._clock())
        try:
            return await self._token.guard(
                asyncio.wait_for(self._client.get(url, headers=headers), timeout=self._request_timeout)
            )
        except asyncio.TimeoutError as exc:
            log.error(f"{source} api request timed out after {self._request_timeout:.0f}s")
            raise TransportError(source, f"request timed out after {self._request_timeout:.0f}s") from exc
        except httpx.HTTPError as exc:
            log.error(f"{source} api do error: {exc}")
            raise TransportError(source, f"api do error: {exc}") from exc
