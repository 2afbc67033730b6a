"""Request authenticators."""

from __future__ import annotations

import hashlib
import hmac
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict

import httpx

DARKTRACE_DATE_FORMAT = "%Y%m%dT%H%M%S"


class Authenticator(ABC):
    """Produces the headers proving the caller holds the shared secret."""

    @abstractmethod
    def headers(self, url: httpx.URL, now: datetime) -> Dict[str, str]:
        """Headers for one GET of ``url`` issued at ``now``."""


class BearerTokenAuth(Authenticator):
    def __init__(self, token: str):
        self._token = token

    def headers(self, url: httpx.URL, now: datetime) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/json",
        }


class HmacSignatureAuth(Authenticator):
    """HMAC-SHA1 request signing keyed by the private token.

    The signed message is the request path with query, the public token and
    the formatted request time, joined by newlines.
    """

    def __init__(self, public_token: str, private_token: str, date_format: str = DARKTRACE_DATE_FORMAT):
        self._public_token = public_token
        self._private_token = private_token
        self._date_format = date_format

    def sign(self, url: httpx.URL, time_string: str) -> str:
        request_uri = url.raw_path.decode("ascii")
        message = f"{request_uri}\n{self._public_token}\n{time_string}"
        return hmac.new(
            self._private_token.encode("utf-8"),
            message.encode("utf-8"),
            hashlib.sha1,
        ).hexdigest()

    def headers(self, url: httpx.URL, now: datetime) -> Dict[str, str]:
        time_string = now.astimezone(timezone.utc).strftime(self._date_format)
        return {
            "DTAPI-Token": self._public_token,
            "DTAPI-Date": time_string,
            "DTAPI-Signature": self.sign(url, time_string),
            "Content-Type": "application/x-www-form-urlencoded",
        }
