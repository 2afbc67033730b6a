"""Exception hierarchy for the polling connectors.

Only :class:`DeliveryError` and :class:`OperationCancelled` are adapter-fatal.
Every :class:`SourceError` is confined to the source whose walk raised it.
"""

from __future__ import annotations


class PollerError(Exception):
    """Base class for all connector errors."""


class ConfigurationError(PollerError):
    """Adapter configuration is missing or invalid."""


class OperationCancelled(PollerError):
    """A wait was interrupted because the adapter is shutting down."""


class SourceError(PollerError):
    """Fetching one source failed; other sources in the cycle are unaffected."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class AuthenticationError(SourceError):
    """Vendor rejected the credentials (HTTP 401)."""

    def __init__(self, source: str):
        super().__init__(source, "got 401 'Unauthorized' response")


class UnexpectedStatusError(SourceError):
    def __init__(self, source: str, status_code: int, body: str):
        super().__init__(source, f"api non-200: {status_code}\nRESPONSE {body}")
        self.status_code = status_code
        self.body = body


class ResponseDecodeError(SourceError):
    """Response body was not valid JSON or did not match the expected shape."""


class TransportError(SourceError):
    """Connection, timeout or malformed-URL failure."""


class DeliveryError(PollerError):
    """Downstream sink failed to accept or flush events."""


class BufferFull(DeliveryError):
    """Sink buffer stayed full for the whole wait bound."""
