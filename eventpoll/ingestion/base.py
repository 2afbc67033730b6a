"""Static per-API source descriptors."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

from .responses import Event, ResponseShape

if TYPE_CHECKING:
    from .http import RetryExecutor

RFC3339 = "rfc3339"

_RFC3339_PATTERN = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)

# (executor, source key, event identifier) -> enriched events
DetailFetch = Callable[["RetryExecutor", str, str], Awaitable[List[Event]]]


class QueryStyle(str, Enum):
    FILTER = "filter"  # filter=<timeField> gte <RFC3339>
    START = "start"  # start=<RFC3339>
    TIME_RANGE = "time_range"  # starttime=<epoch ms>&endtime=<epoch ms>


@dataclass(frozen=True)
class Pagination:
    page_param: str = "pageNumber"
    size_param: str = "pageSize"
    page_size: int = 100


@dataclass(frozen=True)
class SourceDescriptor:
    """Everything the walker needs to know about one vendor API.

    ``id_field=None`` means the vendor has no identifier; one is derived from
    the event content instead.
    """

    key: str
    endpoint: str
    time_field: str
    shape: ResponseShape
    id_field: Optional[str] = None
    time_format: str = RFC3339
    query_style: QueryStyle = QueryStyle.FILTER
    pagination: Optional[Pagination] = None
    detail: Optional[DetailFetch] = None

    def query_params(self, since: datetime, now: datetime, page: int) -> Dict[str, Any]:
        """Query parameters for one page of a walk starting at ``since``."""
        since = since.astimezone(timezone.utc)
        params: Dict[str, Any] = {}
        if self.query_style is QueryStyle.FILTER:
            params["filter"] = f"{self.time_field} gte {format_rfc3339(since)}"
        elif self.query_style is QueryStyle.START:
            params["start"] = format_rfc3339(since)
        elif self.query_style is QueryStyle.TIME_RANGE:
            params["starttime"] = to_epoch_ms(since)
            params["endtime"] = to_epoch_ms(now)
        if self.pagination is not None:
            params[self.pagination.page_param] = page
            params[self.pagination.size_param] = self.pagination.page_size
        return params

    def parse_time(self, value: Any) -> datetime:
        return parse_event_time(value, self.time_format)


def format_rfc3339(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def parse_event_time(value: Any, time_format: str) -> datetime:
    """Parse an event occurrence time into an aware UTC datetime.

    RFC 3339 values must carry an offset. Fractions of any length are
    accepted and truncated to microseconds. Other formats are strptime
    patterns; a result without an offset is read as UTC.

    Raises ValueError for non-string values and unparseable strings.
    """
    if not isinstance(value, str):
        raise ValueError(f"event time is not a string: {value!r}")
    if time_format == RFC3339:
        parsed = _parse_rfc3339(value)
    else:
        parsed = datetime.strptime(value, time_format)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_rfc3339(value: str) -> datetime:
    match = _RFC3339_PATTERN.match(value)
    if match is None:
        raise ValueError(f"not an RFC 3339 timestamp: {value!r}")
    date, clock, fraction, offset = match.groups()
    micros = (fraction or "").ljust(6, "0")[:6]
    if offset.upper() == "Z":
        offset = "+00:00"
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits
    return datetime.fromisoformat(f"{date}T{clock}.{micros}{offset}")
