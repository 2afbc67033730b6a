"""Vendor response shapes.

A shape turns a decoded JSON body into a :class:`Page`: the events it carries
and whether the vendor has another page. Each source picks its shape once, at
descriptor construction time.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

Event = Dict[str, Any]


@dataclass(frozen=True)
class Page:
    items: List[Event] = field(default_factory=list)
    has_more: bool = False


class ResponseShape(ABC):
    """Decodes one successful response body."""

    @abstractmethod
    def decode(self, payload: Any) -> Page:
        """Raise ValueError when the payload does not match the shape."""


def _as_events(value: Any, where: str) -> List[Event]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"expected a list for {where}, got {type(value).__name__}")
    events: List[Event] = []
    for item in value:
        if not isinstance(item, dict):
            raise ValueError(f"expected objects in {where}, got {type(item).__name__}")
        events.append(item)
    return events


class PagedCollection(ResponseShape):
    """Named list field plus a next-page indicator.

    The indicator is either a next page number (non-zero means more) or,
    when ``has_more_field`` is given, an explicit boolean flag.
    """

    def __init__(
        self,
        items_field: str,
        next_page_field: str = "nextPageNumber",
        has_more_field: Optional[str] = None,
    ):
        self.items_field = items_field
        self.next_page_field = next_page_field
        self.has_more_field = has_more_field

    def decode(self, payload: Any) -> Page:
        if not isinstance(payload, dict):
            raise ValueError(f"expected an object with '{self.items_field}', got {type(payload).__name__}")
        items = _as_events(payload.get(self.items_field), self.items_field)
        if self.has_more_field is not None:
            has_more = bool(payload.get(self.has_more_field))
        else:
            next_page = payload.get(self.next_page_field) or 0
            try:
                has_more = int(next_page) != 0
            except (TypeError, ValueError) as exc:
                raise ValueError(f"invalid {self.next_page_field}: {next_page!r}") from exc
        return Page(items=items, has_more=has_more)

    def __repr__(self) -> str:
        return f"PagedCollection({self.items_field!r})"


class FlatSingle(ResponseShape):
    """Exactly one object, never paginated (detail endpoints)."""

    def decode(self, payload: Any) -> Page:
        if not isinstance(payload, dict):
            raise ValueError(f"expected a single object, got {type(payload).__name__}")
        return Page(items=[payload], has_more=False)

    def __repr__(self) -> str:
        return "FlatSingle()"


class EventList(ResponseShape):
    """Bare JSON array of events, never paginated."""

    def decode(self, payload: Any) -> Page:
        return Page(items=_as_events(payload, "response"), has_more=False)

    def __repr__(self) -> str:
        return "EventList()"
