"""Per-source incremental state: watermark and dedupe cache."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict

DEDUPE_GRACE = timedelta(minutes=1)


class DedupeCache:
    """Event identifier -> admission time.

    An identifier present here has already been admitted and must not be
    admitted again until it is pruned.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, datetime] = {}

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def admit(self, identifier: str, admitted_at: datetime) -> None:
        self._entries[identifier] = admitted_at

    def admitted_at(self, identifier: str) -> datetime | None:
        return self._entries.get(identifier)

    def prune(self, watermark: datetime, grace: timedelta = DEDUPE_GRACE) -> int:
        """Drop entries admitted before ``watermark - grace``; return how many."""
        cutoff = watermark - grace
        stale = [key for key, admitted in self._entries.items() if admitted < cutoff]
        for key in stale:
            del self._entries[key]
        return len(stale)


@dataclass
class SourceState:
    """Watermark and dedupe cache for one source, owned by one adapter task."""

    watermark: datetime
    dedupe: DedupeCache = field(default_factory=DedupeCache)

    def advance(self, candidate: datetime) -> datetime:
        """Move the watermark forward to ``candidate``; never backwards."""
        if candidate > self.watermark:
            self.watermark = candidate
        return self.watermark
