"""Darktrace network-detection connector."""

from __future__ import annotations

from typing import Any, List

from eventpoll.core.config import AdapterConfig, load_adapter_config
from eventpoll.delivery.sink import EventSink
from eventpoll.ingestion.adapter import PollingAdapter
from eventpoll.ingestion.auth import DARKTRACE_DATE_FORMAT, HmacSignatureAuth
from eventpoll.ingestion.base import QueryStyle, SourceDescriptor
from eventpoll.ingestion.responses import EventList

NAME = "darktrace"

AI_ANALYST_ALERTS = "/aianalyst/incidentevents?includeacknowledged=true&includeincidenteventurl=true"
MODEL_BREACH_ALERTS = (
    "/modelbreaches?expandenums=true&historicmodelonly=true&includeacknowledged=true&includebreachurl=true"
)


class DarktraceConfig(AdapterConfig):
    url: str
    public_token: str
    private_token: str


def darktrace_sources() -> List[SourceDescriptor]:
    common = dict(
        time_field="detectiontime",
        time_format=DARKTRACE_DATE_FORMAT,
        id_field="id",
        shape=EventList(),
        query_style=QueryStyle.TIME_RANGE,
    )
    return [
        SourceDescriptor(key="aiAnalyst", endpoint=AI_ANALYST_ALERTS, **common),
        SourceDescriptor(key="modelBreaches", endpoint=MODEL_BREACH_ALERTS, **common),
    ]


def new_darktrace_adapter(config: DarktraceConfig, sink: EventSink, **kwargs: Any) -> PollingAdapter:
    """Build (but do not start) a Darktrace adapter."""
    return PollingAdapter(
        NAME,
        config.url,
        HmacSignatureAuth(config.public_token, config.private_token),
        darktrace_sources(),
        sink,
        **kwargs,
    )


def darktrace_config_from_settings(settings: Any) -> DarktraceConfig:
    return load_adapter_config(
        DarktraceConfig,
        url=settings.DARKTRACE_URL or "",
        public_token=settings.DARKTRACE_PUBLIC_TOKEN or "",
        private_token=settings.DARKTRACE_PRIVATE_TOKEN or "",
    )
