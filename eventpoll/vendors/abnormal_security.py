"""Abnormal Security email-security connector.

Six APIs are polled. Campaigns, cases, threats and vendor cases return
summaries, each admitted summary is followed by a GET of its detail record.
Audit logs carry no identifier and are deduped by content hash.
"""

from __future__ import annotations

from typing import Any, List
from urllib.parse import quote

from pydantic import field_validator

from eventpoll.core.config import AdapterConfig, load_adapter_config
from eventpoll.delivery.sink import EventSink
from eventpoll.ingestion.adapter import PollingAdapter
from eventpoll.ingestion.auth import BearerTokenAuth
from eventpoll.ingestion.base import DetailFetch, Pagination, QueryStyle, SourceDescriptor
from eventpoll.ingestion.http import RetryExecutor
from eventpoll.ingestion.responses import Event, FlatSingle, PagedCollection

NAME = "abnormal_security"

DEFAULT_BASE_URL = "https://api.abnormalplatform.com/v1"
ABUSE_CAMPAIGNS_ENDPOINT = "/abusecampaigns"
ABUSE_CAMPAIGNS_NOT_ANALYZED_ENDPOINT = "/abuse_mailbox/not_analyzed"
AUDIT_LOGS_ENDPOINT = "/auditlogs"
CASES_ENDPOINT = "/cases"
THREATS_ENDPOINT = "/threats"
VENDOR_CASES_ENDPOINT = "/vendor-cases"


class AbnormalSecurityConfig(AdapterConfig):
    access_token: str
    base_url: str = DEFAULT_BASE_URL

    @field_validator("base_url", mode="before")
    @classmethod
    def _default_base_url(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_BASE_URL
        return value


def detail_fetch(endpoint: str) -> DetailFetch:
    async def fetch(executor: RetryExecutor, source: str, identifier: str) -> List[Event]:
        url = executor.build_url(source, f"{endpoint}/{quote(identifier, safe='')}")
        page = await executor.execute(url, FlatSingle(), source)
        return page.items

    return fetch


def abnormal_security_sources() -> List[SourceDescriptor]:
    paged = Pagination(page_param="pageNumber", size_param="pageSize", page_size=100)
    return [
        SourceDescriptor(
            key="abuseCampaigns",
            endpoint=ABUSE_CAMPAIGNS_ENDPOINT,
            id_field="campaignId",
            time_field="receivedTime",
            shape=PagedCollection("campaigns"),
            pagination=paged,
            detail=detail_fetch(ABUSE_CAMPAIGNS_ENDPOINT),
        ),
        SourceDescriptor(
            key="abuseCampaignsNotAnalyzed",
            endpoint=ABUSE_CAMPAIGNS_NOT_ANALYZED_ENDPOINT,
            id_field="abx_message_id",
            time_field="reported_datetime",
            shape=PagedCollection("results"),
            query_style=QueryStyle.START,
        ),
        SourceDescriptor(
            key="auditLogs",
            endpoint=AUDIT_LOGS_ENDPOINT,
            id_field=None,
            time_field="timestamp",
            shape=PagedCollection("auditLogs"),
            pagination=paged,
        ),
        SourceDescriptor(
            key="cases",
            endpoint=CASES_ENDPOINT,
            id_field="caseId",
            time_field="lastModifiedTime",
            shape=PagedCollection("cases"),
            pagination=paged,
            detail=detail_fetch(CASES_ENDPOINT),
        ),
        SourceDescriptor(
            key="threats",
            endpoint=THREATS_ENDPOINT,
            id_field="threatId",
            time_field="receivedTime",
            shape=PagedCollection("threats"),
            pagination=paged,
            detail=detail_fetch(THREATS_ENDPOINT),
        ),
        SourceDescriptor(
            key="vendorCases",
            endpoint=VENDOR_CASES_ENDPOINT,
            id_field="vendorCaseId",
            time_field="lastModifiedTime",
            shape=PagedCollection("vendorCases"),
            pagination=paged,
            detail=detail_fetch(VENDOR_CASES_ENDPOINT),
        ),
    ]


def new_abnormal_security_adapter(
    config: AbnormalSecurityConfig, sink: EventSink, **kwargs: Any
) -> PollingAdapter:
    """Build (but do not start) an Abnormal Security adapter.

    The first window reaches back one poll interval unless ``lookback`` is given.
    """
    kwargs.setdefault("lookback", kwargs.get("interval", 60.0))
    return PollingAdapter(
        NAME,
        config.base_url,
        BearerTokenAuth(config.access_token),
        abnormal_security_sources(),
        sink,
        **kwargs,
    )


def abnormal_security_config_from_settings(settings: Any) -> AbnormalSecurityConfig:
    return load_adapter_config(
        AbnormalSecurityConfig,
        access_token=settings.ABNORMAL_ACCESS_TOKEN or "",
        base_url=settings.ABNORMAL_BASE_URL,
    )
