"""Page walker tests: pagination, dedupe and watermark handling"""

from datetime import timedelta
from typing import List

import httpx
import pytest

from eventpoll.core.errors import UnexpectedStatusError
from eventpoll.ingestion.base import (
    RFC3339,
    Pagination,
    QueryStyle,
    SourceDescriptor,
    format_rfc3339,
    parse_event_time,
)
from eventpoll.ingestion.responses import EventList, FlatSingle, PagedCollection
from eventpoll.ingestion.state import SourceState
from eventpoll.ingestion.walker import PageWalker, content_hash

from conftest import T0, FakeClock, make_executor


def _ts(seconds: int) -> str:
    return format_rfc3339(T0 + timedelta(seconds=seconds))


def _paged_source(**overrides) -> SourceDescriptor:
    values = dict(
        key="threats",
        endpoint="/threats",
        id_field="threatId",
        time_field="receivedTime",
        shape=PagedCollection("threats"),
        pagination=Pagination(),
    )
    values.update(overrides)
    return SourceDescriptor(**values)


class TestPagination:
    """Test walking every page the vendor reports"""

    @pytest.mark.asyncio
    async def test_three_pages_issue_three_requests(self):
        requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            page = int(request.url.params["pageNumber"])
            return httpx.Response(
                200,
                json={
                    "threats": [{"threatId": f"t{page}", "receivedTime": _ts(page)}],
                    "pageNumber": page,
                    "nextPageNumber": page + 1 if page < 3 else 0,
                },
            )

        walker = PageWalker(make_executor(handler))
        result = await walker.walk(_paged_source(), SourceState(watermark=T0))

        assert len(requests) == 3
        assert [r.url.params["pageNumber"] for r in requests] == ["1", "2", "3"]
        assert all(r.url.params["pageSize"] == "100" for r in requests)
        assert [e["threatId"] for e in result.events] == ["t1", "t2", "t3"]
        assert result.pages == 3
        assert result.watermark == T0 + timedelta(seconds=3)

    @pytest.mark.asyncio
    async def test_filter_query_uses_walk_start_on_every_page(self):
        filters: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            filters.append(request.url.params["filter"])
            page = int(request.url.params["pageNumber"])
            return httpx.Response(
                200,
                json={
                    "threats": [{"threatId": f"t{page}", "receivedTime": _ts(60 * page)}],
                    "nextPageNumber": 2 if page == 1 else 0,
                },
            )

        await PageWalker(make_executor(handler)).walk(_paged_source(), SourceState(watermark=T0))

        assert filters == [f"receivedTime gte {format_rfc3339(T0)}"] * 2

    @pytest.mark.asyncio
    async def test_has_more_flag(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"items": [], "hasMore": len(calls) < 2})

        source = _paged_source(shape=PagedCollection("items", has_more_field="hasMore"))
        await PageWalker(make_executor(handler)).walk(source, SourceState(watermark=T0))
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_start_style_without_pagination(self):
        requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"results": [], "nextPageNumber": 5})

        source = _paged_source(shape=PagedCollection("results"), query_style=QueryStyle.START, pagination=None)
        await PageWalker(make_executor(handler)).walk(source, SourceState(watermark=T0))

        assert len(requests) == 1
        assert requests[0].url.params["start"] == format_rfc3339(T0)
        assert "pageNumber" not in requests[0].url.params


class TestAdmission:
    """Test dedupe and strict-after filtering"""

    @pytest.mark.asyncio
    async def test_overlapping_window_is_deduplicated(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"threats": [{"threatId": "A", "receivedTime": _ts(10)}]})

        walker = PageWalker(make_executor(handler))
        source = _paged_source()
        state = SourceState(watermark=T0)

        first = await walker.walk(source, state)
        assert [e["threatId"] for e in first.events] == ["A"]
        assert state.watermark == T0 + timedelta(seconds=10)

        second = await walker.walk(source, state)
        assert second.events == []
        assert state.watermark == T0 + timedelta(seconds=10)

    @pytest.mark.asyncio
    async def test_dedupe_hit_even_when_watermark_not_past_event(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"threats": [{"threatId": "A", "receivedTime": _ts(10)}]})

        state = SourceState(watermark=T0)
        state.dedupe.admit("A", T0 + timedelta(minutes=5))

        result = await PageWalker(make_executor(handler)).walk(_paged_source(), state)
        assert result.events == []

    @pytest.mark.asyncio
    async def test_event_at_watermark_is_not_admitted(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "threats": [
                        {"threatId": "equal", "receivedTime": _ts(0)},
                        {"threatId": "before", "receivedTime": _ts(-30)},
                        {"threatId": "after", "receivedTime": _ts(1)},
                    ]
                },
            )

        state = SourceState(watermark=T0)
        result = await PageWalker(make_executor(handler)).walk(_paged_source(), state)

        assert [e["threatId"] for e in result.events] == ["after"]
        assert "equal" not in state.dedupe
        assert "before" not in state.dedupe

    @pytest.mark.asyncio
    async def test_malformed_events_are_dropped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "threats": [
                        {"threatId": 42, "receivedTime": _ts(5)},
                        {"receivedTime": _ts(5)},
                        {"threatId": "bad-time", "receivedTime": "yesterday"},
                        {"threatId": "no-time"},
                        {"threatId": "ok", "receivedTime": _ts(5)},
                    ]
                },
            )

        result = await PageWalker(make_executor(handler)).walk(_paged_source(), SourceState(watermark=T0))
        assert [e["threatId"] for e in result.events] == ["ok"]

    @pytest.mark.asyncio
    async def test_identical_content_without_id_collapses_across_pages(self):
        entry = {"action": "login", "user": "alice", "timestamp": _ts(20)}

        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["pageNumber"])
            return httpx.Response(
                200,
                json={"auditLogs": [dict(entry)], "nextPageNumber": 2 if page == 1 else 0},
            )

        source = _paged_source(
            key="auditLogs", id_field=None, time_field="timestamp", shape=PagedCollection("auditLogs")
        )
        state = SourceState(watermark=T0)
        result = await PageWalker(make_executor(handler)).walk(source, state)

        assert result.events == [entry]
        assert content_hash(entry) in state.dedupe

    def test_content_hash_is_order_independent(self):
        assert content_hash({"a": 1, "b": [1, 2]}) == content_hash({"b": [1, 2], "a": 1})
        assert content_hash({"a": 1}) != content_hash({"a": 2})

    @pytest.mark.asyncio
    async def test_pruned_identifier_can_be_admitted_again(self):
        clock = FakeClock(T0 + timedelta(minutes=10))
        events = [{"threatId": "fresh", "receivedTime": _ts(300)}]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"threats": events})

        state = SourceState(watermark=T0)
        state.dedupe.admit("A", T0)
        walker = PageWalker(make_executor(handler, clock=clock))

        await walker.walk(_paged_source(), state)
        assert state.watermark == T0 + timedelta(seconds=300)
        assert "A" not in state.dedupe

        events[:] = [{"threatId": "A", "receivedTime": _ts(400)}]
        result = await walker.walk(_paged_source(), state)
        assert [e["threatId"] for e in result.events] == ["A"]


class TestWalkFailures:
    """Test that a failed walk leaves state untouched"""

    @pytest.mark.asyncio
    async def test_error_on_later_page_keeps_watermark_and_cache(self):
        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["pageNumber"])
            if page == 2:
                return httpx.Response(500, text="boom")
            return httpx.Response(
                200,
                json={"threats": [{"threatId": "A", "receivedTime": _ts(10)}], "nextPageNumber": 2},
            )

        state = SourceState(watermark=T0)
        with pytest.raises(UnexpectedStatusError):
            await PageWalker(make_executor(handler)).walk(_paged_source(), state)

        assert state.watermark == T0
        assert "A" not in state.dedupe


class TestDetailFetch:
    """Test per-event detail enrichment"""

    @pytest.mark.asyncio
    async def test_detail_fetched_once_per_admitted_event(self):
        detail_paths: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/threats"):
                return httpx.Response(
                    200,
                    json={
                        "threats": [
                            {"threatId": "A", "receivedTime": _ts(10)},
                            {"threatId": "B", "receivedTime": _ts(-10)},
                        ]
                    },
                )
            detail_paths.append(request.url.path)
            return httpx.Response(200, json={"threatId": "A", "detail": True})

        async def detail(executor, source, identifier):
            url = executor.build_url(source, f"/threats/{identifier}")
            return (await executor.execute(url, FlatSingle(), source)).items

        result = await PageWalker(make_executor(handler)).walk(_paged_source(detail=detail), SourceState(watermark=T0))

        assert detail_paths == ["/v1/threats/A"]
        assert result.events == [
            {"threatId": "A", "receivedTime": _ts(10)},
            {"threatId": "A", "detail": True},
        ]
        assert result.admitted == 1

    @pytest.mark.asyncio
    async def test_failed_detail_does_not_abort_walk(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/threats"):
                return httpx.Response(200, json={"threats": [{"threatId": "A", "receivedTime": _ts(10)}]})
            return httpx.Response(404, text="missing")

        async def detail(executor, source, identifier):
            url = executor.build_url(source, f"/threats/{identifier}")
            return (await executor.execute(url, FlatSingle(), source)).items

        state = SourceState(watermark=T0)
        result = await PageWalker(make_executor(handler)).walk(_paged_source(detail=detail), state)

        assert result.events == [{"threatId": "A", "receivedTime": _ts(10)}]
        assert state.watermark == T0 + timedelta(seconds=10)


class TestCompactTimeFormat:
    """Test time-range queries with compact timestamps"""

    @pytest.mark.asyncio
    async def test_time_range_walk(self, clock):
        requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json=[
                    {"id": "x1", "detectiontime": (T0 + timedelta(seconds=30)).strftime("%Y%m%dT%H%M%S")},
                    {"id": "x2", "detectiontime": T0.strftime("%Y%m%dT%H%M%S")},
                ],
            )

        source = SourceDescriptor(
            key="aiAnalyst",
            endpoint="/aianalyst/incidentevents?includeacknowledged=true",
            id_field="id",
            time_field="detectiontime",
            time_format="%Y%m%dT%H%M%S",
            shape=EventList(),
            query_style=QueryStyle.TIME_RANGE,
        )
        state = SourceState(watermark=T0)
        result = await PageWalker(make_executor(handler, clock=clock)).walk(source, state)

        params = requests[0].url.params
        assert params["includeacknowledged"] == "true"
        assert params["starttime"] == str(int(T0.timestamp() * 1000))
        assert params["endtime"] == str(int(clock.now.timestamp() * 1000))
        assert [e["id"] for e in result.events] == ["x1"]
        assert state.watermark == T0 + timedelta(seconds=30)


class TestEventTime:
    """Test RFC 3339 event time parsing"""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2024-01-01T12:00:00Z", T0),
            ("2024-01-01T12:00:00.12Z", T0 + timedelta(microseconds=120000)),
            ("2024-01-01T12:00:00.123Z", T0 + timedelta(microseconds=123000)),
            ("2024-01-01T12:00:00.123456789Z", T0 + timedelta(microseconds=123456)),
            ("2024-01-01T14:00:00.5+02:00", T0 + timedelta(microseconds=500000)),
            ("2024-01-01t12:00:00z", T0),
        ],
    )
    def test_accepts_rfc3339(self, value, expected):
        parsed = parse_event_time(value, RFC3339)
        assert parsed == expected
        assert parsed.utcoffset() == timedelta(0)

    @pytest.mark.parametrize(
        "value",
        [
            "2024-01-01",
            "2024-01-01T12:00:00",
            "2024-01-01T12:00:00.123",
            "2024-01-01 12:00:00Z",
            "2024-01-01T12:00Z",
            "2024-01-01T12:00:00.Z",
            "yesterday",
        ],
    )
    def test_rejects_non_rfc3339(self, value):
        with pytest.raises(ValueError):
            parse_event_time(value, RFC3339)

    def test_rejects_non_string(self):
        with pytest.raises(ValueError):
            parse_event_time(1704110400, RFC3339)

    @pytest.mark.asyncio
    async def test_nanosecond_event_is_admitted(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"threats": [{"threatId": "A", "receivedTime": "2024-01-01T12:00:10.123456789Z"}]},
            )

        state = SourceState(watermark=T0)
        result = await PageWalker(make_executor(handler)).walk(_paged_source(), state)

        assert [e["threatId"] for e in result.events] == ["A"]
        assert state.watermark == T0 + timedelta(seconds=10, microseconds=123456)
