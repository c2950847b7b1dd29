"""
ECCC Datamart 클라이언트 단위 테스트
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from sovereign.adapters.eccc.client import (
    ECCCAlertClient,
    parse_cap_files,
    parse_hour_directories,
)
from sovereign.common.circuit import CircuitBreaker, CircuitState
from sovereign.common.retry import FetchResponse, RetryPolicy
from sovereign.core.errors import ClientError
from sovereign.core.models import Source

BASE = "https://dd.weather.gc.ca/alerts/cap"
CWVR = f"{BASE}/20250103/CWVR/"
CWNT = f"{BASE}/20250103/CWNT/"

HOUR_LISTING = """<html><body><pre>
<a href="../">Parent Directory</a>
<a href="12/">12/</a>
<a href="18/">18/</a>
<a href="15/">15/</a>
<a href="18/">18/</a>
</pre></body></html>"""


def file_listing(*names):
    return "<pre>" + "".join(f'<a href="{n}">{n}</a>\n' for n in names) + "</pre>"


def route(table):
    async def fake_get(url):
        value = table.get(url, FetchResponse(status=404, url=url))
        if isinstance(value, Exception):
            raise value
        return value
    return AsyncMock(side_effect=fake_get)


def ok(body):
    return FetchResponse(status=200, body=body)


@pytest.fixture
def client():
    return ECCCAlertClient(
        MagicMock(),
        CircuitBreaker("eccc", failure_threshold=10),
        RetryPolicy(max_retries=0),
        clock=lambda: datetime(2025, 1, 3, 19, 0, tzinfo=timezone.utc),
    )


class TestListingParsers:
    """디렉터리 목록 파싱 테스트"""

    def test_hours_newest_first_unique(self):
        assert parse_hour_directories(HOUR_LISTING) == ["18", "15", "12"]

    def test_cap_files(self):
        listing = file_listing("a.cap", "b.cap", "readme.txt", "a.cap")
        assert parse_cap_files(listing) == ["a.cap", "b.cap"]

    def test_empty(self):
        assert parse_hour_directories(None) == []
        assert parse_cap_files("") == []


class TestECCCAlertClient:
    """ECCC 클라이언트 테스트"""

    def test_station_url(self, client):
        assert client.station_url("CWVR") == CWVR

    @pytest.mark.asyncio
    async def test_list_cap_files_respects_limits(self, client):
        client.hours_back = 2
        client.max_files_per_station = 3
        client._get = route({
            CWVR: ok(HOUR_LISTING),
            f"{CWVR}18/": ok(file_listing("x1.cap", "x2.cap")),
            f"{CWVR}15/": ok(file_listing("y1.cap", "y2.cap")),
            f"{CWVR}12/": ok(file_listing("z1.cap")),
        })
        urls = await client.list_cap_files("CWVR")
        assert urls == [f"{CWVR}18/x1.cap", f"{CWVR}18/x2.cap", f"{CWVR}15/y1.cap"]

    @pytest.mark.asyncio
    async def test_failed_hour_skipped(self, client):
        client._get = route({
            CWVR: ok(HOUR_LISTING),
            f"{CWVR}15/": ok(file_listing("y1.cap")),
        })
        assert await client.list_cap_files("CWVR") == [f"{CWVR}15/y1.cap"]

    @pytest.mark.asyncio
    async def test_failed_station_listing_raises(self, client):
        client._get = route({})
        with pytest.raises(ClientError):
            await client.list_cap_files("CWVR")

    @pytest.mark.asyncio
    async def test_no_hour_directories(self, client):
        client._get = route({CWVR: ok("<pre></pre>")})
        assert await client.list_cap_files("CWVR") == []

    @pytest.mark.asyncio
    async def test_fetch_station(self, client, make_cap):
        client._get = route({
            CWVR: ok('<a href="18/">18/</a>'),
            f"{CWVR}18/": ok(file_listing("good.cap", "cancel.cap", "broken.cap", "missing.cap")),
            f"{CWVR}18/good.cap": ok(make_cap()),
            f"{CWVR}18/cancel.cap": ok(make_cap(identifier="c1", msg_type="Cancel")),
            f"{CWVR}18/broken.cap": ok("<alert><oops>"),
        })
        alerts = await client.fetch_station("BC", "CWVR")
        assert len(alerts) == 1
        assert alerts[0].source == Source.ECCC
        assert alerts[0].jurisdiction == "BC"

    @pytest.mark.asyncio
    async def test_fetch_alerts_partial_failure(self, client, make_cap):
        client._get = route({
            CWVR: ok('<a href="18/">18/</a>'),
            f"{CWVR}18/": ok(file_listing("a.cap")),
            f"{CWVR}18/a.cap": ok(make_cap()),
        })
        alerts = await client.fetch_alerts()
        assert [a.jurisdiction for a in alerts] == ["BC"]

    @pytest.mark.asyncio
    async def test_fetch_alerts_deduplicates(self, client, make_cap):
        client._get = route({
            CWVR: ok('<a href="18/">18/</a>'),
            CWNT: ok('<a href="18/">18/</a>'),
            f"{CWVR}18/": ok(file_listing("a.cap")),
            f"{CWNT}18/": ok(file_listing("a.cap")),
            f"{CWVR}18/a.cap": ok(make_cap()),
            f"{CWNT}18/a.cap": ok(make_cap()),
        })
        alerts = await client.fetch_alerts()
        assert len(alerts) == 1

    @pytest.mark.asyncio
    async def test_queue_wait_not_counted_as_timeout(self, make_cap):
        """동시 요청 제한 대기 시간이 타임아웃이나 회로 실패로 세지지 않음"""
        breaker = CircuitBreaker("eccc", failure_threshold=3)
        client = ECCCAlertClient(
            MagicMock(), breaker, RetryPolicy(max_retries=0, timeout=0.15),
            stations={"BC": "CWVR"}, concurrency=1,
            clock=lambda: datetime(2025, 1, 3, 19, 0, tzinfo=timezone.utc),
        )
        names = [f"f{i}.cap" for i in range(4)]
        table = {
            CWVR: ok('<a href="18/">18/</a>'),
            f"{CWVR}18/": ok(file_listing(*names)),
        }
        for i, name in enumerate(names):
            table[f"{CWVR}18/{name}"] = ok(make_cap(identifier=f"urn:test:{i}"))

        async def slow_get(url):
            await asyncio.sleep(0.1)
            return table[url]

        client._get = slow_get
        alerts = await client.fetch_station("BC", "CWVR")

        assert len(alerts) == 4
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_file_fetches_bounded(self, make_cap):
        client = ECCCAlertClient(
            MagicMock(), CircuitBreaker("eccc"), RetryPolicy(max_retries=0),
            stations={"BC": "CWVR"}, concurrency=2,
            clock=lambda: datetime(2025, 1, 3, 19, 0, tzinfo=timezone.utc),
        )
        names = [f"f{i}.cap" for i in range(8)]
        client.max_files_per_station = 8
        table = {
            CWVR: ok('<a href="18/">18/</a>'),
            f"{CWVR}18/": ok(file_listing(*names)),
        }
        for i, name in enumerate(names):
            table[f"{CWVR}18/{name}"] = ok(make_cap(identifier=f"urn:test:{i}"))

        active = 0
        peak = 0

        async def counting_get(url):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return table[url]

        client._get = counting_get
        alerts = await client.fetch_station("BC", "CWVR")
        assert len(alerts) == 8
        assert peak == 2

    @pytest.mark.asyncio
    async def test_fetch_alerts_all_stations_fail(self, client):
        client._get = route({})
        with pytest.raises(ClientError):
            await client.fetch_alerts()
