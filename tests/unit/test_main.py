"""
진입점 구성 단위 테스트

환경변수 -> Settings 변환과 피드/회로 차단기 조립을 테스트합니다.
"""

import asyncio
from unittest.mock import MagicMock

import pytest
from loguru import logger

from sovereign.adapters.eccc.client import ECCCAlertClient
from sovereign.adapters.nws.client import NWSAlertClient
from sovereign.main import build_breaker, build_feeds, build_retry_policy, build_settings, stop_http


class TestBuildSettings:
    """환경변수 설정 테스트"""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("POLL_TIMEOUT_SEC", raising=False)
        s = build_settings()
        assert s.nws.areas == ["WA", "OR", "ID"]
        assert s.reliability.poll_timeout_sec == 120.0
        assert s.polling.interval_sec == 300.0

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("NWS_AREAS", "wa, or")
        monkeypatch.setenv("ECCC_ENABLED", "false")
        monkeypatch.setenv("FETCH_MAX_RETRIES", "5")
        monkeypatch.setenv("BREAKER_FAILURE_THRESHOLD", "2")
        monkeypatch.setenv("POLL_INTERVAL_SEC", "60")
        monkeypatch.setenv("ZONES_PATH", "/data/zones.geojson")
        monkeypatch.setenv("NWS_CONCURRENCY", "2")
        s = build_settings()
        assert s.nws.areas == ["WA", "OR"]
        assert s.eccc.enabled is False
        assert s.reliability.fetch_max_retries == 5
        assert s.reliability.breaker_failure_threshold == 2
        assert s.polling.interval_sec == 60.0
        assert s.reference.zones_path == "/data/zones.geojson"
        assert s.nws.concurrency == 2

    def test_zero_poll_timeout_disables_deadline(self, monkeypatch):
        monkeypatch.setenv("POLL_TIMEOUT_SEC", "0")
        assert build_settings().reliability.poll_timeout_sec is None


class TestWiring:
    """피드 조립 테스트"""

    def test_retry_policy_from_settings(self, sample_settings):
        sample_settings.reliability.fetch_max_retries = 7
        policy = build_retry_policy(sample_settings)
        assert policy.max_retries == 7
        assert policy.timeout == sample_settings.reliability.fetch_timeout_sec

    def test_breaker_from_settings(self, sample_settings):
        breaker = build_breaker("nws", sample_settings)
        assert breaker.name == "nws"
        assert breaker.failure_threshold == sample_settings.reliability.breaker_failure_threshold

    def test_one_breaker_per_feed(self, sample_settings):
        zone_table = {}
        feeds, breakers = build_feeds(sample_settings, MagicMock(), zone_table)
        assert [type(f) for f in feeds] == [NWSAlertClient, ECCCAlertClient]
        assert [b.name for b in breakers] == ["nws", "eccc"]
        assert feeds[0].breaker is not feeds[1].breaker
        assert feeds[0].zone_cache is zone_table

    def test_disabled_feed_skipped(self, sample_settings):
        sample_settings.nws.enabled = False
        feeds, breakers = build_feeds(sample_settings, MagicMock(), {})
        assert [f.name for f in feeds] == ["eccc"]
        assert [b.name for b in breakers] == ["eccc"]


class TestStopHttp:
    """HTTP 서버 종료 테스트"""

    @pytest.fixture
    def server(self):
        return MagicMock(should_exit=False)

    @pytest.mark.asyncio
    async def test_graceful_exit_awaited(self, server):
        async def serve():
            while not server.should_exit:
                await asyncio.sleep(0)
            return "stopped"

        task = asyncio.create_task(serve())
        await stop_http(server, task)
        assert server.should_exit is True
        assert task.done() and task.result() == "stopped"

    @pytest.mark.asyncio
    async def test_shutdown_error_logged(self, server):
        records = []
        handler_id = logger.add(lambda m: records.append(m.record), level="ERROR")

        async def serve():
            while not server.should_exit:
                await asyncio.sleep(0)
            raise RuntimeError("lifespan failed")

        try:
            await stop_http(server, asyncio.create_task(serve()))
        finally:
            logger.remove(handler_id)
        assert any("lifespan failed" in r["message"] for r in records)

    @pytest.mark.asyncio
    async def test_hanging_server_cancelled(self, server):
        task = asyncio.create_task(asyncio.sleep(10))
        await stop_http(server, task, timeout=0.01)
        assert task.cancelled()
