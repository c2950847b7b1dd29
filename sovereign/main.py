# sovereign/main.py
import os, asyncio, signal
from typing import List, Optional, Tuple
import aiohttp
import uvicorn
from sovereign.settings import Settings
from sovereign.observability.health import create_app
from sovereign.observability.logging_setup import setup_logger, get_logger
from sovereign.common.circuit import CircuitBreaker
from sovereign.common.retry import RetryPolicy
from sovereign.adapters.nws.client import NWSAlertClient
from sovereign.adapters.eccc.client import ECCCAlertClient
from sovereign.adapters.reference.loader import load_boundaries, load_zone_table
from sovereign.orchestrators.poller import AlertPoller
from sovereign.ports.feed import AlertFeedPort

def _b(name, default=False): return os.getenv(name, str(default)).lower() in ("1","true","yes","on")

def _list(name, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None: return default
    return [p.strip().upper() for p in raw.split(",") if p.strip()]

def build_settings() -> Settings:
    s = Settings()

    # NWS
    s.nws.enabled = _b("NWS_ENABLED", s.nws.enabled)
    s.nws.areas = _list("NWS_AREAS", s.nws.areas)
    s.nws.base_url = os.getenv("NWS_BASE_URL", s.nws.base_url)
    s.nws.user_agent = os.getenv("NWS_USER_AGENT", s.nws.user_agent)
    s.nws.fetch_zone_geometry = _b("NWS_FETCH_ZONES", s.nws.fetch_zone_geometry)
    s.nws.concurrency = int(os.getenv("NWS_CONCURRENCY", s.nws.concurrency))

    # ECCC
    s.eccc.enabled = _b("ECCC_ENABLED", s.eccc.enabled)
    s.eccc.base_url = os.getenv("ECCC_BASE_URL", s.eccc.base_url)
    s.eccc.language = os.getenv("ECCC_LANGUAGE", s.eccc.language)
    s.eccc.hours_back = int(os.getenv("ECCC_HOURS_BACK", s.eccc.hours_back))
    s.eccc.max_files_per_station = int(os.getenv("ECCC_MAX_FILES", s.eccc.max_files_per_station))
    s.eccc.concurrency = int(os.getenv("ECCC_CONCURRENCY", s.eccc.concurrency))

    # 신뢰성
    s.reliability.fetch_timeout_sec = float(os.getenv("FETCH_TIMEOUT_SEC", s.reliability.fetch_timeout_sec))
    s.reliability.fetch_max_retries = int(os.getenv("FETCH_MAX_RETRIES", s.reliability.fetch_max_retries))
    s.reliability.backoff_initial_sec = float(os.getenv("BACKOFF_INITIAL_SEC", s.reliability.backoff_initial_sec))
    s.reliability.backoff_max_sec = float(os.getenv("BACKOFF_MAX_SEC", s.reliability.backoff_max_sec))
    s.reliability.breaker_failure_threshold = int(os.getenv("BREAKER_FAILURE_THRESHOLD", s.reliability.breaker_failure_threshold))
    s.reliability.breaker_reset_timeout_sec = float(os.getenv("BREAKER_RESET_TIMEOUT_SEC", s.reliability.breaker_reset_timeout_sec))
    poll_timeout = os.getenv("POLL_TIMEOUT_SEC")
    if poll_timeout is not None:
        s.reliability.poll_timeout_sec = float(poll_timeout) or None

    # 참조 데이터
    s.reference.zones_path = os.getenv("ZONES_PATH", s.reference.zones_path)
    s.reference.boundaries_path = os.getenv("BOUNDARIES_PATH", s.reference.boundaries_path)

    # 폴링
    s.polling.interval_sec = float(os.getenv("POLL_INTERVAL_SEC", s.polling.interval_sec))
    s.polling.active_only = _b("ACTIVE_ONLY", s.polling.active_only)

    # 관측성
    s.observability.metrics_enabled = _b("METRICS_ENABLED", s.observability.metrics_enabled)
    s.observability.http_port = int(os.getenv("METRICS_PORT", s.observability.http_port))
    s.observability.log_level = os.getenv("LOG_LEVEL", s.observability.log_level)

    return s

def build_retry_policy(s: Settings) -> RetryPolicy:
    r = s.reliability
    return RetryPolicy(
        max_retries=r.fetch_max_retries,
        base_delay=r.backoff_initial_sec,
        max_delay=r.backoff_max_sec,
        backoff_factor=r.backoff_factor,
        jitter_ratio=r.jitter_ratio,
        timeout=r.fetch_timeout_sec,
    )

def build_breaker(name: str, s: Settings) -> CircuitBreaker:
    # 의존성마다 독립 인스턴스
    return CircuitBreaker(
        name,
        failure_threshold=s.reliability.breaker_failure_threshold,
        reset_timeout=s.reliability.breaker_reset_timeout_sec,
    )

def build_feeds(s: Settings, session: aiohttp.ClientSession, zone_table: dict) -> tuple:
    policy = build_retry_policy(s)
    feeds: List[AlertFeedPort] = []
    breakers: List[CircuitBreaker] = []
    if s.nws.enabled:
        breaker = build_breaker("nws", s)
        breakers.append(breaker)
        feeds.append(NWSAlertClient(
            session, breaker, policy,
            base_url=s.nws.base_url,
            areas=s.nws.areas,
            user_agent=s.nws.user_agent,
            zone_cache=zone_table,
            fetch_zone_geometry=s.nws.fetch_zone_geometry,
            max_zone_fetch=s.nws.max_zone_fetch,
            concurrency=s.nws.concurrency,
        ))
    if s.eccc.enabled:
        breaker = build_breaker("eccc", s)
        breakers.append(breaker)
        feeds.append(ECCCAlertClient(
            session, breaker, policy,
            base_url=s.eccc.base_url,
            stations=s.eccc.stations,
            hours_back=s.eccc.hours_back,
            max_files_per_station=s.eccc.max_files_per_station,
            language=s.eccc.language,
            concurrency=s.eccc.concurrency,
        ))
    return feeds, breakers

async def start_http(settings: Settings, poller: AlertPoller, breakers) -> Optional[Tuple[uvicorn.Server, asyncio.Task]]:
    if not settings.observability.metrics_enabled: return None
    app = create_app(settings, poller, breakers)
    server = uvicorn.Server(
        uvicorn.Config(app, host="0.0.0.0", port=settings.observability.http_port, log_level="info")
    )
    return server, asyncio.create_task(server.serve())

async def stop_http(server: uvicorn.Server, task: asyncio.Task, timeout: float = 10.0) -> None:
    # 정상 종료를 요청하고 끝날 때까지 기다림 (시간 초과 시 취소)
    log = get_logger()
    server.should_exit = True
    try:
        await asyncio.wait_for(task, timeout=timeout)
    except asyncio.TimeoutError:
        log.warning(f"HTTP 서버가 {timeout}초 안에 종료되지 않아 취소함")
    except Exception as e:
        log.exception(f"HTTP 서버 종료 중 오류: {e}")

async def main():
    # 로거 초기화 (환경변수 LOG_LEVEL 우선)
    setup_logger(os.getenv("LOG_LEVEL", "INFO"))
    log = get_logger()

    s = build_settings()
    log.info("설정 로드 완료")

    # 존 테이블은 NWS 존 캐시와 같은 dict 를 공유
    zone_table = {}
    if s.reference.zones_path:
        zone_table.update(load_zone_table(s.reference.zones_path, s.reference.zone_id_property))
    boundaries = load_boundaries(
        s.reference.boundaries_path,
        id_property=s.reference.boundary_id_property,
        lat_property=s.reference.boundary_lat_property,
        lon_property=s.reference.boundary_lon_property,
        name_property=s.reference.boundary_name_property,
        jurisdiction_property=s.reference.boundary_jurisdiction_property,
    )

    async with aiohttp.ClientSession() as session:
        feeds, breakers = build_feeds(s, session, zone_table)
        if not feeds:
            log.warning("활성화된 피드가 없음")
        poller = AlertPoller(
            feeds, boundaries, zone_table,
            poll_timeout=s.reliability.poll_timeout_sec,
            active_only=s.polling.active_only,
        )
        log.info("폴러 생성 완료")

        http = await start_http(s, poller, breakers)
        if http:
            log.info("HTTP 서버 시작됨")

        stop = asyncio.Future()
        try:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                try: loop.add_signal_handler(sig, lambda: (not stop.done()) and stop.set_result(True))
                except NotImplementedError: pass
        except RuntimeError: pass

        poll_task = asyncio.create_task(poller.run(s.polling.interval_sec))
        await stop
        poller.stop()
        await poll_task
        if http: await stop_http(*http)

def run():
    asyncio.run(main())

if __name__ == "__main__":
    run()
