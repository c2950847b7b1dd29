"""
ECCC alert feed client for Sovereign Skies.

Reads CAP-CP alerts from the MSC Datamart directory tree:

    {base}/{YYYYMMDD}/{station}/{HH}/*.cap

One station per province (CWVR covers BC, CWNT covers Alberta). Only
the newest hour directories of today's (UTC) tree are read.
"""

import asyncio
import re
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional

import aiohttp

from sovereign.common.circuit import CircuitBreaker
from sovereign.common.retry import (
    FetchResponse,
    RetryPolicy,
    fetch_with_circuit_breaker,
    raise_for_status,
)
from sovereign.common.safe_parse import safe_process_batch
from sovereign.core.errors import SovereignError
from sovereign.core.models import Alert, Source
from sovereign.core.normalize import DEFAULT_LANGUAGE, cap_to_alert, dedupe_alerts
from sovereign.observability import metrics
from sovereign.observability.logging_setup import get_logger

log = get_logger("sovereign.eccc")

ECCC_DATAMART_BASE = "https://dd.weather.gc.ca/alerts/cap"
DEFAULT_STATIONS: Dict[str, str] = {"BC": "CWVR", "AB": "CWNT"}
DEFAULT_USER_AGENT = "SovereignSkies/1.0 (tribal-emergency-alerts)"

_HOUR_DIR = re.compile(r'href="(\d{2})/"')
_CAP_FILE = re.compile(r'href="([^"]+\.cap)"')


def parse_hour_directories(listing: str) -> List[str]:
    """디렉터리 목록 HTML 에서 시간 디렉터리를 최신순으로 추출합니다."""
    return sorted(set(_HOUR_DIR.findall(listing or "")), reverse=True)


def parse_cap_files(listing: str) -> List[str]:
    """디렉터리 목록 HTML 에서 .cap 파일 이름을 추출합니다 (목록 순서 유지)."""
    files = []
    for name in _CAP_FILE.findall(listing or ""):
        if name not in files:
            files.append(name)
    return files


class ECCCAlertClient:
    """MSC Datamart CAP 경보 클라이언트"""

    name = "eccc"

    def __init__(self,
                 session: aiohttp.ClientSession,
                 breaker: CircuitBreaker,
                 policy: Optional[RetryPolicy] = None,
                 *,
                 base_url: str = ECCC_DATAMART_BASE,
                 stations: Optional[Mapping[str, str]] = None,
                 hours_back: int = 3,
                 max_files_per_station: int = 10,
                 language: str = DEFAULT_LANGUAGE,
                 concurrency: int = 5,
                 user_agent: str = DEFAULT_USER_AGENT,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        """
        초기화합니다.

        Args:
            session: 공유 aiohttp 세션
            breaker: ECCC 전용 회로 차단기
            policy: 재시도 정책
            base_url: Datamart CAP 기본 URL
            stations: 관할 코드 -> 관측소 코드
            hours_back: 읽을 최신 시간 디렉터리 수
            max_files_per_station: 관측소당 최대 CAP 파일 수
            language: 선호 info 언어
            concurrency: 동시 파일 요청 수
            clock: 날짜 디렉터리 계산용 시계
        """
        self.session = session
        self.breaker = breaker
        self.policy = policy or RetryPolicy()
        self.base_url = base_url.rstrip("/")
        self.stations = dict(stations or DEFAULT_STATIONS)
        self.hours_back = hours_back
        self.max_files_per_station = max_files_per_station
        self.language = language
        self.headers = {"User-Agent": user_agent}
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._clock = clock

    def station_url(self, station: str) -> str:
        date = self._clock().strftime("%Y%m%d")
        return f"{self.base_url}/{date}/{station}/"

    async def _get(self, url: str) -> FetchResponse:
        async with self.session.get(url, headers=self.headers) as response:
            body = await response.text()
            return FetchResponse(status=response.status, body=body,
                                 reason=response.reason, url=str(response.url))

    async def _fetch_text(self, url: str, context: str) -> str:
        # 세마포어 대기는 시도별 타임아웃에 포함하지 않음
        async with self._semaphore:
            response = await fetch_with_circuit_breaker(
                lambda: self._get(url), self.breaker, self.policy, context=context, url=url
            )
        return raise_for_status(response, url=url).body

    async def list_cap_files(self, station: str) -> List[str]:
        """
        관측소의 최신 CAP 파일 URL 목록을 구합니다.

        시간 디렉터리 하나가 실패하면 건너뛰지만, 관측소 목록 자체가
        실패하면 예외가 전파됩니다.
        """
        station_url = self.station_url(station)
        hours = parse_hour_directories(await self._fetch_text(station_url, "eccc.listing"))
        if not hours:
            log.info(f"{station} 에 오늘 CAP 디렉터리가 없음")
            return []

        urls: List[str] = []
        for hour in hours[: self.hours_back]:
            hour_url = f"{station_url}{hour}/"
            try:
                listing = await self._fetch_text(hour_url, "eccc.listing")
            except SovereignError as e:
                log.warning(f"{station}/{hour} 목록 조회 실패: {e}")
                continue
            urls.extend(f"{hour_url}{name}" for name in parse_cap_files(listing))
        return urls[: self.max_files_per_station]

    async def _fetch_cap(self, url: str) -> Optional[str]:
        try:
            return await self._fetch_text(url, "eccc.cap")
        except SovereignError as e:
            log.warning(f"CAP 파일 조회 실패 {url}: {e}")
            return None

    async def fetch_station(self, jurisdiction: str, station: str) -> List[Alert]:
        """관측소 하나의 CAP 경보를 가져옵니다."""
        urls = await self.list_cap_files(station)
        documents = await asyncio.gather(*(self._fetch_cap(u) for u in urls))
        documents = [d for d in documents if d]
        alerts = safe_process_batch(
            documents,
            lambda doc: cap_to_alert(doc, jurisdiction, self.language),
            context=f"eccc.parse.{jurisdiction}",
        )
        log.info(f"ECCC {jurisdiction}({station}) 파일 {len(documents)}개, 경보 {len(alerts)}건")
        return list(alerts)

    async def fetch_alerts(self) -> List[Alert]:
        """
        모든 관측소의 경보를 가져옵니다.

        일부 관측소 실패는 로그만 남기고, 모든 관측소가 실패하면
        마지막 오류를 전파합니다.
        """
        items = list(self.stations.items())
        results = await asyncio.gather(
            *(self.fetch_station(j, s) for j, s in items), return_exceptions=True
        )

        alerts: List[Alert] = []
        errors: List[BaseException] = []
        for (jurisdiction, station), result in zip(items, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                errors.append(result)
                log.warning(f"ECCC 관측소 {jurisdiction}({station}) 실패: {result}")
                continue
            alerts.extend(result)

        if items and len(errors) == len(items):
            raise errors[-1]

        unique = dedupe_alerts(alerts)
        metrics.alerts_received.labels(source=Source.ECCC.value).inc(len(unique))
        return unique
