"""
NWS alert feed client for Sovereign Skies.

Fetches active alerts for the configured US states from
api.weather.gov and fills in geometry for alerts that omit it by
fetching their affected-zone shapes. Zone requests share one
concurrency limit, and a zone already being fetched is awaited
rather than requested again.
"""

import asyncio
from typing import Dict, List, MutableMapping, Optional, Sequence

import aiohttp

from sovereign.common.circuit import CircuitBreaker
from sovereign.common.retry import (
    FetchResponse,
    RetryPolicy,
    fetch_with_circuit_breaker,
    raise_for_status,
)
from sovereign.common.safe_parse import safe_parse_json
from sovereign.core.errors import ParseError, SovereignError
from sovereign.core.geo_resolver import geometry_from_geojson, union_geometries
from sovereign.core.models import Alert, Geometry
from sovereign.core.normalize import parse_nws_payload
from sovereign.observability.logging_setup import get_logger

log = get_logger("sovereign.nws")

NWS_BASE_URL = "https://api.weather.gov"
DEFAULT_AREAS = ("WA", "OR", "ID")
DEFAULT_USER_AGENT = "SovereignSkies/1.0 (tribal-emergency-alerts)"


def zone_id_from_url(url: str) -> str:
    """https://api.weather.gov/zones/forecast/WAZ558 -> WAZ558"""
    return url.rstrip("/").rsplit("/", 1)[-1].upper()


class NWSAlertClient:
    """NWS 활성 경보 클라이언트"""

    name = "nws"

    def __init__(self,
                 session: aiohttp.ClientSession,
                 breaker: CircuitBreaker,
                 policy: Optional[RetryPolicy] = None,
                 *,
                 base_url: str = NWS_BASE_URL,
                 areas: Sequence[str] = DEFAULT_AREAS,
                 user_agent: str = DEFAULT_USER_AGENT,
                 zone_cache: Optional[MutableMapping[str, Optional[Geometry]]] = None,
                 fetch_zone_geometry: bool = True,
                 max_zone_fetch: int = 3,
                 concurrency: int = 4):
        """
        초기화합니다.

        Args:
            session: 공유 aiohttp 세션
            breaker: NWS 전용 회로 차단기
            policy: 재시도 정책
            base_url: NWS API 기본 URL
            areas: 조회할 주 코드
            user_agent: NWS 가 요구하는 User-Agent
            zone_cache: 존 ID -> 형상 캐시 (형상 결정기와 공유)
            fetch_zone_geometry: 형상 없는 경보의 존 형상 조회 여부
            max_zone_fetch: 경보당 조회할 최대 존 수
            concurrency: 동시 요청 수
        """
        self.session = session
        self.breaker = breaker
        self.policy = policy or RetryPolicy()
        self.base_url = base_url.rstrip("/")
        self.areas = [a.upper() for a in areas]
        self.headers = {"User-Agent": user_agent, "Accept": "application/geo+json"}
        self.zone_cache: MutableMapping[str, Optional[Geometry]] = zone_cache if zone_cache is not None else {}
        self.fetch_zone_geometry = fetch_zone_geometry
        self.max_zone_fetch = max_zone_fetch
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        # 진행 중인 존 조회 (존 ID -> 작업)
        self._zone_fetches: Dict[str, asyncio.Task] = {}

    @property
    def alerts_url(self) -> str:
        return f"{self.base_url}/alerts/active?area={','.join(self.areas)}"

    async def _get(self, url: str) -> FetchResponse:
        async with self.session.get(url, headers=self.headers) as response:
            body = await response.text()
            return FetchResponse(status=response.status, body=body,
                                 reason=response.reason, url=str(response.url))

    async def _fetch(self, url: str, context: str) -> FetchResponse:
        # 세마포어 대기는 시도별 타임아웃에 포함하지 않음
        async with self._semaphore:
            response = await fetch_with_circuit_breaker(
                lambda: self._get(url), self.breaker, self.policy, context=context, url=url
            )
        return raise_for_status(response, url=url)

    async def fetch_alerts(self) -> List[Alert]:
        """
        활성 경보를 가져옵니다.

        Raises:
            TransientNetworkError / CircuitOpenError / ClientError: 조회 실패
            ParseError: 응답 본문이 JSON 이 아닌 경우
        """
        response = await self._fetch(self.alerts_url, "nws.alerts")
        payload = safe_parse_json(response.body, context="nws.alerts")
        if payload is None:
            raise ParseError("NWS response is not valid JSON")

        alerts = parse_nws_payload(payload)
        log.info(f"NWS 경보 {len(alerts)}건 수신 (실패 {alerts.failed}건)")

        if self.fetch_zone_geometry:
            alerts = await asyncio.gather(*(self._with_zone_geometry(a) for a in alerts))
        return list(alerts)

    async def _with_zone_geometry(self, alert: Alert) -> Alert:
        if alert.geometry is not None or not alert.zone_urls:
            return alert
        urls = alert.zone_urls[: self.max_zone_fetch]
        geometries = await asyncio.gather(*(self.get_zone_geometry(u) for u in urls))
        found = [g for g in geometries if g is not None]
        geometry = union_geometries(found)
        if geometry is None:
            return alert
        return alert.model_copy(update={"geometry": geometry})

    async def get_zone_geometry(self, zone_url: str) -> Optional[Geometry]:
        """
        존 형상을 조회합니다 (캐시 우선). 실패하면 None.

        같은 존을 동시에 요청하면 진행 중인 조회 하나를 함께 기다립니다.
        """
        zone_id = zone_id_from_url(zone_url)
        if zone_id in self.zone_cache:
            return self.zone_cache[zone_id]

        task = self._zone_fetches.get(zone_id)
        if task is None:
            task = asyncio.ensure_future(self._load_zone(zone_id, zone_url))
            self._zone_fetches[zone_id] = task
            task.add_done_callback(lambda _: self._zone_fetches.pop(zone_id, None))
        # 대기자 하나가 취소돼도 공유 조회는 계속됨
        return await asyncio.shield(task)

    async def _load_zone(self, zone_id: str, zone_url: str) -> Optional[Geometry]:
        try:
            response = await self._fetch(zone_url, "nws.zone")
        except SovereignError as e:
            log.warning(f"존 형상 조회 실패 {zone_id}: {e}")
            return None

        data = safe_parse_json(response.body, context="nws.zone")
        geometry = geometry_from_geojson(data.get("geometry")) if isinstance(data, dict) else None
        if geometry is not None:
            self.zone_cache[zone_id] = geometry
        return geometry
