"""
Poll orchestrator for Sovereign Skies.

One poll cycle fans out to every feed concurrently, then runs the
normalized alerts through

    de-dup -> drop expired -> resolve geometry -> sanitize
    -> unified severity -> stable sort -> match

and publishes the result as a PollSnapshot. A cycle in which every
feed fails leaves the previous snapshot in place.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from sovereign.common.safe_parse import safe_process_batch
from sovereign.common.timeutil import is_expired
from sovereign.core.geo_resolver import (
    DEFAULT_REGION_RULES,
    JURISDICTION_BOXES,
    RegionRule,
    resolve_alert_geometry,
)
from sovereign.core.matcher import match_alerts_to_boundaries
from sovereign.core.models import Alert, Boundary, Geometry, MatchResult
from sovereign.core.normalize import dedupe_alerts
from sovereign.core.sanitize import sanitize_alert
from sovereign.core.severity import apply_unified_severity, sort_by_severity
from sovereign.observability import metrics
from sovereign.observability.logging_setup import get_logger, with_context
from sovereign.ports.feed import AlertFeedPort

log = get_logger("sovereign.poller")


class SourceStatus(BaseModel):
    """피드 하나의 이번 주기 결과"""
    ok: bool
    count: int = 0
    error: Optional[str] = None


class PollSnapshot(BaseModel):
    """한 폴링 주기의 결과"""
    alerts: List[Alert] = Field(default_factory=list)
    matches: MatchResult = Field(default_factory=dict)
    completed_at: datetime
    sources: Dict[str, SourceStatus] = Field(default_factory=dict)
    received: int = 0
    failed: int = 0


class AlertPoller:
    """피드 수집 -> 정규화 -> 매칭 오케스트레이터"""

    def __init__(self,
                 feeds: Sequence[AlertFeedPort],
                 boundaries: Sequence[Boundary],
                 zone_table: Optional[Mapping[str, Geometry]] = None,
                 *,
                 region_rules: Sequence[RegionRule] = DEFAULT_REGION_RULES,
                 jurisdiction_boxes: Mapping[str, Geometry] = JURISDICTION_BOXES,
                 poll_timeout: Optional[float] = 120.0,
                 active_only: bool = True,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        """
        초기화합니다.

        Args:
            feeds: 경보 피드 목록
            boundaries: 경계 참조 데이터 (프로세스 동안 고정)
            zone_table: 존 ID -> 형상 (NWS 존 캐시와 공유 가능)
            region_rules: 영역 설명 지역 규칙 (우선순위 순)
            jurisdiction_boxes: 관할 기본 상자
            poll_timeout: 주기 전체 마감 시간 (None 이면 없음)
            active_only: 만료된 경보 제외 여부
            clock: 현재 시각 (테스트에서 교체 가능)
        """
        self.feeds = list(feeds)
        self.boundaries = list(boundaries)
        self.zone_table = zone_table if zone_table is not None else {}
        self.region_rules = list(region_rules)
        self.jurisdiction_boxes = jurisdiction_boxes
        self.poll_timeout = poll_timeout
        self.active_only = active_only
        self._clock = clock
        self._snapshot: Optional[PollSnapshot] = None
        self._stop = asyncio.Event()

    @property
    def snapshot(self) -> Optional[PollSnapshot]:
        """가장 최근에 성공한 주기의 결과"""
        return self._snapshot

    @staticmethod
    async def _fetch_feed(feed: AlertFeedPort) -> List[Alert]:
        # 피드 조회 중 남는 로그에 source 를 붙임
        with with_context(source=feed.name):
            return await feed.fetch_alerts()

    async def _gather_feeds(self) -> list:
        coro = asyncio.gather(*(self._fetch_feed(feed) for feed in self.feeds), return_exceptions=True)
        if self.poll_timeout:
            return await asyncio.wait_for(coro, timeout=self.poll_timeout)
        return await coro

    def _prepare(self, alert: Alert) -> Alert:
        geometry = resolve_alert_geometry(alert, self.zone_table,
                                          self.region_rules, self.jurisdiction_boxes)
        if geometry is not alert.geometry:
            alert = alert.model_copy(update={"geometry": geometry})
        alert = apply_unified_severity(sanitize_alert(alert))
        metrics.alerts_valid.labels(severity=alert.unified_severity.name).inc()
        return alert

    async def poll_once(self) -> Optional[PollSnapshot]:
        """
        폴링 주기를 한 번 실행합니다.

        Returns:
            새 스냅샷. 모든 피드가 실패했거나 마감 시간이 지나면
            이전 스냅샷 (없으면 None)
        """
        started = time.monotonic()
        try:
            results = await self._gather_feeds()
        except asyncio.TimeoutError:
            metrics.poll_failures.labels(source="all").inc()
            log.error(f"폴링 주기 마감 시간 {self.poll_timeout}초 초과, 이전 결과 유지")
            return self._snapshot

        sources: Dict[str, SourceStatus] = {}
        collected: List[Alert] = []
        for feed, result in zip(self.feeds, results):
            if isinstance(result, BaseException):
                metrics.poll_failures.labels(source=feed.name).inc()
                log.warning(f"피드 {feed.name} 실패: {type(result).__name__}: {result}")
                sources[feed.name] = SourceStatus(ok=False, error=f"{type(result).__name__}: {result}")
                continue
            sources[feed.name] = SourceStatus(ok=True, count=len(result))
            collected.extend(result)

        if self.feeds and not any(s.ok for s in sources.values()):
            metrics.poll_failures.labels(source="all").inc()
            log.error("모든 피드 실패, 이전 결과 유지")
            return self._snapshot

        alerts = dedupe_alerts(collected)
        if self.active_only:
            now = self._clock()
            alerts = [a for a in alerts if not is_expired(a.expires, now)]

        prepared = safe_process_batch(alerts, self._prepare, context="poll.prepare")
        ordered = sort_by_severity(prepared)
        matches = match_alerts_to_boundaries(ordered, self.boundaries)

        snapshot = PollSnapshot(
            alerts=ordered,
            matches=matches,
            completed_at=self._clock(),
            sources=sources,
            received=len(collected),
            failed=prepared.failed,
        )
        self._snapshot = snapshot

        elapsed = time.monotonic() - started
        metrics.poll_seconds.observe(elapsed)
        metrics.active_alerts.set(len(ordered))
        metrics.boundaries_alerted.set(len(matches))
        log.info(f"폴링 완료: 경보 {len(ordered)}건, 영향 경계 {len(matches)}개 ({elapsed:.2f}초)")
        return snapshot

    async def run(self, interval: float) -> None:
        """stop() 이 호출될 때까지 interval 초마다 폴링합니다."""
        self._stop.clear()
        log.info(f"폴링 시작: 간격 {interval}초, 피드 {[f.name for f in self.feeds]}")
        while not self._stop.is_set():
            try:
                await self.poll_once()
            except Exception as e:
                metrics.poll_failures.labels(source="all").inc()
                log.exception(f"폴링 주기 오류: {e}")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        log.info("폴링 중지")

    def stop(self) -> None:
        self._stop.set()
