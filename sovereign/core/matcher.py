"""
Spatial matching of alerts against fixed boundaries.

For each boundary the highest unified severity among alerts whose
geometry contains the boundary's representative point is kept.
"""

from typing import Iterable, List, Optional, Tuple

from sovereign.common.geo import (
    BBox,
    Point,
    bboxes_overlap,
    bounding_box,
    point_in_bbox,
    point_in_geometry,
)
from sovereign.core.models import Alert, Boundary, MatchResult
from sovereign.observability import metrics
from sovereign.observability.logging_setup import get_logger

log = get_logger("sovereign.matcher")


def _prepare_alerts(alerts: Iterable[Alert]) -> List[Tuple[Alert, BBox]]:
    prepared = []
    for alert in alerts or []:
        if alert.geometry is None:
            continue
        bbox = bounding_box(alert.geometry.coordinates)
        if bbox is not None:
            prepared.append((alert, bbox))
    return prepared


def _prepare_boundary(boundary: Boundary) -> Optional[Tuple[Point, BBox]]:
    if boundary.geometry is None:
        return None
    point = boundary.point
    if point is None:
        return None
    bbox = bounding_box(boundary.geometry.coordinates)
    if bbox is None:
        return None
    return point, bbox


def _contains(prepared_boundary: Tuple[Point, BBox], alert: Alert, alert_bbox: BBox) -> bool:
    point, bbox = prepared_boundary
    # 상자가 겹칠 때만 점 포함 검사
    if not bboxes_overlap(bbox, alert_bbox):
        return False
    return point_in_geometry(point, alert.geometry)


def match_alerts_to_boundaries(alerts: Iterable[Alert],
                               boundaries: Iterable[Boundary]) -> MatchResult:
    """
    경계별로 대표점을 포함하는 경보 중 가장 높은 통합 심각도를 구합니다.

    형상이나 유효한 대표점이 없는 경계는 건너뛰고 결과에서 제외합니다.

    Args:
        alerts: 통합 심각도와 형상이 결정된 경보 목록
        boundaries: 경계 참조 데이터

    Returns:
        경계 ID -> 최대 통합 심각도
    """
    prepared_alerts = _prepare_alerts(alerts)
    boundaries = list(boundaries or [])
    if not prepared_alerts or not boundaries:
        return {}

    result: MatchResult = {}
    skipped = 0
    with metrics.match_seconds.time():
        for boundary in boundaries:
            prepared = _prepare_boundary(boundary)
            if prepared is None:
                skipped += 1
                continue
            highest = None
            for alert, alert_bbox in prepared_alerts:
                if not _contains(prepared, alert, alert_bbox):
                    continue
                if highest is None or alert.unified_severity > highest:
                    highest = alert.unified_severity
            if highest is not None:
                result[boundary.id] = highest

    if skipped:
        log.debug(f"형상/대표점 없는 경계 {skipped}개 건너뜀")
    log.debug(f"매칭 완료: 경보 {len(prepared_alerts)}개, 경계 {len(boundaries)}개, 일치 {len(result)}개")
    return result


def alerts_for_boundary(alerts: Iterable[Alert], boundary: Boundary) -> List[Alert]:
    """
    경계의 대표점을 포함하는 경보 목록 (입력 순서 유지)

    대표점만 필요하므로 형상 없이 대표점만 있는 경계도 조회됩니다.
    """
    point = boundary.point
    if point is None:
        return []
    return [
        alert for alert, bbox in _prepare_alerts(alerts)
        if point_in_bbox(point, bbox) and point_in_geometry(point, alert.geometry)
    ]
