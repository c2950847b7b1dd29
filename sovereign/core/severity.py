"""
Severity normalization for Sovereign Skies.

NWS alerts carry CAP severity/urgency/certainty; ECCC alerts carry an
alert type (warning/watch/advisory/statement/ended) plus event text.
Both are mapped onto UnifiedSeverity so alerts sort consistently
across the border.
"""

import functools
import math
from typing import Iterable, List, Optional

from sovereign.core.models import Alert, Source, UnifiedSeverity

# NWS 기본 심각도
NWS_SEVERITY_MAP = {
    "Extreme": 4,
    "Severe": 3,
    "Moderate": 2,
    "Minor": 1,
    "Unknown": 0,
}

NWS_URGENCY_BOOST = {
    "Immediate": 1.0,
    "Expected": 0.5,
    "Future": 0.0,
    "Past": -1.0,
    "Unknown": 0.0,
}

NWS_CERTAINTY_BOOST = {
    "Observed": 0.5,
    "Likely": 0.25,
    "Possible": 0.0,
    "Unlikely": -0.5,
    "Unknown": 0.0,
}

# ECCC 경보 유형별 기본 심각도
ECCC_TYPE_MAP = {
    "warning": 3,
    "watch": 2,
    "advisory": 1,
    "statement": 0,
    "ended": 0,
}

# warning 과 함께 오면 CRITICAL
ECCC_CRITICAL_EVENTS = (
    "tornado",
    "tsunami",
    "hurricane",
    "typhoon",
    "extreme cold",
    "extreme heat",
    "avalanche",
)

# watch 라도 HIGH
ECCC_HIGH_WATCH_EVENTS = (
    "tornado",
    "tsunami",
    "severe thunderstorm",
)

# 두 기관 공통: 이벤트/카테고리에 포함되면 무조건 CRITICAL
OVERRIDE_KEYWORDS = (
    "tsunami",
    "tornado warning",
    "earthquake",
    "extreme wind warning",
)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _has_override(*texts: Optional[str]) -> bool:
    haystack = " ".join(t.lower() for t in texts if isinstance(t, str))
    return any(keyword in haystack for keyword in OVERRIDE_KEYWORDS)


def map_nws_severity(severity: Optional[str],
                     urgency: Optional[str] = "Unknown",
                     certainty: Optional[str] = "Unknown",
                     event: Optional[str] = None,
                     category: Optional[str] = None) -> UnifiedSeverity:
    """
    NWS 심각도를 통합 심각도로 변환합니다.

    level = clamp(round(base + urgency + certainty), 0, 4)
    이벤트 키워드 재정의가 최종 결과를 우선합니다.

    Args:
        severity: Extreme / Severe / Moderate / Minor / Unknown
        urgency: Immediate / Expected / Future / Past / Unknown
        certainty: Observed / Likely / Possible / Unlikely / Unknown
        event: 이벤트 이름 (재정의 검사용)
        category: 카테고리 (재정의 검사용)

    Returns:
        통합 심각도
    """
    if _has_override(event, category):
        return UnifiedSeverity.CRITICAL
    base = NWS_SEVERITY_MAP.get(severity, 0)
    boost = NWS_URGENCY_BOOST.get(urgency, 0.0) + NWS_CERTAINTY_BOOST.get(certainty, 0.0)
    return UnifiedSeverity.from_level(_round_half_up(base + boost))


def map_eccc_severity(alert_type: Optional[str],
                      event: Optional[str] = "",
                      category: Optional[str] = None) -> UnifiedSeverity:
    """
    ECCC 경보 유형과 이벤트 텍스트를 통합 심각도로 변환합니다.

    CAP urgency/certainty 는 보지 않습니다 (유형에 이미 반영됨).
    """
    if _has_override(event, category):
        return UnifiedSeverity.CRITICAL

    normalized_type = (alert_type or "statement").strip().lower()
    normalized_event = (event or "").lower()
    level = ECCC_TYPE_MAP.get(normalized_type, 0)

    if normalized_type == "warning" and any(e in normalized_event for e in ECCC_CRITICAL_EVENTS):
        level = 4
    elif normalized_type == "watch" and any(e in normalized_event for e in ECCC_HIGH_WATCH_EVENTS):
        level = 3

    return UnifiedSeverity.from_level(level)


def unified_severity_for(alert: Alert) -> UnifiedSeverity:
    """발령 기관에 맞는 변환기를 골라 통합 심각도를 계산합니다."""
    if alert.source == Source.ECCC:
        return map_eccc_severity(alert.alert_type, alert.event, alert.category)
    return map_nws_severity(alert.severity, alert.urgency, alert.certainty,
                            alert.event, alert.category)


def apply_unified_severity(alert: Alert) -> Alert:
    """통합 심각도가 채워진 경보 사본을 반환합니다."""
    return alert.model_copy(update={"unified_severity": unified_severity_for(alert)})


def compare_severity(a: Alert, b: Alert) -> int:
    """내림차순 비교 함수 (심각도가 높은 쪽이 앞)"""
    return int(b.unified_severity) - int(a.unified_severity)


def sort_by_severity(alerts: Iterable[Alert]) -> List[Alert]:
    """심각도 내림차순 안정 정렬. 같은 심각도는 입력 순서를 유지합니다."""
    return sorted(alerts, key=functools.cmp_to_key(compare_severity))


def parse_severity_string(value: Optional[str]) -> UnifiedSeverity:
    """레거시 심각도 문자열(통합/NWS/ECCC 어휘)을 변환합니다."""
    normalized = (value or "").strip().upper()
    if normalized in ("CRITICAL", "EMERGENCY", "EXTREME"):
        return UnifiedSeverity.CRITICAL
    if normalized in ("HIGH", "WARNING", "SEVERE"):
        return UnifiedSeverity.HIGH
    if normalized in ("MODERATE", "WATCH"):
        return UnifiedSeverity.MODERATE
    if normalized in ("LOW", "ADVISORY", "MINOR"):
        return UnifiedSeverity.LOW
    return UnifiedSeverity.INFO


def severity_css_class(level) -> str:
    try:
        severity = UnifiedSeverity(int(level))
    except (TypeError, ValueError):
        return "severity-info"
    return f"severity-{severity.name.lower()}"
