"""
Feed record normalization for Sovereign Skies.

NWS: GeoJSON Feature (api.weather.gov/alerts/active) -> Alert
ECCC: CAP-CP XML document (MSC Datamart) -> Alert

Severity and geometry resolution happen later in the poll pipeline;
this module only maps source fields onto the Alert model.
"""

from datetime import datetime
from typing import Any, List, Mapping, Optional

import xml.etree.ElementTree as ET

from sovereign.common.geo import close_ring, validate_coordinates
from sovereign.common.safe_parse import (
    BatchResult,
    safe_get,
    safe_parse_xml,
    safe_process_batch,
    safe_xml_findall,
    safe_xml_text,
)
from sovereign.common.timeutil import is_expired, parse_alert_time
from sovereign.core.errors import GeometryValidationError, ParseError
from sovereign.core.geo_resolver import geometry_from_geojson
from sovereign.core.models import Alert, Geometry, Source
from sovereign.observability import metrics
from sovereign.observability.logging_setup import get_logger

log = get_logger("sovereign.normalize")

ALERT_TYPE_PARAM = "Alert_Type"
CLC_GEOCODE = "CLC"
DEFAULT_LANGUAGE = "en-CA"

# 이벤트 이름으로 경보 유형 추정 (영어/프랑스어)
_TYPE_KEYWORDS = (
    ("warning", "warning"),
    ("avertissement", "warning"),
    ("watch", "watch"),
    ("veille", "watch"),
    ("advisory", "advisory"),
    ("avis", "advisory"),
    ("statement", "statement"),
    ("bulletin", "statement"),
)


def _text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


# ---- NWS ----

def _jurisdiction_from_ugc(codes: List[str]) -> Optional[str]:
    for code in codes:
        if isinstance(code, str) and len(code) >= 2 and code[:2].isalpha():
            return code[:2].upper()
    return None


def nws_feature_to_alert(feature: Any) -> Alert:
    """
    NWS GeoJSON Feature 를 Alert 로 변환합니다.

    Raises:
        ParseError: properties 가 없거나 ID 가 없는 경우
    """
    if not isinstance(feature, Mapping):
        raise ParseError(f"feature is not an object: {type(feature).__name__}")
    props = feature.get("properties")
    if not isinstance(props, Mapping):
        raise ParseError("feature has no properties")

    alert_id = _text(props.get("id")) or _text(feature.get("id"))
    if not alert_id:
        raise ParseError("feature has no id")

    ugc_raw = safe_get(props, "geocode.UGC", [])
    ugc = [c for c in ugc_raw if isinstance(c, str)] if isinstance(ugc_raw, list) else []
    zone_urls = [u for u in props.get("affectedZones") or [] if isinstance(u, str)]
    link = _text(props.get("@id")) or _text(feature.get("id"))

    return Alert(
        id=alert_id,
        source=Source.NWS,
        event=_text(props.get("event")) or "",
        category=_text(props.get("category")),
        headline=_text(props.get("headline")),
        description=_text(props.get("description")),
        instruction=_text(props.get("instruction")),
        area_desc=_text(props.get("areaDesc")),
        sender_name=_text(props.get("senderName")),
        link=link if link and link.startswith("http") else None,
        jurisdiction=_jurisdiction_from_ugc(ugc),
        severity=_text(props.get("severity")),
        urgency=_text(props.get("urgency")),
        certainty=_text(props.get("certainty")),
        status=_text(props.get("status")),
        msg_type=_text(props.get("messageType")),
        zone_ids=[c.upper() for c in ugc],
        zone_urls=zone_urls,
        sent=parse_alert_time(props.get("sent")),
        effective=parse_alert_time(props.get("effective")),
        onset=parse_alert_time(props.get("onset")),
        expires=parse_alert_time(props.get("expires")),
        ends=parse_alert_time(props.get("ends")),
        geometry=geometry_from_geojson(feature.get("geometry")),
    )


def dedupe_alerts(alerts: List[Alert]) -> List[Alert]:
    """ID 기준 중복 제거 (처음 나온 항목 유지)"""
    seen = set()
    unique = []
    for alert in alerts:
        if alert.id in seen:
            continue
        seen.add(alert.id)
        unique.append(alert)
    return unique


def parse_nws_payload(payload: Any) -> BatchResult:
    """
    NWS 응답(FeatureCollection 또는 Feature 목록)을 파싱합니다.

    잘못된 Feature 는 건너뛰고, ID 가 같은 경보는 하나만 남깁니다.
    """
    features = payload.get("features") if isinstance(payload, Mapping) else payload
    parsed = safe_process_batch(features, nws_feature_to_alert, context="nws.parse")
    unique = dedupe_alerts(parsed)
    if len(unique) != len(parsed):
        log.debug(f"NWS 중복 경보 {len(parsed) - len(unique)}건 제거")
    metrics.alerts_received.labels(source=Source.NWS.value).inc(len(unique))
    return BatchResult(unique, parsed.failed)


# ---- ECCC CAP ----

def parse_cap_polygon(text: Optional[str]) -> List[List[float]]:
    """
    CAP polygon ("위도,경도 위도,경도 ...") 을 닫힌 [경도, 위도] 링으로 변환합니다.

    Raises:
        GeometryValidationError: 형식이 잘못되었거나 점이 부족한 경우
    """
    if not text or not isinstance(text, str):
        raise GeometryValidationError("empty CAP polygon")
    ring = []
    for pair in text.split():
        parts = pair.split(",")
        if len(parts) != 2:
            raise GeometryValidationError(f"bad CAP coordinate pair: {pair!r}")
        try:
            lat, lon = float(parts[0]), float(parts[1])
        except ValueError:
            raise GeometryValidationError(f"non-numeric CAP coordinate pair: {pair!r}")
        if not validate_coordinates(lat, lon):
            raise GeometryValidationError(f"CAP coordinate out of range: {pair!r}")
        ring.append([lon, lat])
    ring = close_ring(ring)
    if len(ring) < 4:
        raise GeometryValidationError(f"CAP polygon needs at least 3 distinct points, got {len(ring)}")
    return ring


def _select_info(info_elements: List[ET.Element], language: str) -> Optional[ET.Element]:
    if not info_elements:
        return None
    preferred = [language, language.split("-")[0]] if language else []
    preferred.append("en")
    for lang in preferred:
        for info in info_elements:
            value = safe_xml_text(info, "language").lower()
            if value and value.startswith(lang.lower()):
                return info
    return info_elements[0]


def _alert_type(info: ET.Element, event: str) -> Optional[str]:
    for param in safe_xml_findall(info, "parameter"):
        name = safe_xml_text(param, "valueName")
        if name.endswith(ALERT_TYPE_PARAM):
            value = safe_xml_text(param, "value").lower()
            if value:
                return value
    lowered = event.lower()
    for keyword, alert_type in _TYPE_KEYWORDS:
        if keyword in lowered:
            return alert_type
    return None


def _cap_geometry(info: ET.Element, identifier: str) -> Optional[Geometry]:
    rings = []
    for polygon in safe_xml_findall(info, "area/polygon"):
        try:
            rings.append(parse_cap_polygon(polygon.text))
        except GeometryValidationError as e:
            log.warning(f"CAP polygon 무시 ({identifier}): {e}")
    if not rings:
        return None
    if len(rings) == 1:
        return Geometry(type="Polygon", coordinates=[rings[0]])
    return Geometry(type="MultiPolygon", coordinates=[[ring] for ring in rings])


def _cap_zone_ids(info: ET.Element) -> List[str]:
    zone_ids = []
    for geocode in safe_xml_findall(info, "area/geocode"):
        name = safe_xml_text(geocode, "valueName")
        value = safe_xml_text(geocode, "value")
        if value and name.upper().endswith(CLC_GEOCODE) and value.upper() not in zone_ids:
            zone_ids.append(value.upper())
    return zone_ids


def _cap_area_desc(info: ET.Element) -> Optional[str]:
    descs = []
    for area in safe_xml_findall(info, "area"):
        desc = safe_xml_text(area, "areaDesc")
        if desc and desc not in descs:
            descs.append(desc)
    return "; ".join(descs) or None


def cap_to_alert(xml_text: Any,
                 jurisdiction: Optional[str] = None,
                 language: str = DEFAULT_LANGUAGE,
                 now: Optional[datetime] = None) -> Optional[Alert]:
    """
    ECCC CAP 문서를 Alert 로 변환합니다.

    info 블록은 언어 선호(en-CA -> en -> 첫 번째)에 따라 하나만 고릅니다.
    취소(Cancel), 종료(ended), 지난(Past), 이미 만료된 경보는 None 을 반환합니다.

    Args:
        xml_text: CAP XML 문서
        jurisdiction: 관할 코드 (관측소의 주, 예: BC)
        language: 선호 언어
        now: 만료 판단 기준 시각 (기본: 현재)

    Raises:
        ParseError: XML 이 잘못되었거나 식별자/info 가 없는 경우
    """
    root = safe_parse_xml(xml_text, context="eccc.cap")
    if root is None:
        raise ParseError("malformed CAP document")
    if root.tag != "alert":
        alert_el = root.find(".//alert")
        if alert_el is None:
            raise ParseError(f"unexpected CAP root element: {root.tag}")
        root = alert_el

    identifier = safe_xml_text(root, "identifier")
    if not identifier:
        raise ParseError("CAP alert has no identifier")

    msg_type = safe_xml_text(root, "msgType") or None
    if msg_type and msg_type.lower() == "cancel":
        log.debug(f"취소 메시지 제외: {identifier}")
        return None

    info = _select_info(safe_xml_findall(root, "info"), language)
    if info is None:
        raise ParseError(f"CAP alert {identifier} has no info block")

    event = safe_xml_text(info, "event")
    alert_type = _alert_type(info, event)
    urgency = safe_xml_text(info, "urgency") or None
    expires = parse_alert_time(safe_xml_text(info, "expires"))

    if alert_type == "ended":
        log.debug(f"종료된 경보 제외: {identifier}")
        return None
    if urgency and urgency.lower() == "past":
        log.debug(f"지난 경보 제외: {identifier}")
        return None
    if is_expired(expires, now):
        log.debug(f"만료된 경보 제외: {identifier}")
        return None

    return Alert(
        id=identifier,
        source=Source.ECCC,
        event=event,
        category=safe_xml_text(info, "category") or None,
        headline=safe_xml_text(info, "headline") or None,
        description=safe_xml_text(info, "description") or None,
        instruction=safe_xml_text(info, "instruction") or None,
        area_desc=_cap_area_desc(info),
        sender_name=safe_xml_text(info, "senderName") or None,
        link=safe_xml_text(info, "web") or None,
        jurisdiction=jurisdiction.upper() if jurisdiction else None,
        severity=safe_xml_text(info, "severity") or None,
        urgency=urgency,
        certainty=safe_xml_text(info, "certainty") or None,
        alert_type=alert_type,
        status=safe_xml_text(root, "status") or None,
        msg_type=msg_type,
        zone_ids=_cap_zone_ids(info),
        sent=parse_alert_time(safe_xml_text(root, "sent")),
        effective=parse_alert_time(safe_xml_text(info, "effective")),
        onset=parse_alert_time(safe_xml_text(info, "onset")),
        expires=expires,
        geometry=_cap_geometry(info, identifier),
    )
