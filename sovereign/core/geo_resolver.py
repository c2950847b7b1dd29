"""
Geometry resolution for alerts that arrive without a polygon.

Priority:
    1. the alert's own geometry
    2. zone ids (NWS UGC / ECCC CLC) looked up in the zone table
    3. named-region rules on the area description, then the
       jurisdiction-wide default box
    4. None

The region boxes are deliberately coarse; the matcher's bbox
pre-filter keeps over-broad boxes cheap.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from sovereign.common.geo import BBox, bbox_polygon, close_ring
from sovereign.common.safe_parse import safe_parse_number
from sovereign.core.errors import GeometryValidationError
from sovereign.core.models import Alert, Geometry
from sovereign.observability.logging_setup import get_logger

log = get_logger("sovereign.geo")

ZoneTable = Mapping[str, Geometry]


@dataclass(frozen=True)
class RegionRule:
    """영역 설명 -> 경계 상자 규칙 (목록 순서가 우선순위)"""
    name: str
    predicate: Callable[[str], bool]
    geometry: Geometry

    def matches(self, area_desc: str) -> bool:
        return self.predicate(area_desc)


def _box(min_lon: float, min_lat: float, max_lon: float, max_lat: float) -> Geometry:
    bbox: BBox = (min_lon, min_lat, max_lon, max_lat)
    return Geometry(type="Polygon", coordinates=bbox_polygon(bbox))


def area_contains(*names: str) -> Callable[[str], bool]:
    """대소문자 무시 부분 문자열 조건을 만듭니다."""
    needles = tuple(n.lower() for n in names)

    def predicate(area_desc: str) -> bool:
        text = area_desc.lower()
        return any(n in text for n in needles)

    return predicate


# 구체적인 지역이 먼저, 넓은 지역이 나중
DEFAULT_REGION_RULES: List[RegionRule] = [
    RegionRule("Greater Vancouver", area_contains("greater vancouver", "metro vancouver"),
               _box(-123.3, 49.0, -122.5, 49.45)),
    RegionRule("Greater Victoria", area_contains("greater victoria"),
               _box(-123.7, 48.3, -123.2, 48.7)),
    RegionRule("Fraser Valley", area_contains("fraser valley", "fraser canyon"),
               _box(-122.6, 49.0, -121.3, 49.6)),
    RegionRule("Howe Sound", area_contains("howe sound", "sunshine coast", "whistler"),
               _box(-124.2, 49.3, -122.7, 50.2)),
    RegionRule("Vancouver Island", area_contains("vancouver island"),
               _box(-128.5, 48.3, -123.2, 50.9)),
    RegionRule("Okanagan", area_contains("okanagan"),
               _box(-120.2, 49.0, -118.9, 50.9)),
    RegionRule("Kootenay", area_contains("kootenay"),
               _box(-118.5, 49.0, -114.5, 51.5)),
    RegionRule("Puget Sound", area_contains("puget sound", "seattle", "tacoma"),
               _box(-123.2, 47.0, -121.9, 48.5)),
    RegionRule("Olympic Peninsula", area_contains("olympic"),
               _box(-124.8, 47.3, -123.0, 48.4)),
    RegionRule("Columbia Gorge", area_contains("columbia gorge", "columbia river gorge"),
               _box(-122.4, 45.5, -120.9, 45.8)),
    RegionRule("Willamette Valley", area_contains("willamette"),
               _box(-123.5, 43.9, -122.5, 45.7)),
    RegionRule("Salish Sea", area_contains("salish sea"),
               _box(-125.9, 46.7, -122.2, 49.7)),
    RegionRule("Columbia River", area_contains("columbia river", "columbia basin"),
               _box(-124.2, 45.3, -116.0, 48.8)),
    RegionRule("Rockies", area_contains("rockies", "rocky mountains"),
               _box(-118.3, 42.7, -109.7, 51.1)),
]

# 관할 전체 기본 상자
JURISDICTION_BOXES: Dict[str, Geometry] = {
    "BC": _box(-139.1, 48.2, -114.0, 60.0),
    "AB": _box(-120.0, 49.0, -110.0, 60.0),
    "YT": _box(-141.0, 60.0, -123.8, 69.7),
    "WA": _box(-124.8, 45.5, -116.9, 49.0),
    "OR": _box(-124.6, 41.99, -116.5, 46.3),
    "ID": _box(-117.25, 42.0, -111.0, 49.0),
}


def _clean_ring(ring: Any) -> Optional[List[List[float]]]:
    if not isinstance(ring, (list, tuple)):
        raise GeometryValidationError(f"ring is not an array: {type(ring).__name__}")
    points = []
    for pos in ring:
        if not isinstance(pos, (list, tuple)) or len(pos) < 2:
            raise GeometryValidationError(f"bad position: {pos!r}")
        lon = safe_parse_number(pos[0], None)
        lat = safe_parse_number(pos[1], None)
        if lon is None or lat is None:
            raise GeometryValidationError(f"non-numeric position: {pos!r}")
        points.append([lon, lat])
    points = close_ring(points)
    # 4점 미만 링은 버림
    return points if len(points) >= 4 else None


def _clean_polygon(polygon: Any) -> Optional[List[List[List[float]]]]:
    if not isinstance(polygon, (list, tuple)) or not polygon:
        return None
    outer = _clean_ring(polygon[0])
    if outer is None:
        return None
    holes = [r for r in (_clean_ring(h) for h in polygon[1:]) if r is not None]
    return [outer] + holes


def _polygons_of(raw: Mapping[str, Any]) -> List[list]:
    gtype = raw.get("type")
    coords = raw.get("coordinates")
    if gtype == "Polygon":
        cleaned = _clean_polygon(coords)
        return [cleaned] if cleaned else []
    if gtype == "MultiPolygon":
        if not isinstance(coords, (list, tuple)):
            raise GeometryValidationError("MultiPolygon coordinates are not an array")
        return [p for p in (_clean_polygon(c) for c in coords) if p]
    if gtype == "GeometryCollection":
        polygons: List[list] = []
        for member in raw.get("geometries") or []:
            if isinstance(member, Mapping):
                polygons.extend(_polygons_of(member))
        return polygons
    return []


def geometry_from_geojson(raw: Any) -> Optional[Geometry]:
    """
    원시 GeoJSON 을 유효한 Geometry 로 변환합니다.

    링은 닫고, 4점 미만 링은 버립니다. Feature 는 geometry 를 꺼내 쓰고,
    GeometryCollection 은 포함된 폴리곤을 합칩니다.

    Returns:
        Geometry, 비었거나 형식이 잘못되면 None
    """
    if raw is None:
        return None
    if isinstance(raw, Geometry):
        return raw
    if not isinstance(raw, Mapping):
        log.warning(f"형상이 객체가 아님: {type(raw).__name__}")
        return None
    if raw.get("type") == "Feature":
        return geometry_from_geojson(raw.get("geometry"))

    try:
        polygons = _polygons_of(raw)
        if not polygons:
            if raw.get("type") in ("Polygon", "MultiPolygon", "GeometryCollection"):
                raise GeometryValidationError(f"empty {raw.get('type')}")
            log.debug(f"면이 아닌 형상 무시: {raw.get('type')}")
            return None
        if raw.get("type") == "Polygon":
            return Geometry(type="Polygon", coordinates=polygons[0])
        if len(polygons) == 1 and raw.get("type") == "GeometryCollection":
            return Geometry(type="Polygon", coordinates=polygons[0])
        return Geometry(type="MultiPolygon", coordinates=polygons)
    except ValueError as e:
        log.warning(f"형상 검증 실패: {e}")
        return None


def union_geometries(geometries: Sequence[Geometry]) -> Optional[Geometry]:
    """하나면 그대로, 여럿이면 모든 폴리곤을 펼친 MultiPolygon"""
    if not geometries:
        return None
    if len(geometries) == 1:
        return geometries[0]
    polygons: List[list] = []
    for geometry in geometries:
        polygons.extend(geometry.polygons())
    return Geometry(type="MultiPolygon", coordinates=polygons)


def resolve_from_zones(zone_ids: Iterable[str], zone_table: Optional[ZoneTable]) -> Optional[Geometry]:
    """
    존 ID 를 존 테이블에서 찾아 형상을 만듭니다 (대소문자 무시).

    테이블 키는 대문자로 정규화되어 있다고 가정합니다.
    """
    if not zone_table:
        return None
    found: List[Geometry] = []
    seen = set()
    for zone_id in zone_ids or []:
        if not isinstance(zone_id, str):
            continue
        key = zone_id.strip().upper()
        if key in seen:
            continue
        seen.add(key)
        geometry = zone_table.get(key)
        if geometry is not None:
            found.append(geometry)
    return union_geometries(found)


def resolve_from_area_desc(area_desc: Optional[str],
                           jurisdiction: Optional[str] = None,
                           region_rules: Sequence[RegionRule] = DEFAULT_REGION_RULES,
                           jurisdiction_boxes: Mapping[str, Geometry] = JURISDICTION_BOXES) -> Optional[Geometry]:
    """영역 설명으로 지역 상자를 고르고, 없으면 관할 기본 상자를 씁니다."""
    if not area_desc or not isinstance(area_desc, str):
        return None
    for rule in region_rules:
        if rule.matches(area_desc):
            log.debug(f"지역 규칙 적용: {rule.name}")
            return rule.geometry
    if jurisdiction:
        return jurisdiction_boxes.get(jurisdiction.upper())
    return None


def resolve_alert_geometry(alert: Alert,
                           zone_table: Optional[ZoneTable] = None,
                           region_rules: Sequence[RegionRule] = DEFAULT_REGION_RULES,
                           jurisdiction_boxes: Mapping[str, Geometry] = JURISDICTION_BOXES) -> Optional[Geometry]:
    """
    경보의 형상을 우선순위에 따라 결정합니다.

    Args:
        alert: 대상 경보
        zone_table: 존 ID -> 형상
        region_rules: 순서가 있는 지역 규칙 목록
        jurisdiction_boxes: 관할 코드 -> 기본 상자

    Returns:
        결정된 형상 또는 None
    """
    if alert.geometry is not None:
        return alert.geometry

    geometry = resolve_from_zones(alert.zone_ids, zone_table)
    if geometry is not None:
        return geometry

    return resolve_from_area_desc(alert.area_desc, alert.jurisdiction,
                                  region_rules, jurisdiction_boxes)
