"""
Reference data loading for Sovereign Skies.

Zone tables (zone id -> geometry) and boundary sets are static GeoJSON
FeatureCollections loaded once per process. The collection shape is
checked with jsonschema; individual bad features are skipped.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from jsonschema import validate
from jsonschema.exceptions import ValidationError

from sovereign.common.safe_parse import safe_parse_coordinates, safe_process_batch
from sovereign.core.errors import ParseError
from sovereign.core.geo_resolver import geometry_from_geojson
from sovereign.core.models import Boundary, Geometry
from sovereign.observability.logging_setup import get_logger

log = get_logger("sovereign.reference")

SCHEMA = json.loads((Path(__file__).parent / "feature_collection_schema.json").read_text(encoding="utf-8"))

PathLike = Union[str, Path]


def read_feature_collection(path: PathLike) -> Dict[str, Any]:
    """
    GeoJSON FeatureCollection 파일을 읽고 스키마를 검사합니다.

    Raises:
        ParseError: 파일이 JSON 이 아니거나 스키마에 맞지 않는 경우
        OSError: 파일을 읽을 수 없는 경우
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except ValueError as e:
        raise ParseError(f"{path}: invalid JSON: {e}")
    return check_feature_collection(data, source=str(path))


def check_feature_collection(data: Any, source: str = "<memory>") -> Dict[str, Any]:
    try:
        validate(instance=data, schema=SCHEMA)
    except ValidationError as e:
        log.error(f"참조 데이터 스키마 검증 실패 {source}: {e.message}")
        raise ParseError(f"{source}: not a FeatureCollection: {e.message}")
    return data


def _feature_id(feature: Mapping[str, Any], property_name: str) -> Optional[str]:
    props = feature.get("properties") or {}
    value = props.get(property_name)
    if value is None:
        value = feature.get("id")
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def zone_table_from_geojson(data: Any, id_property: str = "id") -> Dict[str, Geometry]:
    """FeatureCollection -> 존 ID(대문자) -> 형상"""
    collection = check_feature_collection(data)

    def to_entry(feature):
        zone_id = _feature_id(feature, id_property)
        if zone_id is None:
            raise ParseError("zone feature has no id")
        geometry = geometry_from_geojson(feature.get("geometry"))
        if geometry is None:
            raise ParseError(f"zone {zone_id} has no usable geometry")
        return zone_id.upper(), geometry

    entries = safe_process_batch(collection["features"], to_entry, context="reference.zones")
    return dict(entries)


def boundaries_from_geojson(data: Any,
                            id_property: str = "GEOID",
                            lat_property: str = "INTPTLAT",
                            lon_property: str = "INTPTLON",
                            name_property: str = "NAME",
                            jurisdiction_property: str = "STATE") -> List[Boundary]:
    """
    FeatureCollection -> 경계 목록

    대표점은 lat/lon 속성에서 읽고, 범위를 벗어나면 형상에서 계산되도록
    비워 둡니다.
    """
    collection = check_feature_collection(data)

    def to_boundary(feature):
        boundary_id = _feature_id(feature, id_property)
        if boundary_id is None:
            raise ParseError("boundary feature has no id")
        props = feature.get("properties") or {}
        point = safe_parse_coordinates(props.get(lat_property), props.get(lon_property))
        jurisdiction = props.get(jurisdiction_property)
        return Boundary(
            id=boundary_id,
            name=props.get(name_property),
            jurisdiction=str(jurisdiction).upper() if jurisdiction else None,
            geometry=geometry_from_geojson(feature.get("geometry")),
            representative_point=point,
        )

    return list(safe_process_batch(collection["features"], to_boundary, context="reference.boundaries"))


def load_zone_table(path: PathLike, id_property: str = "id") -> Dict[str, Geometry]:
    """존 테이블 파일을 읽습니다."""
    table = zone_table_from_geojson(read_feature_collection(path), id_property)
    log.info(f"존 테이블 로드: {len(table)}개 ({path})")
    return table


def load_boundaries(path: PathLike,
                    id_property: str = "GEOID",
                    lat_property: str = "INTPTLAT",
                    lon_property: str = "INTPTLON",
                    name_property: str = "NAME",
                    jurisdiction_property: str = "STATE") -> List[Boundary]:
    """경계 참조 파일을 읽습니다."""
    boundaries = boundaries_from_geojson(
        read_feature_collection(path),
        id_property=id_property,
        lat_property=lat_property,
        lon_property=lon_property,
        name_property=name_property,
        jurisdiction_property=jurisdiction_property,
    )
    without_geometry = sum(1 for b in boundaries if b.geometry is None)
    log.info(f"경계 로드: {len(boundaries)}개, 형상 없음 {without_geometry}개 ({path})")
    return boundaries
