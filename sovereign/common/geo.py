"""
Geographic utilities for Sovereign Skies.

This module provides the planar geometry primitives used by the
geometry resolver and the spatial matcher: bounding boxes,
ray-casting point-in-polygon tests and ring helpers.

Coordinates are GeoJSON order (lon, lat). Polygon holes are not
subtracted and antimeridian-spanning polygons are not handled.
"""

import math
from typing import Iterable, List, Optional, Sequence, Tuple

Point = Tuple[float, float]
BBox = Tuple[float, float, float, float]  # min_lon, min_lat, max_lon, max_lat


def _iter_positions(coords) -> Iterable[Sequence[float]]:
    if not coords:
        return
    if isinstance(coords[0], (int, float)):
        yield coords
        return
    for child in coords:
        yield from _iter_positions(child)


def bounding_box(coords) -> Optional[BBox]:
    """
    임의 깊이의 좌표 배열에 대한 경계 상자를 계산합니다.

    Args:
        coords: Polygon / MultiPolygon / 링 좌표

    Returns:
        (min_lon, min_lat, max_lon, max_lat), 좌표가 없으면 None
    """
    min_lon = min_lat = math.inf
    max_lon = max_lat = -math.inf
    found = False
    for pos in _iter_positions(coords):
        x, y = pos[0], pos[1]
        min_lon = min(min_lon, x)
        min_lat = min(min_lat, y)
        max_lon = max(max_lon, x)
        max_lat = max(max_lat, y)
        found = True
    if not found:
        return None
    return (min_lon, min_lat, max_lon, max_lat)


def bboxes_overlap(a: Optional[BBox], b: Optional[BBox]) -> bool:
    """두 경계 상자가 겹치는지 확인합니다 (경계선 접촉 포함)."""
    if a is None or b is None:
        return False
    return not (a[2] < b[0] or a[0] > b[2] or a[3] < b[1] or a[1] > b[3])


def point_in_bbox(point: Point, bbox: Optional[BBox]) -> bool:
    """점이 경계 상자 안(경계선 포함)에 있는지 확인합니다."""
    if bbox is None:
        return False
    x, y = point
    return bbox[0] <= x <= bbox[2] and bbox[1] <= y <= bbox[3]


def point_in_ring(point: Point, ring: Sequence[Sequence[float]]) -> bool:
    """
    점이 링 내부에 있는지 Ray casting 알고리즘으로 확인합니다.

    Args:
        point: 확인할 점 (경도, 위도)
        ring: 링의 꼭짓점들 [[경도, 위도], ...]

    Returns:
        점이 링 내부에 있으면 True
    """
    if len(ring) < 3:
        return False

    x, y = point
    if math.isnan(x) or math.isnan(y):
        return False

    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if (yi > y) != (yj > y):
            if x < (xj - xi) * (y - yi) / (yj - yi) + xi:
                inside = not inside
        j = i
    return inside


def point_in_polygon(point: Point, polygon: Sequence) -> bool:
    """Polygon 좌표(링 배열)의 외곽 링에 대해서만 검사합니다."""
    if not polygon:
        return False
    return point_in_ring(point, polygon[0])


def point_in_multipolygon(point: Point, multipolygon: Sequence) -> bool:
    """어느 한 Polygon 의 외곽 링 안에 있으면 True"""
    return any(point_in_polygon(point, polygon) for polygon in multipolygon or [])


def point_in_geometry(point: Point, geometry) -> bool:
    """Geometry 모델(또는 GeoJSON dict)에 대한 점 포함 검사"""
    if geometry is None:
        return False
    if isinstance(geometry, dict):
        gtype, coords = geometry.get("type"), geometry.get("coordinates")
    else:
        gtype, coords = geometry.type, geometry.coordinates
    if gtype == "Polygon":
        return point_in_polygon(point, coords)
    if gtype == "MultiPolygon":
        return point_in_multipolygon(point, coords)
    return False


def ring_centroid(ring: Sequence[Sequence[float]]) -> Optional[Point]:
    """꼭짓점 평균으로 링의 중심을 계산합니다 (닫힘 중복점 제외)."""
    if not ring:
        return None
    points = list(ring)
    if len(points) > 1 and list(points[0]) == list(points[-1]):
        points = points[:-1]
    n = len(points)
    return (sum(p[0] for p in points) / n, sum(p[1] for p in points) / n)


def close_ring(ring: List[List[float]]) -> List[List[float]]:
    """첫 점과 마지막 점이 다르면 첫 점을 덧붙여 링을 닫습니다."""
    ring = [list(p) for p in ring]
    if ring and ring[0] != ring[-1]:
        ring.append(list(ring[0]))
    return ring


def bbox_polygon(bbox: BBox) -> List[List[List[float]]]:
    """경계 상자를 닫힌 Polygon 좌표로 변환합니다."""
    min_lon, min_lat, max_lon, max_lat = bbox
    return [[
        [min_lon, min_lat],
        [max_lon, min_lat],
        [max_lon, max_lat],
        [min_lon, max_lat],
        [min_lon, min_lat],
    ]]


def validate_coordinates(lat: float, lon: float) -> bool:
    """
    좌표가 유효한지 확인합니다.

    Args:
        lat: 위도
        lon: 경도

    Returns:
        좌표가 유효하면 True
    """
    try:
        return -90 <= lat <= 90 and -180 <= lon <= 180
    except TypeError:
        return False
