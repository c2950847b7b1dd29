"""
Core domain models for Sovereign Skies.

This module defines the core domain models using Pydantic v2
for type safety and validation.
"""

from enum import Enum, IntEnum
from typing import Dict, List, Literal, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator

from sovereign.common.geo import ring_centroid, validate_coordinates


class UnifiedSeverity(IntEnum):
    """두 기관의 심각도 체계를 통합한 5단계 서열"""
    INFO = 0
    LOW = 1
    MODERATE = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def from_level(cls, level: float) -> "UnifiedSeverity":
        return cls(int(min(4, max(0, level))))

    @property
    def label(self) -> str:
        return _SEVERITY_META[self][0]

    @property
    def color(self) -> str:
        return _SEVERITY_META[self][1]

    @property
    def description(self) -> str:
        return _SEVERITY_META[self][2]


_SEVERITY_META = {
    UnifiedSeverity.CRITICAL: ("Critical", "#DC2626", "Immediate threat to life or property"),
    UnifiedSeverity.HIGH: ("High", "#EA580C", "Significant threat, take action"),
    UnifiedSeverity.MODERATE: ("Moderate", "#CA8A04", "Potential threat, be prepared"),
    UnifiedSeverity.LOW: ("Low", "#16A34A", "Minor impact expected"),
    UnifiedSeverity.INFO: ("Informational", "#2563EB", "General information, no action needed"),
}


class Source(str, Enum):
    """경보 발령 기관"""
    NWS = "NWS"
    ECCC = "ECCC"


def _check_ring(ring: list) -> None:
    if len(ring) < 4:
        raise ValueError(f"ring needs at least 4 points, got {len(ring)}")
    if list(ring[0]) != list(ring[-1]):
        raise ValueError("ring is not closed")


class Geometry(BaseModel):
    """Polygon / MultiPolygon 형상 ([경도, 위도] 순서)"""
    model_config = ConfigDict(frozen=True)

    type: Literal["Polygon", "MultiPolygon"]
    coordinates: list

    @field_validator("coordinates")
    @classmethod
    def _rings_closed(cls, coords: list, info):
        polygons = coords if info.data.get("type") == "MultiPolygon" else [coords]
        if not polygons:
            raise ValueError("empty coordinates")
        for polygon in polygons:
            if not polygon:
                raise ValueError("polygon without rings")
            for ring in polygon:
                _check_ring(ring)
        return coords

    def polygons(self) -> List[list]:
        """Polygon 좌표 배열 목록 (MultiPolygon 은 펼쳐서)"""
        if self.type == "MultiPolygon":
            return list(self.coordinates)
        return [self.coordinates]


class Alert(BaseModel):
    """정규화된 경보 모델"""
    id: str
    source: Source
    event: str = ""
    category: Optional[str] = None
    headline: Optional[str] = None
    description: Optional[str] = None
    instruction: Optional[str] = None
    area_desc: Optional[str] = None
    sender_name: Optional[str] = None
    link: Optional[str] = None
    jurisdiction: Optional[str] = None

    # 원본 심각도 어휘 (NWS / CAP)
    severity: Optional[str] = None
    urgency: Optional[str] = None
    certainty: Optional[str] = None
    # ECCC 경보 유형 (warning/watch/advisory/statement/ended)
    alert_type: Optional[str] = None

    status: Optional[str] = None
    msg_type: Optional[str] = None
    zone_ids: List[str] = Field(default_factory=list)
    zone_urls: List[str] = Field(default_factory=list)

    sent: Optional[str] = None
    effective: Optional[str] = None
    onset: Optional[str] = None
    expires: Optional[str] = None
    ends: Optional[str] = None

    geometry: Optional[Geometry] = None
    unified_severity: UnifiedSeverity = UnifiedSeverity.INFO


class Boundary(BaseModel):
    """고정 경계 참조 데이터 (부족/퍼스트 네이션 구역)"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None
    jurisdiction: Optional[str] = None
    geometry: Optional[Geometry] = None
    representative_point: Optional[Tuple[float, float]] = None

    @property
    def point(self) -> Optional[Tuple[float, float]]:
        """대표점 (경도, 위도). 제공값이 유효하지 않으면 외곽 링 중심으로 계산"""
        if self.representative_point is not None:
            lon, lat = self.representative_point
            if validate_coordinates(lat, lon):
                return (lon, lat)
        if self.geometry is None:
            return None
        return ring_centroid(self.geometry.polygons()[0][0])


# 경계 ID -> 가장 높은 통합 심각도
MatchResult = Dict[str, UnifiedSeverity]
