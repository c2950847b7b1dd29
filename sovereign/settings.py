# sovereign/settings.py
from __future__ import annotations
from typing import Dict, List
from pydantic import BaseModel, Field

class NWSFeed(BaseModel):
    enabled: bool = True
    base_url: str = "https://api.weather.gov"
    areas: List[str] = Field(default_factory=lambda: ["WA", "OR", "ID"])
    user_agent: str = "SovereignSkies/1.0 (tribal-emergency-alerts)"
    fetch_zone_geometry: bool = True
    max_zone_fetch: int = 3
    concurrency: int = 4

class ECCCFeed(BaseModel):
    enabled: bool = True
    base_url: str = "https://dd.weather.gc.ca/alerts/cap"
    stations: Dict[str, str] = Field(default_factory=lambda: {"BC": "CWVR", "AB": "CWNT"})
    hours_back: int = 3
    max_files_per_station: int = 10
    language: str = "en-CA"
    concurrency: int = 5

class Reliability(BaseModel):
    fetch_timeout_sec: float = 10.0
    fetch_max_retries: int = 3
    backoff_initial_sec: float = 1.0
    backoff_max_sec: float = 30.0
    backoff_factor: float = 2.0
    jitter_ratio: float = 0.3
    breaker_failure_threshold: int = 5
    breaker_reset_timeout_sec: float = 60.0
    poll_timeout_sec: float | None = 120.0   # 주기 전체 마감 (0 이면 없음)

class Reference(BaseModel):
    zones_path: str | None = None
    zone_id_property: str = "id"
    boundaries_path: str = "/data/boundaries.geojson"
    boundary_id_property: str = "GEOID"
    boundary_lat_property: str = "INTPTLAT"
    boundary_lon_property: str = "INTPTLON"
    boundary_name_property: str = "NAME"
    boundary_jurisdiction_property: str = "STATE"

class Polling(BaseModel):
    interval_sec: float = 300.0
    active_only: bool = True

class Observability(BaseModel):
    http_port: int = 8099
    metrics_enabled: bool = True
    service_name: str = "Sovereign Skies"
    build_version: str = "0.1.0"
    build_date: str = "2025-01-01"
    log_level: str = "INFO"

class Settings(BaseModel):
    # 하위 섹션 (기본값/팩토리로 누락 방지)
    nws: NWSFeed = Field(default_factory=NWSFeed)
    eccc: ECCCFeed = Field(default_factory=ECCCFeed)
    reliability: Reliability = Field(default_factory=Reliability)
    reference: Reference = Field(default_factory=Reference)
    polling: Polling = Field(default_factory=Polling)
    observability: Observability = Field(default_factory=Observability)
