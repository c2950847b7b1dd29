"""
테스트 설정 및 픽스처

이 모듈은 pytest 설정과 공통 픽스처를 제공합니다.
"""

import inspect

import pytest

from sovereign.core.models import Alert, Boundary, Geometry, Source, UnifiedSeverity
from sovereign.settings import Settings


def _square(min_lon, min_lat, max_lon, max_lat):
    """닫힌 사각형 Polygon 형상"""
    return Geometry(type="Polygon", coordinates=[[
        [min_lon, min_lat],
        [max_lon, min_lat],
        [max_lon, max_lat],
        [min_lon, max_lat],
        [min_lon, min_lat],
    ]])


def _make_alert(alert_id="a1", source=Source.NWS, severity=UnifiedSeverity.INFO, geometry=None, **fields):
    return Alert(id=alert_id, source=source, unified_severity=severity, geometry=geometry, **fields)


CAP_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<alert xmlns="urn:oasis:names:tc:emergency:cap:1.2">
  <identifier>{identifier}</identifier>
  <sender>cap-pac@canada.ca</sender>
  <sent>2025-01-03T18:00:00-00:00</sent>
  <status>Actual</status>
  <msgType>{msg_type}</msgType>
  <scope>Public</scope>
  <info>
    <language>en-CA</language>
    <category>Met</category>
    <event>{event}</event>
    <urgency>{urgency}</urgency>
    <severity>Moderate</severity>
    <certainty>Likely</certainty>
    <effective>2025-01-03T18:00:00-00:00</effective>
    <expires>{expires}</expires>
    <senderName>Environment and Climate Change Canada</senderName>
    <headline>{headline}</headline>
    <description>Significant snowfall expected.</description>
    <web>https://weather.gc.ca</web>
    <parameter>
      <valueName>layer:EC-MSC-SMC:1.0:Alert_Type</valueName>
      <value>{alert_type}</value>
    </parameter>
    <area>
      <areaDesc>Greater Vancouver</areaDesc>
      <polygon>49.2,-123.2 49.3,-123.2 49.3,-123.0 49.2,-123.0 49.2,-123.2</polygon>
      <geocode>
        <valueName>layer:EC-MSC-SMC:1.0:CLC</valueName>
        <value>059150</value>
      </geocode>
    </area>
  </info>
  <info>
    <language>fr-CA</language>
    <category>Met</category>
    <event>avertissement de tempête hivernale</event>
    <urgency>{urgency}</urgency>
    <severity>Moderate</severity>
    <certainty>Likely</certainty>
    <expires>{expires}</expires>
    <headline>Avertissement de tempête hivernale en vigueur</headline>
    <parameter>
      <valueName>layer:EC-MSC-SMC:1.0:Alert_Type</valueName>
      <value>{alert_type}</value>
    </parameter>
    <area>
      <areaDesc>Grand Vancouver</areaDesc>
      <polygon>49.2,-123.2 49.3,-123.2 49.3,-123.0 49.2,-123.0 49.2,-123.2</polygon>
    </area>
  </info>
</alert>
"""


def _cap_xml(identifier="urn:oid:2.49.0.0.124.test-ec-001",
            event="winter storm warning",
            alert_type="warning",
            urgency="Expected",
            msg_type="Alert",
            expires="2099-01-04T06:00:00-00:00",
            headline="Winter Storm Warning in effect"):
    return CAP_TEMPLATE.format(identifier=identifier, event=event, alert_type=alert_type,
                               urgency=urgency, msg_type=msg_type, expires=expires,
                               headline=headline)


def _nws_feature(alert_id="urn:oid:2.49.0.1.840.0.test-1", event="Winter Storm Warning",
                severity="Severe", urgency="Expected", certainty="Likely",
                geometry=None, ugc=("WAZ558",), expires="2099-01-01T00:00:00-08:00",
                affected_zones=None):
    return {
        "id": f"https://api.weather.gov/alerts/{alert_id}",
        "type": "Feature",
        "geometry": geometry,
        "properties": {
            "@id": f"https://api.weather.gov/alerts/{alert_id}",
            "id": alert_id,
            "areaDesc": "Western Whatcom County",
            "geocode": {"SAME": ["053073"], "UGC": list(ugc)},
            "affectedZones": affected_zones if affected_zones is not None
            else [f"https://api.weather.gov/zones/forecast/{c}" for c in ugc],
            "sent": "2025-01-03T10:00:00-08:00",
            "effective": "2025-01-03T10:00:00-08:00",
            "onset": "2025-01-03T12:00:00-08:00",
            "expires": expires,
            "status": "Actual",
            "messageType": "Alert",
            "category": "Met",
            "severity": severity,
            "certainty": certainty,
            "urgency": urgency,
            "event": event,
            "senderName": "NWS Seattle WA",
            "headline": f"{event} issued",
            "description": "Heavy snow expected.",
            "instruction": "Avoid travel.",
        },
    }


@pytest.fixture
def sample_settings():
    """테스트용 설정"""
    settings = Settings()
    settings.observability.service_name = "test-service"
    settings.observability.build_version = "1.0.0"
    settings.observability.log_level = "INFO"
    settings.observability.http_port = 8080
    return settings


@pytest.fixture
def whatcom_box():
    """예제 경보 영역 [-122.8,48.7]-[-122.5,48.9]"""
    return _square(-122.8, 48.7, -122.5, 48.9)


@pytest.fixture
def boundary_t():
    """대표점 (-122.65, 48.80) 인 경계"""
    return Boundary(
        id="T",
        name="Lummi",
        jurisdiction="WA",
        geometry=_square(-122.7, 48.75, -122.6, 48.85),
        representative_point=(-122.65, 48.80),
    )


@pytest.fixture
def make_square():
    return _square


@pytest.fixture
def make_alert():
    """테스트용 Alert 팩토리"""
    return _make_alert


@pytest.fixture
def make_cap():
    """테스트용 CAP XML 팩토리"""
    return _cap_xml


@pytest.fixture
def make_feature():
    """테스트용 NWS Feature 팩토리"""
    return _nws_feature


# pytest 설정
def pytest_configure(config):
    """pytest 설정"""
    config.addinivalue_line(
        "markers", "slow: 느린 테스트 마커"
    )
    config.addinivalue_line(
        "markers", "integration: 통합 테스트 마커"
    )


def pytest_collection_modifyitems(config, items):
    """테스트 아이템 수정"""
    for item in items:
        # 비동기 테스트에 asyncio 마커 추가
        if inspect.iscoroutinefunction(getattr(item, "function", None)):
            item.add_marker(pytest.mark.asyncio)

        # 통합 테스트 마커 추가
        if "integration" in item.name:
            item.add_marker(pytest.mark.integration)
