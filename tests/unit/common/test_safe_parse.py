"""
안전 파싱 유틸리티 단위 테스트
"""

import pytest

from sovereign.common.safe_parse import (
    BatchResult,
    safe_get,
    safe_parse_coordinates,
    safe_parse_json,
    safe_parse_number,
    safe_parse_xml,
    safe_process_batch,
    safe_xml_attr,
    safe_xml_findall,
    safe_xml_text,
)


class TestSafeProcessBatch:
    """배치 오류 격리 테스트"""

    def test_failing_item_is_dropped(self):
        def processor(x):
            if x == 2:
                raise ValueError("boom")
            return x * 10

        result = safe_process_batch([1, 2, 3], processor, "test")
        assert list(result) == [10, 30]
        assert result.failed == 1

    def test_none_results_excluded_not_counted(self):
        result = safe_process_batch([1, 2, 3], lambda x: None if x == 2 else x)
        assert list(result) == [1, 3]
        assert result.failed == 0

    def test_non_list_input(self):
        result = safe_process_batch("not a list", lambda x: x)
        assert isinstance(result, BatchResult)
        assert list(result) == []

    def test_all_fail(self):
        result = safe_process_batch([1, 2], lambda x: 1 / 0)
        assert list(result) == []
        assert result.failed == 2


class TestSafeParseJson:
    """JSON 파싱 테스트"""

    def test_valid(self):
        assert safe_parse_json('{"a": 1}') == {"a": 1}
        assert safe_parse_json(b'[1, 2]') == [1, 2]

    @pytest.mark.parametrize("raw", ["{bad json", "", None, 42])
    def test_invalid_returns_none(self, raw):
        assert safe_parse_json(raw) is None


class TestSafeParseXml:
    """XML 파싱 테스트"""

    CAP = (
        '<alert xmlns="urn:oasis:names:tc:emergency:cap:1.2">'
        '<identifier> abc </identifier>'
        '<info lang="en"><event>Snow</event></info>'
        '<info><event>Neige</event></info>'
        '</alert>'
    )

    def test_namespaces_stripped(self):
        root = safe_parse_xml(self.CAP)
        assert root.tag == "alert"
        assert safe_xml_text(root, "identifier") == "abc"
        assert [safe_xml_text(i, "event") for i in safe_xml_findall(root, "info")] == ["Snow", "Neige"]

    def test_missing_text_default(self):
        root = safe_parse_xml(self.CAP)
        assert safe_xml_text(root, "sender", "n/a") == "n/a"
        assert safe_xml_text(None, "identifier") == ""

    def test_attr(self):
        root = safe_parse_xml(self.CAP)
        info = safe_xml_findall(root, "info")[0]
        assert safe_xml_attr(info, "lang") == "en"
        assert safe_xml_attr(None, "lang", "x") == "x"

    def test_findall_none(self):
        assert safe_xml_findall(None, "info") == []

    @pytest.mark.parametrize("raw", ["<alert><unclosed></alert>", "", None])
    def test_malformed(self, raw):
        assert safe_parse_xml(raw) is None


class TestSafeGet:
    """중첩 값 접근 테스트"""

    DATA = {"features": [{"properties": {"id": "x1", "geocode": {"UGC": ["WAZ001"]}}}]}

    def test_nested_path(self):
        assert safe_get(self.DATA, "features.0.properties.id") == "x1"
        assert safe_get(self.DATA, "features.0.properties.geocode.UGC.0") == "WAZ001"

    def test_missing(self):
        assert safe_get(self.DATA, "features.5.properties", "d") == "d"
        assert safe_get(self.DATA, "nope.deeper") is None
        assert safe_get(None, "a", 1) == 1

    def test_string_is_not_indexed(self):
        assert safe_get({"a": "text"}, "a.0") is None


class TestNumbersAndCoordinates:
    """숫자/좌표 파싱 테스트"""

    @pytest.mark.parametrize("value,expected", [
        (1, 1.0), ("2.5", 2.5), (" -3 ", -3.0), ("abc", 0.0),
        (float("nan"), 0.0), (float("inf"), 0.0), (True, 0.0), (None, 0.0),
    ])
    def test_number(self, value, expected):
        assert safe_parse_number(value) == expected

    def test_number_default(self):
        assert safe_parse_number("x", None) is None

    def test_coordinates_geojson_order(self):
        assert safe_parse_coordinates("48.80", "-122.65") == (-122.65, 48.80)

    @pytest.mark.parametrize("lat,lon", [("95", "0"), ("0", "-190"), ("abc", "0"), (None, 1)])
    def test_coordinates_invalid(self, lat, lon):
        assert safe_parse_coordinates(lat, lon) is None
