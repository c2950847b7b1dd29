"""
Safe parsing utilities for Sovereign Skies.

Error-isolated parsing for JSON and XML payloads. Malformed input
yields None instead of raising, and batch processing drops a failing
item rather than aborting the whole batch.
"""

import json
import math
import xml.etree.ElementTree as ET
from typing import Any, Callable, Iterable, List, Optional, Tuple, TypeVar, Union

from sovereign.common.geo import validate_coordinates
from sovereign.observability import metrics
from sovereign.observability.logging_setup import get_logger

log = get_logger("sovereign.parse")

T = TypeVar("T")
R = TypeVar("R")

_MISSING = object()


class BatchResult(List[R]):
    """성공한 결과 목록 + 실패 건수"""

    def __init__(self, items: Iterable[R] = (), failed: int = 0):
        super().__init__(items)
        self.failed = failed


def safe_process_batch(items: Any,
                       processor: Callable[[T], Optional[R]],
                       context: str = "batch") -> BatchResult:
    """
    항목별 오류를 격리하여 배치를 처리합니다.

    실패한 항목은 로그만 남기고 건너뛰며, None 결과도 제외합니다.

    Args:
        items: 처리할 항목 목록
        processor: 항목 하나를 변환하는 함수
        context: 로그/메트릭 컨텍스트

    Returns:
        성공 결과 목록 (failed 속성에 실패 건수)
    """
    if not isinstance(items, (list, tuple)):
        log.warning(f"[{context}] 잘못된 배치 입력: {type(items).__name__}")
        return BatchResult()

    results: List[R] = []
    failed = 0
    for index, item in enumerate(items):
        try:
            result = processor(item)
        except Exception as e:
            failed += 1
            log.warning(f"[{context}] 항목 {index} 처리 실패: {e}")
            continue
        if result is not None:
            results.append(result)

    if failed:
        metrics.batch_item_failures.labels(context=context).inc(failed)
        log.info(f"[{context}] 배치 완료: 성공 {len(results)}, 실패 {failed}")
    return BatchResult(results, failed)


def _as_text(raw: Union[str, bytes, None]) -> Optional[str]:
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        return raw
    return None


def safe_parse_json(raw: Union[str, bytes, None], context: str = "json") -> Any:
    """JSON 을 파싱합니다. 실패하면 None."""
    text = _as_text(raw)
    if not text:
        log.warning(f"[{context}] 잘못된 JSON 입력: {type(raw).__name__}")
        return None
    try:
        return json.loads(text)
    except ValueError as e:
        log.warning(f"[{context}] JSON 파싱 오류: {e} preview={text[:100]!r}")
        return None


def _strip_namespaces(root: ET.Element) -> ET.Element:
    for el in root.iter():
        if isinstance(el.tag, str) and el.tag.startswith("{"):
            el.tag = el.tag.split("}", 1)[1]
    return root


def safe_parse_xml(raw: Union[str, bytes, None], context: str = "xml") -> Optional[ET.Element]:
    """
    XML 을 파싱해 루트 요소를 반환합니다. 실패하면 None.

    네임스페이스는 제거되므로 CAP 경로를 "info/area" 처럼 쓸 수 있습니다.
    """
    if not raw or not isinstance(raw, (str, bytes)):
        log.warning(f"[{context}] 잘못된 XML 입력: {type(raw).__name__}")
        return None
    try:
        root = ET.fromstring(raw)
    except ET.ParseError as e:
        log.warning(f"[{context}] XML 파싱 오류: {e}")
        return None
    return _strip_namespaces(root)


def safe_xml_text(element: Optional[ET.Element], path: str, default: str = "") -> str:
    """하위 요소의 텍스트를 안전하게 가져옵니다."""
    if element is None:
        return default
    value = element.findtext(path)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def safe_xml_attr(element: Optional[ET.Element], attribute: str, default: str = "") -> str:
    if element is None:
        return default
    return element.get(attribute, default)


def safe_xml_findall(element: Optional[ET.Element], path: str) -> List[ET.Element]:
    """일치하는 요소 목록 (없으면 빈 목록)"""
    if element is None:
        return []
    try:
        return element.findall(path)
    except SyntaxError:
        return []


def safe_get(obj: Any, path: str, default: Any = None) -> Any:
    """
    점으로 구분된 경로로 중첩 값을 안전하게 가져옵니다.

    숫자 경로 조각은 리스트 인덱스로 해석합니다. ("features.0.id")
    """
    if obj is None:
        return default
    current = obj
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part, _MISSING)
        elif isinstance(current, (list, tuple)) and part.lstrip("-").isdigit():
            idx = int(part)
            current = current[idx] if -len(current) <= idx < len(current) else _MISSING
        else:
            current = getattr(current, part, _MISSING) if not isinstance(current, (str, bytes)) else _MISSING
        if current is _MISSING or current is None:
            return default
    return current


def safe_parse_number(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """유한한 숫자로 변환합니다. 실패하면 default."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else default
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return default
        return parsed if math.isfinite(parsed) else default
    return default


def safe_parse_coordinates(lat: Any, lon: Any) -> Optional[Tuple[float, float]]:
    """
    위도/경도를 파싱해 GeoJSON 순서 (경도, 위도) 로 반환합니다.

    범위를 벗어나면 (위도 ±90, 경도 ±180) None.
    """
    parsed_lat = safe_parse_number(lat, None)
    parsed_lon = safe_parse_number(lon, None)
    if parsed_lat is None or parsed_lon is None:
        return None
    if not validate_coordinates(parsed_lat, parsed_lon):
        return None
    return (parsed_lon, parsed_lat)
