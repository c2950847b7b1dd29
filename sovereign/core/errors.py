"""
Error taxonomy for Sovereign Skies.

Network and parse failures are handled at the lowest feasible layer and
turned into None / empty results. Only a terminal fetch failure (retries
exhausted, or the dependency circuit open) reaches the poll cycle.
"""

from typing import Optional


class SovereignError(Exception):
    """모든 애플리케이션 오류의 기본 클래스"""


class TransientNetworkError(SovereignError):
    """재시도 가능한 네트워크 오류 (타임아웃, 연결 실패, 408/429/5xx)"""

    def __init__(self, message: str, *, status: Optional[int] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.status = status
        self.cause = cause


class ClientError(SovereignError):
    """재시도하지 않는 4xx 응답 (408, 429 제외)"""

    def __init__(self, message: str, *, status: int):
        super().__init__(message)
        self.status = status


class CircuitOpenError(SovereignError):
    """회로 차단기가 열린 상태에서 즉시 거부된 호출"""

    def __init__(self, name: str, retry_after: float):
        super().__init__(f"circuit '{name}' is open, retry after {retry_after:.1f}s")
        self.name = name
        self.retry_after = retry_after


class ParseError(SovereignError):
    """배치 항목 하나의 파싱 실패. 배치 경계를 넘지 않는다."""


class GeometryValidationError(ValueError):
    """좌표가 비었거나 형식이 잘못된 형상"""
