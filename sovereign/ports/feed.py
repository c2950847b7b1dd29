"""
Alert feed port interface.

This module defines the protocol every upstream alert feed implements.
"""

from typing import List, Protocol

from sovereign.core.models import Alert


class AlertFeedPort(Protocol):
    """경보 피드 포트 인터페이스"""

    name: str

    async def fetch_alerts(self) -> List[Alert]:
        """
        현재 유효한 경보를 가져와 Alert 목록으로 반환합니다.

        Raises:
            TransientNetworkError: 재시도를 모두 소진한 경우
            CircuitOpenError: 의존성 회로가 열린 경우
            ClientError: 재시도 대상이 아닌 4xx 응답
        """
        ...
