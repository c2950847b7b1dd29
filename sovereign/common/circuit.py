"""
Circuit breaker for Sovereign Skies.

One breaker instance guards one upstream dependency. Instances are
created by the caller and injected into the adapters that use them,
so a failing source never blocks calls to a healthy one.

States:
    CLOSED    - calls pass through; consecutive failures are counted
    OPEN      - calls fail fast with CircuitOpenError until cool-down elapses
    HALF_OPEN - a single probe call decides between CLOSED and OPEN
"""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from sovereign.core.errors import CircuitOpenError
from sovereign.observability import metrics
from sovereign.observability.logging_setup import get_logger

log = get_logger("sovereign.circuit")

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


_STATE_GAUGE = {CircuitState.CLOSED: 0, CircuitState.HALF_OPEN: 1, CircuitState.OPEN: 2}


class CircuitBreaker:
    """의존성 하나에 대한 회로 차단기"""

    def __init__(self,
                 name: str,
                 *,
                 failure_threshold: int = 5,
                 reset_timeout: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        """
        초기화합니다.

        Args:
            name: 의존성 이름 (로그/메트릭 라벨)
            failure_threshold: OPEN 으로 전환되는 연속 실패 횟수
            reset_timeout: OPEN 유지 시간 (초)
            clock: 단조 시계 (테스트에서 교체 가능)
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock

        self._state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self._probe_in_flight = False
        self._publish_state()

    @property
    def state(self) -> CircuitState:
        return self._state

    def _set_state(self, state: CircuitState) -> None:
        if state != self._state:
            log.info(f"회로 차단기 상태 전환 {self.name}: {self._state.value} -> {state.value}")
        self._state = state
        self._publish_state()

    def _publish_state(self) -> None:
        metrics.circuit_state.labels(dependency=self.name).set(_STATE_GAUGE[self._state])

    def _remaining_cooldown(self) -> float:
        if self.opened_at is None:
            return 0.0
        return max(0.0, self.reset_timeout - (self._clock() - self.opened_at))

    def _before_call(self) -> bool:
        """호출 허용 여부를 판단하고, 이번 호출이 HALF_OPEN 프로브인지 돌려줍니다."""
        if self._state == CircuitState.OPEN:
            remaining = self._remaining_cooldown()
            if remaining > 0:
                metrics.circuit_rejections.labels(dependency=self.name).inc()
                raise CircuitOpenError(self.name, remaining)
            self._set_state(CircuitState.HALF_OPEN)

        if self._state == CircuitState.HALF_OPEN:
            if self._probe_in_flight:
                # 프로브는 한 번에 하나만 허용
                metrics.circuit_rejections.labels(dependency=self.name).inc()
                raise CircuitOpenError(self.name, 0.0)
            self._probe_in_flight = True
            return True
        return False

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        회로 차단기를 통해 비동기 함수를 실행합니다.

        Raises:
            CircuitOpenError: 회로가 열려 있고 대기 시간이 남은 경우
            fn 이 발생시킨 예외
        """
        probe = self._before_call()
        try:
            result = await fn()
        except asyncio.CancelledError:
            # 취소는 실패로 세지 않고 프로브 슬롯만 반납
            if probe:
                self._probe_in_flight = False
            raise
        except Exception:
            self._on_failure(probe)
            raise
        self._on_success(probe)
        return result

    def _on_success(self, probe: bool = False) -> None:
        # 개방 전에 시작된 호출의 결과는 상태를 바꾸지 않음
        if not probe and self._state != CircuitState.CLOSED:
            return
        if probe:
            log.info(f"회로 차단기 복구됨 {self.name}")
        self._probe_in_flight = False
        self.failure_count = 0
        self.opened_at = None
        self._set_state(CircuitState.CLOSED)

    def _on_failure(self, probe: bool = False) -> None:
        self.failure_count += 1
        if probe:
            self._probe_in_flight = False
            self._trip()
            log.warning(f"HALF_OPEN 프로브 실패, 회로 재개방 {self.name}")
        elif self._state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            self._trip()
            log.warning(f"연속 {self.failure_count}회 실패로 회로 개방 {self.name}")

    def _trip(self) -> None:
        self.opened_at = self._clock()
        self._set_state(CircuitState.OPEN)

    def is_available(self) -> bool:
        """지금 호출하면 통과될지 여부 (상태는 바꾸지 않음)"""
        if self._state == CircuitState.CLOSED:
            return True
        if self._state == CircuitState.HALF_OPEN:
            return not self._probe_in_flight
        return self._remaining_cooldown() <= 0

    def reset(self) -> None:
        """수동으로 CLOSED 상태로 되돌립니다."""
        self.failure_count = 0
        self.opened_at = None
        self._probe_in_flight = False
        self._set_state(CircuitState.CLOSED)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self.failure_count,
            "retry_after": round(self._remaining_cooldown(), 3) if self._state == CircuitState.OPEN else 0.0,
        }
