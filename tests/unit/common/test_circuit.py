"""
회로 차단기 단위 테스트

CLOSED -> OPEN -> HALF_OPEN 상태 전환과 단일 프로브 규칙을 테스트합니다.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from sovereign.common.circuit import CircuitBreaker, CircuitState
from sovereign.core.errors import CircuitOpenError


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


async def fail():
    raise RuntimeError("upstream down")


async def succeed():
    return "ok"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker("nws", failure_threshold=3, reset_timeout=60.0, clock=clock)


async def trip(breaker, times):
    for _ in range(times):
        with pytest.raises(RuntimeError):
            await breaker.execute(fail)


class TestCircuitBreaker:
    """상태 전환 테스트"""

    @pytest.mark.asyncio
    async def test_opens_after_exactly_threshold_failures(self, breaker):
        await trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED
        await trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_success_resets_counter(self, breaker):
        await trip(breaker, 2)
        assert await breaker.execute(succeed) == "ok"
        assert breaker.failure_count == 0
        await trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_open_rejects_without_calling(self, breaker, clock):
        await trip(breaker, 3)
        fn = AsyncMock(return_value="ok")
        clock.advance(10)
        with pytest.raises(CircuitOpenError) as exc:
            await breaker.execute(fn)
        fn.assert_not_awaited()
        assert exc.value.name == "nws"
        assert exc.value.retry_after == pytest.approx(50.0)

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self, breaker, clock):
        await trip(breaker, 3)
        clock.advance(60)
        assert breaker.is_available()
        assert await breaker.execute(succeed) == "ok"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, breaker, clock):
        await trip(breaker, 3)
        clock.advance(61)
        await trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN
        # 대기 시간이 다시 시작됨
        with pytest.raises(CircuitOpenError) as exc:
            await breaker.execute(succeed)
        assert exc.value.retry_after == pytest.approx(60.0)

    @pytest.mark.asyncio
    async def test_single_probe_in_half_open(self, breaker, clock):
        await trip(breaker, 3)
        clock.advance(60)

        gate = asyncio.Event()

        async def slow_probe():
            await gate.wait()
            return "probe"

        probe = asyncio.create_task(breaker.execute(slow_probe))
        await asyncio.sleep(0)
        assert breaker.state == CircuitState.HALF_OPEN
        with pytest.raises(CircuitOpenError):
            await breaker.execute(succeed)
        gate.set()
        assert await probe == "probe"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_cancelled_probe_releases_slot(self, breaker, clock):
        await trip(breaker, 3)
        clock.advance(60)

        probe = asyncio.create_task(breaker.execute(lambda: asyncio.sleep(10)))
        await asyncio.sleep(0)
        probe.cancel()
        with pytest.raises(asyncio.CancelledError):
            await probe
        assert breaker.is_available()

    @pytest.mark.asyncio
    async def test_late_failure_does_not_extend_cooldown(self, breaker, clock):
        """개방 전에 시작된 호출이 늦게 실패해도 대기 시간은 그대로"""
        gate = asyncio.Event()

        async def slow_fail():
            await gate.wait()
            raise RuntimeError("late")

        straggler = asyncio.create_task(breaker.execute(slow_fail))
        await asyncio.sleep(0)
        await trip(breaker, 3)
        assert breaker.state == CircuitState.OPEN

        clock.advance(30)
        gate.set()
        with pytest.raises(RuntimeError):
            await straggler
        assert breaker.state == CircuitState.OPEN
        assert breaker.snapshot()["retry_after"] == pytest.approx(30.0)

    @pytest.mark.asyncio
    async def test_late_result_keeps_half_open_slot(self, breaker, clock):
        """HALF_OPEN 중에 끝난 이전 호출은 프로브로 취급되지 않음"""
        gate = asyncio.Event()
        probe_gate = asyncio.Event()

        async def slow_fail():
            await gate.wait()
            raise RuntimeError("late")

        async def slow_probe():
            await probe_gate.wait()
            return "probe"

        straggler = asyncio.create_task(breaker.execute(slow_fail))
        await asyncio.sleep(0)
        await trip(breaker, 3)
        clock.advance(60)
        probe = asyncio.create_task(breaker.execute(slow_probe))
        await asyncio.sleep(0)

        gate.set()
        with pytest.raises(RuntimeError):
            await straggler
        assert breaker.state == CircuitState.HALF_OPEN
        assert not breaker.is_available()

        probe_gate.set()
        assert await probe == "probe"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_breakers_are_independent(self, clock):
        nws = CircuitBreaker("nws", failure_threshold=1, clock=clock)
        eccc = CircuitBreaker("eccc", failure_threshold=1, clock=clock)
        await trip(nws, 1)
        assert nws.state == CircuitState.OPEN
        assert await eccc.execute(succeed) == "ok"

    @pytest.mark.asyncio
    async def test_reset_and_snapshot(self, breaker):
        await trip(breaker, 3)
        snap = breaker.snapshot()
        assert snap["state"] == "OPEN"
        assert snap["failure_count"] == 3
        assert snap["retry_after"] > 0
        breaker.reset()
        assert breaker.snapshot() == {"name": "nws", "state": "CLOSED", "failure_count": 0, "retry_after": 0.0}

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            CircuitBreaker("x", failure_threshold=0)
