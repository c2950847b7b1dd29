"""
Resilient fetch utilities for Sovereign Skies.

This module provides per-attempt timeouts, retry with exponential
backoff and jitter, and the glue that runs a fetch through a
dependency's circuit breaker.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, FrozenSet, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import aiohttp

from sovereign.common.circuit import CircuitBreaker
from sovereign.core.errors import ClientError, TransientNetworkError
from sovereign.observability import metrics
from sovereign.observability.logging_setup import get_logger

log = get_logger("sovereign.fetch")

RETRYABLE_STATUSES: FrozenSet[int] = frozenset({408, 429, 500, 502, 503, 504})

# 타임아웃과 연결 실패만 재시도 대상
TRANSIENT_EXCEPTIONS = (
    asyncio.TimeoutError,
    ConnectionError,
    aiohttp.ClientConnectionError,
    aiohttp.ClientPayloadError,
)

_REDACTED_PARAMS = {"key", "token", "api_key", "apikey", "secret"}


@dataclass
class FetchResponse:
    """본문까지 읽은 HTTP 응답"""
    status: int
    body: str = ""
    reason: Optional[str] = None
    url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400


@dataclass
class RetryPolicy:
    """재시도/백오프 설정"""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter_ratio: float = 0.3
    timeout: Optional[float] = 10.0
    retryable_statuses: FrozenSet[int] = field(default_factory=lambda: RETRYABLE_STATUSES)


def compute_backoff_delay(attempt: int, policy: RetryPolicy,
                          rng: Optional[random.Random] = None) -> float:
    """
    지수 백오프 지연 시간을 계산합니다.

    Args:
        attempt: 실패한 시도 번호 (0부터 시작)
        policy: 재시도 정책
        rng: 지터용 난수 생성기

    Returns:
        max_delay 로 상한이 걸린 지연 시간 (초)
    """
    rng = rng or random
    delay = policy.base_delay * (policy.backoff_factor ** attempt)
    if policy.jitter_ratio:
        delay *= 1 + rng.uniform(-policy.jitter_ratio, policy.jitter_ratio)
    return max(0.0, min(delay, policy.max_delay))


def redact_url(url: Optional[str]) -> str:
    """로그용으로 민감한 쿼리 파라미터를 가립니다."""
    if not url:
        return ""
    try:
        parts = urlsplit(url)
        query = [(k, "[REDACTED]" if k.lower() in _REDACTED_PARAMS else v)
                 for k, v in parse_qsl(parts.query, keep_blank_values=True)]
        return urlunsplit(parts._replace(query=urlencode(query, safe="[]")))
    except ValueError:
        return url


def _is_success(status: int) -> bool:
    return 200 <= status < 400


async def resilient_fetch(operation: Callable[[], Awaitable[FetchResponse]],
                          policy: Optional[RetryPolicy] = None,
                          *,
                          context: str = "fetch",
                          url: Optional[str] = None,
                          rng: Optional[random.Random] = None) -> FetchResponse:
    """
    타임아웃, 재시도, 지수 백오프를 적용해 네트워크 작업을 실행합니다.

    재시도 대상: 타임아웃, 연결 실패, 408/429/500/502/503/504.
    그 밖의 실패 상태 코드는 재시도 없이 그대로 반환합니다.

    Args:
        operation: 응답(status 속성 보유)을 돌려주는 비동기 함수
        policy: 재시도 정책
        context: 로그/메트릭 컨텍스트
        url: 로그용 URL

    Returns:
        성공 응답 또는 재시도 대상이 아닌 실패 응답

    Raises:
        TransientNetworkError: 모든 재시도가 실패한 경우 (마지막 오류)
    """
    policy = policy or RetryPolicy()
    safe_url = redact_url(url)
    last_error: Optional[TransientNetworkError] = None
    attempts = policy.max_retries + 1

    for attempt in range(attempts):
        try:
            if policy.timeout:
                response = await asyncio.wait_for(operation(), timeout=policy.timeout)
            else:
                response = await operation()
        except TRANSIENT_EXCEPTIONS as e:
            kind = "timeout" if isinstance(e, asyncio.TimeoutError) else "connection error"
            last_error = TransientNetworkError(f"{kind}: {e!r}", cause=e)
            log.warning(f"[{context}] {kind} (시도 {attempt + 1}/{attempts}) {safe_url}")
        else:
            status = response.status
            if _is_success(status):
                if attempt > 0:
                    log.info(f"[{context}] {attempt}회 재시도 후 성공 {safe_url}")
                return response
            if status not in policy.retryable_statuses:
                log.warning(f"[{context}] 재시도하지 않는 상태 코드 {status} {safe_url}")
                return response
            reason = getattr(response, "reason", None) or ""
            last_error = TransientNetworkError(f"HTTP {status}: {reason}".strip(), status=status)
            log.warning(f"[{context}] 재시도 대상 상태 코드 {status} (시도 {attempt + 1}/{attempts}) {safe_url}")

        if attempt < policy.max_retries:
            delay = compute_backoff_delay(attempt, policy, rng)
            metrics.fetch_retries.labels(context=context).inc()
            log.debug(f"[{context}] {delay:.2f}초 후 재시도")
            await asyncio.sleep(delay)

    log.error(f"[{context}] {attempts}회 시도 모두 실패 {safe_url}")
    raise last_error


async def fetch_with_circuit_breaker(operation: Callable[[], Awaitable[FetchResponse]],
                                     breaker: CircuitBreaker,
                                     policy: Optional[RetryPolicy] = None,
                                     *,
                                     context: Optional[str] = None,
                                     url: Optional[str] = None) -> FetchResponse:
    """의존성의 회로 차단기 안에서 resilient_fetch 를 실행합니다."""
    ctx = context or breaker.name
    return await breaker.execute(
        lambda: resilient_fetch(operation, policy, context=ctx, url=url)
    )


def raise_for_status(response: FetchResponse, *, url: Optional[str] = None) -> FetchResponse:
    """재시도 대상이 아닌 실패 응답을 ClientError 로 바꿉니다."""
    if response.ok:
        return response
    target = redact_url(url or response.url)
    raise ClientError(f"HTTP {response.status} for {target}", status=response.status)
