"""
Logging setup for Sovereign Skies.

loguru is the only sink. Records from stdlib loggers (aiohttp, uvicorn,
asyncio) are routed into it. Every record carries a ``name`` (the
component) and a ``source`` (the feed being polled, ``-`` outside a
feed fetch).
"""

from __future__ import annotations
import logging
from loguru import logger

# ---- stdlib logging → loguru 인터셉트 ----
class InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())

def _hook_stdlib_logging() -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    # aiohttp 클라이언트 / uvicorn 서버 로그도 loguru 로 모은다
    for noisy in ("uvicorn", "uvicorn.access", "aiohttp.client", "asyncio"):
        l = logging.getLogger(noisy)
        l.handlers = [InterceptHandler()]
        l.propagate = False

# ---- 콘솔 포맷: 컴포넌트 이름과 피드 ----
CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level:<7}</level> | "
    "<cyan>{extra[name]}</cyan> "
    "<magenta>[{extra[source]}]</magenta> | "
    "<level>{message}</level>"
)

def setup_logging_dev(log_level: str = "INFO") -> None:
    """
    콘솔 전용 loguru 초기화.
    - 콘솔 컬러 출력
    - stdlib logging 흡수
    """
    logger.remove()  # 기본 sink 제거
    logger.configure(extra={"name": "sovereign", "source": "-"})
    logger.add(
        sink=lambda m: print(m, end=""),
        format=CONSOLE_FORMAT,
        colorize=True,
        backtrace=False,
        diagnose=False,
        level=log_level.upper(),
        enqueue=False,
    )
    _hook_stdlib_logging()

def get_logger(name: str = "sovereign", **ctx):
    """선택적으로 컨텍스트를 바인딩한 logger 반환."""
    return logger.bind(name=name, **ctx)

def with_context(**ctx):
    """
    블록 안에서 남기는 모든 로그에 컨텍스트를 붙입니다.

    contextvars 기반이라 asyncio 작업마다 따로 유지됩니다.
    """
    return logger.contextualize(**ctx)

setup_logger = setup_logging_dev
