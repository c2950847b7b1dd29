"""
HTTP endpoints for Sovereign Skies observability.

This module implements health, readiness, metrics, and info endpoints
for monitoring and operational visibility.
"""

import time
from typing import Optional, Sequence

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from sovereign.common.circuit import CircuitBreaker
from sovereign.observability.logging_setup import get_logger
from sovereign.orchestrators.poller import AlertPoller
from sovereign.settings import Settings

log = get_logger("sovereign.http")


def create_app(settings: Settings,
               poller: Optional[AlertPoller] = None,
               breakers: Sequence[CircuitBreaker] = ()) -> FastAPI:
    """FastAPI 애플리케이션을 생성합니다."""
    app = FastAPI(
        title=settings.observability.service_name,
        version=settings.observability.build_version,
        description="Sovereign Skies alert ingestion and boundary matching service"
    )

    start_time = time.time()

    @app.get("/health")
    async def health():
        """헬스 체크 엔드포인트"""
        return JSONResponse({
            "status": "ok",
            "service": settings.observability.service_name,
            "timestamp": time.time()
        })

    @app.get("/ready")
    async def ready():
        """레디니스 체크: 첫 스냅샷이 만들어졌는지와 회로 상태"""
        snapshot = poller.snapshot if poller is not None else None
        body = {
            "status": "ready" if snapshot is not None else "starting",
            "service": settings.observability.service_name,
            "timestamp": time.time(),
            "circuits": [b.snapshot() for b in breakers],
        }
        if snapshot is not None:
            body["last_poll"] = snapshot.completed_at.isoformat()
            body["alerts"] = len(snapshot.alerts)
            body["boundaries_alerted"] = len(snapshot.matches)
            body["sources"] = {name: s.model_dump() for name, s in snapshot.sources.items()}
        return JSONResponse(body, status_code=200 if snapshot is not None else 503)

    @app.get("/metrics")
    async def metrics():
        """Prometheus 메트릭 엔드포인트"""
        if not settings.observability.metrics_enabled:
            raise HTTPException(status_code=503, detail="Metrics disabled")

        try:
            return Response(
                generate_latest(),
                media_type=CONTENT_TYPE_LATEST
            )
        except Exception as e:
            log.error(f"메트릭 생성 오류: {e}")
            raise HTTPException(status_code=500, detail="Metrics generation failed")

    @app.get("/info")
    async def info():
        """서비스 정보 엔드포인트"""
        uptime = time.time() - start_time
        return JSONResponse({
            "service": settings.observability.service_name,
            "version": settings.observability.build_version,
            "build_date": settings.observability.build_date,
            "uptime_seconds": int(uptime),
            "metrics_enabled": settings.observability.metrics_enabled,
            "log_level": settings.observability.log_level,
            "feeds": {"nws": settings.nws.enabled, "eccc": settings.eccc.enabled},
            "poll_interval_sec": settings.polling.interval_sec,
        })

    @app.get("/")
    async def root():
        """루트 엔드포인트"""
        return JSONResponse({
            "service": settings.observability.service_name,
            "version": settings.observability.build_version,
            "endpoints": {
                "health": "/health",
                "ready": "/ready",
                "metrics": "/metrics",
                "info": "/info"
            }
        })

    return app
