"""Health check endpoints."""

from __future__ import annotations

import time
from datetime import UTC, datetime

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(prefix="/api/health")

_start_time = time.time()


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@router.get("")
async def health(request: Request) -> JSONResponse:
    """Overall status; degraded while any breaker is open."""
    breakers = request.app.state.breakers
    channels = request.app.state.channels
    cache = request.app.state.cache

    open_breakers = [breaker.name for breaker in breakers if breaker.is_open]
    status = "degraded" if open_breakers else "healthy"
    return JSONResponse(
        status_code=200,
        content={
            "success": True,
            "status": status,
            "version": "1.0.0",
            "uptime_seconds": round(time.time() - _start_time, 1),
            "open_breakers": open_breakers,
            "cache": {"size": len(cache), "capacity": cache.capacity, "evicted": cache.evicted},
            "channels": [item.to_dict() for item in channels.statuses()],
            "timestamp": _now_iso(),
        },
    )


@router.get("/live")
async def live() -> dict:
    return {"success": True, "status": "alive", "timestamp": _now_iso()}


@router.get("/ready")
async def ready(request: Request) -> JSONResponse:
    channels = getattr(request.app.state, "channels", None)
    is_ready = channels is not None
    return JSONResponse(
        status_code=200 if is_ready else 503,
        content={
            "success": is_ready,
            "status": "ready" if is_ready else "not ready",
            "timestamp": _now_iso(),
        },
    )


@router.get("/circuit-breaker")
async def circuit_breaker(request: Request) -> dict:
    return {
        "success": True,
        "circuitBreaker": request.app.state.breakers.health(),
        "timestamp": _now_iso(),
    }
