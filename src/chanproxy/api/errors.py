"""Map breaker and channel errors to JSON error responses."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from chanproxy.breaker import BreakerOpenError, BreakerTimeoutError
from chanproxy.errors import ChanProxyError, UpstreamError

logger = structlog.get_logger()


def error_body(message: str, code: str, details: Any = None) -> dict[str, Any]:
    body: dict[str, Any] = {
        "success": False,
        "error": message,
        "code": code,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    if details is not None:
        body["details"] = details
    return body


async def _breaker_open(request: Request, exc: BreakerOpenError) -> JSONResponse:
    logger.warning("api.breaker_open", path=request.url.path, breaker=exc.name)
    headers = {}
    if exc.retry_after_s is not None:
        headers["Retry-After"] = str(max(1, round(exc.retry_after_s)))
    return JSONResponse(
        status_code=503,
        content=error_body(str(exc), "CIRCUIT_OPEN"),
        headers=headers,
    )


async def _breaker_timeout(request: Request, exc: BreakerTimeoutError) -> JSONResponse:
    logger.warning("api.upstream_timeout", path=request.url.path, breaker=exc.name)
    return JSONResponse(status_code=504, content=error_body(str(exc), "UPSTREAM_TIMEOUT"))


async def _upstream(request: Request, exc: UpstreamError) -> JSONResponse:
    status = exc.status_code if 400 <= exc.status_code < 500 else 502
    code = f"{exc.provider.upper()}_API_ERROR" if exc.provider else exc.code
    return JSONResponse(status_code=status, content=error_body(str(exc), code, exc.details))


async def _proxy_error(request: Request, exc: ChanProxyError) -> JSONResponse:
    logger.warning("api.proxy_error", path=request.url.path, code=exc.code, error=str(exc))
    return JSONResponse(status_code=exc.status_code, content=error_body(str(exc), exc.code))


async def _transport_error(request: Request, exc: httpx.HTTPError) -> JSONResponse:
    logger.error("api.transport_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=502, content=error_body("Upstream request failed", "BAD_GATEWAY"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BreakerOpenError, _breaker_open)
    app.add_exception_handler(BreakerTimeoutError, _breaker_timeout)
    app.add_exception_handler(UpstreamError, _upstream)
    app.add_exception_handler(ChanProxyError, _proxy_error)
    app.add_exception_handler(httpx.HTTPError, _transport_error)
