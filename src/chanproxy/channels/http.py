"""Shared helpers for provider HTTP APIs."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from chanproxy.errors import UpstreamError

logger = structlog.get_logger()


def _error_message(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    message = payload.get("message")
    if isinstance(message, str) and message:
        return message
    error = payload.get("error")
    if isinstance(error, dict):
        nested = error.get("message")
        if isinstance(nested, str) and nested:
            return nested
    if isinstance(error, str) and error:
        description = payload.get("error_description")
        return f"{error}: {description}" if description else error
    return None


def check_response(response: httpx.Response, *, provider: str) -> httpx.Response:
    """Raise ``UpstreamError`` for 4xx/5xx provider responses."""
    if response.status_code < 400:
        return response

    try:
        payload = response.json()
    except ValueError:
        payload = None

    message = _error_message(payload) or response.text[:300] or f"HTTP {response.status_code}"
    logger.warning(
        "channels.api_error",
        provider=provider,
        status_code=response.status_code,
        message=message,
    )
    raise UpstreamError(
        message,
        status_code=response.status_code,
        provider=provider,
        details=payload,
    )
