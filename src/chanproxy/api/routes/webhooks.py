"""Webhook ingress endpoints."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request

from chanproxy.api.middleware.auth import verify_api_key

logger = structlog.get_logger()

router = APIRouter()


@router.post("/api/webhook/line")
async def line_webhook(
    request: Request,
    x_line_signature: str | None = Header(default=None),
) -> dict:
    line = request.app.state.channels.line
    body = await request.body()

    if line.config.verify_signature and not line.verify_signature(body, x_line_signature):
        logger.warning("webhooks.line.invalid_signature", has_signature=bool(x_line_signature))
        raise HTTPException(status_code=401, detail="Invalid LINE signature")

    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Body must be JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")

    result = line.handle_webhook(payload)
    return {
        "success": True,
        "processed": result.processed,
        "ignored": result.ignored,
        "messageIds": result.message_ids,
    }


@router.get("/api/webhook/line/status")
async def line_webhook_status(
    request: Request,
    _api_key: str | None = Depends(verify_api_key),
) -> dict:
    line = request.app.state.channels.line
    return {
        "success": True,
        "webhook": line.webhook_status(),
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.get("/api/webhook/line/stats")
async def line_webhook_stats(
    request: Request,
    _api_key: str | None = Depends(verify_api_key),
) -> dict:
    line = request.app.state.channels.line
    return {
        "success": True,
        "statistics": line.stats.to_dict(),
        "timestamp": datetime.now(UTC).isoformat(),
    }
