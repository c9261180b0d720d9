"""Unified inbox endpoint backed by the recent-message cache."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from chanproxy.api.middleware.auth import verify_api_key
from chanproxy.messages import ChannelType, Message
from chanproxy.messages.models import parse_timestamp

router = APIRouter()


def parse_since(since: str | None) -> datetime | None:
    if not since:
        return None
    try:
        return parse_timestamp(since)
    except ValueError:
        raise HTTPException(status_code=400, detail="since must be an ISO-8601 timestamp")


def messages_payload(messages: list[Message], *, include_raw: bool = False) -> dict:
    return {
        "success": True,
        "messages": [message.to_dict(include_raw=include_raw) for message in messages],
        "count": len(messages),
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.get("/api/messages")
async def list_messages(
    request: Request,
    since: str | None = Query(default=None, description="ISO-8601 lower bound (inclusive)"),
    channel: ChannelType | None = Query(default=None),
    include_raw: bool = Query(default=False, alias="includeRaw"),
    _api_key: str | None = Depends(verify_api_key),
) -> dict:
    messages = request.app.state.cache.get(parse_since(since), channel)
    return messages_payload(messages, include_raw=include_raw)
