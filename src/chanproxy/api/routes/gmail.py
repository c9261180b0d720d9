"""Gmail endpoints."""

from __future__ import annotations

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from chanproxy.api.middleware.auth import verify_api_key

logger = structlog.get_logger()

router = APIRouter(prefix="/api/gmail")


class GmailSendRequest(BaseModel):
    to: str | list[str]
    subject: str = Field(min_length=1)
    content: str = Field(min_length=1)
    cc: str | list[str] | None = None
    bcc: str | list[str] | None = None
    is_html: bool = Field(default=False, alias="isHtml")


@router.get("/messages")
async def get_messages(
    request: Request,
    limit: int = Query(default=50, ge=1, le=500),
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    page_token: str | None = Query(default=None, alias="pageToken"),
    _api_key: str | None = Depends(verify_api_key),
) -> dict:
    gmail = request.app.state.channels.gmail
    result = await gmail.list_messages(limit=limit, unread_only=unread_only, page_token=page_token)
    return {
        "success": True,
        "data": {
            "messages": [message.to_dict() for message in result["messages"]],
            "hasMore": result["hasMore"],
            "nextPageToken": result["nextPageToken"],
        },
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.post("/send")
async def send_message(
    request: Request,
    body: GmailSendRequest,
    _api_key: str | None = Depends(verify_api_key),
) -> dict:
    gmail = request.app.state.channels.gmail
    logger.info("api.gmail.send", subject=body.subject, content_length=len(body.content))
    data = await gmail.send_message(
        to=body.to,
        subject=body.subject,
        content=body.content,
        cc=body.cc,
        bcc=body.bcc,
        is_html=body.is_html,
    )
    return {"success": True, "data": data, "timestamp": datetime.now(UTC).isoformat()}


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    gmail = request.app.state.channels.gmail
    result = await gmail.health_check()
    return JSONResponse(
        status_code=200 if result["status"] == "healthy" else 503,
        content={
            "service": "gmail-api",
            "status": result["status"],
            "details": result["details"],
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )
