"""Discord endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from chanproxy.api.middleware.auth import verify_api_key
from chanproxy.api.routes.messages import messages_payload, parse_since

router = APIRouter(prefix="/api/discord")


class DiscordSendRequest(BaseModel):
    channel_id: str = Field(alias="channelId", min_length=1, max_length=100)
    content: str = Field(min_length=1, max_length=2000)


@router.post("/send")
async def send_message(
    request: Request,
    body: DiscordSendRequest,
    _api_key: str | None = Depends(verify_api_key),
) -> dict:
    discord = request.app.state.channels.discord
    result = await discord.send_message(body.channel_id, body.content)
    return {"success": True, "messageId": result["messageId"]}


@router.get("/messages")
async def get_messages(
    request: Request,
    since: str | None = Query(default=None),
    _api_key: str | None = Depends(verify_api_key),
) -> dict:
    discord = request.app.state.channels.discord
    return messages_payload(discord.get_messages(parse_since(since)))
