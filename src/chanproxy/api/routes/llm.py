"""Reply drafting endpoints."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from chanproxy.api.middleware.auth import verify_api_key
from chanproxy.llm.drafter import OriginalMessage, ReplyContext

router = APIRouter(prefix="/api/llm")


class OriginalMessageBody(BaseModel):
    sender: str = Field(default="", alias="from")
    channel: str = ""
    content: str = ""


class UserPreferences(BaseModel):
    tone: str | None = None
    language: str | None = None


class DraftContext(BaseModel):
    original_message: OriginalMessageBody | None = Field(default=None, alias="originalMessage")
    user_preferences: UserPreferences | None = Field(default=None, alias="userPreferences")


class GenerateRequest(BaseModel):
    prompt: str = Field(min_length=1)
    context: DraftContext = Field(default_factory=DraftContext)


@router.post("/generate")
async def generate(
    request: Request,
    body: GenerateRequest,
    _api_key: str | None = Depends(verify_api_key),
) -> dict:
    original = body.context.original_message
    preferences = body.context.user_preferences or UserPreferences()
    context = ReplyContext(
        original_message=(
            OriginalMessage(sender=original.sender, channel=original.channel, content=original.content)
            if original
            else None
        ),
        tone=preferences.tone,
        language=preferences.language,
    )
    draft = await request.app.state.drafter.generate_reply(body.prompt, context)
    return draft.to_dict()


@router.get("/health")
async def health(request: Request) -> dict:
    gateway = request.app.state.drafter.gateway
    return {
        "success": True,
        "configured": gateway.configured,
        "stats": gateway.stats,
        "breaker": gateway.breaker.get_health_status(),
        "timestamp": datetime.now(UTC).isoformat(),
    }
