"""LINE Messaging API proxy endpoints."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, Header, Query, Request, Response
from pydantic import BaseModel, Field

from chanproxy.api.middleware.auth import verify_api_key

router = APIRouter(prefix="/api/line", dependencies=[Depends(verify_api_key)])

LineMessageType = Literal[
    "text", "image", "video", "audio", "file", "location", "sticker", "template", "flex"
]


class LineMessage(BaseModel):
    type: LineMessageType
    text: str | None = Field(default=None, max_length=5000)

    model_config = {"extra": "allow"}


class _Outbound(BaseModel):
    messages: list[LineMessage] = Field(min_length=1, max_length=5)
    notification_disabled: bool = Field(default=False, alias="notificationDisabled")

    def payload(self) -> list[dict[str, Any]]:
        return [message.model_dump(exclude_none=True) for message in self.messages]


class PushRequest(_Outbound):
    to: str = Field(min_length=1, max_length=100)


class MulticastRequest(_Outbound):
    to: list[str] = Field(min_length=1, max_length=500)


class BroadcastRequest(_Outbound):
    pass


class ReplyRequest(_Outbound):
    reply_token: str = Field(alias="replyToken", min_length=1, max_length=1000)


def _ok(data: Any) -> dict:
    return {"success": True, "data": data, "timestamp": datetime.now(UTC).isoformat()}


@router.post("/push")
async def push(
    request: Request,
    body: PushRequest,
    authorization: str | None = Header(default=None),
) -> dict:
    line = request.app.state.channels.line
    data = await line.push(
        body.to,
        body.payload(),
        notification_disabled=body.notification_disabled,
        authorization=authorization,
    )
    return _ok(data)


@router.post("/multicast")
async def multicast(
    request: Request,
    body: MulticastRequest,
    authorization: str | None = Header(default=None),
) -> dict:
    line = request.app.state.channels.line
    data = await line.multicast(
        body.to,
        body.payload(),
        notification_disabled=body.notification_disabled,
        authorization=authorization,
    )
    return _ok(data)


@router.post("/broadcast")
async def broadcast(
    request: Request,
    body: BroadcastRequest,
    authorization: str | None = Header(default=None),
) -> dict:
    line = request.app.state.channels.line
    data = await line.broadcast(
        body.payload(),
        notification_disabled=body.notification_disabled,
        authorization=authorization,
    )
    return _ok(data)


@router.post("/reply")
async def reply(
    request: Request,
    body: ReplyRequest,
    authorization: str | None = Header(default=None),
) -> dict:
    line = request.app.state.channels.line
    data = await line.reply(
        body.reply_token,
        body.payload(),
        notification_disabled=body.notification_disabled,
        authorization=authorization,
    )
    return _ok(data)


@router.get("/bot-info")
async def bot_info(request: Request, authorization: str | None = Header(default=None)) -> dict:
    return _ok(await request.app.state.channels.line.bot_info(authorization=authorization))


@router.get("/profile/{user_id}")
async def profile(
    user_id: str,
    request: Request,
    authorization: str | None = Header(default=None),
) -> dict:
    return _ok(await request.app.state.channels.line.profile(user_id, authorization=authorization))


@router.get("/group/{group_id}/member/{user_id}")
async def group_member_profile(
    group_id: str,
    user_id: str,
    request: Request,
    authorization: str | None = Header(default=None),
) -> dict:
    line = request.app.state.channels.line
    return _ok(await line.group_member_profile(group_id, user_id, authorization=authorization))


@router.get("/group/{group_id}/members/ids")
async def group_member_ids(
    group_id: str,
    request: Request,
    start: str | None = Query(default=None, max_length=1000),
    authorization: str | None = Header(default=None),
) -> dict:
    line = request.app.state.channels.line
    return _ok(await line.group_member_ids(group_id, start=start, authorization=authorization))


@router.get("/quota")
async def quota(request: Request, authorization: str | None = Header(default=None)) -> dict:
    return _ok(await request.app.state.channels.line.quota(authorization=authorization))


@router.get("/quota/consumption")
async def quota_consumption(
    request: Request,
    authorization: str | None = Header(default=None),
) -> dict:
    return _ok(await request.app.state.channels.line.quota_consumption(authorization=authorization))


@router.post("/group/{group_id}/leave")
async def leave_group(
    group_id: str,
    request: Request,
    authorization: str | None = Header(default=None),
) -> dict:
    return _ok(await request.app.state.channels.line.leave_group(group_id, authorization=authorization))


@router.get("/content/{message_id}")
async def message_content(
    message_id: str,
    request: Request,
    authorization: str | None = Header(default=None),
) -> Response:
    content = await request.app.state.channels.line.message_content(message_id, authorization=authorization)
    return Response(content=content.data, media_type=content.content_type)
