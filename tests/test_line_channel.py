from __future__ import annotations

import json

import httpx
import pytest

from chanproxy.breaker import CircuitBreaker
from chanproxy.channels.line.provider import LineChannelProvider
from chanproxy.channels.line.webhook import (
    compute_signature,
    normalize_line_event,
    verify_signature,
)
from chanproxy.config import LineConfig
from chanproxy.errors import ChannelNotConfiguredError, UpstreamError
from chanproxy.messages import ChannelType, MessageCache

SECRET = "line-channel-secret"


def _text_event(msg_id: str = "m-1", **source) -> dict:
    return {
        "type": "message",
        "timestamp": 1_700_000_000_000,
        "replyToken": "reply-token-value",
        "source": {"type": "user", "userId": "U123", **source},
        "message": {"type": "text", "id": msg_id, "text": "こんにちは"},
    }


def _provider(handler=None, **config) -> tuple[LineChannelProvider, MessageCache]:
    cache = MessageCache()
    client = None
    if handler is not None:
        client = httpx.AsyncClient(
            base_url="https://api.line.me/v2/bot",
            transport=httpx.MockTransport(handler),
        )
    provider = LineChannelProvider(
        config=LineConfig(**config),
        cache=cache,
        breaker=CircuitBreaker("line"),
        client=client,
    )
    return provider, cache


def test_signature_round_trip() -> None:
    body = json.dumps({"events": []}).encode()
    signature = compute_signature(body, SECRET)

    assert verify_signature(body, signature, SECRET) is True
    assert verify_signature(body, f"sha256={signature}", SECRET) is True


def test_signature_rejects_tampering_and_missing_values() -> None:
    body = b'{"events": []}'
    signature = compute_signature(body, SECRET)

    assert verify_signature(b'{"events": [1]}', signature, SECRET) is False
    assert verify_signature(body, signature, "other-secret") is False
    assert verify_signature(body, None, SECRET) is False
    assert verify_signature(body, signature, "") is False


def test_normalize_text_event() -> None:
    message = normalize_line_event(_text_event(groupId="G9"), destination="Ubot")

    assert message is not None
    assert message.id == "m-1"
    assert message.sender == "U123"
    assert message.recipient == "G9"
    assert message.content == "こんにちは"
    assert message.channel is ChannelType.LINE
    assert message.is_unread is True
    assert message.timestamp.year == 2023


def test_normalize_falls_back_to_destination() -> None:
    message = normalize_line_event(_text_event(), destination="Ubot")
    assert message is not None
    assert message.recipient == "Ubot"


def test_normalize_ignores_non_text_events() -> None:
    assert normalize_line_event({"type": "follow", "source": {"userId": "U1"}}) is None

    sticker = _text_event()
    sticker["message"] = {"type": "sticker", "id": "s-1"}
    assert normalize_line_event(sticker) is None


def test_handle_webhook_caches_text_messages() -> None:
    provider, cache = _provider(channel_secret=SECRET)

    result = provider.handle_webhook(
        {
            "destination": "Ubot",
            "events": [_text_event("a"), {"type": "unfollow"}, _text_event("b")],
        }
    )

    assert result.processed == 2
    assert result.ignored == 1
    assert result.message_ids == ["a", "b"]
    assert {m.id for m in cache.get(channel=ChannelType.LINE)} == {"a", "b"}
    assert provider.status().last_inbound_at is not None


def test_normalize_tolerates_malformed_message_and_source() -> None:
    assert normalize_line_event({**_text_event(), "message": "oops"}) is None
    assert normalize_line_event({**_text_event(), "message": {"type": "text", "text": "no id"}}) is None
    assert normalize_line_event({**_text_event(), "message": {"type": "text", "id": "x", "text": 5}}) is None

    message = normalize_line_event({**_text_event("m-2"), "source": "x"}, destination="Ubot")
    assert message is not None
    assert message.sender == "unknown"
    assert message.recipient == "Ubot"

    with pytest.raises(ValueError):
        normalize_line_event({**_text_event(), "timestamp": "abc"})


def test_handle_webhook_ignores_malformed_events_and_counts_them() -> None:
    provider, cache = _provider(channel_secret=SECRET)

    result = provider.handle_webhook(
        {
            "destination": "Ubot",
            "events": [
                {**_text_event("bad-ts"), "timestamp": "abc"},
                {**_text_event("bad-msg"), "message": "oops"},
                {**_text_event("bad-src"), "source": "x"},
                "not-an-event",
                {**_text_event("huge-ts"), "timestamp": 10**30},
                _text_event("ok"),
            ],
        }
    )

    assert result.message_ids == ["bad-src", "ok"]
    assert result.processed == 2
    assert result.ignored == 4
    assert {m.id for m in cache.get_all()} == {"bad-src", "ok"}

    stats = provider.stats.to_dict()
    assert stats["requests"] == 1
    assert stats["totalEvents"] == 6
    assert stats["processedEvents"] == 2
    assert stats["ignoredEvents"] == 4
    assert stats["malformedEvents"] == 3
    assert stats["eventTypes"] == {"message": 5}
    assert stats["lastEventAt"] is not None


def test_handle_webhook_treats_non_list_events_as_empty() -> None:
    provider, cache = _provider()

    result = provider.handle_webhook({"destination": "Ubot", "events": {"type": "message"}})

    assert result.processed == 0
    assert len(cache) == 0
    assert provider.stats.requests == 1


def test_handle_webhook_with_no_events() -> None:
    provider, cache = _provider()

    result = provider.handle_webhook({"destination": "Ubot", "events": []})

    assert result.processed == 0
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_push_forwards_caller_authorization() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"sentMessages": [{"id": "1"}]})

    provider, _ = _provider(handler, channel_access_token="configured")

    data = await provider.push(
        "U123",
        [{"type": "text", "text": "hi"}],
        authorization="Bearer caller-token",
    )

    assert data == {"sentMessages": [{"id": "1"}]}
    assert seen["path"] == "/v2/bot/message/push"
    assert seen["auth"] == "Bearer caller-token"
    assert seen["body"]["to"] == "U123"
    assert seen["body"]["notificationDisabled"] is False


@pytest.mark.asyncio
async def test_configured_token_is_used_without_header() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200)

    provider, _ = _provider(handler, channel_access_token="configured")

    assert await provider.broadcast([{"type": "text", "text": "hi"}]) == {}
    assert seen["auth"] == "Bearer configured"


@pytest.mark.asyncio
async def test_missing_token_and_header_is_not_configured() -> None:
    provider, _ = _provider(lambda request: httpx.Response(200))

    with pytest.raises(ChannelNotConfiguredError):
        await provider.bot_info()


@pytest.mark.asyncio
async def test_upstream_error_keeps_status_and_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"message": "The request body has 1 error(s)"})

    provider, _ = _provider(handler, channel_access_token="configured")

    with pytest.raises(UpstreamError) as exc_info:
        await provider.reply("token-1234567890", [{"type": "text", "text": "x"}])

    assert exc_info.value.status_code == 400
    assert exc_info.value.provider == "line"
    assert "1 error" in str(exc_info.value)
    assert provider.breaker.get_health_status()["stats"]["failures"] == 1


@pytest.mark.asyncio
async def test_group_member_ids_passes_start_cursor() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["start"] = request.url.params.get("start")
        return httpx.Response(200, json={"memberIds": ["U1"], "next": "n2"})

    provider, _ = _provider(handler, channel_access_token="configured")

    data = await provider.group_member_ids("G1", start="n1")

    assert data["memberIds"] == ["U1"]
    assert seen["path"] == "/v2/bot/group/G1/members/ids"
    assert seen["start"] == "n1"


@pytest.mark.asyncio
async def test_leave_group_posts_to_group_path() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        return httpx.Response(200, json={})

    provider, _ = _provider(handler, channel_access_token="configured")

    assert await provider.leave_group("G42") == {}
    assert seen == {"method": "POST", "path": "/v2/bot/group/G42/leave"}


@pytest.mark.asyncio
async def test_message_content_is_fetched_from_data_host() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, content=b"\x89PNG", headers={"Content-Type": "image/png"})

    provider, _ = _provider(handler, channel_access_token="configured")

    content = await provider.message_content("m-7", authorization="Bearer caller")

    assert content.data == b"\x89PNG"
    assert content.content_type == "image/png"
    assert seen["url"] == "https://api-data.line.me/v2/bot/message/m-7/content"
    assert seen["auth"] == "Bearer caller"
    assert provider.breaker.get_health_status()["stats"]["successes"] == 1


@pytest.mark.asyncio
async def test_message_content_upstream_error_counts_on_line_breaker() -> None:
    provider, _ = _provider(
        lambda request: httpx.Response(404, json={"message": "Not found"}),
        channel_access_token="configured",
    )

    with pytest.raises(UpstreamError) as exc_info:
        await provider.message_content("missing")

    assert exc_info.value.status_code == 404
    assert provider.breaker.get_health_status()["stats"]["failures"] == 1
