from __future__ import annotations

import json

import httpx
import pytest

from chanproxy.breaker import CircuitBreaker
from chanproxy.channels.discord.provider import DiscordChannelProvider, normalize_discord_message
from chanproxy.config import DiscordConfig
from chanproxy.errors import ChannelNotReadyError, UpstreamError
from chanproxy.messages import ChannelType, MessageCache


def _discord_message(msg_id: str, content: str = "hi", *, bot: bool = False) -> dict:
    return {
        "id": msg_id,
        "channel_id": "c-1",
        "content": content,
        "timestamp": f"2026-03-01T12:00:{int(msg_id) % 60:02d}.000000+00:00",
        "author": {"id": "u-1", "username": "alice", "bot": bot},
    }


class FakeDiscord:
    """Minimal stand-in for the Discord REST API."""

    def __init__(self, pages: list[list[dict]]) -> None:
        self.pages = pages
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/users/@me"):
            return httpx.Response(200, json={"id": "b-1", "username": "proxybot"})
        if request.method == "POST":
            body = json.loads(request.content)
            return httpx.Response(200, json={"id": "900", "content": body["content"]})
        page = self.pages.pop(0) if self.pages else []
        return httpx.Response(200, json=page)


def _provider(api: FakeDiscord, **config) -> tuple[DiscordChannelProvider, MessageCache]:
    cache = MessageCache()
    client = httpx.AsyncClient(
        base_url="https://discord.com/api/v10",
        transport=httpx.MockTransport(api),
    )
    provider = DiscordChannelProvider(
        config=DiscordConfig(enabled=True, bot_token="token", **config),
        cache=cache,
        breaker=CircuitBreaker("discord"),
        client=client,
    )
    return provider, cache


def test_normalize_discord_message() -> None:
    message = normalize_discord_message(_discord_message("5", "hello"), "fallback")

    assert message is not None
    assert message.id == "5"
    assert message.sender == "alice"
    assert message.recipient == "c-1"
    assert message.content == "hello"
    assert message.channel is ChannelType.DISCORD
    assert message.timestamp.tzinfo is not None


def test_normalize_skips_bots_and_incomplete_payloads() -> None:
    assert normalize_discord_message(_discord_message("1", bot=True), "c-1") is None
    assert normalize_discord_message({"author": {"username": "x"}}, "c-1") is None


def test_disabled_without_token() -> None:
    provider = DiscordChannelProvider(
        config=DiscordConfig(enabled=True, bot_token=" "),
        cache=MessageCache(),
        breaker=CircuitBreaker("discord"),
    )
    assert provider.enabled is False


@pytest.mark.asyncio
async def test_poll_channel_caches_in_id_order_and_advances_cursor() -> None:
    api = FakeDiscord(
        [
            [_discord_message("12"), _discord_message("11", bot=True), _discord_message("10")],
            [_discord_message("13")],
        ]
    )
    provider, cache = _provider(api)
    await provider.start()

    assert await provider.poll_channel("c-1") == 2
    assert [m.id for m in cache.get_all()] == ["10", "12"]

    assert await provider.poll_channel("c-1") == 1
    last_poll = api.requests[-1]
    assert last_poll.url.params["after"] == "12"
    assert last_poll.url.params["limit"] == "50"
    assert [m.id for m in provider.get_messages()] == ["13", "12", "10"]

    await provider.stop()


@pytest.mark.asyncio
async def test_send_message_requires_running_provider() -> None:
    provider, _ = _provider(FakeDiscord([]))

    with pytest.raises(ChannelNotReadyError):
        await provider.send_message("c-1", "hello")


@pytest.mark.asyncio
async def test_send_message_returns_message_id() -> None:
    api = FakeDiscord([])
    provider, _ = _provider(api)
    await provider.start()

    result = await provider.send_message("c-1", "hello")

    assert result == {"messageId": "900"}
    assert api.requests[-1].url.path == "/api/v10/channels/c-1/messages"
    assert provider.status().last_outbound_at is not None
    await provider.stop()


@pytest.mark.asyncio
async def test_start_fails_on_bad_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "401: Unauthorized", "code": 0})

    provider = DiscordChannelProvider(
        config=DiscordConfig(enabled=True, bot_token="bad"),
        cache=MessageCache(),
        breaker=CircuitBreaker("discord"),
        client=httpx.AsyncClient(
            base_url="https://discord.com/api/v10",
            transport=httpx.MockTransport(handler),
        ),
    )

    with pytest.raises(UpstreamError) as exc_info:
        await provider.start()

    assert exc_info.value.status_code == 401
    assert provider.running is False
