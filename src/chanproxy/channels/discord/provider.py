"""Discord channel provider (REST polling)."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

import httpx
import structlog

from chanproxy.breaker import CircuitBreaker
from chanproxy.channels.base import ChannelProvider, ChannelStatus
from chanproxy.channels.http import check_response
from chanproxy.config import DiscordConfig
from chanproxy.errors import ChannelNotReadyError
from chanproxy.messages import ChannelType, Message, MessageCache
from chanproxy.messages.models import parse_timestamp

logger = structlog.get_logger()


def normalize_discord_message(payload: dict[str, Any], channel_id: str) -> Message | None:
    """Map a Discord message object to a ``Message``; bot authors are skipped."""
    author = payload.get("author") or {}
    if author.get("bot"):
        return None
    message_id = payload.get("id")
    timestamp = payload.get("timestamp")
    if not message_id or not isinstance(timestamp, str):
        return None

    return Message(
        id=str(message_id),
        sender=str(author.get("username") or author.get("id") or "unknown"),
        recipient=str(payload.get("channel_id") or channel_id),
        content=payload.get("content") or "",
        timestamp=parse_timestamp(timestamp),
        is_unread=True,
        channel=ChannelType.DISCORD,
        raw=payload,
    )


class DiscordChannelProvider(ChannelProvider):
    def __init__(
        self,
        *,
        config: DiscordConfig,
        cache: MessageCache,
        breaker: CircuitBreaker,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.cache = cache
        self.breaker = breaker

        self._client = client
        self._owns_client = client is None
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._cursors: dict[str, str] = {}
        self._bot_tag: str | None = None
        self._status = ChannelStatus(
            channel="discord",
            mode="polling",
            running=False,
            enabled=self.enabled,
        )

    @property
    def name(self) -> str:
        return "discord"

    @property
    def enabled(self) -> bool:
        return bool(self.config.enabled and self.config.bot_token.strip())

    async def start(self) -> None:
        if not self.enabled:
            logger.warning("channels.discord.not_configured", reason="bot token missing or disabled")
            return

        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.api_base,
                headers={"Authorization": f"Bot {self.config.bot_token.strip()}"},
                timeout=httpx.Timeout(15.0),
            )

        await self._load_bot_identity()

        self._stop_event.clear()
        self._set_status(running=True)
        if self.config.channel_ids:
            self._task = asyncio.create_task(self._poll_loop(), name="channel-discord-poll")
        else:
            logger.warning("channels.discord.no_channels", reason="channel_ids is empty")
        logger.info("channels.discord.ready", bot=self._bot_tag)

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        self._set_status(running=False)
        logger.info("channels.discord.stopped")

    async def send_message(self, channel_id: str, content: str) -> dict[str, str]:
        if not self.running:
            raise ChannelNotReadyError("Discord bot is not ready.")

        payload = await self.breaker.execute(
            self._request,
            "POST",
            f"/channels/{channel_id}/messages",
            json={"content": content},
        )
        self._set_status(last_outbound_at=self._now_iso())
        logger.info("channels.discord.sent", channel_id=channel_id, message_id=payload.get("id"))
        return {"messageId": str(payload.get("id"))}

    def get_messages(self, since: datetime | None = None) -> list[Message]:
        return self.cache.get(since, ChannelType.DISCORD)

    async def poll_channel(self, channel_id: str) -> int:
        """Fetch messages newer than the channel cursor into the cache."""
        params: dict[str, Any] = {"limit": self.config.fetch_limit}
        cursor = self._cursors.get(channel_id)
        if cursor:
            params["after"] = cursor

        items = await self.breaker.execute(
            self._request,
            "GET",
            f"/channels/{channel_id}/messages",
            params=params,
        )
        if not isinstance(items, list):
            return 0

        added = 0
        # Discord returns newest first
        for item in sorted(
            (item for item in items if isinstance(item, dict)),
            key=lambda item: int(item.get("id") or 0),
        ):
            self._cursors[channel_id] = str(item.get("id"))
            message = normalize_discord_message(item, channel_id)
            if message is None:
                continue
            self.cache.add(message)
            added += 1
            logger.info(
                "channels.discord.cached",
                channel_id=channel_id,
                sender=message.sender,
                message_id=message.id,
            )

        if added:
            self._set_status(last_inbound_at=self._now_iso())
        return added

    async def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            for channel_id in self.config.channel_ids:
                try:
                    await self.poll_channel(channel_id)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning("channels.discord.poll_error", channel_id=channel_id, error=str(e))
                    self._set_status(last_error=str(e))
                    await asyncio.sleep(self.config.retry_delay_s)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.config.poll_interval_s)
            except TimeoutError:
                pass

    async def _load_bot_identity(self) -> None:
        payload = await self.breaker.execute(self._request, "GET", "/users/@me")
        if isinstance(payload, dict):
            username = payload.get("username")
            if isinstance(username, str) and username.strip():
                self._bot_tag = username.strip()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        if self._client is None:
            raise ChannelNotReadyError("Discord client is not started.")
        resp = await self._client.request(method, path, params=params, json=json)
        check_response(resp, provider="discord")
        return resp.json()
