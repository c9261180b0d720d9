"""LINE Messaging API provider (webhook inbound, REST outbound)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from chanproxy.breaker import CircuitBreaker
from chanproxy.channels.base import ChannelProvider, ChannelStatus
from chanproxy.channels.http import check_response
from chanproxy.channels.line.webhook import (
    WebhookResult,
    WebhookStats,
    normalize_line_event,
    verify_signature,
)
from chanproxy.config import LineConfig
from chanproxy.errors import ChannelNotConfiguredError
from chanproxy.messages import MessageCache

logger = structlog.get_logger()


@dataclass
class MessageContent:
    data: bytes
    content_type: str


class LineChannelProvider(ChannelProvider):
    """Proxies LINE bot API calls; the caller's Authorization header wins over
    the configured channel access token."""

    def __init__(
        self,
        *,
        config: LineConfig,
        cache: MessageCache,
        breaker: CircuitBreaker,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.cache = cache
        self.breaker = breaker

        self._client = client
        self._owns_client = client is None
        self.stats = WebhookStats()
        self._status = ChannelStatus(
            channel="line",
            mode="webhook",
            running=False,
            enabled=self.enabled,
        )

    @property
    def name(self) -> str:
        return "line"

    @property
    def enabled(self) -> bool:
        return bool(self.config.channel_access_token.strip() or self.config.channel_secret.strip())

    async def start(self) -> None:
        self._ensure_client()
        self._set_status(running=True)
        if not self.enabled:
            logger.info("channels.line.passthrough_only", reason="no channel token or secret configured")

    async def stop(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        self._set_status(running=False)

    # Outbound messaging

    async def push(
        self,
        to: str,
        messages: list[dict[str, Any]],
        *,
        notification_disabled: bool = False,
        authorization: str | None = None,
    ) -> Any:
        logger.info("channels.line.push", to=to, messages_count=len(messages))
        return await self._send(
            "/message/push",
            {"to": to, "messages": messages, "notificationDisabled": notification_disabled},
            authorization,
        )

    async def multicast(
        self,
        to: list[str],
        messages: list[dict[str, Any]],
        *,
        notification_disabled: bool = False,
        authorization: str | None = None,
    ) -> Any:
        logger.info("channels.line.multicast", to_count=len(to), messages_count=len(messages))
        return await self._send(
            "/message/multicast",
            {"to": to, "messages": messages, "notificationDisabled": notification_disabled},
            authorization,
        )

    async def broadcast(
        self,
        messages: list[dict[str, Any]],
        *,
        notification_disabled: bool = False,
        authorization: str | None = None,
    ) -> Any:
        logger.info("channels.line.broadcast", messages_count=len(messages))
        return await self._send(
            "/message/broadcast",
            {"messages": messages, "notificationDisabled": notification_disabled},
            authorization,
        )

    async def reply(
        self,
        reply_token: str,
        messages: list[dict[str, Any]],
        *,
        notification_disabled: bool = False,
        authorization: str | None = None,
    ) -> Any:
        logger.info(
            "channels.line.reply",
            reply_token=reply_token[:10] + "...",
            messages_count=len(messages),
        )
        return await self._send(
            "/message/reply",
            {
                "replyToken": reply_token,
                "messages": messages,
                "notificationDisabled": notification_disabled,
            },
            authorization,
        )

    # Lookups

    async def bot_info(self, *, authorization: str | None = None) -> Any:
        return await self._call("GET", "/info", authorization=authorization)

    async def profile(self, user_id: str, *, authorization: str | None = None) -> Any:
        return await self._call("GET", f"/profile/{user_id}", authorization=authorization)

    async def group_member_profile(
        self,
        group_id: str,
        user_id: str,
        *,
        authorization: str | None = None,
    ) -> Any:
        return await self._call(
            "GET",
            f"/group/{group_id}/member/{user_id}",
            authorization=authorization,
        )

    async def group_member_ids(
        self,
        group_id: str,
        *,
        start: str | None = None,
        authorization: str | None = None,
    ) -> Any:
        return await self._call(
            "GET",
            f"/group/{group_id}/members/ids",
            params={"start": start} if start else None,
            authorization=authorization,
        )

    async def quota(self, *, authorization: str | None = None) -> Any:
        return await self._call("GET", "/message/quota", authorization=authorization)

    async def quota_consumption(self, *, authorization: str | None = None) -> Any:
        return await self._call("GET", "/message/quota/consumption", authorization=authorization)

    async def leave_group(self, group_id: str, *, authorization: str | None = None) -> Any:
        logger.info("channels.line.leave_group", group_id=group_id)
        return await self._call("POST", f"/group/{group_id}/leave", authorization=authorization)

    async def message_content(
        self,
        message_id: str,
        *,
        authorization: str | None = None,
    ) -> MessageContent:
        """Binary content (image, video, audio, file) of a received message."""
        headers = {"Authorization": self._authorization(authorization)}
        return await self.breaker.execute(self._fetch_content, message_id, headers=headers)

    # Inbound webhook

    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        return verify_signature(body, signature, self.config.channel_secret)

    def handle_webhook(self, payload: dict[str, Any]) -> WebhookResult:
        """Normalize webhook events and push text messages into the cache.

        Malformed events are counted as ignored; they never fail the request.
        """
        destination = str(payload.get("destination") or "")
        events = payload.get("events")
        result = WebhookResult()
        self.stats.requests += 1
        if not isinstance(events, list) or not events:
            logger.warning("channels.line.webhook_empty", destination=destination)
            return result

        for event in events:
            self.stats.received += 1
            if not isinstance(event, dict):
                self.stats.malformed += 1
                result.ignored += 1
                continue
            self.stats.event_types[str(event.get("type") or "unknown")] += 1
            try:
                message = normalize_line_event(event, destination)
            except (ValueError, TypeError, OverflowError, OSError) as e:
                logger.warning("channels.line.webhook_malformed_event", error=str(e))
                self.stats.malformed += 1
                message = None
            if message is None:
                result.ignored += 1
                continue
            self.cache.add(message)
            result.processed += 1
            result.message_ids.append(message.id)

        self.stats.processed += result.processed
        self.stats.ignored += result.ignored
        self.stats.last_event_at = self._now_iso()
        if result.processed:
            self._set_status(last_inbound_at=self.stats.last_event_at)
        logger.info(
            "channels.line.webhook_processed",
            destination=destination,
            processed=result.processed,
            ignored=result.ignored,
        )
        return result

    def webhook_status(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "running": self._status.running,
            "signatureVerification": self.config.verify_signature,
            "channelSecretConfigured": bool(self.config.channel_secret.strip()),
            "stats": self.stats.to_dict(),
        }

    async def _send(self, path: str, body: dict[str, Any], authorization: str | None) -> Any:
        data = await self._call("POST", path, json=body, authorization=authorization)
        self._set_status(last_outbound_at=self._now_iso())
        return data

    async def _call(
        self,
        method: str,
        path: str,
        *,
        authorization: str | None,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        headers = {"Authorization": self._authorization(authorization)}
        return await self.breaker.execute(
            self._request,
            method,
            path,
            headers=headers,
            params=params,
            json=json,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str],
        params: dict[str, Any] | None,
        json: dict[str, Any] | None,
    ) -> Any:
        client = self._ensure_client()
        resp = await client.request(method, path, headers=headers, params=params, json=json)
        check_response(resp, provider="line")
        if not resp.content:
            return {}
        return resp.json()

    async def _fetch_content(self, message_id: str, *, headers: dict[str, str]) -> MessageContent:
        client = self._ensure_client()
        base = self.config.data_api_base.rstrip("/")
        url = f"{base}/message/{message_id}/content"
        resp = await client.get(url, headers=headers)
        check_response(resp, provider="line")
        return MessageContent(
            data=resp.content,
            content_type=resp.headers.get("content-type", "application/octet-stream"),
        )

    def _authorization(self, authorization: str | None) -> str:
        if authorization and authorization.strip():
            return authorization.strip()
        token = self.config.channel_access_token.strip()
        if not token:
            raise ChannelNotConfiguredError(
                "LINE channel access token is not configured and no Authorization header was given"
            )
        return f"Bearer {token}"

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.api_base,
                headers={"User-Agent": "chanproxy/1.0.0"},
                timeout=httpx.Timeout(30.0),
            )
        return self._client
