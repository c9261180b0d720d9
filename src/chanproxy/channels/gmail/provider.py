"""Gmail channel provider (REST API, fetched on demand)."""

from __future__ import annotations

import asyncio
import base64
import binascii
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from email.message import EmailMessage
from typing import Any

import httpx
import structlog

from chanproxy.breaker import CircuitBreaker
from chanproxy.channels.base import ChannelProvider, ChannelStatus
from chanproxy.channels.http import check_response
from chanproxy.config import GmailConfig
from chanproxy.errors import ChannelNotConfiguredError
from chanproxy.messages import ChannelType, Message, MessageCache
from chanproxy.messages.models import from_epoch_ms

logger = structlog.get_logger()

NO_CONTENT = "No content available"


@dataclass
class GmailToken:
    access_token: str
    expires_at: datetime


def _b64url_decode(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def _header(headers: list[dict[str, Any]], name: str) -> str | None:
    wanted = name.lower()
    for header in headers:
        if str(header.get("name", "")).lower() == wanted:
            return header.get("value")
    return None


def extract_body(message: dict[str, Any]) -> str:
    """Plain-text body of a Gmail message, falling back to its snippet."""
    payload = message.get("payload") or {}
    try:
        data = (payload.get("body") or {}).get("data")
        if data:
            return _b64url_decode(data)

        for part in payload.get("parts") or []:
            part_data = (part.get("body") or {}).get("data")
            if part.get("mimeType") == "text/plain" and part_data:
                return _b64url_decode(part_data)
    except (binascii.Error, ValueError) as e:
        logger.warning("channels.gmail.body_decode_failed", message_id=message.get("id"), error=str(e))
        return NO_CONTENT

    return message.get("snippet") or NO_CONTENT


def normalize_gmail_message(message: dict[str, Any]) -> Message:
    headers = (message.get("payload") or {}).get("headers") or []
    return Message(
        id=str(message["id"]),
        sender=_header(headers, "From") or "Unknown Sender",
        recipient=_header(headers, "To") or "me",
        content=extract_body(message),
        timestamp=from_epoch_ms(message.get("internalDate") or 0),
        is_unread="UNREAD" in (message.get("labelIds") or []),
        channel=ChannelType.GMAIL,
        thread_id=message.get("threadId"),
        raw=message,
    )


def build_raw_message(
    *,
    to: str | list[str],
    subject: str,
    content: str,
    cc: str | list[str] | None = None,
    bcc: str | list[str] | None = None,
    is_html: bool = False,
) -> str:
    """RFC 2822 message, base64url-encoded without padding as Gmail expects."""

    def _join(value: str | list[str]) -> str:
        return ", ".join(value) if isinstance(value, list) else value

    email = EmailMessage()
    email["To"] = _join(to)
    if cc:
        email["Cc"] = _join(cc)
    if bcc:
        email["Bcc"] = _join(bcc)
    email["Subject"] = subject
    email.set_content(content, subtype="html" if is_html else "plain", charset="utf-8")

    return base64.urlsafe_b64encode(email.as_bytes()).decode("ascii").rstrip("=")


class GmailChannelProvider(ChannelProvider):
    def __init__(
        self,
        *,
        config: GmailConfig,
        cache: MessageCache,
        breaker: CircuitBreaker,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.cache = cache
        self.breaker = breaker

        self._client = client
        self._owns_client = client is None
        self._token: GmailToken | None = None
        self._token_lock = asyncio.Lock()
        self._status = ChannelStatus(
            channel="gmail",
            mode="on_demand",
            running=False,
            enabled=self.enabled,
        )

    @property
    def name(self) -> str:
        return "gmail"

    @property
    def enabled(self) -> bool:
        return self.config.configured

    @property
    def token_expires_at(self) -> datetime | None:
        return self._token.expires_at if self._token else None

    async def start(self) -> None:
        if not self.enabled:
            logger.warning("channels.gmail.not_configured", reason="missing OAuth client or refresh token")
            return
        self._ensure_client()
        await self._refresh_access_token()
        self._set_status(running=True)
        logger.info("channels.gmail.token_initialized")

    async def stop(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        self._set_status(running=False)

    async def list_messages(
        self,
        *,
        limit: int = 50,
        unread_only: bool = False,
        page_token: str | None = None,
    ) -> dict[str, Any]:
        """List recent messages, normalize them and push them into the cache."""
        self._require_token()
        result = await self.breaker.execute(
            self._list_messages,
            limit=limit,
            unread_only=unread_only,
            page_token=page_token,
        )
        for message in result["messages"]:
            self.cache.add(message)
        if result["messages"]:
            self._set_status(last_inbound_at=self._now_iso())
        logger.info(
            "channels.gmail.listed",
            count=len(result["messages"]),
            has_more=result["hasMore"],
        )
        return result

    async def send_message(
        self,
        *,
        to: str | list[str],
        subject: str,
        content: str,
        cc: str | list[str] | None = None,
        bcc: str | list[str] | None = None,
        is_html: bool = False,
    ) -> dict[str, Any]:
        self._require_token()
        raw = build_raw_message(
            to=to,
            subject=subject,
            content=content,
            cc=cc,
            bcc=bcc,
            is_html=is_html,
        )
        data = await self.breaker.execute(
            self._authorized_request,
            "POST",
            "/users/me/messages/send",
            json={"raw": raw},
        )
        self._set_status(last_outbound_at=self._now_iso())
        logger.info("channels.gmail.sent", message_id=data.get("id"))
        return {"messageId": data.get("id"), "threadId": data.get("threadId")}

    async def health_check(self) -> dict[str, Any]:
        expires_at = self.token_expires_at
        if expires_at is None:
            return {"status": "error", "details": {"message": "No Gmail token configured"}}
        try:
            await self.breaker.execute(self._authorized_request, "GET", "/users/me/profile")
        except Exception as e:
            return {
                "status": "error",
                "details": {"message": "Gmail API connection failed", "error": str(e)},
            }
        return {
            "status": "healthy",
            "details": {
                "message": "Gmail API connection successful",
                "tokenExpiry": expires_at.isoformat(),
            },
        }

    async def _list_messages(
        self,
        *,
        limit: int,
        unread_only: bool,
        page_token: str | None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"maxResults": limit}
        if unread_only:
            params["labelIds"] = "UNREAD"
        if page_token:
            params["pageToken"] = page_token

        listing = await self._authorized_request("GET", "/users/me/messages", params=params)
        refs = listing.get("messages") or []
        next_page = listing.get("nextPageToken")
        if not refs:
            return {"messages": [], "hasMore": False, "nextPageToken": None}

        details = await asyncio.gather(
            *(self._authorized_request("GET", f"/users/me/messages/{ref['id']}") for ref in refs)
        )
        return {
            "messages": [normalize_gmail_message(item) for item in details],
            "hasMore": bool(next_page),
            "nextPageToken": next_page,
        }

    async def _authorized_request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        token = await self._valid_access_token()
        client = self._ensure_client()
        resp = await client.request(
            method,
            path,
            params=params,
            json=json,
            headers={"Authorization": f"Bearer {token}"},
        )
        check_response(resp, provider="gmail")
        return resp.json()

    def _require_token(self) -> None:
        """Fail fast, outside the breaker, when no token has been issued."""
        if self._token is None:
            raise ChannelNotConfiguredError("Gmail API: No token information available")

    async def _valid_access_token(self) -> str:
        async with self._token_lock:
            if self._token is None:
                raise ChannelNotConfiguredError("Gmail API: No token information available")
            refresh_at = self._token.expires_at - timedelta(seconds=self.config.refresh_margin_s)
            if datetime.now(UTC) >= refresh_at:
                logger.info("channels.gmail.token_refreshing")
                await self._fetch_token()
            return self._token.access_token

    async def _refresh_access_token(self) -> None:
        async with self._token_lock:
            await self.breaker.execute(self._fetch_token)

    async def _fetch_token(self) -> None:
        client = self._ensure_client()
        resp = await client.post(
            self.config.token_url,
            data={
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "refresh_token": self.config.refresh_token,
                "grant_type": "refresh_token",
            },
        )
        check_response(resp, provider="gmail")
        payload = resp.json()
        self._token = GmailToken(
            access_token=payload["access_token"],
            expires_at=datetime.now(UTC) + timedelta(seconds=int(payload.get("expires_in", 3600))),
        )
        logger.info("channels.gmail.token_refreshed", expires_at=self._token.expires_at.isoformat())

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.api_base,
                timeout=httpx.Timeout(30.0),
            )
        return self._client
