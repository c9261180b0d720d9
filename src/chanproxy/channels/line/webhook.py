"""LINE webhook signature verification and event normalization."""

from __future__ import annotations

import base64
import hashlib
import hmac
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from chanproxy.messages import ChannelType, Message
from chanproxy.messages.models import from_epoch_ms


@dataclass
class WebhookResult:
    processed: int = 0
    ignored: int = 0
    message_ids: list[str] = field(default_factory=list)


@dataclass
class WebhookStats:
    """Running webhook counters since process start."""

    requests: int = 0
    received: int = 0
    processed: int = 0
    ignored: int = 0
    malformed: int = 0
    event_types: Counter[str] = field(default_factory=Counter)
    last_event_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "requests": self.requests,
            "totalEvents": self.received,
            "processedEvents": self.processed,
            "ignoredEvents": self.ignored,
            "malformedEvents": self.malformed,
            "eventTypes": dict(self.event_types),
            "lastEventAt": self.last_event_at,
        }


def compute_signature(body: bytes, channel_secret: str) -> str:
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(body: bytes, signature: str | None, channel_secret: str) -> bool:
    """Check the ``X-Line-Signature`` header against the raw request body."""
    if not signature or not channel_secret:
        return False
    candidate = signature.strip()
    if candidate.startswith("sha256="):
        candidate = candidate[len("sha256="):]
    expected = compute_signature(body, channel_secret)
    return hmac.compare_digest(expected, candidate)


def normalize_line_event(event: dict[str, Any], destination: str = "") -> Message | None:
    """Map a text ``message`` event to a ``Message``.

    Other event types and malformed payloads return None. A timestamp that is
    not epoch milliseconds raises ``ValueError`` or ``TypeError``, and an
    out-of-range one ``OverflowError`` or ``OSError``.
    """
    if event.get("type") != "message":
        return None
    message = event.get("message")
    if not isinstance(message, dict) or message.get("type") != "text" or not message.get("id"):
        return None
    text = message.get("text")
    if text is not None and not isinstance(text, str):
        return None

    source = event.get("source")
    if not isinstance(source, dict):
        source = {}
    recipient = source.get("groupId") or source.get("roomId") or destination or "bot"
    return Message(
        id=str(message["id"]),
        sender=str(source.get("userId") or "unknown"),
        recipient=str(recipient),
        content=text or "",
        timestamp=from_epoch_ms(event.get("timestamp") or 0),
        is_unread=True,
        channel=ChannelType.LINE,
        raw=event,
    )
