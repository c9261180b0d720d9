"""Normalized message model shared by all channel adapters."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ChannelType(str, Enum):
    GMAIL = "gmail"
    DISCORD = "discord"
    LINE = "line"


@dataclass
class Message:
    """One inbound or outbound communication unit, normalized across channels.

    ``id`` is only unique within its channel. ``sender`` and ``recipient`` are
    opaque channel-specific identifiers (usernames, addresses, group ids).
    ``timestamp`` is the channel's clock, not the proxy's.
    """

    id: str
    sender: str
    recipient: str
    content: str
    timestamp: datetime
    is_unread: bool
    channel: ChannelType
    thread_id: str | None = None
    raw: Any = None

    def to_dict(self, *, include_raw: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "from": self.sender,
            "to": self.recipient,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "isUnread": self.is_unread,
            "channel": self.channel.value,
        }
        if self.thread_id is not None:
            data["threadId"] = self.thread_id
        if include_raw and self.raw is not None:
            data["raw"] = self.raw
        return data


def from_epoch_ms(value: int | str) -> datetime:
    """Convert a provider epoch-milliseconds value to an aware datetime."""
    return datetime.fromtimestamp(int(value) / 1000, tz=UTC)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
