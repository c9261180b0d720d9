"""Bounded in-memory store of recent messages from every channel."""

from __future__ import annotations

import threading
from collections import deque
from datetime import UTC, datetime

import structlog

from chanproxy.messages.models import ChannelType, Message

logger = structlog.get_logger()

DEFAULT_CAPACITY = 100


class MessageCache:
    """Fixed-capacity FIFO buffer of normalized messages.

    Adding beyond capacity silently drops the oldest *inserted* message, so a
    consumer that polls rarely can miss messages. Treat it as a best-effort
    recent-message view, not a queue.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.evicted = 0
        self._messages: deque[Message] = deque()
        self._lock = threading.Lock()

    def add(self, message: Message) -> None:
        with self._lock:
            self._messages.append(message)
            if len(self._messages) > self.capacity:
                dropped = self._messages.popleft()
                self.evicted += 1
                logger.debug(
                    "cache.evicted",
                    channel=dropped.channel.value,
                    message_id=dropped.id,
                )

    def get(
        self,
        since: datetime | None = None,
        channel: ChannelType | str | None = None,
    ) -> list[Message]:
        """Return matching messages, newest first. A naive ``since`` is read as UTC."""
        wanted = channel.value if isinstance(channel, ChannelType) else channel
        if since is not None and since.tzinfo is None:
            since = since.replace(tzinfo=UTC)
        with self._lock:
            selected = [
                message
                for message in self._messages
                if (not wanted or message.channel.value == wanted)
                and (since is None or message.timestamp >= since)
            ]
        selected.sort(key=lambda message: message.timestamp, reverse=True)
        return selected

    def get_all(self) -> list[Message]:
        """Return every stored message in insertion order."""
        with self._lock:
            return list(self._messages)

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)
