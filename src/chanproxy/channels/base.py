"""Core channel abstractions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime


@dataclass
class ChannelStatus:
    """Runtime status snapshot for a channel provider."""

    channel: str
    mode: str
    running: bool
    enabled: bool
    last_error: str | None = None
    last_inbound_at: str | None = None
    last_outbound_at: str | None = None

    def to_dict(self) -> dict:
        return {
            "channel": self.channel,
            "mode": self.mode,
            "enabled": self.enabled,
            "running": self.running,
            "last_error": self.last_error,
            "last_inbound_at": self.last_inbound_at,
            "last_outbound_at": self.last_outbound_at,
        }


class ChannelProvider(ABC):
    """Interface implemented by all channel providers."""

    _status: ChannelStatus

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def enabled(self) -> bool:
        ...

    @property
    def running(self) -> bool:
        return self._status.running

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    def status(self) -> ChannelStatus:
        return self._status

    def _set_status(
        self,
        *,
        running: bool | None = None,
        last_error: str | None = None,
        last_inbound_at: str | None = None,
        last_outbound_at: str | None = None,
    ) -> None:
        if running is not None:
            self._status.running = running
        if last_error is not None:
            self._status.last_error = last_error
        if last_inbound_at is not None:
            self._status.last_inbound_at = last_inbound_at
        if last_outbound_at is not None:
            self._status.last_outbound_at = last_outbound_at

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(UTC).isoformat()
