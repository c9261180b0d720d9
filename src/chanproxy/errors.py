"""Errors raised by channel adapters."""

from __future__ import annotations

from typing import Any


class ChanProxyError(Exception):
    """Base class for proxy errors that route handlers map to responses."""

    code = "CHANPROXY_ERROR"
    status_code = 500


class ChannelNotConfiguredError(ChanProxyError):
    """Credentials for a channel are missing."""

    code = "CHANNEL_NOT_CONFIGURED"
    status_code = 503


class ChannelNotReadyError(ChanProxyError):
    """The channel runtime is not running yet (or has been stopped)."""

    code = "CHANNEL_NOT_READY"
    status_code = 503


class UpstreamError(ChanProxyError):
    """A provider API answered with an error status."""

    code = "UPSTREAM_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 502,
        provider: str = "",
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider
        self.details = details
