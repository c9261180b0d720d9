"""Channel runtime manager."""

from __future__ import annotations

import structlog

from chanproxy.breaker import BreakerRegistry
from chanproxy.channels.base import ChannelProvider, ChannelStatus
from chanproxy.channels.discord.provider import DiscordChannelProvider
from chanproxy.channels.gmail.provider import GmailChannelProvider
from chanproxy.channels.line.provider import LineChannelProvider
from chanproxy.config import ProxyConfig
from chanproxy.messages import MessageCache

logger = structlog.get_logger()


class ChannelRuntimeManager:
    """Owns lifecycle and status of the LINE, Gmail and Discord providers."""

    def __init__(
        self,
        config: ProxyConfig,
        cache: MessageCache,
        breakers: BreakerRegistry,
    ) -> None:
        self.config = config
        self.cache = cache
        self.breakers = breakers

        self.discord = DiscordChannelProvider(
            config=config.discord,
            cache=cache,
            breaker=breakers.get("discord"),
        )
        self.gmail = GmailChannelProvider(
            config=config.gmail,
            cache=cache,
            breaker=breakers.get("gmail"),
        )
        self.line = LineChannelProvider(
            config=config.line,
            cache=cache,
            breaker=breakers.get("line"),
        )
        self.providers: list[ChannelProvider] = [self.discord, self.gmail, self.line]

    async def start(self) -> None:
        """Start all providers; a failing provider does not block the others."""
        for provider in self.providers:
            try:
                await provider.start()
                logger.info(
                    "channels.provider.started",
                    provider=provider.name,
                    enabled=provider.enabled,
                    running=provider.running,
                )
            except Exception as e:
                logger.error("channels.provider.start_failed", provider=provider.name, error=str(e))
                provider.status().last_error = str(e)

    async def stop(self) -> None:
        """Stop all providers."""
        for provider in self.providers:
            try:
                await provider.stop()
                logger.info("channels.provider.stopped", provider=provider.name)
            except Exception as e:
                logger.warning(
                    "channels.provider.stop_failed",
                    provider=provider.name,
                    error=str(e),
                )

    def statuses(self) -> list[ChannelStatus]:
        """Return runtime statuses for all providers."""
        return [provider.status() for provider in self.providers]
