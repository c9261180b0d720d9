"""chanproxy — FastAPI application entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import structlog
import uvicorn
from fastapi import FastAPI

from chanproxy.api.errors import register_exception_handlers
from chanproxy.breaker import BreakerRegistry
from chanproxy.channels.manager import ChannelRuntimeManager
from chanproxy.config import get_config
from chanproxy.llm.drafter import ReplyDrafter
from chanproxy.llm.gateway import LLMGateway
from chanproxy.logging import setup_logging
from chanproxy.messages import MessageCache

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup/shutdown lifecycle."""
    config = get_config()
    setup_logging(level=config.log_level, fmt=config.log_format)

    logger.info("chanproxy.starting", version="1.0.0", environment=config.environment)

    cache = MessageCache(capacity=config.cache_capacity)
    breakers = BreakerRegistry(config.breakers)

    channels = ChannelRuntimeManager(config=config, cache=cache, breakers=breakers)
    await channels.start()

    drafter = ReplyDrafter(LLMGateway(config.llm, breakers.get("llm")))

    # Store on app state
    app.state.config = config
    app.state.cache = cache
    app.state.breakers = breakers
    app.state.channels = channels
    app.state.drafter = drafter

    logger.info(
        "chanproxy.ready",
        host=config.host,
        port=config.port,
        channels=[status.channel for status in channels.statuses() if status.running],
        cache_capacity=cache.capacity,
    )

    yield

    # Shutdown
    logger.info("chanproxy.shutting_down")
    await channels.stop()
    logger.info("chanproxy.stopped")


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title="chanproxy — Channel Proxy Server",
        version="1.0.0",
        description="Proxy server for LINE, Gmail and Discord with LLM reply drafting.",
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # Register routes
    from chanproxy.api.routes.discord import router as discord_router
    from chanproxy.api.routes.gmail import router as gmail_router
    from chanproxy.api.routes.health import router as health_router
    from chanproxy.api.routes.line import router as line_router
    from chanproxy.api.routes.llm import router as llm_router
    from chanproxy.api.routes.messages import router as messages_router
    from chanproxy.api.routes.webhooks import router as webhooks_router

    app.include_router(health_router, tags=["health"])
    app.include_router(messages_router, tags=["messages"])
    app.include_router(discord_router, tags=["discord"])
    app.include_router(gmail_router, tags=["gmail"])
    app.include_router(line_router, tags=["line"])
    app.include_router(webhooks_router, tags=["webhooks"])
    app.include_router(llm_router, tags=["llm"])

    @app.get("/", tags=["info"])
    async def root() -> dict:
        return {
            "name": "Channel Proxy Server",
            "version": "1.0.0",
            "description": "Proxy server for LINE, Gmail, Discord and LLM reply drafting.",
            "status": "running",
            "timestamp": datetime.now(UTC).isoformat(),
        }

    return app


app = create_app()


def main() -> None:
    """Run the server directly."""
    config = get_config()
    setup_logging(level=config.log_level, fmt=config.log_format)
    uvicorn.run(
        "chanproxy.main:app",
        host=config.host,
        port=config.port,
        log_level="warning",
    )


if __name__ == "__main__":
    main()
