"""Structured logging configuration."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_SECRET_KEYS = frozenset(
    {
        "authorization",
        "access_token",
        "refresh_token",
        "bot_token",
        "channel_access_token",
        "channel_secret",
        "client_secret",
        "api_key",
        "reply_token",
    }
)


def redact_secrets(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask credential-looking fields before they reach a renderer."""
    for key, value in event_dict.items():
        if key.lower() in _SECRET_KEYS and isinstance(value, str) and value:
            event_dict[key] = value[:4] + "***" if len(value) > 8 else "***"
    return event_dict


def setup_logging(level: str = "INFO", fmt: str = "json", service: str = "chanproxy") -> None:
    """Configure structlog for chanproxy.

    Both structlog loggers and stdlib loggers (uvicorn, httpx, LiteLLM) are
    rendered through the same processor chain, so every line on stdout has
    the same shape.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
    ]

    if fmt == "console":
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    else:
        # non-ASCII message content is emitted as-is
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service)

    for name in ("uvicorn.access", "httpcore", "httpx", "litellm", "LiteLLM", "LiteLLM Router"):
        logging.getLogger(name).setLevel(logging.WARNING)
