"""Async LiteLLM completion calls behind the ``llm`` breaker."""

from __future__ import annotations

import time
from typing import Any

import litellm
import structlog

from chanproxy.breaker import CircuitBreaker
from chanproxy.config import LLMConfig

logger = structlog.get_logger()

# Suppress litellm's noisy logging
litellm.suppress_debug_info = True
litellm.drop_params = True


class LLMGateway:
    """Async wrapper around LiteLLM used for drafting replies."""

    def __init__(self, config: LLMConfig, breaker: CircuitBreaker) -> None:
        self.config = config
        self.breaker = breaker
        self.total_tokens_used = 0
        self.request_count = 0

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key)

    async def completion(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Any:
        """Send a completion request through LiteLLM."""
        model = model or self.config.model
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature if temperature is not None else self.config.temperature,
            "max_tokens": max_tokens or self.config.max_tokens,
        }
        if self.config.api_key:
            kwargs["api_key"] = self.config.api_key
        if self.config.api_base:
            kwargs["api_base"] = self.config.api_base

        start = time.monotonic()
        self.request_count += 1
        request_id = self.request_count

        logger.info(
            "llm.request",
            request_id=request_id,
            model=model,
            message_count=len(messages),
        )

        try:
            response = await self.breaker.execute(litellm.acompletion, **kwargs)
        except Exception as e:
            logger.error("llm.error", request_id=request_id, error=str(e), model=model)
            raise

        usage = getattr(response, "usage", None)
        tokens = getattr(usage, "total_tokens", 0) if usage else 0
        self.total_tokens_used += tokens or 0
        logger.info(
            "llm.response",
            request_id=request_id,
            tokens=tokens,
            duration=f"{time.monotonic() - start:.2f}s",
        )
        return response

    @property
    def stats(self) -> dict[str, Any]:
        """Return usage statistics."""
        return {
            "total_tokens": self.total_tokens_used,
            "request_count": self.request_count,
            "model": self.config.model,
        }
