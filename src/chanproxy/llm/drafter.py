"""Reply drafting for messages shown in the unified inbox."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import structlog

from chanproxy.breaker import BreakerOpenError, BreakerTimeoutError
from chanproxy.llm.gateway import LLMGateway

logger = structlog.get_logger()

_CHANNEL_TONES = {
    "gmail": "formal business email",
    "discord": "slightly casual but polite",
    "line": "friendly and short; emoji are fine",
}

_FENCE = re.compile(r"```[^\n]*\n?([\s\S]*?)```")
_PREAMBLE_LINES = [
    re.compile(r"^\s*(here is|here's|below is)\b.*(reply|draft|response).*[:：]\s*$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^.*返信案.*[:：]\s*$", re.MULTILINE),
    re.compile(r"^\s*以下.*[:：]\s*$", re.MULTILINE),
    re.compile(r"^\s*このメールは.*配慮.*$", re.MULTILINE),
]
_EXTRA_NEWLINES = re.compile(r"\n{3,}")


@dataclass
class OriginalMessage:
    sender: str = ""
    channel: str = ""
    content: str = ""


@dataclass
class ReplyContext:
    original_message: OriginalMessage | None = None
    tone: str | None = None
    language: str | None = None


@dataclass
class ReplyDraft:
    success: bool
    reply: str | None = None
    error: str | None = None
    tokens_used: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.success:
            data["reply"] = self.reply
            data["tokensUsed"] = self.tokens_used
        else:
            data["error"] = self.error
        return data


def clean_reply_text(text: str) -> str:
    """Strip code fences, preamble/explanation lines and excess blank lines."""
    cleaned = _FENCE.sub(lambda match: match.group(1), text.strip())
    for pattern in _PREAMBLE_LINES:
        cleaned = pattern.sub("", cleaned)
    cleaned = _EXTRA_NEWLINES.sub("\n\n", cleaned)
    return cleaned.strip()


class ReplyDrafter:
    def __init__(self, gateway: LLMGateway) -> None:
        self.gateway = gateway

    def build_system_prompt(self, context: ReplyContext) -> str:
        language = context.language or self.gateway.config.language
        tones = "\n".join(f"- {channel}: {tone}" for channel, tone in _CHANNEL_TONES.items())
        lines = [
            f"You draft replies to business emails and chat messages in {language}.",
            "",
            "Output only the reply text itself:",
            "- no introduction such as 'Here is a draft reply'",
            "- no explanation of how the reply was written",
            "- no markdown code blocks",
            "",
            "Write naturally and politely, match the context of the message, keep it concise,",
            "and use honorifics appropriate to the relationship with the sender.",
            "",
            "Tone by channel:",
            tones,
            "",
            f"Keep the reply within {self.gateway.config.max_reply_chars} characters.",
        ]
        if context.tone:
            lines.append(f"Preferred tone: {context.tone}.")
        return "\n".join(lines)

    @staticmethod
    def build_user_prompt(prompt: str, context: ReplyContext) -> str:
        parts = ["Draft an appropriate reply to the following message.", ""]
        original = context.original_message
        if original is not None:
            parts += [
                "Received message:",
                f"Sender: {original.sender or 'unknown'}",
                f"Channel: {original.channel or 'unknown'}",
                f"Content: {original.content or prompt}",
            ]
        else:
            parts += ["Message:", prompt]
        parts += ["", "Reply text only. No explanation."]
        return "\n".join(parts)

    async def generate_reply(self, prompt: str, context: ReplyContext | None = None) -> ReplyDraft:
        context = context or ReplyContext()
        if not self.gateway.configured:
            logger.error("llm.draft.no_api_key")
            return ReplyDraft(success=False, error="LLM API key is not configured")

        messages = [
            {"role": "system", "content": self.build_system_prompt(context)},
            {"role": "user", "content": self.build_user_prompt(prompt, context)},
        ]
        try:
            response = await self.gateway.completion(messages)
        except (BreakerOpenError, BreakerTimeoutError) as e:
            return ReplyDraft(success=False, error=str(e))
        except Exception as e:
            logger.error("llm.draft.failed", error=str(e))
            return ReplyDraft(success=False, error=f"LLM request failed: {e}")

        content = _response_text(response)
        if not content:
            logger.error("llm.draft.empty_response")
            return ReplyDraft(success=False, error="LLM returned no usable reply")

        usage = getattr(response, "usage", None)
        reply = clean_reply_text(content)
        logger.info("llm.draft.generated", length=len(reply))
        return ReplyDraft(
            success=True,
            reply=reply,
            tokens_used=int(getattr(usage, "total_tokens", 0) or 0) if usage else 0,
        )


def _response_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    return content.strip() if isinstance(content, str) else ""
