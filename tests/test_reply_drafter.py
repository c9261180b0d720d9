from __future__ import annotations

from types import SimpleNamespace

import litellm
import pytest

from chanproxy.breaker import CircuitBreaker
from chanproxy.config import BreakerSettings, LLMConfig
from chanproxy.llm.drafter import (
    OriginalMessage,
    ReplyContext,
    ReplyDrafter,
    clean_reply_text,
)
from chanproxy.llm.gateway import LLMGateway


def _response(content: str | None, tokens: int = 42) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=tokens),
    )


def _drafter(api_key: str = "sk-test", **breaker_settings) -> ReplyDrafter:
    breaker = CircuitBreaker("llm", BreakerSettings(**breaker_settings))
    return ReplyDrafter(LLMGateway(LLMConfig(api_key=api_key), breaker))


def test_clean_reply_unwraps_code_fences_and_drops_preamble() -> None:
    raw = "Here is a draft reply:\n```text\nお世話になっております。\nご連絡ありがとうございます。\n```"

    assert clean_reply_text(raw) == "お世話になっております。\nご連絡ありがとうございます。"


def test_clean_reply_drops_japanese_preamble_and_collapses_blank_lines() -> None:
    raw = "以下が返信案です：\n\n承知いたしました。\n\n\n\nよろしくお願いいたします。"

    assert clean_reply_text(raw) == "承知いたしました。\n\nよろしくお願いいたします。"


def test_clean_reply_leaves_plain_text_alone() -> None:
    assert clean_reply_text("  Thanks, see you tomorrow!  ") == "Thanks, see you tomorrow!"


def test_user_prompt_includes_original_message() -> None:
    context = ReplyContext(
        original_message=OriginalMessage(sender="bob@example.com", channel="gmail", content="Meeting at 3?"),
    )

    prompt = ReplyDrafter.build_user_prompt("ignored", context)

    assert "Sender: bob@example.com" in prompt
    assert "Channel: gmail" in prompt
    assert "Content: Meeting at 3?" in prompt


def test_system_prompt_uses_language_and_tone() -> None:
    drafter = _drafter()

    default = drafter.build_system_prompt(ReplyContext())
    custom = drafter.build_system_prompt(ReplyContext(language="English", tone="cheerful"))

    assert "in Japanese" in default
    assert "200 characters" in default
    assert "in English" in custom
    assert "Preferred tone: cheerful." in custom


@pytest.mark.asyncio
async def test_generate_reply_cleans_output_and_reports_tokens(monkeypatch) -> None:
    captured: dict = {}

    async def fake_acompletion(**kwargs):
        captured.update(kwargs)
        return _response("```\nSounds good, see you at 3.\n```", tokens=17)

    monkeypatch.setattr(litellm, "acompletion", fake_acompletion)
    drafter = _drafter()

    draft = await drafter.generate_reply("Meeting at 3?")

    assert draft.success is True
    assert draft.reply == "Sounds good, see you at 3."
    assert draft.to_dict() == {"success": True, "reply": "Sounds good, see you at 3.", "tokensUsed": 17}
    assert captured["api_key"] == "sk-test"
    assert captured["messages"][0]["role"] == "system"
    assert drafter.gateway.stats["total_tokens"] == 17


@pytest.mark.asyncio
async def test_generate_reply_without_api_key(monkeypatch) -> None:
    async def fail(**kwargs):
        raise AssertionError("should not be called")

    monkeypatch.setattr(litellm, "acompletion", fail)

    draft = await _drafter(api_key="").generate_reply("hi")

    assert draft.success is False
    assert "not configured" in draft.error
    assert "reply" not in draft.to_dict()


@pytest.mark.asyncio
async def test_generate_reply_reports_provider_errors(monkeypatch) -> None:
    async def boom(**kwargs):
        raise RuntimeError("rate limited")

    monkeypatch.setattr(litellm, "acompletion", boom)
    drafter = _drafter()

    draft = await drafter.generate_reply("hi")

    assert draft.success is False
    assert "rate limited" in draft.error
    assert drafter.gateway.breaker.get_health_status()["stats"]["failures"] == 1


@pytest.mark.asyncio
async def test_generate_reply_fast_fails_when_breaker_open(monkeypatch) -> None:
    calls = 0

    async def boom(**kwargs):
        nonlocal calls
        calls += 1
        raise RuntimeError("down")

    monkeypatch.setattr(litellm, "acompletion", boom)
    drafter = _drafter(volume_threshold=2)

    await drafter.generate_reply("one")
    await drafter.generate_reply("two")
    draft = await drafter.generate_reply("three")

    assert calls == 2
    assert draft.success is False
    assert "is open" in draft.error


@pytest.mark.asyncio
async def test_generate_reply_empty_content(monkeypatch) -> None:
    async def empty(**kwargs):
        return _response("   ")

    monkeypatch.setattr(litellm, "acompletion", empty)

    draft = await _drafter().generate_reply("hi")

    assert draft.success is False
