# tests/test_llm.py
"""Tests for the generation clients: deterministic mock and the OpenAI adapter."""
from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from ai.battle_quality import evaluate_turn_quality, format_turn_content
from ai.contexts import BattleTurnInput, BattleVerdictInput, PersonaContext, PostContext, ReplyContext
from ai.prompt_builder import ChatPrompt
from jobs.outcome import FailureKind
from services.llm import GenerationError, MockLLM, get_llm_client
from services.openai_llm import OpenAILLM, classify_openai_error

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
PROMPT = ChatPrompt(system="sys", user="usr")


def _status_error(status: int) -> openai.APIStatusError:
    return openai.APIStatusError("boom", response=httpx.Response(status, request=REQUEST), body=None)


def _completion(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _openai_llm(settings, response=None, side_effect=None) -> tuple[OpenAILLM, MagicMock]:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response, side_effect=side_effect)
    return OpenAILLM(settings, client=client), client


# ─────────────────────────────────────────────
# MockLLM
# ─────────────────────────────────────────────

@pytest.mark.asyncio
async def test_mock_reply_is_deterministic(persona_ctx):
    llm = MockLLM()
    post = PostContext(id="p", content="Hello")
    thread = [ReplyContext(id="r", content="hi")]
    first = await llm.generate_reply(persona_ctx, post, thread)
    assert first == await llm.generate_reply(persona_ctx, post, thread)
    assert first.startswith("Ada reply (analytical):")
    assert "(thread replies: 1)" in first


@pytest.mark.asyncio
async def test_mock_thread_summary():
    llm = MockLLM()
    post = PostContext(id="p", content="Topic")
    assert (await llm.summarize_thread(post, [])).startswith("No replies yet.")
    summary = await llm.summarize_thread(post, [ReplyContext(id="r", content="agree")])
    assert "agree" in summary


@pytest.mark.asyncio
async def test_mock_battle_turn_passes_quality_bar(persona_ctx):
    turn = BattleTurnInput(
        topic="Monorepos",
        persona=persona_ctx,
        opponent=PersonaContext(id="o", name="Deniz"),
        side="FOR",
        turn_index=1,
        turn_count=4,
        word_limit=120,
    )
    out = await MockLLM().generate_battle_turn(turn)
    content = format_turn_content(out.claim, out.evidence, 120)
    assert evaluate_turn_quality(content, out.claim, out.evidence, [], 120).score == 100


def test_get_llm_client_selects_provider(settings):
    assert isinstance(get_llm_client(settings), MockLLM)
    assert isinstance(get_llm_client(settings.model_copy(update={"llm_provider": "openai"})), OpenAILLM)


# ─────────────────────────────────────────────
# Error classification
# ─────────────────────────────────────────────

@pytest.mark.parametrize(
    "status,kind",
    [
        (429, FailureKind.TRANSIENT),
        (500, FailureKind.TRANSIENT),
        (503, FailureKind.TRANSIENT),
        (400, FailureKind.PERMANENT),
        (401, FailureKind.PERMANENT),
        (404, FailureKind.PERMANENT),
    ],
)
def test_status_errors_are_classified(status, kind):
    err = classify_openai_error(_status_error(status))
    assert err.kind is kind
    assert f"status={status}" in str(err)


def test_connection_errors_are_transient():
    assert classify_openai_error(openai.APIConnectionError(request=REQUEST)).kind is FailureKind.TRANSIENT
    assert classify_openai_error(openai.APITimeoutError(request=REQUEST)).kind is FailureKind.TRANSIENT


# ─────────────────────────────────────────────
# OpenAILLM
# ─────────────────────────────────────────────

def test_missing_api_key_is_permanent(settings):
    llm = OpenAILLM(settings)
    with pytest.raises(GenerationError) as exc_info:
        _ = llm.client
    assert exc_info.value.kind is FailureKind.PERMANENT


@pytest.mark.asyncio
async def test_chat_completion_returns_stripped_text(settings):
    llm, client = _openai_llm(settings, response=_completion("  hello  "))
    assert await llm.chat_completion(PROMPT) == "hello"

    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == settings.openai_model
    assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
    assert "response_format" not in kwargs


@pytest.mark.asyncio
async def test_empty_content_is_transient(settings):
    llm, _ = _openai_llm(settings, response=_completion("   "))
    with pytest.raises(GenerationError) as exc_info:
        await llm.chat_completion(PROMPT)
    assert exc_info.value.kind is FailureKind.TRANSIENT


@pytest.mark.asyncio
async def test_no_choices_is_transient(settings):
    llm, _ = _openai_llm(settings, response=SimpleNamespace(choices=[]))
    with pytest.raises(GenerationError) as exc_info:
        await llm.chat_completion(PROMPT)
    assert exc_info.value.retryable


@pytest.mark.asyncio
async def test_sdk_errors_are_classified(settings):
    llm, _ = _openai_llm(settings, side_effect=_status_error(400))
    with pytest.raises(GenerationError) as exc_info:
        await llm.chat_completion(PROMPT)
    assert exc_info.value.kind is FailureKind.PERMANENT


@pytest.mark.asyncio
async def test_extract_json_rejects_malformed_output(settings):
    llm, client = _openai_llm(settings, response=_completion("not json"))
    with pytest.raises(GenerationError, match="malformed JSON"):
        await llm.extract_json(PROMPT)
    assert client.chat.completions.create.call_args.kwargs["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_battle_turn_parses_json(settings, persona_ctx):
    llm, _ = _openai_llm(settings, response=_completion('{"claim": " C ", "evidence": "E 42"}'))
    turn = BattleTurnInput(
        topic="t",
        persona=persona_ctx,
        opponent=PersonaContext(id="o", name="B"),
        side="FOR",
        turn_index=1,
        turn_count=2,
        word_limit=60,
    )
    out = await llm.generate_battle_turn(turn)
    assert (out.claim, out.evidence) == ("C", "E 42")


@pytest.mark.asyncio
async def test_battle_verdict_drops_non_string_takeaways(settings, persona_ctx):
    body = '{"verdict": "A won.", "takeaways": ["one", 2, "three"]}'
    llm, _ = _openai_llm(settings, response=_completion(body))
    out = await llm.generate_battle_verdict(
        BattleVerdictInput(topic="t", persona_a=persona_ctx, persona_b=PersonaContext(id="b", name="B"))
    )
    assert out.verdict == "A won."
    assert out.takeaways == ["one", "three"]
