# tests/test_persona_digest.py
"""Tests for persona digest summaries: no-activity text, model output and fallback."""
from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

from services.llm import GenerationError
from services.persona_digest import (
    PersonaDigestStats,
    TopThread,
    build_summary,
    fallback_summary,
    no_activity_summary,
)


def _stats(posts: int = 2, replies: int = 5) -> PersonaDigestStats:
    return PersonaDigestStats(
        posts=posts,
        replies=replies,
        top_threads=[
            TopThread(
                post_id="p1",
                room_id="r1",
                room_name="Tech",
                post_preview="Monorepo?",
                activity_count=4,
                last_activity="2026-03-02T10:00:00+00:00",
            )
        ],
    )


def test_no_activity_summary_languages():
    assert no_activity_summary("tr").startswith("Bugün")
    assert no_activity_summary("de") == no_activity_summary("en")


def test_fallback_summary_lists_threads():
    summary = fallback_summary("en", _stats())
    assert summary == "Today there were 2 posts and 5 replies. The most active threads were: Tech (4 events)."


def test_fallback_summary_turkish_and_unnamed_room():
    stats = _stats()
    stats.top_threads[0].room_name = "  "
    summary = fallback_summary("tr", stats)
    assert "2 gönderi ve 5 yanıt" in summary
    assert "thread (4 events)" in summary


def test_fallback_without_counts_is_no_activity():
    assert fallback_summary("en", PersonaDigestStats()) == no_activity_summary("en")


def test_stats_as_json():
    data = _stats().as_json()
    assert data["posts"] == 2
    assert data["top_threads"][0]["room_name"] == "Tech"
    assert not PersonaDigestStats().has_activity


@pytest.mark.asyncio
async def test_build_summary_without_activity_skips_model(persona_ctx):
    llm = AsyncMock()
    summary = await build_summary(llm, persona_ctx, PersonaDigestStats(), 400)
    assert summary == no_activity_summary("en")
    llm.summarize_persona_activity.assert_not_awaited()


@pytest.mark.asyncio
async def test_build_summary_uses_model_output(persona_ctx):
    llm = AsyncMock()
    llm.summarize_persona_activity.return_value = "  Busy day in Tech.  "
    assert await build_summary(llm, persona_ctx, _stats(), 400) == "Busy day in Tech."

    stats_arg, threads_arg = llm.summarize_persona_activity.await_args.args[1:]
    assert (stats_arg.posts, stats_arg.replies) == (2, 5)
    assert threads_arg[0].room_name == "Tech"


@pytest.mark.asyncio
async def test_build_summary_falls_back_on_generation_error(persona_ctx):
    llm = AsyncMock()
    llm.summarize_persona_activity.side_effect = GenerationError("timeout")
    summary = await build_summary(llm, replace(persona_ctx, preferred_language="tr"), _stats(), 400)
    assert summary.startswith("Bugün 2 gönderi")


@pytest.mark.asyncio
async def test_build_summary_falls_back_on_empty_output(persona_ctx):
    llm = AsyncMock()
    llm.summarize_persona_activity.return_value = "   "
    assert (await build_summary(llm, persona_ctx, _stats(), 400)).startswith("Today there were 2 posts")


@pytest.mark.asyncio
async def test_build_summary_truncates(persona_ctx):
    llm = AsyncMock()
    llm.summarize_persona_activity.return_value = "x" * 1000
    assert len(await build_summary(llm, persona_ctx, _stats(), 400)) == 400
