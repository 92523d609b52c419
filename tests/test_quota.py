# tests/test_quota.py
from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from services.quota import PersonaNotFound, QuotaDecision, resolve_limit, try_consume


def test_resolve_limit_prefers_persona_values(settings):
    assert resolve_limit("reply", settings, 7, 3) == 7
    assert resolve_limit("draft", settings, 7, 3) == 3


def test_resolve_limit_defaults(settings):
    assert resolve_limit("reply", settings, None, None) == settings.default_reply_quota
    assert resolve_limit("draft", settings, None, None) == settings.default_draft_quota
    assert resolve_limit("preview", settings, 7, 3) == settings.default_preview_quota


def test_remaining_never_negative():
    assert QuotaDecision(allowed=False, used=9, limit=5).remaining == 0
    assert QuotaDecision(allowed=True, used=2, limit=5).remaining == 3


@pytest.mark.asyncio
async def test_unknown_quota_type_is_rejected(settings):
    db = AsyncMock()
    with pytest.raises(ValueError, match="unknown quota type"):
        await try_consume(db, uuid.uuid4(), "likes", settings)
    db.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_persona_raises(settings):
    db = AsyncMock()
    result = MagicMock()
    result.one_or_none.return_value = None
    db.execute.return_value = result
    with pytest.raises(PersonaNotFound):
        await try_consume(db, uuid.uuid4(), "reply", settings)
