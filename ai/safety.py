# ai/safety.py
"""
Content checks applied to every generated artifact before it is stored.
"""
from __future__ import annotations

import re

PROFANITY_PATTERN = re.compile(r"\b(fuck|shit|bitch|asshole|dick)\b", re.IGNORECASE)
LINK_PATTERN = re.compile(r"https?://|www\.", re.IGNORECASE)
MAX_LINKS = 2


class ContentRejected(ValueError):
    """Generated text failed a safety or length check."""


def validate_content(content: str, max_len: int) -> str:
    """Return the trimmed content, or raise ContentRejected."""
    trimmed = (content or "").strip()
    if not trimmed:
        raise ContentRejected("content cannot be empty")
    if len(trimmed) > max_len:
        raise ContentRejected("content exceeds max length")
    if PROFANITY_PATTERN.search(trimmed):
        raise ContentRejected("content failed profanity check")
    if len(LINK_PATTERN.findall(trimmed)) > MAX_LINKS:
        raise ContentRejected("content failed link spam check")
    return trimmed


def truncate_text(value: str, max_chars: int) -> str:
    trimmed = (value or "").strip()
    if max_chars <= 0 or len(trimmed) <= max_chars:
        return trimmed
    return trimmed[:max_chars].strip()


def truncate_words(value: str, max_words: int) -> str:
    words = (value or "").split()
    if max_words <= 0 or len(words) <= max_words:
        return " ".join(words)
    return " ".join(words[:max_words])
