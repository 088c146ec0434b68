"""Composer text helpers: sentence word extraction and answer normalization."""

from __future__ import annotations

import re

_WORD_RE = re.compile(r"[A-Za-z']+")


def normalize_composer_text(value: str) -> str:
    return value.strip().lower()


def extract_sentence_words(sentence: str) -> list[str]:
    """Distinct normalized words of the hidden sentence, in order of appearance."""
    seen: dict[str, None] = {}
    for match in _WORD_RE.findall(sentence):
        seen.setdefault(normalize_composer_text(match), None)
    return list(seen)
