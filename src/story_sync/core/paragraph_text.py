"""Plain-text views and word metrics for paragraph text payloads."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from story_sync.domain.models import ParagraphText

_WORD_RE = re.compile(r"\S+")


@dataclass(frozen=True)
class WordCount:
    """Word and character totals for one text payload."""

    words: int
    characters: int


def plain_text(text: ParagraphText | None) -> str:
    """Flatten string or structured paragraph text into plain text.

    Structured payloads join their blocks with newlines; malformed pieces
    contribute nothing rather than failing.
    """
    if text is None:
        return ""
    if isinstance(text, str):
        return text
    blocks = text.get("content")
    if not isinstance(blocks, list):
        return ""
    return "\n".join(_block_text(block) for block in blocks)


def has_marks(text: ParagraphText | None) -> bool:
    """Return True when a structured payload carries inline formatting."""
    if not isinstance(text, Mapping):
        return False
    for block in text.get("content") or []:
        if not isinstance(block, Mapping):
            continue
        for node in block.get("content") or []:
            if isinstance(node, Mapping) and node.get("marks"):
                return True
    return False


def word_count(text: ParagraphText | None) -> WordCount:
    """Count words and non-whitespace characters."""
    flat = plain_text(text)
    words = _WORD_RE.findall(flat)
    return WordCount(words=len(words), characters=sum(len(word) for word in words))


def _block_text(block: Any) -> str:
    if not isinstance(block, Mapping):
        return ""
    content = block.get("content")
    if not isinstance(content, list):
        return ""
    parts: list[str] = []
    for node in content:
        if isinstance(node, Mapping) and isinstance(node.get("text"), str):
            parts.append(node["text"])
    return "".join(parts)
