"""Readable change sets between an original paragraph and a suggested rewrite."""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Final, Literal

DiffPartType = Literal["equal", "delete", "insert"]

WHOLESALE_CHANGE_RATIO: Final[float] = 0.6
_SENTENCE_RE = re.compile(r"(\S.+?[.!?])(?=\s+|$)")
_WORD_TOKEN_RE = re.compile(r"\w+|\s+|[^\w\s]")
_CSS_CLASS: Final[dict[DiffPartType, str]] = {
    "equal": "",
    "delete": "diff-delete",
    "insert": "diff-insert",
}


@dataclass(frozen=True)
class DiffPart:
    """One span of a rendered diff."""

    type: DiffPartType
    text: str


def diff_paragraph(original: str, suggested: str) -> list[DiffPart]:
    """Diff two paragraph texts, preferring sentence-granularity grouping.

    When most sentences changed and the wording is also mostly different,
    the result is one ``delete`` of the whole original followed by one
    ``insert`` of the whole suggestion. Otherwise changed sentence runs are
    refined to word granularity and regrouped so deletions precede insertions.
    """
    if original == suggested:
        return [DiffPart("equal", original)] if original else []
    sentence_parts = _diff_tokens(_sentence_tokens(original), _sentence_tokens(suggested))
    if (
        _changed_fraction(sentence_parts) > WHOLESALE_CHANGE_RATIO
        and _word_change_ratio(original, suggested) > WHOLESALE_CHANGE_RATIO
    ):
        return _wholesale(original, suggested)
    return group_consecutive_changes(_refine_changed_runs(sentence_parts))


def group_consecutive_changes(parts: list[DiffPart]) -> list[DiffPart]:
    """Collapse every run of changes into one delete followed by one insert."""
    grouped: list[DiffPart] = []
    index = 0
    while index < len(parts):
        current = parts[index]
        if current.type == "equal":
            _append_equal(grouped, current.text)
            index += 1
            continue
        deleted: list[str] = []
        inserted: list[str] = []
        while index < len(parts) and parts[index].type != "equal":
            if parts[index].type == "delete":
                deleted.append(parts[index].text)
            else:
                inserted.append(parts[index].text)
            index += 1
        if "".join(deleted):
            grouped.append(DiffPart("delete", "".join(deleted)))
        if "".join(inserted):
            grouped.append(DiffPart("insert", "".join(inserted)))
    return grouped


def render_diff_html(parts: list[DiffPart]) -> str:
    """Render diff parts as escaped spans for the suggestion widget."""
    rendered: list[str] = []
    for part in parts:
        css_class = _CSS_CLASS[part.type]
        text = html.escape(part.text)
        if css_class:
            rendered.append(f'<span class="{css_class}">{text}</span>')
        else:
            rendered.append(f"<span>{text}</span>")
    return "".join(rendered)


def _sentence_tokens(text: str) -> list[str]:
    return [token for token in _SENTENCE_RE.split(text) if token]


def _word_tokens(text: str) -> list[str]:
    return _WORD_TOKEN_RE.findall(text)


def _diff_tokens(source: list[str], target: list[str]) -> list[DiffPart]:
    matcher = SequenceMatcher(None, source, target, autojunk=False)
    parts: list[DiffPart] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            parts.append(DiffPart("equal", "".join(source[i1:i2])))
            continue
        if tag in {"delete", "replace"}:
            parts.append(DiffPart("delete", "".join(source[i1:i2])))
        if tag in {"insert", "replace"}:
            parts.append(DiffPart("insert", "".join(target[j1:j2])))
    return parts


def _changed_fraction(parts: list[DiffPart]) -> float:
    if not parts:
        return 0.0
    changed = sum(1 for part in parts if part.type != "equal")
    return changed / len(parts)


def _word_change_ratio(original: str, suggested: str) -> float:
    source = [token for token in _word_tokens(original) if not token.isspace()]
    target = [token for token in _word_tokens(suggested) if not token.isspace()]
    if not source and not target:
        return 0.0
    return 1.0 - SequenceMatcher(None, source, target, autojunk=False).ratio()


def _refine_changed_runs(parts: list[DiffPart]) -> list[DiffPart]:
    refined: list[DiffPart] = []
    index = 0
    while index < len(parts):
        if parts[index].type == "equal":
            refined.append(parts[index])
            index += 1
            continue
        run: list[DiffPart] = []
        while index < len(parts) and parts[index].type != "equal":
            run.append(parts[index])
            index += 1
        deleted = "".join(part.text for part in run if part.type == "delete")
        inserted = "".join(part.text for part in run if part.type == "insert")
        if deleted and inserted:
            refined.extend(_diff_tokens(_word_tokens(deleted), _word_tokens(inserted)))
        else:
            refined.extend(run)
    return refined


def _wholesale(original: str, suggested: str) -> list[DiffPart]:
    parts: list[DiffPart] = []
    if original:
        parts.append(DiffPart("delete", original))
    if suggested:
        parts.append(DiffPart("insert", suggested))
    return parts


def _append_equal(parts: list[DiffPart], text: str) -> None:
    if not text:
        return
    if parts and parts[-1].type == "equal":
        parts[-1] = DiffPart("equal", parts[-1].text + text)
        return
    parts.append(DiffPart("equal", text))
