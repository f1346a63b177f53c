"""Bidirectional mapping between paragraph records and the scene document."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from story_sync.core.document_model import (
    Block,
    Document,
    DocumentSchemaError,
    TextNode,
    content_to_json,
    node_from_json,
)
from story_sync.core.paragraph_text import has_marks, plain_text
from story_sync.domain.models import Paragraph, new_paragraph_id, utc_now_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionResult:
    """Paragraphs in document order plus the IDs whose content changed."""

    paragraphs: list[Paragraph]
    changed_ids: list[str]


def empty_document() -> Document:
    """Single empty block with a fresh ID, so an empty scene stays editable."""
    return Document(blocks=(Block(id=new_paragraph_id()),))


def to_document(paragraphs: Sequence[Paragraph]) -> Document:
    """Render one block per paragraph, in order."""
    if not paragraphs:
        return empty_document()
    blocks = tuple(_paragraph_to_block(paragraph) for paragraph in _unique_by_id(paragraphs))
    try:
        return _assemble_document(blocks)
    except DocumentSchemaError as exc:
        logger.error(
            "document.build_failed paragraphs=%s error=%s; using empty document",
            len(paragraphs),
            exc,
        )
        return empty_document()


def from_document(document: Document, previous: Sequence[Paragraph]) -> ConversionResult:
    """Reconcile an edited document against the last-known paragraph snapshot.

    Unchanged paragraphs are returned as the identical record objects.
    Paragraphs missing from the document are not reported here; see
    ``removed_paragraph_ids``.
    """
    existing_by_id: dict[str, Paragraph] = {}
    for paragraph in previous:
        existing_by_id.setdefault(paragraph.id, paragraph)
    seen: set[str] = set()
    paragraphs: list[Paragraph] = []
    changed_ids: list[str] = []

    for block in document.blocks:
        paragraph_id = block.id
        if not paragraph_id or paragraph_id in seen:
            paragraph_id = new_paragraph_id()
        seen.add(paragraph_id)

        node_text = block.text_content
        stored_text: str | dict[str, Any] = (
            content_to_json(block.content) if block.has_marks else node_text
        )
        existing = existing_by_id.get(paragraph_id)

        if existing is None:
            changed_ids.append(paragraph_id)
            paragraphs.append(
                Paragraph(
                    id=paragraph_id,
                    text=stored_text,
                    state="draft",
                    comments=[],
                    extra=block.extra or None,
                    extra_loading=block.extra_loading,
                    modified_at=utc_now_iso(),
                )
            )
            continue

        text_changed = plain_text(existing.text) != node_text
        attrs_changed = (block.extra or None) != (existing.extra or None) or (
            block.extra_loading != existing.extra_loading
        )
        marks_changed = _marks_changed(existing, block)
        if not (text_changed or attrs_changed or marks_changed):
            paragraphs.append(existing)
            continue

        changed_ids.append(paragraph_id)
        updates: dict[str, Any] = {
            "text": stored_text,
            "extra": block.extra or existing.extra,
            "extra_loading": block.extra_loading or existing.extra_loading,
        }
        if text_changed:
            updates["modified_at"] = utc_now_iso()
        paragraphs.append(existing.model_copy(update=updates))

    return ConversionResult(paragraphs=paragraphs, changed_ids=changed_ids)


def removed_paragraph_ids(
    previous: Sequence[Paragraph], paragraphs: Sequence[Paragraph]
) -> list[str]:
    """IDs present before but not produced by any block, in previous order."""
    kept = {paragraph.id for paragraph in paragraphs}
    return [paragraph.id for paragraph in previous if paragraph.id not in kept]


def _paragraph_to_block(paragraph: Paragraph) -> Block:
    return Block(
        id=paragraph.id or new_paragraph_id(),
        content=_inline_content(paragraph),
        extra=paragraph.extra or None,
        extra_loading=paragraph.extra_loading,
    )


def _inline_content(paragraph: Paragraph) -> tuple[TextNode, ...]:
    if isinstance(paragraph.text, str):
        return (TextNode(paragraph.text),) if paragraph.text else ()
    try:
        parsed = node_from_json(paragraph.text)
    except DocumentSchemaError as exc:
        logger.warning(
            "document.paragraph_parse_failed paragraph_id=%s error=%s", paragraph.id, exc
        )
        return ()
    # A scene paragraph never spans more than one rendered block.
    return parsed[0].content if parsed else ()


def _assemble_document(blocks: tuple[Block, ...]) -> Document:
    seen: set[str] = set()
    for block in blocks:
        if block.id is None:
            raise DocumentSchemaError("Every block must carry a paragraph ID.")
        if block.id in seen:
            raise DocumentSchemaError(f"Duplicate paragraph ID in scene: {block.id}")
        seen.add(block.id)
    return Document(blocks=blocks)


def _unique_by_id(paragraphs: Sequence[Paragraph]) -> list[Paragraph]:
    """First record per ID; later repeats stay in the store but are not rendered."""
    seen: set[str] = set()
    unique: list[Paragraph] = []
    for paragraph in paragraphs:
        if paragraph.id and paragraph.id in seen:
            logger.warning("document.duplicate_paragraph_skipped paragraph_id=%s", paragraph.id)
            continue
        seen.add(paragraph.id)
        unique.append(paragraph)
    return unique


def _marks_changed(existing: Paragraph, block: Block) -> bool:
    if has_marks(existing.text) != block.has_marks:
        return True
    if not block.has_marks or isinstance(existing.text, str):
        return False
    try:
        parsed = node_from_json(existing.text)
    except DocumentSchemaError:
        return True
    existing_content = parsed[0].content if parsed else ()
    return existing_content != block.content
