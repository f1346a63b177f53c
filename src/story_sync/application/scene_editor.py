"""Scene editing session that keeps the document and the paragraph store in sync."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import replace

from story_sync.core.document_converter import (
    from_document,
    removed_paragraph_ids,
    to_document,
)
from story_sync.core.document_model import Document, paragraph_id_at_position
from story_sync.core.paragraph_text import plain_text
from story_sync.domain.models import Paragraph, utc_now_iso
from story_sync.domain.ports import ParagraphNotFoundError, ParagraphStore

logger = logging.getLogger(__name__)

Scheduler = Callable[[float, Callable[[], None]], object]

SPLIT_OVERLAP_RATIO = 0.8


def _int_env(name: str, default: int, *, minimum: int, maximum: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


def asyncio_scheduler(delay_seconds: float, callback: Callable[[], None]) -> object:
    """Run ``callback`` after a delay on the running loop, or immediately without one."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        callback()
        return None
    return loop.call_later(delay_seconds, callback)


class SceneEditorSession:
    """Bind one scene's paragraph store to an editable document.

    Local edits arrive as whole documents through ``apply_document`` and are
    written back as store mutations. Store notifications re-render the
    document, except while a local edit is being written; those
    notifications are deferred to a single re-check after the grace window.
    """

    def __init__(
        self,
        *,
        scene_id: str,
        store: ParagraphStore,
        schedule: Scheduler | None = None,
        grace_seconds: float | None = None,
    ) -> None:
        self._scene_id = scene_id
        self._store = store
        self._schedule = schedule or asyncio_scheduler
        if grace_seconds is None:
            grace_seconds = _int_env("STORY_SYNC_GRACE_MS", 50, minimum=0, maximum=5000) / 1000
        self._grace_seconds = grace_seconds
        self._last_known: list[Paragraph] = store.get(scene_id)
        self._document = to_document(self._last_known)
        self._internal_update = False
        self._refresh_pending = False
        self._focused_paragraph_id: str | None = None
        self._unsubscribe = store.subscribe(scene_id, self._on_store_change)

    @property
    def scene_id(self) -> str:
        return self._scene_id

    @property
    def document(self) -> Document:
        return self._document

    @property
    def last_known_paragraphs(self) -> list[Paragraph]:
        return list(self._last_known)

    @property
    def internal_update_in_progress(self) -> bool:
        return self._internal_update

    @property
    def focused_paragraph_id(self) -> str | None:
        return self._focused_paragraph_id

    def close(self) -> None:
        self._unsubscribe()

    def apply_document(self, document: Document) -> list[str]:
        """Write a locally edited document back to the store.

        Returns the IDs of paragraphs that were created or changed.
        """
        self._internal_update = True
        try:
            result = from_document(document, self._last_known)
            paragraphs, changed_ids, merged = self._merge_split_artifacts(
                result.paragraphs, result.changed_ids
            )
            self._write_to_store(paragraphs, changed_ids)
            self._last_known = paragraphs
            if merged:
                self._document = to_document(paragraphs)
            else:
                self._document = _adopt_paragraph_ids(document, paragraphs)
        finally:
            self._schedule(self._grace_seconds, self._end_internal_update)
        logger.debug(
            "scene_editor.applied scene_id=%s changed=%s", self._scene_id, len(changed_ids)
        )
        return changed_ids

    def refresh_from_store(self) -> bool:
        """Pull the store state; returns True when the document was re-rendered."""
        current = self._store.get(self._scene_id)
        if _text_signature(current) != _text_signature(self._last_known):
            self._last_known = current
            self._document = to_document(current)
            logger.debug("scene_editor.rerendered scene_id=%s", self._scene_id)
            return True
        document = self._document
        for paragraph in current:
            block = document.block_by_id(paragraph.id)
            if block is None:
                continue
            extra = paragraph.extra or None
            if block.extra != extra or block.extra_loading != paragraph.extra_loading:
                document = document.with_block_attrs(
                    paragraph.id, extra=extra, extra_loading=paragraph.extra_loading
                )
        self._document = document
        self._last_known = current
        return False

    def select_position(self, position: int) -> str | None:
        """Focus the paragraph strictly containing a document position."""
        paragraph_id = paragraph_id_at_position(self._document, position)
        if paragraph_id is not None:
            self.select_paragraph(paragraph_id)
        return paragraph_id

    def select_paragraph(self, paragraph_id: str | None) -> None:
        self._focused_paragraph_id = paragraph_id
        self._store.set_selected_paragraph(self._scene_id, paragraph_id)

    def _on_store_change(self, scene_id: str) -> None:
        if self._internal_update:
            self._refresh_pending = True
            return
        self.refresh_from_store()

    def _end_internal_update(self) -> None:
        self._internal_update = False
        if self._refresh_pending:
            self._refresh_pending = False
            self.refresh_from_store()

    def _merge_split_artifacts(
        self, paragraphs: list[Paragraph], changed_ids: list[str]
    ) -> tuple[list[Paragraph], list[str], bool]:
        """Fold a freshly split block back into the predecessor it emptied.

        A new paragraph that directly follows a known paragraph which just
        became empty, and that starts with most of that paragraph's previous
        text, is treated as the same paragraph rather than a duplicate.
        """
        previous_by_id: dict[str, Paragraph] = {}
        for paragraph in self._last_known:
            previous_by_id.setdefault(paragraph.id, paragraph)
        merged_paragraphs = list(paragraphs)
        merged_changed = list(changed_ids)
        merged = False
        index = 1
        while index < len(merged_paragraphs):
            candidate = merged_paragraphs[index]
            predecessor = merged_paragraphs[index - 1]
            previous = previous_by_id.get(predecessor.id)
            if (
                candidate.id in previous_by_id
                or previous is None
                or plain_text(predecessor.text).strip()
            ):
                index += 1
                continue
            before = plain_text(previous.text).strip()
            overlap = _leading_overlap(plain_text(candidate.text), before) if before else 0.0
            if overlap < SPLIT_OVERLAP_RATIO:
                index += 1
                continue
            logger.info(
                "scene_editor.split_artifact_merged scene_id=%s paragraph_id=%s",
                self._scene_id,
                predecessor.id,
            )
            merged_paragraphs[index - 1] = predecessor.model_copy(
                update={"text": candidate.text, "modified_at": utc_now_iso()}
            )
            del merged_paragraphs[index]
            merged_changed = [pid for pid in merged_changed if pid != candidate.id]
            if predecessor.id not in merged_changed:
                merged_changed.append(predecessor.id)
            merged = True
        return merged_paragraphs, merged_changed, merged

    def _write_to_store(self, paragraphs: Sequence[Paragraph], changed_ids: Sequence[str]) -> None:
        for paragraph_id in removed_paragraph_ids(self._last_known, paragraphs):
            try:
                self._store.remove(self._scene_id, paragraph_id)
            except ParagraphNotFoundError:
                logger.warning(
                    "scene_editor.remove_skipped scene_id=%s paragraph_id=%s",
                    self._scene_id,
                    paragraph_id,
                )

        known_ids = {paragraph.id for paragraph in self._last_known}
        changed = set(changed_ids)
        after_id: str | None = None
        for paragraph in paragraphs:
            if paragraph.id not in known_ids:
                self._store.insert(self._scene_id, paragraph, after_id=after_id)
            elif paragraph.id in changed:
                try:
                    self._store.update(self._scene_id, paragraph.id, {"text": paragraph.text})
                except ParagraphNotFoundError:
                    logger.warning(
                        "scene_editor.update_missing scene_id=%s paragraph_id=%s; reinserting",
                        self._scene_id,
                        paragraph.id,
                    )
                    self._store.insert(self._scene_id, paragraph, after_id=after_id)
            after_id = paragraph.id

        self._reorder_store([paragraph.id for paragraph in paragraphs])

    def _reorder_store(self, target_ids: Sequence[str]) -> None:
        current_ids = [paragraph.id for paragraph in self._store.get(self._scene_id)]
        for position, paragraph_id in enumerate(target_ids):
            if paragraph_id not in current_ids:
                continue
            index = current_ids.index(paragraph_id)
            while index > position:
                self._store.move(self._scene_id, paragraph_id, "up")
                current_ids[index - 1], current_ids[index] = (
                    current_ids[index],
                    current_ids[index - 1],
                )
                index -= 1


def _text_signature(paragraphs: Sequence[Paragraph]) -> list[tuple[str, object]]:
    return [(paragraph.id, paragraph.text) for paragraph in paragraphs]


def _leading_overlap(text: str, previous: str) -> float:
    text = text.strip()
    shared = 0
    for left, right in zip(text, previous):
        if left != right:
            break
        shared += 1
    return shared / len(previous)


def _adopt_paragraph_ids(document: Document, paragraphs: Sequence[Paragraph]) -> Document:
    if len(document.blocks) != len(paragraphs):
        return to_document(paragraphs)
    blocks = tuple(
        block if block.id == paragraph.id else replace(block, id=paragraph.id)
        for block, paragraph in zip(document.blocks, paragraphs)
    )
    return Document(blocks=blocks)
