"""AI suggestion lifecycle for paragraphs: request, cancel, accept, reject."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal
from uuid import uuid4

from story_sync.core.diff_engine import DiffPart, diff_paragraph
from story_sync.core.document_model import Document
from story_sync.core.paragraph_text import word_count
from story_sync.domain.models import Paragraph
from story_sync.domain.ports import (
    GenerationService,
    ParagraphNotFoundError,
    ParagraphStore,
)

logger = logging.getLogger(__name__)

SuggestionStatus = Literal["none", "loading", "available"]


class SuggestionGenerationError(RuntimeError):
    """Raised when a suggestion request fails; the loading flag is already cleared."""


@dataclass(frozen=True)
class SuggestionView:
    """What the editing surface shows under one paragraph."""

    paragraph_id: str
    content: str
    is_loading: bool
    parts: tuple[DiffPart, ...] = ()


class SuggestionLifecycleManager:
    """Drive the per-paragraph suggestion state through the paragraph store.

    Each request carries a token; a result that arrives after a newer
    request or a cancellation for the same paragraph is discarded.
    """

    def __init__(
        self, *, scene_id: str, store: ParagraphStore, generator: GenerationService
    ) -> None:
        self._scene_id = scene_id
        self._store = store
        self._generator = generator
        self._tokens: dict[str, str] = {}

    def status(self, paragraph_id: str) -> SuggestionStatus:
        paragraph = self._paragraph(paragraph_id)
        if paragraph.extra_loading:
            return "loading"
        if paragraph.extra:
            return "available"
        return "none"

    async def request(
        self, paragraph_id: str, kind: str, context_blocks: Sequence[str] = ()
    ) -> str | None:
        """Generate a suggestion and store it; returns None for a superseded request."""
        self._store.update(self._scene_id, paragraph_id, {"extra": None, "extra_loading": True})
        token = uuid4().hex
        self._tokens[paragraph_id] = token
        logger.info(
            "suggestion.requested scene_id=%s paragraph_id=%s kind=%s",
            self._scene_id,
            paragraph_id,
            kind,
        )
        try:
            suggestion = await self._generator.generate(kind, list(context_blocks))
        except asyncio.CancelledError:
            if self._is_current(paragraph_id, token):
                self._tokens.pop(paragraph_id, None)
                self._clear_loading(paragraph_id)
            raise
        except Exception as exc:
            if not self._is_current(paragraph_id, token):
                logger.info("suggestion.stale_failure paragraph_id=%s", paragraph_id)
                return None
            self._tokens.pop(paragraph_id, None)
            self._clear_loading(paragraph_id)
            logger.warning("suggestion.failed paragraph_id=%s error=%s", paragraph_id, exc)
            raise SuggestionGenerationError(
                f"Suggestion for paragraph {paragraph_id} failed: {exc}"
            ) from exc

        if not self._is_current(paragraph_id, token):
            logger.info("suggestion.discarded_stale paragraph_id=%s", paragraph_id)
            return None
        self._tokens.pop(paragraph_id, None)
        try:
            self._store.update(
                self._scene_id, paragraph_id, {"extra": suggestion, "extra_loading": False}
            )
        except ParagraphNotFoundError:
            logger.info("suggestion.paragraph_gone paragraph_id=%s", paragraph_id)
            return None
        logger.info(
            "suggestion.ready paragraph_id=%s characters=%s", paragraph_id, len(suggestion)
        )
        return suggestion

    def cancel(self, paragraph_id: str) -> None:
        """Drop any in-flight request so its result is ignored on arrival."""
        self._tokens.pop(paragraph_id, None)
        if self._paragraph(paragraph_id).extra_loading:
            self._clear_loading(paragraph_id)

    def accept(self, paragraph_id: str) -> Paragraph | None:
        """Replace the paragraph text with its suggestion; the state is kept.

        The accepted text is credited to the AI character count.
        """
        paragraph = self._paragraph(paragraph_id)
        if not paragraph.extra:
            return None
        self._tokens.pop(paragraph_id, None)
        logger.info("suggestion.accepted paragraph_id=%s", paragraph_id)
        return self._store.update(
            self._scene_id,
            paragraph_id,
            {
                "text": paragraph.extra,
                "state": paragraph.state,
                "ai_characters": word_count(paragraph.extra).characters,
                "human_characters": 0,
                "extra": None,
                "extra_loading": False,
            },
        )

    def reject(self, paragraph_id: str) -> None:
        self._tokens.pop(paragraph_id, None)
        self._store.update(self._scene_id, paragraph_id, {"extra": None, "extra_loading": False})
        logger.info("suggestion.rejected paragraph_id=%s", paragraph_id)

    def _is_current(self, paragraph_id: str, token: str) -> bool:
        return self._tokens.get(paragraph_id) == token

    def _clear_loading(self, paragraph_id: str) -> None:
        try:
            self._store.update(self._scene_id, paragraph_id, {"extra_loading": False})
        except ParagraphNotFoundError:
            logger.info("suggestion.paragraph_gone paragraph_id=%s", paragraph_id)

    def _paragraph(self, paragraph_id: str) -> Paragraph:
        for paragraph in self._store.get(self._scene_id):
            if paragraph.id == paragraph_id:
                return paragraph
        raise ParagraphNotFoundError(
            f"Paragraph {paragraph_id} not found in scene {self._scene_id}"
        )


def visible_suggestions(
    document: Document, focused_paragraph_id: str | None
) -> list[SuggestionView]:
    """Suggestion widgets to render: loading blocks, plus the focused block's suggestion."""
    views: list[SuggestionView] = []
    for block in document.blocks:
        if block.id is None:
            continue
        has_content = bool(block.extra and block.extra.strip())
        if block.extra_loading:
            views.append(SuggestionView(paragraph_id=block.id, content="", is_loading=True))
        elif has_content and block.id == focused_paragraph_id:
            views.append(
                SuggestionView(
                    paragraph_id=block.id,
                    content=block.extra or "",
                    is_loading=False,
                    parts=tuple(diff_paragraph(block.text_content, block.extra or "")),
                )
            )
    return views
