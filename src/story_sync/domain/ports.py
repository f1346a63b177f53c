"""Ports for the paragraph store, story tree, and text generation."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from story_sync.domain.models import Paragraph, PlotPoint

MoveDirection = Literal["up", "down"]
StoreListener = Callable[[str], None]


class ParagraphNotFoundError(KeyError):
    """Raised when a store operation targets an unknown scene or paragraph."""


class GenerationServiceError(RuntimeError):
    """Raised when the text generation backend fails."""


@dataclass(frozen=True)
class SceneParagraphs:
    """One scene's paragraphs as yielded by canonical traversal."""

    scene_id: str
    title: str
    paragraphs: tuple[Paragraph, ...]


class ParagraphStore(Protocol):
    """Authoritative ordered paragraph list per scene."""

    def get(self, scene_id: str) -> list[Paragraph]:
        ...

    def insert(self, scene_id: str, paragraph: Paragraph, after_id: str | None = None) -> None:
        ...

    def update(self, scene_id: str, paragraph_id: str, changes: Mapping[str, Any]) -> Paragraph:
        ...

    def remove(self, scene_id: str, paragraph_id: str) -> None:
        ...

    def move(self, scene_id: str, paragraph_id: str, direction: MoveDirection) -> None:
        ...

    def set_selected_paragraph(self, scene_id: str, paragraph_id: str | None) -> None:
        ...

    def subscribe(self, scene_id: str, listener: StoreListener) -> Callable[[], None]:
        ...


class StoryTreeProvider(Protocol):
    """Read-only canonical traversal over the story tree."""

    def scenes_in_order(self) -> list[SceneParagraphs]:
        ...

    def plot_point_catalog(self) -> Mapping[str, PlotPoint]:
        ...


class GenerationService(Protocol):
    """Asynchronous text-in/text-out generation backend."""

    async def generate(self, kind: str, context_blocks: Sequence[str]) -> str:
        ...
