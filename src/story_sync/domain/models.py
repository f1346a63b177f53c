"""Core story domain models: paragraphs, scenes, and the story tree."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

ParagraphState = Literal["draft", "revise", "ai", "final", "sdt"]
InventoryDirection = Literal["add", "remove"]
PlotPointActionName = Literal["introduce", "mentioned", "partially resolved", "resolved"]
StoryNodeType = Literal["book", "arc", "chapter", "scene", "context"]
ParagraphText = str | dict[str, Any]


def utc_now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 form."""
    return datetime.now(UTC).isoformat()


def new_paragraph_id() -> str:
    """Generate an opaque identifier for a paragraph or tree node."""
    return uuid4().hex


class DomainModel(BaseModel):
    """Strict model configuration for persisted story records."""

    model_config = ConfigDict(extra="forbid")


class InventoryAction(DomainModel):
    """One inventory delta recorded on a paragraph."""

    type: InventoryDirection
    item_name: str = Field(min_length=1, max_length=200)
    item_amount: int


class PlotPointAction(DomainModel):
    """One plot-point lifecycle action recorded on a paragraph."""

    plot_point_id: str = Field(min_length=1)
    action: PlotPointActionName


class ParagraphComment(DomainModel):
    """Reviewer note attached to a paragraph."""

    text: str
    user: str
    created_at: str = Field(default_factory=utc_now_iso)


class Paragraph(DomainModel):
    """The persisted unit of scene content; rendered 1:1 as one block.

    ``text`` is either a plain string or the structured rich-text JSON
    payload produced by the editing surface when inline marks are present.
    """

    id: str = Field(min_length=1)
    text: ParagraphText = ""
    state: ParagraphState = "draft"
    comments: list[ParagraphComment] = Field(default_factory=list)
    extra: str | None = None
    extra_loading: bool = False
    translation: str | None = None
    inventory_actions: list[InventoryAction] = Field(default_factory=list)
    plot_point_actions: list[PlotPointAction] = Field(default_factory=list)
    modified_at: str | None = None
    words: int | None = None
    ai_characters: int | None = None
    human_characters: int | None = None


class Scene(DomainModel):
    """Ordered paragraph container for one leaf of the story tree."""

    id: str = Field(min_length=1)
    title: str = ""
    paragraphs: list[Paragraph] = Field(default_factory=list)
    selected_paragraph: str | None = None
    words: int = 0
    has_ai: bool = False
    modified_at: str | None = None


class StoryNode(DomainModel):
    """Node of the ordered story forest; scenes are leaves."""

    id: str = Field(min_length=1)
    type: StoryNodeType
    name: str = ""
    node_type: Literal["story", "non-story"] = "story"
    is_open: bool = True
    children: list[StoryNode] = Field(default_factory=list)


class PlotPoint(DomainModel):
    """Plot thread whose lifecycle is derived from paragraph actions."""

    id: str = Field(min_length=1)
    title: str
    summary: str = ""


class WorkspaceSnapshot(DomainModel):
    """Serializable whole-story state: tree, scene contents, plot points."""

    structure: list[StoryNode] = Field(default_factory=list)
    scenes: dict[str, Scene] = Field(default_factory=dict)
    plot_points: dict[str, PlotPoint] = Field(default_factory=dict)
