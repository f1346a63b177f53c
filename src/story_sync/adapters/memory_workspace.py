"""In-memory story workspace: paragraph store plus story tree provider."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError

from story_sync.core.paragraph_text import word_count
from story_sync.core.story_tree import find_node, find_parent, items_in_order
from story_sync.domain.models import (
    InventoryAction,
    Paragraph,
    PlotPoint,
    PlotPointAction,
    Scene,
    StoryNode,
    WorkspaceSnapshot,
    new_paragraph_id,
    utc_now_iso,
)
from story_sync.domain.ports import (
    MoveDirection,
    ParagraphNotFoundError,
    SceneParagraphs,
    StoreListener,
)

logger = logging.getLogger(__name__)


class InMemoryStoryWorkspace:
    """Hold the story tree, scene paragraphs, and plot points for one story.

    Mutations replace paragraph records rather than editing them in place,
    and subscribers for the affected scene are notified synchronously after
    every paragraph mutation.
    """

    def __init__(self, snapshot: WorkspaceSnapshot | None = None) -> None:
        source = snapshot or WorkspaceSnapshot()
        self._structure = [node.model_copy(deep=True) for node in source.structure]
        self._scenes = {
            scene_id: scene.model_copy(deep=True) for scene_id, scene in source.scenes.items()
        }
        self._plot_points = dict(source.plot_points)
        self._listeners: dict[str, list[StoreListener]] = {}

    # ------------------------------------------------------------------
    # Tree and catalog
    # ------------------------------------------------------------------
    @property
    def structure(self) -> list[StoryNode]:
        return self._structure

    def add_node(
        self, node: StoryNode, *, parent_id: str | None = None, after_id: str | None = None
    ) -> None:
        """Attach a node to the tree; scene nodes get an empty scene record."""
        if parent_id is None:
            siblings = self._structure
        else:
            parent = find_node(self._structure, parent_id)
            if parent is None:
                raise ValueError(f"Unknown parent node: {parent_id}")
            siblings = parent.children
        _insert_sibling(siblings, node, after_id)
        if node.type == "scene" and node.id not in self._scenes:
            self._scenes[node.id] = Scene(id=node.id, title=node.name, modified_at=utc_now_iso())

    def add_plot_point(self, plot_point: PlotPoint) -> None:
        self._plot_points[plot_point.id] = plot_point

    def scene(self, scene_id: str) -> Scene:
        scene = self._scenes.get(scene_id)
        if scene is None:
            raise ParagraphNotFoundError(f"Unknown scene: {scene_id}")
        return scene

    def snapshot(self) -> WorkspaceSnapshot:
        """Export the whole workspace as a serializable snapshot."""
        return WorkspaceSnapshot(
            structure=[node.model_copy(deep=True) for node in self._structure],
            scenes={
                scene_id: scene.model_copy(deep=True) for scene_id, scene in self._scenes.items()
            },
            plot_points=dict(self._plot_points),
        )

    def scenes_in_order(self) -> list[SceneParagraphs]:
        """Scenes in canonical order; tree nodes without a scene record are skipped."""
        ordered: list[SceneParagraphs] = []
        for node in items_in_order(self._structure, "scene"):
            scene = self._scenes.get(node.id)
            if scene is None:
                logger.debug("workspace.scene_missing scene_id=%s", node.id)
                continue
            ordered.append(
                SceneParagraphs(
                    scene_id=scene.id,
                    title=scene.title or node.name,
                    paragraphs=tuple(scene.paragraphs),
                )
            )
        return ordered

    def plot_point_catalog(self) -> Mapping[str, PlotPoint]:
        return dict(self._plot_points)

    # ------------------------------------------------------------------
    # Paragraph store
    # ------------------------------------------------------------------
    def get(self, scene_id: str) -> list[Paragraph]:
        return list(self.scene(scene_id).paragraphs)

    def insert(self, scene_id: str, paragraph: Paragraph, after_id: str | None = None) -> None:
        """Insert after ``after_id``; unknown or missing anchors append at the end."""
        scene = self.scene(scene_id)
        if any(existing.id == paragraph.id for existing in scene.paragraphs):
            raise ValueError(f"Paragraph {paragraph.id} already exists in scene {scene_id}")
        insert_index = len(scene.paragraphs)
        if after_id is not None:
            anchor = _index_of(scene.paragraphs, after_id)
            if anchor >= 0:
                insert_index = anchor + 1
        counts = word_count(paragraph.text)
        accounting: dict[str, Any] = {"words": counts.words}
        if paragraph.state == "ai":
            accounting["ai_characters"] = counts.characters
        else:
            accounting["human_characters"] = counts.characters
        scene.paragraphs.insert(insert_index, paragraph.model_copy(update=accounting))
        self._after_paragraph_change(scene)

    def update(self, scene_id: str, paragraph_id: str, changes: Mapping[str, Any]) -> Paragraph:
        """Merge field changes into one paragraph and return the new record."""
        scene = self.scene(scene_id)
        index = self._require_index(scene, paragraph_id)
        current = scene.paragraphs[index]
        updates = dict(changes)
        updates.pop("id", None)
        if "text" in changes:
            accounting = _text_accounting(current, changes)
            updates.update({key: value for key, value in accounting.items() if key not in changes})
        if "state" in changes and changes["state"] != current.state:
            updates.update(_state_accounting(changes["state"], updates.get("text", current.text)))
        try:
            updated = Paragraph.model_validate({**current.model_dump(), **updates})
        except ValidationError as exc:
            raise ValueError(f"Invalid paragraph update for {paragraph_id}: {exc}") from exc
        scene.paragraphs[index] = updated
        self._after_paragraph_change(scene)
        return updated

    def remove(self, scene_id: str, paragraph_id: str) -> None:
        scene = self.scene(scene_id)
        index = self._require_index(scene, paragraph_id)
        del scene.paragraphs[index]
        if scene.selected_paragraph == paragraph_id:
            scene.selected_paragraph = None
        self._after_paragraph_change(scene)

    def move(self, scene_id: str, paragraph_id: str, direction: MoveDirection) -> None:
        """Swap a paragraph with its neighbour; moving past either edge is a no-op."""
        scene = self.scene(scene_id)
        index = self._require_index(scene, paragraph_id)
        target = index - 1 if direction == "up" else index + 1
        if target < 0 or target >= len(scene.paragraphs):
            return
        paragraphs = scene.paragraphs
        paragraphs[index], paragraphs[target] = paragraphs[target], paragraphs[index]
        self._after_paragraph_change(scene)

    def set_selected_paragraph(self, scene_id: str, paragraph_id: str | None) -> None:
        self.scene(scene_id).selected_paragraph = paragraph_id

    def subscribe(self, scene_id: str, listener: StoreListener) -> Callable[[], None]:
        listeners = self._listeners.setdefault(scene_id, [])
        listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Paragraph annotations
    # ------------------------------------------------------------------
    def add_inventory_action(
        self, scene_id: str, paragraph_id: str, action: InventoryAction
    ) -> Paragraph:
        current = self._paragraph(scene_id, paragraph_id)
        return self.update(
            scene_id,
            paragraph_id,
            {"inventory_actions": [*current.inventory_actions, action]},
        )

    def remove_inventory_action(
        self, scene_id: str, paragraph_id: str, item_name: str
    ) -> Paragraph:
        current = self._paragraph(scene_id, paragraph_id)
        kept = [action for action in current.inventory_actions if action.item_name != item_name]
        return self.update(scene_id, paragraph_id, {"inventory_actions": kept})

    def add_plot_point_action(
        self, scene_id: str, paragraph_id: str, action: PlotPointAction
    ) -> Paragraph:
        current = self._paragraph(scene_id, paragraph_id)
        return self.update(
            scene_id,
            paragraph_id,
            {"plot_point_actions": [*current.plot_point_actions, action]},
        )

    def remove_plot_point_action(
        self, scene_id: str, paragraph_id: str, plot_point_id: str
    ) -> Paragraph:
        current = self._paragraph(scene_id, paragraph_id)
        kept = [
            action for action in current.plot_point_actions if action.plot_point_id != plot_point_id
        ]
        return self.update(scene_id, paragraph_id, {"plot_point_actions": kept})

    def split_scene(self, scene_id: str, paragraph_id: str, new_title: str) -> str:
        """Move paragraphs from ``paragraph_id`` onward into a new sibling scene."""
        scene = self.scene(scene_id)
        index = self._require_index(scene, paragraph_id)
        parent = find_parent(self._structure, scene_id)
        if parent is None:
            raise ValueError(f"Scene {scene_id} has no parent node in the story tree.")
        new_scene_id = new_paragraph_id()
        moved = scene.paragraphs[index:]
        scene.paragraphs = scene.paragraphs[:index]
        if scene.selected_paragraph in {paragraph.id for paragraph in moved}:
            scene.selected_paragraph = None
        self._scenes[new_scene_id] = Scene(id=new_scene_id, title=new_title, paragraphs=moved)
        _insert_sibling(
            parent.children,
            StoryNode(id=new_scene_id, type="scene", name=new_title),
            scene_id,
        )
        logger.info(
            "workspace.scene_split scene_id=%s new_scene_id=%s moved=%s",
            scene_id,
            new_scene_id,
            len(moved),
        )
        self._after_paragraph_change(scene)
        self._after_paragraph_change(self._scenes[new_scene_id])
        return new_scene_id

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _paragraph(self, scene_id: str, paragraph_id: str) -> Paragraph:
        scene = self.scene(scene_id)
        return scene.paragraphs[self._require_index(scene, paragraph_id)]

    @staticmethod
    def _require_index(scene: Scene, paragraph_id: str) -> int:
        index = _index_of(scene.paragraphs, paragraph_id)
        if index < 0:
            raise ParagraphNotFoundError(f"Paragraph {paragraph_id} not found in scene {scene.id}")
        return index

    def _after_paragraph_change(self, scene: Scene) -> None:
        scene.words = sum(paragraph.words or 0 for paragraph in scene.paragraphs)
        scene.has_ai = any(paragraph.state == "ai" for paragraph in scene.paragraphs)
        scene.modified_at = utc_now_iso()
        for listener in list(self._listeners.get(scene.id, [])):
            listener(scene.id)


def _index_of(paragraphs: list[Paragraph], paragraph_id: str) -> int:
    for index, paragraph in enumerate(paragraphs):
        if paragraph.id == paragraph_id:
            return index
    return -1


def _insert_sibling(siblings: list[StoryNode], node: StoryNode, after_id: str | None) -> None:
    if after_id is not None:
        for index, sibling in enumerate(siblings):
            if sibling.id == after_id:
                siblings.insert(index + 1, node)
                return
    siblings.append(node)


def _text_accounting(current: Paragraph, changes: Mapping[str, Any]) -> dict[str, Any]:
    """Track human versus AI characters across a text edit.

    Added characters count as human unless the change carries its own
    character counts. Removed characters are taken from the
    AI share first. Once human characters exceed AI characters the paragraph
    falls back to ``draft`` unless the change sets a state explicitly.
    """
    new_counts = word_count(changes["text"])
    current_counts = word_count(current.text)
    ai_characters = current.ai_characters
    if ai_characters is None:
        ai_characters = current_counts.characters if current.state == "ai" else 0
    human_characters = current.human_characters
    if human_characters is None:
        human_characters = 0 if current.state == "ai" else current_counts.characters

    difference = new_counts.characters - current_counts.characters
    if difference >= 0:
        human_characters += difference
    else:
        remaining_ai = max(0, ai_characters + difference)
        remaining_difference = difference + (ai_characters - remaining_ai)
        ai_characters = remaining_ai
        human_characters = max(0, human_characters + remaining_difference)

    accounting: dict[str, Any] = {
        "words": new_counts.words,
        "ai_characters": ai_characters,
        "human_characters": human_characters,
        "modified_at": utc_now_iso(),
    }
    if "state" not in changes and human_characters and ai_characters:
        if human_characters > ai_characters:
            accounting["state"] = "draft"
    return accounting


def _state_accounting(state: str, text: Any) -> dict[str, Any]:
    characters = word_count(text).characters
    if state == "ai":
        return {"ai_characters": characters, "human_characters": 0}
    return {"ai_characters": 0, "human_characters": characters}
