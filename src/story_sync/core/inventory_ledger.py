"""Inventory quantities derived by replaying paragraph deltas in story order."""

from __future__ import annotations

from collections.abc import Iterable

from story_sync.core.story_tree import iter_paragraphs
from story_sync.domain.ports import SceneParagraphs


def get_items_at_paragraph(
    scenes: Iterable[SceneParagraphs], target_paragraph_id: str
) -> dict[str, int] | None:
    """Replay inventory actions up to and including the target paragraph.

    Quantities are signed; a removal past zero goes negative. Returns None
    when the target paragraph is not part of the story.
    """
    items: dict[str, int] = {}
    for _scene, paragraph in iter_paragraphs(scenes):
        for action in paragraph.inventory_actions:
            delta = action.item_amount if action.type == "add" else -action.item_amount
            items[action.item_name] = items.get(action.item_name, 0) + delta
        if paragraph.id == target_paragraph_id:
            return items
    return None
