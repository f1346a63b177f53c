"""Canonical depth-first traversal over the story forest."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence

from story_sync.domain.models import Paragraph, StoryNode, StoryNodeType
from story_sync.domain.ports import SceneParagraphs


def items_in_order(structure: Sequence[StoryNode], node_type: StoryNodeType) -> list[StoryNode]:
    """Collect nodes of one type, depth-first, children in stored order."""
    items: list[StoryNode] = []

    def _traverse(node: StoryNode) -> None:
        if node.type == node_type:
            items.append(node)
        for child in node.children:
            _traverse(child)

    for root in structure:
        _traverse(root)
    return items


def find_path_to_node(structure: Sequence[StoryNode], node_id: str) -> list[StoryNode]:
    """Return the root-to-node path, or an empty list when the ID is unknown."""
    path: list[StoryNode] = []

    def _find(node: StoryNode) -> bool:
        path.append(node)
        if node.id == node_id:
            return True
        for child in node.children:
            if _find(child):
                return True
        path.pop()
        return False

    for root in structure:
        if _find(root):
            return path
    return []


def find_node(structure: Sequence[StoryNode], node_id: str) -> StoryNode | None:
    path = find_path_to_node(structure, node_id)
    return path[-1] if path else None


def find_parent(structure: Sequence[StoryNode], node_id: str) -> StoryNode | None:
    path = find_path_to_node(structure, node_id)
    return path[-2] if len(path) >= 2 else None


def iter_paragraphs(
    scenes: Iterable[SceneParagraphs],
) -> Iterator[tuple[SceneParagraphs, Paragraph]]:
    """Flatten scenes into the canonical global paragraph sequence."""
    for scene in scenes:
        for paragraph in scene.paragraphs:
            yield scene, paragraph
