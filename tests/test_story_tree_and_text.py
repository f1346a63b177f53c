from __future__ import annotations

from story_sync.core.paragraph_text import has_marks, plain_text, word_count
from story_sync.core.story_tree import find_node, find_parent, find_path_to_node, items_in_order
from story_sync.domain.models import StoryNode


def _structure() -> list[StoryNode]:
    return [
        StoryNode(
            id="book",
            type="book",
            name="Book",
            children=[
                StoryNode(
                    id="arc",
                    type="arc",
                    name="Arc",
                    children=[
                        StoryNode(
                            id="ch1",
                            type="chapter",
                            name="One",
                            children=[
                                StoryNode(id="s1", type="scene", name="A"),
                                StoryNode(id="s2", type="scene", name="B"),
                            ],
                        ),
                        StoryNode(
                            id="ch2",
                            type="chapter",
                            name="Two",
                            children=[StoryNode(id="s3", type="scene", name="C")],
                        ),
                    ],
                ),
            ],
        ),
        StoryNode(id="notes", type="context", name="Notes", node_type="non-story"),
    ]


def test_items_in_order_is_depth_first_in_stored_order() -> None:
    structure = _structure()

    assert [node.id for node in items_in_order(structure, "scene")] == ["s1", "s2", "s3"]
    assert [node.id for node in items_in_order(structure, "chapter")] == ["ch1", "ch2"]
    assert items_in_order([], "scene") == []


def test_tree_lookups() -> None:
    structure = _structure()

    assert [node.id for node in find_path_to_node(structure, "s3")] == ["book", "arc", "ch2", "s3"]
    assert find_path_to_node(structure, "missing") == []
    node = find_node(structure, "notes")
    assert node is not None and node.node_type == "non-story"
    parent = find_parent(structure, "s2")
    assert parent is not None and parent.id == "ch1"
    assert find_parent(structure, "book") is None


def test_plain_text_and_word_count_handle_structured_payloads() -> None:
    structured = {
        "type": "doc",
        "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": "Two words"}]},
            {"type": "paragraph", "content": [
                {"type": "text", "text": "and", "marks": [{"type": "em"}]},
                {"type": "text", "text": " more"},
            ]},
            "garbage",
        ],
    }

    assert plain_text(structured) == "Two words\nand more\n"
    assert has_marks(structured) is True
    assert has_marks("plain") is False
    assert word_count(structured).words == 4
    assert word_count(structured).characters == 15
    assert plain_text(None) == ""
    assert plain_text({"type": "doc", "content": "bad"}) == ""
    assert word_count("  spaced   out ").words == 2
