from __future__ import annotations

from collections.abc import Callable

import pytest

from story_sync.adapters.memory_workspace import InMemoryStoryWorkspace
from story_sync.application.scene_editor import SceneEditorSession
from story_sync.core.document_model import Block, Document, TextNode
from story_sync.domain.models import Paragraph, StoryNode


class _ManualScheduler:
    def __init__(self) -> None:
        self.pending: list[tuple[float, Callable[[], None]]] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> None:
        self.pending.append((delay, callback))

    def run_all(self) -> None:
        pending, self.pending = self.pending, []
        for _delay, callback in pending:
            callback()


def _workspace() -> InMemoryStoryWorkspace:
    workspace = InMemoryStoryWorkspace()
    workspace.add_node(StoryNode(id="ch1", type="chapter", name="Chapter 1"))
    workspace.add_node(StoryNode(id="s1", type="scene", name="Opening"), parent_id="ch1")
    workspace.add_node(StoryNode(id="s2", type="scene", name="Empty"), parent_id="ch1")
    workspace.insert("s1", Paragraph(id="p1", text="Hello"))
    workspace.insert("s1", Paragraph(id="p2", text="World"))
    return workspace


def _session(
    workspace: InMemoryStoryWorkspace, scene_id: str = "s1"
) -> tuple[SceneEditorSession, _ManualScheduler]:
    scheduler = _ManualScheduler()
    session = SceneEditorSession(
        scene_id=scene_id, store=workspace, schedule=scheduler, grace_seconds=0.05
    )
    return session, scheduler


def _texts(workspace: InMemoryStoryWorkspace, scene_id: str = "s1") -> list[str]:
    return [str(paragraph.text) for paragraph in workspace.get(scene_id)]


def _block_texts(document: Document) -> list[str]:
    return [block.text_content for block in document]


def test_local_edit_updates_store_and_holds_guard_for_grace_window() -> None:
    workspace = _workspace()
    session, scheduler = _session(workspace)

    changed = session.apply_document(session.document.with_block_text("p1", "Hello there"))

    assert changed == ["p1"]
    assert _texts(workspace) == ["Hello there", "World"]
    assert session.internal_update_in_progress is True
    assert [delay for delay, _callback in scheduler.pending] == [0.05]

    scheduler.run_all()

    assert session.internal_update_in_progress is False
    assert _block_texts(session.document) == ["Hello there", "World"]


def test_external_store_change_rerenders_document() -> None:
    workspace = _workspace()
    session, _scheduler = _session(workspace)

    workspace.update("s1", "p2", {"text": "Everyone"})

    assert _block_texts(session.document) == ["Hello", "Everyone"]


def test_store_change_during_local_edit_is_deferred_to_one_recheck() -> None:
    workspace = _workspace()
    session, scheduler = _session(workspace)
    session.apply_document(session.document.with_block_text("p1", "Hi"))

    workspace.update("s1", "p2", {"text": "Everyone"})

    assert _block_texts(session.document) == ["Hi", "World"]
    scheduler.run_all()
    assert _block_texts(session.document) == ["Hi", "Everyone"]
    assert scheduler.pending == []


def test_suggestion_fields_patch_blocks_without_rerender() -> None:
    workspace = _workspace()
    session, _scheduler = _session(workspace)
    before = session.document

    workspace.update("s1", "p1", {"extra": "Hello, friend", "extra_loading": False})

    block = session.document.block_by_id("p1")
    assert block is not None
    assert block.extra == "Hello, friend"
    assert block.content == before.blocks[0].content
    assert session.refresh_from_store() is False


def test_split_in_middle_creates_new_paragraph_after_original() -> None:
    workspace = _workspace()
    session, _scheduler = _session(workspace)

    changed = session.apply_document(session.document.split_block("p1", 2))

    stored = workspace.get("s1")
    assert _texts(workspace) == ["He", "llo", "World"]
    assert stored[1].id not in {"p1", "p2"}
    assert stored[1].state == "draft"
    assert set(changed) == {"p1", stored[1].id}
    assert [block.id for block in session.document] == [paragraph.id for paragraph in stored]


def test_split_at_start_does_not_duplicate_paragraph() -> None:
    workspace = _workspace()
    session, _scheduler = _session(workspace)

    session.apply_document(session.document.split_block("p1", 0))

    assert [paragraph.id for paragraph in workspace.get("s1")] == ["p1", "p2"]
    assert _texts(workspace) == ["Hello", "World"]
    assert [block.id for block in session.document] == ["p1", "p2"]


def test_removed_block_removes_paragraph() -> None:
    workspace = _workspace()
    session, _scheduler = _session(workspace)

    session.apply_document(session.document.remove_block("p2"))

    assert _texts(workspace) == ["Hello"]


def test_reordered_blocks_move_paragraphs() -> None:
    workspace = _workspace()
    session, _scheduler = _session(workspace)
    first, second = session.document.blocks

    changed = session.apply_document(Document(blocks=(second, first)))

    assert changed == []
    assert [paragraph.id for paragraph in workspace.get("s1")] == ["p2", "p1"]


def test_block_inserted_at_start_lands_first_in_store() -> None:
    workspace = _workspace()
    session, _scheduler = _session(workspace)
    document = session.document.insert_block_after(
        None, Block(id="intro", content=(TextNode("Once upon a time"),))
    )

    session.apply_document(document)

    assert [paragraph.id for paragraph in workspace.get("s1")] == ["intro", "p1", "p2"]


def test_empty_scene_document_accepts_first_paragraph() -> None:
    workspace = _workspace()
    session, _scheduler = _session(workspace, "s2")
    block = session.document.blocks[0]

    assert workspace.get("s2") == []
    assert block.id is not None

    session.apply_document(session.document.with_block_text(block.id, "First line."))

    stored = workspace.get("s2")
    assert [paragraph.id for paragraph in stored] == [block.id]
    assert stored[0].text == "First line."


def test_select_position_focuses_containing_paragraph() -> None:
    workspace = _workspace()
    session, _scheduler = _session(workspace)

    assert session.select_position(3) == "p1"
    assert session.focused_paragraph_id == "p1"
    assert workspace.scene("s1").selected_paragraph == "p1"
    assert session.select_position(7) is None
    assert session.select_position(8) == "p2"


def test_close_stops_following_store() -> None:
    workspace = _workspace()
    session, _scheduler = _session(workspace)
    session.close()

    workspace.update("s1", "p1", {"text": "Ignored"})

    assert _block_texts(session.document) == ["Hello", "World"]


def test_default_scheduler_runs_immediately_without_event_loop() -> None:
    workspace = _workspace()
    session = SceneEditorSession(scene_id="s1", store=workspace)

    session.apply_document(session.document.with_block_text("p2", "There"))

    assert session.internal_update_in_progress is False
    assert _texts(workspace) == ["Hello", "There"]


@pytest.mark.parametrize(("raw", "expected"), [("250", 0.25), ("nope", 0.05), ("999999", 5.0)])
def test_grace_window_reads_environment(
    monkeypatch: pytest.MonkeyPatch, raw: str, expected: float
) -> None:
    monkeypatch.setenv("STORY_SYNC_GRACE_MS", raw)
    scheduler = _ManualScheduler()
    session = SceneEditorSession(scene_id="s1", store=_workspace(), schedule=scheduler)

    session.apply_document(session.document.with_block_text("p1", "Changed"))

    assert scheduler.pending[0][0] == pytest.approx(expected)


def test_repeated_store_id_does_not_wipe_scene_on_edit() -> None:
    workspace = _workspace()
    workspace.insert("s1", Paragraph(id="p3", text="Again"))
    workspace.scene("s1").paragraphs.insert(2, Paragraph(id="p2", text="World, twice"))
    session, scheduler = _session(workspace)

    assert [block.id for block in session.document] == ["p1", "p2", "p3"]

    changed = session.apply_document(session.document.with_block_text("p1", "Hello there"))
    scheduler.run_all()

    assert changed == ["p1"]
    assert [paragraph.id for paragraph in workspace.get("s1")] == ["p1", "p2", "p3", "p2"]
    assert _texts(workspace) == ["Hello there", "World", "Again", "World, twice"]
    assert _block_texts(session.document) == ["Hello there", "World", "Again"]
