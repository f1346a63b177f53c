from __future__ import annotations

import asyncio
from collections.abc import Sequence

import pytest

from story_sync.adapters.memory_workspace import InMemoryStoryWorkspace
from story_sync.application.scene_editor import SceneEditorSession
from story_sync.application.suggestions import (
    SuggestionGenerationError,
    SuggestionLifecycleManager,
    visible_suggestions,
)
from story_sync.core.diff_engine import DiffPart
from story_sync.core.document_model import Block, Document, TextNode
from story_sync.domain.models import Paragraph, StoryNode
from story_sync.domain.ports import GenerationServiceError, ParagraphNotFoundError


class _StaticGenerator:
    def __init__(self, response: str = "", error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[tuple[str, list[str]]] = []

    async def generate(self, kind: str, context_blocks: Sequence[str]) -> str:
        self.calls.append((kind, list(context_blocks)))
        if self.error is not None:
            raise self.error
        return self.response


class _GatedGenerator:
    """Each call waits until the test resolves its future."""

    def __init__(self) -> None:
        self.gates: list[asyncio.Future[str]] = []

    async def generate(self, kind: str, context_blocks: Sequence[str]) -> str:
        gate: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self.gates.append(gate)
        return await gate


def _workspace() -> InMemoryStoryWorkspace:
    workspace = InMemoryStoryWorkspace()
    workspace.add_node(StoryNode(id="s1", type="scene", name="Opening"))
    workspace.insert("s1", Paragraph(id="p1", text="The cat sat on the mat.", state="final"))
    workspace.insert("s1", Paragraph(id="p2", text="It purred."))
    return workspace


def _paragraph(workspace: InMemoryStoryWorkspace, paragraph_id: str) -> Paragraph:
    return next(p for p in workspace.get("s1") if p.id == paragraph_id)


def test_request_stores_suggestion_and_forwards_context() -> None:
    workspace = _workspace()
    generator = _StaticGenerator(response="The cat sat on the rug.")
    manager = SuggestionLifecycleManager(scene_id="s1", store=workspace, generator=generator)

    result = asyncio.run(manager.request("p1", "rewrite", ["The cat sat on the mat."]))

    assert result == "The cat sat on the rug."
    assert generator.calls == [("rewrite", ["The cat sat on the mat."])]
    assert _paragraph(workspace, "p1").extra == "The cat sat on the rug."
    assert manager.status("p1") == "available"


def test_superseded_request_result_is_discarded() -> None:
    workspace = _workspace()
    generator = _GatedGenerator()
    manager = SuggestionLifecycleManager(scene_id="s1", store=workspace, generator=generator)

    async def scenario() -> tuple[str | None, str | None]:
        first = asyncio.create_task(manager.request("p1", "rewrite"))
        await asyncio.sleep(0)
        second = asyncio.create_task(manager.request("p1", "rewrite"))
        await asyncio.sleep(0)
        assert manager.status("p1") == "loading"
        generator.gates[1].set_result("newest")
        second_result = await second
        generator.gates[0].set_result("stale")
        return await first, second_result

    first_result, second_result = asyncio.run(scenario())

    assert first_result is None
    assert second_result == "newest"
    assert _paragraph(workspace, "p1").extra == "newest"
    assert _paragraph(workspace, "p1").extra_loading is False


def test_generation_failure_clears_loading_and_raises() -> None:
    workspace = _workspace()
    generator = _StaticGenerator(error=GenerationServiceError("backend down"))
    manager = SuggestionLifecycleManager(scene_id="s1", store=workspace, generator=generator)

    with pytest.raises(SuggestionGenerationError, match="backend down"):
        asyncio.run(manager.request("p1", "rewrite"))

    paragraph = _paragraph(workspace, "p1")
    assert paragraph.extra is None
    assert paragraph.extra_loading is False
    assert manager.status("p1") == "none"


def test_unexpected_generator_error_clears_loading_and_raises() -> None:
    workspace = _workspace()
    generator = _StaticGenerator(error=ValueError("bad base url"))
    manager = SuggestionLifecycleManager(scene_id="s1", store=workspace, generator=generator)

    with pytest.raises(SuggestionGenerationError, match="bad base url"):
        asyncio.run(manager.request("p1", "rewrite"))

    assert manager.status("p1") == "none"
    generator.error = None
    generator.response = "The cat sat on the rug."
    assert asyncio.run(manager.request("p1", "rewrite")) == "The cat sat on the rug."
    assert manager.status("p1") == "available"


def test_request_for_unknown_paragraph_leaves_no_pending_token() -> None:
    workspace = _workspace()
    generator = _StaticGenerator(response="unused")
    manager = SuggestionLifecycleManager(scene_id="s1", store=workspace, generator=generator)

    with pytest.raises(ParagraphNotFoundError):
        asyncio.run(manager.request("ghost", "rewrite"))

    assert generator.calls == []
    assert "ghost" not in manager._tokens


def test_cancel_discards_result_that_arrives_later() -> None:
    workspace = _workspace()
    generator = _GatedGenerator()
    manager = SuggestionLifecycleManager(scene_id="s1", store=workspace, generator=generator)

    async def scenario() -> str | None:
        task = asyncio.create_task(manager.request("p1", "rewrite"))
        await asyncio.sleep(0)
        manager.cancel("p1")
        assert manager.status("p1") == "none"
        generator.gates[0].set_result("too late")
        return await task

    assert asyncio.run(scenario()) is None
    assert _paragraph(workspace, "p1").extra is None


def test_task_cancellation_clears_loading() -> None:
    workspace = _workspace()
    generator = _GatedGenerator()
    manager = SuggestionLifecycleManager(scene_id="s1", store=workspace, generator=generator)

    async def scenario() -> None:
        task = asyncio.create_task(manager.request("p1", "rewrite"))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert _paragraph(workspace, "p1").extra_loading is False


def test_accept_replaces_text_and_keeps_state() -> None:
    workspace = _workspace()
    workspace.update("s1", "p1", {"extra": "A much longer sentence about the cat and the rug."})
    manager = SuggestionLifecycleManager(
        scene_id="s1", store=workspace, generator=_StaticGenerator()
    )

    accepted = manager.accept("p1")

    assert accepted is not None
    assert accepted.text == "A much longer sentence about the cat and the rug."
    assert accepted.state == "final"
    assert accepted.extra is None
    assert accepted.ai_characters == 40
    assert accepted.human_characters == 0
    assert manager.accept("p1") is None


def test_reject_clears_suggestion_only() -> None:
    workspace = _workspace()
    workspace.update("s1", "p2", {"extra": "It hissed."})
    manager = SuggestionLifecycleManager(
        scene_id="s1", store=workspace, generator=_StaticGenerator()
    )

    manager.reject("p2")

    paragraph = _paragraph(workspace, "p2")
    assert paragraph.text == "It purred."
    assert paragraph.extra is None
    assert paragraph.extra_loading is False


def test_visible_suggestions_show_focused_and_loading_blocks_only() -> None:
    document = Document(
        blocks=(
            Block(id="a", content=(TextNode("Draft one."),), extra_loading=True),
            Block(id="b", content=(TextNode("The cat sat."),), extra="The dog sat."),
            Block(id="c", content=(TextNode("Unfocused."),), extra="Hidden."),
            Block(id="d", content=(TextNode("Blank."),), extra="   "),
        )
    )

    views = visible_suggestions(document, focused_paragraph_id="b")

    assert [view.paragraph_id for view in views] == ["a", "b"]
    assert views[0].is_loading is True
    assert views[1].content == "The dog sat."
    assert views[1].parts == (
        DiffPart("equal", "The "),
        DiffPart("delete", "cat"),
        DiffPart("insert", "dog"),
        DiffPart("equal", " sat."),
    )
    assert visible_suggestions(document, focused_paragraph_id="d")[1:] == []


def test_suggestion_arrival_reaches_open_editor_session() -> None:
    workspace = _workspace()
    session = SceneEditorSession(scene_id="s1", store=workspace, schedule=lambda _d, cb: cb())
    manager = SuggestionLifecycleManager(
        scene_id="s1", store=workspace, generator=_StaticGenerator(response="It slept.")
    )
    session.select_paragraph("p2")

    asyncio.run(manager.request("p2", "rewrite"))

    views = visible_suggestions(session.document, session.focused_paragraph_id)
    assert [view.content for view in views] == ["It slept."]
