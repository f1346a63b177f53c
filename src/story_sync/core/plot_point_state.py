"""Plot-point lifecycle derived by replaying paragraph actions in story order."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Final, Literal

from story_sync.core.story_tree import iter_paragraphs
from story_sync.domain.models import PlotPoint, PlotPointActionName
from story_sync.domain.ports import SceneParagraphs

PlotPointLifecycle = PlotPointActionName | Literal["unintroduced"]

MENTION_THRESHOLD: Final[int] = 150
PARTIAL_THRESHOLD: Final[int] = 300


@dataclass(frozen=True)
class PlotPointState:
    """Surfaced state of one plot point as of a paragraph."""

    id: str
    title: str
    last_action: PlotPointLifecycle
    ever_introduced: bool
    last_mention_paragraph_id: str | None = None
    last_mention_scene_title: str | None = None
    paragraphs_ago: int | None = None


@dataclass
class _Tracker:
    id: str
    title: str
    last_action: PlotPointLifecycle = "unintroduced"
    ever_introduced: bool = False
    last_mention_paragraph_id: str | None = None
    last_mention_scene_title: str | None = None
    last_mention_index: int | None = None

    def snapshot(self, current_index: int) -> PlotPointState:
        paragraphs_ago = None
        if self.last_mention_index is not None:
            paragraphs_ago = current_index - self.last_mention_index
        return PlotPointState(
            id=self.id,
            title=self.title,
            last_action=self.last_action,
            ever_introduced=self.ever_introduced,
            last_mention_paragraph_id=self.last_mention_paragraph_id,
            last_mention_scene_title=self.last_mention_scene_title,
            paragraphs_ago=paragraphs_ago,
        )


def get_plot_points_at_paragraph(
    scenes: Sequence[SceneParagraphs],
    catalog: Mapping[str, PlotPoint],
    target_paragraph_id: str,
) -> list[PlotPointState]:
    """Return the plot points worth surfacing at the target paragraph.

    ``ever_introduced`` is computed over the whole story, including
    paragraphs after the target, so a later introduction already lets
    earlier non-introduce actions register. When the target is absent the
    filter is applied as of the end of the story.
    """
    trackers = {
        plot_point_id: _Tracker(id=plot_point_id, title=plot_point.title)
        for plot_point_id, plot_point in catalog.items()
    }

    for _scene, paragraph in iter_paragraphs(scenes):
        for action in paragraph.plot_point_actions:
            tracker = trackers.get(action.plot_point_id)
            if tracker is not None and action.action == "introduce":
                tracker.ever_introduced = True

    paragraph_count = 0
    for scene, paragraph in iter_paragraphs(scenes):
        paragraph_count += 1
        for action in paragraph.plot_point_actions:
            tracker = trackers.get(action.plot_point_id)
            if tracker is None:
                continue
            # Only an introduction, or a point introduced somewhere, may leave "unintroduced".
            if tracker.ever_introduced or action.action == "introduce":
                tracker.last_action = action.action
            else:
                tracker.last_action = "unintroduced"
            tracker.last_mention_paragraph_id = paragraph.id
            tracker.last_mention_scene_title = scene.title
            tracker.last_mention_index = paragraph_count
        if paragraph.id == target_paragraph_id:
            return _surface(trackers.values(), paragraph_count)

    return _surface(trackers.values(), paragraph_count)


def get_resolved_plot_points_at_paragraph(
    scenes: Sequence[SceneParagraphs], target_paragraph_id: str
) -> set[str]:
    """IDs that received a ``resolved`` action up to and including the target."""
    resolved: set[str] = set()
    for _scene, paragraph in iter_paragraphs(scenes):
        for action in paragraph.plot_point_actions:
            if action.action == "resolved":
                resolved.add(action.plot_point_id)
        if paragraph.id == target_paragraph_id:
            return resolved
    return resolved


def should_surface(state: PlotPointState) -> bool:
    """Apply the recency-based surfacing rules to one plot point."""
    if state.last_action == "unintroduced" and not state.ever_introduced:
        return True
    if state.last_action == "resolved":
        return False
    if not state.paragraphs_ago or state.paragraphs_ago < MENTION_THRESHOLD:
        return False
    if state.last_action == "partially resolved" and state.paragraphs_ago < PARTIAL_THRESHOLD:
        return False
    return True


def _surface(trackers: Iterable[_Tracker], current_index: int) -> list[PlotPointState]:
    states = [tracker.snapshot(current_index) for tracker in trackers]
    return [state for state in states if should_surface(state)]
