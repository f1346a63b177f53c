"""Domain models and ports for scene paragraph synchronization."""

from story_sync.domain.models import (
    InventoryAction,
    Paragraph,
    ParagraphComment,
    PlotPoint,
    PlotPointAction,
    Scene,
    StoryNode,
    WorkspaceSnapshot,
    new_paragraph_id,
)
from story_sync.domain.ports import (
    GenerationService,
    GenerationServiceError,
    ParagraphNotFoundError,
    ParagraphStore,
    SceneParagraphs,
    StoryTreeProvider,
)

__all__ = [
    "GenerationService",
    "GenerationServiceError",
    "InventoryAction",
    "Paragraph",
    "ParagraphComment",
    "ParagraphNotFoundError",
    "ParagraphStore",
    "PlotPoint",
    "PlotPointAction",
    "Scene",
    "SceneParagraphs",
    "StoryNode",
    "StoryTreeProvider",
    "WorkspaceSnapshot",
    "new_paragraph_id",
]
