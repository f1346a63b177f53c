"""CLI for retrieving inventory and plot-point state at a paragraph."""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict
from pathlib import Path

from pydantic import ValidationError

from story_sync.adapters.memory_workspace import InMemoryStoryWorkspace
from story_sync.adapters.observability import configure_runtime_logging
from story_sync.adapters.sqlite_workspace_store import SQLiteWorkspaceStore
from story_sync.core.inventory_ledger import get_items_at_paragraph
from story_sync.core.plot_point_state import (
    get_plot_points_at_paragraph,
    get_resolved_plot_points_at_paragraph,
)
from story_sync.domain.models import WorkspaceSnapshot


def build_arg_parser() -> argparse.ArgumentParser:
    """Define CLI flags for story state retrieval."""
    parser = argparse.ArgumentParser(
        description="Report inventory or plot-point state as of one paragraph."
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--snapshot", help="Workspace snapshot JSON file.")
    source.add_argument("--workspace-id", help="Workspace ID stored in --db-path.")
    parser.add_argument("--db-path", default="work/local/story_sync.db")
    parser.add_argument("--paragraph-id", required=True)
    parser.add_argument(
        "--query",
        choices=["items", "plot-points", "resolved"],
        default="items",
        help="State to report (default: items).",
    )
    return parser


def _load_snapshot(parsed: argparse.Namespace) -> WorkspaceSnapshot:
    if parsed.snapshot is not None:
        snapshot_path = Path(str(parsed.snapshot))
        if not snapshot_path.exists():
            raise SystemExit(f"Snapshot file not found: {snapshot_path}")
        try:
            return WorkspaceSnapshot.model_validate_json(snapshot_path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            raise SystemExit(f"Invalid workspace snapshot: {exc}") from exc
    store = SQLiteWorkspaceStore(db_path=Path(str(parsed.db_path)))
    snapshot = store.load(workspace_id=str(parsed.workspace_id))
    if snapshot is None:
        raise SystemExit(f"Workspace not found: {parsed.workspace_id}")
    return snapshot


def main(argv: list[str] | None = None) -> None:
    """Print the requested state as JSON."""
    parser = build_arg_parser()
    parsed = parser.parse_args(argv)
    configure_runtime_logging()

    workspace = InMemoryStoryWorkspace(_load_snapshot(parsed))
    scenes = workspace.scenes_in_order()
    paragraph_id = str(parsed.paragraph_id)
    query = str(parsed.query)

    if query == "items":
        items = get_items_at_paragraph(scenes, paragraph_id)
        if items is None:
            raise SystemExit(f"Paragraph not found: {paragraph_id}")
        print(json.dumps(items, indent=2, sort_keys=True))
    elif query == "plot-points":
        states = get_plot_points_at_paragraph(
            scenes, workspace.plot_point_catalog(), paragraph_id
        )
        print(json.dumps([asdict(state) for state in states], indent=2))
    else:
        resolved = get_resolved_plot_points_at_paragraph(scenes, paragraph_id)
        print(json.dumps(sorted(resolved), indent=2))


if __name__ == "__main__":
    main()
