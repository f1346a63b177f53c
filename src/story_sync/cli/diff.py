"""CLI for diffing a paragraph against a suggested rewrite."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from story_sync.adapters.observability import configure_runtime_logging
from story_sync.core.diff_engine import diff_paragraph, render_diff_html

_MARKERS = {"equal": " ", "delete": "-", "insert": "+"}


def build_arg_parser() -> argparse.ArgumentParser:
    """Define CLI flags for paragraph diffs."""
    parser = argparse.ArgumentParser(description="Diff a paragraph against a suggestion.")
    original = parser.add_mutually_exclusive_group(required=True)
    original.add_argument("--original")
    original.add_argument("--original-file")
    suggested = parser.add_mutually_exclusive_group(required=True)
    suggested.add_argument("--suggested")
    suggested.add_argument("--suggested-file")
    parser.add_argument(
        "--format",
        choices=["parts", "html", "json"],
        default="parts",
        help="Output format (default: parts).",
    )
    return parser


def _read_text(inline: str | None, path: str | None) -> str:
    if inline is not None:
        return inline
    file_path = Path(str(path))
    if not file_path.exists():
        raise SystemExit(f"Input file not found: {file_path}")
    return file_path.read_text(encoding="utf-8").rstrip("\n")


def main(argv: list[str] | None = None) -> None:
    """Print the grouped diff between two paragraph texts."""
    parser = build_arg_parser()
    parsed = parser.parse_args(argv)
    configure_runtime_logging()

    original = _read_text(parsed.original, parsed.original_file)
    suggested = _read_text(parsed.suggested, parsed.suggested_file)
    parts = diff_paragraph(original, suggested)

    output_format = str(parsed.format)
    if output_format == "html":
        print(render_diff_html(parts))
    elif output_format == "json":
        print(json.dumps([{"type": part.type, "text": part.text} for part in parts], indent=2))
    else:
        for part in parts:
            print(f"{_MARKERS[part.type]} {part.text}")


if __name__ == "__main__":
    main()
