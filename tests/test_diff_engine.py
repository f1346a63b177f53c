from __future__ import annotations

from story_sync.core.diff_engine import (
    DiffPart,
    diff_paragraph,
    group_consecutive_changes,
    render_diff_html,
)


def _rebuild(parts: list[DiffPart]) -> tuple[str, str]:
    original = "".join(part.text for part in parts if part.type != "insert")
    suggested = "".join(part.text for part in parts if part.type != "delete")
    return original, suggested


def test_rewritten_paragraph_is_one_delete_then_one_insert() -> None:
    original = "The cat sat. It was happy. The sun shone."
    suggested = "Completely different unrelated text entirely rewritten."

    parts = diff_paragraph(original, suggested)

    assert parts == [DiffPart("delete", original), DiffPart("insert", suggested)]


def test_single_word_edit_stays_minimal() -> None:
    parts = diff_paragraph("The cat sat on the mat.", "The cat sat on the rug.")

    assert parts == [
        DiffPart("equal", "The cat sat on the "),
        DiffPart("delete", "mat"),
        DiffPart("insert", "rug"),
        DiffPart("equal", "."),
    ]


def test_unchanged_sentences_are_kept_around_an_edit() -> None:
    original = "The cat sat. It was happy. The sun shone."
    suggested = "The cat sat. It was sad. The sun shone."

    parts = diff_paragraph(original, suggested)

    assert parts == [
        DiffPart("equal", "The cat sat. It was "),
        DiffPart("delete", "happy"),
        DiffPart("insert", "sad"),
        DiffPart("equal", ". The sun shone."),
    ]
    assert _rebuild(parts) == (original, suggested)


def test_added_sentence_is_a_pure_insert() -> None:
    original = "Rain fell. The street was empty."
    suggested = "Rain fell. A dog barked. The street was empty."

    parts = diff_paragraph(original, suggested)

    assert [part.type for part in parts].count("delete") == 0
    assert _rebuild(parts) == (original, suggested)


def test_identical_and_empty_inputs() -> None:
    assert diff_paragraph("Same text.", "Same text.") == [DiffPart("equal", "Same text.")]
    assert diff_paragraph("", "") == []
    assert diff_paragraph("", "New.") == [DiffPart("insert", "New.")]


def test_every_change_run_orders_delete_before_insert() -> None:
    original = "One two three. Four five six. Seven eight nine."
    suggested = "One too three. Four five sticks. Seven eight nine!"

    parts = diff_paragraph(original, suggested)

    for previous, current in zip(parts, parts[1:]):
        assert not (previous.type == "insert" and current.type == "delete")
        assert not (previous.type == current.type == "equal")
    assert _rebuild(parts) == (original, suggested)


def test_group_consecutive_changes_merges_runs() -> None:
    parts = [
        DiffPart("insert", "a"),
        DiffPart("delete", "b"),
        DiffPart("insert", "c"),
        DiffPart("equal", "d"),
        DiffPart("equal", "e"),
        DiffPart("delete", "f"),
        DiffPart("equal", ""),
    ]

    assert group_consecutive_changes(parts) == [
        DiffPart("delete", "b"),
        DiffPart("insert", "ac"),
        DiffPart("equal", "de"),
        DiffPart("delete", "f"),
    ]


def test_render_diff_html_escapes_text() -> None:
    html = render_diff_html(
        [DiffPart("equal", "a<b "), DiffPart("delete", "x"), DiffPart("insert", "\"y\"")]
    )

    assert html == (
        "<span>a&lt;b </span>"
        '<span class="diff-delete">x</span>'
        '<span class="diff-insert">&quot;y&quot;</span>'
    )
