from __future__ import annotations

from marginalia.editor.surface import preserved_cursor
from marginalia.editor.text_events import TextChange, normalize, shift_range


def test_question_mark_insertion_is_detected() -> None:
    text = "Notes\nI wonder how this works?"
    event = normalize(text, len(text), TextChange(len(text) - 1, 0, 1))

    assert event.typed_question_mark
    assert event.inserted == "?"
    assert event.line_fragment == "I wonder how this works?"
    assert event.line_start == len("Notes\n")


def test_deleting_back_to_question_mark_is_not_a_question() -> None:
    text = "Why?"
    event = normalize(text, len(text), TextChange(len(text), 1, 0))

    assert event.char_before_cursor == "?"
    assert not event.is_insertion
    assert not event.typed_question_mark


def test_sentence_fragment_keeps_only_current_sentence() -> None:
    text = "First point. Second point? Why does it fail?"
    event = normalize(text, len(text), TextChange(len(text) - 1, 0, 1))

    assert event.sentence_fragment == "Why does it fail?"


def test_cursor_at_start_has_no_previous_char() -> None:
    event = normalize("abc", 0)

    assert event.char_before_cursor == ""
    assert event.line_fragment == ""


def test_shift_range_moves_with_edits_before_it() -> None:
    assert shift_range(10, 20, TextChange(0, 0, 5)) == (15, 25)
    assert shift_range(10, 20, TextChange(2, 4, 0)) == (6, 16)


def test_shift_range_ignores_edits_after_it() -> None:
    assert shift_range(10, 20, TextChange(20, 0, 3)) == (10, 20)
    assert shift_range(10, 20, TextChange(25, 2, 0)) == (10, 20)


def test_shift_range_collapses_when_span_deleted() -> None:
    start, end = shift_range(10, 20, TextChange(8, 15, 0))

    assert start == 8
    assert end == start


def test_preserved_cursor_positions() -> None:
    # Cursor after the marked span keeps its position.
    assert preserved_cursor(30, 5, 20) == 30
    # Cursor inside the span lands right after it.
    assert preserved_cursor(10, 5, 20) == 25
    # Cursor before the span does not move.
    assert preserved_cursor(2, 5, 20) == 2
    # Characters inserted by the marking push the cursor along.
    assert preserved_cursor(30, 5, 20, added=2) == 32
