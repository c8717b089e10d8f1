from __future__ import annotations

import pytest
from PySide6.QtGui import QTextCursor

from marginalia.core.errors import MarkingError, PositionError
from marginalia.editor.note_editor import NoteEditor


@pytest.fixture
def editor(qt_app):
    widget = NoteEditor()
    widget.resize(600, 400)
    yield widget
    widget.close()


def test_typing_emits_text_events(editor) -> None:
    events = []
    editor.text_event.connect(events.append)

    editor.insertPlainText("Hi?")

    assert events[-1].text == "Hi?"
    assert events[-1].typed_question_mark
    assert events[-1].cursor == 3


def test_marking_keeps_cursor_and_plain_typing(editor) -> None:
    editor.setPlainText("Why is the sky blue? More text")
    editor.set_selection(len(editor.get_text()))

    editor.insert_marked_span(0, 20, "m1")

    assert editor.textCursor().position() == len("Why is the sky blue? More text")
    assert editor.marker_range("m1") == (0, 20)
    assert editor.marker_at(5) == "m1"


def test_cursor_inside_marked_span_moves_after_it(editor) -> None:
    editor.setPlainText("Why is the sky blue?")
    editor.set_selection(5)

    editor.insert_marked_span(0, 20, "m1")

    assert editor.textCursor().position() == 20
    assert not editor.currentCharFormat().isAnchor()


def test_marking_does_not_emit_text_events(editor) -> None:
    editor.setPlainText("Why?")
    events = []
    editor.text_event.connect(events.append)

    editor.insert_marked_span(0, 4, "m1")

    assert events == []


def test_markers_follow_edits(editor) -> None:
    editor.setPlainText("Why is the sky blue?")
    editor.insert_marked_span(0, 20, "m1")

    cursor = QTextCursor(editor.document())
    cursor.setPosition(0)
    cursor.insertText("Hey ")
    assert editor.marker_range("m1") == (4, 24)

    cursor.setPosition(4)
    cursor.setPosition(24, QTextCursor.KeepAnchor)
    cursor.removeSelectedText()
    assert editor.marker_range("m1") is None


def test_invalid_marking_is_rejected(editor) -> None:
    editor.setPlainText("short")

    with pytest.raises(MarkingError):
        editor.insert_marked_span(2, 10, "m1")
    with pytest.raises(MarkingError):
        editor.insert_marked_span(0, 0, "m1")


def test_bounds_outside_document(editor) -> None:
    editor.setPlainText("abc")

    with pytest.raises(PositionError):
        editor.get_bounds(10)
    assert editor.get_bounds(0).height > 0


def test_reset_note_clears_markers(editor) -> None:
    editor.setPlainText("Why?")
    editor.insert_marked_span(0, 4, "m1")

    editor.reset_note("Fresh note")

    assert editor.marker_range("m1") is None
    assert editor.get_text() == "Fresh note"


def test_remove_marker_drops_range_and_decoration(editor) -> None:
    editor.setPlainText("Entropy measures disorder.")
    editor.insert_marked_span(0, 7, "m1")

    editor.remove_marker("m1")
    editor.remove_marker("m1")

    assert editor.marker_range("m1") is None
    cursor = QTextCursor(editor.document())
    cursor.setPosition(3)
    assert not cursor.charFormat().isAnchor()
    assert editor.get_text() == "Entropy measures disorder."
