"""Rich-text note editor exposing the surface the assistance engine needs."""
from __future__ import annotations

from PySide6.QtCore import QPoint, Qt, Signal
from PySide6.QtGui import QBrush, QColor, QMouseEvent, QTextCharFormat, QTextCursor
from PySide6.QtWidgets import QTextEdit, QWidget

from marginalia.core.errors import MarkingError, PositionError
from marginalia.editor.surface import Bounds, preserved_cursor
from marginalia.editor.text_events import TextChange, TextEvent, normalize, shift_range

MARKER_SCHEME = "marginalia:"


class NoteEditor(QTextEdit):
    """QTextEdit that reports canonical text events and keeps a marker map.

    Markers are kept as explicit ``marker_id -> (start, end)`` offsets and
    shifted through every edit; the character formatting applied to a marked
    span is only decoration.
    """

    text_event = Signal(object)
    marker_activated = Signal(str)

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setObjectName("noteEditor")
        self.setAcceptRichText(True)
        self._markers: dict[str, tuple[int, int]] = {}
        self._pending_change: TextChange | None = None
        self._formatting = False
        self.document().contentsChange.connect(self._on_contents_change)
        self.textChanged.connect(self._emit_text_event)

    # Editor surface ----------------------------------------------------
    def get_text(self) -> str:
        return self.toPlainText()

    def get_selection(self) -> tuple[int, int] | None:
        cursor = self.textCursor()
        if cursor.isNull():
            return None
        start = cursor.selectionStart()
        return start, cursor.selectionEnd() - start

    def get_bounds(self, index: int) -> Bounds:
        """Bounds of the character at ``index`` in the coordinates of the editor's parent."""

        length = self.document().characterCount() - 1
        if index < 0 or index > length:
            raise PositionError(f"Index {index} outside document of length {length}")
        cursor = QTextCursor(self.document())
        cursor.setPosition(index)
        rect = self.cursorRect(cursor)
        if not rect.isValid():
            raise PositionError(f"No cursor rectangle for index {index}")
        top_left = self.viewport().mapTo(self.parentWidget() or self, rect.topLeft())
        return Bounds(top=float(top_left.y()), left=float(top_left.x()), height=float(rect.height()))

    def insert_marked_span(self, start: int, length: int, marker_id: str) -> None:
        text_length = self.document().characterCount() - 1
        if not marker_id or length <= 0 or start < 0 or start + length > text_length:
            raise MarkingError(f"Cannot mark [{start}, {start + length}) in document of length {text_length}")

        saved = self.textCursor()
        had_selection = saved.hasSelection()
        position = saved.position()

        span = QTextCursor(self.document())
        span.setPosition(start)
        span.setPosition(start + length, QTextCursor.KeepAnchor)
        fmt = QTextCharFormat()
        fmt.setAnchor(True)
        fmt.setAnchorHref(f"{MARKER_SCHEME}{marker_id}")
        fmt.setBackground(QColor(255, 236, 153, 110))
        fmt.setUnderlineStyle(QTextCharFormat.DotLine)
        self._formatting = True
        try:
            span.mergeCharFormat(fmt)
        finally:
            self._formatting = False
        self._markers[marker_id] = (start, start + length)

        if not had_selection:
            self.set_selection(preserved_cursor(position, start, length))

    def set_selection(self, index: int, length: int = 0) -> None:
        length_limit = self.document().characterCount() - 1
        index = max(0, min(index, length_limit))
        cursor = self.textCursor()
        cursor.setPosition(index)
        if length:
            cursor.setPosition(min(index + length, length_limit), QTextCursor.KeepAnchor)
        self.setTextCursor(cursor)
        if not length and self.marker_at(index - 1):
            # The next keystroke must not inherit the marker format.
            self.setCurrentCharFormat(QTextCharFormat())

    def marker_range(self, marker_id: str) -> tuple[int, int] | None:
        return self._markers.get(marker_id)

    def marker_at(self, position: int) -> str | None:
        for marker_id, (start, end) in self._markers.items():
            if start <= position < end:
                return marker_id
        return None

    def remove_marker(self, marker_id: str) -> None:
        marked = self._markers.pop(marker_id, None)
        if marked is None:
            return
        span = QTextCursor(self.document())
        span.setPosition(marked[0])
        span.setPosition(marked[1], QTextCursor.KeepAnchor)
        fmt = QTextCharFormat()
        fmt.setAnchor(False)
        fmt.setAnchorHref("")
        fmt.setBackground(QBrush(Qt.NoBrush))
        fmt.setUnderlineStyle(QTextCharFormat.NoUnderline)
        self._formatting = True
        try:
            span.mergeCharFormat(fmt)
        finally:
            self._formatting = False

    def clear_markers(self) -> None:
        self._markers.clear()

    def reset_note(self, text: str = "") -> None:
        self.clear_markers()
        self.setPlainText(text)

    # Change tracking ---------------------------------------------------
    def _on_contents_change(self, position: int, removed: int, added: int) -> None:
        if self._formatting:
            return
        change = TextChange(position, removed, added)
        for marker_id, (start, end) in list(self._markers.items()):
            new_start, new_end = shift_range(start, end, change)
            if new_end <= new_start:
                self._markers.pop(marker_id)
            else:
                self._markers[marker_id] = (new_start, new_end)
        self._pending_change = change

    def _emit_text_event(self) -> None:
        change = self._pending_change
        self._pending_change = None
        if change is None:
            return
        event: TextEvent = normalize(self.toPlainText(), self.textCursor().position(), change)
        self.text_event.emit(event)

    # Marker clicks -----------------------------------------------------
    def mouseReleaseEvent(self, event: QMouseEvent) -> None:  # type: ignore[override]
        super().mouseReleaseEvent(event)
        if event.button() != Qt.MouseButton.LeftButton or self.textCursor().hasSelection():
            return
        marker_id = self.marker_id_at_point(event.position().toPoint())
        if marker_id:
            self.marker_activated.emit(marker_id)

    def marker_id_at_point(self, point: QPoint) -> str | None:
        href = self.anchorAt(point)
        if href.startswith(MARKER_SCHEME):
            return href[len(MARKER_SCHEME) :]
        return self.marker_at(self.cursorForPosition(point).position())
