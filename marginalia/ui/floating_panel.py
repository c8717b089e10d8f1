"""Floating answer panel anchored beside the editor, with drag override."""
from __future__ import annotations

from dataclasses import dataclass

from PySide6.QtCore import QEvent, QObject, QPoint, Qt, QTimer, Signal
from PySide6.QtGui import QMouseEvent
from PySide6.QtWidgets import QApplication, QFrame, QHBoxLayout, QLabel, QPushButton, QVBoxLayout, QWidget

from marginalia.ai.answer_format import format_answer, split_columns
from marginalia.editor.annotations import Annotation

Point = tuple[float, float]
Rect = tuple[float, float, float, float]


@dataclass(frozen=True)
class PanelAnchor:
    top: float
    editor_right: float


@dataclass
class PanelPosition:
    anchor: PanelAnchor
    drag_override: Point | None = None


def rect_contains(rect: Rect, point: Point) -> bool:
    x, y, width, height = rect
    return x <= point[0] < x + width and y <= point[1] < y + height


class PanelPositioner:
    """Computes where the panel goes and tracks a user drag.

    The panel sits just right of the editor, ``gutter`` pixels away, level
    with its anchor. Once dragged, the dragged position wins over the anchor
    until the panel is closed.
    """

    def __init__(self, gutter: float = 16, viewport_height: float | None = None, panel_height: float = 0) -> None:
        self.gutter = gutter
        self.viewport_height = viewport_height
        self.panel_height = panel_height
        self.position: PanelPosition | None = None
        self._grab: Point | None = None

    @property
    def dragging(self) -> bool:
        return self._grab is not None

    def place(self, anchor: PanelAnchor) -> Point:
        top = max(0.0, anchor.top)
        if self.viewport_height is not None:
            top = max(0.0, min(top, self.viewport_height - self.panel_height))
        return anchor.editor_right + self.gutter, top

    def open(self, anchor: PanelAnchor) -> Point:
        self.position = PanelPosition(anchor)
        self._grab = None
        return self.place(anchor)

    def update_anchor(self, anchor: PanelAnchor) -> Point | None:
        if self.position is None:
            return None
        self.position.anchor = anchor
        return self.current()

    def current(self) -> Point | None:
        if self.position is None:
            return None
        if self.position.drag_override is not None:
            return self.position.drag_override
        return self.place(self.position.anchor)

    def begin_drag(self, pointer: Point, panel_origin: Point, on_close_control: bool = False) -> bool:
        if self.position is None or on_close_control:
            return False
        self._grab = (pointer[0] - panel_origin[0], pointer[1] - panel_origin[1])
        return True

    def drag_to(self, pointer: Point) -> Point | None:
        if self.position is None or self._grab is None:
            return None
        override = (pointer[0] - self._grab[0], pointer[1] - self._grab[1])
        self.position.drag_override = override
        return override

    def end_drag(self) -> None:
        self._grab = None

    def close(self) -> None:
        self.position = None
        self._grab = None

    @staticmethod
    def should_close_on_click(point: Point, panel_rect: Rect, editor_rect: Rect) -> bool:
        return not rect_contains(panel_rect, point) and not rect_contains(editor_rect, point)


def global_rect(widget: QWidget | None) -> Rect:
    """Screen rectangle of ``widget``; empty when there is no widget."""

    if widget is None:
        return (0, 0, 0, 0)
    origin = widget.mapToGlobal(QPoint(0, 0))
    return (origin.x(), origin.y(), widget.width(), widget.height())


class FloatingAnswerPanel(QFrame):
    """Non-blocking panel showing an AI answer in one or two columns."""

    closed = Signal()

    def __init__(self, host: QWidget, editor: QWidget | None = None, config=None) -> None:
        super().__init__(host)
        self.setObjectName("floatingAnswerPanel")
        self.editor = editor
        answers_cfg = config.section("assist", "answers") if config else {}
        panel_cfg = config.section("assist", "panel") if config else {}
        self.char_limit = int(answers_cfg.get("column_char_limit", 1000))
        self.line_limit = int(answers_cfg.get("column_line_limit", 15))
        self.reveal_chunk = max(1, int(answers_cfg.get("reveal_chunk", 2)))
        self.positioner = PanelPositioner(gutter=float(panel_cfg.get("gutter", 16)))
        self.base_width = int(panel_cfg.get("width", 360))

        self.setStyleSheet(
            """
            QFrame#floatingAnswerPanel {
                background: palette(base);
                border: 1px solid palette(mid);
                border-radius: 10px;
            }
            QLabel#panelTitle { font-weight: 600; }
            QPushButton#panelCloseButton {
                background: transparent;
                border: none;
                font-size: 16px;
                padding: 0 4px;
            }
            """
        )

        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 8, 12, 12)
        layout.setSpacing(6)

        header = QHBoxLayout()
        self.title_label = QLabel("", self)
        self.title_label.setObjectName("panelTitle")
        header.addWidget(self.title_label, 1)
        self.close_button = QPushButton("×", self)
        self.close_button.setObjectName("panelCloseButton")
        self.close_button.setCursor(Qt.PointingHandCursor)
        self.close_button.clicked.connect(self.close_panel)
        header.addWidget(self.close_button, 0, Qt.AlignTop)
        layout.addLayout(header)

        self.columns_layout = QHBoxLayout()
        self.columns_layout.setSpacing(16)
        self.column_labels: list[QLabel] = []
        for _ in range(2):
            label = QLabel("", self)
            label.setWordWrap(True)
            label.setTextInteractionFlags(Qt.TextSelectableByMouse)
            label.setAlignment(Qt.AlignTop | Qt.AlignLeft)
            self.columns_layout.addWidget(label, 1)
            self.column_labels.append(label)
        layout.addLayout(self.columns_layout)

        self._columns: list[str] = []
        self._revealed = 0
        self._reveal_timer = QTimer(self)
        self._reveal_timer.setInterval(int(answers_cfg.get("reveal_interval_ms", 12)))
        self._reveal_timer.timeout.connect(self._advance_reveal)

        self.hide()
        app = QApplication.instance()
        if app is not None:
            app.installEventFilter(self)

    # Content -----------------------------------------------------------
    @property
    def columns(self) -> list[str]:
        return list(self._columns)

    @property
    def revealing(self) -> bool:
        return self._reveal_timer.isActive()

    def shown_text(self) -> str:
        visible = [label.text() for label in self.column_labels if label.isVisibleTo(self)]
        return "\n\n".join(text for text in visible if text)

    def show_answer(self, title: str, raw: str, anchor: PanelAnchor, animate: bool = True) -> None:
        formatted = format_answer(raw)
        self._set_columns(title, split_columns(formatted, self.char_limit, self.line_limit), anchor)
        if animate:
            self._revealed = 0
            self._render(0)
            self._reveal_timer.start()
        else:
            self._render(self._total_length())

    def show_message(self, title: str, message: str, anchor: PanelAnchor) -> None:
        self._set_columns(title, [message], anchor)
        self._render(self._total_length())

    def _set_columns(self, title: str, columns: list[str], anchor: PanelAnchor) -> None:
        self._reveal_timer.stop()
        self._columns = columns
        self.title_label.setText(title)
        for index, label in enumerate(self.column_labels):
            label.setVisible(index < len(columns))
        self.setFixedWidth(self.base_width * len(columns))
        self.adjustSize()
        x, y = self.positioner.open(anchor)
        self.move(int(x), int(y))
        self.show()
        self.raise_()

    def _total_length(self) -> int:
        return sum(len(column) for column in self._columns)

    def _render(self, count: int) -> None:
        remaining = count
        for label, column in zip(self.column_labels, self._columns):
            label.setText(column[: max(0, remaining)])
            remaining -= len(column)

    def _advance_reveal(self) -> bool:
        """Reveal the next characters; returns True once everything is visible."""

        self._revealed = min(self._total_length(), self._revealed + self.reveal_chunk)
        self._render(self._revealed)
        if self._revealed >= self._total_length():
            self._reveal_timer.stop()
            return True
        return False

    def finish_reveal(self) -> None:
        self._reveal_timer.stop()
        self._revealed = self._total_length()
        self._render(self._revealed)

    def reanchor(self, anchor: PanelAnchor) -> None:
        point = self.positioner.update_anchor(anchor)
        if point is not None:
            self.move(int(point[0]), int(point[1]))

    def close_panel(self) -> None:
        if self.positioner.position is None and not self.isVisible():
            return
        self._reveal_timer.stop()
        self.positioner.close()
        self.hide()
        self.closed.emit()

    # Dragging ----------------------------------------------------------
    def mousePressEvent(self, event: QMouseEvent) -> None:  # type: ignore[override]
        if event.button() == Qt.MouseButton.LeftButton:
            local = event.position().toPoint()
            on_close = self.close_button.geometry().contains(local)
            pointer = self.mapToParent(local)
            if self.positioner.begin_drag((pointer.x(), pointer.y()), (self.x(), self.y()), on_close):
                event.accept()
                return
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event: QMouseEvent) -> None:  # type: ignore[override]
        if self.positioner.dragging:
            pointer = self.mapToParent(event.position().toPoint())
            point = self.positioner.drag_to((pointer.x(), pointer.y()))
            if point is not None:
                self.move(int(point[0]), int(point[1]))
            event.accept()
            return
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:  # type: ignore[override]
        if self.positioner.dragging:
            self.positioner.end_drag()
            event.accept()
            return
        super().mouseReleaseEvent(event)

    # Outside clicks ----------------------------------------------------
    def eventFilter(self, watched: QObject, event: QEvent) -> bool:  # type: ignore[override]
        if event.type() == QEvent.Type.MouseButtonPress and self.isVisible():
            self.handle_global_click(event.globalPosition().toPoint())
        return False

    def handle_global_click(self, global_point: QPoint) -> bool:
        """Close the panel for clicks outside both the panel and the editor."""

        point = (global_point.x(), global_point.y())
        if PanelPositioner.should_close_on_click(point, global_rect(self), global_rect(self.editor)):
            self.close_panel()
            return True
        return False


class SuggestionIndicator(QPushButton):
    """Small button announcing that a suggestion is ready."""

    hovered = Signal()

    def __init__(self, host: QWidget, config=None) -> None:
        super().__init__("✦", host)
        self.setObjectName("suggestionIndicator")
        self.setToolTip("AI suggestion available")
        self.setFixedSize(28, 28)
        self.setCursor(Qt.PointingHandCursor)
        panel_cfg = config.section("assist", "panel") if config else {}
        self.positioner = PanelPositioner(gutter=float(panel_cfg.get("gutter", 16)))
        self.hide()

    def show_at(self, anchor: PanelAnchor) -> None:
        x, y = self.positioner.open(anchor)
        self.move(int(x), int(y))
        self.show()
        self.raise_()

    def dismiss(self) -> None:
        self.positioner.close()
        self.hide()

    def enterEvent(self, event) -> None:  # type: ignore[override]
        super().enterEvent(event)
        self.hovered.emit()


class MarginButton(QPushButton):
    """Round button in the left margin that reopens one annotation."""

    SIZE = 28

    activated = Signal(str)

    def __init__(self, annotation: Annotation, host: QWidget) -> None:
        super().__init__(annotation.kind.value[0].upper(), host)
        self.annotation_id = annotation.id
        self.setObjectName("marginButton")
        self.setProperty("kind", annotation.kind.value)
        self.setToolTip(annotation.label)
        self.setFixedSize(self.SIZE, self.SIZE)
        self.setCursor(Qt.PointingHandCursor)
        self.setStyleSheet(
            """
            QPushButton#marginButton {
                border-radius: 14px;
                border: 1px solid palette(mid);
                background: palette(button);
                font-weight: 600;
            }
            """
        )
        self.clicked.connect(lambda _checked=False: self.activated.emit(self.annotation_id))

    def place(self, left: float, top: float) -> None:
        self.move(int(left), int(max(0.0, top)))
        self.show()
        self.raise_()
