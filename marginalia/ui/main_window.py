"""Main application window hosting the note editor and inline assistance."""
from __future__ import annotations

from pathlib import Path

from PySide6.QtGui import QAction, QKeySequence
from PySide6.QtWidgets import QFileDialog, QHBoxLayout, QMainWindow, QMessageBox, QWidget

from marginalia.ai.actions import SELECTION_ACTIONS
from marginalia.ai.ai_client import AIClient
from marginalia.ai.ai_inline import InlineAssistController
from marginalia.core.config import ConfigManager
from marginalia.core.logging import get_logger
from marginalia.core.threads import BackgroundWorkers
from marginalia.editor.annotations import AnnotationKind
from marginalia.editor.note_editor import NoteEditor
from marginalia.ui.floating_panel import MarginButton


class MainWindow(QMainWindow):
    def __init__(
        self,
        config: ConfigManager,
        client: AIClient | None = None,
        workers: BackgroundWorkers | None = None,
    ) -> None:
        super().__init__()
        self.config = config
        self.logger = get_logger(__name__)
        self.current_path: Path | None = None
        self.setWindowTitle("Marginalia")
        self.resize(1200, 800)

        # Margin buttons sit left of the editor and the panel floats to its right.
        self.host = QWidget(self)
        layout = QHBoxLayout(self.host)
        layout.setContentsMargins(MarginButton.SIZE + 16, 24, 24, 24)
        self.editor = NoteEditor(self.host)
        layout.addWidget(self.editor, 1)
        panel_cfg = config.section("assist", "panel")
        layout.addSpacing(int(panel_cfg.get("width", 360)) + 2 * int(panel_cfg.get("gutter", 16)))
        self.setCentralWidget(self.host)

        self.assist = InlineAssistController(self.editor, config, client=client, workers=workers)
        self.action_assist_enabled: QAction | None = None
        self._create_actions()
        self._create_menus()

    def _create_actions(self) -> None:
        self.action_new_note = QAction("New Note", self)
        self.action_new_note.setShortcut(QKeySequence.New)
        self.action_new_note.triggered.connect(self.new_note)

        self.action_open_note = QAction("Open Note...", self)
        self.action_open_note.setShortcut(QKeySequence.Open)
        self.action_open_note.triggered.connect(self._prompt_open_note)

        self.action_save_note = QAction("Save", self)
        self.action_save_note.setShortcut(QKeySequence.Save)
        self.action_save_note.triggered.connect(self.save_note)

        self.action_quit = QAction("Quit", self)
        self.action_quit.setShortcut(QKeySequence.Quit)
        self.action_quit.triggered.connect(self.close)

        self.action_assist_enabled = QAction("Inline Assistance", self)
        self.action_assist_enabled.setCheckable(True)
        self.action_assist_enabled.setChecked(self.config.assist_enabled())
        self.action_assist_enabled.toggled.connect(self._toggle_assist)

        self.selection_actions: dict[AnnotationKind, QAction] = {}
        for kind, selection_action in SELECTION_ACTIONS.items():
            action = QAction(selection_action.label, self)
            action.triggered.connect(lambda _checked=False, kind=kind: self.run_selection_action(kind))
            self.selection_actions[kind] = action

    def _create_menus(self) -> None:
        menubar = self.menuBar()
        file_menu = menubar.addMenu("File")
        file_menu.addAction(self.action_new_note)
        file_menu.addAction(self.action_open_note)
        file_menu.addAction(self.action_save_note)
        file_menu.addSeparator()
        file_menu.addAction(self.action_quit)

        assist_menu = menubar.addMenu("Assist")
        assist_menu.addAction(self.action_assist_enabled)
        assist_menu.addSeparator()
        for action in self.selection_actions.values():
            assist_menu.addAction(action)

    # Notes -------------------------------------------------------------
    def new_note(self) -> None:
        self.current_path = None
        self.assist.load_note("")
        self.setWindowTitle("Marginalia")

    def open_note(self, path: str | Path) -> bool:
        target = Path(path)
        try:
            text = target.read_text(encoding="utf-8")
        except OSError as exc:
            self.logger.warning("Failed to open %s: %s", target, exc)
            QMessageBox.warning(self, "Open Note", f"Could not open {target}:\n{exc}")
            return False
        self.current_path = target
        self.assist.load_note(text)
        self.setWindowTitle(f"Marginalia - {target.name}")
        return True

    def save_note(self) -> bool:
        if self.current_path is None:
            path, _ = QFileDialog.getSaveFileName(self, "Save Note", filter="Notes (*.txt *.md);;All files (*)")
            if not path:
                return False
            self.current_path = Path(path)
        try:
            self.current_path.write_text(self.editor.get_text(), encoding="utf-8")
        except OSError as exc:
            self.logger.warning("Failed to save %s: %s", self.current_path, exc)
            QMessageBox.warning(self, "Save Note", f"Could not save {self.current_path}:\n{exc}")
            return False
        self.setWindowTitle(f"Marginalia - {self.current_path.name}")
        return True

    def _prompt_open_note(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Open Note", filter="Notes (*.txt *.md);;All files (*)")
        if path:
            self.open_note(path)

    # Assistance --------------------------------------------------------
    def run_selection_action(self, kind: AnnotationKind) -> None:
        if not self.assist.run_action(kind):
            self.statusBar().showMessage("Select some text first", 3000)

    def _toggle_assist(self, enabled: bool) -> None:
        assist_cfg = dict(self.config.get("assist", {}) or {})
        assist_cfg["enabled"] = enabled
        self.config.set("assist", assist_cfg)
        self.config.save()
        if not enabled:
            self.assist.scheduler.reset()

    def resizeEvent(self, event) -> None:  # type: ignore[override]
        super().resizeEvent(event)
        self.assist.refresh_positions()

    def closeEvent(self, event) -> None:  # type: ignore[override]
        self.assist.workers.shutdown()
        super().closeEvent(event)
