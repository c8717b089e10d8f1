"""Application bootstrap for Marginalia."""
from __future__ import annotations

import argparse
import logging
import sys
import traceback
from pathlib import Path

from PySide6.QtWidgets import QApplication, QMessageBox

from marginalia.ai.ai_client import AIClient
from marginalia.core import threads as _threads
from marginalia.core.config import ConfigManager
from marginalia.core.logging import configure_logging, get_logger, level_from_name
from marginalia.ui.main_window import MainWindow


class MarginaliaApplication:
    """Owns application-wide objects and startup sequence."""

    def __init__(self, argv: list[str] | None = None) -> None:
        self.args = self._parse_args(argv)
        self.config = ConfigManager()
        default_level = level_from_name(self.config.section("logging").get("level"))
        configure_logging(logging.DEBUG if self.args.debug else default_level)
        self.logger = get_logger(__name__)
        self.qt_app = QApplication.instance() or QApplication(sys.argv)

        def _on_about_to_quit() -> None:
            _threads.SHUTTING_DOWN = True

        self.qt_app.aboutToQuit.connect(_on_about_to_quit)
        self._install_exception_hook()
        self.client = AIClient(self.config)
        self.main_window = MainWindow(self.config, client=self.client)

    def _parse_args(self, argv: list[str] | None) -> argparse.Namespace:
        parser = argparse.ArgumentParser(description="Marginalia note editor")
        parser.add_argument("path", nargs="?", help="Note file to open")
        parser.add_argument("--debug", action="store_true", help="Log trigger decisions and other debug output")
        return parser.parse_args(argv)

    def run(self) -> int:
        try:
            if self.args.path:
                self._open_initial_path(self.args.path)
            self.main_window.show()
            return self.qt_app.exec()
        except Exception:
            self.logger.exception("Unhandled exception in main loop")
            return 1
        finally:
            self.cleanup()

    def cleanup(self) -> None:
        if self.main_window is not None:
            self.main_window.close()
            self.main_window.deleteLater()
            self.main_window = None
        if self.qt_app is not None:
            self.qt_app.processEvents()
            self.qt_app.quit()

    def _open_initial_path(self, path: str) -> None:
        target = Path(path)
        if target.is_file():
            self.main_window.open_note(target)
        else:
            self.logger.warning("Ignoring %s: not a file", target)

    # Error handling
    def _install_exception_hook(self) -> None:
        sys.excepthook = self._handle_exception  # type: ignore[assignment]

    def _handle_exception(self, exc_type, exc_value, exc_tb) -> None:  # type: ignore[override]
        """Global exception hook that avoids recursive crashes when formatting fails."""
        try:
            formatted = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
        except RecursionError:
            logging.error("Uncaught exception (formatting failed with RecursionError)")
            return

        logging.error("Uncaught exception:\n%s", formatted)
        dialog = QMessageBox()
        dialog.setWindowTitle("Unexpected Error")
        dialog.setIcon(QMessageBox.Critical)
        dialog.setText("An unexpected error occurred. Details have been written to the log file.")
        dialog.setDetailedText(formatted)
        dialog.exec()
