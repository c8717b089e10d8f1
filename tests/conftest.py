"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import concurrent.futures
import os

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6.QtWidgets import QApplication  # noqa: E402

import marginalia.core.config as config_mod  # noqa: E402
import marginalia.core.threads as threads_mod  # noqa: E402

_qt_app = QApplication.instance() or QApplication([])


@pytest.fixture(scope="session")
def qt_app():
    """Provide a shared QApplication instance for widget tests."""

    return _qt_app


@pytest.fixture(autouse=True)
def _workers_accept_jobs(monkeypatch):
    # BackgroundWorkers.shutdown flips a module-wide flag; keep tests isolated from it.
    monkeypatch.setattr(threads_mod, "SHUTTING_DOWN", False)


@pytest.fixture
def isolated_config(monkeypatch, tmp_path):
    """A ConfigManager reading the packaged defaults and writing under ``tmp_path``."""

    monkeypatch.setattr(config_mod, "CONFIG_DIR", tmp_path)
    monkeypatch.setattr(config_mod, "USER_SETTINGS_PATH", tmp_path / "settings.yaml")
    return config_mod.ConfigManager()


class ImmediateExecutor:
    """Runs submitted work synchronously so futures are done on return."""

    def __init__(self, *args, **kwargs) -> None:  # noqa: ANN002, ANN003
        self.submissions: list[tuple[object, tuple, dict]] = []

    def submit(self, func, *args, **kwargs):  # noqa: ANN001, ANN002, ANN003
        self.submissions.append((func, args, kwargs))
        future: concurrent.futures.Future = concurrent.futures.Future()
        try:
            future.set_result(func(*args, **kwargs))
        except Exception as exc:  # noqa: BLE001
            future.set_exception(exc)
        return future

    def shutdown(self, wait: bool = False, **kwargs) -> None:  # noqa: ARG002
        return None


@pytest.fixture
def immediate_executor(monkeypatch):
    monkeypatch.setattr(concurrent.futures, "ThreadPoolExecutor", ImmediateExecutor)
    return ImmediateExecutor


@pytest.fixture
def immediate_workers(immediate_executor):
    workers = threads_mod.BackgroundWorkers()
    yield workers
    workers.shutdown()
