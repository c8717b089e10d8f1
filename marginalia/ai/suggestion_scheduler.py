"""Idle detection, heuristic polling and progressive disclosure of suggestions."""
from __future__ import annotations

import concurrent.futures
import time
from enum import Enum
from typing import Callable

from PySide6.QtCore import QObject, QTimer, Signal

from marginalia.ai.prompt_builder import PromptBuilder
from marginalia.ai.trigger_heuristics import (
    HeuristicSettings,
    TriggerDecision,
    TriggerReason,
    TriggerState,
    evaluate,
)
from marginalia.core.errors import GenerationError
from marginalia.core.logging import get_logger
from marginalia.core.threads import BackgroundWorkers
from marginalia.editor.surface import EditorSurface
from marginalia.editor.text_events import TextEvent


def monotonic_ms() -> float:
    return time.monotonic() * 1000


class DisclosureState(str, Enum):
    HIDDEN = "hidden"
    INDICATOR = "indicator"
    EXPANDED = "expanded"


class DisclosureController(QObject):
    """Shows a small indicator first and the full panel only on interest or after a delay."""

    indicator_shown = Signal(str)
    expanded = Signal(str, bool)
    dismissed = Signal()

    def __init__(self, auto_expand_ms: int = 5000, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self.state = DisclosureState.HIDDEN
        self.text = ""
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setInterval(auto_expand_ms)
        self._timer.timeout.connect(self.auto_expand)

    def present(self, text: str) -> None:
        self.cancel()
        self.text = text
        self.state = DisclosureState.INDICATOR
        self.indicator_shown.emit(text)
        self._timer.start()

    def engage(self) -> None:
        """Hover or click on the indicator."""

        if self.state is DisclosureState.INDICATOR:
            self._expand()

    def auto_expand(self) -> None:
        if self.state is DisclosureState.INDICATOR:
            self._expand()

    def _expand(self) -> None:
        self._timer.stop()
        self.state = DisclosureState.EXPANDED
        self.expanded.emit(self.text, True)

    def cancel(self) -> None:
        self._timer.stop()
        if self.state is DisclosureState.HIDDEN:
            return
        self.state = DisclosureState.HIDDEN
        self.dismissed.emit()


class SuggestionScheduler(QObject):
    """Owns the trigger state and the polling loop for proactive suggestions.

    Each text change restarts the idle clock and a bounded loop that
    re-evaluates the heuristics every ``poll_interval_ms`` until
    ``poll_window_ms`` has passed, the user types again, or a suggestion fires.
    """

    suggestion_triggered = Signal(str)
    suggestion_failed = Signal(str)
    _generation_done = Signal(object, object, int)

    def __init__(
        self,
        editor: EditorSurface,
        generate: Callable[[str], str],
        state: TriggerState | None = None,
        settings: HeuristicSettings | None = None,
        prompt_builder: PromptBuilder | None = None,
        workers: BackgroundWorkers | None = None,
        clock: Callable[[], float] = monotonic_ms,
        config=None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.editor = editor
        self.generate = generate
        self.state = state or TriggerState()
        self.settings = settings or HeuristicSettings.from_config(config)
        self.prompt_builder = prompt_builder or PromptBuilder()
        self._workers = workers or BackgroundWorkers()
        self._clock = clock
        self.logger = get_logger(__name__)

        suggestions_cfg = config.section("assist", "suggestions") if config else {}
        self.enabled = bool(suggestions_cfg.get("enabled", True))
        self.poll_window_ms = float(suggestions_cfg.get("poll_window_ms", 10000))
        self._deadline = 0.0
        self._session = 0
        self._timer = QTimer(self)
        self._timer.setInterval(int(suggestions_cfg.get("poll_interval_ms", 1000)))
        self._timer.timeout.connect(self.poll)
        self.disclosure = DisclosureController(int(suggestions_cfg.get("auto_expand_ms", 5000)), self)
        self._generation_done.connect(self._on_generation_done)

    @property
    def active(self) -> bool:
        return self._timer.isActive()

    def now(self) -> float:
        return self._clock()

    def on_text_event(self, event: TextEvent) -> None:
        """Any keystroke restarts the idle clock and cancels what is on screen."""

        self.state.last_typing_at = self.now()
        self.cancel()
        self.disclosure.cancel()
        if not self.enabled or not event.text.strip():
            return
        self._deadline = self.state.last_typing_at + self.poll_window_ms
        self._timer.start()

    def cancel(self) -> None:
        self._timer.stop()
        self._deadline = 0.0

    def poll(self) -> TriggerDecision | None:
        now = self.now()
        if not self._deadline or now > self._deadline:
            self.cancel()
            return None

        text = self.editor.get_text()
        selection = self.editor.get_selection()
        cursor = sum(selection) if selection else len(text)
        decision = evaluate(text, cursor, self.state, now, self.settings)
        self.logger.debug("Suggestion check: fired=%s reason=%s blocked_by=%s", decision.fired, decision.reason, decision.blocked_by)
        if decision.fired:
            self.cancel()
            self._fire(decision, text[:cursor], now)
        return decision

    def _fire(self, decision: TriggerDecision, before_cursor: str, now: float) -> None:
        assert decision.reason is not None
        self.state.last_suggestion_at = now
        self.state.suggestion_count += 1
        self.state.last_analyzed_hash = decision.fingerprint
        self.logger.info("Proactive suggestion #%d (%s)", self.state.suggestion_count, decision.reason.value)
        self.suggestion_triggered.emit(decision.reason.value)

        prompt = self.prompt_builder.build_suggestion(decision.reason, before_cursor[-self.settings.keyword_window :])
        future = self._workers.submit("suggestion", self.generate, prompt)
        if future is None:
            return
        future.add_done_callback(
            lambda done, reason=decision.reason, session=self._session: self._generation_done.emit(reason, done, session)
        )

    def _on_generation_done(self, reason: TriggerReason, future: concurrent.futures.Future, session: int) -> None:
        if future.cancelled() or session != self._session:
            return
        try:
            text = future.result()
        except GenerationError as exc:
            self.logger.warning("Suggestion generation failed (%s): %s", reason.value, exc.message)
            self.suggestion_failed.emit(exc.message)
            return
        except Exception as exc:  # noqa: BLE001
            self.logger.exception("Unexpected failure while generating a %s suggestion", reason.value)
            self.suggestion_failed.emit(str(exc))
            return
        self.disclosure.present(text.strip())

    def reset(self) -> None:
        """Forget history for a note switch."""

        self._session += 1
        self.cancel()
        self.disclosure.cancel()
        self.state.last_typing_at = 0.0
        self.state.last_suggestion_at = 0.0
        self.state.suggestion_count = 0
        self.state.last_analyzed_hash = ""
