"""Inline assistance controller for the note editor."""
from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass
from typing import Callable

from PySide6.QtCore import QEvent, QObject, QPoint, Signal
from PySide6.QtWidgets import QApplication

from marginalia.ai.actions import action_for
from marginalia.ai.ai_client import AIClient
from marginalia.ai.answer_cache import AnswerCache
from marginalia.ai.prompt_builder import ContextProvider, PromptBuilder
from marginalia.ai.question_detector import QuestionDetector
from marginalia.ai.suggestion_scheduler import DisclosureState, SuggestionScheduler, monotonic_ms
from marginalia.ai.trigger_heuristics import TriggerState
from marginalia.core.config import ConfigManager
from marginalia.core.errors import GenerationError, MarkingError, PositionError
from marginalia.core.logging import get_logger
from marginalia.core.threads import BackgroundWorkers
from marginalia.editor.annotations import Annotation, AnnotationKind, AnnotationStore, new_id
from marginalia.editor.note_editor import NoteEditor
from marginalia.editor.text_events import TextEvent
from marginalia.ui.floating_panel import (
    FloatingAnswerPanel,
    MarginButton,
    PanelAnchor,
    PanelPositioner,
    SuggestionIndicator,
    global_rect,
)


@dataclass
class _ActionRequest:
    kind: AnnotationKind
    selected_text: str
    annotation_id: str
    marker_id: str | None
    top: float
    session: int


class InlineAssistController(QObject):
    """Connects a :class:`NoteEditor` to question answering, suggestions and the floating panel.

    Everything tied to the open note (annotations, cached answers, margin
    buttons) is dropped by :meth:`reset`. Work still in flight when the note
    changes belongs to the old session and is discarded when it completes.
    """

    _action_done = Signal(object, object)

    def __init__(
        self,
        editor: NoteEditor,
        config: ConfigManager | None,
        client: AIClient | None = None,
        context_provider: ContextProvider | None = None,
        workers: BackgroundWorkers | None = None,
        clock: Callable[[], float] = monotonic_ms,
    ) -> None:
        super().__init__(editor)
        self.editor = editor
        self.config = config
        self.client = client or AIClient(config)
        self.logger = get_logger(__name__)
        self.workers = workers or BackgroundWorkers()
        self._session = 0

        panel_cfg = config.section("assist", "panel") if config else {}
        self.store = AnnotationStore(default_top=float(panel_cfg.get("default_top", 24)))
        self.cache = AnswerCache(self.workers)
        self.prompts = PromptBuilder.from_config(config, context_provider)
        self.detector = QuestionDetector(
            editor, self.cache, self.client.generate, self.store, self.prompts, config, self
        )
        self.scheduler = SuggestionScheduler(
            editor,
            self.client.generate,
            state=TriggerState(),
            prompt_builder=self.prompts,
            workers=self.workers,
            clock=clock,
            config=config,
            parent=self,
        )

        self.host = editor.parentWidget() or editor
        self.panel = FloatingAnswerPanel(self.host, editor, config)
        self.indicator = SuggestionIndicator(self.host, config)
        self.margin_buttons: dict[str, MarginButton] = {}
        self._panel_mode: str | None = None
        self._open_annotation: str | None = None

        editor.text_event.connect(self._on_text_event)
        editor.marker_activated.connect(self.open_marker)
        editor.verticalScrollBar().valueChanged.connect(lambda _value: self.refresh_positions())
        self.detector.answer_ready.connect(self._show_answer)
        self.detector.answer_failed.connect(self._show_failure)
        disclosure = self.scheduler.disclosure
        disclosure.indicator_shown.connect(self._show_indicator)
        disclosure.expanded.connect(self._show_suggestion)
        disclosure.dismissed.connect(self._hide_suggestion)
        self.indicator.clicked.connect(disclosure.engage)
        self.indicator.hovered.connect(disclosure.engage)
        self.panel.closed.connect(self._on_panel_closed)
        self._action_done.connect(self._on_action_done)

        app = QApplication.instance()
        if app is not None:
            app.installEventFilter(self)

    @property
    def enabled(self) -> bool:
        return self.config.assist_enabled() if self.config else True

    # Editor events -----------------------------------------------------
    def _on_text_event(self, event: TextEvent) -> None:
        if not self.enabled:
            return
        self.detector.on_text_event(event)
        self.scheduler.on_text_event(event)
        if self.store:
            self.refresh_positions()

    def open_marker(self, marker_id: str) -> None:
        annotation = self.store.for_marker(marker_id)
        if annotation is None or annotation.kind is AnnotationKind.ANSWER:
            self.detector.reopen(marker_id)
            return
        self._show_annotation(annotation, animate=False)

    def open_annotation(self, annotation_id: str) -> None:
        annotation = self.store.get(annotation_id)
        if annotation is not None:
            self._show_annotation(annotation, animate=False)

    # Outside clicks ----------------------------------------------------
    def eventFilter(self, watched: QObject, event: QEvent) -> bool:  # type: ignore[override]
        if (
            event.type() == QEvent.Type.MouseButtonPress
            and self.scheduler.disclosure.state is DisclosureState.INDICATOR
        ):
            self.handle_global_click(event.globalPosition().toPoint())
        return False

    def handle_global_click(self, global_point: QPoint) -> bool:
        """Withdraw a pending suggestion for clicks outside the indicator and the editor."""

        point = (global_point.x(), global_point.y())
        if PanelPositioner.should_close_on_click(point, global_rect(self.indicator), global_rect(self.editor)):
            self.scheduler.disclosure.cancel()
            return True
        return False

    # Panel -------------------------------------------------------------
    def _anchor(self, top: float) -> PanelAnchor:
        return PanelAnchor(top=top, editor_right=float(self.editor.geometry().right()))

    def _cursor_top(self) -> float:
        selection = self.editor.get_selection()
        index = sum(selection) if selection else 0
        return self._top_for(index)

    def _top_for(self, index: int) -> float:
        try:
            return self.editor.get_bounds(index).top
        except PositionError:
            return self.store.default_top

    def _show_answer(self, annotation_id: str, raw: str, top: float, animate: bool) -> None:
        annotation = self.store.get(annotation_id)
        title = annotation.label if annotation else AnnotationKind.ANSWER.title
        self.scheduler.disclosure.cancel()
        self._panel_mode = "annotation"
        self._open_annotation = annotation_id
        self.panel.show_answer(title, raw, self._anchor(top), animate=animate)
        self._sync_margin_buttons()

    def _show_failure(self, annotation_id: str, message: str, top: float) -> None:
        self._panel_mode = "annotation"
        self._open_annotation = None
        self.panel.show_message(AnnotationKind.ANSWER.title, message, self._anchor(top))

    def _show_annotation(self, annotation: Annotation, animate: bool) -> None:
        self._show_answer(annotation.id, annotation.payload, annotation.screen_top, animate)

    def _show_indicator(self, _text: str) -> None:
        self.indicator.show_at(self._anchor(self._cursor_top()))

    def _show_suggestion(self, text: str, animate: bool) -> None:
        self.indicator.dismiss()
        self._panel_mode = "suggestion"
        self._open_annotation = None
        self.panel.show_answer("Suggestion", text, self._anchor(self._cursor_top()), animate=animate)

    def _hide_suggestion(self) -> None:
        self.indicator.dismiss()
        if self._panel_mode == "suggestion":
            self.panel.close_panel()

    def _on_panel_closed(self) -> None:
        if self._panel_mode == "suggestion":
            self.scheduler.disclosure.cancel()
        self._panel_mode = None
        self._open_annotation = None

    # Positions ---------------------------------------------------------
    def refresh_positions(self) -> None:
        """Recompute annotation tops after scrolling, resizing or editing."""

        self.store.refresh_positions(self._locate)
        if self._open_annotation:
            annotation = self.store.get(self._open_annotation)
            if annotation is not None:
                self.panel.reanchor(self._anchor(annotation.screen_top))
        self._sync_margin_buttons()

    def _locate(self, annotation: Annotation) -> float:
        marked = self.editor.marker_range(annotation.marker_id) if annotation.marker_id else None
        if marked is not None:
            index = marked[0]
        else:
            index = self.editor.get_text().find(annotation.anchor_text)
            if index < 0:
                raise PositionError(f"Anchor text for {annotation.id} is no longer in the note")
        return self.editor.get_bounds(index).top

    def _sync_margin_buttons(self) -> None:
        live = {annotation.id: annotation for annotation in self.store}
        for annotation_id in list(self.margin_buttons):
            if annotation_id not in live:
                self._remove_margin_button(annotation_id)
        left = max(0, self.editor.geometry().left() - MarginButton.SIZE - 4)
        for annotation in live.values():
            button = self.margin_buttons.get(annotation.id)
            if button is None:
                button = MarginButton(annotation, self.host)
                button.activated.connect(self.open_annotation)
                self.margin_buttons[annotation.id] = button
            button.place(left, annotation.screen_top)

    def _remove_margin_button(self, annotation_id: str) -> None:
        button = self.margin_buttons.pop(annotation_id, None)
        if button is not None:
            button.hide()
            button.deleteLater()

    # Selection actions -------------------------------------------------
    def run_action(self, kind: AnnotationKind | str) -> bool:
        """Run a definition/questions/swot/thought/connections action on the selection.

        The selection is marked right away so later edits carry the marker
        along while the answer is generated.
        """

        action = action_for(kind)
        selection = self.editor.get_selection()
        if not selection or selection[1] <= 0:
            return False
        start, length = selection
        selected = self.editor.get_text()[start : start + length]
        if not selected.strip():
            return False

        request = _ActionRequest(
            kind=action.kind,
            selected_text=selected,
            annotation_id=new_id(),
            marker_id=self._mark_selection(action.kind, start, length),
            top=self._top_for(start),
            session=self._session,
        )
        key = action.cache_key(selected)
        cached = self.cache.get(key)
        if cached is not None:
            self._complete_action(request, cached, animate=False)
            return True

        prompt = self.prompts.build_action(action.instruction, selected)
        future = self.cache.request(key, lambda: self.client.generate(prompt))
        future.add_done_callback(lambda done, request=request: self._action_done.emit(request, done))
        return True

    def _mark_selection(self, kind: AnnotationKind, start: int, length: int) -> str | None:
        marker_id = new_id()
        try:
            self.editor.insert_marked_span(start, length, marker_id)
        except MarkingError as exc:
            self.logger.warning("Could not mark %s selection: %s", kind.value, exc)
            return None
        return marker_id

    def _on_action_done(self, request: _ActionRequest, future: concurrent.futures.Future) -> None:
        if request.session != self._session:
            self.logger.debug("Dropping %s result from a previous note", request.kind.value)
            return
        try:
            payload = future.result()
        except (GenerationError, concurrent.futures.CancelledError) as exc:
            self.logger.warning("%s action failed: %s", request.kind.value, exc)
            self._fail_action(request)
            return
        except Exception:  # noqa: BLE001
            self.logger.exception("Unexpected failure in %s action", request.kind.value)
            self._fail_action(request)
            return
        self._complete_action(request, payload, animate=True)

    def _fail_action(self, request: _ActionRequest) -> None:
        if request.marker_id:
            self.editor.remove_marker(request.marker_id)
        self._panel_mode = "annotation"
        self._open_annotation = None
        self.panel.show_message(request.kind.title, self.detector.failure_message, self._anchor(request.top))

    def _complete_action(self, request: _ActionRequest, payload: str, animate: bool) -> None:
        marker_id = request.marker_id
        marked = self.editor.marker_range(marker_id) if marker_id else None
        if marked is None:
            # Marking failed, or the marked text was deleted while generating.
            marker_id = None
            top = request.top
        else:
            top = self._top_for(marked[0])
        annotation = self.store.add(
            request.kind,
            request.selected_text,
            payload,
            annotation_id=request.annotation_id,
            marker_id=marker_id,
            screen_top=top,
        )
        self._show_annotation(annotation, animate=animate)

    # Session -----------------------------------------------------------
    def dismiss(self, annotation_id: str) -> None:
        self.store.remove(annotation_id)
        self._remove_margin_button(annotation_id)
        if self._open_annotation == annotation_id:
            self.panel.close_panel()

    def reset(self) -> None:
        """Forget everything tied to the current note."""

        self._session += 1
        self.detector.reset()
        self.cache.clear()
        self.store.clear()
        self.scheduler.reset()
        self.editor.clear_markers()
        self.panel.close_panel()
        self.indicator.dismiss()
        self._sync_margin_buttons()

    def load_note(self, text: str) -> None:
        self.reset()
        self.editor.reset_note(text)
