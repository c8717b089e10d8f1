"""Detects typed questions, marks them in the note and answers them inline."""
from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from PySide6.QtCore import QObject, Signal

from marginalia.ai.answer_cache import AnswerCache
from marginalia.ai.prompt_builder import PromptBuilder
from marginalia.core.errors import GenerationError, MarkingError, PositionError
from marginalia.core.logging import get_logger
from marginalia.editor.annotations import AnnotationKind, AnnotationStore, new_id
from marginalia.editor.surface import EditorSurface, preserved_cursor
from marginalia.editor.text_events import TextEvent

DEFAULT_FAILURE_MESSAGE = "Sorry, I couldn't come up with an answer right now. Ask again to retry."


class QuestionFlowState(str, Enum):
    IDLE = "idle"
    QUESTION_CANDIDATE = "question_candidate"
    MARKING = "marking"
    ANSWER_PENDING = "answer_pending"
    ANSWER_READY = "answer_ready"
    ANSWER_FAILED = "answer_failed"


@dataclass
class QuestionFlow:
    question: str
    start: int
    annotation_id: str
    marker_id: str | None
    top: float = 0.0
    session: int = 0

    @property
    def length(self) -> int:
        return len(self.question)


class QuestionDetector(QObject):
    """Runs the ``?`` flow: candidate, marking, pending, then ready or failed.

    Only one flow runs at a time; a ``?`` typed while an answer is pending is
    ignored until that flow settles.
    """

    state_changed = Signal(str)
    question_detected = Signal(str)
    answer_ready = Signal(str, str, float, bool)
    answer_failed = Signal(str, str, float)
    _generation_done = Signal(object, object)

    def __init__(
        self,
        editor: EditorSurface,
        cache: AnswerCache,
        generate: Callable[[str], str],
        store: AnnotationStore,
        prompt_builder: PromptBuilder | None = None,
        config=None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.editor = editor
        self.cache = cache
        self.generate = generate
        self.store = store
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.logger = get_logger(__name__)
        questions_cfg = config.section("assist", "questions") if config else {}
        self.enabled = bool(questions_cfg.get("enabled", True))
        self.min_length = int(questions_cfg.get("min_length", 3))
        self.failure_message = questions_cfg.get("failure_message") or DEFAULT_FAILURE_MESSAGE
        self.state = QuestionFlowState.IDLE
        self._processing = False
        self.session = 0
        self._generation_done.connect(self._on_generation_done)

    @property
    def is_processing_question(self) -> bool:
        return self._processing

    def _set_state(self, state: QuestionFlowState) -> None:
        self.state = state
        self.state_changed.emit(state.value)

    # Detection ---------------------------------------------------------
    def candidate_for(self, event: TextEvent) -> str | None:
        if not self.enabled or not event.typed_question_mark:
            return None
        candidate = event.line_fragment.lstrip()
        if len(candidate) < self.min_length or not candidate.endswith("?"):
            return None
        return candidate

    def on_text_event(self, event: TextEvent) -> bool:
        """Start a flow if ``event`` just completed a question. Returns True when one started."""

        if self._processing:
            return False
        candidate = self.candidate_for(event)
        if candidate is None:
            return False

        self._processing = True
        self._set_state(QuestionFlowState.QUESTION_CANDIDATE)
        self.question_detected.emit(candidate)
        flow = QuestionFlow(
            question=candidate,
            start=event.cursor - len(candidate),
            annotation_id=new_id(),
            marker_id=new_id(),
            session=self.session,
        )
        self._mark(flow, cursor=event.cursor)
        self._answer(flow)
        return True

    def _mark(self, flow: QuestionFlow, cursor: int) -> None:
        self._set_state(QuestionFlowState.MARKING)
        flow.top = self._top_for(flow.start)
        try:
            self.editor.insert_marked_span(flow.start, flow.length, flow.marker_id or "")
        except MarkingError as exc:
            self.logger.warning("Could not mark question %r: %s", flow.question, exc)
            flow.marker_id = None
            return
        self.editor.set_selection(preserved_cursor(cursor, flow.start, flow.length), 0)

    def _top_for(self, index: int) -> float:
        try:
            return self.editor.get_bounds(index).top
        except PositionError:
            self.logger.debug("No bounds for index %s, using default top", index)
            return self.store.default_top

    # Answering ---------------------------------------------------------
    def _answer(self, flow: QuestionFlow) -> None:
        self._set_state(QuestionFlowState.ANSWER_PENDING)
        cached = self.cache.get(flow.question)
        if cached is not None:
            self.logger.debug("Replaying cached answer for %r", flow.question)
            self._ready(flow, cached, animate=False)
            return

        prompt = self.prompt_builder.build_question(flow.question, self.cache.items())
        future = self.cache.request(flow.question, lambda: self.generate(prompt))
        future.add_done_callback(lambda done, flow=flow: self._generation_done.emit(flow, done))

    def _on_generation_done(self, flow: QuestionFlow, future: concurrent.futures.Future) -> None:
        if flow.session != self.session:
            self.logger.debug("Dropping answer to %r from a previous note", flow.question)
            return
        try:
            answer = future.result()
        except GenerationError as exc:
            self.logger.warning("Answer generation failed for %r: %s", flow.question, exc.message)
            self._fail(flow)
            return
        except concurrent.futures.CancelledError:
            self._fail(flow)
            return
        except Exception:  # noqa: BLE001
            self.logger.exception("Unexpected failure while answering %r", flow.question)
            self._fail(flow)
            return
        self._ready(flow, answer, animate=True)

    def _ready(self, flow: QuestionFlow, answer: str, animate: bool) -> None:
        self.store.add(
            AnnotationKind.ANSWER,
            flow.question,
            answer,
            annotation_id=flow.annotation_id,
            marker_id=flow.marker_id,
            screen_top=flow.top,
        )
        self._processing = False
        self._set_state(QuestionFlowState.ANSWER_READY)
        self.answer_ready.emit(flow.annotation_id, answer, flow.top, animate)

    def _fail(self, flow: QuestionFlow) -> None:
        self._processing = False
        self._set_state(QuestionFlowState.ANSWER_FAILED)
        self.answer_failed.emit(flow.annotation_id, self.failure_message, flow.top)

    # Re-entry ----------------------------------------------------------
    def reopen(self, marker_id: str) -> bool:
        """Show the answer behind a previously marked question span."""

        annotation = self.store.for_marker(marker_id)
        marked = self.editor.marker_range(marker_id)
        if annotation is not None:
            answer = self.cache.get(annotation.anchor_text)
            if answer is None:
                answer = annotation.payload
            if marked is not None:
                annotation.screen_top = self._top_for(marked[0])
            self._set_state(QuestionFlowState.ANSWER_READY)
            self.answer_ready.emit(annotation.id, answer, annotation.screen_top, False)
            return True

        # The earlier attempt failed; asking again is a fresh flow on the same span.
        if marked is None or self._processing:
            return False
        start, end = marked
        question = self.editor.get_text()[start:end].strip()
        if not question:
            return False
        self._processing = True
        self._set_state(QuestionFlowState.QUESTION_CANDIDATE)
        flow = QuestionFlow(
            question=question,
            start=start,
            annotation_id=new_id(),
            marker_id=marker_id,
            session=self.session,
        )
        flow.top = self._top_for(start)
        self._answer(flow)
        return True

    def reset(self) -> None:
        """Abandon any flow in flight; its answer is dropped when it arrives."""

        self.session += 1
        self._processing = False
        self._set_state(QuestionFlowState.IDLE)
