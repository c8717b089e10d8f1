from __future__ import annotations

import pytest

from marginalia.ai.answer_cache import AnswerCache
from marginalia.ai.question_detector import DEFAULT_FAILURE_MESSAGE, QuestionDetector, QuestionFlowState
from marginalia.core.errors import GenerationError
from marginalia.editor.annotations import AnnotationKind, AnnotationStore
from marginalia.editor.text_events import TextChange, normalize
from tests.fakes import FakeEditor, PendingWorkers


class RecordingGenerator:
    def __init__(self, answer: str = "By turning gears.", error: Exception | None = None) -> None:
        self.answer = answer
        self.error = error
        self.prompts: list[str] = []

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.answer


def _detector(qt_app, editor, workers, generate):
    store = AnnotationStore(default_top=24)
    detector = QuestionDetector(editor, AnswerCache(workers), generate, store)
    ready: list[tuple] = []
    failed: list[tuple] = []
    detector.answer_ready.connect(lambda *args: ready.append(args))
    detector.answer_failed.connect(lambda *args: failed.append(args))
    return detector, store, ready, failed


def test_typed_question_is_marked_and_answered_once(qt_app, immediate_workers) -> None:
    editor = FakeEditor()
    generate = RecordingGenerator()
    detector, store, ready, _failed = _detector(qt_app, editor, immediate_workers, generate)
    detected: list[str] = []
    detector.question_detected.connect(detected.append)

    editor.type_text("I wonder how this works?", detector.on_text_event)

    assert detected == ["I wonder how this works?"]
    assert len(generate.prompts) == 1
    assert generate.prompts[0].endswith("Question: I wonder how this works?")
    assert editor.marked == ["I wonder how this works?"]
    assert detector.cache.get("i wonder how this works?") == "By turning gears."
    annotation_id, answer, top, animate = ready[0]
    assert answer == "By turning gears."
    assert animate is True
    assert top == 0.0
    assert store.get(annotation_id).kind is AnnotationKind.ANSWER
    assert detector.state is QuestionFlowState.ANSWER_READY
    assert not detector.is_processing_question


def test_marking_preserves_cursor(qt_app, immediate_workers) -> None:
    editor = FakeEditor("Intro line.\n")
    detector, *_ = _detector(qt_app, editor, immediate_workers, RecordingGenerator())

    editor.type_text("Why?", detector.on_text_event)

    assert editor.cursor == len("Intro line.\nWhy?")
    assert editor.markers and list(editor.markers.values()) == [(12, 16)]


def test_repeated_question_replays_cache_without_animation(qt_app, immediate_workers) -> None:
    editor = FakeEditor()
    generate = RecordingGenerator()
    detector, store, ready, _failed = _detector(qt_app, editor, immediate_workers, generate)

    editor.type_text("How do magnets work?\n", detector.on_text_event)
    editor.type_text("how do magnets work?", detector.on_text_event)

    assert len(generate.prompts) == 1
    assert [args[3] for args in ready] == [True, False]
    assert ready[1][1] == "By turning gears."
    assert len(store) == 2


def test_non_questions_are_ignored(qt_app, immediate_workers) -> None:
    editor = FakeEditor()
    generate = RecordingGenerator()
    detector, *_ = _detector(qt_app, editor, immediate_workers, generate)

    editor.type_text("A statement.\n?", detector.on_text_event)
    deletion = normalize("Why?", 4, TextChange(4, 1, 0))

    assert not detector.on_text_event(deletion)
    assert generate.prompts == []


def test_failure_is_shown_and_not_cached(qt_app, immediate_workers) -> None:
    editor = FakeEditor()
    generate = RecordingGenerator(error=GenerationError("backend down"))
    detector, store, ready, failed = _detector(qt_app, editor, immediate_workers, generate)

    editor.type_text("Why is it down?", detector.on_text_event)

    assert ready == []
    assert failed[0][1] == DEFAULT_FAILURE_MESSAGE
    assert len(store) == 0
    assert detector.cache.get("Why is it down?") is None
    assert not detector.is_processing_question


def test_unexpected_exception_also_fails_cleanly(qt_app, immediate_workers) -> None:
    editor = FakeEditor()
    detector, _store, _ready, failed = _detector(
        qt_app, editor, immediate_workers, RecordingGenerator(error=RuntimeError("boom"))
    )

    editor.type_text("Does it crash?", detector.on_text_event)

    assert len(failed) == 1
    assert detector.state is QuestionFlowState.ANSWER_FAILED


def test_marking_error_does_not_stop_the_answer(qt_app, immediate_workers) -> None:
    editor = FakeEditor(fail_marking=True)
    detector, store, ready, _failed = _detector(qt_app, editor, immediate_workers, RecordingGenerator())

    editor.type_text("Still answered?", detector.on_text_event)

    assert len(ready) == 1
    assert store.get(ready[0][0]).marker_id is None


def test_position_error_uses_default_top(qt_app, immediate_workers) -> None:
    editor = FakeEditor(fail_bounds=True)
    detector, _store, ready, _failed = _detector(qt_app, editor, immediate_workers, RecordingGenerator())

    editor.type_text("Where does it go?", detector.on_text_event)

    assert ready[0][2] == 24


def test_question_while_pending_is_ignored(qt_app) -> None:
    editor = FakeEditor()
    workers = PendingWorkers()
    generate = RecordingGenerator()
    detector, _store, ready, _failed = _detector(qt_app, editor, workers, generate)

    editor.type_text("First question?\n", detector.on_text_event)
    assert detector.is_processing_question
    editor.type_text("Second question?", detector.on_text_event)

    assert len(workers.jobs) == 1
    workers.finish()
    assert len(ready) == 1
    assert not detector.is_processing_question


def test_reset_abandons_pending_question(qt_app) -> None:
    editor = FakeEditor()
    workers = PendingWorkers()
    detector, store, ready, failed = _detector(qt_app, editor, workers, RecordingGenerator())
    editor.type_text("First question?", detector.on_text_event)

    detector.reset()
    assert not detector.is_processing_question
    assert detector.state is QuestionFlowState.IDLE
    editor.type_text("\nSecond question?", detector.on_text_event)
    assert len(workers.jobs) == 2

    workers.finish(0)
    assert ready == [] and failed == []
    assert len(store) == 0
    workers.finish(1)
    assert [store.get(args[0]).anchor_text for args in ready] == ["Second question?"]


def test_reopen_replays_stored_answer(qt_app, immediate_workers) -> None:
    editor = FakeEditor()
    generate = RecordingGenerator()
    detector, _store, ready, _failed = _detector(qt_app, editor, immediate_workers, generate)
    editor.type_text("What is entropy?", detector.on_text_event)
    marker_id = next(iter(editor.markers))

    assert detector.reopen(marker_id)

    assert len(generate.prompts) == 1
    assert ready[-1][1:] == ("By turning gears.", 0.0, False)


def test_reopen_after_failure_asks_again(qt_app, immediate_workers) -> None:
    editor = FakeEditor()
    generate = RecordingGenerator(error=GenerationError("offline"))
    detector, store, ready, failed = _detector(qt_app, editor, immediate_workers, generate)
    editor.type_text("What is entropy?", detector.on_text_event)
    marker_id = next(iter(editor.markers))
    assert len(failed) == 1

    generate.error = None
    assert detector.reopen(marker_id)

    assert len(generate.prompts) == 2
    assert ready[-1][3] is True
    assert store.for_marker(marker_id) is not None


@pytest.mark.parametrize("unknown", ["missing", ""])
def test_reopen_unknown_marker(qt_app, immediate_workers, unknown: str) -> None:
    detector, *_ = _detector(qt_app, FakeEditor(), immediate_workers, RecordingGenerator())

    assert not detector.reopen(unknown)
