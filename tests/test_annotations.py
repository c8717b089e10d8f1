from __future__ import annotations

from marginalia.core.errors import PositionError
from marginalia.editor.annotations import AnnotationKind, AnnotationStore


def test_add_and_lookup_by_marker() -> None:
    store = AnnotationStore(default_top=24)

    annotation = store.add(AnnotationKind.ANSWER, "Why?", "Because.", marker_id="m1")

    assert annotation.id in store
    assert annotation.screen_top == 24
    assert store.for_marker("m1") is annotation
    assert annotation.label == "Answer: Why?"


def test_remove_forgets_marker() -> None:
    store = AnnotationStore()
    annotation = store.add("swot", "Idea", "S W O T", marker_id="m2")

    assert store.remove(annotation.id) is annotation
    assert store.for_marker("m2") is None
    assert len(store) == 0


def test_refresh_positions_falls_back_to_default_top() -> None:
    store = AnnotationStore(default_top=10)
    found = store.add(AnnotationKind.DEFINITION, "entropy", "A measure of disorder.")
    lost = store.add(AnnotationKind.THOUGHT, "gone", "...")

    def locate(annotation):
        if annotation is lost:
            raise PositionError("anchor removed")
        return 120

    store.refresh_positions(locate)

    assert found.screen_top == 120
    assert lost.screen_top == 10


def test_records_are_plain_dicts() -> None:
    store = AnnotationStore()
    store.add(AnnotationKind.CONNECTIONS, "graphs", "Trees, networks", annotation_id="a1")

    assert store.as_records() == [
        {
            "id": "a1",
            "kind": "connections",
            "anchor_text": "graphs",
            "payload": "Trees, networks",
            "screen_top": 0.0,
            "marker_id": None,
        }
    ]
