"""Span annotation bookkeeping.

The store only knows ids, anchor text and payloads. Offsets into the live
document belong to the editor (see ``NoteEditor.marker_range``); the store
asks a locator callback for a fresh ``screen_top`` whenever the view changes.
"""
from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Iterator

from marginalia.core.errors import PositionError
from marginalia.core.logging import get_logger


class AnnotationKind(str, Enum):
    DEFINITION = "definition"
    QUESTIONS = "questions"
    SWOT = "swot"
    THOUGHT = "thought"
    ANSWER = "answer"
    CONNECTIONS = "connections"

    @property
    def title(self) -> str:
        return _TITLES[self]


_TITLES = {
    AnnotationKind.DEFINITION: "Definition",
    AnnotationKind.QUESTIONS: "Questions",
    AnnotationKind.SWOT: "SWOT Analysis",
    AnnotationKind.THOUGHT: "AI Thought",
    AnnotationKind.ANSWER: "Answer",
    AnnotationKind.CONNECTIONS: "Connected Ideas",
}


@dataclass
class Annotation:
    id: str
    kind: AnnotationKind
    anchor_text: str
    payload: str
    screen_top: float = 0.0
    marker_id: str | None = None

    @property
    def label(self) -> str:
        return f"{self.kind.title}: {self.anchor_text}"


Locator = Callable[[Annotation], float]


def new_id() -> str:
    return uuid.uuid4().hex


class AnnotationStore:
    """Maps stable annotation ids to their anchor text, kind and payload."""

    def __init__(self, default_top: float = 0.0) -> None:
        self.default_top = default_top
        self._annotations: dict[str, Annotation] = {}
        self._by_marker: dict[str, str] = {}
        self.logger = get_logger(__name__)

    def __len__(self) -> int:
        return len(self._annotations)

    def __iter__(self) -> Iterator[Annotation]:
        return iter(list(self._annotations.values()))

    def __contains__(self, annotation_id: object) -> bool:
        return annotation_id in self._annotations

    def add(
        self,
        kind: AnnotationKind | str,
        anchor_text: str,
        payload: str,
        *,
        annotation_id: str | None = None,
        marker_id: str | None = None,
        screen_top: float | None = None,
    ) -> Annotation:
        annotation = Annotation(
            id=annotation_id or new_id(),
            kind=AnnotationKind(kind),
            anchor_text=anchor_text,
            payload=payload,
            screen_top=self.default_top if screen_top is None else screen_top,
            marker_id=marker_id,
        )
        self._annotations[annotation.id] = annotation
        if marker_id:
            self._by_marker[marker_id] = annotation.id
        self.logger.debug("Stored %s annotation %s", annotation.kind.value, annotation.id)
        return annotation

    def get(self, annotation_id: str) -> Annotation | None:
        return self._annotations.get(annotation_id)

    def for_marker(self, marker_id: str) -> Annotation | None:
        annotation_id = self._by_marker.get(marker_id)
        return self._annotations.get(annotation_id) if annotation_id else None

    def remove(self, annotation_id: str) -> Annotation | None:
        annotation = self._annotations.pop(annotation_id, None)
        if annotation and annotation.marker_id:
            self._by_marker.pop(annotation.marker_id, None)
        return annotation

    def clear(self) -> None:
        self._annotations.clear()
        self._by_marker.clear()

    def refresh_positions(self, locate: Locator) -> None:
        """Recompute ``screen_top`` for every annotation using ``locate``."""

        for annotation in self._annotations.values():
            annotation.screen_top = self.position_of(annotation, locate)

    def position_of(self, annotation: Annotation, locate: Locator) -> float:
        try:
            return float(locate(annotation))
        except PositionError:
            self.logger.debug("No position for annotation %s, using default top", annotation.id)
            return self.default_top

    def as_records(self) -> list[dict]:
        """Plain dictionaries for hosts that want to persist annotations."""

        records = []
        for annotation in self._annotations.values():
            record = asdict(annotation)
            record["kind"] = annotation.kind.value
            records.append(record)
        return records
