"""AI actions a user can run on selected text."""
from __future__ import annotations

from dataclasses import dataclass

from marginalia.editor.annotations import AnnotationKind


@dataclass(frozen=True)
class SelectionAction:
    kind: AnnotationKind
    label: str
    instruction: str

    def cache_key(self, selected_text: str) -> str:
        return f"{self.kind.value}: {selected_text}"


SELECTION_ACTIONS: dict[AnnotationKind, SelectionAction] = {
    AnnotationKind.DEFINITION: SelectionAction(
        AnnotationKind.DEFINITION,
        "Define",
        "Give a short, clear definition or explanation of the text below in two or three sentences.",
    ),
    AnnotationKind.QUESTIONS: SelectionAction(
        AnnotationKind.QUESTIONS,
        "Questions",
        "Write three to five thought-provoking questions that would deepen understanding of the text below. "
        "One question per line.",
    ),
    AnnotationKind.SWOT: SelectionAction(
        AnnotationKind.SWOT,
        "SWOT",
        "Produce a brief SWOT analysis of the idea below with one paragraph each for "
        "Strengths, Weaknesses, Opportunities and Threats.",
    ),
    AnnotationKind.THOUGHT: SelectionAction(
        AnnotationKind.THOUGHT,
        "Thought",
        "Share one insightful observation or reflection about the text below in a few sentences.",
    ),
    AnnotationKind.CONNECTIONS: SelectionAction(
        AnnotationKind.CONNECTIONS,
        "Connections",
        "List related ideas, concepts or fields that connect to the text below, each with a one-line explanation.",
    ),
}


def action_for(kind: AnnotationKind | str) -> SelectionAction:
    kind = AnnotationKind(kind)
    try:
        return SELECTION_ACTIONS[kind]
    except KeyError:
        raise ValueError(f"No selection action for annotation kind {kind.value!r}") from None
