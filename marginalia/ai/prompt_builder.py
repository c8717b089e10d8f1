"""Prompt builder that merges attachment context and earlier answers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from marginalia.ai.trigger_heuristics import TriggerReason, content_words

ContextProvider = Callable[[], Iterable[str]]

_SUGGESTION_INSTRUCTIONS = {
    TriggerReason.HELP_SEEKING: (
        "The writer sounds unsure or stuck. Offer one concrete, encouraging next step "
        "that addresses their uncertainty."
    ),
    TriggerReason.INCOMPLETE_THOUGHT: (
        "The writer stopped in the middle of a thought. Suggest how the thought could be completed."
    ),
    TriggerReason.STRUCTURED: (
        "The writer has laid out several ideas. Point out one connection or implication they may have missed."
    ),
    TriggerReason.REPETITION: (
        "The writer is circling around the same idea. Suggest a fresh angle or a way to move forward."
    ),
    TriggerReason.EXPANSION: (
        "Suggest one specific way to expand or deepen these notes."
    ),
}


@dataclass
class PromptSegments:
    attachments: str = ""
    history: str = ""
    document: str = ""

    def merge(self) -> str:
        blocks = [self.attachments, self.history, self.document]
        return "\n\n".join([block for block in blocks if block])


class PromptBuilder:
    """Assembles prompts; the pipeline itself only ever sees the final string."""

    def __init__(
        self,
        context_provider: ContextProvider | None = None,
        max_attachment_chars: int = 2000,
        max_prior_answers: int = 3,
    ) -> None:
        self.context_provider = context_provider
        self.max_attachment_chars = max_attachment_chars
        self.max_prior_answers = max_prior_answers

    @classmethod
    def from_config(cls, config, context_provider: ContextProvider | None = None) -> "PromptBuilder":
        section = config.section("assist", "context") if config else {}
        return cls(
            context_provider,
            max_attachment_chars=int(section.get("max_attachment_chars", 2000)),
            max_prior_answers=int(section.get("max_prior_answers", 3)),
        )

    def build_question(self, question: str, prior_answers: Iterable[tuple[str, str]] = ()) -> str:
        segments = PromptSegments(
            attachments=self._attachment_block(),
            history=self._history_block(question, prior_answers),
        )
        instruction = (
            "Answer the question below concisely and directly, in plain prose. "
            "Use the context above only when it is relevant."
        )
        return f"{segments.merge()}\n\n{instruction}\n\nQuestion: {question.strip()}".lstrip()

    def build_suggestion(self, reason: TriggerReason, recent_text: str) -> str:
        segments = PromptSegments(attachments=self._attachment_block(), document=f"Notes so far:\n{recent_text.strip()}")
        instruction = _SUGGESTION_INSTRUCTIONS[reason]
        return f"{segments.merge()}\n\n{instruction} Reply in at most three sentences."

    def build_action(self, instruction: str, selected_text: str) -> str:
        segments = PromptSegments(attachments=self._attachment_block())
        return f"{segments.merge()}\n\n{instruction}\n\nText: \"{selected_text.strip()}\"".lstrip()

    def _attachment_block(self) -> str:
        if not self.context_provider:
            return ""
        pieces = []
        for text in self.context_provider():
            text = (text or "").strip()
            if text:
                pieces.append(text[: self.max_attachment_chars])
        if not pieces:
            return ""
        joined = "\n---\n".join(pieces)
        return f"Attached material:\n{joined}"

    def _history_block(self, question: str, prior_answers: Iterable[tuple[str, str]]) -> str:
        matches = matching_pairs(question, prior_answers, self.max_prior_answers)
        if not matches:
            return ""
        lines = ["Earlier questions in this note:"]
        for prior_question, answer in matches:
            lines.append(f"Q: {prior_question}\nA: {answer.strip()}")
        return "\n".join(lines)


def matching_pairs(
    question: str, prior_answers: Iterable[tuple[str, str]], limit: int = 3
) -> list[tuple[str, str]]:
    """Earlier Q&A pairs sharing content words with ``question``, best overlap first."""

    wanted = content_words(question)
    if not wanted or limit <= 0:
        return []
    scored = []
    for prior_question, answer in prior_answers:
        if prior_question.strip().lower() == question.strip().lower():
            continue
        overlap = len(wanted & content_words(prior_question))
        if overlap:
            scored.append((overlap, prior_question, answer))
    scored.sort(key=lambda item: item[0], reverse=True)
    return [(q, a) for _, q, a in scored[:limit]]
