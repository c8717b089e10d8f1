"""Rule-based policy deciding when a proactive suggestion is worth showing.

Everything here is pure: callers pass the text, the cursor, the scheduler's
:class:`TriggerState` and the current time, and get a :class:`TriggerDecision`
back. The rules are layered so that a pause alone never interrupts the user;
a suggestion needs mature content, a quiet keyboard, an expired cooldown and
at least one signal that help adds value, with stronger signals allowed to
fire after shorter pauses.
"""
from __future__ import annotations

import hashlib
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from itertools import combinations
from typing import Any

TERMINAL_PUNCTUATION = ".!?"
_CLOSERS = "\"')]”’"

HELP_KEYWORDS = (
    "i'm stuck",
    "im stuck",
    "i am stuck",
    "not sure",
    "unsure",
    "how do i",
    "how can i",
    "how should i",
    "should i",
    "maybe",
    "i think",
    "i wonder",
    "i guess",
    "confused",
    "don't know",
    "dont know",
    "no idea",
    "any ideas",
    "what if",
    "help me",
    "struggling",
)
_HELP_PATTERN = re.compile(r"\b(?:" + "|".join(re.escape(k) for k in HELP_KEYWORDS) + r")\b")
_DANGLING = re.compile(r"(?:\b(?:but|however)\b,?(?:\s+[\w'-]+){0,3}|\b(?:and|or))\s*$", re.IGNORECASE)
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])[\"')\]”’]*\s+")
_WORD = re.compile(r"[\w']+")
_PARAGRAPH_BREAK = re.compile(r"\S[ \t]*\n\s*\S")


class TriggerReason(str, Enum):
    HELP_SEEKING = "help_seeking"
    INCOMPLETE_THOUGHT = "incomplete_thought"
    STRUCTURED = "structured"
    REPETITION = "repetition"
    EXPANSION = "expansion"


@dataclass(frozen=True)
class HeuristicSettings:
    min_words: int = 20
    min_sentences: int = 2
    idle_ms: float = 2000
    cooldown_ms: float = 30000
    keyword_window: int = 400
    fingerprint_chars: int = 150
    idle_thresholds_ms: dict[TriggerReason, float] = field(
        default_factory=lambda: {
            TriggerReason.HELP_SEEKING: 3000,
            TriggerReason.INCOMPLETE_THOUGHT: 4000,
            TriggerReason.STRUCTURED: 6000,
            TriggerReason.REPETITION: 7000,
            TriggerReason.EXPANSION: 8000,
        }
    )

    @classmethod
    def from_config(cls, config: Any) -> "HeuristicSettings":
        section = config.section("assist", "suggestions") if config else {}
        defaults = cls()
        thresholds = dict(defaults.idle_thresholds_ms)
        for name, value in (section.get("idle_thresholds_ms") or {}).items():
            try:
                thresholds[TriggerReason(name)] = float(value)
            except ValueError:
                continue
        return cls(
            min_words=int(section.get("min_words", defaults.min_words)),
            min_sentences=int(section.get("min_sentences", defaults.min_sentences)),
            idle_ms=float(section.get("idle_ms", defaults.idle_ms)),
            cooldown_ms=float(section.get("cooldown_ms", defaults.cooldown_ms)),
            keyword_window=int(section.get("keyword_window", defaults.keyword_window)),
            fingerprint_chars=int(section.get("fingerprint_chars", defaults.fingerprint_chars)),
            idle_thresholds_ms=thresholds,
        )


@dataclass
class TriggerState:
    """Per-editor history. Timestamps are milliseconds; ``0`` means never."""

    last_typing_at: float = 0.0
    last_suggestion_at: float = 0.0
    suggestion_count: int = 0
    last_analyzed_hash: str = ""


@dataclass(frozen=True)
class TextProfile:
    words: int
    sentences: list[str]
    has_paragraph_break: bool
    ends_terminal: bool
    help_keyword: str | None
    dangling_connective: bool
    window: str

    @property
    def sentence_count(self) -> int:
        return len(self.sentences)

    @property
    def has_intent_signal(self) -> bool:
        return self.help_keyword is not None or self.dangling_connective

    @property
    def average_sentence_words(self) -> float:
        if not self.sentences:
            return 0.0
        return sum(len(_WORD.findall(s)) for s in self.sentences) / len(self.sentences)


@dataclass(frozen=True)
class TriggerDecision:
    fired: bool
    reason: TriggerReason | None = None
    blocked_by: str | None = None
    fingerprint: str = ""

    def __bool__(self) -> bool:
        return self.fired


def ends_with_terminal(text: str) -> bool:
    return text.rstrip().rstrip(_CLOSERS).endswith(tuple(TERMINAL_PUNCTUATION))


def complete_sentences(text: str) -> list[str]:
    """Sentences terminated by ``.``, ``!`` or ``?`` followed by whitespace or the end."""

    pieces = [piece.strip() for piece in _SENTENCE_BREAK.split(text.strip())]
    return [piece for piece in pieces if piece and ends_with_terminal(piece)]


def has_paragraph_break(text: str) -> bool:
    return bool(_PARAGRAPH_BREAK.search(text))


def find_help_keyword(text: str) -> str | None:
    match = _HELP_PATTERN.search(text.lower().replace("’", "'"))
    return match.group(0) if match else None


def content_words(sentence: str) -> set[str]:
    return {word for word in _WORD.findall(sentence.lower()) if len(word) > 3}


def is_repetitive(sentences: list[str]) -> bool:
    """Two of the last four sentences share at least four content words or 30% of them."""

    recent = [content_words(s) for s in sentences[-4:]]
    for first, second in combinations(recent, 2):
        if not first or not second:
            continue
        shared = first & second
        if len(shared) >= 4:
            return True
        if len(shared) >= 2 and len(shared) / len(first | second) >= 0.3:
            return True
    return False


def fingerprint(window: str, chars: int = 150) -> str:
    return hashlib.sha1(window[:chars].encode("utf-8")).hexdigest()


def profile(text: str, settings: HeuristicSettings | None = None) -> TextProfile:
    settings = settings or HeuristicSettings()
    window = text[-settings.keyword_window :]
    return TextProfile(
        words=len(_WORD.findall(text)),
        sentences=complete_sentences(text),
        has_paragraph_break=has_paragraph_break(text),
        ends_terminal=ends_with_terminal(text),
        help_keyword=find_help_keyword(window),
        dangling_connective=bool(_DANGLING.search(text.rstrip())) and not ends_with_terminal(text),
        window=window,
    )


def value_signals(info: TextProfile) -> list[TriggerReason]:
    """Every value condition present in ``info``, regardless of idle time."""

    signals = []
    if info.help_keyword:
        signals.append(TriggerReason.HELP_SEEKING)
    if info.dangling_connective:
        signals.append(TriggerReason.INCOMPLETE_THOUGHT)
    if info.sentence_count >= 3 and info.has_paragraph_break and info.ends_terminal:
        signals.append(TriggerReason.STRUCTURED)
    if is_repetitive(info.sentences):
        signals.append(TriggerReason.REPETITION)
    if (
        2 <= info.sentence_count <= 6
        and 30 <= info.words <= 250
        and (info.has_paragraph_break or info.sentence_count >= 2)
        and info.ends_terminal
    ):
        signals.append(TriggerReason.EXPANSION)
    return signals


def is_too_complete(info: TextProfile) -> bool:
    return info.sentence_count >= 5 and info.average_sentence_words > 25 and info.has_paragraph_break


def evaluate(
    text: str,
    cursor: int,
    state: TriggerState,
    now: float,
    settings: HeuristicSettings | None = None,
) -> TriggerDecision:
    """Apply every rule in order and report the first one that blocks, or the reason that fired."""

    settings = settings or HeuristicSettings()
    before = text[: max(0, min(cursor, len(text)))]

    idle = now - state.last_typing_at if state.last_typing_at else math.inf
    if idle < settings.idle_ms:
        return TriggerDecision(False, blocked_by="typing")

    if state.last_suggestion_at and now - state.last_suggestion_at < settings.cooldown_ms:
        return TriggerDecision(False, blocked_by="cooldown")

    info = profile(before, settings)
    if info.words < settings.min_words or info.sentence_count < settings.min_sentences:
        return TriggerDecision(False, blocked_by="immature")

    digest = fingerprint(info.window, settings.fingerprint_chars)
    if state.last_analyzed_hash and digest == state.last_analyzed_hash:
        return TriggerDecision(False, blocked_by="duplicate", fingerprint=digest)

    # Polished prose is left alone even when it also asks for help.
    if is_too_complete(info):
        return TriggerDecision(False, blocked_by="complete", fingerprint=digest)

    if not info.ends_terminal and not info.has_intent_signal:
        return TriggerDecision(False, blocked_by="mid-sentence", fingerprint=digest)

    signals = value_signals(info)
    if not signals:
        return TriggerDecision(False, blocked_by="no-signal", fingerprint=digest)

    ranked = sorted(signals, key=lambda reason: settings.idle_thresholds_ms[reason])
    for reason in ranked:
        if idle >= settings.idle_thresholds_ms[reason]:
            return TriggerDecision(True, reason=reason, fingerprint=digest)
    return TriggerDecision(False, blocked_by=f"waiting:{ranked[0].value}", fingerprint=digest)


def should_trigger(
    text: str,
    cursor: int,
    state: TriggerState,
    now: float,
    settings: HeuristicSettings | None = None,
) -> bool:
    return evaluate(text, cursor, state, now, settings).fired
