from __future__ import annotations

import pytest

from marginalia.ai.trigger_heuristics import (
    HeuristicSettings,
    TriggerReason,
    TriggerState,
    complete_sentences,
    evaluate,
    fingerprint,
    find_help_keyword,
    is_repetitive,
    should_trigger,
)

HELP_TEXT = (
    "Maybe I should restructure this whole chapter before the review next week. "
    "I am not sure what the best approach is for the opening section."
)

NOW = 100_000.0


def _state(idle_ms: float, **kwargs) -> TriggerState:
    return TriggerState(last_typing_at=NOW - idle_ms, **kwargs)


def test_help_keywords_fire_after_keyword_idle_floor() -> None:
    decision = evaluate(HELP_TEXT, len(HELP_TEXT), _state(3500), NOW)

    assert decision.fired
    assert decision.reason is TriggerReason.HELP_SEEKING


def test_help_keywords_wait_below_keyword_idle_floor() -> None:
    decision = evaluate(HELP_TEXT, len(HELP_TEXT), _state(2500), NOW)

    assert not decision.fired
    assert decision.blocked_by == "waiting:help_seeking"


def test_short_help_text_is_immature() -> None:
    text = "Maybe I should restructure this. I am not sure what the best approach is."

    assert not should_trigger(text, len(text), _state(3500), NOW)
    assert not should_trigger(text, len(text), _state(2500), NOW)
    assert evaluate(text, len(text), _state(60_000), NOW).blocked_by == "immature"


@pytest.mark.parametrize("idle", [0, 500, 1999])
def test_idle_guard_blocks_while_typing(idle: float) -> None:
    decision = evaluate(HELP_TEXT, len(HELP_TEXT), _state(idle), NOW)

    assert decision.blocked_by == "typing"


def test_never_typed_counts_as_idle() -> None:
    assert should_trigger(HELP_TEXT, len(HELP_TEXT), TriggerState(), NOW)


def test_cooldown_blocks_even_with_strong_signal() -> None:
    state = _state(60_000, last_suggestion_at=NOW - 29_999, suggestion_count=1)

    assert evaluate(HELP_TEXT, len(HELP_TEXT), state, NOW).blocked_by == "cooldown"

    state.last_suggestion_at = NOW - 30_000
    assert should_trigger(HELP_TEXT, len(HELP_TEXT), state, NOW)


def test_single_sentence_never_triggers() -> None:
    text = " ".join(["word"] * 40) + " maybe this is it."

    assert evaluate(text, len(text), _state(60_000), NOW).blocked_by == "immature"


def test_only_text_before_cursor_counts() -> None:
    cursor = len("Maybe I should")

    assert evaluate(HELP_TEXT, cursor, _state(60_000), NOW).blocked_by == "immature"


def test_duplicate_fingerprint_is_skipped() -> None:
    settings = HeuristicSettings()
    digest = fingerprint(HELP_TEXT[-settings.keyword_window :], settings.fingerprint_chars)
    state = _state(60_000, last_analyzed_hash=digest)

    decision = evaluate(HELP_TEXT, len(HELP_TEXT), state, NOW, settings)

    assert decision.blocked_by == "duplicate"
    assert decision.fingerprint == digest


def test_fired_decision_carries_fingerprint() -> None:
    decision = evaluate(HELP_TEXT, len(HELP_TEXT), _state(3500), NOW)

    assert decision.fingerprint == fingerprint(HELP_TEXT[-400:], 150)


def test_mid_sentence_without_intent_is_blocked() -> None:
    text = (
        "The project timeline covers three phases of work across the year. "
        "Each phase has its own budget and staffing plan. The first phase starts with"
    )

    assert evaluate(text, len(text), _state(60_000), NOW).blocked_by == "mid-sentence"


def test_dangling_connective_is_incomplete_thought() -> None:
    text = (
        "The project timeline covers three phases of work across the year. "
        "Each phase has its own budget and staffing plan. The second phase looks fine but"
    )

    waiting = evaluate(text, len(text), _state(3500), NOW)
    fired = evaluate(text, len(text), _state(4000), NOW)

    assert waiting.blocked_by == "waiting:incomplete_thought"
    assert fired.fired
    assert fired.reason is TriggerReason.INCOMPLETE_THOUGHT


def test_expansion_needs_longest_pause() -> None:
    text = (
        "The garden needs new soil before spring arrives this year. "
        "Tomatoes grow best along the southern fence where the light stays longest. "
        "Herbs could fill the smaller beds near the kitchen door."
    )

    assert evaluate(text, len(text), _state(7999), NOW).blocked_by == "waiting:expansion"
    decision = evaluate(text, len(text), _state(8000), NOW)
    assert decision.reason is TriggerReason.EXPANSION


def test_structured_text_fires_before_expansion() -> None:
    text = (
        "The garden needs new soil before spring arrives this year.\n\n"
        "Tomatoes grow best along the southern fence where the light stays longest. "
        "Herbs could fill the smaller beds near the kitchen door."
    )

    decision = evaluate(text, len(text), _state(6000), NOW)

    assert decision.reason is TriggerReason.STRUCTURED


def test_polished_prose_is_left_alone() -> None:
    long_sentence = (
        "This carefully considered sentence contains well over twenty five separate words so that the "
        "average length of every sentence in the passage stays comfortably above the limit for polish."
    )
    hedged = "Maybe " + long_sentence[0].lower() + long_sentence[1:]
    text = " ".join([long_sentence] * 3) + "\n\n" + long_sentence + " " + hedged

    decision = evaluate(text, len(text), _state(60_000), NOW)

    assert decision.blocked_by == "complete"


def test_repetition_detection() -> None:
    sentences = [
        "The quarterly budget review needs careful planning.",
        "Something else entirely happened today.",
        "Careful planning for the quarterly budget review matters.",
    ]

    assert is_repetitive(sentences)
    assert not is_repetitive(["Apples are red.", "Bananas are yellow."])


def test_overlap_ratio_needs_two_shared_words() -> None:
    assert is_repetitive(["Dogs bark loudly.", "Loudly the dogs bark at night."])
    assert not is_repetitive(["Dogs bark.", "Dogs sleep."])


def test_sentence_splitting_and_keywords() -> None:
    assert complete_sentences("One. Two! Three? four") == ["One.", "Two!", "Three?"]
    assert find_help_keyword("Honestly I'm STUCK here") == "i'm stuck"
    assert find_help_keyword("Mayberry is a town") is None


def test_settings_from_config(isolated_config) -> None:
    isolated_config.settings["assist"]["suggestions"]["idle_thresholds_ms"]["help_seeking"] = 1000

    settings = HeuristicSettings.from_config(isolated_config)

    assert settings.min_words == 20
    assert settings.idle_thresholds_ms[TriggerReason.HELP_SEEKING] == 1000
    assert settings.idle_thresholds_ms[TriggerReason.EXPANSION] == 8000
