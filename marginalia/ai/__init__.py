"""AI package exports."""

from .ai_client import AIClient, AIResponse, DummyBackend, HTTPBackend
from .answer_cache import AnswerCache
from .trigger_heuristics import TriggerDecision, TriggerReason, TriggerState, should_trigger

__all__ = [
    "AIClient",
    "AIResponse",
    "AnswerCache",
    "DummyBackend",
    "HTTPBackend",
    "TriggerDecision",
    "TriggerReason",
    "TriggerState",
    "should_trigger",
]
