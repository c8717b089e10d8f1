"""Session-scoped answer cache with single-flight generation."""
from __future__ import annotations

import concurrent.futures
import threading
from typing import Callable, Iterator

from marginalia.core.errors import GenerationError
from marginalia.core.logging import get_logger
from marginalia.core.threads import BackgroundWorkers


def normalize_question(question: str) -> str:
    return question.lower().strip()


class AnswerCache:
    """Maps normalized questions to raw answers.

    At most one generation per key is in flight: a second ``request`` for a
    key that is still pending gets the first request's future back. Entries
    live until :meth:`clear`; failed generations are never stored.
    """

    def __init__(self, workers: BackgroundWorkers | None = None) -> None:
        self._workers = workers or BackgroundWorkers()
        self._answers: dict[str, str] = {}
        self._inflight: dict[str, concurrent.futures.Future] = {}
        self._lock = threading.RLock()
        self.logger = get_logger(__name__)

    def __len__(self) -> int:
        with self._lock:
            return len(self._answers)

    def get(self, question: str) -> str | None:
        with self._lock:
            return self._answers.get(normalize_question(question))

    def set(self, question: str, answer: str) -> None:
        with self._lock:
            self._answers[normalize_question(question)] = answer

    def pending(self, question: str) -> bool:
        with self._lock:
            return normalize_question(question) in self._inflight

    def items(self) -> Iterator[tuple[str, str]]:
        with self._lock:
            return iter(list(self._answers.items()))

    def request(self, question: str, generate: Callable[[], str]) -> concurrent.futures.Future:
        """Return a future for the answer to ``question``.

        Cached answers resolve immediately; otherwise ``generate`` runs on the
        worker pool unless a generation for the same key is already pending.
        """

        key = normalize_question(question)
        with self._lock:
            cached = self._answers.get(key)
            if cached is not None:
                return _resolved(cached)
            existing = self._inflight.get(key)
            if existing is not None:
                self.logger.debug("Joining in-flight generation for %r", key)
                return existing
            future = self._workers.submit(f"answer:{key}", generate)
            if future is None:
                return _failed(GenerationError("Generation is unavailable while shutting down."))
            self._inflight[key] = future
        future.add_done_callback(lambda done, key=key: self._settle(key, done))
        return future

    def _settle(self, key: str, future: concurrent.futures.Future) -> None:
        with self._lock:
            if self._inflight.get(key) is not future:
                return
            self._inflight.pop(key, None)
            if future.cancelled():
                return
            error = future.exception()
            if error is not None:
                self.logger.info("Generation for %r failed: %s", key, error)
                return
            self._answers[key] = future.result()

    def clear(self) -> None:
        """Drop every answer; in-flight generations finish but are not stored."""

        with self._lock:
            self._answers.clear()
            self._inflight.clear()


def _resolved(value: str) -> concurrent.futures.Future:
    future: concurrent.futures.Future = concurrent.futures.Future()
    future.set_result(value)
    return future


def _failed(error: Exception) -> concurrent.futures.Future:
    future: concurrent.futures.Future = concurrent.futures.Future()
    future.set_exception(error)
    return future
