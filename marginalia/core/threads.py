"""Threading helpers for generation calls that must stay off the UI thread."""
from __future__ import annotations

import concurrent.futures
import logging
from typing import Callable

SHUTTING_DOWN = False

logger = logging.getLogger(__name__)


class BackgroundWorkers:
    """Shared thread pool for non-UI tasks, keyed so callers can track their own jobs."""

    def __init__(self, max_workers: int | None = 4) -> None:
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="marginalia-worker"
        )
        self._tasks: dict[str, concurrent.futures.Future] = {}

    def submit(self, key: str, func: Callable, *args, **kwargs) -> concurrent.futures.Future | None:
        if SHUTTING_DOWN:
            logger.debug("Refusing job %s during shutdown", key)
            return None
        self.cancel(key)
        try:
            future = self._executor.submit(func, *args, **kwargs)
        except RuntimeError:
            return None
        self._tasks[key] = future
        future.add_done_callback(lambda done, key=key: self._forget(key, done))
        return future

    def cancel(self, key: str) -> None:
        future = self._tasks.pop(key, None)
        if future and not future.done():
            future.cancel()

    def running(self, key: str) -> bool:
        future = self._tasks.get(key)
        return bool(future and not future.done())

    def _forget(self, key: str, future: concurrent.futures.Future) -> None:
        if self._tasks.get(key) is future:
            self._tasks.pop(key, None)

    def shutdown(self, wait: bool = False) -> None:
        global SHUTTING_DOWN
        SHUTTING_DOWN = True
        for key, future in list(self._tasks.items()):
            if not future.done():
                future.cancel()
            self._tasks.pop(key, None)
        self._executor.shutdown(wait=wait, cancel_futures=True)
