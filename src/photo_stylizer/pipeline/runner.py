"""Supervised background executor for pipeline runs.

The runner belongs to the application, not to a request, so work spawned by
an upload keeps running after the HTTP response has been sent.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundRunner:
    def __init__(self, max_workers: int = 4, *, thread_name_prefix: str = "stylize") -> None:
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix)
        self._lock = threading.Lock()
        self._inflight: set[Future[Any]] = set()

    def spawn(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future[Any]:
        future = self._pool.submit(fn, *args, **kwargs)
        with self._lock:
            self._inflight.add(future)
        future.add_done_callback(self._on_done)
        return future

    @property
    def inflight(self) -> int:
        with self._lock:
            return len(self._inflight)

    def shutdown(self, wait: bool = True) -> None:
        logger.info("background_runner event=shutdown inflight=%d wait=%s", self.inflight, wait)
        self._pool.shutdown(wait=wait)

    def _on_done(self, future: Future[Any]) -> None:
        with self._lock:
            self._inflight.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                "background_runner event=task_crashed error=%s",
                exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
