# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie analysis worker pool.

Dream analysis calls the classifier (seconds) and writes three stores, so
the dream-save path hands it to a small thread pool and moves on.

Backpressure: pending > MAX_QUEUE_DEPTH -> WorkerPoolBusy.
Callers decide whether to run inline or skip.
"""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, Future
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("reverie.workers")

MAX_QUEUE_DEPTH = 32
DEFAULT_WORKERS = 2


class WorkerPoolBusy(Exception):
    """Raised when a worker pool's queue is full."""
    pass


class WorkerPool:
    """A named thread pool with queue depth tracking."""

    def __init__(self, name: str, max_workers: int, max_queue_depth: int = MAX_QUEUE_DEPTH):
        self.name = name
        self.max_workers = max_workers
        self.max_queue_depth = max_queue_depth
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=f"reverie-{name}",
        )
        self._pending = 0
        self._lock = threading.Lock()
        self._total_submitted = 0
        self._total_completed = 0
        self._total_rejected = 0

    def _reserve(self) -> None:
        with self._lock:
            if self._pending >= self.max_queue_depth:
                self._total_rejected += 1
                raise WorkerPoolBusy(
                    f"Pool '{self.name}' full ({self._pending}/{self.max_queue_depth})"
                )
            self._pending += 1
            self._total_submitted += 1

    def _release(self) -> None:
        with self._lock:
            self._pending -= 1
            self._total_completed += 1

    def submit_sync(self, fn: Callable, *args, **kwargs) -> Future:
        """Submit work to the pool. Raises WorkerPoolBusy if overloaded."""
        self._reserve()

        def _tracked(*a, **kw):
            try:
                return fn(*a, **kw)
            finally:
                self._release()

        return self._executor.submit(_tracked, *args, **kwargs)

    async def submit(self, fn: Callable, *args, **kwargs) -> Any:
        """Async submit — awaits result. Raises WorkerPoolBusy."""
        future = self.submit_sync(fn, *args, **kwargs)
        return await asyncio.wrap_future(future)

    def stats(self) -> Dict[str, Any]:
        """Pool statistics."""
        with self._lock:
            return {
                "name": self.name,
                "max_workers": self.max_workers,
                "pending": self._pending,
                "submitted": self._total_submitted,
                "completed": self._total_completed,
                "rejected": self._total_rejected,
            }

    def shutdown(self, wait: bool = False) -> None:
        """Shut down the pool."""
        self._executor.shutdown(wait=wait)
        logger.info("Worker pool '%s' shut down", self.name)


# ---------------------------------------------------------------------------
# SINGLETON — lazily created on first submit
# ---------------------------------------------------------------------------

_pool: Optional[WorkerPool] = None
_pool_lock = threading.Lock()


def get_pool() -> WorkerPool:
    """The shared analysis pool."""
    global _pool
    with _pool_lock:
        if _pool is None:
            _pool = WorkerPool("analysis", max_workers=DEFAULT_WORKERS)
            logger.info("Analysis worker pool initialized: %d workers", DEFAULT_WORKERS)
        return _pool


def shutdown_pool(wait: bool = False) -> None:
    """Shut down the shared pool. The next get_pool() starts a fresh one."""
    global _pool
    with _pool_lock:
        if _pool is not None:
            _pool.shutdown(wait=wait)
            _pool = None
