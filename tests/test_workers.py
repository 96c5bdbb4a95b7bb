# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Analysis worker pool — submission, stats, backpressure."""

import asyncio
import threading
import time

import pytest

from patterns.workers import (
    MAX_QUEUE_DEPTH, WorkerPool, WorkerPoolBusy, get_pool, shutdown_pool,
)


@pytest.fixture
def pool():
    p = WorkerPool("test", max_workers=2)
    yield p
    p.shutdown(wait=True)


class TestWorkerPool:

    def test_submit_sync_returns_result(self, pool):
        future = pool.submit_sync(lambda: 42)
        assert future.result(timeout=2) == 42

    def test_submit_sync_with_args(self, pool):
        def add(a, b):
            return a + b
        future = pool.submit_sync(add, 3, 4)
        assert future.result(timeout=2) == 7

    def test_async_submit(self, pool):
        def compute(word, times=1):
            return word * times

        async def run():
            return await pool.submit(compute, "ab", times=2)

        assert asyncio.run(run()) == "abab"

    def test_concurrent_execution(self, pool):
        results = []
        lock = threading.Lock()

        def slow(i):
            time.sleep(0.05)
            with lock:
                results.append(i)
            return i

        futures = [pool.submit_sync(slow, i) for i in range(2)]
        start = time.monotonic()
        for f in futures:
            f.result(timeout=2)
        elapsed = time.monotonic() - start

        # 2 tasks at 50ms on 2 workers = ~50ms, not ~100ms
        assert elapsed < 0.1
        assert len(results) == 2

    def test_stats_tracking(self, pool):
        pool.submit_sync(lambda: None).result(timeout=2)
        pool.submit_sync(lambda: None).result(timeout=2)

        stats = pool.stats()
        assert stats["name"] == "test"
        assert stats["submitted"] == 2
        assert stats["completed"] == 2
        assert stats["rejected"] == 0
        assert stats["pending"] == 0

    def test_exception_propagation(self, pool):
        def fail():
            raise RuntimeError("boom")

        future = pool.submit_sync(fail)
        with pytest.raises(RuntimeError, match="boom"):
            future.result(timeout=2)
        assert pool.stats()["pending"] == 0


class TestBackpressure:

    def test_rejects_when_full(self):
        pool = WorkerPool("tiny", max_workers=1)
        barrier = threading.Event()

        futures = [pool.submit_sync(barrier.wait, 5) for _ in range(MAX_QUEUE_DEPTH)]

        with pytest.raises(WorkerPoolBusy):
            pool.submit_sync(lambda: None)
        assert pool.stats()["rejected"] == 1

        barrier.set()
        for f in futures:
            f.result(timeout=5)
        pool.shutdown(wait=True)

    def test_async_rejects_when_full(self):
        pool = WorkerPool("tiny", max_workers=1, max_queue_depth=2)
        barrier = threading.Event()
        futures = [pool.submit_sync(barrier.wait, 5) for _ in range(2)]

        async def run():
            return await pool.submit(lambda: None)

        with pytest.raises(WorkerPoolBusy):
            asyncio.run(run())

        barrier.set()
        for f in futures:
            f.result(timeout=5)
        pool.shutdown(wait=True)


class TestSharedPool:

    def test_singleton_and_restart(self):
        first = get_pool()
        assert get_pool() is first
        shutdown_pool(wait=True)
        second = get_pool()
        assert second is not first
        assert second.submit_sync(lambda: "ok").result(timeout=2) == "ok"
        shutdown_pool(wait=True)
