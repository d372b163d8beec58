"""Bounded execution of blocking detector calls.

    validator tasks -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> ONNX Runtime

A batch of uploads fans out into one task per file; at most N of them run
model code at once and the rest wait for a slot without blocking the loop.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InferencePool:
    """Semaphore-gated thread pool for detector loading and inference."""

    def __init__(self, max_concurrent: int) -> None:
        self._limit = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._executor = ThreadPoolExecutor(max_workers=max_concurrent, thread_name_prefix="face-detection")
        # Only touched from the event loop thread.
        self._waiting = 0
        self._running = 0

    @property
    def active_count(self) -> int:
        """Calls currently executing in the thread pool."""
        return self._running

    @property
    def queue_depth(self) -> int:
        """Calls waiting for a free slot."""
        return self._waiting

    @asynccontextmanager
    async def _slot(self) -> AsyncIterator[None]:
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1
        self._running += 1
        try:
            yield
        finally:
            self._running -= 1
            self._semaphore.release()

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Run ``func(*args)`` on the pool once a slot is free."""
        async with self._slot():
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, func, *args)

    def shutdown(self) -> None:
        """Wait for running calls, then stop the worker threads."""
        self._executor.shutdown(wait=True)
        logger.info("Inference pool (%d slots) shut down", self._limit)
