"""PersistCache Write Queue - Single-Writer Execution for Engines.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WriteQueue:
    """Runs engine operations one at a time, in submission order.

    ``asyncio.Lock`` wakes waiters first-in first-out, so operations
    submitted while another is running execute in the order they were
    queued.

    Example:
        queue = WriteQueue("file:/var/cache")
        await queue.run(engine_write, key, value)
        await queue.run_blocking(path.unlink)
    """

    def __init__(self, name: str = "engine"):
        self.name = name
        self._lock = asyncio.Lock()
        self._pending = 0
        self._completed = 0

    @property
    def pending(self) -> int:
        """Operations queued or running."""
        return self._pending

    @property
    def completed(self) -> int:
        """Operations finished, successfully or not."""
        return self._completed

    async def run(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run ``func`` once every earlier operation has finished.

        ``func`` may be a plain callable or return an awaitable.
        """
        self._pending += 1
        try:
            async with self._lock:
                result = func(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
                return result
        finally:
            self._pending -= 1
            self._completed += 1

    async def run_blocking(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking callable in a worker thread, one at a time."""
        return await self.run(asyncio.to_thread, func, *args)

    def __repr__(self) -> str:
        return f"WriteQueue(name={self.name!r}, pending={self._pending})"


__all__ = ["WriteQueue"]
