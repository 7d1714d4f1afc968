from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

T = TypeVar("T")
R = TypeVar("R")


class WorkerPool:
    """Bounded pool of permits for coroutines sharing one event loop.

    At most ``width`` coroutines submitted through the same pool are in flight
    at once; the rest wait for a permit. Used by the coordinator for producer
    invocations and by the suppression engine for context reads.
    """

    def __init__(self, width: int = 4) -> None:
        self.width = max(1, int(width))
        self._semaphore: asyncio.Semaphore | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._active = 0
        self.peak = 0

    @property
    def active(self) -> int:
        return self._active

    def _permits(self) -> asyncio.Semaphore:
        # a semaphore is bound to one loop; each asyncio.run gets a fresh one
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._loop is not loop:
            self._semaphore = asyncio.Semaphore(self.width)
            self._loop = loop
        return self._semaphore

    async def submit(self, fn: Callable[..., Awaitable[R]], *args: Any, **kwargs: Any) -> R:
        async with self._permits():
            self._active += 1
            self.peak = max(self.peak, self._active)
            try:
                return await fn(*args, **kwargs)
            finally:
                self._active -= 1

    async def map(self, fn: Callable[[T], Awaitable[R]], items: Iterable[T]) -> list[R]:
        """Run ``fn`` over ``items`` under the pool; results keep input order."""
        return list(await asyncio.gather(*(self.submit(fn, item) for item in items)))
