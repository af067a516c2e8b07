"""Single-shot asynchronous initialization shared by concurrent callers."""

# Module responsibilities:
# - Start an initialization coroutine at most once per instance.
# - Let every caller await the same pending task and observe the same result or failure.

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class ReadinessGate(Generic[T]):
    """Memoized initialization task.

    The factory is invoked on the first ``wait()`` call. Later callers, including
    ones arriving while the task is still pending, await the same task. A failure
    is cached and re-raised to every caller; the factory never runs twice.
    """

    def __init__(self, factory: Callable[[], Awaitable[T]]) -> None:
        self._factory = factory
        self._task: Optional[asyncio.Future[T]] = None

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait(self) -> T:
        if self._task is None:
            self._task = asyncio.ensure_future(self._factory())
        # Cancelling one waiter must not cancel the shared task.
        return await asyncio.shield(self._task)
