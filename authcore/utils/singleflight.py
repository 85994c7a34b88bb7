"""Coalesces concurrent identical fetches into one in-flight task."""

import asyncio
import functools
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """
    Runs at most one ``factory()`` per key at a time.

    Callers arriving while a fetch for the same key is running await the
    same task. Each caller awaits through ``asyncio.shield`` so that a caller
    hitting its own deadline does not cancel the fetch for everyone else.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Task[T]] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._inflight

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task
            task.add_done_callback(functools.partial(self._forget, key))
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task[T]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Retrieve the exception so an abandoned task does not warn on GC.
        if not task.cancelled():
            task.exception()

    def cancel_all(self) -> None:
        for task in self._inflight.values():
            task.cancel()
        self._inflight.clear()
