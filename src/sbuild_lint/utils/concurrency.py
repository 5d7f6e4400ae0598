"""Async concurrency primitives for the recipe job scheduler."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation token backed by ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class ResultSink(Generic[R]):
    """Lock-protected collector; the only mutable state shared between workers."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._items: list[R] = []

    async def add(self, item: R) -> None:
        async with self._lock:
            self._items.append(item)

    def snapshot(self) -> tuple[R, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)


@dataclass(frozen=True, slots=True)
class PoolRun(Generic[T, R]):
    """Results in completion order plus the inputs that never finished."""

    results: tuple[R, ...]
    unprocessed: tuple[T, ...] = ()
    cancelled: bool = False


@dataclass(slots=True)
class WorkerPool(Generic[T, R]):
    """Fixed number of workers draining a shared queue of inputs.

    ``handler`` must turn every input into a result; an exception escaping it
    is a programming error and aborts the whole pool.
    """

    size: int
    cancel_token: CancellationToken | None = None
    _token: CancellationToken = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.size <= 0:
            raise ValueError("size must be > 0")
        self._token = self.cancel_token or CancellationToken()

    async def run(self, items: Iterable[T], handler: Callable[[T], Awaitable[R]]) -> PoolRun[T, R]:
        queue: asyncio.Queue[tuple[int, T]] = asyncio.Queue()
        for index, item in enumerate(items):
            queue.put_nowait((index, item))

        sink: ResultSink[R] = ResultSink()
        in_flight: dict[int, T] = {}

        async def worker(worker_id: int) -> None:
            while not self._token.is_cancelled:
                try:
                    index, item = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                in_flight[index] = item
                result = await handler(item)
                await sink.add(result)
                del in_flight[index]
            logger.debug("worker %d stopped by cancellation", worker_id)

        worker_count = min(self.size, queue.qsize())
        workers = {asyncio.create_task(worker(number)) for number in range(worker_count)}
        watcher = asyncio.create_task(self._token.wait())
        remaining = set(workers)

        try:
            while remaining:
                done, _ = await asyncio.wait(
                    remaining | {watcher}, return_when=asyncio.FIRST_COMPLETED
                )
                remaining -= done
                for task in done & workers:
                    if task.cancelled():
                        continue
                    exc = task.exception()
                    if exc is not None:
                        await _cancel_all(remaining)
                        raise exc
                if watcher in done:
                    await _cancel_all(remaining)
                    break
        except asyncio.CancelledError:
            await _cancel_all(remaining)
            raise
        finally:
            watcher.cancel()
            with suppress(asyncio.CancelledError):
                await watcher

        unprocessed = [item for _, item in sorted(in_flight.items())]
        while not queue.empty():
            unprocessed.append(queue.get_nowait()[1])
        return PoolRun(
            results=sink.snapshot(),
            unprocessed=tuple(unprocessed),
            cancelled=self._token.is_cancelled,
        )


async def _cancel_all(tasks: set[asyncio.Task[None]]) -> None:
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


__all__ = [
    "CancellationToken",
    "PoolRun",
    "ResultSink",
    "WorkerPool",
]
