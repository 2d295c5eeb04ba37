"""Bounded asyncio worker pool with per-task result capture."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

import structlog

logger = structlog.get_logger("pipeline.worker_pool")

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class TaskResult(Generic[R]):
    """Outcome of one task, tagged with the index of its input item.

    ``in_flight`` is the number of tasks of the same ``map`` call running
    when this one started, itself included.
    """
    index: int
    value: Optional[R] = None
    error: Optional[Exception] = None
    in_flight: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def peak_in_flight(results: Sequence[TaskResult]) -> int:
    """Highest concurrency reached by one ``map`` call."""
    return max((r.in_flight for r in results), default=0)


class BoundedWorkerPool:
    """Runs a coroutine function over many items with at most
    ``max_in_flight`` calls pending at once.

    Results come back in input order whatever the completion order. The pool
    holds no per-call state, so one instance can serve concurrent ``map``
    calls; each call gets its own limit.
    """

    def __init__(self, max_in_flight: int):
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be at least 1")
        self.max_in_flight = max_in_flight

    async def map(
        self,
        func: Callable[[T, int], Awaitable[R]],
        items: Sequence[T],
        capture_errors: bool = True
    ) -> List[TaskResult[R]]:
        """Apply ``func(item, index)`` to every item.

        With ``capture_errors`` an exception is stored on its ``TaskResult``
        and the other tasks carry on. Without it the first exception cancels
        the remaining tasks and is re-raised.
        """
        semaphore = asyncio.Semaphore(self.max_in_flight)
        running = 0

        async def _run(index: int, item: T) -> TaskResult[R]:
            nonlocal running
            async with semaphore:
                running += 1
                in_flight = running
                try:
                    value = await func(item, index)
                except Exception as e:
                    if not capture_errors:
                        raise
                    return TaskResult(index=index, error=e, in_flight=in_flight)
                finally:
                    running -= 1
                return TaskResult(index=index, value=value, in_flight=in_flight)

        tasks = [asyncio.ensure_future(_run(i, item)) for i, item in enumerate(items)]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        logger.debug(
            "Worker pool drained",
            tasks=len(tasks),
            max_in_flight=self.max_in_flight,
            peak_in_flight=peak_in_flight(results),
        )
        return sorted(results, key=lambda r: r.index)
