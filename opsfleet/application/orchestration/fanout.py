"""
Batched Fan-out Module

Architectural Intent:
- One "launch a batch of concurrent jobs, join, collect per-job outcome" utility
- Shared by the fleet coordinator (unit of work = one target's pipeline)
  and parallel image builds (unit of work = one background remote build)
- A failing job never cancels its siblings; its exception is captured as an outcome

Parallelization Strategy:
- Items are chunked into batches of `batch_size` (default: all at once)
- Every job in a batch runs concurrently; the next batch starts after the join
- Outcomes are returned in input order regardless of completion order
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Iterable, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class JobOutcome(Generic[T, R]):
    item: T
    result: Optional[R] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    if size < 1:
        raise ValueError(f"batch size must be at least 1, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


async def fan_out(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    batch_size: Optional[int] = None,
    stop_on_failure: bool = False,
) -> list[JobOutcome[T, R]]:
    """
    Runs `worker` over every item, batch by batch.

    With stop_on_failure, batches after the first one containing a failure
    are not started; their items are absent from the result.
    """
    pending = list(items)
    if not pending:
        return []

    outcomes: list[JobOutcome[T, R]] = []
    for batch in chunked(pending, batch_size or len(pending)):
        results = await asyncio.gather(
            *(worker(item) for item in batch), return_exceptions=True
        )

        batch_failed = False
        for item, result in zip(batch, results):
            if isinstance(result, Exception):
                outcomes.append(JobOutcome(item=item, error=result))
                batch_failed = True
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(JobOutcome(item=item, result=result))

        if batch_failed and stop_on_failure:
            break

    return outcomes
