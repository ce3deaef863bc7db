"""Concurrent fan-out helper for the stages of one phase group.

Launches every branch at once, preserves input order in results and
aggregates usage with the parallel rule. On the first failure the helper
raises immediately; siblings still in flight are left to finish on their
own and their results are discarded.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from podcraft.ledger import HasUsage, Usage, parallel
from podcraft.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

log = get_logger(__name__)

T = TypeVar("T", bound=HasUsage)
Item = TypeVar("Item")

# Strong references to abandoned siblings so they are not garbage collected
# mid-flight.
_orphans: set[asyncio.Task[object]] = set()


@dataclass(frozen=True)
class FanOutResult(Generic[T]):
    """Results in input order plus their parallel usage total."""

    results: list[T]
    usage: Usage


def _discard_orphan(task: asyncio.Task[object]) -> None:
    _orphans.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        log.debug("fan_out_orphan_failed", task=task.get_name(), error=str(error))


async def fan_out(
    items: Sequence[Item],
    call_fn: Callable[[Item], Awaitable[T]],
    max_concurrency: int | None = None,
) -> FanOutResult[T]:
    """Run ``call_fn`` for every item concurrently.

    Args:
        items: Inputs, one branch each.
        call_fn: Async function producing a result with ``usage``.
        max_concurrency: Optional cap on branches in flight.

    Returns:
        FanOutResult with results in input order.

    Raises:
        Exception: The first branch failure (lowest input index among the
            branches that had failed when it was observed).
    """
    if not items:
        return FanOutResult(results=[], usage=Usage())

    semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None

    async def _run_one(item: Item) -> T:
        if semaphore is None:
            return await call_fn(item)
        async with semaphore:
            return await call_fn(item)

    tasks = [
        asyncio.create_task(_run_one(item), name=f"fan_out[{index}]")
        for index, item in enumerate(items)
    ]
    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)

    outcomes = [t.exception() for t in tasks if t in done and not t.cancelled()]
    failed = [e for e in outcomes if e is not None]
    if failed:
        for task in pending:
            _orphans.add(task)
            task.add_done_callback(_discard_orphan)
        log.debug(
            "fan_out_failed",
            total=len(tasks),
            failed=len(failed),
            still_running=len(pending),
        )
        raise failed[0]

    results = [t.result() for t in tasks]
    return FanOutResult(results=results, usage=parallel(results))
