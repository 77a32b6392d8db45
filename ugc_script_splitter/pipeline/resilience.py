"""Timeout, retry and bounded-concurrency wrappers for upstream calls.

WHY: The upstream model is slow and unreliable: calls hang, get rate
limited, or fail with temporary overload errors. Every call needs its own
time budget, transient failures deserve a few more tries, and segment
generation must not flood the API with parallel requests.

HOW: with_timeout() races one awaitable against asyncio.wait_for.
with_retry() re-invokes a coroutine factory with exponential backoff,
only for retryable error kinds. map_ordered() runs a coroutine per item
under a semaphore and writes each result into a preallocated slot.

RULES:
- Timeouts surface as UpstreamTimeoutError("<label>_timeout")
- Attempts = 1 + retries; delay before retry n (0-based) = base * 2**n
- Non-retryable errors are re-raised immediately, unchanged
- map_ordered output order == input order, regardless of completion order
- After the first failure no new work starts and that failure is raised
  at once; in-flight siblings are not cancelled and their outcomes are
  still retrieved when they finish
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Optional, TypeVar

from ugc_script_splitter.pipeline.errors import UpstreamTimeoutError, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Sleep = Callable[[float], Awaitable[None]]


async def with_timeout(awaitable: Awaitable[T], timeout_s: float, label: str) -> T:
    """Await awaitable, failing with UpstreamTimeoutError after timeout_s seconds."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_s)
    except asyncio.TimeoutError as exc:
        logger.warning("%s exceeded %.1fs budget", label, timeout_s)
        raise UpstreamTimeoutError(label) from exc


async def with_retry(
    factory: Callable[[], Awaitable[T]],
    *,
    retries: int,
    base_delay_s: float,
    label: str,
    sleep: Sleep | None = None,
) -> T:
    """Call factory() until it succeeds or the retry bound is reached.

    WHY: A coroutine can only be awaited once, so each attempt needs a
    fresh one from the factory.

    RULES:
    - Only errors classified TIMEOUT or TRANSIENT are retried
    - The last error is re-raised unchanged once attempts are exhausted

    Args:
        factory: Zero-arg callable returning a new awaitable per attempt.
        retries: Additional attempts after the first.
        base_delay_s: Backoff base; delays are base, 2*base, 4*base, ...
        label: Call-site label for logs.
        sleep: Injectable sleep (tests pass a recorder).
    """
    sleep = sleep or asyncio.sleep
    attempt = 0
    while True:
        try:
            return await factory()
        except Exception as exc:
            if attempt >= retries or not is_retryable(exc):
                raise
            delay = base_delay_s * (2 ** attempt)
            attempt += 1
            logger.warning(
                "%s failed (%s); retry %d/%d in %.1fs",
                label, exc, attempt, retries, delay,
            )
            await sleep(delay)


async def map_ordered(
    items: Sequence[T],
    worker: Callable[[T, int], Awaitable[R]],
    concurrency: int,
) -> list[R]:
    """Run worker(item, index) for every item with at most `concurrency` in flight.

    HOW: Tasks are created in index order and each one acquires a
    semaphore permit before doing work. Results land in a preallocated
    list at their own index. The first failure sets an abort flag so
    workers that have not started yet skip their call, and is raised
    without waiting for workers that are still running.

    Args:
        items: Inputs, in output order.
        worker: Coroutine function taking (item, index).
        concurrency: Maximum simultaneous workers (values < 1 mean 1).

    Returns:
        Results in the same order as items.
    """
    if not items:
        return []

    semaphore = asyncio.Semaphore(max(1, concurrency))
    results: list[Optional[R]] = [None] * len(items)
    failures: list[BaseException] = []

    async def run_one(item: T, index: int) -> None:
        async with semaphore:
            if failures:
                return
            try:
                results[index] = await worker(item, index)
            except Exception as exc:
                failures.append(exc)
                raise

    tasks = [asyncio.create_task(run_one(item, i)) for i, item in enumerate(items)]
    for task in tasks:
        task.add_done_callback(_retrieve_outcome)
    await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)

    if failures:
        raise failures[0]
    return results  # type: ignore[return-value]


def _retrieve_outcome(task: asyncio.Task) -> None:
    # Marks a sibling's exception as seen after map_ordered has already raised.
    if not task.cancelled():
        task.exception()
