"""Async utility functions shared across modules."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Coroutine, Iterable
from typing import Any, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


def run_async_with_timeout(coro: Coroutine[Any, Any, T], executor_timeout: float = 10.0) -> T:
    """Run async code like asyncio.run() but with timeout on executor shutdown.

    File-backed stores push blocking I/O to the default executor through
    asyncio.to_thread(); a wedged filesystem call must not hang CLI exit.

    Args:
        coro: Coroutine to execute.
        executor_timeout: Timeout in seconds for executor shutdown. Default 10s.

    Returns:
        Result of the coroutine.

    Raises:
        Same exceptions as the coroutine.

    """
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        return loop.run_until_complete(coro)
    finally:
        with contextlib.suppress(Exception):
            loop.run_until_complete(loop.shutdown_asyncgens())

        try:
            loop.run_until_complete(
                asyncio.wait_for(
                    loop.shutdown_default_executor(),
                    timeout=executor_timeout,
                )
            )
        except TimeoutError:
            logger.warning(
                "Executor shutdown timed out after %.1fs - some threads may still be running",
                executor_timeout,
            )
        except Exception as e:
            logger.debug("Executor shutdown error (ignored): %s", e)

        asyncio.set_event_loop(None)
        loop.close()


async def gather_settled(
    aws: Iterable[Awaitable[T]],
    *,
    limit: int | None = None,
) -> list[T | BaseException]:
    """Run awaitables concurrently and wait until every one has settled.

    Unlike a plain gather, the first failure does not short-circuit the
    others: each slot of the result holds either the value or the exception
    raised by the awaitable at the same position.

    The batch is shielded. If the awaiting task is cancelled, the operations
    already started keep running to completion in the background and the
    CancelledError propagates to the caller immediately.

    Args:
        aws: Awaitables to run.
        limit: Maximum number running at once (None for unbounded).

    Returns:
        Results and exceptions in input order.

    Example:
        >>> results = await gather_settled([upload(a), upload(b)], limit=4)
        >>> failures = [r for r in results if isinstance(r, BaseException)]

    """
    semaphore = asyncio.Semaphore(limit) if limit else None

    async def _run(aw: Awaitable[T]) -> T:
        if semaphore is None:
            return await aw
        async with semaphore:
            return await aw

    tasks = [asyncio.ensure_future(_run(aw)) for aw in aws]
    if not tasks:
        return []
    batch = asyncio.gather(*tasks, return_exceptions=True)
    return list(await asyncio.shield(batch))
