"""At-most-once memoization for coroutine functions.

``memoize_async`` is ``functools.lru_cache`` for coroutines whose results are
worth keeping for the life of the process: the first successful result for a
key is stored, later calls with the same key return it without awaiting the
wrapped function again, and failures are never stored.

Concurrent callers that miss the store for the same key share one in-flight
task instead of each starting their own call. ``wrapper.invalidate()`` detaches
those tasks: their waiters still get a result, but it is not stored and later
callers start a fresh call.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from collections.abc import Awaitable, Callable, MutableMapping
from typing import Any, TypeVar

from .errors import InvalidInvocationError
from .logging_config import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


def _always(_result: object) -> bool:
    return True


def memoize_async(
    fn: Callable[..., Awaitable[T]],
    key_fn: Callable[..., str],
    store: MutableMapping[str, T],
    *,
    should_cache: Callable[[T], bool] = _always,
) -> Callable[..., Awaitable[T]]:
    if not inspect.iscoroutinefunction(fn):
        raise InvalidInvocationError(f"{fn!r} is not a coroutine function")

    in_flight: dict[str, asyncio.Future[T]] = {}
    generation = 0

    async def _populate(
        key: str, started_in: int, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> T:
        result = await fn(*args, **kwargs)
        if should_cache(result) and started_in == generation:
            store[key] = result
        return result

    def invalidate() -> None:
        nonlocal generation
        generation += 1
        in_flight.clear()

    def _forget(key: str, task: asyncio.Future[T]) -> None:
        if in_flight.get(key) is task:
            del in_flight[key]
        # Mark the exception retrieved; every waiter has already seen it.
        if not task.cancelled():
            task.exception()

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        key = key_fn(*args, **kwargs)
        if key in store:
            logger.debug("memo_cache_hit", function=fn.__qualname__)
            return store[key]

        task = in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(_populate(key, generation, args, kwargs))
            in_flight[key] = task
            task.add_done_callback(functools.partial(_forget, key))
        else:
            logger.debug("memo_call_coalesced", function=fn.__qualname__)
        # shield() keeps one cancelled caller from cancelling the shared call.
        return await asyncio.shield(task)

    wrapper.cache = store  # type: ignore[attr-defined]
    wrapper.in_flight = in_flight  # type: ignore[attr-defined]
    wrapper.invalidate = invalidate  # type: ignore[attr-defined]
    return wrapper
