from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, TypeVar

from loguru import logger

T = TypeVar("T")

# Strong references to fire-and-forget tasks; the event loop only keeps weak ones.
_BACKGROUND: set[asyncio.Task[Any]] = set()


def ensure_task(coro: Coroutine[Any, Any, T], *, name: str | None = None) -> asyncio.Task[T]:
    t: asyncio.Task[T] = asyncio.create_task(coro, name=name)
    _BACKGROUND.add(t)
    t.add_done_callback(_BACKGROUND.discard)
    return t


async def cancel_suppress(task: asyncio.Task[Any] | None) -> None:
    if not task or task.done():
        return
    # Never cancel/await the current task: doing so raises "Task cannot await on itself".
    if task is asyncio.current_task():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


def isolated(
    name: str, cb: Callable[..., Awaitable[object] | object]
) -> Callable[..., Coroutine[Any, Any, None]]:
    """
    Wrap an event handler so its failures are logged instead of propagated.

    Transport event loops should not be torn down by one bad handler.
    """

    async def _wrapped(*args: Any) -> None:
        try:
            res = cb(*args)
            if asyncio.iscoroutine(res):
                await res
        except Exception:
            logger.bind(component="handler").exception("{} handler failed", name)

    return _wrapped
