from __future__ import annotations

import asyncio
import contextlib
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

Listener = Callable[..., Awaitable[None]] | Callable[..., None]

log = logger.bind(component="events")


class AsyncEventEmitter:
    """
    Small observer list with per-listener fault isolation.

    - `on(event, fn)` registers a listener (sync or async).
    - `emit(event, *args)` calls every listener; one failing listener is logged
      and does not prevent delivery to the others. Delivery order is not part
      of the contract.
    - `wait_for(event, predicate, timeout_s)` waits for the next matching emission.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._waiters: dict[str, list[tuple[Callable[..., bool] | None, asyncio.Future[Any]]]] = (
            defaultdict(list)
        )

    def on(self, event: str, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if not listeners:
            return
        with contextlib.suppress(ValueError):
            listeners.remove(listener)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
            self._waiters.clear()
            return
        self._listeners.pop(event, None)
        self._waiters.pop(event, None)

    def _resolve_waiters(self, event: str, args: tuple[Any, ...]) -> bool:
        waiters = self._waiters.get(event)
        if not waiters:
            return False
        triggered = False
        remaining: list[tuple[Callable[..., bool] | None, asyncio.Future[Any]]] = []
        for predicate, fut in waiters:
            if fut.done():
                continue
            if predicate is None or predicate(*args):
                fut.set_result(args[0] if len(args) == 1 else args)
                triggered = True
            else:
                remaining.append((predicate, fut))
        if remaining:
            self._waiters[event] = remaining
        else:
            self._waiters.pop(event, None)
        return triggered

    async def emit(self, event: str, *args: Any) -> bool:
        any_triggered = self._resolve_waiters(event, args)

        for listener in list(self._listeners.get(event, [])):
            any_triggered = True
            try:
                res = listener(*args)
                if asyncio.iscoroutine(res):
                    await res
            except Exception:
                log.exception("listener for {!r} failed", event)

        return any_triggered

    async def wait_for(
        self,
        event: str,
        *,
        predicate: Callable[..., bool] | None = None,
        timeout_s: float | None = None,
    ) -> Any:
        loop = asyncio.get_running_loop()
        fut: asyncio.Future[Any] = loop.create_future()
        self._waiters[event].append((predicate, fut))
        try:
            if timeout_s is None:
                return await fut
            return await asyncio.wait_for(fut, timeout=timeout_s)
        finally:
            waiters = self._waiters.get(event)
            if waiters:
                self._waiters[event] = [(p, f) for (p, f) in waiters if f is not fut]
                if not self._waiters[event]:
                    self._waiters.pop(event, None)
