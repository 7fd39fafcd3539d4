"""
Debounced, serialized, crash-safe JSON snapshots.

Each `PersistenceScheduler` owns one file. `schedule()` arms a single timer; calls
made while it is armed are coalesced. When the timer fires, the current snapshot
is serialized and written through a per-file chain so writes never overlap, each
one going to `<file>.tmp` first and then renamed over the target.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

from loguru import logger

from ..util import json as bufferjson
from ..util.asyncio import ensure_task

log = logger.bind(component="persistence")

SnapshotFn = Callable[[], Any]


def _atomic_write(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(payload, "utf-8")
    os.replace(tmp, path)


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text("utf-8")
    except FileNotFoundError:
        return None


async def read_snapshot(path: Path) -> list[Any]:
    """
    Load a persisted JSON array.

    A missing file yields `[]`; an unreadable or malformed one is logged and also
    yields `[]` so startup never fails on a bad cache file.
    """

    try:
        raw = await asyncio.to_thread(_read_text, path)
        if raw is None:
            return []
        data = bufferjson.loads(raw)
    except Exception:
        log.exception("failed to load {}", path)
        return []
    if not isinstance(data, list):
        log.warning("{} does not contain a JSON array, ignoring it", path)
        return []
    return data


class PersistenceScheduler:
    def __init__(self, path: Path, snapshot: SnapshotFn, *, delay_s: float, name: str) -> None:
        self.path = path
        self.delay_s = delay_s
        self.name = name
        self._snapshot = snapshot
        self._timer: asyncio.TimerHandle | None = None
        self._chain: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def schedule(self) -> None:
        """Arm the debounce timer unless it is already armed."""

        if self._timer is not None:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay_s, self._fire)

    def _fire(self) -> None:
        self._timer = None
        self.flush()

    def flush(self) -> asyncio.Task[None]:
        """
        Serialize the current snapshot now and queue it behind the previous write.

        Returns the task for this write; it never raises.
        """

        previous = self._chain
        try:
            payload: str | None = bufferjson.dumps(self._snapshot(), indent=2)
        except Exception:
            log.exception("failed to serialize {} snapshot", self.name)
            payload = None
        self._chain = ensure_task(
            self._write_after(previous, payload), name=f"wasession.persist.{self.name}"
        )
        return self._chain

    async def _write_after(self, previous: asyncio.Task[None] | None, payload: str | None) -> None:
        if previous is not None:
            # Keep the chain alive even if a previous write failed.
            with contextlib.suppress(Exception):
                await previous
        if payload is None:
            return
        try:
            await asyncio.to_thread(_atomic_write, self.path, payload)
        except Exception as e:
            log.error("failed to save {} to {}: {}", self.name, self.path, e)
        else:
            log.debug("saved {} to {}", self.name, self.path)

    async def close(self) -> None:
        """Write anything still pending and wait for the chain to drain."""

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            self.flush()
        if self._chain is not None:
            await self._chain
