"""Frame loop: one physics tick and one paint per display frame."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable
from typing import Any, Protocol

logger = logging.getLogger("kinship.canvas.loop")

FrameCallback = Callable[[float], None]


class FrameScheduler(Protocol):
    def schedule_frame(self, callback: FrameCallback) -> Any: ...

    def cancel(self, token: Any) -> None: ...


class AsyncioFrameScheduler:
    """Schedules frames on the running event loop at a fixed rate."""

    def __init__(self, fps: float = 60.0) -> None:
        self.interval = 1.0 / fps

    def schedule_frame(self, callback: FrameCallback) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(self.interval, lambda: callback(loop.time()))

    def cancel(self, token: asyncio.TimerHandle) -> None:
        token.cancel()


class ManualFrameScheduler:
    """Frames run only when ``advance`` is called. Used by tests and exports."""

    def __init__(self, interval: float = 1.0 / 60.0) -> None:
        self.interval = interval
        self.now = 0.0
        self._ids = itertools.count(1)
        self._pending: dict[int, FrameCallback] = {}

    @property
    def pending(self) -> int:
        return len(self._pending)

    def schedule_frame(self, callback: FrameCallback) -> int:
        token = next(self._ids)
        self._pending[token] = callback
        return token

    def cancel(self, token: int) -> None:
        self._pending.pop(token, None)

    def advance(self, frames: int = 1) -> int:
        """Run up to ``frames`` frames; returns how many had work to do."""
        ran = 0
        for _ in range(frames):
            if not self._pending:
                break
            self.now += self.interval
            due, self._pending = self._pending, {}
            for callback in due.values():
                callback(self.now)
            ran += 1
        return ran


class FrameLoop:
    """Re-arms itself every frame until stopped.

    An exception from ``on_frame`` is logged and the loop keeps running, so a
    single bad frame does not freeze the canvas.
    """

    def __init__(self, scheduler: FrameScheduler, on_frame: FrameCallback) -> None:
        self._scheduler = scheduler
        self._on_frame = on_frame
        self._token: Any = None
        self.running = False
        self.frames = 0
        self.errors = 0

    def start(self) -> None:
        if self.running:
            return
        self.running = True
        self._token = self._scheduler.schedule_frame(self._tick)
        logger.debug("Frame loop started")

    def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        if self._token is not None:
            self._scheduler.cancel(self._token)
            self._token = None
        logger.debug("Frame loop stopped after %d frames", self.frames)

    def _tick(self, now: float) -> None:
        self._token = None
        if not self.running:
            return
        try:
            self._on_frame(now)
        except Exception as exc:
            logger.exception("Frame error: %s", exc)
            self.errors += 1
        self.frames += 1
        if self.running:
            self._token = self._scheduler.schedule_frame(self._tick)
