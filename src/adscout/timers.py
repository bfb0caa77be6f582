# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Timer primitives on a single-threaded scheduler.

``Scheduler`` is the subset of ``asyncio.AbstractEventLoop`` the engine uses
(``time`` and ``call_later``), so a running loop can be passed directly.
All callbacks run as discrete tasks on that loop; nothing here blocks.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def time(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class Debouncer:
    """Run *func* once, *delay* seconds after the last call.

    Each call restarts the quiet period; the most recent arguments win.
    """

    __slots__ = ("_scheduler", "_delay", "_func", "_handle", "_args")

    def __init__(self, scheduler: Scheduler, delay: float, func: Callable[..., Any]) -> None:
        self._scheduler = scheduler
        self._delay = delay
        self._func = func
        self._handle: TimerHandle | None = None
        self._args: tuple = ()

    def __call__(self, *args: Any) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._args = args
        self._handle = self._scheduler.call_later(self._delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        args, self._args = self._args, ()
        self._func(*args)

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._args = ()


class Throttler:
    """Run *func* at most once per *interval* seconds.

    The first call runs immediately.  Calls made during the cool-down collapse
    into a single trailing run when the interval ends.
    """

    __slots__ = ("_scheduler", "_interval", "_func", "_handle", "_trailing")

    def __init__(self, scheduler: Scheduler, interval: float, func: Callable[[], Any]) -> None:
        self._scheduler = scheduler
        self._interval = interval
        self._func = func
        self._handle: TimerHandle | None = None
        self._trailing = False

    def __call__(self) -> None:
        if self._handle is not None:
            self._trailing = True
            return
        self._handle = self._scheduler.call_later(self._interval, self._cool_down)
        self._func()

    def _cool_down(self) -> None:
        self._handle = None
        if self._trailing:
            self._trailing = False
            self()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._trailing = False


class RepeatingTimer:
    """Call *func* every *interval* seconds until cancelled.

    An exception in *func* is logged and the timer keeps running.
    """

    __slots__ = ("_scheduler", "_interval", "_func", "_handle", "_name")

    def __init__(self, scheduler: Scheduler, interval: float, func: Callable[[], Any], *, name: str = "") -> None:
        self._scheduler = scheduler
        self._interval = interval
        self._func = func
        self._handle: TimerHandle | None = None
        self._name = name or getattr(func, "__name__", "timer")

    def start(self) -> None:
        if self._handle is None:
            self._handle = self._scheduler.call_later(self._interval, self._tick)

    def _tick(self) -> None:
        self._handle = self._scheduler.call_later(self._interval, self._tick)
        try:
            self._func()
        except Exception:
            logger.exception("Repeating timer %s failed", self._name)

    @property
    def active(self) -> bool:
        return self._handle is not None

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
