"""Timer abstraction driving draw phase transitions."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Callable, Optional, Protocol, Set

log = logging.getLogger(__name__)

Callback = Callable[[], Any]


@dataclass(frozen=True, slots=True)
class SessionToken:
    """Identifies one incarnation of a draw session."""
    reward_id: str
    generation: int


@dataclass(eq=False, slots=True)
class ScheduleHandle:
    token: SessionToken
    delay: float
    timer: Optional[asyncio.TimerHandle] = None
    cancelled: bool = False
    seq: int = field(default=0)


class Scheduler(Protocol):
    def after(
        self, delay: float, token: SessionToken, callback: Callback
    ) -> ScheduleHandle:
        ...

    def cancel(self, handle: ScheduleHandle) -> None:
        ...


class AsyncioScheduler:
    """Schedules callbacks on the running event loop.

    A callback may return an awaitable; it is then run as a task which is
    kept referenced until it completes. Cancelling a handle only prevents a
    timer that has not fired yet, a task already running is left to finish.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._pending: Set[ScheduleHandle] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._seq = count()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def after(
        self, delay: float, token: SessionToken, callback: Callback
    ) -> ScheduleHandle:
        handle = ScheduleHandle(token=token, delay=max(delay, 0.0), seq=next(self._seq))

        def fire() -> None:
            self._pending.discard(handle)
            if handle.cancelled:
                return
            try:
                result = callback()
            except Exception:
                log.exception("Scheduled callback for reward %s failed", token.reward_id)
                return
            if inspect.isawaitable(result):
                task = self.loop.create_task(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)

        handle.timer = self.loop.call_later(handle.delay, fire)
        self._pending.add(handle)
        return handle

    def cancel(self, handle: ScheduleHandle) -> None:
        handle.cancelled = True
        if handle.timer is not None:
            handle.timer.cancel()
        self._pending.discard(handle)

    def cancel_all(self) -> None:
        for handle in list(self._pending):
            self.cancel(handle)

    async def drain(self) -> None:
        """Wait for callbacks that are already running as tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("Scheduled task failed", exc_info=exc)
