"""Pytest configuration and fixtures."""

import heapq
import inspect
import random
from itertools import count

import pytest

from lottery_machine.config import DrawSettings
from lottery_machine.engine import DrawEngine
from lottery_machine.models import Candidate, Reward, RewardBook
from lottery_machine.scheduler import ScheduleHandle
from lottery_machine.selector import RandomSelector
from lottery_machine.storage import MemoryStore


class ManualScheduler:
    """Deterministic scheduler: callbacks only fire when time is advanced."""

    def __init__(self):
        self.now = 0.0
        self._queue = []
        self._seq = count()

    def after(self, delay, token, callback):
        handle = ScheduleHandle(token=token, delay=delay, seq=next(self._seq))
        heapq.heappush(self._queue, (self.now + delay, handle.seq, handle, callback))
        return handle

    def cancel(self, handle):
        handle.cancelled = True

    @property
    def pending(self):
        return [entry[2] for entry in self._queue if not entry[2].cancelled]

    async def advance(self, seconds):
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target + 1e-9:
            due, _, handle, callback = heapq.heappop(self._queue)
            self.now = max(self.now, due)
            if handle.cancelled:
                continue
            result = callback()
            if inspect.isawaitable(result):
                await result
        self.now = max(self.now, target)

    async def run_until_idle(self, limit=10_000):
        steps = 0
        while self._queue:
            steps += 1
            assert steps < limit, "scheduler did not settle"
            await self.advance(max(self._queue[0][0] - self.now, 0.0))


class LeakyScheduler(ManualScheduler):
    """Ignores cancellation, simulating timers that fire late."""

    def cancel(self, handle):
        pass


def make_reward(name, candidates, *, quota=1, category=""):
    return Reward(
        name=name,
        category=category,
        quota=quota,
        pool=[Candidate(name=value) for value in candidates],
    )


def make_book(*rewards):
    book = RewardBook()
    for reward in rewards:
        book.upsert(reward)
    return book


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def selector():
    return RandomSelector(random.Random(1234))


@pytest.fixture
def settings():
    return DrawSettings(highlight_duration=1.0, tick_interval=0.1, round_pause=0.5)


@pytest.fixture
def events():
    return []


@pytest.fixture
def engine_factory(store, scheduler, selector, settings, events):
    def build(*rewards, **overrides):
        engine = DrawEngine(
            make_book(*rewards),
            overrides.get("store", store),
            overrides.get("scheduler", scheduler),
            settings=overrides.get("settings", settings),
            selector=overrides.get("selector", selector),
        )
        engine.subscribe(events.append)
        return engine

    return build
