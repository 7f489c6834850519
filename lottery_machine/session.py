"""In-memory state of a single reward's draw in progress."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .models import Candidate, Reward
from .scheduler import ScheduleHandle, SessionToken
from .selector import RandomSelector


class DrawPhase(enum.Enum):
    IDLE = "idle"
    HIGHLIGHTING = "highlighting"
    COMMITTING = "committing"
    FINISHED = "finished"


def tick_count(duration: float, interval: float) -> int:
    """Number of highlight ticks that fit into ``duration``.

    A small tolerance keeps 1.0 / 0.1 at 10 ticks despite float rounding.
    """
    if interval <= 0:
        raise ValueError("interval must be positive")
    return max(int(math.floor(duration / interval + 1e-9)), 0)


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """Read-only view of a session for the presentation layer."""
    reward_id: str
    phase: DrawPhase
    highlight_cursor: Optional[str]
    ticks_remaining: int
    pool_size: int
    winners: Tuple[Candidate, ...]


@dataclass(slots=True)
class DrawSession:
    reward: Reward
    generation: int
    highlight_duration: float
    phase: DrawPhase = DrawPhase.IDLE
    working_pool: List[Candidate] = field(default_factory=list)
    highlight_cursor: Optional[str] = None
    ticks_remaining: int = 0
    handles: List[ScheduleHandle] = field(default_factory=list)

    @classmethod
    def open(cls, reward: Reward, generation: int, highlight_duration: float) -> "DrawSession":
        """Create an idle session with a snapshot of the reward's pool."""
        return cls(
            reward=reward,
            generation=generation,
            highlight_duration=highlight_duration,
            working_pool=list(reward.pool),
        )

    @property
    def reward_id(self) -> str:
        return self.reward.id

    @property
    def token(self) -> SessionToken:
        return SessionToken(self.reward.id, self.generation)

    def should_finish(self) -> bool:
        return len(self.reward.winners) >= self.reward.quota or not self.working_pool

    def enter_highlighting(self, ticks: int) -> None:
        self.phase = DrawPhase.HIGHLIGHTING
        self.ticks_remaining = ticks
        self.handles.clear()

    def advance_highlight(self, selector: RandomSelector) -> Optional[str]:
        """Move the cursor to a different random candidate of the working pool."""
        self.highlight_cursor = selector.pick(
            [candidate.id for candidate in self.working_pool],
            excluding=self.highlight_cursor,
        )
        self.ticks_remaining = max(self.ticks_remaining - 1, 0)
        return self.highlight_cursor

    def highlighted_candidate(self) -> Optional[Candidate]:
        """Resolve the cursor against the working pool, not the live one."""
        if self.highlight_cursor is None:
            return None
        for candidate in self.working_pool:
            if candidate.id == self.highlight_cursor:
                return candidate
        return None

    def reconcile(self) -> int:
        """Drop working-pool entries that another commit removed from the live pool."""
        live_ids = {candidate.id for candidate in self.reward.pool}
        before = len(self.working_pool)
        self.working_pool = [c for c in self.working_pool if c.id in live_ids]
        return before - len(self.working_pool)

    def take_winner(self, selector: RandomSelector) -> Optional[Candidate]:
        """Pick the round's winner and drop it from the working pool."""
        self.phase = DrawPhase.COMMITTING
        self.highlight_cursor = None
        self.ticks_remaining = 0
        winner = selector.pick(self.working_pool)
        if winner is None:
            return None
        self.working_pool = [c for c in self.working_pool if c.id != winner.id]
        return winner

    def finish(self) -> None:
        self.phase = DrawPhase.FINISHED
        self.highlight_cursor = None
        self.ticks_remaining = 0
        self.handles.clear()

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            reward_id=self.reward.id,
            phase=self.phase,
            highlight_cursor=self.highlight_cursor,
            ticks_remaining=self.ticks_remaining,
            pool_size=len(self.working_pool),
            winners=tuple(self.reward.winners),
        )
