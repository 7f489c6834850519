"""Timed, cancellable draw engine built on top of :class:`DrawSession`."""

from __future__ import annotations

import asyncio
import enum
import logging
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional

from .config import MAX_HIGHLIGHT_DURATION, MIN_HIGHLIGHT_DURATION, DrawSettings
from .errors import (
    AlreadyDrawingError,
    EmptyPoolError,
    PersistenceError,
    StaleSessionError,
)
from .events import (
    DrawCancelled,
    DrawFinished,
    EventBus,
    HighlightChanged,
    Listener,
    PersistenceFailed,
    WinnerCommitted,
)
from .exclusion import ExclusionPropagator
from .models import Reward, RewardBook
from .scheduler import Callback, Scheduler, SessionToken
from .selector import RandomSelector
from .session import DrawPhase, DrawSession, SessionSnapshot, tick_count
from .storage import Store

log = logging.getLogger(__name__)


class StartOutcome(str, enum.Enum):
    STARTED = "started"
    EMPTY_POOL = "empty_pool"
    ALREADY_DRAWING = "already_drawing"


class DrawEngine:
    """Runs draws for any number of rewards on a single event loop.

    Each reward has at most one :class:`DrawSession`. A session alternates
    between a highlighting phase (random cursor ticks) and a commit, which
    records the winner, strips it from sibling pools and persists the
    affected rewards. Commits hold ``_state_lock`` so that interleaved
    sessions always see each other's exclusions.
    """

    def __init__(
        self,
        book: RewardBook,
        store: Store,
        scheduler: Scheduler,
        *,
        settings: Optional[DrawSettings] = None,
        selector: Optional[RandomSelector] = None,
        propagator: Optional[ExclusionPropagator] = None,
    ) -> None:
        self.book = book
        self.store = store
        self.scheduler = scheduler
        self.settings = settings or DrawSettings()
        self._selector = selector or RandomSelector()
        self._propagator = propagator or ExclusionPropagator(self.settings.identity)
        self._events = EventBus()
        self._sessions: Dict[str, DrawSession] = {}
        self._generations: Dict[str, int] = {}
        self._state_lock = asyncio.Lock()

    # --- Public API -------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._events.subscribe(listener)

    def start(
        self, reward: Reward, *, highlight_duration: Optional[float] = None
    ) -> StartOutcome:
        """Begin drawing winners for ``reward``.

        Starting a reward with an empty pool, or one that is already being
        drawn, is rejected without side effects. Completion is signalled
        through a :class:`DrawFinished` event.
        """
        duration = self._resolve_duration(highlight_duration)
        live = self.book.get(reward.id) or reward
        try:
            self._ensure_can_start(live)
        except EmptyPoolError as exc:
            log.info("Draw not started: %s", exc)
            return StartOutcome.EMPTY_POOL
        except AlreadyDrawingError as exc:
            log.info("Draw not started: %s", exc)
            return StartOutcome.ALREADY_DRAWING

        generation = self._next_generation(live.id)
        session = DrawSession.open(live, generation, duration)
        self._sessions[live.id] = session
        log.info(
            "Starting draw for reward %s (%s): quota=%d pool=%d duration=%.1fs",
            live.id,
            live.name,
            live.quota,
            len(session.working_pool),
            duration,
        )
        self._begin_round(session)
        return StartOutcome.STARTED

    def cancel(self, reward_id: str) -> bool:
        """Stop an active draw. Winners committed so far are kept."""
        session = self._sessions.pop(reward_id, None)
        if session is None:
            return False
        for handle in session.handles:
            self.scheduler.cancel(handle)
        self._next_generation(reward_id)
        session.finish()
        log.info("Draw for reward %s cancelled", reward_id)
        self._events.emit(DrawCancelled(reward_id))
        return True

    def cancel_all(self) -> List[str]:
        cancelled = [rid for rid in list(self._sessions) if self.cancel(rid)]
        return cancelled

    def is_drawing(self, reward_id: str) -> bool:
        return reward_id in self._sessions

    def active_reward_ids(self) -> List[str]:
        return list(self._sessions)

    def snapshot(self, reward_id: str) -> Optional[SessionSnapshot]:
        session = self._sessions.get(reward_id)
        return session.snapshot() if session else None

    async def reset_winners(self, reward_id: str) -> Optional[Reward]:
        """Return a reward's winners to its pool and persist the change."""
        if self.is_drawing(reward_id):
            raise AlreadyDrawingError(reward_id)
        async with self._state_lock:
            # A draw may have started while waiting for the lock.
            if self.is_drawing(reward_id):
                raise AlreadyDrawingError(reward_id)
            reward = self.book.get(reward_id)
            if reward is None:
                return None
            restored = reward.reset_winners()
            await self.store.save([reward])
        log.info("Reset %d winner(s) of reward %s", len(restored), reward_id)
        return reward

    # --- State machine ----------------------------------------------------

    def _ensure_can_start(self, reward: Reward) -> None:
        if reward.id in self._sessions:
            raise AlreadyDrawingError(reward.id)
        if not reward.pool:
            raise EmptyPoolError(reward.id)

    def _begin_round(self, session: DrawSession) -> None:
        if session.should_finish():
            self._finish(session)
            return

        interval = self.settings.tick_interval
        duration = session.highlight_duration
        ticks = tick_count(duration, interval)
        session.enter_highlighting(ticks)
        token = session.token
        for index in range(ticks):
            self._schedule(session, index * interval, partial(self._on_tick, token))
        self._schedule(session, duration, partial(self._on_commit, token))

    def _on_tick(self, token: SessionToken) -> None:
        try:
            session = self._resolve(token)
        except StaleSessionError as exc:
            log.debug("Dropping highlight tick: %s", exc)
            return
        if session.phase is not DrawPhase.HIGHLIGHTING:
            return
        cursor = session.advance_highlight(self._selector)
        highlighted = session.highlighted_candidate()
        self._events.emit(
            HighlightChanged(
                token.reward_id, cursor, highlighted.name if highlighted else None
            )
        )

    async def _on_commit(self, token: SessionToken) -> None:
        async with self._state_lock:
            try:
                session = self._resolve(token)
            except StaleSessionError as exc:
                log.debug("Dropping commit: %s", exc)
                return

            dropped = session.reconcile()
            if dropped:
                log.debug(
                    "%d candidate(s) of reward %s were won elsewhere mid-draw",
                    dropped,
                    token.reward_id,
                )
            winner = session.take_winner(self._selector)
            if winner is None:
                self._finish(session)
                return

            reward = session.reward
            reward.record_winner(winner)
            self._events.emit(HighlightChanged(reward.id, None))
            self._events.emit(
                WinnerCommitted(reward.id, winner, tuple(reward.winners))
            )
            touched = self._propagator.propagate(
                winner, self.book.iter_rewards(), reward.id
            )
            log.info(
                "Reward %s winner #%d: %s (removed from %d other pool(s))",
                reward.id,
                len(reward.winners),
                winner.name,
                len(touched),
            )
            await self._persist(reward, touched)

        try:
            session = self._resolve(token)
        except StaleSessionError:
            log.debug("Draw for reward %s ended during commit", token.reward_id)
            return
        self._schedule(
            session, self.settings.round_pause, partial(self._on_round_end, token)
        )

    def _on_round_end(self, token: SessionToken) -> None:
        try:
            session = self._resolve(token)
        except StaleSessionError as exc:
            log.debug("Dropping round transition: %s", exc)
            return
        self._begin_round(session)

    def _finish(self, session: DrawSession) -> None:
        session.finish()
        if self._sessions.get(session.reward_id) is session:
            del self._sessions[session.reward_id]
        winners = tuple(session.reward.winners)
        log.info(
            "Draw for reward %s finished with %d winner(s): %s",
            session.reward_id,
            len(winners),
            ", ".join(winner.name for winner in winners) or "-",
        )
        self._events.emit(DrawFinished(session.reward_id, winners))

    async def _persist(self, reward: Reward, touched: Iterable[str]) -> None:
        mutated = [reward]
        for reward_id in touched:
            sibling = self.book.get(reward_id)
            if sibling is not None:
                mutated.append(sibling)
        try:
            await self.store.save(mutated)
        except Exception as exc:
            error = PersistenceError(reward.id, exc)
            log.warning("%s; the draw continues in memory", error)
            self._events.emit(PersistenceFailed(reward.id, error))

    # --- Helpers ----------------------------------------------------------

    def _schedule(self, session: DrawSession, delay: float, callback: Callback) -> None:
        session.handles.append(self.scheduler.after(delay, session.token, callback))

    def _resolve(self, token: SessionToken) -> DrawSession:
        session = self._sessions.get(token.reward_id)
        if session is None or session.generation != token.generation:
            raise StaleSessionError(
                f"session {token.reward_id}#{token.generation} is no longer active"
            )
        return session

    def _next_generation(self, reward_id: str) -> int:
        generation = self._generations.get(reward_id, 0) + 1
        self._generations[reward_id] = generation
        return generation

    def _resolve_duration(self, value: Optional[float]) -> float:
        if value is None:
            return self.settings.highlight_duration
        duration = float(value)
        if not MIN_HIGHLIGHT_DURATION <= duration <= MAX_HIGHLIGHT_DURATION:
            raise ValueError(
                f"highlight_duration must be between {MIN_HIGHLIGHT_DURATION} and "
                f"{MAX_HIGHLIGHT_DURATION} seconds"
            )
        return duration
