"""SQLite persistence helpers for rewards and their candidates."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

from .errors import StoreError
from .models import Candidate, Reward, RewardBook

LOGGER = logging.getLogger(__name__)

POOL = "pool"
WINNER = "winner"


class Store(Protocol):
    async def save(self, rewards: Iterable[Reward]) -> None:
        """Persist the given rewards; raise :class:`StoreError` on failure."""


class StateStorage:
    """Async wrapper around a SQLite database holding the reward collection."""

    def __init__(self, path: Path) -> None:
        """Initialise the storage helper with the database file path."""
        self.path = path
        self._lock = asyncio.Lock()

    async def load(self) -> RewardBook:
        """Load every reward and its candidates."""
        async with self._lock:
            return await self._run(self._read_all)

    async def load_or_seed(self, seeds: Iterable[Reward]) -> RewardBook:
        """Load state; when the database holds no rewards, store ``seeds`` first."""
        book = await self.load()
        if len(book):
            return book
        seeded = list(seeds)
        if not seeded:
            return book
        LOGGER.info("Reward store is empty; seeding %d reward(s).", len(seeded))
        await self.save(seeded)
        return await self.load()

    async def save(self, rewards: Iterable[Reward]) -> None:
        """Upsert the provided rewards, replacing their candidate rows."""
        snapshot = [Reward.from_payload(reward.to_payload()) for reward in rewards]
        async with self._lock:
            await self._run(self._write_rewards, snapshot)

    # --- Internal helpers -------------------------------------------------

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except (sqlite3.Error, OSError) as exc:
            raise StoreError(f"SQLite store at {self.path} failed: {exc}") from exc

    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        self._ensure_schema(conn)
        return conn

    def _write_rewards(self, rewards: List[Reward]) -> None:
        conn = self._connect()
        try:
            conn.execute("BEGIN")
            for reward in rewards:
                conn.execute(
                    """
                    INSERT INTO rewards(id, name, category, quota)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        name = excluded.name,
                        category = excluded.category,
                        quota = excluded.quota
                    """,
                    (reward.id, reward.name, reward.category, reward.quota),
                )
                conn.execute("DELETE FROM candidates WHERE reward_id = ?", (reward.id,))
                rows = [
                    (candidate.id, reward.id, candidate.name, POOL, position)
                    for position, candidate in enumerate(reward.pool)
                ]
                rows.extend(
                    (candidate.id, reward.id, candidate.name, WINNER, position)
                    for position, candidate in enumerate(reward.winners)
                )
                if rows:
                    conn.executemany(
                        """
                        INSERT INTO candidates(id, reward_id, name, role, position)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        rows,
                    )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _read_all(self) -> RewardBook:
        conn = self._connect()
        try:
            book = RewardBook()
            for row in conn.execute("SELECT id, name, category, quota FROM rewards"):
                book.upsert(
                    Reward(
                        id=row["id"],
                        name=row["name"],
                        category=row["category"] or "",
                        quota=max(int(row["quota"]), 1),
                    )
                )
            for row in conn.execute(
                "SELECT id, reward_id, name, role FROM candidates ORDER BY reward_id, role, position"
            ):
                reward = book.get(row["reward_id"])
                if reward is None:
                    LOGGER.warning(
                        "Candidate %s references unknown reward %s; skipping.",
                        row["id"],
                        row["reward_id"],
                    )
                    continue
                candidate = Candidate(id=row["id"], name=row["name"])
                if row["role"] == WINNER:
                    reward.winners.append(candidate)
                else:
                    reward.pool.append(candidate)
            return book
        finally:
            conn.close()

    @staticmethod
    def _ensure_schema(conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS rewards (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                category TEXT,
                quota INTEGER NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS candidates (
                id TEXT NOT NULL,
                reward_id TEXT NOT NULL,
                name TEXT NOT NULL,
                role TEXT NOT NULL,
                position INTEGER NOT NULL,
                PRIMARY KEY (reward_id, id)
            )
            """
        )


class MemoryStore:
    """Keeps serialized copies of saved rewards; used for dry runs and tests."""

    def __init__(self, *, fail_with: Optional[BaseException] = None) -> None:
        self.saved: Dict[str, dict] = {}
        self.save_calls = 0
        self.fail_with = fail_with

    async def save(self, rewards: Iterable[Reward]) -> None:
        self.save_calls += 1
        if self.fail_with is not None:
            raise StoreError(str(self.fail_with)) from self.fail_with
        for reward in rewards:
            self.saved[reward.id] = reward.to_payload()

    def load(self) -> RewardBook:
        return RewardBook.from_payload({"rewards": list(self.saved.values())})
