"""Data models used for reward persistence and draw state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import uuid4


def generate_id() -> str:
    return uuid4().hex


@dataclass(slots=True)
class Candidate:
    """A person eligible to win a reward."""
    name: str
    id: str = field(default_factory=generate_id)

    def to_payload(self) -> dict:
        """Serialize the candidate to a JSON-serialisable structure."""
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_payload(cls, payload: dict) -> "Candidate":
        """Reconstruct a Candidate from serialized payload data."""
        return cls(id=str(payload["id"]), name=str(payload["name"]))


@dataclass(slots=True)
class Reward:
    """A prize with a pool of candidates and the winners drawn so far."""
    name: str
    category: str = ""
    quota: int = 1
    pool: List[Candidate] = field(default_factory=list)
    winners: List[Candidate] = field(default_factory=list)
    id: str = field(default_factory=generate_id)

    def __post_init__(self) -> None:
        if self.quota < 1:
            raise ValueError("quota must be at least 1")

    def has_candidate(self, candidate_id: str) -> bool:
        """Return True when the id is still in the pool."""
        return any(candidate.id == candidate_id for candidate in self.pool)

    def remove_from_pool(self, candidate_id: str) -> Optional[Candidate]:
        """Remove and return a pool entry if present."""
        for idx, candidate in enumerate(self.pool):
            if candidate.id == candidate_id:
                return self.pool.pop(idx)
        return None

    def record_winner(self, candidate: Candidate) -> None:
        """Append a winner, making sure it no longer sits in the pool."""
        self.remove_from_pool(candidate.id)
        self.winners.append(candidate)

    def reset_winners(self) -> List[Candidate]:
        """Move every winner back into the pool and return them."""
        restored = list(self.winners)
        self.winners.clear()
        for candidate in restored:
            if not self.has_candidate(candidate.id):
                self.pool.append(candidate)
        return restored

    def to_payload(self) -> dict:
        """Serialize the reward to a JSON-serialisable structure."""
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "quota": self.quota,
            "pool": [c.to_payload() for c in self.pool],
            "winners": [c.to_payload() for c in self.winners],
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "Reward":
        """Reconstruct a Reward from serialized payload data."""
        return cls(
            id=str(payload["id"]),
            name=str(payload["name"]),
            category=str(payload.get("category", "") or ""),
            quota=int(payload.get("quota", 1)),
            pool=[Candidate.from_payload(c) for c in payload.get("pool", [])],
            winners=[Candidate.from_payload(c) for c in payload.get("winners", [])],
        )


@dataclass(slots=True)
class RewardBook:
    """Root container for every reward; the collection shared by all draws."""
    rewards: Dict[str, Reward] = field(default_factory=dict)

    def to_payload(self) -> dict:
        """Serialize the whole collection into a JSON-friendly mapping."""
        return {"rewards": [reward.to_payload() for reward in self.rewards.values()]}

    @classmethod
    def from_payload(cls, payload: dict) -> "RewardBook":
        """Deserialize the collection, skipping duplicated reward ids."""
        book = cls()
        for entry in payload.get("rewards", []):
            reward = Reward.from_payload(entry)
            if reward.id in book.rewards:
                continue
            book.rewards[reward.id] = reward
        return book

    def get(self, reward_id: str) -> Optional[Reward]:
        """Fetch a reward by id, returning None when unknown."""
        return self.rewards.get(reward_id)

    def upsert(self, reward: Reward) -> None:
        """Insert or replace a reward."""
        self.rewards[reward.id] = reward

    def iter_rewards(self) -> Iterable[Reward]:
        return tuple(self.rewards.values())

    def list_all(self) -> Sequence[Reward]:
        """Return all rewards ordered by category, then name."""
        return tuple(
            sorted(self.rewards.values(), key=lambda r: (r.category, r.name))
        )

    def find_by_name(self, name: str) -> Optional[Reward]:
        lookup = name.strip().lower()
        for reward in self.rewards.values():
            if reward.name.lower() == lookup:
                return reward
        return None

    def categories(self) -> List[str]:
        """Return the distinct category labels in sorted order."""
        return sorted({reward.category for reward in self.rewards.values()})

    def __len__(self) -> int:
        return len(self.rewards)
