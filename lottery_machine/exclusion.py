"""Remove a committed winner from the pools of every other reward."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable

from .models import Candidate, Reward

log = logging.getLogger(__name__)

IdentityKey = Callable[[Candidate], str]


def _by_name(candidate: Candidate) -> str:
    return candidate.name


def _by_id(candidate: Candidate) -> str:
    return candidate.id


IDENTITY_KEYS: Dict[str, IdentityKey] = {"name": _by_name, "id": _by_id}


def identity_key(name: str) -> IdentityKey:
    """Return the equality key used to recognise the same person across pools."""
    try:
        return IDENTITY_KEYS[name]
    except KeyError as exc:
        raise ValueError(
            f"Unknown identity key {name!r}; expected one of {sorted(IDENTITY_KEYS)}"
        ) from exc


class ExclusionPropagator:
    """Strip a winner from sibling pools.

    Two pools created independently may hold separate candidate records for
    the same person, so matching uses ``key`` (display name by default)
    rather than the candidate id. ``winners`` lists are never modified.
    """

    def __init__(self, key: str | IdentityKey = "name") -> None:
        self._key = identity_key(key) if isinstance(key, str) else key

    def propagate(
        self,
        winner: Candidate,
        rewards: Iterable[Reward],
        exclude_reward_id: str,
    ) -> Dict[str, int]:
        """Remove matching pool entries and report removals per reward id."""
        target = self._key(winner)
        removed: Dict[str, int] = {}
        for reward in rewards:
            if reward.id == exclude_reward_id:
                continue
            kept = [c for c in reward.pool if self._key(c) != target]
            dropped = len(reward.pool) - len(kept)
            if dropped:
                reward.pool[:] = kept
                removed[reward.id] = dropped
                log.debug(
                    "Excluded %s from reward %s (%d entr%s).",
                    winner.name,
                    reward.id,
                    dropped,
                    "y" if dropped == 1 else "ies",
                )
        return removed

    def apply_exclusion(
        self,
        winner: Candidate,
        rewards: Iterable[Reward],
        exclude_reward_id: str,
    ) -> int:
        """Remove the winner from other pools and return how many entries went."""
        return sum(self.propagate(winner, rewards, exclude_reward_id).values())
