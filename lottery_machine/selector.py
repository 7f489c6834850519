"""Uniform random selection used for highlight animation and winner picks."""

from __future__ import annotations

import random
from typing import Optional, Sequence, TypeVar

T = TypeVar("T")

_RNG = random.Random()


def pick(
    items: Sequence[T],
    excluding: Optional[T] = None,
    *,
    rng: Optional[random.Random] = None,
) -> Optional[T]:
    """Pick a random element of ``items``, avoiding ``excluding`` when possible.

    Returns ``None`` for an empty sequence. When ``excluding`` is the only
    element the full sequence is used so that a single candidate can
    still be selected.
    """
    if not items:
        return None
    source = rng or _RNG
    if excluding is not None:
        remainder = [item for item in items if item != excluding]
        if remainder:
            return source.choice(remainder)
    return source.choice(list(items))


class RandomSelector:
    """Bind :func:`pick` to a specific random source."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or _RNG

    def pick(self, items: Sequence[T], excluding: Optional[T] = None) -> Optional[T]:
        return pick(items, excluding, rng=self._rng)
