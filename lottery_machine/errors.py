from __future__ import annotations

from typing import Optional


class LotteryError(RuntimeError):
    """Base class for errors raised by the drawing subsystem."""


class StoreError(LotteryError):
    """Raised by a store when rewards could not be read or written."""


class PersistenceError(LotteryError):
    """A commit could not be persisted; the draw itself carried on."""

    def __init__(self, reward_id: str, cause: Optional[BaseException] = None) -> None:
        message = f"Failed to persist draw result for reward {reward_id}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.reward_id = reward_id
        self.cause = cause


class DrawRejected(LotteryError):
    """A draw could not be started. Not a failure, nothing was changed."""

    def __init__(self, reward_id: str) -> None:
        super().__init__(reward_id)
        self.reward_id = reward_id


class EmptyPoolError(DrawRejected):
    def __str__(self) -> str:
        return f"Reward {self.reward_id} has no candidates to draw from."


class AlreadyDrawingError(DrawRejected):
    def __str__(self) -> str:
        return f"A draw for reward {self.reward_id} is already running."


class StaleSessionError(LotteryError):
    """A scheduled callback outlived the session it was created for."""
