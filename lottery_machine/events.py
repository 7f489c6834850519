"""Events emitted by the draw engine for the presentation layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Union

from .errors import PersistenceError
from .models import Candidate

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HighlightChanged:
    reward_id: str
    candidate_id: Optional[str]
    candidate_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class WinnerCommitted:
    reward_id: str
    candidate: Candidate
    winners: Tuple[Candidate, ...]


@dataclass(frozen=True, slots=True)
class DrawFinished:
    reward_id: str
    winners: Tuple[Candidate, ...]


@dataclass(frozen=True, slots=True)
class DrawCancelled:
    reward_id: str


@dataclass(frozen=True, slots=True)
class PersistenceFailed:
    reward_id: str
    error: PersistenceError


DrawEvent = Union[
    HighlightChanged, WinnerCommitted, DrawFinished, DrawCancelled, PersistenceFailed
]
Listener = Callable[[DrawEvent], None]


class EventBus:
    """Synchronous fan-out of draw events to subscribed listeners."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and return a function that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: DrawEvent) -> None:
        for listener in tuple(self._listeners):
            try:
                listener(event)
            except Exception:
                log.exception(
                    "Listener %r failed while handling %s", listener, type(event).__name__
                )
