from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from powerdown.actions import PowerAction
from powerdown.policy import UrgencyLevel

if TYPE_CHECKING:
    from powerdown.coordinator import ExecutionOutcome

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CountdownChanged:
    active: bool
    remaining: float
    action: PowerAction | None


@dataclass(frozen=True)
class UrgencyChanged:
    level: UrgencyLevel
    remaining: float


@dataclass(frozen=True)
class CountdownFired:
    action: PowerAction


@dataclass(frozen=True)
class ConfirmationRequested:
    action: PowerAction
    timeout_seconds: float


@dataclass(frozen=True)
class ExecutionFinished:
    outcome: ExecutionOutcome


@dataclass(frozen=True)
class PermissionChecked:
    granted: bool
    detail: str


@dataclass(frozen=True)
class DeadlinePassedDuringSuspension:
    action: PowerAction
    slept_seconds: float
    overdue_seconds: float


class EventQueue:
    """Bounded queue for collaborators that poll instead of subscribing."""

    def __init__(self, maxsize: int):
        self._items: deque[Any] = deque()
        self._maxsize = maxsize
        self.dropped = 0

    def put(self, event: Any) -> None:
        if len(self._items) >= self._maxsize:
            self._items.popleft()
            self.dropped += 1
            log.warning("event queue full, dropped oldest event (%d dropped so far)", self.dropped)
        self._items.append(event)

    def get(self) -> Any | None:
        return self._items.popleft() if self._items else None

    def drain(self) -> list[Any]:
        out = list(self._items)
        self._items.clear()
        return out

    def __len__(self) -> int:
        return len(self._items)


class EventBus:
    def __init__(self, maxsize: int = 64):
        self._maxsize = maxsize
        self._subscribers: list[Callable[[Any], None]] = []
        self._queues: list[EventQueue] = []

    def subscribe(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def open_queue(self) -> EventQueue:
        q = EventQueue(self._maxsize)
        self._queues.append(q)
        return q

    def close_queue(self, q: EventQueue) -> None:
        if q in self._queues:
            self._queues.remove(q)

    def publish(self, event: Any) -> None:
        for q in self._queues:
            q.put(event)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                log.exception("event subscriber %r failed on %s", callback, type(event).__name__)
