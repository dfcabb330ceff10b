from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from typing import Any

from powerdown.actions import PowerAction
from powerdown.errors import InvalidDuration
from powerdown.events import CountdownChanged, CountdownFired, EventBus, UrgencyChanged
from powerdown.policy import CountdownState, UrgencyLevel, classify_urgency, format_remaining

log = logging.getLogger(__name__)


def _positive(value: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidDuration(value) from e
    if not math.isfinite(v) or v <= 0:
        raise InvalidDuration(value)
    return v


class CountdownEngine:
    """The single countdown: arm, tick once per interval, fire, back to idle.

    All methods must be called on the event loop thread; the tick task runs
    there too, so state never has two writers.
    """

    def __init__(
        self,
        execute: Callable[[PowerAction], Awaitable[Any]],
        events: EventBus | None = None,
        tick_seconds: float = 1.0,
    ):
        self._execute = execute
        self._events = events
        self._tick_seconds = tick_seconds
        self._state = CountdownState()
        self._urgency = UrgencyLevel.NORMAL
        self._ticker: asyncio.Task | None = None
        self._firing: set[asyncio.Task] = set()

    @property
    def remaining(self) -> float:
        return self._state.remaining

    @property
    def active(self) -> bool:
        return self._state.active

    @property
    def armed_action(self) -> PowerAction | None:
        return self._state.armed_action

    @property
    def urgency_level(self) -> UrgencyLevel:
        if not self._state.active:
            return UrgencyLevel.NORMAL
        return classify_urgency(self._state.remaining)

    @property
    def ticking(self) -> bool:
        return self._ticker is not None

    @property
    def paused(self) -> bool:
        return self._state.active and self._ticker is None

    def arm(self, minutes: float, action: PowerAction) -> None:
        seconds = _positive(minutes) * 60.0
        self._start(seconds, action)
        log.info("armed %s in %s", action.value, format_remaining(seconds))

    def resume(self, seconds: float, action: PowerAction) -> None:
        self._start(_positive(seconds), action)
        log.info("resumed %s with %s left", action.value, format_remaining(seconds))

    def cancel(self) -> None:
        if not self._state.active and self._ticker is None:
            return
        self._stop_ticker()
        self._state = CountdownState()
        log.info("countdown cancelled")
        self._refresh_urgency()
        self._publish_state()

    def snooze(self, seconds: float) -> bool:
        extra = _positive(seconds)
        if not self._state.active:
            return False
        self._state.remaining += extra
        log.info("snoozed %gs, %s left", extra, format_remaining(self._state.remaining))
        self._refresh_urgency()
        self._publish_state()
        return True

    def pause(self) -> None:
        self._stop_ticker()

    def tick(self) -> None:
        if not self._state.active:
            return
        self._state.remaining -= 1
        self._refresh_urgency()
        if self._state.remaining <= 0:
            self._fire()
        else:
            self._publish_state()

    def _start(self, seconds: float, action: PowerAction) -> None:
        self.cancel()
        self._state = CountdownState(remaining=seconds, armed_action=action, active=True)
        self._refresh_urgency()
        self._ticker = asyncio.get_running_loop().create_task(
            self._run_ticker(), name="countdown-tick"
        )
        self._publish_state()

    async def _run_ticker(self) -> None:
        me = asyncio.current_task()
        while self._ticker is me and self._state.active:
            await asyncio.sleep(self._tick_seconds)
            if self._ticker is not me:
                break
            self.tick()

    def _stop_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is not None and ticker is not asyncio.current_task():
            ticker.cancel()

    def _fire(self) -> None:
        action = self._state.armed_action
        self._stop_ticker()
        self._state = CountdownState()
        self._refresh_urgency()
        self._publish_state()
        if action is None:
            return

        log.info("countdown elapsed, executing %s", action.value)
        if self._events is not None:
            self._events.publish(CountdownFired(action))
        task = asyncio.get_running_loop().create_task(
            self._execute(action), name=f"execute-{action.value}"
        )
        self._firing.add(task)
        task.add_done_callback(self._fire_done)

    def _fire_done(self, task: asyncio.Task) -> None:
        self._firing.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("power action task failed", exc_info=exc)

    def _refresh_urgency(self) -> None:
        level = self.urgency_level
        if level is self._urgency:
            return
        self._urgency = level
        if self._events is not None:
            self._events.publish(UrgencyChanged(level, self._state.remaining))

    def _publish_state(self) -> None:
        if self._events is not None:
            s = self._state
            self._events.publish(CountdownChanged(s.active, s.remaining, s.armed_action))
