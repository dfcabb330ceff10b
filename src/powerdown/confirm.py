from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from powerdown.actions import PowerAction
from powerdown.events import ConfirmationRequested, EventBus

log = logging.getLogger(__name__)


@dataclass
class PreConfirmation:
    action: PowerAction | None = None
    armed_until_ts: float = 0.0

    def arm(
        self,
        action: PowerAction,
        now: float | None = None,
        window_seconds: float | None = 3.0,
    ) -> None:
        now = time.time() if now is None else now
        self.action = action
        self.armed_until_ts = float("inf") if window_seconds is None else now + window_seconds

    def armed(self, action: PowerAction, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return self.action is action and now < self.armed_until_ts

    def consume_if_armed(self, action: PowerAction, now: float | None = None) -> bool:
        if self.armed(action, now):
            self.reset()
            return True
        return False

    def reset(self) -> None:
        self.action = None
        self.armed_until_ts = 0.0


class ConfirmationGate:
    """Obtain an explicit yes before a destructive action runs.

    A yes is given in answer to a ``ConfirmationRequested`` event via
    ``respond``; silence is a no. A countdown armed with a yes holds a grant
    that only its own firing may take (``take_grant``); ``confirm`` never
    looks at it.
    """

    def __init__(
        self,
        events: EventBus | None = None,
        timeout_seconds: float = 30.0,
        clock: Callable[[], float] = time.time,
    ):
        self._events = events
        self._timeout = timeout_seconds
        self._clock = clock
        self._pre = PreConfirmation()
        self._pending: asyncio.Future[bool] | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def grant(self, action: PowerAction, window_seconds: float | None = None) -> None:
        self._pre.arm(action, now=self._clock(), window_seconds=window_seconds)

    def revoke(self) -> None:
        self._pre.reset()

    def take_grant(self, action: PowerAction) -> bool:
        """Consume the grant for *action*, if any. A grant for another action is dropped."""

        granted = self._pre.consume_if_armed(action, now=self._clock())
        self._pre.reset()
        return granted

    def respond(self, accepted: bool) -> bool:
        fut = self._pending
        if fut is None or fut.done():
            return False
        fut.set_result(bool(accepted))
        return True

    async def confirm(self, action: PowerAction) -> bool:
        if self.pending:
            log.warning("confirmation already pending; declining %s", action.value)
            return False

        fut: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._pending = fut
        if self._events is not None:
            self._events.publish(ConfirmationRequested(action, self._timeout))
        try:
            return await asyncio.wait_for(fut, self._timeout)
        except asyncio.TimeoutError:
            log.info("no confirmation for %s within %gs", action.value, self._timeout)
            return False
        finally:
            self._pending = None
