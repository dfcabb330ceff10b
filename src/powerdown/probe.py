from __future__ import annotations

import asyncio
import logging

from powerdown.actions import PowerAction
from powerdown.events import EventBus, PermissionChecked
from powerdown.system.logind import LogindClient, LogindError

log = logging.getLogger(__name__)


class PermissionProbe:
    """Ask logind whether this user may power off, without doing it.

    The answer is never cached for decisions: authorization can be revoked
    at any time, so every ``check()`` goes back to the bus. ``granted`` only
    remembers the last answer for display.
    """

    def __init__(
        self,
        logind: LogindClient,
        events: EventBus | None = None,
        timeout_seconds: float = 5.0,
    ):
        self._logind = logind
        self._events = events
        self._timeout = timeout_seconds
        self.granted: bool | None = None
        self.detail = ""

    async def check(self) -> bool:
        try:
            answer = await asyncio.wait_for(self._logind.can(PowerAction.SHUTDOWN), self._timeout)
        except asyncio.TimeoutError:
            granted, detail = False, f"logind did not answer within {self._timeout:g}s"
        except LogindError as e:
            granted = False
            detail = f"not authorized: {e}" if e.authorization else str(e)
        else:
            granted = answer == "yes"
            detail = f"CanPowerOff={answer}"

        if granted != self.granted:
            level = logging.INFO if granted else logging.WARNING
            log.log(level, "power permission %s (%s)", "granted" if granted else "denied", detail)
        self.granted = granted
        self.detail = detail
        if self._events is not None:
            self._events.publish(PermissionChecked(granted=granted, detail=detail))
        return granted
