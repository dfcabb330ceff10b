from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from dbus_next.aio import MessageBus
from dbus_next.service import ServiceInterface, method, signal

from powerdown import events

# dbus-next uses signature strings ("s", "b") in annotations.
# Ruff tries to treat these as Python types.


BUS_NAME = "io.github.powerdown"
OBJ_PATH = "/io/github/powerdown"


@dataclass(frozen=True)
class Callbacks:
    arm: Callable[[float, str, bool], str]
    cancel: Callable[[], bool]
    snooze: Callable[[int], bool]
    execute: Callable[[str], Awaitable[str]]
    confirm: Callable[[bool], bool]
    status: Callable[[], list[Any]]
    check_permission: Callable[[], Awaitable[bool]]


class PowerdownInterface(ServiceInterface):
    def __init__(self, cb: Callbacks):
        super().__init__(BUS_NAME)
        self._cb = cb

    @method()
    def Arm(self, minutes: "d", action: "s", confirmed: "b") -> "s":  # noqa: N802
        return self._cb.arm(minutes, action, confirmed)

    @method()
    def Cancel(self) -> "b":  # noqa: N802
        return self._cb.cancel()

    @method()
    def Snooze(self, seconds: "u") -> "b":  # noqa: N802
        return self._cb.snooze(seconds)

    @method()
    async def Execute(self, action: "s") -> "s":  # noqa: N802
        return await self._cb.execute(action)

    @method()
    def Confirm(self, accepted: "b") -> "b":  # noqa: N802
        return self._cb.confirm(accepted)

    @method()
    def Status(self) -> "bdsss":  # noqa: N802
        return self._cb.status()

    @method()
    async def CheckPermission(self) -> "b":  # noqa: N802
        return await self._cb.check_permission()

    @signal()
    def CountdownChanged(self, active: bool, remaining: float, action: str) -> "bds":  # noqa: N802
        return [active, remaining, action]

    @signal()
    def UrgencyChanged(self, level: str, remaining: float) -> "sd":  # noqa: N802
        return [level, remaining]

    @signal()
    def ConfirmationRequested(self, action: str, timeout: float) -> "sd":  # noqa: N802
        return [action, timeout]

    @signal()
    def ExecutionFinished(self, action: str, code: str, message: str) -> "sss":  # noqa: N802
        return [action, code, message]

    @signal()
    def DeadlinePassed(self, action: str, slept: float, overdue: float) -> "sdd":  # noqa: N802
        return [action, slept, overdue]

    def emit_event(self, event: Any) -> None:
        if isinstance(event, events.CountdownChanged):
            action = event.action.value if event.action else ""
            self.CountdownChanged(event.active, float(event.remaining), action)
        elif isinstance(event, events.UrgencyChanged):
            self.UrgencyChanged(event.level.value, float(event.remaining))
        elif isinstance(event, events.ConfirmationRequested):
            self.ConfirmationRequested(event.action.value, float(event.timeout_seconds))
        elif isinstance(event, events.ExecutionFinished):
            outcome = event.outcome
            error = outcome.error
            code = error.code if error else ""
            self.ExecutionFinished(outcome.action.value, code, str(error) if error else "")
        elif isinstance(event, events.DeadlinePassedDuringSuspension):
            self.DeadlinePassed(
                event.action.value, float(event.slept_seconds), float(event.overdue_seconds)
            )


async def serve(iface: PowerdownInterface) -> MessageBus:
    bus = await MessageBus().connect()
    bus.export(OBJ_PATH, iface)
    await bus.request_name(BUS_NAME)
    return bus
