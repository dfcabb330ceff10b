from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable
from contextlib import suppress
from dataclasses import dataclass
from typing import Any

from powerdown.actions import PowerAction
from powerdown.config import power_config
from powerdown.confirm import ConfirmationGate
from powerdown.coordinator import ExecutionOutcome, PowerActionCoordinator
from powerdown.dbus_service import Callbacks, PowerdownInterface, serve
from powerdown.engine import CountdownEngine
from powerdown.errors import InvalidDuration, PermissionDenied
from powerdown.events import DeadlinePassedDuringSuspension, EventBus
from powerdown.guard import SuspensionGuard
from powerdown.probe import PermissionProbe
from powerdown.system.logind import LogindClient, LogindError
from powerdown.system.power import CommandExecutor, build_strategies

log = logging.getLogger(__name__)


async def _confirmed_in_advance(action: PowerAction) -> bool:
    log.info("%s was confirmed when the countdown was armed", action.value)
    return True


@dataclass
class Controller:
    cfg: dict[str, Any]

    def __post_init__(self) -> None:
        self.events = EventBus(maxsize=int(self.cfg["events"]["queue_size"]))
        self._logind = LogindClient()

        self._power_cfg = power_config(self.cfg)
        self.executor = CommandExecutor(
            build_strategies(self._power_cfg, self._logind),
            timeout_seconds=self._power_cfg.strategy_timeout_seconds,
            order=self._power_cfg.order,
        )

        permission = self.cfg["permission"]
        self.probe = PermissionProbe(
            self._logind, self.events, timeout_seconds=float(permission["timeout_seconds"])
        )
        self.gate = ConfirmationGate(
            self.events, timeout_seconds=float(self.cfg["confirmation"]["timeout_seconds"])
        )
        self.coordinator = PowerActionCoordinator(
            self.executor,
            self.gate.confirm,
            self.events,
            probe=self.probe if permission.get("check_before_execute") else None,
        )

        timer = self.cfg["timer"]
        self.engine = CountdownEngine(
            self._execute_armed, self.events, tick_seconds=float(timer["tick_seconds"])
        )
        self._snooze_default = int(timer["snooze_seconds"])
        self.guard = SuspensionGuard(self.engine, self.events)
        self.events.subscribe(self._on_event)

        self._bus = None
        self._iface: PowerdownInterface | None = None
        self._inhibitor: int | None = None
        self._inhibit_task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

    def arm(self, minutes: float, action: str, confirmed: bool) -> str:
        try:
            parsed = PowerAction.parse(action)
            self.engine.arm(minutes, parsed)
        except InvalidDuration as e:
            log.info("%s", e)
            return e.code
        except ValueError as e:
            log.info("%s", e)
            return "invalid_action"
        self.gate.revoke()
        if confirmed:
            self.gate.grant(parsed)
        return ""

    def cancel(self) -> bool:
        was_active = self.engine.active
        self.engine.cancel()
        self.gate.revoke()
        return was_active

    def snooze(self, seconds: int) -> bool:
        try:
            return self.engine.snooze(seconds or self._snooze_default)
        except InvalidDuration as e:
            log.info("%s", e)
            return False

    def _execute_armed(self, action: PowerAction) -> Awaitable[ExecutionOutcome]:
        # Called as the countdown fires: the grant is used up here even when the
        # coordinator then rejects the action.
        if self.gate.take_grant(action):
            return self.coordinator.execute(action, confirm=_confirmed_in_advance)
        return self.coordinator.execute(action)

    def _on_event(self, event: Any) -> None:
        if isinstance(event, DeadlinePassedDuringSuspension):
            self.gate.revoke()

    async def execute(self, action: str) -> str:
        try:
            parsed = PowerAction.parse(action)
        except ValueError as e:
            log.info("%s", e)
            return "invalid_action"
        outcome = await self.coordinator.execute(parsed)
        return outcome.error.code if outcome.error else ""

    def confirm(self, accepted: bool) -> bool:
        return self.gate.respond(accepted)

    def status(self) -> list[Any]:
        action = self.engine.armed_action
        error = self.coordinator.last_error
        return [
            self.engine.active,
            float(self.engine.remaining),
            action.value if action else "",
            self.engine.urgency_level.value,
            error.code if error else "",
        ]

    def _on_prepare_for_sleep(self, start: bool) -> None:
        self.guard.on_prepare_for_sleep(start)
        if start:
            LogindClient.release(self._inhibitor)
            self._inhibitor = None
        else:
            self._inhibit_task = asyncio.get_running_loop().create_task(self._inhibit())

    async def _inhibit(self) -> None:
        try:
            self._inhibitor = await self._logind.inhibit_sleep("Preserve countdown across suspend")
        except LogindError as e:
            log.warning("could not take sleep delay lock: %s", e)

    async def start(self) -> None:
        if not await self.probe.check():
            log.warning("%s", PermissionDenied.remediation)

        try:
            await self._logind.watch_sleep(self._on_prepare_for_sleep)
        except LogindError as e:
            log.warning("suspend/resume tracking disabled: %s", e)
        else:
            await self._inhibit()

        cb = Callbacks(
            arm=self.arm,
            cancel=self.cancel,
            snooze=self.snooze,
            execute=self.execute,
            confirm=self.confirm,
            status=self.status,
            check_permission=self.probe.check,
        )
        self._iface = PowerdownInterface(cb)
        self._bus = await serve(self._iface)
        self.events.subscribe(self._iface.emit_event)
        log.info("powerdown ready")

    async def stop(self) -> None:
        self.engine.cancel()
        self.gate.revoke()
        LogindClient.release(self._inhibitor)
        self._inhibitor = None
        if self._bus:
            self._bus.disconnect()
        self._logind.close()

    def request_stop(self) -> None:
        self._stopping.set()

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError):
                loop.add_signal_handler(sig, self.request_stop)
        await self.start()
        try:
            await self._stopping.wait()
        finally:
            await self.stop()
