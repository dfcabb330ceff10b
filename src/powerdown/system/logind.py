from __future__ import annotations

import os
from collections.abc import Callable
from contextlib import suppress
from typing import Any

from dbus_next import BusType
from dbus_next.aio import MessageBus
from dbus_next.errors import DBusError

from powerdown.actions import PowerAction

LOGIND_BUS = "org.freedesktop.login1"
LOGIND_PATH = "/org/freedesktop/login1"
MANAGER_IFACE = "org.freedesktop.login1.Manager"
SESSION_IFACE = "org.freedesktop.login1.Session"

# Error names polkit/logind use when the caller is not allowed to act.
AUTHORIZATION_ERRORS = frozenset(
    {
        "org.freedesktop.DBus.Error.AccessDenied",
        "org.freedesktop.DBus.Error.AuthFailed",
        "org.freedesktop.DBus.Error.InteractiveAuthorizationRequired",
        "org.freedesktop.PolicyKit1.Error.NotAuthorized",
    }
)


class LogindError(RuntimeError):
    def __init__(self, message: str, authorization: bool = False):
        super().__init__(message)
        self.authorization = authorization


def _wrap(e: DBusError) -> LogindError:
    return LogindError(f"{e.type}: {e.text}", authorization=e.type in AUTHORIZATION_ERRORS)


class LogindClient:
    """Thin async wrapper around systemd-logind on the system bus."""

    def __init__(self, bus: MessageBus | None = None):
        self._bus = bus
        self._manager: Any = None

    async def _connect(self) -> Any:
        if self._manager is not None:
            return self._manager
        try:
            if self._bus is None:
                self._bus = await MessageBus(
                    bus_type=BusType.SYSTEM, negotiate_unix_fd=True
                ).connect()
            introspection = await self._bus.introspect(LOGIND_BUS, LOGIND_PATH)
        except DBusError as e:
            raise _wrap(e) from e
        except OSError as e:
            raise LogindError(f"system bus unavailable: {e}") from e
        obj = self._bus.get_proxy_object(LOGIND_BUS, LOGIND_PATH, introspection)
        self._manager = obj.get_interface(MANAGER_IFACE)
        return self._manager

    async def request(self, action: PowerAction) -> None:
        manager = await self._connect()
        try:
            if action is PowerAction.SHUTDOWN:
                await manager.call_power_off(False)
            elif action is PowerAction.RESTART:
                await manager.call_reboot(False)
            elif action is PowerAction.SLEEP:
                await manager.call_suspend(False)
            else:
                await self._terminate_own_session(manager)
        except DBusError as e:
            raise _wrap(e) from e

    async def _terminate_own_session(self, manager: Any) -> None:
        session_id = os.environ.get("XDG_SESSION_ID")
        if session_id:
            await manager.call_terminate_session(session_id)
            return
        path = await manager.call_get_session_by_pid(os.getpid())
        introspection = await self._bus.introspect(LOGIND_BUS, path)
        session = self._bus.get_proxy_object(LOGIND_BUS, path, introspection)
        await session.get_interface(SESSION_IFACE).call_terminate()

    async def can(self, action: PowerAction) -> str:
        """Return logind's answer for *action*: yes, no, challenge or na."""

        manager = await self._connect()
        try:
            if action is PowerAction.RESTART:
                return str(await manager.call_can_reboot())
            if action is PowerAction.SLEEP:
                return str(await manager.call_can_suspend())
            # logind has no CanTerminateSession; power-off is the closest gate.
            return str(await manager.call_can_power_off())
        except DBusError as e:
            raise _wrap(e) from e

    async def watch_sleep(self, callback: Callable[[bool], None]) -> None:
        manager = await self._connect()
        manager.on_prepare_for_sleep(callback)

    async def inhibit_sleep(self, why: str) -> int:
        """Take a delay lock so PrepareForSleep handlers run before suspend."""

        manager = await self._connect()
        try:
            return int(await manager.call_inhibit("sleep", "powerdown", why, "delay"))
        except DBusError as e:
            raise _wrap(e) from e

    @staticmethod
    def release(fd: int | None) -> None:
        if fd is not None:
            with suppress(OSError):
                os.close(fd)

    def close(self) -> None:
        if self._bus:
            self._bus.disconnect()
        self._bus = None
        self._manager = None
