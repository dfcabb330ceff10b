from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from dbus_next.aio import MessageBus

from powerdown.dbus_service import BUS_NAME as BUS
from powerdown.dbus_service import OBJ_PATH as OBJ


@dataclass
class PowerdownClient:
    bus: MessageBus
    iface: Any

    @classmethod
    async def connect(cls) -> PowerdownClient:
        bus = await MessageBus().connect()
        introspection = await bus.introspect(BUS, OBJ)
        obj = bus.get_proxy_object(BUS, OBJ, introspection)
        iface = obj.get_interface(BUS)
        return cls(bus=bus, iface=iface)

    async def arm(self, minutes: float, action: str, confirmed: bool = False) -> str:
        return str(await self.iface.call_arm(float(minutes), action, confirmed))

    async def cancel(self) -> bool:
        return bool(await self.iface.call_cancel())

    async def snooze(self, seconds: int) -> bool:
        return bool(await self.iface.call_snooze(int(seconds)))

    async def execute(self, action: str) -> str:
        return str(await self.iface.call_execute(action))

    async def confirm(self, accepted: bool) -> bool:
        return bool(await self.iface.call_confirm(accepted))

    async def status(self) -> dict[str, Any]:
        active, remaining, action, urgency, last_error = await self.iface.call_status()
        return {
            "active": bool(active),
            "remaining": float(remaining),
            "action": action,
            "urgency": urgency,
            "last_error": last_error,
        }

    async def check_permission(self) -> bool:
        return bool(await self.iface.call_check_permission())

    def on(self, signal_name: str, callback: Callable[..., None]) -> None:
        """Subscribe to a service signal, e.g. ``on("execution_finished", cb)``."""

        getattr(self.iface, f"on_{signal_name}")(callback)

    async def close(self) -> None:
        self.bus.disconnect()
