from __future__ import annotations

import enum


class PowerAction(enum.Enum):
    SHUTDOWN = "shutdown"
    RESTART = "restart"
    SLEEP = "sleep"
    LOGOUT = "logout"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def requires_confirmation(self) -> bool:
        # Sleep keeps every session intact; everything else ends them.
        return self is not PowerAction.SLEEP

    @classmethod
    def parse(cls, raw: str) -> PowerAction:
        key = str(raw).strip().lower().replace("-", "").replace("_", "").replace(" ", "")
        action = _ALIASES.get(key)
        if action is None:
            choices = ", ".join(a.value for a in cls)
            raise ValueError(f"Unknown power action {raw!r} (expected one of: {choices})")
        return action


_DISPLAY_NAMES = {
    PowerAction.SHUTDOWN: "Shut Down",
    PowerAction.RESTART: "Restart",
    PowerAction.SLEEP: "Sleep",
    PowerAction.LOGOUT: "Log Out",
}

_ALIASES = {
    "shutdown": PowerAction.SHUTDOWN,
    "poweroff": PowerAction.SHUTDOWN,
    "restart": PowerAction.RESTART,
    "reboot": PowerAction.RESTART,
    "sleep": PowerAction.SLEEP,
    "suspend": PowerAction.SLEEP,
    "logout": PowerAction.LOGOUT,
    "logoff": PowerAction.LOGOUT,
}
