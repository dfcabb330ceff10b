from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from powerdown.actions import PowerAction
    from powerdown.system.power import AttemptResult


class PowerdownError(Exception):
    code = "error"


class InvalidDuration(PowerdownError, ValueError):
    code = "invalid_duration"

    def __init__(self, value: object):
        super().__init__(f"Duration must be a positive number, got {value!r}")
        self.value = value


class ExecutionError(PowerdownError):
    """Terminal outcome of a failed or refused power action."""

    code = "execution_error"

    def __init__(
        self,
        action: PowerAction,
        message: str,
        attempts: Sequence[AttemptResult] = (),
    ):
        super().__init__(message)
        self.action = action
        self.attempts = tuple(attempts)

    @property
    def last_detail(self) -> str | None:
        for attempt in reversed(self.attempts):
            if not attempt.succeeded:
                return attempt.error_detail
        return None


class OperationInProgress(ExecutionError):
    code = "operation_in_progress"

    def __init__(self, action: PowerAction):
        super().__init__(action, "Another power operation is in progress. Please wait.")


class UserCancelled(ExecutionError):
    code = "user_cancelled"

    def __init__(self, action: PowerAction):
        super().__init__(action, f"{action.display_name} was not confirmed")


class PermissionDenied(ExecutionError):
    code = "permission_denied"

    remediation = (
        "Grant this user the org.freedesktop.login1 power-off/reboot/suspend actions "
        "with a polkit rule in /etc/polkit-1/rules.d/, or run powerdown from an active "
        "local session. Run 'powerdown doctor' to see which methods are available."
    )

    def __init__(self, action: PowerAction, attempts: Sequence[AttemptResult]):
        tried = ", ".join(a.strategy.value for a in attempts) or "none"
        super().__init__(
            action,
            f"Not authorized to {action.display_name.lower()} (tried: {tried}). {self.remediation}",
            attempts,
        )


class AllStrategiesFailed(ExecutionError):
    code = "all_strategies_failed"

    def __init__(self, action: PowerAction, attempts: Sequence[AttemptResult]):
        if attempts:
            tried = ", ".join(a.strategy.value for a in attempts)
            last = next((a.error_detail for a in reversed(attempts) if not a.succeeded), None)
            message = f"{action.display_name} failed (tried: {tried}; last error: {last})"
        else:
            message = f"No method is available to {action.display_name.lower()} on this host"
        super().__init__(action, message, attempts)
