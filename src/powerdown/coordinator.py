from __future__ import annotations

import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from powerdown.actions import PowerAction
from powerdown.errors import (
    AllStrategiesFailed,
    ExecutionError,
    OperationInProgress,
    PermissionDenied,
    UserCancelled,
)
from powerdown.events import EventBus, ExecutionFinished
from powerdown.probe import PermissionProbe
from powerdown.system.power import AttemptResult, CommandExecutor

log = logging.getLogger(__name__)

Confirmer = Callable[[PowerAction], Awaitable[bool]]


@dataclass(frozen=True)
class ExecutionOutcome:
    action: PowerAction
    error: ExecutionError | None = None
    attempts: tuple[AttemptResult, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None


class PowerActionCoordinator:
    """Gate, run and classify power actions, one at a time.

    ``execute`` never queues: a call that arrives while another one holds
    the single-flight lock gets ``OperationInProgress`` straight away. The
    lock covers confirmation and every strategy attempt, and is released on
    every exit path. A confirmer that raises still leaves a published
    outcome behind before the exception propagates.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        confirm: Confirmer,
        events: EventBus | None = None,
        probe: PermissionProbe | None = None,
    ):
        self._executor = executor
        self._confirm = confirm
        self._events = events
        self._probe = probe
        self._lock = threading.Lock()
        self.last_error: ExecutionError | None = None

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    async def execute(
        self, action: PowerAction, confirm: Confirmer | None = None
    ) -> ExecutionOutcome:
        """Run *action*, asking *confirm* (default: the coordinator's confirmer) first."""

        if not self._lock.acquire(blocking=False):
            return self._finish(ExecutionOutcome(action, OperationInProgress(action)))
        outcome: ExecutionOutcome | None = None
        try:
            outcome = await self._execute_locked(action, confirm or self._confirm)
        except Exception as e:
            message = f"{action.display_name} aborted: {type(e).__name__}: {e}"
            outcome = ExecutionOutcome(action, ExecutionError(action, message))
            raise
        finally:
            self._lock.release()
            if outcome is not None:
                self._finish(outcome)
        return outcome

    async def _execute_locked(self, action: PowerAction, confirm: Confirmer) -> ExecutionOutcome:
        if action.requires_confirmation and not await confirm(action):
            return ExecutionOutcome(action, UserCancelled(action))

        if self._probe is not None and not await self._probe.check():
            log.warning(
                "permission probe failed; attempting %s through the remaining methods",
                action.value,
            )

        report = await self._executor.run(action)
        if report.succeeded:
            return ExecutionOutcome(action, None, report.attempts)

        error: ExecutionError
        if any(a.authorization_failure for a in report.attempts):
            error = PermissionDenied(action, report.attempts)
        else:
            error = AllStrategiesFailed(action, report.attempts)
        return ExecutionOutcome(action, error, report.attempts)

    def _finish(self, outcome: ExecutionOutcome) -> ExecutionOutcome:
        error = outcome.error
        if error is None:
            log.info("%s issued", outcome.action.value)
        elif isinstance(error, (UserCancelled, OperationInProgress)):
            log.info("%s", error)
        else:
            log.error("%s", error)
            for attempt in error.attempts:
                log.error("  %s: %s", attempt.strategy.value, attempt.error_detail)
        self.last_error = error
        if self._events is not None:
            self._events.publish(ExecutionFinished(outcome))
        return outcome
