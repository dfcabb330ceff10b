from __future__ import annotations

import logging
import time
from collections.abc import Callable

from powerdown.engine import CountdownEngine
from powerdown.events import DeadlinePassedDuringSuspension, EventBus
from powerdown.policy import Reconciliation, SuspendSnapshot, format_remaining, reconcile

log = logging.getLogger(__name__)


class SuspensionGuard:
    """Carry the countdown across a host suspend/resume cycle.

    On suspend the engine's state is snapshotted and its tick source stopped.
    On resume the time spent asleep is subtracted. A deadline that passed
    while the host slept is reported, never executed late.
    """

    def __init__(
        self,
        engine: CountdownEngine,
        events: EventBus | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._engine = engine
        self._events = events
        self._clock = clock
        self._snapshot: SuspendSnapshot | None = None

    @property
    def snapshot(self) -> SuspendSnapshot | None:
        return self._snapshot

    def on_prepare_for_sleep(self, start: bool) -> None:
        if start:
            self.on_suspend()
        else:
            self.on_resume()

    def on_suspend(self) -> SuspendSnapshot | None:
        if self._snapshot is not None:
            return self._snapshot
        action = self._engine.armed_action
        if not self._engine.active or action is None:
            return None

        self._snapshot = SuspendSnapshot(
            remaining=self._engine.remaining,
            armed_action=action,
            active=True,
            snapshot_ts=self._clock(),
        )
        self._engine.pause()
        log.info(
            "host suspending; holding %s with %s left",
            action.value,
            format_remaining(self._snapshot.remaining),
        )
        return self._snapshot

    def on_resume(self) -> Reconciliation | None:
        snap, self._snapshot = self._snapshot, None
        if snap is None:
            return None
        if not self._engine.paused:
            log.info("countdown was changed while suspended; dropping snapshot")
            return None

        rec = reconcile(snap, self._clock())
        if rec.resume:
            self._engine.resume(rec.remaining, snap.armed_action)
            return rec

        self._engine.cancel()
        overdue = rec.elapsed - snap.remaining
        log.warning(
            "%s deadline passed %.0fs ago while the host was asleep; not executing it late",
            snap.armed_action.value,
            overdue,
        )
        if self._events is not None:
            self._events.publish(
                DeadlinePassedDuringSuspension(
                    action=snap.armed_action,
                    slept_seconds=rec.elapsed,
                    overdue_seconds=overdue,
                )
            )
        return rec
