from __future__ import annotations

import enum
from dataclasses import dataclass

from powerdown.actions import PowerAction

WARNING_THRESHOLD_SECONDS = 60.0
CRITICAL_THRESHOLD_SECONDS = 10.0


class UrgencyLevel(enum.Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


def classify_urgency(remaining: float) -> UrgencyLevel:
    if remaining <= CRITICAL_THRESHOLD_SECONDS:
        return UrgencyLevel.CRITICAL
    if remaining <= WARNING_THRESHOLD_SECONDS:
        return UrgencyLevel.WARNING
    return UrgencyLevel.NORMAL


def format_remaining(remaining: float) -> str:
    total = max(0, int(remaining))
    return f"{total // 60:02d}:{total % 60:02d}"


@dataclass
class CountdownState:
    remaining: float = 0.0
    armed_action: PowerAction | None = None
    active: bool = False


@dataclass(frozen=True)
class SuspendSnapshot:
    remaining: float
    armed_action: PowerAction
    active: bool
    snapshot_ts: float


@dataclass(frozen=True)
class Reconciliation:
    resume: bool
    remaining: float
    elapsed: float


def reconcile(snapshot: SuspendSnapshot, now: float) -> Reconciliation:
    """Work out what is left of a countdown after the host slept."""

    # A wall clock stepped backwards while asleep counts as no time passed.
    elapsed = max(0.0, now - snapshot.snapshot_ts)
    remaining = max(0.0, snapshot.remaining - elapsed)
    return Reconciliation(resume=remaining > 0, remaining=remaining, elapsed=elapsed)
