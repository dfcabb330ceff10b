from __future__ import annotations

import asyncio
from typing import Any

import pytest

from powerdown.actions import PowerAction
from powerdown.events import EventBus
from powerdown.system.logind import LogindError
from powerdown.system.power import (
    AttemptResult,
    ExecutionReport,
    Strategy,
    StrategyFailed,
    StrategyKind,
)


class FakeLogind:
    """Stands in for LogindClient; answers ``can`` from a dict."""

    def __init__(self, answers: dict[PowerAction, Any] | None = None):
        self.answers = answers or {}
        self.requested: list[PowerAction] = []

    async def can(self, action: PowerAction) -> str:
        answer = self.answers.get(action, "yes")
        if isinstance(answer, Exception):
            raise answer
        if answer == "hang":
            await asyncio.sleep(60)
        return answer

    async def request(self, action: PowerAction) -> None:
        self.requested.append(action)

    def close(self) -> None:
        pass


class ScriptedStrategy(Strategy):
    """Strategy whose outcome is fixed up front: None, an exception, or "hang"."""

    def __init__(self, kind: StrategyKind, outcome: Any = None, only: PowerAction | None = None):
        self.kind = kind
        self.outcome = outcome
        self.only = only
        self.calls: list[PowerAction] = []

    def supports(self, action: PowerAction) -> bool:
        return self.only is None or action is self.only

    async def run(self, action: PowerAction) -> None:
        self.calls.append(action)
        if self.outcome == "hang":
            await asyncio.sleep(60)
        elif isinstance(self.outcome, BaseException):
            raise self.outcome


class GatedExecutor:
    """Executor that holds every run until ``release`` is set."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.started = asyncio.Event()
        self.runs: list[PowerAction] = []

    async def run(self, action: PowerAction) -> ExecutionReport:
        self.runs.append(action)
        self.started.set()
        await self.release.wait()
        return ExecutionReport(action, (AttemptResult(StrategyKind.AUTOMATION, True),))


def denied(detail: str = "org.freedesktop.DBus.Error.AccessDenied: nope") -> StrategyFailed:
    return StrategyFailed(detail, authorization=True)


def logind_denied() -> LogindError:
    return LogindError("org.freedesktop.DBus.Error.AccessDenied: nope", authorization=True)


@pytest.fixture
def bus_events() -> tuple[EventBus, list[Any]]:
    bus = EventBus()
    seen: list[Any] = []
    bus.subscribe(seen.append)
    return bus, seen
