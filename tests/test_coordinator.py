from __future__ import annotations

import asyncio
from typing import Any

import pytest
from conftest import FakeLogind, GatedExecutor, ScriptedStrategy, denied, logind_denied

from powerdown.actions import PowerAction
from powerdown.coordinator import PowerActionCoordinator
from powerdown.errors import (
    AllStrategiesFailed,
    ExecutionError,
    OperationInProgress,
    PermissionDenied,
    UserCancelled,
)
from powerdown.events import EventBus, ExecutionFinished
from powerdown.probe import PermissionProbe
from powerdown.system.power import CommandExecutor, StrategyFailed, StrategyKind


async def yes(action: PowerAction) -> bool:
    return True


async def no(action: PowerAction) -> bool:
    return False


def _executor(*strategies: ScriptedStrategy) -> CommandExecutor:
    order = {a: tuple(s.kind for s in strategies) for a in PowerAction}
    return CommandExecutor(strategies, timeout_seconds=1.0, order=order)


def test_success_reports_no_error(bus_events: tuple[EventBus, list[Any]]) -> None:
    bus, seen = bus_events
    coord = PowerActionCoordinator(_executor(ScriptedStrategy(StrategyKind.AUTOMATION)), yes, bus)
    outcome = asyncio.run(coord.execute(PowerAction.SHUTDOWN))
    assert outcome.ok
    assert coord.last_error is None
    assert not coord.in_progress
    assert seen == [ExecutionFinished(outcome)]


def test_concurrent_execute_is_rejected() -> None:
    async def scenario() -> tuple[Any, Any, GatedExecutor]:
        executor = GatedExecutor()
        coord = PowerActionCoordinator(executor, yes)  # type: ignore[arg-type]
        first = asyncio.create_task(coord.execute(PowerAction.SHUTDOWN))
        await executor.started.wait()
        assert coord.in_progress
        second = await coord.execute(PowerAction.RESTART)
        executor.release.set()
        return await first, second, executor

    first, second, executor = asyncio.run(scenario())
    assert first.ok
    assert isinstance(second.error, OperationInProgress)
    assert executor.runs == [PowerAction.SHUTDOWN]


def test_gathered_executes_yield_one_in_progress() -> None:
    async def scenario() -> list[Any]:
        executor = GatedExecutor()
        coord = PowerActionCoordinator(executor, yes)  # type: ignore[arg-type]

        async def release_later() -> None:
            await executor.started.wait()
            await asyncio.sleep(0)
            executor.release.set()

        results = await asyncio.gather(
            coord.execute(PowerAction.SLEEP),
            coord.execute(PowerAction.SLEEP),
            release_later(),
        )
        assert not coord.in_progress
        return results[:2]

    outcomes = asyncio.run(scenario())
    errors = [o.error for o in outcomes]
    assert sum(isinstance(e, OperationInProgress) for e in errors) == 1
    assert sum(e is None for e in errors) == 1


def test_declined_confirmation_runs_nothing() -> None:
    strategy = ScriptedStrategy(StrategyKind.AUTOMATION)
    coord = PowerActionCoordinator(_executor(strategy), no)
    outcome = asyncio.run(coord.execute(PowerAction.RESTART))
    assert isinstance(outcome.error, UserCancelled)
    assert outcome.attempts == ()
    assert strategy.calls == []
    assert not coord.in_progress


def test_sleep_skips_confirmation() -> None:
    asked: list[PowerAction] = []

    async def confirm(action: PowerAction) -> bool:
        asked.append(action)
        return False

    coord = PowerActionCoordinator(_executor(ScriptedStrategy(StrategyKind.AUTOMATION)), confirm)
    assert asyncio.run(coord.execute(PowerAction.SLEEP)).ok
    assert asked == []


def test_raising_confirmer_releases_lock(bus_events: tuple[EventBus, list[Any]]) -> None:
    bus, seen = bus_events

    async def confirm(action: PowerAction) -> bool:
        raise RuntimeError("prompt crashed")

    strategy = ScriptedStrategy(StrategyKind.AUTOMATION)
    coord = PowerActionCoordinator(_executor(strategy), confirm, bus)
    with pytest.raises(RuntimeError, match="prompt crashed"):
        asyncio.run(coord.execute(PowerAction.SHUTDOWN))
    assert not coord.in_progress
    assert strategy.calls == []

    error = coord.last_error
    assert isinstance(error, ExecutionError)
    assert error.code == "execution_error"
    assert "prompt crashed" in str(error)
    assert [type(e) for e in seen] == [ExecutionFinished]
    assert seen[0].outcome.error is error

    assert asyncio.run(coord.execute(PowerAction.SLEEP)).ok


def test_authorization_failure_is_permission_denied() -> None:
    coord = PowerActionCoordinator(
        _executor(
            ScriptedStrategy(StrategyKind.AUTOMATION, denied()),
            ScriptedStrategy(StrategyKind.SHELL, StrategyFailed("exit status 1")),
        ),
        yes,
    )
    outcome = asyncio.run(coord.execute(PowerAction.SHUTDOWN))
    assert isinstance(outcome.error, PermissionDenied)
    assert [a.strategy for a in outcome.attempts] == [StrategyKind.AUTOMATION, StrategyKind.SHELL]
    assert "polkit" in str(outcome.error)
    assert coord.last_error is outcome.error


def test_plain_failures_are_all_strategies_failed() -> None:
    coord = PowerActionCoordinator(
        _executor(
            ScriptedStrategy(StrategyKind.AUTOMATION, StrategyFailed("bus went away")),
            ScriptedStrategy(StrategyKind.SHELL, StrategyFailed("exit status 1")),
        ),
        yes,
    )
    outcome = asyncio.run(coord.execute(PowerAction.RESTART))
    assert isinstance(outcome.error, AllStrategiesFailed)
    assert outcome.error.last_detail == "exit status 1"
    assert len(outcome.attempts) == 2


def test_no_applicable_strategy_fails_cleanly() -> None:
    coord = PowerActionCoordinator(CommandExecutor([]), yes)
    outcome = asyncio.run(coord.execute(PowerAction.SLEEP))
    assert isinstance(outcome.error, AllStrategiesFailed)
    assert outcome.attempts == ()


def test_denied_probe_still_attempts_execution(caplog: pytest.LogCaptureFixture) -> None:
    strategy = ScriptedStrategy(StrategyKind.AUTOMATION)
    logind = FakeLogind({PowerAction.SHUTDOWN: logind_denied()})
    probe = PermissionProbe(logind)  # type: ignore[arg-type]
    coord = PowerActionCoordinator(_executor(strategy), yes, probe=probe)
    outcome = asyncio.run(coord.execute(PowerAction.SLEEP))
    assert outcome.ok
    assert strategy.calls == [PowerAction.SLEEP]
    assert probe.granted is False
    assert "permission probe failed" in caplog.text


def test_per_call_confirmer_overrides_default() -> None:
    strategy = ScriptedStrategy(StrategyKind.AUTOMATION)
    coord = PowerActionCoordinator(_executor(strategy), no)
    assert asyncio.run(coord.execute(PowerAction.LOGOUT, confirm=yes)).ok
    assert isinstance(asyncio.run(coord.execute(PowerAction.LOGOUT)).error, UserCancelled)
    assert strategy.calls == [PowerAction.LOGOUT]
