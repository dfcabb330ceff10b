from __future__ import annotations

import asyncio
from typing import Any

from powerdown.actions import PowerAction
from powerdown.confirm import ConfirmationGate, PreConfirmation
from powerdown.events import ConfirmationRequested, EventBus


def test_preconfirm_two_step() -> None:
    pc = PreConfirmation()
    now = 1000.0
    assert not pc.consume_if_armed(PowerAction.SHUTDOWN, now=now)
    pc.arm(PowerAction.SHUTDOWN, now=now, window_seconds=3.0)
    assert pc.armed(PowerAction.SHUTDOWN, now=now + 1.0)
    assert not pc.armed(PowerAction.RESTART, now=now + 1.0)
    assert pc.consume_if_armed(PowerAction.SHUTDOWN, now=now + 1.0)
    assert not pc.consume_if_armed(PowerAction.SHUTDOWN, now=now + 1.0)


def test_preconfirm_expires() -> None:
    pc = PreConfirmation()
    pc.arm(PowerAction.SHUTDOWN, now=1000.0, window_seconds=3.0)
    assert not pc.consume_if_armed(PowerAction.SHUTDOWN, now=1004.0)


def test_preconfirm_without_window_never_expires() -> None:
    pc = PreConfirmation()
    pc.arm(PowerAction.LOGOUT, now=0.0, window_seconds=None)
    assert pc.armed(PowerAction.LOGOUT, now=1e12)


def test_grant_is_taken_once() -> None:
    gate = ConfirmationGate()
    gate.grant(PowerAction.SHUTDOWN)
    assert gate.take_grant(PowerAction.SHUTDOWN) is True
    assert gate.take_grant(PowerAction.SHUTDOWN) is False


def test_taking_other_action_drops_grant() -> None:
    gate = ConfirmationGate()
    gate.grant(PowerAction.RESTART)
    assert gate.take_grant(PowerAction.SHUTDOWN) is False
    assert gate.take_grant(PowerAction.RESTART) is False


def test_revoke_clears_grant() -> None:
    gate = ConfirmationGate()
    gate.grant(PowerAction.SHUTDOWN)
    gate.revoke()
    assert gate.take_grant(PowerAction.SHUTDOWN) is False


def test_confirm_always_asks_even_with_grant(bus_events: tuple[EventBus, list[Any]]) -> None:
    bus, seen = bus_events

    async def scenario() -> bool:
        gate = ConfirmationGate(bus, timeout_seconds=0.01)
        gate.grant(PowerAction.SHUTDOWN)
        answer = await gate.confirm(PowerAction.SHUTDOWN)
        assert gate.take_grant(PowerAction.SHUTDOWN) is True
        return answer

    assert asyncio.run(scenario()) is False
    assert seen == [ConfirmationRequested(PowerAction.SHUTDOWN, 0.01)]


def test_respond_answers_pending_request(bus_events: tuple[EventBus, list[Any]]) -> None:
    bus, seen = bus_events

    async def scenario(answer: bool) -> bool:
        gate = ConfirmationGate(bus, timeout_seconds=5.0)
        assert gate.respond(True) is False
        task = asyncio.create_task(gate.confirm(PowerAction.RESTART))
        await asyncio.sleep(0)
        assert gate.pending
        assert gate.respond(answer) is True
        result = await task
        assert not gate.pending
        return result

    assert asyncio.run(scenario(True)) is True
    assert asyncio.run(scenario(False)) is False
    assert seen[0] == ConfirmationRequested(PowerAction.RESTART, 5.0)


def test_silence_is_a_no() -> None:
    async def scenario() -> bool:
        gate = ConfirmationGate(timeout_seconds=0.01)
        result = await gate.confirm(PowerAction.LOGOUT)
        assert not gate.pending
        return result

    assert asyncio.run(scenario()) is False


def test_second_request_while_pending_is_declined() -> None:
    async def scenario() -> tuple[bool, bool]:
        gate = ConfirmationGate(timeout_seconds=5.0)
        first = asyncio.create_task(gate.confirm(PowerAction.SHUTDOWN))
        await asyncio.sleep(0)
        second = await gate.confirm(PowerAction.RESTART)
        gate.respond(True)
        return await first, second

    assert asyncio.run(scenario()) == (True, False)
