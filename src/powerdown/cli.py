from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

from powerdown import __version__
from powerdown.actions import PowerAction
from powerdown.config import load, log_level
from powerdown.controller import Controller
from powerdown.dbus_client import PowerdownClient
from powerdown.diagnostics import run_checks
from powerdown.errors import PermissionDenied
from powerdown.paths import default_config_path
from powerdown.policy import format_remaining

ACTIONS = [a.value for a in PowerAction]


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="powerdown")
    ap.add_argument("--version", action="version", version=__version__)
    ap.add_argument("-c", "--config", help="YAML config (default: ~/.config/powerdown/config.yaml)")

    sub = ap.add_subparsers(dest="cmd", required=True)

    sub.add_parser("run", help="Run the countdown daemon")

    arm = sub.add_parser("arm", help="Start a countdown")
    arm.add_argument("minutes", type=float)
    arm.add_argument("action", choices=ACTIONS)
    arm.add_argument("-y", "--yes", action="store_true", help="Confirm the action now")

    sub.add_parser("cancel", help="Cancel the countdown")

    snooze = sub.add_parser("snooze", help="Add time to the countdown")
    snooze.add_argument("seconds", type=int, nargs="?", default=0)

    now = sub.add_parser("now", help="Run an action immediately")
    now.add_argument("action", choices=ACTIONS)

    confirm = sub.add_parser("confirm", help="Answer a pending confirmation")
    confirm.add_argument("answer", choices=["yes", "no"])

    sub.add_parser("status", help="Show the countdown")
    sub.add_parser("watch", help="Print countdown events as they happen")
    sub.add_parser("doctor", help="Check which power methods are usable")

    return ap


def _load_config(path: str | None) -> dict[str, Any]:
    if path is None:
        default = default_config_path()
        return load(default if default.exists() else None)
    return load(path)


def _print_result(code: str, ok_message: str) -> int:
    if code:
        print(f"failed: {code}", file=sys.stderr)
        if code == PermissionDenied.code:
            print(PermissionDenied.remediation, file=sys.stderr)
        return 1
    print(ok_message)
    return 0


async def _client(args: argparse.Namespace) -> int:
    client = await PowerdownClient.connect()
    try:
        if args.cmd == "arm":
            code = await client.arm(args.minutes, args.action, args.yes)
            return _print_result(code, f"{args.action} in {format_remaining(args.minutes * 60)}")
        if args.cmd == "cancel":
            print("cancelled" if await client.cancel() else "no countdown running")
            return 0
        if args.cmd == "snooze":
            if not await client.snooze(args.seconds):
                print("no countdown running", file=sys.stderr)
                return 1
            return 0
        if args.cmd == "now":
            return _print_result(await client.execute(args.action), f"{args.action} issued")
        if args.cmd == "confirm":
            if not await client.confirm(args.answer == "yes"):
                print("nothing to confirm", file=sys.stderr)
                return 1
            return 0
        if args.cmd == "status":
            st = await client.status()
            if st["active"]:
                print(f"{st['action']} in {format_remaining(st['remaining'])} ({st['urgency']})")
            else:
                print("idle")
            if st["last_error"]:
                print(f"last error: {st['last_error']}")
            return 0
        if args.cmd == "watch":
            await _watch(client)
            return 0
    finally:
        await client.close()
    return 2


async def _watch(client: PowerdownClient) -> None:
    def on_countdown(active: bool, remaining: float, action: str) -> None:
        print(f"{action} in {format_remaining(remaining)}" if active else "idle", flush=True)

    def on_urgency(level: str, remaining: float) -> None:
        print(f"urgency: {level}", flush=True)

    def on_confirm(action: str, timeout: float) -> None:
        print(f"confirm {action}? run 'powerdown confirm yes' within {timeout:.0f}s", flush=True)

    def on_finished(action: str, code: str, message: str) -> None:
        print(f"{action}: {message}" if code else f"{action}: issued", flush=True)

    def on_deadline(action: str, slept: float, overdue: float) -> None:
        print(
            f"{action} deadline passed while the computer was asleep "
            f"({overdue:.0f}s ago); not executed",
            flush=True,
        )

    client.on("countdown_changed", on_countdown)
    client.on("urgency_changed", on_urgency)
    client.on("confirmation_requested", on_confirm)
    client.on("execution_finished", on_finished)
    client.on("deadline_passed", on_deadline)
    await client.bus.wait_for_disconnect()


async def _doctor(cfg: dict[str, Any]) -> int:
    checks = await run_checks(cfg)
    for c in checks:
        print(f"{'ok  ' if c.ok else 'FAIL'} {c.name}: {c.detail}")
    return 0 if all(c.ok for c in checks) else 1


def main() -> None:
    args = _build_parser().parse_args()
    cfg = _load_config(args.config)
    logging.basicConfig(
        level=log_level(cfg), format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    if args.cmd == "run":
        ctl = Controller(cfg)
        asyncio.run(ctl.run())
        return
    if args.cmd == "doctor":
        sys.exit(asyncio.run(_doctor(cfg)))
    sys.exit(asyncio.run(_client(args)))
