from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from typing import Any

from powerdown.actions import PowerAction
from powerdown.config import power_config
from powerdown.system.logind import LogindClient, LogindError


@dataclass(frozen=True)
class Check:
    name: str
    ok: bool
    detail: str


async def _logind_checks(logind: LogindClient) -> list[Check]:
    out: list[Check] = []
    for action in (PowerAction.SHUTDOWN, PowerAction.RESTART, PowerAction.SLEEP):
        name = f"logind {action.value}"
        try:
            answer = await logind.can(action)
        except LogindError as e:
            out.append(Check(name, False, str(e)))
            if not e.authorization:
                # Bus or logind missing; the remaining questions fail the same way.
                break
            continue
        out.append(Check(name, answer == "yes", f"answer={answer}"))
    return out


def _sysfs_check(cfg: dict[str, Any]) -> Check:
    pcfg = power_config(cfg)
    path = pcfg.sleep_state_path
    name = f"sysfs {path}"
    try:
        states = path.read_text(encoding="utf-8").split()
    except OSError as e:
        return Check(name, False, e.strerror or str(e))
    if pcfg.sleep_state not in states:
        return Check(name, False, f"{pcfg.sleep_state!r} not in supported states {states}")
    if not os.access(path, os.W_OK):
        return Check(name, False, "not writable by this user (needs root)")
    return Check(name, True, f"supports {pcfg.sleep_state!r}")


def _shell_checks(cfg: dict[str, Any]) -> list[Check]:
    out: list[Check] = []
    for action, cmd in power_config(cfg).commands.items():
        exe = shutil.which(cmd[0])
        out.append(
            Check(f"shell {action.value}", exe is not None, exe or f"{cmd[0]} not found on PATH")
        )
    return out


async def run_checks(cfg: dict[str, Any], logind: LogindClient | None = None) -> list[Check]:
    """Report which power methods this host and user can actually use."""

    own = logind is None
    client = LogindClient() if logind is None else logind
    try:
        checks = await _logind_checks(client)
    finally:
        if own:
            client.close()
    checks.append(_sysfs_check(cfg))
    checks.extend(_shell_checks(cfg))
    return checks
