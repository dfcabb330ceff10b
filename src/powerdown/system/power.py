from __future__ import annotations

import abc
import asyncio
import enum
import logging
import os
import subprocess
from collections.abc import Iterable, Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path

from powerdown.actions import PowerAction
from powerdown.system.logind import LogindClient, LogindError

log = logging.getLogger(__name__)

DEFAULT_COMMANDS: dict[PowerAction, list[str]] = {
    PowerAction.SHUTDOWN: ["systemctl", "poweroff", "--no-wall"],
    PowerAction.RESTART: ["systemctl", "reboot", "--no-wall"],
    PowerAction.SLEEP: ["systemctl", "suspend"],
    PowerAction.LOGOUT: ["loginctl", "terminate-session", "$XDG_SESSION_ID"],
}

# Lowercased stderr fragments that mean "you may not", not "it broke".
_AUTH_MARKERS = (
    "access denied",
    "not authorized",
    "permission denied",
    "operation not permitted",
    "interactive authentication required",
    "authentication is required",
)


class StrategyKind(enum.Enum):
    LOW_LEVEL = "low_level"
    AUTOMATION = "automation"
    SHELL = "shell"


DEFAULT_ORDER: dict[PowerAction, tuple[StrategyKind, ...]] = {
    PowerAction.SLEEP: (StrategyKind.LOW_LEVEL, StrategyKind.AUTOMATION, StrategyKind.SHELL),
    PowerAction.SHUTDOWN: (StrategyKind.AUTOMATION, StrategyKind.SHELL),
    PowerAction.RESTART: (StrategyKind.AUTOMATION, StrategyKind.SHELL),
    PowerAction.LOGOUT: (StrategyKind.AUTOMATION, StrategyKind.SHELL),
}


@dataclass(frozen=True)
class PowerConfig:
    commands: dict[PowerAction, list[str]]
    strategy_timeout_seconds: float = 8.0
    sleep_state_path: Path = Path("/sys/power/state")
    sleep_state: str = "mem"
    order: dict[PowerAction, tuple[StrategyKind, ...]] = field(
        default_factory=lambda: dict(DEFAULT_ORDER)
    )


def normalize_command(action: PowerAction, raw: object) -> list[str]:
    """Return the default command if config is missing or invalid."""

    if not isinstance(raw, list) or not raw:
        return list(DEFAULT_COMMANDS[action])
    return [str(x) for x in raw]


def looks_unauthorized(detail: str) -> bool:
    text = detail.lower()
    return any(marker in text for marker in _AUTH_MARKERS)


@dataclass(frozen=True)
class AttemptResult:
    strategy: StrategyKind
    succeeded: bool
    error_detail: str | None = None
    authorization_failure: bool = False


@dataclass(frozen=True)
class ExecutionReport:
    action: PowerAction
    attempts: tuple[AttemptResult, ...]

    @property
    def succeeded(self) -> bool:
        return bool(self.attempts) and self.attempts[-1].succeeded


class StrategyFailed(RuntimeError):
    def __init__(self, detail: str, authorization: bool = False):
        super().__init__(detail)
        self.authorization = authorization


class Strategy(abc.ABC):
    """One way of asking the host to perform a power action."""

    kind: StrategyKind

    def supports(self, action: PowerAction) -> bool:
        return True

    @abc.abstractmethod
    async def run(self, action: PowerAction) -> None:
        raise NotImplementedError


class SysfsSleepStrategy(Strategy):
    kind = StrategyKind.LOW_LEVEL

    def __init__(self, state_path: Path, state: str = "mem"):
        self._path = Path(state_path)
        self._state = state

    def supports(self, action: PowerAction) -> bool:
        return action is PowerAction.SLEEP

    async def run(self, action: PowerAction) -> None:
        # The write returns once the host has resumed.
        try:
            await asyncio.to_thread(self._path.write_text, self._state, encoding="utf-8")
        except PermissionError as e:
            raise StrategyFailed(f"{self._path}: {e.strerror or e}", authorization=True) from e
        except OSError as e:
            raise StrategyFailed(f"{self._path}: {e.strerror or e}") from e


class LogindStrategy(Strategy):
    kind = StrategyKind.AUTOMATION

    def __init__(self, logind: LogindClient):
        self._logind = logind

    async def run(self, action: PowerAction) -> None:
        try:
            await self._logind.request(action)
        except LogindError as e:
            raise StrategyFailed(str(e), authorization=e.authorization) from e


class ShellStrategy(Strategy):
    kind = StrategyKind.SHELL

    def __init__(self, commands: Mapping[PowerAction, Sequence[str]]):
        self._commands = {a: list(cmd) for a, cmd in commands.items() if cmd}

    def supports(self, action: PowerAction) -> bool:
        return action in self._commands

    async def run(self, action: PowerAction) -> None:
        cmd = [os.path.expandvars(x) for x in self._commands[action]]
        env = os.environ.copy()
        env["POWERDOWN_ACTION"] = action.value
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE, env=env
            )
        except OSError as e:
            raise StrategyFailed(f"{cmd[0]}: {e.strerror or e}") from e

        try:
            _, stderr = await proc.communicate()
        except asyncio.CancelledError:
            with suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            detail = detail or f"exit status {proc.returncode}"
            raise StrategyFailed(
                f"{' '.join(cmd)}: {detail}", authorization=looks_unauthorized(detail)
            )


def build_strategies(cfg: PowerConfig, logind: LogindClient) -> list[Strategy]:
    return [
        SysfsSleepStrategy(cfg.sleep_state_path, cfg.sleep_state),
        LogindStrategy(logind),
        ShellStrategy(cfg.commands),
    ]


class CommandExecutor:
    """Try each strategy for an action in order until one succeeds."""

    def __init__(
        self,
        strategies: Iterable[Strategy],
        timeout_seconds: float = 8.0,
        order: Mapping[PowerAction, Sequence[StrategyKind]] | None = None,
    ):
        self._strategies = {s.kind: s for s in strategies}
        self._timeout = timeout_seconds
        self._order = dict(DEFAULT_ORDER if order is None else order)

    def plan(self, action: PowerAction) -> list[Strategy]:
        out: list[Strategy] = []
        for kind in self._order.get(action, DEFAULT_ORDER[action]):
            strategy = self._strategies.get(kind)
            if strategy is not None and strategy.supports(action) and strategy not in out:
                out.append(strategy)
        return out

    async def run(self, action: PowerAction) -> ExecutionReport:
        attempts: list[AttemptResult] = []
        for strategy in self.plan(action):
            result = await self._attempt(strategy, action)
            attempts.append(result)
            if result.succeeded:
                log.info("%s succeeded via %s", action.value, strategy.kind.value)
                break
            log.warning(
                "%s via %s failed: %s", action.value, strategy.kind.value, result.error_detail
            )
        return ExecutionReport(action=action, attempts=tuple(attempts))

    async def _attempt(self, strategy: Strategy, action: PowerAction) -> AttemptResult:
        try:
            await asyncio.wait_for(strategy.run(action), self._timeout)
        except asyncio.TimeoutError:
            return AttemptResult(strategy.kind, False, f"timed out after {self._timeout:g}s")
        except StrategyFailed as e:
            return AttemptResult(
                strategy.kind, False, str(e), authorization_failure=e.authorization
            )
        except Exception as e:
            log.exception("%s strategy raised unexpectedly", strategy.kind.value)
            return AttemptResult(strategy.kind, False, f"{type(e).__name__}: {e}")
        return AttemptResult(strategy.kind, True)
