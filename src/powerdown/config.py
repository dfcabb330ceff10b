from __future__ import annotations

import copy
import logging
import shlex
from pathlib import Path
from typing import Any

import yaml

from powerdown.actions import PowerAction
from powerdown.system.power import (
    DEFAULT_COMMANDS,
    DEFAULT_ORDER,
    PowerConfig,
    StrategyKind,
    normalize_command,
)


class ConfigError(ValueError):
    pass


DEFAULTS: dict[str, Any] = {
    "timer": {"tick_seconds": 1.0, "snooze_seconds": 300},
    "executor": {
        "strategy_timeout_seconds": 8.0,
        "sleep_state_path": "/sys/power/state",
        "sleep_state": "mem",
        "order": {},
    },
    "commands": {},
    "confirmation": {"timeout_seconds": 30.0},
    "permission": {"check_before_execute": True, "timeout_seconds": 5.0},
    "events": {"queue_size": 64},
    "logging": {"level": "INFO"},
}

_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _require_mapping(cfg: dict[str, Any], key: str) -> dict[str, Any]:
    value = cfg.get(key)
    if not isinstance(value, dict):
        raise ConfigError(f"{key} must be a mapping")
    return value


def _positive(section: dict[str, Any], name: str, key: str) -> None:
    try:
        ok = float(section[key]) > 0
    except (TypeError, ValueError):
        ok = False
    if not ok:
        raise ConfigError(f"{name}.{key} must be > 0")


def load(path: str | Path | None = None) -> dict[str, Any]:
    data: Any = {}
    if path is not None:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        if data is None:
            data = {}
    if not isinstance(data, dict):
        raise ConfigError("Top-level config must be a mapping")
    normalize(data)
    validate(data)
    return data


def normalize(cfg: dict[str, Any]) -> None:
    """Fill in defaults and tidy user input in place."""

    for key, section in DEFAULTS.items():
        current = cfg.get(key)
        if current is None:
            cfg[key] = copy.deepcopy(section)
        elif isinstance(current, dict):
            for k, v in section.items():
                current.setdefault(k, copy.deepcopy(v))

    commands = cfg["commands"]
    if isinstance(commands, dict):
        for name, raw in list(commands.items()):
            if isinstance(raw, str):
                commands[name] = shlex.split(raw)
            elif isinstance(raw, list):
                commands[name] = [str(x).strip() for x in raw if str(x).strip()]

    executor = cfg["executor"]
    if isinstance(executor, dict) and isinstance(executor.get("sleep_state_path"), str):
        executor["sleep_state_path"] = executor["sleep_state_path"].strip()

    log_cfg = cfg["logging"]
    if isinstance(log_cfg, dict) and isinstance(log_cfg.get("level"), str):
        log_cfg["level"] = log_cfg["level"].strip().upper()


def validate(cfg: dict[str, Any]) -> None:
    timer = _require_mapping(cfg, "timer")
    _positive(timer, "timer", "tick_seconds")
    _positive(timer, "timer", "snooze_seconds")

    executor = _require_mapping(cfg, "executor")
    _positive(executor, "executor", "strategy_timeout_seconds")
    if not str(executor.get("sleep_state_path") or ""):
        raise ConfigError("executor.sleep_state_path must not be empty")

    order = executor.get("order") or {}
    if not isinstance(order, dict):
        raise ConfigError("executor.order must be a mapping")
    for name, kinds in order.items():
        try:
            PowerAction.parse(name)
        except ValueError as e:
            raise ConfigError(f"executor.order: {e}") from e
        if not isinstance(kinds, list) or not kinds:
            raise ConfigError(f"executor.order.{name} must be a non-empty list")
        for kind in kinds:
            try:
                StrategyKind(kind)
            except ValueError as e:
                raise ConfigError(f"executor.order.{name}: unknown strategy {kind!r}") from e

    commands = _require_mapping(cfg, "commands")
    for name, cmd in commands.items():
        try:
            PowerAction.parse(name)
        except ValueError as e:
            raise ConfigError(f"commands: {e}") from e
        if not isinstance(cmd, list) or not cmd:
            raise ConfigError(f"commands.{name} must be a non-empty list")

    confirmation = _require_mapping(cfg, "confirmation")
    _positive(confirmation, "confirmation", "timeout_seconds")

    permission = _require_mapping(cfg, "permission")
    _positive(permission, "permission", "timeout_seconds")

    events = _require_mapping(cfg, "events")
    _positive(events, "events", "queue_size")

    level = _require_mapping(cfg, "logging").get("level")
    if level not in _LEVELS:
        raise ConfigError(f"logging.level must be one of {sorted(_LEVELS)}")


def power_config(cfg: dict[str, Any]) -> PowerConfig:
    executor = cfg["executor"]
    commands = {PowerAction.parse(k): v for k, v in cfg["commands"].items()}
    order = dict(DEFAULT_ORDER)
    for name, kinds in (executor.get("order") or {}).items():
        order[PowerAction.parse(name)] = tuple(StrategyKind(k) for k in kinds)
    return PowerConfig(
        commands={a: normalize_command(a, commands.get(a)) for a in DEFAULT_COMMANDS},
        strategy_timeout_seconds=float(executor["strategy_timeout_seconds"]),
        sleep_state_path=Path(executor["sleep_state_path"]),
        sleep_state=str(executor["sleep_state"]),
        order=order,
    )


def log_level(cfg: dict[str, Any]) -> int:
    return int(getattr(logging, cfg["logging"]["level"]))
