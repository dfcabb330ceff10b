from __future__ import annotations

import compileall
import importlib
from pathlib import Path


def test_compileall_src() -> None:
    src = Path(__file__).resolve().parents[1] / "src"
    ok = compileall.compile_dir(str(src), quiet=1)
    assert ok


def test_import_packages() -> None:
    importlib.import_module("powerdown")
    importlib.import_module("powerdown.cli")
    importlib.import_module("powerdown.config")
    importlib.import_module("powerdown.controller")
    importlib.import_module("powerdown.coordinator")
    importlib.import_module("powerdown.engine")
    importlib.import_module("powerdown.guard")
    importlib.import_module("powerdown.dbus_service")
    importlib.import_module("powerdown.dbus_client")
    importlib.import_module("powerdown.diagnostics")
    importlib.import_module("powerdown.system.logind")
    importlib.import_module("powerdown.system.power")
