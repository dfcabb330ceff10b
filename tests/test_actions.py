from __future__ import annotations

import pytest

from powerdown.actions import PowerAction


@pytest.mark.parametrize(
    ("raw", "action"),
    [
        ("shutdown", PowerAction.SHUTDOWN),
        ("Shut Down", PowerAction.SHUTDOWN),
        ("poweroff", PowerAction.SHUTDOWN),
        ("reboot", PowerAction.RESTART),
        ("suspend", PowerAction.SLEEP),
        ("log-out", PowerAction.LOGOUT),
        ("LOG_OUT", PowerAction.LOGOUT),
    ],
)
def test_parse_aliases(raw: str, action: PowerAction) -> None:
    assert PowerAction.parse(raw) is action


def test_parse_unknown() -> None:
    with pytest.raises(ValueError, match="hibernate"):
        PowerAction.parse("hibernate")


def test_only_sleep_skips_confirmation() -> None:
    assert not PowerAction.SLEEP.requires_confirmation
    assert PowerAction.SHUTDOWN.requires_confirmation
    assert PowerAction.RESTART.requires_confirmation
    assert PowerAction.LOGOUT.requires_confirmation


def test_display_names() -> None:
    assert PowerAction.SHUTDOWN.display_name == "Shut Down"
    assert PowerAction.LOGOUT.display_name == "Log Out"
