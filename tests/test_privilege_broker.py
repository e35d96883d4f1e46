import sys

import pytest

import privilege_broker
from privilege_broker import ShellPrivilegeBroker, build_self_command


def test_build_self_command_runs_main_script(monkeypatch):
    monkeypatch.delattr(sys, "frozen", raising=False)

    cmd = build_self_command(["fix-nvmodes", "--elevated"])

    assert cmd == [sys.executable, privilege_broker.MAIN_SCRIPT, "fix-nvmodes", "--elevated"]


def test_build_self_command_frozen(monkeypatch):
    monkeypatch.setattr(sys, "frozen", True, raising=False)

    assert build_self_command(["status"]) == [sys.executable, "status"]


def test_run_elevated_requires_command():
    with pytest.raises(ValueError):
        ShellPrivilegeBroker().run_elevated([])
