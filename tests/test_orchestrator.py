import pytest

from config_manager import AppConfig, Resolution, load_config
from errors import (
    ElevationDeclinedError,
    ElevationError,
    ExternalToolError,
    ToolNotFoundError,
    ValidationError,
)
from fakes import FakeAdapterStore, FakeBroker, RecordingDisplay
from nv_modes import REG_SZ
from orchestrator import ProfileOrchestrator
from registry_mutator import ApplyResult

RELAUNCH = ["python", "main.py", "fix-nvmodes", "--elevated"]


def _config(**overrides):
    cfg = AppConfig(native_resolution=Resolution(1920, 1080), game_resolution=Resolution(1566, 1080))
    for name, value in overrides.items():
        setattr(cfg, name, value)
    return cfg


def _orchestrator(config=None, broker=None, display=None, store=None):
    store = store if store is not None else FakeAdapterStore({"0000": ("", REG_SZ)})
    return ProfileOrchestrator(
        config or _config(),
        broker or FakeBroker(),
        display=display or RecordingDisplay(),
        store_factory=lambda class_path: store,
        relaunch_command=RELAUNCH,
    )


def test_apply_profile():
    display = RecordingDisplay()
    orch = _orchestrator(display=display)

    orch.apply(orch.config.profile("game"))

    assert display.calls == [("setdisplay", 1566, 1080, 32)]


def test_apply_invalid_profile_launches_nothing():
    display = RecordingDisplay()
    orch = _orchestrator(config=_config(native_resolution=Resolution(300, 1080)), display=display)

    with pytest.raises(ValidationError):
        orch.switch("native")

    assert display.calls == []


def test_secondary_displays_toggle_in_order_before_resolution_change():
    display = RecordingDisplay()
    orch = _orchestrator(display=display)

    orch.apply_mode_with_secondary_displays(orch.config.profile("game"), ["2", "3"])

    assert display.calls == [("monitor", "2"), ("monitor", "3"), ("setdisplay", 1566, 1080, 32)]


def test_empty_display_list_is_plain_apply():
    display = RecordingDisplay()
    orch = _orchestrator(display=display)

    orch.apply_mode_with_secondary_displays(orch.config.profile("native"), [])

    assert display.calls == [("setdisplay", 1920, 1080, 32)]


def test_failed_toggle_does_not_abort_siblings_and_is_reported():
    display = RecordingDisplay(failing_monitors={"2"})
    orch = _orchestrator(display=display)

    with pytest.raises(ExternalToolError) as excinfo:
        orch.apply_mode_with_secondary_displays(orch.config.profile("game"), ["2", "3"])

    assert display.calls == [("monitor", "2"), ("monitor", "3"), ("setdisplay", 1566, 1080, 32)]
    assert "monitor:2" in str(excinfo.value)
    assert excinfo.value.exit_code == 5


def test_resolution_failure_also_reports_toggle_failures():
    display = RecordingDisplay(failing_monitors={"2"}, set_display_error=ExternalToolError("setdisplay failed", 7))
    orch = _orchestrator(display=display)

    with pytest.raises(ExternalToolError) as excinfo:
        orch.apply_mode_with_secondary_displays(orch.config.profile("game"), ["2", "3"])

    assert display.calls == [("monitor", "2"), ("monitor", "3"), ("setdisplay", 1566, 1080, 32)]
    assert "setdisplay failed" in str(excinfo.value)
    assert "monitor:2" in str(excinfo.value)
    assert excinfo.value.exit_code == 7


def test_resolution_failure_without_toggle_failures_is_unchanged():
    error = ExternalToolError("setdisplay failed", 7)
    display = RecordingDisplay(set_display_error=error)
    orch = _orchestrator(display=display)

    with pytest.raises(ExternalToolError) as excinfo:
        orch.apply_mode_with_secondary_displays(orch.config.profile("game"), ["2"])

    assert excinfo.value is error


def test_missing_tool_stops_before_toggles():
    display = RecordingDisplay(missing=True)
    orch = _orchestrator(display=display)

    with pytest.raises(ToolNotFoundError):
        orch.apply_mode_with_secondary_displays(orch.config.profile("game"), ["2"])

    assert display.calls == []


def test_switch_uses_secondary_displays_when_enabled():
    display = RecordingDisplay()
    cfg = _config(secondary_displays=["2"], toggle_secondary_displays=True)
    orch = _orchestrator(config=cfg, display=display)

    orch.switch("native")

    assert display.calls == [("monitor", "2"), ("setdisplay", 1920, 1080, 32)]


def test_switch_ignores_displays_when_disabled():
    display = RecordingDisplay()
    cfg = _config(secondary_displays=["2"], toggle_secondary_displays=False)
    orch = _orchestrator(config=cfg, display=display)

    orch.switch("game")

    assert display.calls == [("setdisplay", 1566, 1080, 32)]


def test_fix_runs_in_process_when_elevated():
    store = FakeAdapterStore({"0000": ("1920x1080x8,16,32=1F;", REG_SZ)})
    broker = FakeBroker(elevated=True)
    orch = _orchestrator(broker=broker, store=store)

    result = orch.apply_nv_modes_fix()

    assert result == ApplyResult(examined=1, updated=1, unchanged=0)
    assert broker.commands == []
    assert store.values["0000"][0] == "1920x1080x8,16,32=1F; 1566x1080x8,16,32,64=1F;"


def test_fix_rejects_out_of_range_game_resolution():
    store = FakeAdapterStore({"0000": ("1920x1080x8,16,32=1F;", REG_SZ)})
    elevated = FakeBroker(elevated=True)
    orch = _orchestrator(config=_config(game_resolution=Resolution(-5, 0)), broker=elevated, store=store)

    with pytest.raises(ValidationError):
        orch.apply_nv_modes_fix()

    assert store.writes == []
    assert store.values["0000"] == ("1920x1080x8,16,32=1F;", REG_SZ)


def test_fix_with_invalid_game_resolution_never_prompts():
    broker = FakeBroker(elevated=False)
    orch = _orchestrator(config=_config(game_resolution=Resolution(300, 200)), broker=broker)

    with pytest.raises(ValidationError):
        orch.apply_nv_modes_fix()

    assert broker.commands == []


def test_fix_relaunches_elevated_when_not_admin():
    store = FakeAdapterStore({"0000": ("", REG_SZ)})
    broker = FakeBroker(elevated=False, exit_code=0)
    orch = _orchestrator(broker=broker, store=store)

    assert orch.apply_nv_modes_fix() is None
    assert broker.commands == [RELAUNCH]
    assert store.writes == []


def test_fix_propagates_elevated_child_exit_code():
    broker = FakeBroker(elevated=False, exit_code=1)
    orch = _orchestrator(broker=broker)

    with pytest.raises(ExternalToolError) as excinfo:
        orch.apply_nv_modes_fix()

    assert excinfo.value.exit_code == 1


def test_fix_declined_prompt_is_privilege_error():
    broker = FakeBroker(elevated=False, error=ElevationDeclinedError("declined"))
    orch = _orchestrator(broker=broker)

    with pytest.raises(ElevationError):
        orch.apply_nv_modes_fix()


def test_elevated_child_without_rights_does_not_relaunch_again():
    broker = FakeBroker(elevated=False)
    orch = _orchestrator(broker=broker)

    with pytest.raises(ElevationError):
        orch.apply_nv_modes_fix(in_elevated_child=True)

    assert broker.commands == []


def test_set_game_resolution_saves_and_fixes(tmp_path):
    path = str(tmp_path / "config.ini")
    store = FakeAdapterStore({"0000": ("", REG_SZ)})
    orch = ProfileOrchestrator(
        _config(),
        FakeBroker(elevated=True),
        display=RecordingDisplay(),
        store_factory=lambda class_path: store,
        relaunch_command=RELAUNCH,
        config_path=path,
    )

    result = orch.set_game_resolution(2100, 1440)

    assert result.updated == 1
    assert load_config(path).game_resolution == Resolution(2100, 1440)
    assert store.values["0000"][0] == "2100x1440x8,16,32,64=1F;"


def test_default_relaunch_command_marks_child(tmp_path):
    path = str(tmp_path / "config.ini")
    orch = ProfileOrchestrator(_config(), FakeBroker(), display=RecordingDisplay(), config_path=path)

    assert orch.relaunch_command[-4:] == ["fix-nvmodes", "--elevated", "--config", path]
