import logging

import pytest

from backlightd.core.config import LogLevel, Settings, build_settings, load_settings, read_config_files
from backlightd.domain.models import DaemonMode


def test_defaults_without_files(tmp_path):
    s = load_settings([tmp_path / "missing.toml"])
    assert s.mode is DaemonMode.REALTIME
    assert s.camera_resolution == (640, 480)
    assert s.logging is LogLevel.MEDIUM
    assert not s.calibrated


def test_reads_document(tmp_path):
    cfg = tmp_path / "config.toml"
    cfg.write_text(
        'mode = "interval"\n'
        "run_duration = 5.0\n"
        "pause_interval = 3.0\n"
        "camera_resolution = [320, 240]\n"
        'logging = "low"\n'
        "ambient_luma_min = 0.05\n"
        "ambient_luma_max = 0.8\n"
        "screen_brightness_max = 937\n"
        "calibrated = true\n"
    )
    s = load_settings([cfg])
    assert s.mode is DaemonMode.INTERVAL
    assert s.daemon_config().run_duration == 5.0
    assert s.sampler_config().width == 320
    assert s.logging is LogLevel.LOW
    p = s.calibration_profile()
    assert (p.ambient_luma_min, p.ambient_luma_max, p.screen_brightness_max, p.calibrated) == (0.05, 0.8, 937, True)


def test_higher_precedence_file_wins(tmp_path):
    user = tmp_path / "user.toml"
    system = tmp_path / "system.toml"
    user.write_text("camera_index = 2\n")
    system.write_text("camera_index = 1\ncapture_interval_ms = 250\n")
    data = read_config_files([user, system])
    assert data == {"camera_index": 2, "capture_interval_ms": 250}


def test_invalid_toml_file_is_skipped(tmp_path):
    bad = tmp_path / "bad.toml"
    bad.write_text("mode = [unterminated\n")
    good = tmp_path / "good.toml"
    good.write_text('mode = "boot"\n')
    assert load_settings([bad, good]).mode is DaemonMode.BOOT


def test_invalid_values_fall_back_to_defaults(tmp_path, caplog):
    caplog.set_level(logging.WARNING)
    s = build_settings(
        {
            "mode": "sometimes",
            "ambient_smoothing_strength": 3.0,
            "circadian_day_start_hour": 31,
            "capture_interval_ms": 250,
            "not_a_key": 1,
        }
    )
    assert s.mode is DaemonMode.REALTIME
    assert s.ambient_smoothing_strength == Settings.model_fields["ambient_smoothing_strength"].default
    assert s.circadian_day_start_hour == 7
    assert s.capture_interval_ms == 250
    assert "sometimes" in caplog.text


def test_inconsistent_profile_is_reset(tmp_path):
    s = build_settings({"ambient_luma_min": 0.7, "ambient_luma_max": 0.2, "calibrated": True, "camera_index": 3})
    assert s.calibration_profile().is_valid()
    assert not s.calibrated
    assert s.camera_index == 3


def test_interval_boot_forces_interval():
    s = build_settings({"mode": "boot", "interval_boot": True})
    assert s.daemon_config().effective_mode is DaemonMode.INTERVAL


def test_settings_are_immutable():
    s = build_settings({})
    with pytest.raises(Exception):
        s.camera_index = 4


def test_with_profile_replaces_calibration(profile):
    s = build_settings({}).with_profile(profile)
    assert s.calibration_profile() == profile
