from __future__ import annotations

import yaml
import pytest

from physlock.services.settings import LockdSettings, ensure_config_dir, load_settings, settings_path


def test_first_load_writes_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("PHYSLOCK_HARDWARE", raising=False)
    monkeypatch.delenv("PHYSLOCK_LOG_LEVEL", raising=False)

    settings = load_settings(tmp_path)

    assert settings == LockdSettings()
    data = yaml.safe_load(settings_path(tmp_path).read_text(encoding="utf-8"))
    assert data["hardware"] == "simulated"
    assert data["relay_pin"] == 17
    assert data["monitor_pin"] == 22
    assert data["poll_interval"] == 0.2


def test_file_values_and_env_overrides(tmp_path, monkeypatch):
    settings_path(tmp_path).write_text(
        yaml.safe_dump({"failure_rate": 0.25, "toggle_timeout": "2.5", "relay_pin": 5, "unknown": True}),
        encoding="utf-8",
    )
    monkeypatch.setenv("PHYSLOCK_HARDWARE", "RPI")
    monkeypatch.setenv("PHYSLOCK_LOG_LEVEL", "debug")

    settings = load_settings(tmp_path)

    assert settings.failure_rate == 0.25
    assert settings.toggle_timeout == 2.5
    assert settings.relay_pin == 5
    assert settings.hardware == "rpi"
    assert settings.log_level == "DEBUG"
    # overrides are not persisted
    assert "hardware" not in yaml.safe_load(settings_path(tmp_path).read_text(encoding="utf-8"))


def test_invalid_values_fall_back_to_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("PHYSLOCK_HARDWARE", raising=False)
    settings_path(tmp_path).write_text(
        yaml.safe_dump({"hardware": "abacus", "failure_rate": 3, "poll_interval": "soon"}),
        encoding="utf-8",
    )

    settings = load_settings(tmp_path)

    assert settings.hardware == "simulated"
    assert settings.failure_rate == 0.1
    assert settings.poll_interval == 0.2


def test_non_mapping_settings_file_is_rejected(tmp_path):
    settings_path(tmp_path).write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(tmp_path)


def test_ensure_config_dir_creates_private_directory(tmp_path):
    target = ensure_config_dir(tmp_path / "lockd" / "config")
    assert target.is_dir()
    assert target.stat().st_mode & 0o777 == 0o700

    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(NotADirectoryError):
        ensure_config_dir(blocker)
