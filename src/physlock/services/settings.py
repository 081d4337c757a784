from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from physlock.config.const import (
    MONITOR_PIN,
    POLL_INTERVAL_SECONDS,
    RELAY_PIN,
    SETTINGS_FILE_NAME,
    SIMULATED_FAILURE_RATE,
    TOGGLE_TIMEOUT_SECONDS,
)

__all__ = ["LockdSettings", "ensure_config_dir", "load_settings", "save_settings", "settings_path"]

_log = logging.getLogger("physlock.settings")

_HARDWARE_KINDS = ("simulated", "rpi")


@dataclass
class LockdSettings:
    hardware: str = "simulated"
    failure_rate: float = SIMULATED_FAILURE_RATE
    poll_interval: float = POLL_INTERVAL_SECONDS
    toggle_timeout: float = TOGGLE_TIMEOUT_SECONDS
    relay_pin: int = RELAY_PIN
    monitor_pin: int = MONITOR_PIN
    log_level: str = "INFO"
    # self-blessed name of a lock before it is claimed
    identity: str = "physlock"

    def ensure_defaults(self) -> bool:
        changed = False
        kind = (self.hardware or "").strip().lower()
        if kind not in _HARDWARE_KINDS:
            _log.warning("unknown hardware %r in settings, using simulated", self.hardware)
            kind = "simulated"
        if kind != self.hardware:
            self.hardware = kind
            changed = True
        if not 0.0 <= float(self.failure_rate) <= 1.0:
            self.failure_rate = SIMULATED_FAILURE_RATE
            changed = True
        if float(self.poll_interval) <= 0:
            self.poll_interval = POLL_INTERVAL_SECONDS
            changed = True
        if float(self.toggle_timeout) <= 0:
            self.toggle_timeout = TOGGLE_TIMEOUT_SECONDS
            changed = True
        if not self.log_level:
            self.log_level = "INFO"
            changed = True
        if not self.identity:
            self.identity = "physlock"
            changed = True
        return changed

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def settings_path(config_dir: Path) -> Path:
    return Path(config_dir) / SETTINGS_FILE_NAME


def ensure_config_dir(path: Path) -> Path:
    """Create the lock's configuration directory with owner-only access."""

    path = Path(path).expanduser()
    if path.exists() and not path.is_dir():
        raise NotADirectoryError(f"{path} exists and is not a directory")
    path.mkdir(mode=0o700, parents=True, exist_ok=True)
    return path


def _coerce(payload: dict[str, Any]) -> LockdSettings:
    known = {f.name: f for f in fields(LockdSettings)}
    defaults = LockdSettings()
    values: dict[str, Any] = {}
    for name, value in payload.items():
        if name not in known or value is None:
            continue
        kind = type(getattr(defaults, name))
        try:
            values[name] = kind(value)
        except (TypeError, ValueError):
            _log.warning("ignoring invalid value %r for %s", value, name)
    return LockdSettings(**values)


def _apply_env(settings: LockdSettings) -> None:
    hardware = os.environ.get("PHYSLOCK_HARDWARE")
    if hardware:
        settings.hardware = hardware.strip().lower()
    level = os.environ.get("PHYSLOCK_LOG_LEVEL")
    if level:
        settings.log_level = level.strip().upper()


def save_settings(settings: LockdSettings, config_dir: Path) -> Path:
    path = settings_path(config_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(settings.to_dict(), sort_keys=False), encoding="utf-8")
    return path


def load_settings(config_dir: Path) -> LockdSettings:
    """Read ``lockd.yaml``, writing it with defaults on first use.

    ``PHYSLOCK_HARDWARE`` and ``PHYSLOCK_LOG_LEVEL`` override the file and are
    never written back.
    """

    path = settings_path(config_dir)
    if not path.exists():
        settings = LockdSettings()
        save_settings(settings, config_dir)
    else:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a mapping")
        settings = _coerce(data)
        if settings.ensure_defaults():
            save_settings(settings, config_dir)
    _apply_env(settings)
    settings.ensure_defaults()
    return settings
