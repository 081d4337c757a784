# src/physlock/config/const.py
from __future__ import annotations

# Identity naming
CHAIN_SEPARATOR: str = ":"
ALL_PRINCIPALS: str = "..."
KEY_EXTENSION: str = "key"
USER_IDENTITY_PREFIX: str = "dev.v.io:u"
NH_FRIENDLY_SEPARATOR: str = "@@"

# Durable claim marker inside the device config directory
CLAIM_FILE_NAME: str = "claimed_lock"
SETTINGS_FILE_NAME: str = "lockd.yaml"

# Object names
LOCK_SUFFIX: str = "lock"
RECVKEY_SUFFIX: str = "recvkey"
NH_ROOT: str = "nh"
LOCK_NH_PREFIX: str = "lock-"
USER_NH_PREFIX: str = "user-"
UNCLAIMED_NH_PREFIX: str = "unclaimed-lock-"

# Hardware
POLL_INTERVAL_SECONDS: float = 0.2
TOGGLE_TIMEOUT_SECONDS: float = 5.0
SIMULATED_FAILURE_RATE: float = 0.1
RELAY_PIN: int = 17
MONITOR_PIN: int = 22

# RPC
CALL_TIMEOUT_SECONDS: float = 60.0
