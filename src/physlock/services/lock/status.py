"""Lock and claim state values."""
from __future__ import annotations

from enum import Enum

__all__ = ["ClaimState", "LockStatus"]


class _StrEnum(str, Enum):
    """Simple ``str``-backed enum compatible with Python 3.10."""

    def __str__(self) -> str:
        return str(self.value)


class LockStatus(_StrEnum):
    LOCKED = "LOCKED"
    UNLOCKED = "UNLOCKED"


class ClaimState(_StrEnum):
    UNCLAIMED = "unclaimed"
    CLAIMED = "claimed"
