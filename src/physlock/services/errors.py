"""Typed errors raised by the lock services and returned to RPC callers unchanged."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

__all__ = [
    "ErrorEnvelope",
    "LockError",
    "InvalidLockNameError",
    "AlreadyClaimedError",
    "KeyRejectedError",
    "NoValidKeyError",
    "IdentityMismatchError",
    "HardwareTimeoutError",
    "HardwareFaultError",
    "InternalError",
    "NoAccessError",
    "NoServersError",
]


@dataclass(slots=True)
class ErrorEnvelope:
    code: str
    message: str
    hint: str | None = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.hint is not None:
            data["hint"] = self.hint
        return data


class LockError(RuntimeError):
    """Base class for every error the lock services report to a caller."""

    code = "internal"

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint

    @property
    def envelope(self) -> ErrorEnvelope:
        return ErrorEnvelope(code=self.code, message=str(self), hint=self.hint)


class InvalidLockNameError(LockError):
    code = "invalid_lock_name"

    def __init__(self, name: str, separator: str) -> None:
        super().__init__(
            f"invalid lock name {name!r}",
            hint=f"lock names must be non-empty and cannot contain {separator!r}",
        )
        self.name = name


class AlreadyClaimedError(LockError):
    code = "already_claimed"

    def __init__(self) -> None:
        super().__init__("lock has already been claimed")


class KeyRejectedError(LockError):
    code = "key_rejected"

    def __init__(self, key: str, lock_name: str) -> None:
        super().__init__(f"key {key} for lock {lock_name} was rejected")
        self.key = key
        self.lock_name = lock_name


class NoValidKeyError(LockError):
    code = "no_valid_key"

    def __init__(self, lock_name: str, detail: str | None = None) -> None:
        message = f"no valid key for lock {lock_name}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.lock_name = lock_name


class IdentityMismatchError(LockError):
    code = "identity_mismatch"

    def __init__(self, presented: list[str], wanted: str) -> None:
        super().__init__(f"remote end presented identities {presented}, want an identity for user {wanted}")
        self.presented = presented
        self.wanted = wanted


class HardwareTimeoutError(LockError):
    code = "hardware_timeout"

    def __init__(self, elapsed: float) -> None:
        super().__init__(f"lock state unchanged after {elapsed:.1f}s: might be stuck, aborting")
        self.elapsed = elapsed


class HardwareFaultError(LockError):
    """Transient actuator failure; the lock state was not changed."""

    code = "hardware_fault"


class InternalError(LockError):
    code = "internal"

    @classmethod
    def wrap(cls, exc: BaseException) -> "InternalError":
        err = cls(f"internal error: {exc}")
        err.__cause__ = exc
        return err


class NoAccessError(LockError):
    code = "no_access"


class NoServersError(LockError):
    code = "no_servers"

    def __init__(self, name: str) -> None:
        super().__init__(f"no servers mounted at {name!r}")
        self.name = name
