"""One-time claiming of an unclaimed lock."""
from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Sequence

from physlock.config.const import CHAIN_SEPARATOR, CLAIM_FILE_NAME, KEY_EXTENSION
from physlock.services.errors import AlreadyClaimedError, InternalError, InvalidLockNameError
from physlock.services.naming import is_valid_lock_name
from physlock.services.rpc import ServerCall, resolve_once
from physlock.services.security import Credential, PeerPattern, Principal, add_to_roots

from .status import ClaimState

__all__ = [
    "ClaimState",
    "UnclaimedLockService",
    "claim_record_path",
    "is_lock_claimed",
    "write_claim_record",
]

_log = logging.getLogger("physlock.lock.claim")


def claim_record_path(config_dir: Path) -> Path:
    return Path(config_dir) / CLAIM_FILE_NAME


def is_lock_claimed(config_dir: Path) -> bool:
    """The lock is claimed if and only if the claim record exists."""

    return claim_record_path(config_dir).exists()


def write_claim_record(config_dir: Path) -> Path:
    """Create the claim record, failing with FileExistsError if it exists.

    The record and its directory entry are flushed to disk before returning.
    """

    path = claim_record_path(config_dir)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)
    try:
        dir_fd = os.open(path.parent, os.O_RDONLY)
    except OSError:
        # directories cannot be opened for fsync on every platform
        return path
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)
    return path


class UnclaimedLockService:
    """Serves ``claim`` until the first successful claim.

    ``claimed`` is resolved exactly once, after the claim record is on disk.
    """

    rpc_methods = ("claim",)

    def __init__(self, principal: Principal, config_dir: Path, claimed: Future) -> None:
        self._principal = principal
        self._config_dir = Path(config_dir)
        self._claimed = claimed
        self._mu = threading.Lock()
        self._state = ClaimState.CLAIMED if is_lock_claimed(self._config_dir) else ClaimState.UNCLAIMED

    @property
    def state(self) -> ClaimState:
        return self._state

    def claim(self, call: ServerCall, name: str) -> Credential:
        presented = call.security.remote_credential
        _log.info("claim called by %s", presented.names if presented is not None else [])
        if not is_valid_lock_name(name):
            raise InvalidLockNameError(name, CHAIN_SEPARATOR)
        remote_key = call.security.remote_public_key

        if not self._mu.acquire(blocking=False):
            raise AlreadyClaimedError()
        try:
            if self._state is ClaimState.CLAIMED:
                raise AlreadyClaimedError()
            original = self._principal.store.default()
            try:
                key = self._make_key(name, remote_key)
                write_claim_record(self._config_dir)
            except FileExistsError:
                self._restore(original)
                self._state = ClaimState.CLAIMED
                raise AlreadyClaimedError() from None
            except Exception as exc:
                self._restore(original)
                _log.error("claim as %r failed: %s", name, exc)
                raise InternalError.wrap(exc) from exc
            self._state = ClaimState.CLAIMED
        finally:
            self._mu.release()

        resolve_once(self._claimed, name)
        _log.info("lock successfully claimed with name %r", name)
        return key

    def _make_key(self, name: str, remote_key: bytes) -> Credential:
        lock_identity = self._principal.bless_self(name)
        self._principal.store.set_default(lock_identity)
        add_to_roots(self._principal, lock_identity)
        # the key is usable only when talking to this lock
        restrictions: Sequence[PeerPattern] = (PeerPattern(name),)
        return self._principal.bless(remote_key, lock_identity, KEY_EXTENSION, restrictions)

    def _restore(self, original: Credential | None) -> None:
        try:
            self._principal.store.set_default(original)
        except Exception as exc:
            raise InternalError.wrap(exc) from exc
