"""Client-side operations of a lock user: claim, lock, unlock, status and discovery."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

from physlock.services.keys.store import CredentialStore
from physlock.services.lock.status import LockStatus
from physlock.services.naming import lock_nh_glob_prefix, lock_object_name, user_nh_glob_prefix
from physlock.services.rpc import AllowEveryone, Namespace, Runtime
from physlock.services.security import Credential, Principal

__all__ = [
    "NeighborhoodEntry",
    "claim_lock",
    "update_status",
    "lock",
    "unlock",
    "status",
    "scan",
    "users",
]

_log = logging.getLogger("physlock.client")


@dataclass(frozen=True, slots=True)
class NeighborhoodEntry:
    name: str
    owners: tuple[str, ...] = ()

    def __str__(self) -> str:
        if self.owners:
            return f"{self.name} [owned by {list(self.owners)}]"
        return self.name


def claim_lock(runtime: Runtime, principal: Principal, unclaimed: str, name: str) -> Credential:
    """Claim the unclaimed lock ``unclaimed`` as ``name`` and keep the returned key."""

    # an unclaimed lock has no identity this principal could recognize yet
    key = runtime.call(
        principal,
        lock_object_name(unclaimed),
        "claim",
        [name],
        server_authorizer=AllowEveryone(),
    )
    CredentialStore(principal).save(key, name)
    _log.info("claimed lock %s as %s and received key %s", unclaimed, name, key)
    return key


def update_status(runtime: Runtime, principal: Principal, lock_name: str, target: LockStatus) -> None:
    method = "lock" if LockStatus(target) is LockStatus.LOCKED else "unlock"
    runtime.call(principal, lock_object_name(lock_name), method)
    _log.info("updated lock %s to status %s", lock_name, target)


def lock(runtime: Runtime, principal: Principal, lock_name: str) -> None:
    update_status(runtime, principal, lock_name, LockStatus.LOCKED)


def unlock(runtime: Runtime, principal: Principal, lock_name: str) -> None:
    update_status(runtime, principal, lock_name, LockStatus.UNLOCKED)


def status(runtime: Runtime, principal: Principal, lock_name: str) -> LockStatus:
    return LockStatus(runtime.call(principal, lock_object_name(lock_name), "status"))


def _glob(namespace: Namespace, prefix: str) -> Iterator[NeighborhoodEntry]:
    seen: set[str] = set()
    for entry in namespace.glob(prefix + "*"):
        if not entry.name.startswith(prefix) or not entry.endpoints:
            continue
        name = entry.name[len(prefix):]
        if not name or name in seen:
            continue
        seen.add(name)
        yield NeighborhoodEntry(name=name, owners=entry.blessing_names)


def scan(namespace: Namespace) -> list[NeighborhoodEntry]:
    """Locks in the neighborhood, claimed and unclaimed."""

    return list(_glob(namespace, lock_nh_glob_prefix()))


def users(namespace: Namespace) -> list[NeighborhoodEntry]:
    """Users in the neighborhood that are waiting for keys."""

    return list(_glob(namespace, user_nh_glob_prefix()))
