"""Keys to locks held by a principal, one per lock name."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator

from physlock.config.const import CHAIN_SEPARATOR, KEY_EXTENSION
from physlock.services.errors import InvalidLockNameError, NoValidKeyError
from physlock.services.naming import is_valid_lock_name
from physlock.services.security import (
    CallFacts,
    Credential,
    Principal,
    add_to_roots,
    chain_expiry,
    chain_name,
    join_name,
    matched_by,
)

__all__ = ["CredentialStore", "KeyEntry", "KeyListing", "describe_expiry"]

_log = logging.getLogger("physlock.keys.store")

NEVER = "NEVER"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _key_pattern(lock_name: str) -> str:
    return join_name(lock_name, KEY_EXTENSION)


def describe_expiry(expires: datetime | None, now: datetime) -> str:
    if expires is None:
        return NEVER
    remaining = expires - now
    return f"in {remaining - timedelta(microseconds=remaining.microseconds)}"


@dataclass(frozen=True, slots=True)
class KeyEntry:
    lock_name: str
    credential: Credential
    expires: str


class KeyListing:
    """Re-iterable view over the usable keys; each iteration reads the store afresh."""

    def __init__(self, store: "CredentialStore") -> None:
        self._store = store

    def __iter__(self) -> Iterator[KeyEntry]:
        return self._store._iter_keys()


class CredentialStore:
    def __init__(self, principal: Principal, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self.principal = principal
        self._clock = clock

    def valid_for(self, credential: Credential, lock_name: str) -> bool:
        """Whether ``credential`` names, as this principal sees them, a key to ``lock_name``."""

        return bool(self._key_chains(credential, lock_name))

    def _key_chains(self, credential: Credential, lock_name: str) -> list:
        """Verified chains with a recognized root that name a key to ``lock_name``."""

        pattern = _key_pattern(lock_name)
        recognized = self.principal.roots.recognized
        return [
            chain
            for chain in credential.verified_chains()
            if matched_by(pattern, chain_name(chain)) and recognized(chain[0].public_key, chain_name(chain))
        ]

    def save(self, credential: Credential, lock_name: str) -> None:
        if not is_valid_lock_name(lock_name):
            raise InvalidLockNameError(lock_name, CHAIN_SEPARATOR)
        facts = CallFacts(peer_names=(lock_name,), now=self._clock())
        # the issuer is not a trusted root yet, so check the signed chains directly
        pattern = _key_pattern(lock_name)
        usable = tuple(c for c in credential.valid_chains(facts) if matched_by(pattern, chain_name(c)))
        if not usable:
            raise NoValidKeyError(lock_name, f"key {credential} is not valid for lock {lock_name}")
        try:
            # only the roots of the chains that make this a key are trusted
            add_to_roots(self.principal, Credential(public_key=credential.public_key, chains=usable))
            self.principal.store.set(credential, lock_name)
        except ValueError as exc:
            raise NoValidKeyError(lock_name, str(exc)) from exc
        _log.info("saved key %s for lock %s", credential, lock_name)

    def key_for_lock(self, lock_name: str) -> Credential:
        """Union of every stored key that is valid for ``lock_name``.

        Only keys meant for this lock are considered, not every credential
        whose peer pattern happens to match the name.
        """

        found: Credential | None = None
        for cred in self.principal.store.peer_credentials().values():
            if not self.valid_for(cred, lock_name):
                continue
            if found is None:
                found = cred
                continue
            try:
                found = Credential.union(found, cred)
            except ValueError as exc:
                _log.error("union of %s and %s failed: %s, dropping latter key", found, cred, exc)
        if found is None:
            raise NoValidKeyError(lock_name)
        return found

    def list(self) -> KeyListing:
        return KeyListing(self)

    def _iter_keys(self) -> Iterator[KeyEntry]:
        for lock_name, cred in self.principal.store.peer_credentials().items():
            if not is_valid_lock_name(lock_name):
                continue
            now = self._clock()
            stamps = [chain_expiry(chain) for chain in self._key_chains(cred, lock_name)]
            live = [stamp for stamp in stamps if stamp is None or stamp > now]
            if not live:
                # expired keys stay in the store, they are only hidden
                continue
            expires = None if None in live else max(live)
            yield KeyEntry(lock_name=lock_name, credential=cred, expires=describe_expiry(expires, now))
