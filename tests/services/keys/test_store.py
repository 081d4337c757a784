from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from physlock.services.errors import InvalidLockNameError, NoValidKeyError
from physlock.services.keys import CredentialStore, describe_expiry
from physlock.services.security import Credential, ExpiresAt, PeerPattern, Principal


T0 = datetime(2030, 5, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _lock(name: str) -> Principal:
    return Principal.create(name)


def _key(lock: Principal, holder: Principal, *restrictions):
    name = lock.default_names()[0]
    return lock.bless(holder.public_key, lock.store.default(), "key", [PeerPattern(name), *restrictions])


def test_save_then_key_for_lock():
    alice = Principal.create("alice")
    front = _lock("front_door")
    key = _key(front, alice)
    store = CredentialStore(alice)

    store.save(key, "front_door")

    assert store.key_for_lock("front_door") == key
    with pytest.raises(NoValidKeyError):
        store.key_for_lock("back_door")


def test_save_rejects_key_for_another_lock():
    alice = Principal.create("alice")
    key = _key(_lock("front_door"), alice)
    store = CredentialStore(alice)

    with pytest.raises(NoValidKeyError):
        store.save(key, "back_door")
    assert "back_door" not in alice.store.peer_credentials()


@pytest.mark.parametrize("name", ["...", "front_door:key", ""])
def test_save_rejects_reserved_or_nested_names(name):
    alice = Principal.create("alice")
    key = _key(_lock("front_door"), alice)
    with pytest.raises(InvalidLockNameError):
        CredentialStore(alice).save(key, name)


def test_save_rejects_key_bound_to_someone_else():
    alice = Principal.create("alice")
    bob = Principal.create("bob")
    key = _key(_lock("front_door"), bob)
    with pytest.raises(NoValidKeyError):
        CredentialStore(alice).save(key, "front_door")


def test_save_rejects_expired_key():
    alice = Principal.create("alice")
    key = _key(_lock("front_door"), alice, ExpiresAt(T0 - timedelta(seconds=1)))
    with pytest.raises(NoValidKeyError):
        CredentialStore(alice, clock=Clock(T0)).save(key, "front_door")


def test_save_trusts_only_roots_of_the_key_chains():
    bob = Principal.create("bob")
    front = _lock("front_door")
    forger = Principal.create("dev.v.io")
    smuggled = forger.bless(bob.public_key, forger.store.default(), "u", ())
    store = CredentialStore(bob)

    store.save(Credential.union(_key(front, bob), smuggled), "front_door")

    assert bob.roots.recognized(front.public_key, "front_door:key")
    assert not bob.roots.recognized(forger.public_key, "dev.v.io:u:alice")
    assert store.valid_for(store.key_for_lock("front_door"), "front_door")


def test_later_save_overwrites():
    alice = Principal.create("alice")
    front = _lock("front_door")
    store = CredentialStore(alice)
    store.save(_key(front, alice), "front_door")
    renewed = _key(front, alice, ExpiresAt(T0 + timedelta(days=365)))

    store.save(renewed, "front_door")

    assert [e.credential for e in store.list()] == [renewed]


def test_list_shows_valid_keys_with_expiry():
    alice = Principal.create("alice")
    clock = Clock(T0)
    store = CredentialStore(alice, clock=clock)
    store.save(_key(_lock("front_door"), alice), "front_door")
    store.save(_key(_lock("back_door"), alice, ExpiresAt(T0 + timedelta(hours=2))), "back_door")

    entries = {e.lock_name: e for e in store.list()}

    assert set(entries) == {"front_door", "back_door"}
    assert entries["front_door"].expires == "NEVER"
    assert entries["back_door"].expires == "in 2:00:00"


def test_expired_keys_are_hidden_but_kept():
    alice = Principal.create("alice")
    clock = Clock(T0)
    store = CredentialStore(alice, clock=clock)
    key = _key(_lock("back_door"), alice, ExpiresAt(T0 + timedelta(minutes=10)))
    store.save(key, "back_door")

    clock.now = T0 + timedelta(minutes=11)

    assert list(store.list()) == []
    assert alice.store.peer_credentials()["back_door"] == key


def test_listing_is_restartable_and_reads_current_store():
    alice = Principal.create("alice")
    store = CredentialStore(alice)
    listing = store.list()
    assert list(listing) == []

    store.save(_key(_lock("front_door"), alice), "front_door")

    assert [e.lock_name for e in listing] == ["front_door"]
    assert [e.lock_name for e in listing] == ["front_door"]


def test_list_skips_unrelated_peer_credentials():
    alice = Principal.create("alice")
    front = _lock("front_door")
    # stored by hand under the wrong lock name
    alice.store.set(_key(front, alice), "garage")

    assert [e.lock_name for e in CredentialStore(alice).list()] == []


def test_describe_expiry_drops_microseconds():
    assert describe_expiry(None, T0) == "NEVER"
    later = T0 + timedelta(minutes=3, seconds=4, microseconds=5000)
    assert describe_expiry(later, T0) == "in 0:03:04"


def test_union_key_is_listed_while_any_chain_is_live():
    alice = Principal.create("alice")
    clock = Clock(T0)
    store = CredentialStore(alice, clock=clock)
    front = _lock("front_door")
    short = _key(front, alice, ExpiresAt(T0 + timedelta(minutes=10)))
    long = _key(front, alice, ExpiresAt(T0 + timedelta(hours=2)))
    store.save(Credential.union(short, long), "front_door")

    clock.now = T0 + timedelta(minutes=11)
    assert [e.expires for e in store.list()] == ["in 1:49:00"]

    clock.now = T0 + timedelta(hours=3)
    assert list(store.list()) == []
