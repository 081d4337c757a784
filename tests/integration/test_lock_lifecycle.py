from __future__ import annotations

from pathlib import Path

import pytest

from physlock.services import client
from physlock.services.errors import NoAccessError, NoServersError
from physlock.services.lock import LockDaemon, LockStatus, SimulatedHardware, is_lock_claimed
from physlock.services.naming import lock_object_name
from physlock.services.security import Principal


def _daemon(runtime, config_dir: Path, unclaimed_name: str, principal: Principal | None = None):
    config_dir.mkdir(parents=True, exist_ok=True)
    principal = principal or Principal.create("physlock")
    hardware = SimulatedHardware(failure_rate=0.0)
    daemon = LockDaemon(runtime, principal, config_dir, hardware, unclaimed_name=unclaimed_name)
    daemon.start()
    return daemon, hardware


def test_front_and_back_door_are_claimed_and_operated(runtime, make_user, tmp_path):
    front, front_hw = _daemon(runtime, tmp_path / "front", "unclaimed-lock-1")
    back, back_hw = _daemon(runtime, tmp_path / "back", "unclaimed-lock-2")
    alice = make_user("alice")
    try:
        assert sorted(e.name for e in client.scan(runtime.namespace)) == ["unclaimed-lock-1", "unclaimed-lock-2"]

        client.claim_lock(runtime, alice, "unclaimed-lock-1", "front_door")
        client.claim_lock(runtime, alice, "unclaimed-lock-2", "back_door")
        assert front.wait_until_serving_lock(timeout=5)
        assert back.wait_until_serving_lock(timeout=5)

        entries = {e.name: e for e in client.scan(runtime.namespace)}
        assert set(entries) == {"front_door", "back_door"}
        assert str(entries["front_door"]) == "front_door [owned by ['front_door']]"

        client.lock(runtime, alice, "front_door")
        assert client.status(runtime, alice, "front_door") is LockStatus.LOCKED
        assert front_hw.status() is LockStatus.LOCKED
        assert back_hw.status() is LockStatus.UNLOCKED

        client.lock(runtime, alice, "back_door")
        client.unlock(runtime, alice, "front_door")
        assert client.status(runtime, alice, "front_door") is LockStatus.UNLOCKED
        assert client.status(runtime, alice, "back_door") is LockStatus.LOCKED
        assert is_lock_claimed(tmp_path / "front") and is_lock_claimed(tmp_path / "back")
    finally:
        front.stop()
        back.stop()


def test_unclaimed_server_is_gone_after_claim(runtime, make_user, tmp_path):
    daemon, _ = _daemon(runtime, tmp_path / "lock", "unclaimed-lock-7")
    try:
        client.claim_lock(runtime, make_user("alice"), "unclaimed-lock-7", "front_door")
        assert daemon.wait_until_serving_lock(timeout=5)
        with pytest.raises(NoServersError):
            runtime.namespace.resolve(lock_object_name("unclaimed-lock-7"))
        assert daemon.server.name == lock_object_name("front_door")
    finally:
        daemon.stop()


def test_user_without_key_is_refused(runtime, make_user, tmp_path):
    daemon, hardware = _daemon(runtime, tmp_path / "lock", "unclaimed-lock-3")
    try:
        client.claim_lock(runtime, make_user("alice"), "unclaimed-lock-3", "front_door")
        assert daemon.wait_until_serving_lock(timeout=5)
        with pytest.raises(NoAccessError):
            client.lock(runtime, make_user("mallory"), "front_door")
        assert hardware.status() is LockStatus.UNLOCKED
    finally:
        daemon.stop()


def test_claimed_lock_serves_again_after_restart(runtime, make_user, tmp_path):
    config_dir = tmp_path / "lock"
    principal_dir = tmp_path / "principal"
    alice = make_user("alice")
    daemon, _ = _daemon(runtime, config_dir, "unclaimed-lock-9", Principal.create("physlock", directory=principal_dir))
    client.claim_lock(runtime, alice, "unclaimed-lock-9", "front_door")
    assert daemon.wait_until_serving_lock(timeout=5)
    daemon.stop()
    with pytest.raises(NoServersError):
        runtime.namespace.resolve(lock_object_name("front_door"))

    restarted, hardware = _daemon(runtime, config_dir, "unclaimed-lock-10", Principal.load(principal_dir))
    try:
        assert restarted.wait_until_serving_lock(timeout=0)
        assert [e.name for e in client.scan(runtime.namespace)] == ["front_door"]
        client.lock(runtime, alice, "front_door")
        assert hardware.status() is LockStatus.LOCKED
    finally:
        restarted.stop()


def test_stop_before_claim_unmounts_unclaimed_server(runtime, tmp_path):
    daemon, _ = _daemon(runtime, tmp_path / "lock", "unclaimed-lock-5")
    daemon.stop()
    assert client.scan(runtime.namespace) == []
    assert not daemon.wait_until_serving_lock(timeout=0.1)
    assert daemon.server is None
