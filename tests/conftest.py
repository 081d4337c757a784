from __future__ import annotations

import time
from pathlib import Path
from typing import Callable

import pytest

from physlock.services.rpc import Runtime
from physlock.services.security import Principal, add_to_roots


@pytest.fixture()
def identity_provider() -> Principal:
    """Issuer of ``dev.v.io:u:<name>`` user identities shared by every user."""

    return Principal.create("dev.v.io")


@pytest.fixture()
def make_user(identity_provider: Principal) -> Callable[..., Principal]:
    users = identity_provider.bless(
        identity_provider.public_key, identity_provider.store.default(), "u", ()
    )

    def factory(name: str, directory: Path | None = None) -> Principal:
        user = Principal.create(f"{name}-device", directory=directory)
        cred = identity_provider.bless(user.public_key, users, name, ())
        user.store.set_default(cred)
        user.store.set(cred, "...")
        add_to_roots(user, cred)
        return user

    return factory


@pytest.fixture()
def runtime() -> Runtime:
    return Runtime()


@pytest.fixture()
def wait_until() -> Callable[..., bool]:
    def _wait(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()

    return _wait
