"""Sending keys to other users and receiving keys from them.

The sender never ships a ready-made key. It calls the recipient's ``recvkey``
object with a :class:`Granter`, which mints the key only after checking that
the remote end really is the intended user. The recipient confirms before
the key is saved; a declined key fails the sender's call with
:class:`KeyRejectedError` and nothing is stored.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from datetime import datetime, timedelta, timezone
from typing import Callable

import typer

from physlock.services.errors import (
    IdentityMismatchError,
    InternalError,
    KeyRejectedError,
    LockError,
    NoValidKeyError,
)
from physlock.services.naming import recvkey_object_name, user_id
from physlock.services.rpc import AllowEveryone, CallSecurity, Context, Runtime, ServerCall, resolve_once
from physlock.services.security import Credential, ExpiresAt, PeerPattern, Principal, Restriction

from .store import CredentialStore

__all__ = ["Granter", "RecvKeyService", "ConfirmKey", "prompt_confirm", "send_key", "receive_key"]

_log = logging.getLogger("physlock.keys.grant")

# (key, lock name, sender user id) -> save the key?
ConfirmKey = Callable[[Credential, str, str], bool]


def prompt_confirm(key: Credential, lock_name: str, sender: str) -> bool:
    """Show the offered key and ask the holder to type YES."""

    typer.echo(f"Received key {key} for lock {lock_name} from user {sender}")
    try:
        answer = typer.prompt("Do you want to save this key? (YES to confirm)", default="", show_default=False)
    except typer.Abort:
        return False
    return answer.strip().upper() == "YES"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Granter:
    """Mints a key for the remote end of a call, if it is ``user``."""

    def __init__(
        self,
        lock_name: str,
        key: Credential,
        category: str,
        user: str,
        expiry: timedelta | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.lock_name = lock_name
        self.key = key
        self.category = category
        self.user = user
        self.expiry = expiry
        self._clock = clock

    def grant(self, security: CallSecurity) -> Credential:
        presented = list(security.remote_names)
        if not any(user_id(name) == self.user for name in presented):
            _log.warning("refusing to grant key for %s: remote end is %s, not %s", self.lock_name, presented, self.user)
            raise IdentityMismatchError(presented, self.user)

        restrictions: list[Restriction] = [PeerPattern(self.lock_name)]
        if self.expiry is not None and self.expiry > timedelta(0):
            restrictions.append(ExpiresAt(self._clock() + self.expiry))
        try:
            return security.local_principal.bless(security.remote_public_key, self.key, self.category, restrictions)
        except ValueError as exc:
            raise InternalError.wrap(exc) from exc


def send_key(
    runtime: Runtime,
    principal: Principal,
    lock_name: str,
    user: str,
    category: str,
    expiry: timedelta | None = None,
) -> None:
    key = CredentialStore(principal).key_for_lock(lock_name)
    _log.info("sending key %s (extended with %s) to user %s", key, category, user)
    granter = Granter(lock_name, key, category, user, expiry)
    runtime.call(principal, recvkey_object_name(user), "grant", [lock_name], granter=granter)


class RecvKeyService:
    """Accepts exactly one confirmed key, then resolves ``done``."""

    rpc_methods = ("grant",)

    def __init__(self, store: CredentialStore, confirm: ConfirmKey, done: Future) -> None:
        self._store = store
        self._confirm = confirm
        self._done = done
        self._mu = threading.Lock()

    def grant(self, call: ServerCall, lock_name: str) -> None:
        key = call.granted
        sender = user_id(*call.security.remote_names)
        if key is None:
            raise NoValidKeyError(lock_name, "no key was granted with the call")
        with self._mu:
            if self._done.done():
                raise KeyRejectedError(str(key), lock_name)
            _log.info("received key %s for lock %s from user %s", key, lock_name, sender)
            if not self._confirm(key, lock_name, sender):
                _log.info("key %s for lock %s declined", key, lock_name)
                raise KeyRejectedError(str(key), lock_name)
            if call.ctx.cancelled():
                _log.warning("sender stopped waiting, not saving key %s for lock %s", key, lock_name)
                raise KeyRejectedError(str(key), lock_name)
            try:
                self._store.save(key, lock_name)
            except LockError:
                raise
            except Exception as exc:
                raise InternalError.wrap(exc) from exc
            resolve_once(self._done, lock_name)
        _log.info("key successfully saved for lock %s", lock_name)


def receive_key(
    runtime: Runtime,
    principal: Principal,
    confirm: ConfirmKey = prompt_confirm,
    ctx: Context | None = None,
    *,
    timeout: float | None = None,
) -> str | None:
    """Serve ``recvkey`` until one key is confirmed and saved.

    Returns the lock name of the saved key, or None when ``ctx`` is cancelled
    or ``timeout`` passes first. The server is always stopped before returning.
    Without ``confirm`` every offered key is shown on the terminal and saved
    only after the holder types YES.
    """

    ctx = (ctx or Context()).with_cancel(timeout=timeout)
    done: Future = Future()
    service = RecvKeyService(CredentialStore(principal), confirm, done)
    name = recvkey_object_name(user_id(*principal.default_names()))
    server = runtime.serve(name, service, AllowEveryone(), principal)
    _log.info("waiting for keys at %s", name)
    try:
        if not ctx.wait_for(done):
            return None
        return done.result()
    finally:
        ctx.cancel()
        server.stop()
