"""In-process RPC runtime.

Servers are mounted in a :class:`Namespace` and run every call on their own
thread pool. A call authenticates both ends with their credentials: the
client presents whatever its blessing store holds for the server's names, the
server validates it against its roots with its own names as the peer and then
applies its authorizer. An optional granter lets the client mint a credential
for the server once it knows who it is talking to.
"""
from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

from physlock.config.const import CALL_TIMEOUT_SECONDS
from physlock.services.errors import InternalError, LockError, NoAccessError, NoServersError
from physlock.services.security import Credential, Principal, displayed_names, matched_by, validated_names

from .context import Context
from .namespace import Namespace

__all__ = [
    "Authorizer",
    "AllowEveryone",
    "DefaultAuthorizer",
    "CallSecurity",
    "Granter",
    "ServerCall",
    "Server",
    "Runtime",
]

_log = logging.getLogger("physlock.rpc.runtime")
_server_ids = itertools.count(1)


@dataclass(frozen=True, slots=True)
class CallSecurity:
    """Security state of one end of a call."""

    local_principal: Principal
    local_names: tuple[str, ...]
    remote_credential: Credential | None
    remote_names: tuple[str, ...]
    method: str
    name: str

    @property
    def remote_public_key(self) -> bytes:
        if self.remote_credential is None:
            raise NoAccessError("remote end presented no credential")
        return self.remote_credential.public_key


@dataclass(frozen=True, slots=True)
class ServerCall:
    """What a handler sees of one call. ``ctx`` is cancelled once the caller
    stops waiting for the result."""

    security: CallSecurity
    granted: Credential | None = None
    ctx: Context = field(default_factory=Context)


class Authorizer(Protocol):
    def authorize(self, security: CallSecurity) -> None: ...


class AllowEveryone:
    def authorize(self, security: CallSecurity) -> None:
        return None


class DefaultAuthorizer:
    """Allow a remote end whose names extend, or are extended by, a local name."""

    def authorize(self, security: CallSecurity) -> None:
        for local in security.local_names:
            for remote in security.remote_names:
                if matched_by(local, remote) or matched_by(remote, local):
                    return
        raise NoAccessError(
            f"{security.method} on {security.name!r}: remote identities {list(security.remote_names)} "
            f"are not authorized by {list(security.local_names)}"
        )


class Granter(Protocol):
    def grant(self, security: CallSecurity) -> Credential: ...


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Server:
    """A service object mounted under one name with its own handler pool."""

    def __init__(
        self,
        namespace: Namespace,
        name: str,
        service: Any,
        authorizer: Authorizer,
        principal: Principal,
        *,
        max_workers: int = 8,
    ) -> None:
        self.name = name
        self.service = service
        self.authorizer = authorizer
        self.principal = principal
        self.endpoint = f"@local@{next(_server_ids)}"
        self._namespace = namespace
        self._mu = threading.Lock()
        self._stopped = False
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"rpc-{name}")
        methods = getattr(service, "rpc_methods", None)
        if not methods:
            raise ValueError(f"{type(service).__name__} does not declare rpc_methods")
        self._methods = frozenset(methods)
        namespace.mount(name, self)

    def blessing_names(self) -> list[str]:
        default = self.principal.store.default()
        return default.names if default is not None else []

    def stop(self) -> None:
        """Unmount, refuse new calls and wait for in-flight calls to finish."""

        with self._mu:
            if self._stopped:
                return
            self._stopped = True
            self._namespace.unmount(self.name, self)
        self._executor.shutdown(wait=True)
        _log.info("server %s stopped", self.name)

    @property
    def stopped(self) -> bool:
        return self._stopped

    def dispatch(self, call: ServerCall, method: str, args: Sequence[Any], timeout: float) -> Any:
        if method not in self._methods:
            raise NoAccessError(f"{self.name!r} has no method {method!r}")
        self.authorizer.authorize(call.security)
        handler = getattr(self.service, method)
        with self._mu:
            if self._stopped:
                raise NoServersError(self.name)
            future = self._executor.submit(handler, call, *args)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout as exc:
            call.ctx.cancel()
            raise InternalError(f"{method} on {self.name!r} timed out after {timeout}s") from exc


class Runtime:
    """Entry point for serving objects and calling them."""

    def __init__(self, namespace: Namespace | None = None) -> None:
        self.namespace = namespace or Namespace()

    def serve(self, name: str, service: Any, authorizer: Authorizer, principal: Principal) -> Server:
        server = Server(self.namespace, name, service, authorizer, principal)
        _log.info("serving %s as %s", name, server.blessing_names())
        return server

    def call(
        self,
        principal: Principal,
        name: str,
        method: str,
        args: Sequence[Any] = (),
        *,
        granter: Granter | None = None,
        server_authorizer: Authorizer | None = None,
        timeout: float = CALL_TIMEOUT_SECONDS,
    ) -> Any:
        server = self.namespace.resolve(name)
        now = _utcnow()
        server_cred = server.principal.store.default()
        server_names = tuple(
            validated_names(principal, server_cred, peer_names=principal.default_names(), now=now)
        )
        presented = principal.store.for_peer(server_names) or principal.store.default()
        client_security = CallSecurity(
            local_principal=principal,
            local_names=tuple(displayed_names(principal, presented)) if presented is not None else (),
            remote_credential=server_cred,
            remote_names=server_names,
            method=method,
            name=name,
        )
        if server_authorizer is not None:
            server_authorizer.authorize(client_security)

        granted: Credential | None = None
        if granter is not None:
            granted = granter.grant(client_security)

        server_security = CallSecurity(
            local_principal=server.principal,
            local_names=tuple(server.principal.default_names()),
            remote_credential=presented,
            remote_names=tuple(
                validated_names(server.principal, presented, peer_names=server.principal.default_names(), now=now)
            ),
            method=method,
            name=name,
        )
        try:
            return server.dispatch(ServerCall(security=server_security, granted=granted), method, args, timeout)
        except LockError:
            raise
        except Exception as exc:
            _log.exception("%s on %s failed", method, name)
            raise InternalError.wrap(exc) from exc
