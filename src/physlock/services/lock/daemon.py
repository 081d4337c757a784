"""Server lifecycle of a lock: unclaimed service first, lock service once claimed."""
from __future__ import annotations

import logging
import random
import threading
from concurrent.futures import Future
from pathlib import Path

from physlock.config.const import UNCLAIMED_NH_PREFIX
from physlock.services.naming import lock_object_name
from physlock.services.rpc import AllowEveryone, Context, DefaultAuthorizer, Runtime, Server, resolve_once
from physlock.services.security import Principal

from .claim import UnclaimedLockService, is_lock_claimed
from .hardware import HardwareController
from .service import LockService

__all__ = ["LockDaemon", "unclaimed_lock_name"]

_log = logging.getLogger("physlock.lock.daemon")


def unclaimed_lock_name() -> str:
    return f"{UNCLAIMED_NH_PREFIX}{random.randrange(1_000_000)}"


class LockDaemon:
    """Runs the lock's servers and hands over from unclaimed to claimed once.

    The unclaimed server is stopped, and its in-flight calls drained, before
    the lock server is started, so the two never serve at the same time.
    """

    def __init__(
        self,
        runtime: Runtime,
        principal: Principal,
        config_dir: Path,
        hardware: HardwareController,
        *,
        unclaimed_name: str | None = None,
    ) -> None:
        self.runtime = runtime
        self.principal = principal
        self.config_dir = Path(config_dir)
        self.hardware = hardware
        self.unclaimed_name = unclaimed_name or unclaimed_lock_name()
        self._ctx = Context()
        self._mu = threading.Lock()
        self._server: Server | None = None
        self._waiter: threading.Thread | None = None
        self._lock_serving: Future = Future()

    @property
    def server(self) -> Server | None:
        with self._mu:
            return self._server

    def start(self) -> None:
        if is_lock_claimed(self.config_dir):
            self._start_lock_server()
            return

        claimed: Future = Future()
        service = UnclaimedLockService(self.principal, self.config_dir, claimed)
        server = self.runtime.serve(lock_object_name(self.unclaimed_name), service, AllowEveryone(), self.principal)
        with self._mu:
            self._server = server
        _log.info("started unclaimed lock server at %s", server.endpoint)
        self._waiter = threading.Thread(
            target=self._wait_to_be_claimed,
            args=(claimed, server),
            name="lockd-claim-waiter",
            daemon=True,
        )
        self._waiter.start()

    def wait_until_serving_lock(self, timeout: float | None = None) -> bool:
        """Block until the claimed lock server is up; False on timeout or stop."""

        return self._ctx.wait_for(self._lock_serving, timeout=timeout)

    def stop(self) -> None:
        self._ctx.cancel()
        if self._waiter is not None:
            self._waiter.join()
        with self._mu:
            server, self._server = self._server, None
        if server is not None:
            _log.info("stopping server %s", server.name)
            server.stop()

    def _start_lock_server(self) -> None:
        default = self.principal.store.default()
        name = lock_object_name(str(default))
        server = self.runtime.serve(name, LockService(self.hardware), DefaultAuthorizer(), self.principal)
        with self._mu:
            self._server = server
        resolve_once(self._lock_serving, name)
        _log.info("started lock server at %s as %s", server.endpoint, name)

    def _wait_to_be_claimed(self, claimed: Future, unclaimed: Server) -> None:
        was_claimed = self._ctx.wait_for(claimed)
        _log.info("stopping unclaimed lock server")
        unclaimed.stop()
        with self._mu:
            if self._server is unclaimed:
                self._server = None
        if not was_claimed:
            return
        if self._ctx.cancelled():
            return
        try:
            self._start_lock_server()
        except Exception:
            _log.exception("failed to start lock server after it was claimed")
