"""The RPC surface of a claimed lock."""
from __future__ import annotations

import logging

from physlock.services.rpc import ServerCall

from .hardware import HardwareController
from .status import LockStatus

__all__ = ["LockService"]

_log = logging.getLogger("physlock.lock.service")


class LockService:
    """Lock, unlock and query through the injected hardware controller.

    Callers are authorized by the server this service is mounted on.
    """

    rpc_methods = ("lock", "unlock", "status")

    def __init__(self, hardware: HardwareController) -> None:
        self._hardware = hardware

    def lock(self, call: ServerCall) -> None:
        _log.info("lock called by %s", list(call.security.remote_names))
        self._hardware.set_status(LockStatus.LOCKED)

    def unlock(self, call: ServerCall) -> None:
        _log.info("unlock called by %s", list(call.security.remote_names))
        self._hardware.set_status(LockStatus.UNLOCKED)

    def status(self, call: ServerCall) -> LockStatus:
        _log.info("status called by %s", list(call.security.remote_names))
        return self._hardware.status()
