"""Lock device: hardware control, claiming and the served lock object."""
from .claim import UnclaimedLockService, claim_record_path, is_lock_claimed, write_claim_record
from .daemon import LockDaemon, unclaimed_lock_name
from .hardware import (
    ExternalToggle,
    HardwareController,
    HardwareUnavailableError,
    RealHardware,
    SimulatedHardware,
    make_hardware,
)
from .service import LockService
from .status import ClaimState, LockStatus

__all__ = [
    "UnclaimedLockService",
    "claim_record_path",
    "is_lock_claimed",
    "write_claim_record",
    "LockDaemon",
    "unclaimed_lock_name",
    "ExternalToggle",
    "HardwareController",
    "HardwareUnavailableError",
    "RealHardware",
    "SimulatedHardware",
    "make_hardware",
    "LockService",
    "ClaimState",
    "LockStatus",
]
