"""Hardware controllers that move the lock and read its sensor.

Every controller serializes actuation: at most one ``set_status`` runs at a
time and it returns only once the sensor reports the requested state, or
fails with :class:`HardwareTimeoutError` once the bound elapses.
"""
from __future__ import annotations

import logging
import random
import threading
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, Protocol, runtime_checkable

from physlock.config.const import (
    MONITOR_PIN,
    POLL_INTERVAL_SECONDS,
    RELAY_PIN,
    SIMULATED_FAILURE_RATE,
    TOGGLE_TIMEOUT_SECONDS,
)
from physlock.services.errors import HardwareFaultError, HardwareTimeoutError

from .status import LockStatus

if TYPE_CHECKING:  # pragma: no cover
    from physlock.services.settings import LockdSettings

__all__ = [
    "HardwareController",
    "HardwareUnavailableError",
    "ExternalToggle",
    "RealHardware",
    "SimulatedHardware",
    "make_hardware",
]

_log = logging.getLogger("physlock.lock.hardware")


class HardwareUnavailableError(RuntimeError):
    """Raised when the GPIO backend for real hardware cannot be loaded."""


class HardwareController(ABC):
    """Drives the actuator and reads the sensor of one lock."""

    def __init__(
        self,
        *,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        timeout: float = TOGGLE_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._clock = clock
        self._sleep = sleep
        self._actuation = threading.Lock()

    @abstractmethod
    def status(self) -> LockStatus:
        """Current sensor reading; never waits on an actuation in flight."""

    @abstractmethod
    def _begin(self, target: LockStatus) -> None:
        """Command the actuator towards ``target``."""

    def _end(self) -> None:
        """Release the actuator after an attempt, successful or not."""

    def set_status(self, target: LockStatus) -> None:
        target = LockStatus(target)
        with self._actuation:
            self._begin(target)
            try:
                start = self._clock()
                while self.status() != target:
                    elapsed = self._clock() - start
                    if elapsed > self.timeout:
                        _log.error("lock did not reach %s after %.1fs", target, elapsed)
                        raise HardwareTimeoutError(elapsed)
                    self._sleep(self.poll_interval)
            finally:
                self._end()
        _log.info("lock is now %s", target)


@runtime_checkable
class ExternalToggle(Protocol):
    """Out-of-band state change, as done by someone turning the key by hand."""

    def external_toggle(self) -> LockStatus: ...


class _Pin(Protocol):
    def on(self) -> None: ...

    def off(self) -> None: ...


class RealHardware(HardwareController):
    """Relay-driven motor with a monitor input that is high while unlocked.

    ``relay`` and ``monitor`` follow the gpiozero device interface
    (``on()``/``off()`` and ``is_active``).
    """

    def __init__(self, relay: _Pin, monitor: Any, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._relay = relay
        self._monitor = monitor
        self._relay.off()

    @classmethod
    def from_pins(cls, relay_pin: int = RELAY_PIN, monitor_pin: int = MONITOR_PIN, **kwargs: Any) -> "RealHardware":
        gpiozero = _require_gpiozero()
        relay = gpiozero.DigitalOutputDevice(relay_pin)
        try:
            monitor = gpiozero.DigitalInputDevice(monitor_pin)
        except Exception:
            relay.close()
            raise
        return cls(relay, monitor, **kwargs)

    def status(self) -> LockStatus:
        if self._monitor.is_active:
            return LockStatus.UNLOCKED
        return LockStatus.LOCKED

    def _begin(self, target: LockStatus) -> None:
        self._relay.on()

    def _end(self) -> None:
        self._relay.off()


def _require_gpiozero():
    try:
        import gpiozero  # type: ignore
    except Exception as exc:  # pragma: no cover - import failure path
        raise HardwareUnavailableError("gpiozero is unavailable; install physlock[rpi]") from exc
    return gpiozero


class SimulatedHardware(HardwareController):
    """Lock without hardware, for development and tests.

    A fraction ``failure_rate`` of actuations fails immediately with
    :class:`HardwareFaultError` and leaves the state untouched. With an
    ``actuation_delay`` the sensor reports the new state only after the delay,
    which exercises the polling loop.
    """

    def __init__(
        self,
        *,
        failure_rate: float = SIMULATED_FAILURE_RATE,
        rng: random.Random | None = None,
        actuation_delay: float = 0.0,
        initial: LockStatus = LockStatus.UNLOCKED,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be within [0, 1]")
        self.failure_rate = failure_rate
        self.actuation_delay = actuation_delay
        self._rng = rng or random.Random()
        self._state_mu = threading.Lock()
        self._status = LockStatus(initial)
        self._pending: tuple[LockStatus, float] | None = None

    def status(self) -> LockStatus:
        with self._state_mu:
            if self._pending is not None and self._clock() >= self._pending[1]:
                self._status = self._pending[0]
                self._pending = None
            return self._status

    def _begin(self, target: LockStatus) -> None:
        if self._rng.random() < self.failure_rate:
            raise HardwareFaultError("simulated error: lock failed to toggle - check the door")
        with self._state_mu:
            if self.actuation_delay <= 0:
                self._status = target
            else:
                self._pending = (target, self._clock() + self.actuation_delay)

    def _end(self) -> None:
        with self._state_mu:
            self._pending = None

    def external_toggle(self) -> LockStatus:
        with self._state_mu:
            self._pending = None
            self._status = LockStatus.UNLOCKED if self._status is LockStatus.LOCKED else LockStatus.LOCKED
            status = self._status
        _log.warning("simulated: externally initiated status change to %s", status)
        return status


def make_hardware(settings: "LockdSettings") -> HardwareController:
    timing = {"poll_interval": settings.poll_interval, "timeout": settings.toggle_timeout}
    kind = settings.hardware.strip().lower()
    if kind == "simulated":
        _log.info("using simulated hardware (failure rate %.0f%%)", settings.failure_rate * 100)
        return SimulatedHardware(failure_rate=settings.failure_rate, **timing)
    if kind == "rpi":
        return RealHardware.from_pins(settings.relay_pin, settings.monitor_pin, **timing)
    raise ValueError(f"unknown hardware kind {settings.hardware!r}: expected 'simulated' or 'rpi'")
