from __future__ import annotations

import random
import threading
import time

import pytest

from physlock.services.errors import HardwareFaultError, HardwareTimeoutError
from physlock.services.lock import (
    ExternalToggle,
    HardwareController,
    LockStatus,
    RealHardware,
    SimulatedHardware,
    make_hardware,
)
from physlock.services.settings import LockdSettings


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeRelay:
    def __init__(self, monitor: "FakeMonitor") -> None:
        self.monitor = monitor
        self.active = False
        self.pulses = 0

    def on(self) -> None:
        self.active = True
        self.pulses += 1
        self.monitor.is_active = not self.monitor.is_active

    def off(self) -> None:
        self.active = False


class FakeMonitor:
    def __init__(self, is_active: bool) -> None:
        self.is_active = is_active


def test_simulated_hardware_starts_unlocked():
    hw = SimulatedHardware(failure_rate=0.0)
    assert hw.status() is LockStatus.UNLOCKED
    assert isinstance(hw, ExternalToggle)


def test_simulated_thousand_trials_either_reach_target_or_fail_fast():
    hw = SimulatedHardware(failure_rate=0.1, rng=random.Random(1234))
    failures = 0
    for trial in range(1000):
        target = LockStatus.LOCKED if trial % 2 == 0 else LockStatus.UNLOCKED
        before = hw.status()
        try:
            hw.set_status(target)
        except HardwareFaultError:
            failures += 1
            assert hw.status() is before
        else:
            assert hw.status() is target
    assert 50 <= failures <= 150


def test_simulated_without_failures_always_succeeds():
    hw = SimulatedHardware(failure_rate=0.0)
    for target in (LockStatus.LOCKED, LockStatus.LOCKED, LockStatus.UNLOCKED):
        hw.set_status(target)
        assert hw.status() is target


def test_set_status_polls_until_sensor_reports_target():
    clock = FakeClock()
    hw = SimulatedHardware(failure_rate=0.0, actuation_delay=0.9, clock=clock, sleep=clock.sleep)

    hw.set_status(LockStatus.LOCKED)

    assert hw.status() is LockStatus.LOCKED
    assert clock.sleeps and all(s == pytest.approx(0.2) for s in clock.sleeps)
    assert clock.now == pytest.approx(1.0)


def test_set_status_times_out_when_sensor_never_changes():
    clock = FakeClock()
    hw = SimulatedHardware(failure_rate=0.0, actuation_delay=60.0, clock=clock, sleep=clock.sleep)

    with pytest.raises(HardwareTimeoutError) as excinfo:
        hw.set_status(LockStatus.LOCKED)

    assert excinfo.value.elapsed > 5.0
    assert clock.now < 6.0
    # the abandoned actuation never lands
    clock.now += 100
    assert hw.status() is LockStatus.UNLOCKED


def test_external_toggle_flips_state():
    hw = SimulatedHardware(failure_rate=0.0)
    assert hw.external_toggle() is LockStatus.LOCKED
    assert hw.status() is LockStatus.LOCKED
    assert hw.external_toggle() is LockStatus.UNLOCKED


def test_failure_rate_is_validated():
    with pytest.raises(ValueError):
        SimulatedHardware(failure_rate=1.5)


def test_real_hardware_pulses_relay_and_reads_monitor():
    monitor = FakeMonitor(is_active=True)
    relay = FakeRelay(monitor)
    hw = RealHardware(relay, monitor)

    assert hw.status() is LockStatus.UNLOCKED
    hw.set_status(LockStatus.LOCKED)
    assert hw.status() is LockStatus.LOCKED
    assert relay.pulses == 1
    assert relay.active is False


def test_real_hardware_releases_relay_after_timeout():
    clock = FakeClock()
    monitor = FakeMonitor(is_active=True)

    class StuckRelay(FakeRelay):
        def on(self) -> None:
            self.active = True

    relay = StuckRelay(monitor)
    hw = RealHardware(relay, monitor, clock=clock, sleep=clock.sleep)

    with pytest.raises(HardwareTimeoutError):
        hw.set_status(LockStatus.LOCKED)
    assert relay.active is False
    assert hw.status() is LockStatus.UNLOCKED


def test_actuations_are_serialized():
    class SlowHardware(HardwareController):
        def __init__(self) -> None:
            super().__init__(poll_interval=0.001, timeout=1.0)
            self._state = LockStatus.UNLOCKED
            self._mu = threading.Lock()
            self.active = 0
            self.max_active = 0

        def status(self) -> LockStatus:
            return self._state

        def _begin(self, target: LockStatus) -> None:
            with self._mu:
                self.active += 1
                self.max_active = max(self.max_active, self.active)
            time.sleep(0.01)
            self._state = target

        def _end(self) -> None:
            with self._mu:
                self.active -= 1

    hw = SlowHardware()
    targets = [LockStatus.LOCKED, LockStatus.UNLOCKED] * 4
    threads = [threading.Thread(target=hw.set_status, args=(t,)) for t in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert hw.max_active == 1


def test_make_hardware_selects_variant():
    hw = make_hardware(LockdSettings(hardware="simulated", failure_rate=0.0, poll_interval=0.05))
    assert isinstance(hw, SimulatedHardware)
    assert hw.poll_interval == 0.05
    with pytest.raises(ValueError):
        make_hardware(LockdSettings(hardware="abacus"))
