"""Cancellable scopes shared by callers and background tasks."""
from __future__ import annotations

import threading
from concurrent.futures import FIRST_COMPLETED, Future, InvalidStateError, wait

__all__ = ["Context", "resolve_once"]


def resolve_once(future: Future, value: object = None) -> bool:
    """Resolve ``future`` with ``value`` unless it is already done."""

    try:
        future.set_result(value)
    except InvalidStateError:
        return False
    return True


class Context:
    """A scope that is cancelled explicitly, by its parent, or by a deadline."""

    def __init__(self, parent: "Context | None" = None, *, timeout: float | None = None) -> None:
        self._done: Future = Future()
        self._timer: threading.Timer | None = None
        if parent is not None:
            parent._done.add_done_callback(lambda _f: self.cancel())
        if timeout is not None:
            self._timer = threading.Timer(timeout, self.cancel)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        if resolve_once(self._done) and self._timer is not None:
            self._timer.cancel()

    def cancelled(self) -> bool:
        return self._done.done()

    def with_cancel(self, *, timeout: float | None = None) -> "Context":
        return Context(self, timeout=timeout)

    def wait_for(self, future: Future, timeout: float | None = None) -> bool:
        """Block until ``future`` resolves or this scope ends; True if resolved."""

        wait([future, self._done], timeout=timeout, return_when=FIRST_COMPLETED)
        return future.done()
