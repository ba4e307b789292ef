"""Timer signals for docd.

A timer is a signal that the control loop delivers to its owning process once
its deadline has passed. Deadlines are absolute times on the event loop's
monotonic clock, in seconds.

The application correlator (appcorr) tells one arming of a timer apart from
the next, so a handler can recognise an expiry that was already queued when
the timer was re-armed or stopped.
"""

from __future__ import annotations

from typing import Any

from docd.signal import DocdSignal


class DocdTimer(DocdSignal):
    """Timer signal with an absolute deadline.

    Attributes:
        _appcorr: Application correlator of the current arming.
        _deadline: Absolute loop time of expiry, None when not started.
    """

    _appcorr: int
    _deadline: float | None

    def __init__(self, _data: Any | None = None) -> None:
        super().__init__(_data)
        self._appcorr = 0
        self._deadline = None

    def __str__(self) -> str:
        base = super().__str__()
        return f"[{base} appcorr: {self._appcorr}]"

    def dumpdata(self) -> str:
        return f"appcorr: {self._appcorr} deadline: {self._deadline}"

    def appcorr(self) -> int:
        return self._appcorr

    def set_appcorr(self, _appcorr: int) -> None:
        self._appcorr = _appcorr

    def deadline(self) -> float | None:
        return self._deadline

    def start(self, deadline: float) -> None:
        """Set the absolute expiry time.

        Args:
            deadline: Loop time, in seconds, at which the timer expires.
        """
        self._deadline = deadline

    def expired(self, now: float) -> bool:
        """Check whether the deadline has passed at loop time ``now``."""
        return self._deadline is not None and now >= self._deadline
