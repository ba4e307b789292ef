"""Idle shutdown timer for docd.

Two states: Disarmed and Armed(deadline). Arming always cancels the previous
deadline first, so the effective deadline is measured from the latest
emptying of the registry and at most one deadline is pending.

Expiry reaches the owning process as an IdleTimeout signal. Each arming
carries its own correlator; is_current() tells the handler whether the expiry
belongs to the arming still in force, so an expiry that was queued just before
a registration is ignored.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from docd.logger import DocdLogger
from docd.timer import DocdTimer

if TYPE_CHECKING:
    from docd.process import DocdProcess
    from docd.registry import DocumentRegistry

DEFAULT_IDLE_TIMEOUT = 30.0  # seconds


class IdleTimeout(DocdTimer):
    """Delivered to the owning process when the idle deadline passes."""


class IdleShutdownTimer:
    """Arm/disarm state of the daemon's idle countdown.

    Attributes:
        timeout: Seconds from arming to expiry.
        _process: Process that receives IdleTimeout.
        _timer: Timer of the current arming, None when disarmed.
        _generation: Correlator of the latest arming.
    """

    def __init__(self, process: DocdProcess, timeout: float = DEFAULT_IDLE_TIMEOUT) -> None:
        self.timeout = timeout
        self._process = process
        self._timer: IdleTimeout | None = None
        self._generation = 0

    def armed(self) -> bool:
        return self._timer is not None

    def deadline(self) -> float | None:
        return self._timer.deadline() if self._timer is not None else None

    def arm(self) -> float:
        """Start the countdown from now, cancelling any pending one.

        Returns:
            The new deadline
        """
        self.disarm(quiet=True)
        self._generation += 1
        timer = IdleTimeout.create()
        timer.set_appcorr(self._generation)
        deadline = self._process.start_timer(timer, self.timeout)
        self._timer = timer
        DocdLogger.timer("Armed", f"timeout={self.timeout}s")
        return deadline

    def disarm(self, quiet: bool = False) -> bool:
        """Cancel the countdown.

        Returns:
            True if the timer was armed
        """
        timer, self._timer = self._timer, None
        if timer is None:
            return False
        self._process.stop_timer(timer)
        if not quiet:
            DocdLogger.timer("Disarmed")
        return True

    def maybe_arm(self, registry: DocumentRegistry) -> bool:
        """Arm if the registry is empty, disarm otherwise.

        Returns:
            True if the timer is armed afterwards
        """
        if registry.is_empty():
            self.arm()
            return True
        self.disarm()
        return False

    def is_current(self, timer: DocdTimer) -> bool:
        """Whether an expiry belongs to the arming still in force."""
        return self._timer is not None and timer.appcorr() == self._generation
