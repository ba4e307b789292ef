"""docd control loop.

This module provides the single serialized control flow of the daemon. Every
input (method calls from clients, liveness notifications, lifecycle events)
is posted to one queue as a signal, and timers are fired from the same loop,
so handlers never run concurrently with each other and the state they mutate
needs no locks.

The loop suspends only while waiting for the next signal or the earliest
timer deadline.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from .exceptions import (
    QueueError,
    SignalDeliveryError,
    TimerError,
    ValidationError,
)
from .logger import DocdLogger

if TYPE_CHECKING:
    from docd.process import DocdProcess
    from docd.signal import DocdSignal
    from docd.timer import DocdTimer


class DocdSystem:
    """Process table, timer list and signal queue of one daemon instance.

    Attributes:
        proc_map: Registry mapping process IDs to DocdProcess instances.
        timers: Active timers, in start order.
        _queue: Asyncio queue for signal delivery (created lazily). None is
            the wake-up sentinel posted by stop().
        _stop: Flag to stop the control loop.
    """

    def __init__(self) -> None:
        self.proc_map: dict[str, DocdProcess] = {}
        self.timers: list[DocdTimer] = []
        self._queue: asyncio.Queue[DocdSignal | None] | None = None
        self._stop: bool = False

    def _get_queue(self) -> asyncio.Queue[DocdSignal | None]:
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    @staticmethod
    def now() -> float:
        """Current time on the running loop's monotonic clock."""
        return asyncio.get_running_loop().time()

    def register(self, process: DocdProcess | None) -> bool:
        """Register a process.

        Returns:
            True if registered, False if the PID was already registered

        Raises:
            ValidationError: If process is None or has no PID
        """
        if process is None:
            raise ValidationError("process", "Cannot register None as a process")

        pid = process.pid()
        if not pid or not isinstance(pid, str):
            raise ValidationError("pid", f"Process has invalid PID: {pid}")

        if pid in self.proc_map:
            DocdLogger.warning(f"Process {pid} already registered")
            return False

        self.proc_map[pid] = process
        DocdLogger.event("Registered", process, pid)
        return True

    def unregister(self, process: DocdProcess | None) -> bool:
        """Remove a process and every timer addressed to it.

        Returns:
            True if the process was registered, False otherwise

        Raises:
            ValidationError: If process is None
        """
        if process is None:
            raise ValidationError("process", "Cannot unregister None as a process")

        pid = process.pid()
        found = self.proc_map.pop(pid, None) is not None
        if found:
            DocdLogger.event("Unregistered", process, pid)
        else:
            DocdLogger.warning(f"Process {pid} was not registered")

        before = len(self.timers)
        self.timers = [t for t in self.timers if t.dst() != pid]
        if len(self.timers) != before:
            DocdLogger.event("TimersCleared", process, f"{before - len(self.timers)} timers")

        return found

    def lookup_proc_map(self, dst: str | None) -> DocdProcess | None:
        """Lookup a process by PID.

        Raises:
            ValidationError: If dst is empty or not a string
        """
        if not dst or not isinstance(dst, str):
            raise ValidationError("dst", f"Invalid destination PID: {dst}")

        return self.proc_map.get(dst)

    async def enqueue(self, signal: DocdSignal) -> None:
        """Post a signal to the control loop.

        Raises:
            ValidationError: If signal is None
            QueueError: If the queue rejects the signal
        """
        if signal is None:
            raise ValidationError("signal", "Cannot enqueue None as a signal")

        try:
            await self._get_queue().put(signal)
        except Exception as e:
            raise QueueError(f"Failed to enqueue signal: {e}") from e

    async def output(self, signal: DocdSignal) -> bool:
        """Route a signal to its destination process.

        Returns:
            True if the signal was queued, False if the destination is unknown

        Raises:
            ValidationError: If signal is None or has no destination
            SignalDeliveryError: If queuing fails
        """
        if signal is None:
            raise ValidationError("signal", "Cannot output None as a signal")

        dst = signal.dst()
        if not dst:
            raise ValidationError("signal.dst", "Signal has no destination")

        if dst not in self.proc_map:
            DocdLogger.warning(f"Signal {signal.name()} to nonexistent process {dst}")
            return False

        try:
            await self.enqueue(signal)
        except QueueError as e:
            raise SignalDeliveryError(
                destination=dst,
                message=f"Failed to deliver signal to process {dst}: {e}",
                signal=type(signal).__name__,
            ) from e
        return True

    def start_timer(self, timer: DocdTimer | None) -> None:
        """Schedule a timer, replacing it if it is already scheduled.

        Raises:
            ValidationError: If timer is None
            TimerError: If the timer has no destination or no deadline
        """
        if timer is None:
            raise ValidationError("timer", "Cannot start None as a timer")

        if not timer.dst():
            raise TimerError(str(timer), "Timer has no destination PID")

        if timer.deadline() is None:
            raise TimerError(str(timer), "Timer has no deadline")

        self.stop_timer(timer)
        self.timers.append(timer)

    def stop_timer(self, timer: DocdTimer | None) -> bool:
        """Unschedule a timer.

        Returns:
            True if the timer was scheduled, False otherwise

        Raises:
            ValidationError: If timer is None
        """
        if timer is None:
            raise ValidationError("timer", "Cannot stop None as a timer")

        for i, active in enumerate(self.timers):
            if active is timer:
                del self.timers[i]
                return True
        return False

    def next_deadline(self) -> float | None:
        """Earliest deadline among scheduled timers, or None."""
        deadlines = [t.deadline() for t in self.timers]
        return min((d for d in deadlines if d is not None), default=None)

    async def get_next_signal(self, timeout: float | None = None) -> DocdSignal | None:
        """Wait for the next signal.

        Args:
            timeout: Seconds to wait at most, None to wait indefinitely

        Returns:
            The next signal, or None on timeout or wake-up

        Raises:
            QueueError: If queue operation fails
        """
        queue = self._get_queue()
        try:
            if timeout is None:
                return await queue.get()
            if timeout <= 0:
                return queue.get_nowait()
            return await asyncio.wait_for(queue.get(), timeout=timeout)
        except (asyncio.TimeoutError, asyncio.QueueEmpty):
            return None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise QueueError(f"Failed to get signal from queue: {e}") from e

    async def _process_signal(self, signal: DocdSignal) -> None:
        """Run the handler for a signal in its destination's current state."""
        process = self.lookup_proc_map(signal.dst())
        if process is None:
            DocdLogger.warning(f"Signal destination process not found: {signal.dst()}")
            signal.abandon(SignalDeliveryError(str(signal.dst()), signal=signal.name()))
            return

        signal_handler = process.lookup_transition(signal)
        if signal_handler is None:
            DocdLogger.signal("Sig-NA", signal, process)
            signal.abandon(
                SignalDeliveryError(
                    process.pid(),
                    f"No handler for {signal.name()} in state {process.current_state()}",
                )
            )
            return

        DocdLogger.signal("Sig", signal, process)
        try:
            await signal_handler(signal)
        except Exception as e:
            DocdLogger.error(f"Error in signal handler for {signal} in {process}: {e}")
            signal.abandon(e)

    async def run(self) -> bool:
        """Control loop: deliver signals and fire timers until stop().

        Returns:
            True when stopped normally
        """
        while not self._stop:
            try:
                deadline = self.next_deadline()
                timeout = None if deadline is None else deadline - self.now()
                signal = await self.get_next_signal(timeout)

                if signal is not None:
                    try:
                        await self._process_signal(signal)
                    except ValidationError as e:
                        DocdLogger.warning(f"Validation error processing signal: {e}")

                await self.expire(self.now())

            except QueueError as e:
                DocdLogger.warning(f"Queue error in control loop: {e}")
                await asyncio.sleep(0.1)

        DocdLogger.system("Control loop stopped")
        return True

    def stop(self) -> None:
        """Stop the control loop after the current signal."""
        self._stop = True
        if self._queue is not None:
            self._queue.put_nowait(None)

    async def expire(self, now: float) -> None:
        """Deliver every timer whose deadline has passed and unschedule it."""
        expired = [t for t in self.timers if t.expired(now)]
        for timer in expired:
            self.stop_timer(timer)
            try:
                await self.output(timer)
            except Exception as e:
                DocdLogger.warning(f"Failed to deliver expired timer {timer}: {e}")
