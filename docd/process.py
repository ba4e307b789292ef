"""
process.py
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from docd.exceptions import (
    TimerError,
    ValidationError,
)
from docd.id_generator import DocdIdGenerator
from docd.logger import DocdLogger
from docd.signal import DocdSignal
from docd.state import DocdState, start
from docd.state_machine import DocdStateMachine
from docd.system import DocdSystem
from docd.system_signals import (
    DocdStartSignal,
    DocdStoppingSignal,
)
from docd.timer import DocdTimer

T = TypeVar("T", bound="DocdProcess")


class DocdProcess:
    """Base docd process class.

    A process owns a state machine and reacts to the signals the control loop
    delivers to it. Subclasses implement _init_state_machine() to declare
    their transitions. Use the create() class method to instantiate and
    register a process; it receives DocdStartSignal as its first signal.

    Class Attributes:
        _id: Unique ID for this process class (shared across instances).
        _instance_count: Counter for instances of this process class.
    """

    _id: int | None = None
    _instance_count: int = 0

    @classmethod
    async def create(
        cls: type[T],
        parent_pid: str | None,
        config_data: Any | None = None,
        system: DocdSystem | None = None,
    ) -> T:
        """Create and register a process with a system.

        Raises:
            ValidationError: If system is None
        """
        if system is None:
            raise ValidationError(
                "system", "Process creation requires a system instance"
            )

        process = cls(parent_pid, config_data, system=system)
        await process._register()
        return process

    def __init__(
        self,
        parent_pid: str | None,
        config_data: Any | None = None,
        system: DocdSystem | None = None,
    ) -> None:
        if system is None:
            raise ValidationError("system", "DocdProcess requires a system instance")

        self._system: DocdSystem = system
        self._parent: str | None = parent_pid
        self.__class__._instance_count += 1
        self._instance: int = self._instance_count
        self._pid: str = f"{self.name()}({self.id()}.{self.instance()})"
        self._FSM: DocdStateMachine = DocdStateMachine()
        self._state: DocdState = start
        self._config_data: Any | None = config_data

    def __str__(self) -> str:
        return self._pid

    def __repr__(self) -> str:
        return self._pid

    @classmethod
    def name(cls) -> str:
        return cls.__name__

    @classmethod
    def id(cls) -> int:
        if cls.__dict__.get("_id") is None:
            cls._id = DocdIdGenerator.next()
        return cls._id

    def get_parent(self) -> str | None:
        return self._parent

    def instance(self) -> int:
        return self._instance

    def pid(self) -> str:
        return self._pid

    def system(self) -> DocdSystem:
        return self._system

    def current_state(self) -> DocdState:
        return self._state

    async def next_state(self, state: DocdState) -> None:
        """Transition to a new state.

        Raises:
            ValidationError: If state is not a DocdState
        """
        if not isinstance(state, DocdState):
            raise ValidationError("state", f"Invalid state type: {type(state)}")

        if state is not self._state:
            DocdLogger.state(self, self._state, state)
            self._state = state

    async def output(self, signal: DocdSignal, dst: str) -> bool:
        """Send a signal to a destination process.

        Returns:
            True if the signal was queued for the destination

        Raises:
            ValidationError: If signal or dst is invalid
        """
        if not isinstance(signal, DocdSignal):
            raise ValidationError("signal", "signal must be an instance of DocdSignal")

        if not dst or not isinstance(dst, str):
            raise ValidationError("dst", f"Invalid destination PID: {dst}")

        signal.set_dst(dst)
        signal.set_src(self.pid())
        return await self._system.output(signal)

    def start_timer(self, timer: DocdTimer, seconds: float) -> float:
        """Start a timer relative to now, replacing a previous start.

        Args:
            timer: The timer to start
            seconds: Delay until expiry

        Returns:
            The absolute deadline on the loop clock

        Raises:
            ValidationError: If timer is not a DocdTimer
            TimerError: If seconds is negative
        """
        if not isinstance(timer, DocdTimer):
            raise ValidationError("timer", "timer must be an instance of DocdTimer")

        if seconds < 0:
            raise TimerError(str(timer), f"Timer duration cannot be negative: {seconds}s")

        timer.set_dst(self.pid())
        timer.set_src(self.pid())
        deadline = self._system.now() + seconds
        timer.start(deadline)
        self._system.start_timer(timer)
        return deadline

    def stop_timer(self, timer: DocdTimer) -> bool:
        """Stop a timer.

        Returns:
            True if the timer was running

        Raises:
            ValidationError: If timer is not a DocdTimer
        """
        if not isinstance(timer, DocdTimer):
            raise ValidationError("timer", "timer must be an instance of DocdTimer")

        return self._system.stop_timer(timer)

    async def stop(self, reason: str | None = None) -> None:
        """Post a graceful stop request to this process."""
        await self.output(DocdStoppingSignal.create(reason), self.pid())

    def stop_process(self) -> None:
        DocdLogger.event("Stopped", self, self.pid())
        self._system.unregister(self)

    async def _register(self) -> None:
        self._init_state_machine()
        self._system.register(self)
        DocdLogger.create(self, self._parent)
        await self.output(DocdStartSignal.create(), self.pid())

    def _event(
        self,
        _state: DocdState,
        _signal: type[DocdSignal],
        _handler: Callable[..., Coroutine[Any, Any, None]],
    ) -> DocdProcess:
        """add (state, signal, handler) to the state machine"""
        self._FSM.add(_state, _signal, _handler)
        return self

    def _init_state_machine(self) -> None:
        raise NotImplementedError(
            "_init_state_machine() must be defined in your DocdProcess"
        )

    def lookup_transition(
        self, signal: DocdSignal | None
    ) -> Callable[..., Coroutine[Any, Any, None]] | None:
        """Find the handler for a signal in the current state.

        Raises:
            ValidationError: If signal is None
        """
        if signal is None:
            raise ValidationError("signal", "Cannot lookup transition for None signal")

        found = self._FSM.find(self.current_state(), signal.id())
        if found is None:
            DocdLogger.warning(
                f"No handler for signal {signal.name()} "
                f"in state {self.current_state()} for process {self.pid()}"
            )
        return found
