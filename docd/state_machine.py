"""Transition table for docd processes.

A process declares which coroutine handles which signal class in which state.
Lookup prefers an exact (state, signal) entry and falls back to a handler
declared for the wildcard state ``star``, so lifecycle signals such as a stop
request can be handled once for every state.
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import Any

from docd.exceptions import ValidationError
from docd.signal import DocdSignal
from docd.state import DocdState, star

Handler = Callable[..., Coroutine[Any, Any, None]]


class DocdStateMachine:
    """Mapping from (state, signal class ID) to an async handler.

    Attributes:
        _handlers: Transition table keyed by (state, signal class ID).
    """

    _handlers: dict[tuple[DocdState, int], Handler]

    def __init__(self) -> None:
        self._handlers = {}

    def __len__(self) -> int:
        return len(self._handlers)

    def add(
        self, state: DocdState, event: type[DocdSignal], handler: Handler
    ) -> DocdStateMachine:
        """Register a handler, replacing any existing one for the same key.

        Args:
            state: The state in which the handler applies (or ``star``)
            event: The signal class that triggers the handler
            handler: Coroutine function taking the signal

        Returns:
            Self for method chaining

        Raises:
            ValidationError: If any argument has the wrong type
        """
        if not isinstance(state, DocdState):
            raise ValidationError(
                "state", f"Expected DocdState, got {type(state).__name__}"
            )

        if not isinstance(event, type) or not issubclass(event, DocdSignal):
            raise ValidationError("event", f"Expected DocdSignal subclass, got {event!r}")

        if not callable(handler):
            raise ValidationError("handler", "Handler must be callable")

        self._handlers[(state, event.id())] = handler
        return self

    def find(self, state: DocdState, event: int) -> Handler | None:
        """Find the handler for a signal class ID in a state.

        Args:
            state: Current process state
            event: Signal class ID

        Returns:
            The exact handler, else the wildcard-state handler, else None

        Raises:
            ValidationError: If state or event is None
        """
        if state is None:
            raise ValidationError("state", "Cannot find handler for None state")

        if event is None:
            raise ValidationError("event", "Cannot find handler for None event")

        handler = self._handlers.get((state, event))
        if handler is None:
            handler = self._handlers.get((star, event))
        return handler
