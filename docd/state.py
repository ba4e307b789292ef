"""Process states for docd.

A state is a named node of a process state machine. Two states are
predefined: ``start``, the state every process begins in, and ``star``, the
wildcard used for handlers that apply in any state.
"""

from __future__ import annotations


class DocdState:
    """A named state of a process state machine.

    States compare by identity; two distinct objects with the same name are
    different states.

    Attributes:
        _name: State name, used in log lines.
    """

    _name: str

    def __init__(self, name: str) -> None:
        self._name = name

    def __str__(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"DocdState({self._name!r})"

    def __format__(self, formatspec: str) -> str:
        return format(self._name, formatspec)

    def name(self) -> str:
        return self._name


start = DocdState("start")
"""The initial state for all processes."""

star = DocdState("*")
"""Wildcard state for handlers that apply in every state."""
