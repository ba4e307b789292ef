"""signal.py."""

from __future__ import annotations

from typing import Any, TypeVar

from docd.id_generator import DocdIdGenerator

T = TypeVar("T", bound="DocdSignal")


class DocdSignal:
    """Base docd signal class.

    Everything the daemon reacts to travels through the control loop as a
    signal: method calls from clients, liveness notifications, timer expiries
    and lifecycle events. A signal carries routing information (source and
    destination) and an optional payload.

    For method calls arriving from the bus the source is the caller's unique
    name, which is how the daemon learns who is asking.

    Class Attributes:
        _id: Unique ID for this signal class (shared across instances).
    """

    _id: int | None = None

    @classmethod
    def id(cls) -> int:
        """Get the unique ID for this signal class, assigned lazily.

        The ID is looked up in the class's own namespace so that a subclass
        never inherits the ID of its base class.
        """
        if cls.__dict__.get("_id") is None:
            cls._id = DocdIdGenerator.next()
        return cls._id

    @classmethod
    def create(cls: type[T], _data: Any | None = None) -> T:
        """Create a new signal instance.

        Args:
            _data: Optional data payload for the signal.

        Returns:
            A new signal instance with the class ID assigned.
        """
        signal = cls(_data)
        signal._id = signal.id()
        return signal

    def __init__(self, _data: Any | None = None) -> None:
        self._name: str = self.__class__.__name__
        self._src: str | None = None
        self._dst: str | None = None
        self._data: Any | None = _data

    @property
    def data(self) -> Any | None:
        return self._data

    @data.setter
    def data(self, value: Any | None) -> None:
        self._data = value

    def __str__(self) -> str:
        return f"name: {self.name()} id: {self.id()} [src: {self.src()}] [dst: {self.dst()}]"

    def dumpdata(self) -> str | None:
        """Return a short rendering of the payload for log lines.

        Subclasses override this; None means nothing worth printing.
        """
        return None

    def abandon(self, error: Exception) -> None:
        """Called by the control loop when no handler completed this signal.

        Signals that someone is waiting on (method calls) override this to
        release the waiter; plain signals have nothing to release.
        """

    def name(self) -> str:
        return self._name

    def src(self) -> str | None:
        return self._src

    def set_src(self, _src: str) -> None:
        self._src = _src

    def dst(self) -> str | None:
        return self._dst

    def set_dst(self, _dst: str) -> None:
        self._dst = _dst
