"""Built-in signals of docd.

Lifecycle:
    DocdStartSignal: Sent to a process immediately after registration
    DocdStoppingSignal: Asks a process to shut down gracefully

Bus:
    DocdNameAcquiredSignal: The well-known service name is owned
    DocdNameLostSignal: The name could not be acquired, or was lost
    DocdMethodCallSignal: A client invoked a method; carries the reply future

Liveness:
    DocdNameAppearedSignal: A watched client is connected
    DocdNameVanishedSignal: A watched client disconnected

Example:
    Handling a method call::

        async def ready_MethodCall(self, signal: DocdMethodCallSignal) -> None:
            if signal.member() == "RegisterDocument":
                signal.reply("")
            else:
                signal.fail(UnknownMethodError(signal.member()))
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from docd.exceptions import DocdMethodError
from docd.signal import DocdSignal

if TYPE_CHECKING:
    from docd.liveness import LivenessWatch
    from docd.protocol import MethodCall


class DocdStartSignal(DocdSignal):
    """Signal sent to a process immediately after registration."""


class DocdStoppingSignal(DocdSignal):
    """Request for graceful shutdown (termination signal, explicit stop)."""

    def dumpdata(self) -> str | None:
        return None if self.data is None else f"reason: {self.data}"


class DocdNameAcquiredSignal(DocdSignal):
    """The bus endpoint now owns the service name given as data."""

    def dumpdata(self) -> str | None:
        return f"name: {self.data}"


class DocdNameLostSignal(DocdSignal):
    """The service name was not acquired or is no longer owned.

    The data is the exception describing why, when there is one.
    """

    def dumpdata(self) -> str | None:
        return f"reason: {self.data}"


class _WatchSignal(DocdSignal):
    """Liveness notification; the data is the LivenessWatch that fired."""

    def watch(self) -> LivenessWatch:
        return self.data

    def dumpdata(self) -> str | None:
        return f"name: {self.data.name} watch: {self.data.watch_id}"


class DocdNameAppearedSignal(_WatchSignal):
    """The watched client name is connected to the bus."""


class DocdNameVanishedSignal(_WatchSignal):
    """The watched client name disconnected from the bus."""


class DocdMethodCallSignal(DocdSignal):
    """A method call received on the bus.

    The source of the signal is the caller's unique name. The bus connection
    awaits result(); the handler completes it with reply() or fail().
    """

    _reply: asyncio.Future[list[Any]]

    def __init__(self, _data: MethodCall | None = None) -> None:
        super().__init__(_data)
        self._reply = asyncio.get_running_loop().create_future()

    def dumpdata(self) -> str | None:
        call = self.data
        return f"{call.interface}.{call.member}{tuple(call.args)!r}"

    def sender(self) -> str | None:
        return self.src()

    def member(self) -> str:
        return self.data.member

    def interface(self) -> str:
        return self.data.interface

    def path(self) -> str:
        return self.data.path

    def args(self) -> list[Any]:
        return self.data.args

    def replied(self) -> bool:
        return self._reply.done()

    def reply(self, *values: Any) -> None:
        """Complete the call successfully with the given return values."""
        if not self._reply.done():
            self._reply.set_result(list(values))

    def fail(self, error: DocdMethodError) -> None:
        """Complete the call with an error reply."""
        if not self._reply.done():
            self._reply.set_exception(error)

    def abandon(self, error: Exception) -> None:
        if isinstance(error, DocdMethodError):
            self.fail(error)
        else:
            self.fail(DocdMethodError(f"Internal error: {error}"))

    async def result(self) -> list[Any]:
        """Wait for the handler to complete the call.

        Raises:
            DocdMethodError: If the handler failed the call
        """
        return await self._reply
