"""Client side of the docd bus.

A consumer application opens one connection per process and keeps it open
for as long as it holds documents: closing the connection is how the daemon
learns the owner went away.

Example:
    Opening a document once per session::

        async with await DocdClient.connect(config.socket_path) as client:
            owner = await client.register_document(uri)
            if owner:
                ...  # hand the document over to `owner`
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from .config import INTERFACE_NAME, OBJECT_PATH
from .exceptions import BusError, ProtocolError, method_error_from_name
from .logger import DocdLogger
from .protocol import (
    INTROSPECTABLE_INTERFACE,
    MAX_MESSAGE_SIZE,
    ErrorReply,
    Hello,
    MethodCall,
    MethodReturn,
    decode,
    encode,
)


class DocdClient:
    """Connection to a docd daemon.

    Replies are matched to calls by serial, so several calls may be in
    flight at once.

    Attributes:
        unique_name: Name the daemon assigned to this connection.
        service: Service name announced by the daemon.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        hello: Hello,
        object_path: str = OBJECT_PATH,
        interface_name: str = INTERFACE_NAME,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self.unique_name = hello.unique_name
        self.service = hello.service
        self.object_path = object_path
        self.interface_name = interface_name
        self._serial = 0
        self._pending: dict[int, asyncio.Future[list[Any]]] = {}
        self._reader_task = asyncio.get_running_loop().create_task(self._read_replies())

    @classmethod
    async def connect(cls, socket_path: str | Path, **kwargs: Any) -> DocdClient:
        """Connect to the daemon listening on socket_path.

        Raises:
            BusError: If the daemon is not reachable or does not greet
        """
        try:
            reader, writer = await asyncio.open_unix_connection(
                str(socket_path), limit=MAX_MESSAGE_SIZE + 1
            )
        except OSError as e:
            raise BusError(f"Cannot connect to {socket_path}: {e}") from e

        try:
            hello = decode(await reader.readline())
        except ProtocolError as e:
            writer.close()
            raise BusError(f"Bad greeting from {socket_path}: {e}") from e
        if not isinstance(hello, Hello):
            writer.close()
            raise BusError(f"Expected greeting from {socket_path}, got {hello.type}")

        DocdLogger.bus("ClientConnected", f"{hello.unique_name} to {hello.service}")
        return cls(reader, writer, hello, **kwargs)

    async def __aenter__(self) -> DocdClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def closed(self) -> bool:
        return self._reader_task.done()

    async def call(
        self,
        member: str,
        *args: Any,
        interface: str | None = None,
        path: str | None = None,
    ) -> list[Any]:
        """Invoke a method and wait for its reply.

        Returns:
            The reply's return values

        Raises:
            DocdMethodError: If the daemon replied with an error
            BusError: If the connection is closed before the reply
        """
        if self.closed():
            raise BusError("Connection closed")

        self._serial += 1
        serial = self._serial
        future: asyncio.Future[list[Any]] = asyncio.get_running_loop().create_future()
        self._pending[serial] = future
        message = MethodCall(
            serial,
            path or self.object_path,
            interface or self.interface_name,
            member,
            list(args),
        )
        try:
            self._writer.write(encode(message))
            await self._writer.drain()
        except ConnectionError as e:
            self._pending.pop(serial, None)
            raise BusError(f"Connection lost: {e}") from e
        return await future

    async def register_document(self, uri: str) -> str:
        """Claim uri.

        Returns:
            "" if this connection now owns uri, else the owner's unique name
        """
        (owner,) = await self.call("RegisterDocument", uri)
        return owner

    async def unregister_document(self, uri: str) -> None:
        """Release uri.

        Raises:
            InvalidArgsError: If uri is not registered
            PermissionDeniedError: If another connection owns uri
        """
        await self.call("UnregisterDocument", uri)

    async def introspect(self) -> str:
        (xml,) = await self.call("Introspect", interface=INTROSPECTABLE_INTERFACE)
        return xml

    async def close(self) -> None:
        """Close the connection; the daemon drops every document it owned."""
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except ConnectionError:
            pass
        self._reader_task.cancel()
        await asyncio.gather(self._reader_task, return_exceptions=True)

    async def _read_replies(self) -> None:
        error: Exception = BusError("Connection closed by daemon")
        try:
            while True:
                line = await self._reader.readline()
                if not line:
                    break
                message = decode(line)
                if isinstance(message, MethodReturn):
                    self._resolve(message.reply_serial, result=message.args)
                elif isinstance(message, ErrorReply):
                    reply_error = method_error_from_name(message.error_name, message.message)
                    if message.reply_serial is None:
                        error = reply_error
                        break
                    self._resolve(message.reply_serial, error=reply_error)
        except (ProtocolError, ConnectionError, ValueError) as e:
            error = BusError(f"Connection failed: {e}")
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(error)
            self._pending.clear()

    def _resolve(
        self, serial: int, result: list[Any] | None = None, error: Exception | None = None
    ) -> None:
        future = self._pending.pop(serial, None)
        if future is None or future.done():
            DocdLogger.warning(f"Reply for unknown serial {serial}")
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result or [])
