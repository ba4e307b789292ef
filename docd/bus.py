"""Bus endpoint of the docd daemon.

The daemon is reachable under a well-known service name. On the local bus a
service name is a Unix socket in the runtime directory plus an exclusive
``flock`` on a lock file next to it: whoever holds the lock owns the name, so
a second daemon started on the same runtime directory fails to acquire it and
exits.

Each accepted connection is a client with a unique name (``:1.N``) that it
learns from the greeting. Method calls are turned into DocdMethodCallSignal
and posted to the daemon process; the connection waits for the handler to
complete the call and writes the reply. When a connection closes, the
liveness watcher is told the client name vanished.

Connection handlers never touch daemon state themselves; everything goes
through the control loop.
"""

from __future__ import annotations

import asyncio
import fcntl
import os
from typing import IO, TYPE_CHECKING

from .config import DocdConfig
from .exceptions import (
    BusError,
    DocdMethodError,
    NameAcquisitionError,
    ProtocolError,
    ServiceUnavailableError,
    UnknownMethodError,
)
from .id_generator import DocdIdGenerator
from .logger import DocdLogger
from .protocol import (
    INTROSPECTABLE_INTERFACE,
    MAX_MESSAGE_SIZE,
    ErrorReply,
    Hello,
    Message,
    MethodCall,
    MethodReturn,
    decode,
    encode,
)
from .system_signals import (
    DocdMethodCallSignal,
    DocdNameAcquiredSignal,
    DocdNameLostSignal,
)

if TYPE_CHECKING:
    from .liveness import LivenessWatcher
    from .system import DocdSystem


def introspection_xml(interface_name: str) -> str:
    """Describe the daemon interface in D-Bus introspection format."""
    return (
        "<node>"
        f"<interface name='{interface_name}'>"
        "<method name='RegisterDocument'>"
        "<arg type='s' name='uri' direction='in'/>"
        "<arg type='s' name='owner' direction='out'/>"
        "</method>"
        "<method name='UnregisterDocument'>"
        "<arg type='s' name='uri' direction='in'/>"
        "</method>"
        "</interface>"
        f"<interface name='{INTROSPECTABLE_INTERFACE}'>"
        "<method name='Introspect'>"
        "<arg type='s' name='xml_data' direction='out'/>"
        "</method>"
        "</interface>"
        "</node>"
    )


class DocdBus:
    """Owner of the service name and of all client connections.

    Attributes:
        _system: Control loop method calls are posted to.
        _watcher: Liveness watcher told about connects and disconnects.
        _config: Service name, object path and socket location.
        _dst: PID of the process that handles method calls.
        _lock_file: Open lock file while the name is owned.
        _server: Listening socket server while the name is owned.
        _connections: Connection handler tasks by client unique name.
    """

    def __init__(
        self, system: DocdSystem, watcher: LivenessWatcher, config: DocdConfig
    ) -> None:
        self._system = system
        self._watcher = watcher
        self._config = config
        self._dst: str | None = None
        self._lock_file: IO[str] | None = None
        self._server: asyncio.AbstractServer | None = None
        self._connections: dict[str, asyncio.Task[None]] = {}

    def owns_name(self) -> bool:
        return self._server is not None

    def clients(self) -> list[str]:
        return list(self._connections)

    async def acquire_name(self, dst: str) -> bool:
        """Try to own the service name and start accepting clients.

        The outcome is reported to dst as DocdNameAcquiredSignal or
        DocdNameLostSignal, mirroring how a bus reports name ownership.

        Returns:
            True if the name is now owned
        """
        self._dst = dst
        try:
            await self._own_name()
        except (BusError, OSError) as e:
            DocdLogger.error(f"Failed to acquire {self._config.service_name}: {e}")
            await self._release_lock()
            signal = DocdNameLostSignal.create(e)
            signal.set_dst(dst)
            signal.set_src(self._config.service_name)
            await self._system.output(signal)
            return False

        DocdLogger.bus("NameAcquired", f"{self._config.service_name} at {self._config.socket_path}")
        signal = DocdNameAcquiredSignal.create(self._config.service_name)
        signal.set_dst(dst)
        signal.set_src(self._config.service_name)
        await self._system.output(signal)
        return True

    async def _own_name(self) -> None:
        config = self._config
        os.makedirs(config.runtime_dir, mode=0o700, exist_ok=True)

        lock_file = open(config.lock_path, "a+")
        try:
            fcntl.flock(lock_file, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            lock_file.close()
            raise NameAcquisitionError(config.service_name) from e
        except OSError:
            lock_file.close()
            raise
        lock_file.seek(0)
        lock_file.truncate()
        lock_file.write(str(os.getpid()))
        lock_file.flush()
        self._lock_file = lock_file

        # a socket left behind by a crashed owner is stale once we hold the lock
        config.socket_path.unlink(missing_ok=True)
        self._server = await asyncio.start_unix_server(
            self._handle_connection,
            path=str(config.socket_path),
            limit=MAX_MESSAGE_SIZE + 1,
        )
        os.chmod(config.socket_path, 0o600)

    async def release_name(self) -> None:
        """Stop accepting clients, drop every connection and give up the name."""
        server, self._server = self._server, None
        if server is not None:
            server.close()
            self._config.socket_path.unlink(missing_ok=True)

        tasks = list(self._connections.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if server is not None:
            await server.wait_closed()
        await self._release_lock()
        DocdLogger.bus("NameReleased", self._config.service_name)

    async def _release_lock(self) -> None:
        lock_file, self._lock_file = self._lock_file, None
        if lock_file is not None:
            # closing drops the flock; the file stays so every opener shares one inode
            lock_file.close()

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        name = DocdIdGenerator.unique_name()
        task = asyncio.current_task()
        if task is not None:
            self._connections[name] = task
        self._watcher.name_connected(name)
        DocdLogger.bus("Connected", name)

        try:
            await self._send(writer, Hello(name, self._config.service_name))
            while True:
                try:
                    line = await reader.readline()
                except ValueError:
                    await self._send(
                        writer,
                        ErrorReply(
                            None,
                            ProtocolError.error_name,
                            f"Message exceeds {MAX_MESSAGE_SIZE} bytes",
                        ),
                    )
                    break
                if not line:
                    break

                try:
                    message = decode(line)
                    if not isinstance(message, MethodCall):
                        raise ProtocolError(f"Unexpected {message.type} from client")
                except ProtocolError as e:
                    DocdLogger.warning(f"Protocol error from {name}: {e}")
                    await self._send(writer, ErrorReply(e.serial, e.error_name, e.message))
                    break

                reply = await self._dispatch(name, message)
                await self._send(writer, reply)
        except (ConnectionError, asyncio.IncompleteReadError) as e:
            DocdLogger.bus("ConnectionError", f"{name}: {e}")
        finally:
            self._connections.pop(name, None)
            writer.close()
            DocdLogger.bus("Disconnected", name)
            await self._watcher.name_disconnected(name)

    async def _send(self, writer: asyncio.StreamWriter, message: Message) -> None:
        writer.write(encode(message))
        await writer.drain()

    async def _dispatch(self, sender: str, call: MethodCall) -> Message:
        """Route one method call and build its reply."""
        DocdLogger.bus("MethodCall", f"{sender} {call.interface}.{call.member}")
        config = self._config
        if call.path != config.object_path:
            return ErrorReply(
                call.serial,
                UnknownMethodError.error_name,
                f"No such object path '{call.path}'",
            )

        if call.interface == INTROSPECTABLE_INTERFACE and call.member == "Introspect":
            return MethodReturn(call.serial, [introspection_xml(config.interface_name)])

        if call.interface != config.interface_name:
            return ErrorReply(
                call.serial,
                UnknownMethodError.error_name,
                f"No such interface '{call.interface}'",
            )

        signal = DocdMethodCallSignal.create(call)
        signal.set_src(sender)
        signal.set_dst(self._dst or "")
        if not self._dst or not await self._system.output(signal):
            return ErrorReply(
                call.serial,
                ServiceUnavailableError.error_name,
                "Daemon is not serving requests",
            )

        try:
            values = await signal.result()
        except DocdMethodError as e:
            return ErrorReply(call.serial, e.error_name, e.message)
        return MethodReturn(call.serial, values)
