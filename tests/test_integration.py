"""Integration tests: a real daemon on a Unix socket and DocdClient connections."""

import asyncio
import json
import shutil
import tempfile
from collections.abc import Generator

import pytest

from docd.client import DocdClient
from docd.config import DocdConfig
from docd.daemon import EXIT_INIT_FAILURE, EXIT_OK, DocdDaemon, run_daemon
from docd.exceptions import (
    BusError,
    InvalidArgsError,
    PermissionDeniedError,
    UnknownMethodError,
)
from docd.protocol import INTROSPECTABLE_INTERFACE
from docd.system import DocdSystem

URI = "file:///a.pdf"


@pytest.fixture
def config() -> Generator[DocdConfig, None, None]:
    # short path: Unix socket names are limited to ~100 bytes
    path = tempfile.mkdtemp(prefix="docd-")
    yield DocdConfig(runtime_dir=path, migrate=False)
    shutil.rmtree(path, ignore_errors=True)


async def start_daemon(config: DocdConfig) -> tuple[DocdDaemon, asyncio.Task[bool]]:
    system = DocdSystem()
    daemon = await DocdDaemon.create(None, config, system=system)
    runner = asyncio.create_task(system.run())

    async def ready() -> None:
        while daemon.current_state() is not DocdDaemon.state_ready:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(ready(), 2)
    return daemon, runner


async def stop_daemon(daemon: DocdDaemon, runner: asyncio.Task[bool]) -> None:
    if not runner.done():
        await daemon.stop("test finished")
    await asyncio.wait_for(runner, 2)


async def eventually(predicate, timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


class TestClientCalls:
    """Method calls over the socket."""

    @pytest.mark.asyncio
    async def test_greeting(self, config) -> None:
        daemon, runner = await start_daemon(config)
        try:
            async with await DocdClient.connect(config.socket_path) as client:
                assert client.unique_name.startswith(":1.")
                assert client.service == "org.docd.Daemon"
                await eventually(lambda: client.unique_name in daemon.bus.clients())
        finally:
            await stop_daemon(daemon, runner)

    @pytest.mark.asyncio
    async def test_distinct_unique_names(self, config) -> None:
        daemon, runner = await start_daemon(config)
        try:
            a = await DocdClient.connect(config.socket_path)
            b = await DocdClient.connect(config.socket_path)
            assert a.unique_name != b.unique_name
            await a.close()
            await b.close()
        finally:
            await stop_daemon(daemon, runner)

    @pytest.mark.asyncio
    async def test_register_and_unregister(self, config) -> None:
        daemon, runner = await start_daemon(config)
        try:
            async with await DocdClient.connect(config.socket_path) as client:
                assert await client.register_document(URI) == ""
                assert daemon.registry.find(URI).owner == client.unique_name
                assert not daemon.idle.armed()

                await client.unregister_document(URI)
                assert daemon.registry.is_empty()
                assert daemon.idle.armed()
        finally:
            await stop_daemon(daemon, runner)

    @pytest.mark.asyncio
    async def test_error_replies(self, config) -> None:
        daemon, runner = await start_daemon(config)
        try:
            owner = await DocdClient.connect(config.socket_path)
            other = await DocdClient.connect(config.socket_path)
            await owner.register_document(URI)

            with pytest.raises(InvalidArgsError, match="URI not registered"):
                await other.unregister_document("file:///unknown.pdf")
            with pytest.raises(PermissionDeniedError, match="Only owner"):
                await other.unregister_document(URI)
            with pytest.raises(InvalidArgsError):
                await other.call("RegisterDocument", 42)
            with pytest.raises(UnknownMethodError):
                await other.call("Frobnicate", URI)

            # errors leave the connection usable
            assert await other.register_document(URI) == owner.unique_name
            await owner.close()
            await other.close()
        finally:
            await stop_daemon(daemon, runner)

    @pytest.mark.asyncio
    async def test_unknown_path_and_interface(self, config) -> None:
        daemon, runner = await start_daemon(config)
        try:
            async with await DocdClient.connect(config.socket_path) as client:
                with pytest.raises(UnknownMethodError, match="object path"):
                    await client.call("RegisterDocument", URI, path="/elsewhere")
                with pytest.raises(UnknownMethodError, match="interface"):
                    await client.call("RegisterDocument", URI, interface="org.example.Other")
        finally:
            await stop_daemon(daemon, runner)

    @pytest.mark.asyncio
    async def test_introspect(self, config) -> None:
        daemon, runner = await start_daemon(config)
        try:
            async with await DocdClient.connect(config.socket_path) as client:
                xml = await client.introspect()
                assert "<interface name='org.docd.Daemon'>" in xml
                assert "RegisterDocument" in xml
                assert "UnregisterDocument" in xml
                assert INTROSPECTABLE_INTERFACE in xml
        finally:
            await stop_daemon(daemon, runner)

    @pytest.mark.asyncio
    async def test_pipelined_calls(self, config) -> None:
        daemon, runner = await start_daemon(config)
        try:
            async with await DocdClient.connect(config.socket_path) as client:
                results = await asyncio.gather(
                    client.register_document("file:///a.pdf"),
                    client.register_document("file:///b.pdf"),
                    client.register_document("file:///a.pdf"),
                )
                assert results == ["", "", client.unique_name]
                assert len(daemon.registry) == 2
        finally:
            await stop_daemon(daemon, runner)


class TestOwnership:
    """Ownership follows client connections."""

    @pytest.mark.asyncio
    async def test_ownership_handover(self, config) -> None:
        daemon, runner = await start_daemon(config)
        try:
            first = await DocdClient.connect(config.socket_path)
            second = await DocdClient.connect(config.socket_path)
            third = await DocdClient.connect(config.socket_path)

            assert await first.register_document(URI) == ""
            assert await second.register_document(URI) == first.unique_name

            await first.close()
            await eventually(lambda: daemon.registry.find(URI) is None)

            assert await third.register_document(URI) == ""
            assert daemon.registry.find(URI).owner == third.unique_name
            await second.close()
            await third.close()
        finally:
            await stop_daemon(daemon, runner)

    @pytest.mark.asyncio
    async def test_disconnect_releases_all_documents(self, config) -> None:
        daemon, runner = await start_daemon(config)
        try:
            client = await DocdClient.connect(config.socket_path)
            for i in range(3):
                await client.register_document(f"file:///doc{i}.pdf")
            assert not daemon.idle.armed()

            await client.close()
            await eventually(daemon.registry.is_empty)
            assert daemon.idle.armed()
            assert daemon.watcher.watch_count() == 0
        finally:
            await stop_daemon(daemon, runner)


class TestProtocolErrors:
    """Malformed traffic ends the offending connection only."""

    @pytest.mark.asyncio
    async def test_garbage_line(self, config) -> None:
        daemon, runner = await start_daemon(config)
        try:
            reader, writer = await asyncio.open_unix_connection(str(config.socket_path))
            hello = json.loads(await reader.readline())
            assert hello["type"] == "hello"

            writer.write(b"this is not json\n")
            await writer.drain()
            reply = json.loads(await reader.readline())
            assert reply["type"] == "error"
            assert reply["error_name"] == "org.docd.Error.Protocol"
            assert reply["reply_serial"] is None
            assert await reader.readline() == b""
            writer.close()

            async with await DocdClient.connect(config.socket_path) as client:
                assert await client.register_document(URI) == ""
        finally:
            await stop_daemon(daemon, runner)

    @pytest.mark.asyncio
    async def test_bad_call_keeps_serial(self, config) -> None:
        daemon, runner = await start_daemon(config)
        try:
            reader, writer = await asyncio.open_unix_connection(str(config.socket_path))
            await reader.readline()

            call = {"type": "method_call", "serial": 4, "path": "/org/docd/Daemon",
                    "interface": "org.docd.Daemon", "member": 12}
            writer.write(json.dumps(call).encode() + b"\n")
            await writer.drain()
            reply = json.loads(await reader.readline())
            assert reply["reply_serial"] == 4
            assert reply["error_name"] == "org.docd.Error.Protocol"
            writer.close()
        finally:
            await stop_daemon(daemon, runner)


class TestDaemonProcess:
    """Whole-daemon runs through run_daemon."""

    @pytest.mark.asyncio
    async def test_connect_without_daemon(self, config) -> None:
        with pytest.raises(BusError):
            await DocdClient.connect(config.socket_path)

    @pytest.mark.asyncio
    async def test_idle_daemon_exits_zero(self, config) -> None:
        config.idle_timeout = 0.1
        assert await asyncio.wait_for(run_daemon(config), 2) == EXIT_OK
        assert not config.socket_path.exists()

    @pytest.mark.asyncio
    async def test_second_daemon_exits_one(self, config) -> None:
        daemon, runner = await start_daemon(config)
        try:
            second = DocdConfig(runtime_dir=config.runtime_dir, migrate=False)
            assert await asyncio.wait_for(run_daemon(second), 2) == EXIT_INIT_FAILURE

            async with await DocdClient.connect(config.socket_path) as client:
                assert await client.register_document(URI) == ""
        finally:
            await stop_daemon(daemon, runner)

    @pytest.mark.asyncio
    async def test_shutdown_disconnects_clients(self, config) -> None:
        daemon, runner = await start_daemon(config)
        client = await DocdClient.connect(config.socket_path)
        await client.register_document(URI)

        await stop_daemon(daemon, runner)
        assert daemon.exit_code == EXIT_OK
        assert not config.socket_path.exists()

        await eventually(client.closed)
        with pytest.raises(BusError):
            await client.register_document(URI)
        await client.close()
