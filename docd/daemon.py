"""The document ownership daemon.

DocdDaemon is the process that serializes everything: it owns the document
registry, the idle shutdown timer and the bus endpoint, and handles method
calls, liveness notifications and lifecycle events one at a time on the
control loop.

Lifecycle::

    starting --NameAcquired--> ready --IdleTimeout/NameLost/Stopping--> shutting_down
        |                                                                  |
        +--NameLost (exit 1)--> terminated <-------------------------------+

Example:
    Running a daemon until it shuts itself down::

        exit_code = asyncio.run(run_daemon(load_config()))
"""

from __future__ import annotations

import asyncio

from docd.bus import DocdBus
from docd.config import DocdConfig
from docd.exceptions import (
    InvalidArgsError,
    PermissionDeniedError,
    ServiceUnavailableError,
    UnknownMethodError,
)
from docd.idle_timer import IdleShutdownTimer, IdleTimeout
from docd.liveness import LivenessWatcher
from docd.logger import DocdLogger
from docd.migration import start_migration
from docd.process import DocdProcess
from docd.registry import DocumentRegistry, RegistryEntry
from docd.signal import DocdSignal
from docd.state import DocdState, star, start
from docd.system import DocdSystem
from docd.system_signals import (
    DocdMethodCallSignal,
    DocdNameAcquiredSignal,
    DocdNameAppearedSignal,
    DocdNameLostSignal,
    DocdNameVanishedSignal,
    DocdStartSignal,
    DocdStoppingSignal,
)

EXIT_OK = 0
EXIT_INIT_FAILURE = 1


class DocdDaemon(DocdProcess):
    """Single-instance coordination daemon for document ownership.

    config_data must be a DocdConfig.
    """

    state_starting = DocdState("starting")
    state_ready = DocdState("ready")
    state_shutting_down = DocdState("shutting_down")
    state_terminated = DocdState("terminated")

    def __init__(
        self,
        parent_pid: str | None,
        config_data: DocdConfig | None = None,
        system: DocdSystem | None = None,
    ) -> None:
        super().__init__(parent_pid, config_data, system=system)
        self.config: DocdConfig = config_data if config_data is not None else DocdConfig()
        self.exit_code: int = EXIT_OK
        self.idle = IdleShutdownTimer(self, self.config.idle_timeout)
        self.registry = DocumentRegistry(on_insert=self.idle.disarm, on_empty=self.idle.arm)
        self.watcher = LivenessWatcher(self._system)
        self.bus = DocdBus(self._system, self.watcher, self.config)
        self.migration: asyncio.Task[bool] | None = None
        self._methods = {
            "RegisterDocument": self.register_document,
            "UnregisterDocument": self.unregister_document,
        }

    def _init_state_machine(self) -> None:
        self._event(start, DocdStartSignal, self.start_StartSignal)
        self._event(self.state_starting, DocdNameAcquiredSignal, self.starting_NameAcquired)
        self._event(self.state_starting, DocdNameLostSignal, self.starting_NameLost)
        self._event(self.state_ready, DocdMethodCallSignal, self.ready_MethodCall)
        self._event(self.state_ready, DocdNameAppearedSignal, self.ready_NameAppeared)
        self._event(self.state_ready, DocdNameVanishedSignal, self.ready_NameVanished)
        self._event(self.state_ready, IdleTimeout, self.ready_IdleTimeout)
        self._event(self.state_ready, DocdNameLostSignal, self.ready_NameLost)
        self._event(star, DocdStoppingSignal, self.any_Stopping)
        self._event(star, DocdMethodCallSignal, self.any_MethodCall)
        self._event(star, DocdNameAppearedSignal, self.any_Ignored)
        self._event(star, DocdNameVanishedSignal, self.any_Ignored)
        self._event(star, IdleTimeout, self.any_Ignored)

    # lifecycle

    async def start_StartSignal(self, _: DocdStartSignal) -> None:
        await self.next_state(self.state_starting)
        await self.bus.acquire_name(self.pid())

    async def starting_NameAcquired(self, _: DocdNameAcquiredSignal) -> None:
        DocdLogger.info(f"Serving {self.config.service_name} at {self.config.socket_path}")
        if self.config.migrate:
            self.migration = start_migration(self.config)
        await self.next_state(self.state_ready)
        self.idle.maybe_arm(self.registry)

    async def starting_NameLost(self, signal: DocdNameLostSignal) -> None:
        DocdLogger.error(f"Could not start: {signal.data}")
        self.exit_code = EXIT_INIT_FAILURE
        await self._terminate()

    async def ready_IdleTimeout(self, timer: IdleTimeout) -> None:
        if not self.idle.is_current(timer) or not self.registry.is_empty():
            DocdLogger.timer("Stale expiry ignored", f"appcorr={timer.appcorr()}")
            return
        DocdLogger.info(f"No documents for {self.idle.timeout}s, shutting down")
        await self.shutdown()

    async def ready_NameLost(self, signal: DocdNameLostSignal) -> None:
        DocdLogger.warning(f"Lost {self.config.service_name}: {signal.data}")
        await self.shutdown()

    async def any_Stopping(self, signal: DocdStoppingSignal) -> None:
        if self.current_state() in (self.state_shutting_down, self.state_terminated):
            return
        DocdLogger.info(f"Stop requested ({signal.data or 'no reason'})")
        await self.shutdown()

    async def shutdown(self) -> None:
        """Release every resource and terminate with the current exit code."""
        await self.next_state(self.state_shutting_down)
        self.idle.disarm()
        dropped = self.registry.clear()
        if dropped:
            DocdLogger.info(f"Dropped {dropped} registered documents")
        await self.bus.release_name()
        if self.migration is not None and not self.migration.done():
            self.migration.cancel()
        await self._terminate()

    async def _terminate(self) -> None:
        await self.next_state(self.state_terminated)
        self.stop_process()
        self._system.stop()

    # liveness

    async def ready_NameAppeared(self, signal: DocdNameAppearedSignal) -> None:
        DocdLogger.liveness("Appeared", signal.watch().name)

    async def ready_NameVanished(self, signal: DocdNameVanishedSignal) -> None:
        watch = signal.watch()
        if not watch.active():
            DocdLogger.liveness("Late notification ignored", watch.name)
            return
        entry = self.registry.find_by_watch(watch.name, watch)
        if entry is None:
            DocdLogger.liveness("No entry for", watch.name)
            return
        DocdLogger.info(f"Owner {entry.owner} of {entry.uri} went away")
        self.registry.remove(entry)

    async def any_Ignored(self, signal: DocdSignal) -> None:
        DocdLogger.debug(f"Ignoring {signal.name()} in state {self.current_state()}")

    # method calls

    async def ready_MethodCall(self, signal: DocdMethodCallSignal) -> None:
        method = self._methods.get(signal.member())
        if method is None:
            signal.fail(
                UnknownMethodError(
                    f"No such method '{signal.member()}' on {signal.interface()}"
                )
            )
            return

        args = signal.args()
        if len(args) != 1 or not isinstance(args[0], str):
            signal.fail(
                InvalidArgsError(f"{signal.member()} expects a single string argument")
            )
            return

        try:
            result = await method(signal.sender(), args[0])
        except (InvalidArgsError, PermissionDeniedError) as e:
            signal.fail(e)
            return
        if result is None:
            signal.reply()
        else:
            signal.reply(result)

    async def any_MethodCall(self, signal: DocdMethodCallSignal) -> None:
        signal.fail(ServiceUnavailableError(f"Daemon is {self.current_state()}"))

    async def register_document(self, sender: str, uri: str) -> str:
        """Claim uri for sender.

        Returns:
            "" if sender is now the owner, else the existing owner's name
        """
        self.idle.disarm()

        entry = self.registry.find(uri)
        if entry is not None:
            return entry.owner

        watch = await self.watcher.watch(sender, self.pid())
        self.registry.insert(RegistryEntry(uri, sender, watch))
        return ""

    async def unregister_document(self, sender: str, uri: str) -> None:
        """Release uri on behalf of sender.

        Raises:
            InvalidArgsError: If uri is not registered
            PermissionDeniedError: If sender does not own uri
        """
        entry = self.registry.find(uri)
        if entry is None:
            raise InvalidArgsError("URI not registered")

        if entry.owner != sender:
            raise PermissionDeniedError("Only owner can call this method")

        self.registry.remove(entry)


async def run_daemon(config: DocdConfig, system: DocdSystem | None = None) -> int:
    """Start a daemon and run the control loop until it terminates.

    Returns:
        Process exit status: 0 after a normal shutdown, 1 if the daemon
        could not initialize
    """
    if system is None:
        system = DocdSystem()
    daemon = await DocdDaemon.create(None, config, system=system)
    await system.run()
    return daemon.exit_code
