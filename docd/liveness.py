"""Client liveness tracking for docd.

A LivenessWatch is a subscription to the disconnection of one client name.
When the client's connection to the bus goes away, each active watch on that
name posts exactly one DocdNameVanishedSignal to the process that asked for
it, then goes inactive. Notifications travel through the control loop like
every other input, so the daemon handles them serially with method calls.

A watch on a name that is connected at subscription time first reports
DocdNameAppearedSignal; a watch on a name that is already gone reports
DocdNameVanishedSignal straight away.

Releasing a watch cancels its future notifications. A notification that was
queued before the release is still delivered, so receivers check active()
before acting on it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from docd.exceptions import ValidationError
from docd.logger import DocdLogger
from docd.system_signals import DocdNameAppearedSignal, DocdNameVanishedSignal

if TYPE_CHECKING:
    from docd.system import DocdSystem


class LivenessWatch:
    """Handle of one subscription, owned by a registry entry.

    Attributes:
        watch_id: Sequence number, unique per watcher.
        name: Watched client name.
        dst: PID of the process notified.
    """

    def __init__(self, watcher: LivenessWatcher, watch_id: int, name: str, dst: str) -> None:
        self._watcher = watcher
        self._released = False
        self.watch_id = watch_id
        self.name = name
        self.dst = dst

    def __repr__(self) -> str:
        state = "active" if self.active() else "released"
        return f"LivenessWatch({self.watch_id}, {self.name}, {state})"

    def active(self) -> bool:
        return not self._released

    def release(self) -> None:
        """Cancel future notifications. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        self._watcher._forget(self)


class LivenessWatcher:
    """Tracks connected client names and the watches on them.

    The bus reports connects and disconnects; processes subscribe with
    watch().

    Attributes:
        _system: Control loop that notifications are posted to.
        _connected: Names currently connected.
        _watches: Active watches by watched name, in subscription order.
    """

    def __init__(self, system: DocdSystem) -> None:
        self._system = system
        self._connected: set[str] = set()
        self._watches: dict[str, list[LivenessWatch]] = {}
        self._next_id = 0

    def is_connected(self, name: str) -> bool:
        return name in self._connected

    def watch_count(self, name: str | None = None) -> int:
        """Number of active watches, on one name or overall."""
        if name is not None:
            return len(self._watches.get(name, []))
        return sum(len(w) for w in self._watches.values())

    async def watch(self, name: str, dst: str) -> LivenessWatch:
        """Subscribe dst to the disconnection of name.

        Returns:
            The watch handle

        Raises:
            ValidationError: If name or dst is empty
        """
        if not name:
            raise ValidationError("name", "Cannot watch an empty name")
        if not dst:
            raise ValidationError("dst", "Watch needs a destination PID")

        self._next_id += 1
        watch = LivenessWatch(self, self._next_id, name, dst)
        DocdLogger.liveness("Watch", name, f"id={watch.watch_id}")

        if name in self._connected:
            self._watches.setdefault(name, []).append(watch)
            await self._notify(DocdNameAppearedSignal, watch)
        else:
            # already gone: report at once and never track it
            await self._notify(DocdNameVanishedSignal, watch)
        return watch

    def name_connected(self, name: str) -> None:
        """Record that name joined the bus."""
        self._connected.add(name)
        DocdLogger.liveness("Connected", name)

    async def name_disconnected(self, name: str) -> int:
        """Record that name left the bus and notify each watch on it once.

        Returns:
            Number of notifications posted
        """
        self._connected.discard(name)
        watches = self._watches.pop(name, [])
        DocdLogger.liveness("Vanished", name, f"{len(watches)} watches")
        for watch in watches:
            await self._notify(DocdNameVanishedSignal, watch)
        return len(watches)

    def _forget(self, watch: LivenessWatch) -> None:
        watches = self._watches.get(watch.name)
        if watches is None:
            return
        try:
            watches.remove(watch)
        except ValueError:
            return
        if not watches:
            del self._watches[watch.name]
        DocdLogger.liveness("Released", watch.name, f"id={watch.watch_id}")

    async def _notify(self, cls: type, watch: LivenessWatch) -> None:
        signal = cls.create(watch)
        signal.set_src(watch.name)
        signal.set_dst(watch.dst)
        await self._system.output(signal)
