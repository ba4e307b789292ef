"""Document registry for docd.

This module provides the DocumentRegistry class, the in-memory binding of
document URIs to the client that owns them. Every entry holds exactly one
liveness watch on its owner; the watch is released whenever the entry is
destroyed, whichever path destroys it.

The registry reports two transitions to its owner through listeners: an
insertion (the daemon disarms its idle timer) and becoming empty (the daemon
re-arms it).

Example:
    Registering and looking up documents::

        registry = DocumentRegistry(on_insert=idle.disarm, on_empty=idle.arm)
        registry.insert(RegistryEntry(uri, sender, watcher.watch(sender, pid)))

        entry = registry.find(uri)
        if entry is not None:
            registry.remove(entry)
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

from docd.exceptions import ValidationError
from docd.logger import DocdLogger

if TYPE_CHECKING:
    from docd.liveness import LivenessWatch


@dataclass(frozen=True)
class RegistryEntry:
    """Binding of a document URI to its owning client.

    Attributes:
        uri: Document identifier, unique among live entries.
        owner: Unique bus name of the client that registered the URI.
        watch: Liveness watch on the owner, released with the entry.
    """

    uri: str
    owner: str
    watch: LivenessWatch


class DocumentRegistry:
    """Insertion-ordered collection of RegistryEntry keyed by URI.

    Attributes:
        _entries: URI to entry mapping.
        _on_insert: Called after every insertion.
        _on_empty: Called when a removal leaves the registry empty.
    """

    def __init__(
        self,
        on_insert: Callable[[], None] | None = None,
        on_empty: Callable[[], None] | None = None,
    ) -> None:
        self._entries: dict[str, RegistryEntry] = {}
        self._on_insert = on_insert
        self._on_empty = on_empty

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(list(self._entries.values()))

    def __contains__(self, uri: object) -> bool:
        return uri in self._entries

    def is_empty(self) -> bool:
        return not self._entries

    def find(self, uri: str) -> RegistryEntry | None:
        """Return the entry registered for uri, or None."""
        return self._entries.get(uri)

    def find_by_watch(self, owner: str, watch: LivenessWatch) -> RegistryEntry | None:
        """Return the entry of owner that holds watch, or None.

        Used when a liveness notification arrives; an entry that was already
        removed yields None.
        """
        for entry in self._entries.values():
            if entry.owner == owner and entry.watch is watch:
                return entry
        return None

    def owners(self) -> dict[str, list[str]]:
        """Map each owner to the URIs it holds, in insertion order."""
        result: dict[str, list[str]] = {}
        for entry in self._entries.values():
            result.setdefault(entry.owner, []).append(entry.uri)
        return result

    def insert(self, entry: RegistryEntry) -> None:
        """Add a new entry.

        Raises:
            ValidationError: If the URI is already registered
        """
        if entry.uri in self._entries:
            raise ValidationError("entry.uri", f"URI already registered: {entry.uri}")

        self._entries[entry.uri] = entry
        DocdLogger.registry("Inserted", entry.uri, entry.owner)
        if self._on_insert is not None:
            self._on_insert()

    def remove(self, entry: RegistryEntry) -> None:
        """Destroy an entry and release its watch.

        Raises:
            ValidationError: If this entry is not in the registry
        """
        if self._entries.get(entry.uri) is not entry:
            raise ValidationError("entry", f"Entry not in registry: {entry.uri}")

        self._destroy(entry)
        if not self._entries and self._on_empty is not None:
            self._on_empty()

    def clear(self) -> int:
        """Destroy every entry without notifying the empty listener.

        Returns:
            Number of entries destroyed
        """
        entries = list(self._entries.values())
        for entry in entries:
            self._destroy(entry)
        return len(entries)

    def _destroy(self, entry: RegistryEntry) -> None:
        del self._entries[entry.uri]
        entry.watch.release()
        DocdLogger.registry("Removed", entry.uri, entry.owner)
