"""Identifier generation for docd.

Two kinds of identifiers are handed out here:

- sequential integer IDs for signal and process classes, used by the state
  machine to key its transition table;
- bus unique names (``:1.N``) for client connections. A unique name is never
  reused during the lifetime of a daemon, so a vanished name can never be
  confused with a newly connected client.

Example:
    Generating identifiers::

        from docd.id_generator import DocdIdGenerator

        sig_id = DocdIdGenerator.next()          # 1
        name = DocdIdGenerator.unique_name()     # ":1.1"
"""

from __future__ import annotations


class DocdIdGenerator:
    """Class-level counters for class IDs and connection names.

    This class should not be instantiated; use the class methods directly.

    Attributes:
        _id: Counter for class IDs.
        _connection: Counter for connection unique names.
    """

    _id: int = 0
    _connection: int = 0

    @classmethod
    def id(cls) -> int:
        """Get the current class ID without incrementing."""
        return cls._id

    @classmethod
    def next(cls) -> int:
        """Generate the next class ID, starting at 1."""
        cls._id += 1
        return cls._id

    @classmethod
    def unique_name(cls) -> str:
        """Generate the next bus unique name.

        Returns:
            A connection name of the form ``:1.N``.
        """
        cls._connection += 1
        return f":1.{cls._connection}"
