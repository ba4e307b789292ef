"""Test suite for DocdIdGenerator.

This module tests class ID generation and bus unique names.
"""

from collections.abc import Generator

import pytest

from docd import DocdIdGenerator


class TestDocdIdGenerator:
    """Test cases for DocdIdGenerator class."""

    @pytest.fixture(autouse=True)
    def reset_id_generator(self) -> Generator[None, None, None]:
        """Start every test from zero and restore the counters afterwards.

        Signal and process classes keep the IDs they were given, so the
        counters must not stay rewound for the rest of the session.
        """
        saved = (DocdIdGenerator._id, DocdIdGenerator._connection)
        DocdIdGenerator._id = 0
        DocdIdGenerator._connection = 0
        yield
        DocdIdGenerator._id, DocdIdGenerator._connection = saved

    def test_initial_id_is_zero(self) -> None:
        assert DocdIdGenerator.id() == 0

    def test_next_increments_id(self) -> None:
        assert DocdIdGenerator.next() == 1
        assert DocdIdGenerator.next() == 2
        assert DocdIdGenerator.id() == 2

    def test_id_does_not_increment(self) -> None:
        DocdIdGenerator.next()
        assert DocdIdGenerator.id() == 1
        assert DocdIdGenerator.id() == 1

    def test_unique_name_format(self) -> None:
        assert DocdIdGenerator.unique_name() == ":1.1"
        assert DocdIdGenerator.unique_name() == ":1.2"

    def test_unique_names_are_never_reused(self) -> None:
        names = {DocdIdGenerator.unique_name() for _ in range(100)}
        assert len(names) == 100

    def test_unique_names_independent_of_class_ids(self) -> None:
        DocdIdGenerator.next()
        DocdIdGenerator.next()
        assert DocdIdGenerator.unique_name() == ":1.1"
        assert DocdIdGenerator.id() == 2
