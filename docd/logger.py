"""Logging utilities for docd.

This module provides the DocdLogger class, a class-level facade over the
standard ``logging`` module. It records lifecycle events, signal deliveries,
state transitions, registry mutations, liveness notifications, timer changes
and bus activity. The daemon's stderr is its operator channel, so everything
goes there.

Configuration can be done via:
    1. Direct API calls to DocdLogger.configure()
    2. Environment variables (DOCD_LOG_LEVEL, DOCD_LOG_CATEGORIES)

Example:
    Basic usage::

        from docd.logger import DocdLogger

        DocdLogger.configure(level="INFO", categories={"signals": False})
        DocdLogger.info("daemon starting")
        DocdLogger.registry("Inserted", "file:///a.pdf", ":1.4")

    Environment variable configuration::

        export DOCD_LOG_LEVEL=WARNING
        export DOCD_LOG_CATEGORIES=registry,liveness,timers
"""

from __future__ import annotations

import logging
import os
import sys
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from docd.process import DocdProcess
    from docd.signal import DocdSignal
    from docd.state import DocdState


class LogCategory(Enum):
    """Log categories, each independently enabled or disabled."""

    SIGNALS = "signals"  # Signal delivery and routing events
    STATES = "states"  # State transition events
    PROCESSES = "processes"  # Process lifecycle events
    TIMERS = "timers"  # Idle timer arm/disarm/expiry
    REGISTRY = "registry"  # Document registry mutations
    LIVENESS = "liveness"  # Client watch notifications
    BUS = "bus"  # Connections, name ownership, method calls
    SYSTEM = "system"  # Control loop events


def _default_categories() -> dict[LogCategory, bool]:
    return {category: True for category in LogCategory}


class DocdLogger:
    """Central logging facility for docd.

    All methods are class methods. The logger auto-configures from the
    environment on first use unless configure() was called explicitly.

    Attributes:
        _logger: Internal Python logger instance.
        _configured: Whether the logger has been configured.
        _enabled_categories: Enabled state per log category.
        _min_level: Minimum log level to output.
    """

    logging.basicConfig(
        stream=sys.stderr,
        format="%(asctime)s docd[%(process)d] %(message)s",
        level=logging.INFO,
    )

    _logger: logging.Logger = logging.getLogger("docd")
    _configured: bool = False
    _enabled_categories: dict[LogCategory, bool] = _default_categories()
    _min_level: int = logging.INFO

    @classmethod
    def configure(
        cls,
        level: str | None = None,
        categories: dict[str, bool] | None = None,
        reset: bool = False,
    ) -> None:
        """Configure the log level and categories.

        Environment variables take precedence over the level argument, and
        DOCD_LOG_CATEGORIES is only consulted when no categories are given.

        Args:
            level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            categories: Mapping of category name to enabled flag.
            reset: Restore defaults before applying the settings.

        Environment Variables:
            DOCD_LOG_LEVEL: Log level name.
            DOCD_LOG_CATEGORIES: Comma-separated categories to enable; all
                unlisted categories are disabled.
        """
        if reset:
            cls._enabled_categories = _default_categories()
            cls._min_level = logging.INFO
            cls._logger.setLevel(logging.INFO)

        env_level = os.getenv("DOCD_LOG_LEVEL")
        if env_level:
            level = env_level

        env_categories = os.getenv("DOCD_LOG_CATEGORIES")
        if env_categories and not categories:
            wanted = {c.strip().lower() for c in env_categories.split(",")}
            categories = {cat.value: cat.value in wanted for cat in LogCategory}

        if level:
            level_upper = level.upper()
            if isinstance(getattr(logging, level_upper, None), int):
                cls._min_level = getattr(logging, level_upper)
                cls._logger.setLevel(cls._min_level)
            else:
                cls._logger.warning(f"Invalid log level: {level}. Using current level.")

        if categories:
            for category_name, enabled in categories.items():
                try:
                    cls._enabled_categories[LogCategory(category_name.lower())] = enabled
                except ValueError:
                    cls._logger.warning(f"Invalid log category: {category_name}")

        cls._configured = True

    @classmethod
    def is_enabled(cls, category: LogCategory, level: int = logging.DEBUG) -> bool:
        """Check whether a category is enabled at the given level.

        Callers use this to skip formatting work when the line would be
        dropped anyway.
        """
        if not cls._configured:
            cls.configure()

        return cls._enabled_categories.get(
            category, False
        ) and cls._logger.isEnabledFor(level)

    @classmethod
    def get_configuration(cls) -> dict[str, Any]:
        """Return the current level name and category flags."""
        return {
            "level": logging.getLevelName(cls._min_level),
            "categories": {
                cat.value: enabled for cat, enabled in cls._enabled_categories.items()
            },
        }

    @classmethod
    def info(cls, msg: str) -> None:
        if cls._logger.isEnabledFor(logging.INFO):
            cls._logger.info(msg)

    @classmethod
    def debug(cls, msg: str) -> None:
        if cls._logger.isEnabledFor(logging.DEBUG):
            cls._logger.debug(msg)

    @classmethod
    def warning(cls, msg: str) -> None:
        if cls._logger.isEnabledFor(logging.WARNING):
            cls._logger.warning(msg)

    @classmethod
    def error(cls, msg: str) -> None:
        if cls._logger.isEnabledFor(logging.ERROR):
            cls._logger.error(msg)

    @classmethod
    def signal(cls, sig_type: str, signal: DocdSignal, process: DocdProcess) -> None:
        """Log a signal delivery ("Sig") or a non-delivery ("Sig-NA")."""
        if not cls.is_enabled(LogCategory.SIGNALS):
            return

        signame_num = f"{signal.name()}({signal.id()})"
        cls.debug(
            f"|{sig_type:<10} |{signame_num:<36} |{process.current_state():<16} "
            f"|{str(signal.dst()):<24} |{str(signal.src()):<24} |{signal.dumpdata()}"
        )

    @classmethod
    def state(
        cls, process: DocdProcess, current_state: DocdState | str, new_state: DocdState
    ) -> None:
        """Log a state transition of a process."""
        if not cls.is_enabled(LogCategory.STATES):
            return

        cls.debug(
            f"|{'State':<10} |{'newstate':<36} |{new_state:<16} "
            f"|{current_state:<24} |{process.pid():<24}"
        )

    @classmethod
    def create(cls, process: DocdProcess, parent_pid: str | None) -> None:
        """Log process creation."""
        if not cls.is_enabled(LogCategory.PROCESSES):
            return

        parent_str = parent_pid if parent_pid is not None else "None"
        cls.debug(f"|{'Created':<10} |{'create':<36} |{process.pid():<16} |{parent_str}")

    @classmethod
    def event(cls, event: str, process: DocdProcess, detail: str) -> None:
        """Log a generic process event such as registration or stop."""
        if not cls.is_enabled(LogCategory.PROCESSES):
            return

        cls.debug(
            f"|{event:<10} |{'':<36} |{process.current_state():<16} |{detail}"
        )

    @classmethod
    def registry(cls, action: str, uri: str, owner: str) -> None:
        """Log a registry mutation."""
        if not cls.is_enabled(LogCategory.REGISTRY, logging.INFO):
            return

        cls.info(f"registry: {action} {uri} owner={owner}")

    @classmethod
    def liveness(cls, action: str, name: str, detail: str = "") -> None:
        """Log a liveness watch event."""
        if not cls.is_enabled(LogCategory.LIVENESS):
            return

        cls.debug(f"liveness: {action} {name} {detail}".rstrip())

    @classmethod
    def timer(cls, action: str, detail: str = "") -> None:
        """Log an idle timer transition."""
        if not cls.is_enabled(LogCategory.TIMERS, logging.INFO):
            return

        cls.info(f"idle-timer: {action} {detail}".rstrip())

    @classmethod
    def bus(cls, action: str, detail: str = "") -> None:
        """Log bus activity (connections, calls, name ownership)."""
        if not cls.is_enabled(LogCategory.BUS):
            return

        cls.debug(f"bus: {action} {detail}".rstrip())

    @classmethod
    def system(cls, msg: str) -> None:
        """Log a control loop event at info level."""
        if not cls.is_enabled(LogCategory.SYSTEM, logging.INFO):
            return

        cls.info(msg)
