"""
docd - single-instance document ownership daemon.

Applications register the documents they open with the daemon over a local
bus; the daemon remembers which connection owns each document, forgets the
claim when that connection goes away, and exits on its own once nothing has
been registered for a while.
"""

from __future__ import annotations

__version__ = "0.1.0"

# Core components
from .bus import DocdBus
from .client import DocdClient
from .config import DocdConfig, load_config
from .daemon import DocdDaemon, run_daemon

# Exceptions
from .exceptions import (
    BusError,
    DocdError,
    DocdMethodError,
    InvalidArgsError,
    NameAcquisitionError,
    PermissionDeniedError,
    ProtocolError,
    QueueError,
    ServiceUnavailableError,
    SignalDeliveryError,
    TimerError,
    UnknownMethodError,
    ValidationError,
)
from .id_generator import DocdIdGenerator
from .idle_timer import IdleShutdownTimer, IdleTimeout
from .liveness import LivenessWatch, LivenessWatcher
from .logger import DocdLogger
from .process import DocdProcess
from .registry import DocumentRegistry, RegistryEntry
from .signal import DocdSignal
from .state import DocdState, start
from .state_machine import DocdStateMachine
from .system import DocdSystem

# System signals
from .system_signals import (
    DocdMethodCallSignal,
    DocdNameAcquiredSignal,
    DocdNameAppearedSignal,
    DocdNameLostSignal,
    DocdNameVanishedSignal,
    DocdStartSignal,
    DocdStoppingSignal,
)
from .timer import DocdTimer

__all__ = [
    "__version__",
    # Core components
    "DocdBus",
    "DocdClient",
    "DocdConfig",
    "DocdDaemon",
    "DocdIdGenerator",
    "DocdLogger",
    "DocdProcess",
    "DocdSignal",
    "DocdState",
    "DocdStateMachine",
    "DocdSystem",
    "DocdTimer",
    "DocumentRegistry",
    "IdleShutdownTimer",
    "IdleTimeout",
    "LivenessWatch",
    "LivenessWatcher",
    "RegistryEntry",
    "load_config",
    "run_daemon",
    # State constants
    "start",
    # System signals
    "DocdMethodCallSignal",
    "DocdNameAcquiredSignal",
    "DocdNameAppearedSignal",
    "DocdNameLostSignal",
    "DocdNameVanishedSignal",
    "DocdStartSignal",
    "DocdStoppingSignal",
    # Exceptions
    "BusError",
    "DocdError",
    "DocdMethodError",
    "InvalidArgsError",
    "NameAcquisitionError",
    "PermissionDeniedError",
    "ProtocolError",
    "QueueError",
    "ServiceUnavailableError",
    "SignalDeliveryError",
    "TimerError",
    "UnknownMethodError",
    "ValidationError",
]
