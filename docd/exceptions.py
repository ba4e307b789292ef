"""
Custom exceptions for docd.

All exceptions inherit from DocdError. Two families matter at the process
boundary:

- initialization errors (BusError, NameAcquisitionError) end the daemon with
  exit status 1;
- method errors (DocdMethodError and subclasses) are turned into error replies
  for the calling client and never change daemon state.
"""

from __future__ import annotations

ERROR_PREFIX = "org.freedesktop.DBus.Error"


class DocdError(Exception):
    """Base exception for all docd errors.

    Attributes:
        message: The error message describing what went wrong
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class ValidationError(DocdError):
    """Exception raised when an internal API receives an invalid argument.

    Attributes:
        parameter: The parameter that failed validation
        message: The error message
    """

    def __init__(self, parameter: str, message: str = "") -> None:
        self.parameter = parameter
        if not message:
            message = f"Validation error: invalid {parameter}"
        super().__init__(message)


class SignalDeliveryError(DocdError):
    """Exception raised when a signal cannot be delivered to a process.

    Attributes:
        destination: The intended destination PID
        signal: Name of the signal type that failed to deliver
    """

    def __init__(self, destination: str, message: str = "", signal: str = "") -> None:
        self.destination = destination
        self.signal = signal
        if not message:
            if signal:
                message = (
                    f"Failed to deliver signal '{signal}' to process '{destination}'"
                )
            else:
                message = f"Failed to deliver signal to process '{destination}'"
        super().__init__(message)


class TimerError(DocdError):
    """Exception raised when a timer cannot be started."""

    def __init__(self, timer: str = "", message: str = "") -> None:
        self.timer = timer
        if not message:
            message = f"Timer error: {timer}" if timer else "Timer operation failed"
        super().__init__(message)


class QueueError(DocdError):
    """Exception raised when the signal queue fails."""

    def __init__(self, message: str = "Queue operation failed") -> None:
        super().__init__(message)


class BusError(DocdError):
    """Exception raised when the bus endpoint cannot be set up or used."""


class NameAcquisitionError(BusError):
    """Exception raised when the well-known service name cannot be owned.

    This is how a second daemon instance learns that another one is already
    serving.

    Attributes:
        name: The service name that could not be acquired
    """

    def __init__(self, name: str, message: str = "") -> None:
        self.name = name
        if not message:
            message = f"Service name already owned: {name}"
        super().__init__(message)


class ProtocolError(DocdError):
    """Exception raised for malformed wire messages.

    Attributes:
        serial: Serial of the offending call, when it could be recovered
    """

    error_name = "org.docd.Error.Protocol"

    def __init__(self, message: str, serial: int | None = None) -> None:
        self.serial = serial
        super().__init__(message)


class DocdMethodError(DocdError):
    """Base class for errors returned to a client as an error reply.

    Subclasses set error_name, the name carried on the wire.
    """

    error_name = f"{ERROR_PREFIX}.Failed"


class InvalidArgsError(DocdMethodError):
    """The call arguments are wrong or name an unknown document."""

    error_name = f"{ERROR_PREFIX}.InvalidArgs"


class PermissionDeniedError(DocdMethodError):
    """The caller is not the owner of the document it tried to release.

    The wire name stays BadAddress so existing clients keep matching it.
    """

    error_name = f"{ERROR_PREFIX}.BadAddress"


class UnknownMethodError(DocdMethodError):
    """No such method on the addressed object path and interface."""

    error_name = f"{ERROR_PREFIX}.UnknownMethod"


class ServiceUnavailableError(DocdMethodError):
    """The daemon is not ready to serve requests."""

    error_name = f"{ERROR_PREFIX}.NoServer"


_METHOD_ERRORS: dict[str, type[DocdMethodError]] = {
    cls.error_name: cls
    for cls in (
        DocdMethodError,
        InvalidArgsError,
        PermissionDeniedError,
        UnknownMethodError,
        ServiceUnavailableError,
    )
}


def method_error_from_name(error_name: str, message: str) -> DocdError:
    """Build the exception matching an error reply received by a client.

    Args:
        error_name: Wire error name
        message: Error message from the reply

    Returns:
        An instance of the matching DocdMethodError subclass, ProtocolError for
        protocol errors, or a plain DocdMethodError carrying the unknown name.
    """
    if error_name == ProtocolError.error_name:
        return ProtocolError(message)
    cls = _METHOD_ERRORS.get(error_name)
    if cls is not None:
        return cls(message)
    error = DocdMethodError(message)
    error.error_name = error_name
    return error
