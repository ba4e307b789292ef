"""Wire protocol spoken on the docd bus socket.

Protocol: JSON lines over a Unix stream socket.

On connect the daemon greets the client with its unique name::

    {"type": "hello", "unique_name": ":1.4", "service": "org.docd.Daemon"}

Calls and replies::

    {"type": "method_call", "serial": 1, "path": "/org/docd/Daemon",
     "interface": "org.docd.Daemon", "member": "RegisterDocument",
     "args": ["file:///a.pdf"]}
    {"type": "method_return", "reply_serial": 1, "args": [""]}
    {"type": "error", "reply_serial": 1,
     "error_name": "org.freedesktop.DBus.Error.InvalidArgs",
     "message": "URI not registered"}
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Union

from .exceptions import ProtocolError

MAX_MESSAGE_SIZE = 1024 * 1024  # 1MB per line
INTROSPECTABLE_INTERFACE = "org.freedesktop.DBus.Introspectable"


@dataclass
class Hello:
    """Greeting sent by the daemon right after accepting a connection."""

    unique_name: str
    service: str
    type: str = field(default="hello", init=False)


@dataclass
class MethodCall:
    """A method invocation from a client."""

    serial: int
    path: str
    interface: str
    member: str
    args: list[Any] = field(default_factory=list)
    type: str = field(default="method_call", init=False)


@dataclass
class MethodReturn:
    """Successful reply to a method call."""

    reply_serial: int
    args: list[Any] = field(default_factory=list)
    type: str = field(default="method_return", init=False)


@dataclass
class ErrorReply:
    """Error reply to a method call."""

    reply_serial: int | None
    error_name: str
    message: str
    type: str = field(default="error", init=False)


Message = Union[Hello, MethodCall, MethodReturn, ErrorReply]

_MESSAGE_TYPES: dict[str, type] = {
    "hello": Hello,
    "method_call": MethodCall,
    "method_return": MethodReturn,
    "error": ErrorReply,
}

_REQUIRED_STR = {
    "hello": ("unique_name", "service"),
    "method_call": ("path", "interface", "member"),
    "method_return": (),
    "error": ("error_name", "message"),
}


def encode(message: Message) -> bytes:
    """Serialize a message to one newline-terminated JSON line."""
    return json.dumps(asdict(message)).encode() + b"\n"


def _serial(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ProtocolError(f"'{key}' must be an integer")
    return value


def decode(line: bytes) -> Message:
    """Parse one JSON line into a message.

    Raises:
        ProtocolError: If the line is too long, not JSON, or does not describe
            a known message. The serial of a method call is attached to the
            error whenever it could be read.
    """
    if len(line) > MAX_MESSAGE_SIZE:
        raise ProtocolError(f"Message exceeds {MAX_MESSAGE_SIZE} bytes")

    try:
        data = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError("Message must be a JSON object")

    kind = data.get("type")
    cls = _MESSAGE_TYPES.get(kind) if isinstance(kind, str) else None
    if cls is None:
        raise ProtocolError(f"Unknown message type: {kind!r}")

    serial = None
    try:
        serial = _serial(data, "serial") if cls is MethodCall else None
        for key in _REQUIRED_STR[kind]:
            if not isinstance(data.get(key), str):
                raise ProtocolError(f"'{key}' must be a string")
        args = data.get("args", [])
        if not isinstance(args, list):
            raise ProtocolError("'args' must be a list")

        if cls is Hello:
            return Hello(data["unique_name"], data["service"])
        if cls is MethodCall:
            if serial is None:
                raise ProtocolError("'serial' is required")
            return MethodCall(
                serial, data["path"], data["interface"], data["member"], args
            )
        if cls is MethodReturn:
            reply_serial = _serial(data, "reply_serial")
            if reply_serial is None:
                raise ProtocolError("'reply_serial' is required")
            return MethodReturn(reply_serial, args)
        return ErrorReply(
            _serial(data, "reply_serial"), data["error_name"], data["message"]
        )
    except ProtocolError as e:
        e.serial = serial
        raise
