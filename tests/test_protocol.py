"""Tests for the bus wire protocol."""

import json

import pytest

from docd.exceptions import ProtocolError
from docd.protocol import (
    MAX_MESSAGE_SIZE,
    ErrorReply,
    Hello,
    MethodCall,
    MethodReturn,
    decode,
    encode,
)


class TestEncode:
    """Messages are single JSON lines."""

    def test_method_call_line(self) -> None:
        line = encode(
            MethodCall(3, "/org/docd/Daemon", "org.docd.Daemon", "RegisterDocument", ["file:///a.pdf"])
        )
        assert line.endswith(b"\n")
        assert line.count(b"\n") == 1
        assert json.loads(line) == {
            "type": "method_call",
            "serial": 3,
            "path": "/org/docd/Daemon",
            "interface": "org.docd.Daemon",
            "member": "RegisterDocument",
            "args": ["file:///a.pdf"],
        }

    def test_error_reply_line(self) -> None:
        data = json.loads(encode(ErrorReply(3, "org.freedesktop.DBus.Error.InvalidArgs", "URI not registered")))
        assert data["type"] == "error"
        assert data["reply_serial"] == 3

    def test_decode_own_output(self) -> None:
        hello = Hello(":1.4", "org.docd.Daemon")
        assert decode(encode(hello)) == hello
        ret = MethodReturn(9, [""])
        assert decode(encode(ret)) == ret


class TestDecode:
    """Malformed input is rejected with ProtocolError."""

    def test_not_json(self) -> None:
        with pytest.raises(ProtocolError, match="Invalid JSON"):
            decode(b"{nope\n")

    def test_not_utf8(self) -> None:
        with pytest.raises(ProtocolError):
            decode(b"\x80abc\n")

    def test_not_an_object(self) -> None:
        with pytest.raises(ProtocolError, match="JSON object"):
            decode(b"[1, 2]\n")

    def test_unknown_type(self) -> None:
        with pytest.raises(ProtocolError, match="Unknown message type"):
            decode(b'{"type": "signal"}\n')

    def test_missing_type(self) -> None:
        with pytest.raises(ProtocolError):
            decode(b'{"serial": 1}\n')

    def test_too_long(self) -> None:
        with pytest.raises(ProtocolError, match="exceeds"):
            decode(b" " * (MAX_MESSAGE_SIZE + 1))

    def test_call_without_serial(self) -> None:
        line = b'{"type": "method_call", "path": "/", "interface": "i", "member": "m"}'
        with pytest.raises(ProtocolError, match="serial") as info:
            decode(line)
        assert info.value.serial is None

    def test_call_with_bad_serial(self) -> None:
        line = b'{"type": "method_call", "serial": "1", "path": "/", "interface": "i", "member": "m"}'
        with pytest.raises(ProtocolError):
            decode(line)

    def test_boolean_serial_rejected(self) -> None:
        line = b'{"type": "method_call", "serial": true, "path": "/", "interface": "i", "member": "m"}'
        with pytest.raises(ProtocolError):
            decode(line)

    def test_serial_kept_on_bad_fields(self) -> None:
        line = b'{"type": "method_call", "serial": 5, "path": "/", "interface": "i", "member": 7}'
        with pytest.raises(ProtocolError, match="member") as info:
            decode(line)
        assert info.value.serial == 5

    def test_args_must_be_list(self) -> None:
        line = b'{"type": "method_call", "serial": 5, "path": "/", "interface": "i", "member": "m", "args": "x"}'
        with pytest.raises(ProtocolError, match="args") as info:
            decode(line)
        assert info.value.serial == 5

    def test_args_default_empty(self) -> None:
        line = b'{"type": "method_call", "serial": 5, "path": "/", "interface": "i", "member": "m"}'
        call = decode(line)
        assert isinstance(call, MethodCall)
        assert call.args == []

    def test_return_requires_reply_serial(self) -> None:
        with pytest.raises(ProtocolError, match="reply_serial"):
            decode(b'{"type": "method_return", "args": []}')

    def test_error_without_serial(self) -> None:
        error = decode(b'{"type": "error", "error_name": "org.docd.Error.Protocol", "message": "bad"}')
        assert isinstance(error, ErrorReply)
        assert error.reply_serial is None
