"""
Basic tests for RPCP message shapes and errors.
"""

import pytest

from rpcp.errors import (
    ErrorCode,
    MalformedMessageError,
    MethodNotFoundError,
    RpcError,
    error_from_exception,
)
from rpcp.messages import Call, Error, Notification, Result, parse_message


class TestParseMessage:
    """Test message classification."""

    def test_call(self):
        message = parse_message({"jsonrpc": "2.0", "id": 3, "method": "add", "params": [2, 3]})
        assert message == Call(3, "add", [2, 3])

    def test_zero_id_is_still_an_id(self):
        """An id of 0 makes a Call, not a Notification."""
        message = parse_message({"id": 0, "method": "add"})
        assert isinstance(message, Call)
        assert message.id == 0
        assert message.params is None

    def test_falsy_results(self):
        """Results of 0, False, None and empty values are all Results."""
        for value in [0, False, None, "", [], {}]:
            message = parse_message({"id": 0, "result": value})
            assert message == Result(0, value)

    def test_error(self):
        message = parse_message({"id": "a", "error": {"code": 400, "message": "div by zero"}})
        assert message == Error("a", {"code": 400, "message": "div by zero"})

    def test_notification(self):
        message = parse_message({"jsonrpc": "2.0", "method": "ping"})
        assert message == Notification("ping", None)

        message = parse_message({"method": "tick", "params": {"n": 1}})
        assert message == Notification("tick", {"n": 1})

    @pytest.mark.parametrize("raw", [
        None,
        "text",
        [1, 2],
        {},
        {"id": 1},
        {"id": 1, "result": 1, "error": {"code": 1, "message": "x"}},
        {"id": 1, "method": "m", "result": 1},
        {"result": 1},
        {"error": {"code": 1, "message": "x"}},
        {"method": "m", "result": 1},
        {"id": 1, "method": 5},
        {"method": None},
        {"id": 1, "error": "boom"},
        {"id": [1], "result": 1},
        {"id": True, "result": 1},
    ])
    def test_malformed(self, raw):
        """Payloads matching no shape, or more than one, are rejected."""
        with pytest.raises(MalformedMessageError):
            parse_message(raw)


class TestWireFormat:
    """Test message rendering."""

    def test_call_omits_missing_params(self):
        assert Call(0, "ping").to_wire() == {"jsonrpc": "2.0", "id": 0, "method": "ping"}
        assert Call(1, "add", [1, 2]).to_wire() == {
            "jsonrpc": "2.0", "id": 1, "method": "add", "params": [1, 2]
        }

    def test_result_keeps_none(self):
        assert Result(4, None).to_wire() == {"jsonrpc": "2.0", "id": 4, "result": None}

    def test_notification(self):
        assert Notification("tick", 1).to_wire() == {"jsonrpc": "2.0", "method": "tick", "params": 1}


class TestErrors:
    """Test error conversion."""

    def test_payload_omits_missing_data(self):
        assert RpcError(400, "bad").to_payload() == {"code": 400, "message": "bad"}
        assert RpcError(400, "bad", {"x": 1}).to_payload() == {
            "code": 400, "message": "bad", "data": {"x": 1}
        }

    def test_from_payload_defaults(self):
        error = RpcError.from_payload({})
        assert error.code == ErrorCode.INTERNAL_ERROR
        assert error.message == "Internal error"

        error = RpcError.from_payload({"code": "x", "message": 12, "data": [1]})
        assert error.code == -32603
        assert error.message == "12"
        assert error.data == [1]

    def test_method_not_found(self):
        error = MethodNotFoundError("divide")
        assert error.code == -32601
        assert error.message == "Method divide not found"

    def test_rpc_error_passes_through(self):
        error = RpcError(400, "div by zero")
        assert error_from_exception(error) is error

    def test_plain_exception(self):
        error = error_from_exception(ValueError("bad value"))
        assert error.code == -32603
        assert error.message == "bad value"
        assert error.data == {"name": "ValueError"}

    def test_exception_with_code(self):
        class HttpError(Exception):
            def __init__(self, code, message):
                super().__init__(message)
                self.code = code
                self.data = {"status": code}

        error = error_from_exception(HttpError(404, "missing"))
        assert error.code == 404
        assert error.message == "missing"
        assert error.data == {"status": 404}

    def test_empty_message_uses_class_name(self):
        error = error_from_exception(KeyError())
        assert error.message == "KeyError"


if __name__ == "__main__":
    pytest.main([__file__])
