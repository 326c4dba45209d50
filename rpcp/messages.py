"""
Message shapes exchanged between peers.

Each inbound payload is parsed into exactly one of Call, Result, Error or
Notification. Classification uses field presence only, so falsy values such
as an id of 0 or a result of 0 are handled like any other value.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Union

from .errors import MalformedMessageError

JSONRPC_VERSION = "2.0"


@dataclass
class Call:
    """An invocation that expects exactly one Result or Error back."""
    id: Any
    method: str
    params: Any = None

    def to_wire(self) -> Dict[str, Any]:
        message = {"jsonrpc": JSONRPC_VERSION, "id": self.id, "method": self.method}
        if self.params is not None:
            message["params"] = self.params
        return message


@dataclass
class Result:
    """Successful answer to a Call."""
    id: Any
    result: Any = None

    def to_wire(self) -> Dict[str, Any]:
        return {"jsonrpc": JSONRPC_VERSION, "id": self.id, "result": self.result}


@dataclass
class Error:
    """Failed answer to a Call. ``error`` holds {code, message, data?}."""
    id: Any
    error: Dict[str, Any]

    def to_wire(self) -> Dict[str, Any]:
        return {"jsonrpc": JSONRPC_VERSION, "id": self.id, "error": self.error}


@dataclass
class Notification:
    """One-way named event, never answered."""
    method: str
    params: Any = None

    def to_wire(self) -> Dict[str, Any]:
        message = {"jsonrpc": JSONRPC_VERSION, "method": self.method}
        if self.params is not None:
            message["params"] = self.params
        return message


Message = Union[Call, Result, Error, Notification]


def parse_message(raw: Any) -> Message:
    """
    Classify a decoded wire message.

    Raises:
        MalformedMessageError: if the payload matches no shape or more than one
    """
    if not isinstance(raw, Mapping):
        raise MalformedMessageError("message is not an object", raw)

    has_method = "method" in raw
    has_result = "result" in raw
    has_error = "error" in raw

    if has_method and not isinstance(raw["method"], str):
        raise MalformedMessageError("method must be a string", raw)

    if "id" not in raw:
        if has_method and not has_result and not has_error:
            return Notification(raw["method"], raw.get("params"))
        raise MalformedMessageError("message without id is not a notification", raw)

    shapes = int(has_method) + int(has_result) + int(has_error)
    if shapes != 1:
        raise MalformedMessageError(
            "message must carry exactly one of method, result or error", raw)

    message_id = raw["id"]
    if isinstance(message_id, bool) or not isinstance(message_id, (str, int, float, type(None))):
        raise MalformedMessageError("id must be a string or a number", raw)

    if has_method:
        return Call(message_id, raw["method"], raw.get("params"))
    if has_result:
        return Result(message_id, raw["result"])

    error = raw["error"]
    if not isinstance(error, Mapping):
        raise MalformedMessageError("error must be an object", raw)
    return Error(message_id, dict(error))
