"""
Error types for RPCP.

Every failure that crosses the wire is an RpcError carrying a JSON-RPC style
integer code, a message and optional structured data.
"""

from enum import IntEnum
from typing import Any, Dict, Mapping, Optional


class ErrorCode(IntEnum):
    """Wire error codes."""
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    # Raised locally, never received from a conforming peer
    CONNECTION_LOST = -32000
    CALL_TIMEOUT = -32001


class RpcError(Exception):
    """
    An error reported by (or destined for) the remote peer.

    Handlers may raise RpcError directly to choose the code sent back to the
    caller. Calls rejected by the remote side raise RpcError locally.
    """

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(message)
        self.code = int(code)
        self.message = message
        self.data = data

    def to_payload(self) -> Dict[str, Any]:
        """Render the error object sent on the wire."""
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> 'RpcError':
        """Build an RpcError from a received error object."""
        code = payload.get("code", ErrorCode.INTERNAL_ERROR)
        if not isinstance(code, int) or isinstance(code, bool):
            code = ErrorCode.INTERNAL_ERROR
        message = payload.get("message")
        if message is None:
            message = "Internal error"
        return cls(code, str(message), payload.get("data"))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code}, message={self.message!r})"


class MethodNotFoundError(RpcError):
    """Raised when an invocation names a method nobody registered."""

    def __init__(self, method: str):
        super().__init__(ErrorCode.METHOD_NOT_FOUND, f"Method {method} not found")
        self.method = method


class ConnectionLostError(RpcError):
    """The stream closed before a call could be answered."""

    def __init__(self, message: str = "Connection lost", data: Any = None):
        super().__init__(ErrorCode.CONNECTION_LOST, message, data)


class CallTimeoutError(RpcError):
    """An outstanding call was not answered within its timeout."""

    def __init__(self, method: str, timeout: float):
        super().__init__(ErrorCode.CALL_TIMEOUT,
                         f"Call to {method} timed out after {timeout:g}s")
        self.method = method
        self.timeout = timeout


class MalformedMessageError(Exception):
    """An inbound message does not match exactly one message shape."""

    def __init__(self, reason: str, message: Any = None):
        super().__init__(reason)
        self.message = message


def error_from_exception(exc: BaseException) -> RpcError:
    """Convert a handler failure into the RpcError sent back to the caller."""
    if isinstance(exc, RpcError):
        return exc

    code = getattr(exc, "code", None)
    if not isinstance(code, int) or isinstance(code, bool):
        code = ErrorCode.INTERNAL_ERROR

    message = str(exc) or type(exc).__name__
    data: Optional[Any] = getattr(exc, "data", None)
    if data is None:
        data = {"name": type(exc).__name__}

    return RpcError(code, message, data)
