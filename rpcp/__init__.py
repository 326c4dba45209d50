"""
RPCP - bidirectional RPC between peers

Both ends of a connection can call methods on each other, expose methods to
be called, and send one-way notifications over any ordered message stream.
"""

from .peer import Peer, PeerOptions
from .calls import CallTable
from .registry import MethodRegistry, MethodNamespace
from .events import NotificationChannel
from .dispatcher import Dispatcher
from .messages import Call, Result, Error, Notification, parse_message
from .errors import (
    ErrorCode,
    RpcError,
    MethodNotFoundError,
    ConnectionLostError,
    CallTimeoutError,
    MalformedMessageError,
)
from .streams import MessageStream, StreamClosed, JsonLineStream, MemoryMessageStream
from .websocket import WebSocketMessageStream, AiohttpWebSocketStream

__version__ = "0.1.0"
__all__ = [
    "Peer",
    "PeerOptions",
    "CallTable",
    "MethodRegistry",
    "MethodNamespace",
    "NotificationChannel",
    "Dispatcher",
    "Call",
    "Result",
    "Error",
    "Notification",
    "parse_message",
    "ErrorCode",
    "RpcError",
    "MethodNotFoundError",
    "ConnectionLostError",
    "CallTimeoutError",
    "MalformedMessageError",
    "MessageStream",
    "StreamClosed",
    "JsonLineStream",
    "MemoryMessageStream",
    "WebSocketMessageStream",
    "AiohttpWebSocketStream",
]
