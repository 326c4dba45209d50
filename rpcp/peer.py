"""
Peer: one endpoint of a bidirectional RPC connection.

A Peer owns its call table, method registry and notification channel, reads
messages from a MessageStream and writes replies, calls and notifications
back through a single ordered writer task.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional, Set, Union

from .calls import CallTable
from .dispatcher import Dispatcher
from .errors import ConnectionLostError, ErrorCode, RpcError
from .events import Listener, NotificationChannel
from .messages import Call, Error, Message, Notification
from .registry import Handler, MethodNamespace, MethodRegistry
from .streams import MessageStream, StreamClosed

logger = logging.getLogger(__name__)

_CLOSE = object()


class PeerOptions:
    """Configuration options for peers."""

    def __init__(self,
                 debug: bool = False,
                 call_timeout: Optional[float] = None,
                 initial_id: int = 0,
                 on_send_error: Optional[Callable[[Exception], Optional[Exception]]] = None,
                 on_disconnect: Optional[Callable[[ConnectionLostError],
                                                  Union[None, Awaitable[None]]]] = None,
                 drain_timeout: Optional[float] = 5.0):
        """
        Initialize peer options.

        Args:
            debug: Log every inbound and outbound message at DEBUG level
            call_timeout: Default seconds before an unanswered call fails; None waits forever
            initial_id: First invocation id handed out by the call table
            on_send_error: Callback that may replace a handler exception before it is sent
            on_disconnect: Callback (sync or async) run once when the peer closes
            drain_timeout: Seconds close() waits for queued messages to be sent; None waits forever
        """
        if call_timeout is not None and call_timeout <= 0:
            raise ValueError("call_timeout must be positive")
        if drain_timeout is not None and drain_timeout <= 0:
            raise ValueError("drain_timeout must be positive")

        self.debug = debug
        self.drain_timeout = drain_timeout
        self.call_timeout = call_timeout
        self.initial_id = initial_id
        self.on_send_error = on_send_error
        self.on_disconnect = on_disconnect


class Peer:
    """
    One end of an RPC connection.

    Must be created inside a running event loop: the read loop starts
    immediately.

    Example:
        async with Peer(stream, {"add": lambda a, b: a + b}, ["divide"]) as peer:
            peer.on("tick", print)
            quotient = await peer.call("divide", [1, 2])
            same = await peer.methods.divide(1, 2)
    """

    def __init__(self,
                 stream: MessageStream,
                 local_methods: Optional[Mapping[str, Handler]] = None,
                 remote_methods: Optional[Iterable[str]] = None,
                 options: Optional[PeerOptions] = None):
        self._stream = stream
        self.options = options or PeerOptions()

        self._calls = CallTable(self.options.initial_id)
        self._registry = MethodRegistry(self.call)
        self._channel = NotificationChannel(self._send_notification)
        self._dispatcher = Dispatcher(self._calls, self._registry, self._channel,
                                      self._write, self.options.on_send_error)
        self.methods = MethodNamespace(self._registry)

        # Session state
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._closing = False
        self._close_reason: Optional[ConnectionLostError] = None
        self._closed_event = asyncio.Event()
        self._callbacks: Set[asyncio.Future] = set()

        if local_methods:
            self.register_local_methods(local_methods)
        if remote_methods:
            self.register_remote_methods(remote_methods)

        self._write_task = asyncio.create_task(self._write_loop())
        self._read_task = asyncio.create_task(self._read_loop())

    @property
    def closed(self) -> bool:
        return self._close_reason is not None

    @property
    def close_reason(self) -> Optional[ConnectionLostError]:
        return self._close_reason

    # RPC invocation
    def call(self, method: str, params: Any = None,
             timeout: Optional[float] = None) -> asyncio.Future:
        """
        Invoke ``method`` on the remote peer.

        Args:
            method: Remote method name
            params: Positional (list) or keyed (dict) arguments, or None
            timeout: Overrides PeerOptions.call_timeout for this call

        Returns:
            Future resolved with the remote result, or failed with RpcError

        Raises:
            ConnectionLostError: if the peer is already closed
        """
        self._ensure_open()
        if timeout is None:
            timeout = self.options.call_timeout

        call_id, future = self._calls.begin(method, timeout)
        self._write(Call(call_id, method, params))
        return future

    # RPC configuration
    def register_local_method(self, name: str, handler: Handler) -> 'Peer':
        self._registry.register_local(name, handler)
        return self

    def register_local_methods(self, methods: Mapping[str, Handler]) -> 'Peer':
        for name, handler in methods.items():
            self.register_local_method(name, handler)
        return self

    def register_remote_method(self, name: str) -> 'Peer':
        self._registry.register_remote(name)
        return self

    def register_remote_methods(self, names: Iterable[str]) -> 'Peer':
        if isinstance(names, str):
            raise TypeError("register_remote_methods expects a list of names, not a string")
        for name in names:
            self.register_remote_method(name)
        return self

    # Notifications
    def on(self, event: str, listener: Listener) -> 'Peer':
        self._channel.on(event, listener)
        return self

    add_listener = on

    def remove_listener(self, event: str, listener: Listener) -> 'Peer':
        self._channel.remove_listener(event, listener)
        return self

    def remove_all_listeners(self, event: Optional[str] = None) -> 'Peer':
        self._channel.remove_all_listeners(event)
        return self

    def listeners(self, event: str):
        return self._channel.listeners(event)

    def emit(self, event: str, data: Any = None) -> None:
        """Send a notification to the remote peer. Local listeners are not called."""
        self._ensure_open()
        self._channel.emit(event, data)

    # Lifecycle
    def get_stats(self) -> Dict[str, int]:
        """Get peer statistics."""
        return {
            "pending_calls": len(self._calls),
            "methods": len(self._registry),
            "in_flight": self._dispatcher.in_flight,
            "events": len(self._channel.event_names()),
        }

    async def wait_closed(self) -> None:
        """Wait until the connection is gone."""
        await self._closed_event.wait()

    async def close(self) -> None:
        """Flush queued messages, fail pending calls and close the stream."""
        if self._closing:
            await self.wait_closed()
            return

        self._closing = True
        self._outbox.put_nowait(_CLOSE)
        try:
            await asyncio.wait_for(self._write_task, self.options.drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Outbound queue not drained within {self.options.drain_timeout:g}s")
        except asyncio.CancelledError:
            pass

        self._shutdown(ConnectionLostError("Peer closed"))
        try:
            await self._stream.close()
        except Exception as e:
            logger.warning(f"Error closing stream: {e}")

        for task in (self._read_task, self._write_task):
            if not task.done():
                task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> 'Peer':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Peer {state} pending={len(self._calls)} methods={len(self._registry)}>"

    # Internals
    def _ensure_open(self) -> None:
        if self._closing:
            reason = self._close_reason.message if self._close_reason else "Peer is closing"
            raise ConnectionLostError(f"Peer is closed: {reason}")

    def _send_notification(self, event: str, data: Any) -> None:
        self._write(Notification(event, data))

    def _write(self, message: Message) -> None:
        if self._closing:
            logger.debug(f"Dropping outbound message on closed peer: {message!r}")
            return

        wire = message.to_wire()
        if self.options.debug:
            logger.debug(f"-> {wire}")
        self._outbox.put_nowait(wire)

    async def _write_loop(self) -> None:
        """Send queued messages in order."""
        while True:
            wire = await self._outbox.get()
            if wire is _CLOSE:
                return

            while wire is not None:
                try:
                    await self._stream.send(wire)
                    wire = None
                except asyncio.CancelledError:
                    raise
                except (TypeError, ValueError) as e:
                    wire = self._replace_unencodable(wire, e)
                except Exception as e:
                    self._abort(ConnectionLostError(f"Connection lost: {e}"))
                    return

    def _replace_unencodable(self, wire: Dict[str, Any], error: Exception) -> Optional[Dict[str, Any]]:
        """
        Handle a message the stream cannot encode.

        Returns the message to send instead, or None when nothing is sent.
        Replies always go out: a result becomes an INTERNAL_ERROR reply and an
        error loses its data. An outbound call is failed locally.
        """
        logger.error(f"Cannot encode outbound message {wire!r}: {error}")

        if "result" in wire:
            payload = RpcError(ErrorCode.INTERNAL_ERROR, f"Result could not be encoded: {error}").to_payload()
            return Error(wire["id"], payload).to_wire()

        if "error" in wire:
            if "data" not in wire["error"]:
                return None
            sent = RpcError.from_payload(wire["error"])
            return Error(wire["id"], RpcError(sent.code, sent.message).to_payload()).to_wire()

        if "method" in wire and "id" in wire:
            payload = RpcError(ErrorCode.INTERNAL_ERROR, f"Call could not be encoded: {error}").to_payload()
            self._calls.reject(wire["id"], payload)
        return None

    async def _read_loop(self) -> None:
        """Main message reading loop."""
        while not self.closed:
            try:
                message = await self._stream.receive()
            except asyncio.CancelledError:
                raise
            except StreamClosed:
                logger.debug("Stream ended")
                self._abort(ConnectionLostError("Connection closed"))
                return
            except Exception as e:
                self._abort(ConnectionLostError(f"Connection lost: {e}"))
                return

            if self.options.debug:
                logger.debug(f"<- {message}")
            self._dispatcher.dispatch(message)

    def _abort(self, reason: ConnectionLostError) -> None:
        """Shut down after a stream failure."""
        if not self._shutdown(reason):
            return
        try:
            self._stream.abort(reason)
        except Exception as e:
            logger.debug(f"Error aborting stream: {e}")

    def _shutdown(self, reason: ConnectionLostError) -> bool:
        if self._close_reason is not None:
            return False

        self._closing = True
        self._close_reason = reason
        logger.info(f"Peer closed: {reason.message}")

        current = asyncio.current_task()
        for task in (self._read_task, self._write_task):
            if task is not current and not task.done():
                task.cancel()

        self._dispatcher.cancel_pending()
        self._channel.cancel_pending()
        self._calls.fail_all(reason)
        self._closed_event.set()
        self._notify_disconnect(reason)
        return True

    def _notify_disconnect(self, reason: ConnectionLostError) -> None:
        callback = self.options.on_disconnect
        if callback is None:
            return

        try:
            result = callback(reason)
        except Exception:
            logger.exception("on_disconnect callback failed")
            return

        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._callbacks.add(future)
            future.add_done_callback(self._on_callback_done)

    def _on_callback_done(self, future: asyncio.Future) -> None:
        self._callbacks.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"on_disconnect callback failed: {future.exception()!r}")
