"""
Inbound message routing.

The dispatcher classifies each inbound message once, in arrival order, and
hands it to the call table (Result, Error), the method registry (Call) or the
notification channel (Notification). Invocations run as separate tasks so a
slow handler never holds up routing of later messages; each one produces
exactly one reply.
"""

import asyncio
import logging
from typing import Any, Callable, Optional, Set

from .calls import CallTable
from .errors import MalformedMessageError, RpcError, error_from_exception
from .events import NotificationChannel
from .messages import Call, Error, Message, Notification, Result, parse_message
from .registry import MethodRegistry

logger = logging.getLogger(__name__)


class Dispatcher:
    """Routes parsed messages to the component that owns them."""

    def __init__(self,
                 calls: CallTable,
                 registry: MethodRegistry,
                 channel: NotificationChannel,
                 write: Callable[[Message], None],
                 on_send_error: Optional[Callable[[Exception], Optional[Exception]]] = None):
        self._calls = calls
        self._registry = registry
        self._channel = channel
        self._write = write
        self._on_send_error = on_send_error
        self._invocations: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        """Number of invocations whose handler has not settled yet."""
        return len(self._invocations)

    def dispatch(self, raw: Any) -> None:
        """Classify and route one inbound message. Never raises."""
        try:
            message = parse_message(raw)
        except MalformedMessageError as e:
            logger.warning(f"Dropping malformed message ({e}): {raw!r}")
            return

        if isinstance(message, Notification):
            self._channel.deliver(message.method, message.params)
        elif isinstance(message, Result):
            if not self._calls.resolve(message.id, message.result):
                logger.warning(f"Dropping result for unknown call id {message.id!r}")
        elif isinstance(message, Error):
            if not self._calls.reject(message.id, message.error):
                logger.warning(f"Dropping error for unknown call id {message.id!r}")
        elif isinstance(message, Call):
            task = asyncio.ensure_future(self._invoke(message))
            self._invocations.add(task)
            task.add_done_callback(self._invocations.discard)

    def cancel_pending(self) -> None:
        """Cancel invocations still running; their replies are never sent."""
        for task in list(self._invocations):
            task.cancel()
        self._invocations.clear()

    async def _invoke(self, call: Call) -> None:
        try:
            result = await self._registry.invoke(call.method, call.params)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._write(Error(call.id, self._error_payload(call, e)))
        else:
            self._write(Result(call.id, result))

    def _error_payload(self, call: Call, exc: Exception) -> dict:
        if not isinstance(exc, RpcError):
            logger.debug(f"Handler for {call.method!r} raised {exc!r}")

        if self._on_send_error is not None:
            try:
                replacement = self._on_send_error(exc)
            except Exception:
                logger.exception("on_send_error callback failed")
                replacement = None
            if replacement is not None:
                exc = replacement

        return error_from_exception(exc).to_payload()
