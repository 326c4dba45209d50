"""
Notification channel for RPCP.

Listeners are kept per event name in registration order. Inbound
notifications fan out to a snapshot of the listeners, so a listener may
remove itself (or others) while being called. Outbound notifications go to
the remote peer only; they are never delivered to local listeners.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Any]


class NotificationChannel:
    """Per-event listener lists plus the outbound emit path."""

    def __init__(self, send: Callable[[str, Any], None]):
        self._send = send
        self._listeners: Dict[str, List[Listener]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def on(self, event: str, listener: Listener) -> None:
        """Append ``listener`` to the listeners of ``event``."""
        if not callable(listener):
            raise TypeError(f"Listener must be callable, got {type(listener).__name__}")
        self._listeners.setdefault(event, []).append(listener)

    def remove_listener(self, event: str, listener: Listener) -> bool:
        """Remove the most recently added registration of ``listener``."""
        listeners = self._listeners.get(event)
        if not listeners:
            return False

        for index in range(len(listeners) - 1, -1, -1):
            if listeners[index] == listener:
                del listeners[index]
                break
        else:
            return False

        if not listeners:
            del self._listeners[event]
        return True

    def remove_all_listeners(self, event: Optional[str] = None) -> None:
        """Remove every listener of ``event``, or of every event if None."""
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def listeners(self, event: str) -> List[Listener]:
        return list(self._listeners.get(event, ()))

    def event_names(self) -> List[str]:
        return list(self._listeners)

    def emit(self, event: str, data: Any = None) -> None:
        """Send a notification to the remote peer."""
        self._send(event, data)

    def deliver(self, event: str, params: Any) -> int:
        """
        Call every listener of ``event`` with ``params``.

        A failing listener is logged and does not stop the others.

        Returns:
            Number of listeners called
        """
        listeners = self.listeners(event)
        for listener in listeners:
            try:
                result = listener(params)
                if inspect.isawaitable(result):
                    self._track(event, result)
            except Exception:
                logger.exception(f"Listener for {event!r} failed")
        return len(listeners)

    def cancel_pending(self) -> None:
        """Cancel asynchronous listeners that are still running."""
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def _track(self, event: str, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _done(task: asyncio.Task) -> None:
            self._tasks.discard(task)
            if task.cancelled():
                return
            error = task.exception()
            if error is not None:
                logger.error(f"Listener for {event!r} failed: {error!r}", exc_info=error)

        task.add_done_callback(_done)
