"""
Outstanding call tracking.

The call table hands out invocation ids and owns one future per outstanding
call until it is settled exactly once: by a Result, by an Error, by its
timeout, or by fail_all() when the connection goes away.
"""

import asyncio
import logging
from functools import partial
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import CallTimeoutError, ConnectionLostError, RpcError

logger = logging.getLogger(__name__)


class PendingCall:
    """Bookkeeping for one outstanding call."""

    def __init__(self, call_id: int, method: str, future: asyncio.Future):
        self.id = call_id
        self.method = method
        self.future = future
        self.timer: Optional[asyncio.TimerHandle] = None

    def settle(self) -> None:
        """Drop the timeout once the call has an answer."""
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class CallTable:
    """Maps invocation ids to the futures of calls still awaiting an answer."""

    def __init__(self, initial_id: int = 0):
        self._next_id = initial_id
        self._pending: Dict[Any, PendingCall] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, call_id: Any) -> bool:
        return call_id in self._pending

    def begin(self, method: str, timeout: Optional[float] = None) -> Tuple[int, asyncio.Future]:
        """
        Allocate an id and a future for a new outbound call.

        The params are not kept here: the peer writes them in the Call
        message itself, so the table only tracks what settling needs.

        Args:
            method: Method name, kept for timeout errors and logging
            timeout: Seconds before the call is rejected with CallTimeoutError

        Returns:
            (id, future) - the id to send and the future to hand to the caller
        """
        loop = asyncio.get_running_loop()
        call_id = self._next_id
        self._next_id += 1

        pending = PendingCall(call_id, method, loop.create_future())
        if timeout is not None:
            pending.timer = loop.call_later(timeout, self._expire, call_id, timeout)
        self._pending[call_id] = pending
        pending.future.add_done_callback(partial(self._on_future_done, call_id))
        return call_id, pending.future

    def resolve(self, call_id: Any, result: Any) -> bool:
        """Fulfil the call with ``result``; unknown ids are ignored."""
        pending = self._pending.pop(call_id, None)
        if pending is None:
            return False

        pending.settle()
        if not pending.future.done():
            pending.future.set_result(result)
        return True

    def reject(self, call_id: Any, error: Mapping[str, Any]) -> bool:
        """Fail the call with the received error object; unknown ids are ignored."""
        pending = self._pending.pop(call_id, None)
        if pending is None:
            return False

        pending.settle()
        if not pending.future.done():
            pending.future.set_exception(RpcError.from_payload(error))
        return True

    def fail_all(self, reason: ConnectionLostError) -> int:
        """
        Reject every outstanding call; returns how many.

        Each future gets its own copy of ``reason`` so tracebacks from
        separate awaits do not pile up on one exception object.
        """
        pending_calls = list(self._pending.values())
        self._pending.clear()

        for pending in pending_calls:
            pending.settle()
            if not pending.future.done():
                pending.future.set_exception(ConnectionLostError(reason.message, reason.data))

        if pending_calls:
            logger.debug(f"Failed {len(pending_calls)} pending call(s): {reason}")
        return len(pending_calls)

    def _on_future_done(self, call_id: Any, future: asyncio.Future) -> None:
        # A caller that cancels its future gives up on the call
        if future.cancelled():
            pending = self._pending.pop(call_id, None)
            if pending is not None:
                pending.settle()

    def _expire(self, call_id: Any, timeout: float) -> None:
        pending = self._pending.pop(call_id, None)
        if pending is None:
            return

        pending.timer = None
        if not pending.future.done():
            pending.future.set_exception(CallTimeoutError(pending.method, timeout))
        logger.warning(f"Call {call_id} ({pending.method}) timed out after {timeout:g}s")
