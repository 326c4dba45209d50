"""
Shared test doubles for RPCP tests.
"""

import asyncio
import json

import pytest

from rpcp.streams import MessageStream, StreamClosed

_END = object()


class MockStream(MessageStream):
    """Scripted message stream: tests feed inbound messages and read what was sent."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self.aborted = None
        self._inbox = None
        self._outbox = None

    def _queues(self):
        # Created lazily so the queues belong to the test's event loop
        if self._inbox is None:
            self._inbox = asyncio.Queue()
            self._outbox = asyncio.Queue()
        return self._inbox, self._outbox

    def feed(self, message):
        """Queue a message for the peer to receive."""
        self._queues()[0].put_nowait(message)

    def fail(self, error: Exception):
        """Make the next receive() raise ``error``."""
        self._queues()[0].put_nowait(error)

    def end(self):
        """Make the next receive() report end of stream."""
        self._queues()[0].put_nowait(_END)

    async def next_sent(self, timeout: float = 1.0):
        """Wait for the next message the peer sends."""
        return await asyncio.wait_for(self._queues()[1].get(), timeout)

    async def send(self, message) -> None:
        if self.closed:
            raise StreamClosed("Mock stream closed")
        # Only JSON-encodable messages make it onto a real wire
        json.dumps(message)
        self.sent.append(message)
        self._queues()[1].put_nowait(message)

    async def receive(self):
        item = await self._queues()[0].get()
        if item is _END:
            raise StreamClosed("Mock stream ended")
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True

    def abort(self, reason) -> None:
        self.closed = True
        self.aborted = reason


async def _settle(rounds: int = 10) -> None:
    """Let queued tasks and callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def stream():
    return MockStream()


@pytest.fixture
def settle():
    return _settle
