"""
Message streams for RPCP.

A message stream is the collaborator a Peer talks through: it carries whole
structured messages, in order, exactly once each. Framing and transport
setup live outside the peer; this module provides the abstract contract plus
a newline-delimited JSON stream and an in-process pair.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Tuple

logger = logging.getLogger(__name__)


class StreamClosed(Exception):
    """Raised by receive() once the stream has ended."""


class MessageStream(ABC):
    """
    Abstract base class for message streams.

    A stream provides a bidirectional sequence of structured (JSON-compatible)
    messages between two peers.
    """

    @abstractmethod
    async def send(self, message: Any) -> None:
        """Send one message to the remote peer."""
        pass

    @abstractmethod
    async def receive(self) -> Any:
        """Receive the next message; raises StreamClosed at end of stream."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the stream."""
        pass

    @abstractmethod
    def abort(self, reason: Any) -> None:
        """Abort the stream due to an error."""
        pass


class JsonLineStream(MessageStream):
    """Newline-delimited JSON over an open asyncio reader/writer pair."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self._reader = reader
        self._writer = writer
        self._closed = False

    async def send(self, message: Any) -> None:
        if self._closed:
            raise StreamClosed("Cannot send on closed stream")

        line = json.dumps(message, separators=(",", ":")) + "\n"
        self._writer.write(line.encode("utf-8"))
        await self._writer.drain()

    async def receive(self) -> Any:
        while True:
            if self._closed:
                raise StreamClosed("Cannot receive on closed stream")

            line = await self._reader.readline()
            if not line:
                self._closed = True
                raise StreamClosed("End of stream")

            line = line.strip()
            if not line:
                continue

            try:
                return json.loads(line)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping undecodable line: {e}")

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except (ConnectionError, OSError) as e:
                logger.debug(f"Error closing stream: {e}")

    def abort(self, reason: Any) -> None:
        if not self._closed:
            self._closed = True
            self._writer.close()


class MemoryMessageStream(MessageStream):
    """
    One end of an in-process stream.

    Use ``MemoryMessageStream.pair()`` to get two ends wired back to back.
    Messages are delivered as-is, without copying.
    """

    def __init__(self, inbox: "asyncio.Queue[Any]", outbox: "asyncio.Queue[Any]"):
        self._inbox = inbox
        self._outbox = outbox
        self._closed = False

    @classmethod
    def pair(cls) -> Tuple['MemoryMessageStream', 'MemoryMessageStream']:
        """Create two connected streams."""
        a_to_b: asyncio.Queue = asyncio.Queue()
        b_to_a: asyncio.Queue = asyncio.Queue()
        a = cls(b_to_a, a_to_b)
        b = cls(a_to_b, b_to_a)
        return a, b

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: Any) -> None:
        if self._closed:
            raise StreamClosed("Cannot send on closed stream")
        self._outbox.put_nowait(message)

    async def receive(self) -> Any:
        if self._closed and self._inbox.empty():
            raise StreamClosed("Cannot receive on closed stream")

        message = await self._inbox.get()
        if message is _EOF:
            self._closed = True
            raise StreamClosed("End of stream")
        return message

    async def close(self) -> None:
        self._shutdown()

    def abort(self, reason: Any) -> None:
        self._shutdown()

    def _shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake our own pending receive() and signal end of stream to the other end
        self._inbox.put_nowait(_EOF)
        self._outbox.put_nowait(_EOF)


_EOF = object()
