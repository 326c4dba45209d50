"""
WebSocket message streams for RPCP.

Adapters that turn an already-open WebSocket connection into a
MessageStream. Each text frame carries one JSON message. Opening the
connection (client connect, server accept) is left to the application.
"""

import asyncio
import json
import logging
from typing import Any

import aiohttp
from websockets.exceptions import ConnectionClosed

from .streams import MessageStream, StreamClosed

logger = logging.getLogger(__name__)


class WebSocketMessageStream(MessageStream):
    """MessageStream over a ``websockets`` client or server connection."""

    def __init__(self, websocket: Any):
        self._websocket = websocket
        self._closed = False

    async def send(self, message: Any) -> None:
        """Send a message over the WebSocket."""
        if self._closed:
            raise StreamClosed("Cannot send on closed stream")

        try:
            await self._websocket.send(json.dumps(message))
        except ConnectionClosed as e:
            self._closed = True
            raise StreamClosed(str(e)) from e

    async def receive(self) -> Any:
        """Receive the next JSON message from the WebSocket."""
        while True:
            if self._closed:
                raise StreamClosed("Cannot receive on closed stream")

            try:
                frame = await self._websocket.recv()
            except ConnectionClosed as e:
                self._closed = True
                raise StreamClosed(str(e)) from e

            if isinstance(frame, bytes):
                frame = frame.decode('utf-8')

            try:
                return json.loads(frame)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping undecodable WebSocket frame: {e}")

    async def close(self) -> None:
        """Close the WebSocket connection."""
        if not self._closed:
            self._closed = True
            try:
                await self._websocket.close()
            except Exception as e:
                logger.warning(f"Error closing WebSocket: {e}")

    def abort(self, reason: Any) -> None:
        """Abort the WebSocket connection."""
        if not self._closed:
            self._closed = True
            asyncio.ensure_future(self._websocket.close())


class AiohttpWebSocketStream(MessageStream):
    """MessageStream over an aiohttp client or server WebSocket."""

    _CLOSE_TYPES = (
        aiohttp.WSMsgType.CLOSE,
        aiohttp.WSMsgType.CLOSING,
        aiohttp.WSMsgType.CLOSED,
    )

    def __init__(self, ws: Any):
        self._ws = ws

    async def send(self, message: Any) -> None:
        if self._ws.closed:
            raise StreamClosed("Cannot send on closed stream")
        await self._ws.send_str(json.dumps(message))

    async def receive(self) -> Any:
        while True:
            msg = await self._ws.receive()

            if msg.type in self._CLOSE_TYPES:
                raise StreamClosed(f"WebSocket closed ({msg.type.name})")
            if msg.type == aiohttp.WSMsgType.ERROR:
                raise self._ws.exception() or ConnectionError("WebSocket error")

            data = msg.data
            if msg.type == aiohttp.WSMsgType.BINARY:
                data = data.decode('utf-8')
            elif msg.type != aiohttp.WSMsgType.TEXT:
                continue

            try:
                return json.loads(data)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping undecodable WebSocket frame: {e}")

    async def close(self) -> None:
        if not self._ws.closed:
            await self._ws.close()

    def abort(self, reason: Any) -> None:
        if not self._ws.closed:
            asyncio.ensure_future(self._ws.close())
