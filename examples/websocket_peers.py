#!/usr/bin/env python3
"""
Peers over a WebSocket connection using the websockets package.

The server calls back into the client while answering the client's call,
showing that both ends are full peers.
"""

import asyncio
import logging

from websockets.asyncio.client import connect
from websockets.asyncio.server import serve

from rpcp import Peer, PeerOptions, WebSocketMessageStream

logger = logging.getLogger(__name__)


async def handle_connection(websocket):
    """Serve one client for as long as it stays connected."""
    peer = Peer(WebSocketMessageStream(websocket), remote_methods=["locale"])

    async def hello(name):
        locale = await peer.methods.locale()
        greeting = "Bonjour" if locale == "fr" else "Hello"
        peer.emit("greeted", {"name": name})
        return f"{greeting}, {name}!"

    peer.register_local_method("hello", hello)
    peer.register_local_method("square", lambda x: x * x)
    await peer.wait_closed()


async def run_client(uri: str):
    async with connect(uri) as websocket:
        options = PeerOptions(call_timeout=5.0)
        async with Peer(WebSocketMessageStream(websocket),
                        local_methods={"locale": lambda: "fr"},
                        remote_methods=["hello", "square"],
                        options=options) as peer:
            peer.on("greeted", lambda params: logger.info(f"server greeted {params['name']}"))

            print(await peer.methods.hello("World"))
            print(f"square(7) = {await peer.methods.square(7)}")


async def main():
    async with serve(handle_connection, "localhost", 8765):
        await run_client("ws://localhost:8765")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
