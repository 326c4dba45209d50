#!/usr/bin/env python3
"""
Serving peers from an aiohttp application.

Run it, then connect with any client that speaks JSON-RPC shaped messages
over a WebSocket at ws://localhost:8080/rpc.
"""

import logging

from aiohttp import web

from rpcp import AiohttpWebSocketStream, Peer

logger = logging.getLogger(__name__)


async def rpc_handler(request: web.Request) -> web.WebSocketResponse:
    ws = web.WebSocketResponse()
    await ws.prepare(request)

    peer = Peer(AiohttpWebSocketStream(ws), {
        "echo": lambda value: value,
        "add": lambda a, b: a + b,
    })
    peer.on("log", lambda params: logger.info(f"client says: {params}"))

    await peer.wait_closed()
    return ws


def create_app() -> web.Application:
    app = web.Application()
    app.router.add_get('/rpc', rpc_handler)
    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    web.run_app(create_app(), port=8080)
