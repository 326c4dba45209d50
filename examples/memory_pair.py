#!/usr/bin/env python3
"""
Two peers in one process, connected by an in-memory stream pair.

Each side exposes methods to the other and they exchange notifications.
"""

import asyncio
import logging

from rpcp import MemoryMessageStream, Peer, RpcError


class Calculator:
    """Methods exposed by the "server" side."""

    def add(self, a, b):
        return a + b

    async def divide(self, a, b):
        if b == 0:
            raise RpcError(400, "div by zero")
        await asyncio.sleep(0.01)
        return a / b


async def main():
    client_stream, server_stream = MemoryMessageStream.pair()
    calculator = Calculator()

    server = Peer(server_stream,
                  local_methods={"add": calculator.add, "divide": calculator.divide},
                  remote_methods=["client_name"])
    client = Peer(client_stream,
                  local_methods={"client_name": lambda: "example-client"},
                  remote_methods=["add", "divide"])

    server.on("progress", lambda params: print(f"server saw progress: {params}"))

    print(f"add(2, 3) = {await client.methods.add(2, 3)}")
    print(f"divide(1, 4) = {await client.call('divide', [1, 4])}")

    try:
        await client.methods.divide(1, 0)
    except RpcError as e:
        print(f"divide(1, 0) failed: code={e.code} message={e.message}")

    print(f"server asks client for its name: {await server.methods.client_name()}")

    client.emit("progress", {"done": 3, "total": 3})
    await asyncio.sleep(0.01)

    await client.close()
    await server.wait_closed()
    print(f"server closed: {server.close_reason.message}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
