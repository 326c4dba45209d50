"""
Tests for peer options: timeouts, error redaction, disconnect callbacks and debug logging.
"""

import asyncio
import logging

import pytest

from rpcp import CallTimeoutError, ConnectionLostError, Peer, PeerOptions


class TestPeerOptions:
    """Test option defaults and validation."""

    def test_default_options(self):
        options = PeerOptions()

        assert options.debug is False
        assert options.call_timeout is None
        assert options.initial_id == 0
        assert options.on_send_error is None
        assert options.on_disconnect is None
        assert options.drain_timeout == 5.0

    def test_custom_options(self):
        def error_handler(error):
            return Exception("Redacted")

        async def on_disconnect(reason):
            pass

        options = PeerOptions(
            debug=True,
            call_timeout=10.0,
            initial_id=1,
            on_send_error=error_handler,
            on_disconnect=on_disconnect,
        )

        assert options.debug is True
        assert options.call_timeout == 10.0
        assert options.initial_id == 1
        assert options.on_send_error is error_handler
        assert options.on_disconnect is on_disconnect

    def test_invalid_timeout(self):
        with pytest.raises(ValueError):
            PeerOptions(call_timeout=0)
        with pytest.raises(ValueError):
            PeerOptions(drain_timeout=-1)
        assert PeerOptions(drain_timeout=None).drain_timeout is None


@pytest.mark.asyncio
class TestEnhancedFeatures:
    """Test behaviour driven by options."""

    async def test_error_handler_callback(self, stream):
        """on_send_error can redact a handler failure before it is sent."""
        original_error = ValueError("sensitive password data")
        seen = []

        def error_handler(error):
            seen.append(error)
            return Exception("Redacted error")

        def leaky():
            raise original_error

        peer = Peer(stream, {"leaky": leaky}, options=PeerOptions(on_send_error=error_handler))
        stream.feed({"jsonrpc": "2.0", "id": 1, "method": "leaky"})

        reply = await stream.next_sent()
        assert seen == [original_error]
        assert reply["error"]["message"] == "Redacted error"
        assert "sensitive" not in str(reply)
        await peer.close()

    async def test_error_handler_may_keep_error(self, stream):
        peer = Peer(stream, {"boom": lambda: 1 / 0},
                    options=PeerOptions(on_send_error=lambda error: None))
        stream.feed({"jsonrpc": "2.0", "id": 1, "method": "boom"})

        reply = await stream.next_sent()
        assert reply["error"]["data"] == {"name": "ZeroDivisionError"}
        await peer.close()

    async def test_call_timeout(self, stream, settle):
        peer = Peer(stream, options=PeerOptions(call_timeout=0.01))
        future = peer.call("slow")

        with pytest.raises(CallTimeoutError):
            await future
        assert peer.get_stats()["pending_calls"] == 0

        # The late answer is dropped and the peer stays open
        stream.feed({"jsonrpc": "2.0", "id": 0, "result": "late"})
        await settle()
        assert not peer.closed
        await peer.close()

    async def test_per_call_timeout(self, stream):
        peer = Peer(stream, options=PeerOptions(call_timeout=60.0))
        with pytest.raises(CallTimeoutError) as exc_info:
            await peer.call("slow", timeout=0.01)
        assert exc_info.value.timeout == 0.01
        await peer.close()

    async def test_initial_id(self, stream):
        peer = Peer(stream, options=PeerOptions(initial_id=1))
        peer.call("m")
        assert (await stream.next_sent())["id"] == 1
        await peer.close()

    async def test_on_disconnect_sync(self, stream):
        reasons = []
        peer = Peer(stream, options=PeerOptions(on_disconnect=reasons.append))

        stream.end()
        await peer.wait_closed()
        await peer.close()

        assert len(reasons) == 1
        assert isinstance(reasons[0], ConnectionLostError)

    async def test_on_disconnect_async(self, stream, settle):
        reasons = []

        async def on_disconnect(reason):
            await asyncio.sleep(0)
            reasons.append(reason)

        peer = Peer(stream, options=PeerOptions(on_disconnect=on_disconnect))
        await peer.close()
        await settle()

        assert [r.message for r in reasons] == ["Peer closed"]

    async def test_debug_logging(self, stream, caplog):
        peer = Peer(stream, {"ping": lambda: "pong"}, options=PeerOptions(debug=True))

        with caplog.at_level(logging.DEBUG, logger="rpcp.peer"):
            stream.feed({"jsonrpc": "2.0", "id": 1, "method": "ping"})
            await stream.next_sent()

        assert "<- " in caplog.text
        assert "-> " in caplog.text
        await peer.close()


if __name__ == "__main__":
    pytest.main([__file__])
