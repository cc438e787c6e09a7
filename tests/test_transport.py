"""Tests for LiveTransport WebSocket transport."""

import asyncio
import base64
import json

import pytest
import websockets
from unittest.mock import AsyncMock, MagicMock, patch

from live_voice.audio.types import AudioChunk
from live_voice.client.protocol import InterruptionSignal, LiveConfig
from live_voice.client.transport import (
    DROP_NEWEST,
    LiveTransport,
)
from live_voice.core.errors import ConnectionFailed
from tests.helpers import wait_until

MODULE = "live_voice.client.transport"
SETUP_COMPLETE = '{"setupComplete": {}}'
_END = object()


class FakeWebSocket:
    """Minimal stand-in for a websockets ClientConnection."""

    def __init__(self, setup_reply=SETUP_COMPLETE):
        self.sent = []
        self.close = AsyncMock()
        self._setup_reply = setup_reply
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, data):
        self.sent.append(data)

    async def recv(self):
        if self._setup_reply is None:
            await asyncio.Event().wait()
        return self._setup_reply

    def push(self, item):
        self._incoming.put_nowait(item)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


def _mock_ws_connect(ws):
    return patch(f"{MODULE}.websockets.connect", AsyncMock(return_value=ws))


def _callbacks():
    """Stand-in for TransportCallbacks that records every hook call."""
    return MagicMock()


def _audio(pcm: bytes) -> str:
    part = {"inlineData": {"mimeType": "audio/pcm;rate=24000", "data": base64.b64encode(pcm).decode()}}
    return json.dumps({"serverContent": {"modelTurn": {"parts": [part]}}})


def _sent_pcm(ws):
    frames = []
    for raw in ws.sent:
        msg = json.loads(raw)
        if "realtimeInput" in msg:
            frames.append(base64.b64decode(msg["realtimeInput"]["mediaChunks"][0]["data"]))
    return frames


def test_api_key_is_added_to_url():
    transport = LiveTransport(url="wss://example.test/ws", api_key="abc")
    assert transport._url == "wss://example.test/ws?key=abc"


def test_invalid_overflow_policy():
    with pytest.raises(ValueError):
        LiveTransport(overflow_policy="block")


@pytest.mark.asyncio
async def test_connect_sends_setup_and_fires_on_open():
    ws = FakeWebSocket()
    callbacks = _callbacks()
    transport = LiveTransport(url="wss://example.test/ws")

    with _mock_ws_connect(ws):
        transport.connect(LiveConfig(voice_name="Puck"), callbacks)
        await wait_until(lambda: callbacks.on_open.called)

    assert transport.is_open
    setup = json.loads(ws.sent[0])["setup"]
    assert setup["generationConfig"]["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]["voiceName"] == "Puck"
    callbacks.on_open.assert_called_once()
    callbacks.on_error.assert_not_called()
    await transport.close()


@pytest.mark.asyncio
async def test_connect_returns_before_connection_opens():
    ws = FakeWebSocket(setup_reply=None)
    callbacks = _callbacks()
    transport = LiveTransport(open_timeout_s=5.0)

    with _mock_ws_connect(ws):
        task = transport.connect(LiveConfig(), callbacks)
        assert not task.done()
        assert not transport.is_open
        await transport.close()

    callbacks.on_open.assert_not_called()


@pytest.mark.asyncio
async def test_connect_error_fires_on_error_only():
    callbacks = _callbacks()
    transport = LiveTransport()

    with patch(f"{MODULE}.websockets.connect", AsyncMock(side_effect=OSError("refused"))):
        await transport.connect(LiveConfig(), callbacks)

    callbacks.on_error.assert_called_once()
    assert isinstance(callbacks.on_error.call_args[0][0], ConnectionFailed)
    callbacks.on_open.assert_not_called()


@pytest.mark.asyncio
async def test_setup_timeout_fires_on_error():
    ws = FakeWebSocket(setup_reply=None)
    callbacks = _callbacks()
    transport = LiveTransport(open_timeout_s=0.05)

    with _mock_ws_connect(ws):
        await transport.connect(LiveConfig(), callbacks)

    callbacks.on_error.assert_called_once()
    callbacks.on_open.assert_not_called()
    ws.close.assert_awaited()


@pytest.mark.asyncio
async def test_unexpected_setup_reply_fires_on_error():
    ws = FakeWebSocket(setup_reply='{"serverContent": {}}')
    callbacks = _callbacks()
    transport = LiveTransport()

    with _mock_ws_connect(ws):
        await transport.connect(LiveConfig(), callbacks)

    callbacks.on_error.assert_called_once()
    callbacks.on_open.assert_not_called()


@pytest.mark.asyncio
async def test_inbound_messages_dispatched_in_order():
    ws = FakeWebSocket()
    received = []
    callbacks = _callbacks()
    callbacks.on_message.side_effect = received.append
    transport = LiveTransport()

    with _mock_ws_connect(ws):
        transport.connect(LiveConfig(), callbacks)
        ws.push(_audio(b"\x01\x00"))
        ws.push("garbage that is ignored")
        ws.push(_audio(b"\x02\x00"))
        ws.push('{"serverContent": {"interrupted": true}}')
        await wait_until(lambda: len(received) == 3)

    assert received == [
        AudioChunk(data=b"\x01\x00", sample_rate=24000),
        AudioChunk(data=b"\x02\x00", sample_rate=24000),
        InterruptionSignal(),
    ]
    await transport.close()


@pytest.mark.asyncio
async def test_send_preserves_frame_order():
    ws = FakeWebSocket()
    callbacks = _callbacks()
    transport = LiveTransport()

    with _mock_ws_connect(ws):
        transport.connect(LiveConfig(), callbacks)
        await wait_until(lambda: transport.is_open)
        frames = [bytes([i, 0]) for i in range(5)]
        for frame in frames:
            assert transport.send(frame)
        await wait_until(lambda: transport.frames_sent == 5)

    assert _sent_pcm(ws) == frames
    mime = json.loads(ws.sent[1])["realtimeInput"]["mediaChunks"][0]["mimeType"]
    assert mime == "audio/pcm;rate=16000"
    await transport.close()


@pytest.mark.asyncio
async def test_send_before_open_is_rejected():
    transport = LiveTransport()
    assert transport.send(b"\x00\x00") is False


@pytest.mark.asyncio
async def test_full_queue_drops_oldest_frame():
    ws = FakeWebSocket()
    transport = LiveTransport(send_queue_size=2)

    with _mock_ws_connect(ws):
        transport.connect(LiveConfig(), _callbacks())
        await wait_until(lambda: transport.is_open)
        assert transport.send(b"a\x00")
        assert transport.send(b"b\x00")
        # Queued; "a" is evicted instead
        assert transport.send(b"c\x00") is True
        await wait_until(lambda: transport.frames_sent == 2)

    assert _sent_pcm(ws) == [b"b\x00", b"c\x00"]
    assert transport.frames_dropped == 1
    await transport.close()


@pytest.mark.asyncio
async def test_full_queue_drops_newest_frame():
    ws = FakeWebSocket()
    transport = LiveTransport(send_queue_size=2, overflow_policy=DROP_NEWEST)

    with _mock_ws_connect(ws):
        transport.connect(LiveConfig(), _callbacks())
        await wait_until(lambda: transport.is_open)
        transport.send(b"a\x00")
        transport.send(b"b\x00")
        assert transport.send(b"c\x00") is False
        await wait_until(lambda: transport.frames_sent == 2)

    assert _sent_pcm(ws) == [b"a\x00", b"b\x00"]
    assert transport.frames_dropped == 1
    await transport.close()


@pytest.mark.asyncio
async def test_close_is_idempotent_and_silences_messages():
    ws = FakeWebSocket()
    callbacks = _callbacks()
    transport = LiveTransport()

    with _mock_ws_connect(ws):
        transport.connect(LiveConfig(), callbacks)
        await wait_until(lambda: transport.is_open)

        await transport.close()
        await transport.close()

        ws.push(_audio(b"\x01\x00"))
        await asyncio.sleep(0.01)

    ws.close.assert_awaited_once()
    callbacks.on_message.assert_not_called()
    callbacks.on_close.assert_not_called()
    assert not transport.is_open
    assert transport.send(b"\x00\x00") is False


@pytest.mark.asyncio
async def test_clean_server_close_fires_on_close():
    ws = FakeWebSocket()
    callbacks = _callbacks()
    transport = LiveTransport()

    with _mock_ws_connect(ws):
        transport.connect(LiveConfig(), callbacks)
        await wait_until(lambda: transport.is_open)
        ws.push(_END)
        await wait_until(lambda: callbacks.on_close.called)

    callbacks.on_error.assert_not_called()
    assert not transport.is_open
    await transport.close()


@pytest.mark.asyncio
async def test_abnormal_drop_fires_on_error():
    ws = FakeWebSocket()
    callbacks = _callbacks()
    transport = LiveTransport()

    with _mock_ws_connect(ws):
        transport.connect(LiveConfig(), callbacks)
        await wait_until(lambda: transport.is_open)
        ws.push(websockets.exceptions.ConnectionClosedError(None, None))
        await wait_until(lambda: callbacks.on_error.called)

    callbacks.on_open.assert_called_once()
    callbacks.on_close.assert_not_called()
    assert isinstance(callbacks.on_error.call_args[0][0], ConnectionFailed)
    await transport.close()


@pytest.mark.asyncio
async def test_connect_twice_raises():
    ws = FakeWebSocket()
    transport = LiveTransport()
    with _mock_ws_connect(ws):
        transport.connect(LiveConfig(), _callbacks())
        with pytest.raises(RuntimeError):
            transport.connect(LiveConfig(), _callbacks())
        await transport.close()
