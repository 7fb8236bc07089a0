"""Tests for the stdio, SSE and HTTP transports."""

import asyncio
import json

import httpx
import pytest

from mcp_engine.jsonrpc import McpProtocol, StdioTransport, Transport, TransportError
from mcp_engine.transports import HttpTransport, SseTransport


class BufferWriter:
    """Stands in for an `asyncio.StreamWriter`."""

    def __init__(self):
        self.data = b""

    def write(self, data: bytes):
        self.data += data


@pytest.mark.asyncio
async def test_transports_implement_the_protocol():
    assert isinstance(SseTransport(), Transport)
    assert isinstance(HttpTransport("http://localhost", client=httpx.Client()), Transport)
    assert isinstance(StdioTransport(asyncio.StreamReader(), BufferWriter()), Transport)


# Stdio


@pytest.mark.asyncio
async def test_stdio_delivers_one_frame_per_line():
    reader = asyncio.StreamReader()
    transport = StdioTransport(reader, BufferWriter())
    frames = []
    transport.set_message_handler(frames.append)

    transport.start()
    assert transport.is_running()
    reader.feed_data(b'{"a": 1}\n\n  \n{"b": 2}\n')
    reader.feed_eof()
    await transport.wait_closed()

    assert frames == ['{"a": 1}', '{"b": 2}']
    assert not transport.is_running()


@pytest.mark.asyncio
async def test_stdio_skips_invalid_utf8_lines():
    reader = asyncio.StreamReader()
    transport = StdioTransport(reader, BufferWriter())
    frames = []
    transport.set_message_handler(frames.append)

    transport.start()
    reader.feed_data(b'\xff\xfe\n{"ok": true}\n')
    reader.feed_eof()
    await transport.wait_closed()

    assert frames == ['{"ok": true}']


@pytest.mark.asyncio
async def test_stdio_skips_lines_over_the_limit():
    reader = asyncio.StreamReader(limit=64)
    transport = StdioTransport(reader, BufferWriter())
    frames = []
    transport.set_message_handler(frames.append)

    transport.start()
    reader.feed_data(b'{"big": "' + b"x" * 1000 + b'"}\n{"ok": true}\n')
    reader.feed_eof()
    await transport.wait_closed()

    assert frames == ['{"ok": true}']


@pytest.mark.asyncio
async def test_stdio_keeps_reading_after_handler_failure(caplog):
    reader = asyncio.StreamReader()
    transport = StdioTransport(reader, BufferWriter())
    frames = []

    def handler(frame):
        if frame == "boom":
            raise RuntimeError("handler broke")
        frames.append(frame)

    transport.set_message_handler(handler)
    transport.start()
    reader.feed_data(b'boom\n{"ok": true}\n')
    reader.feed_eof()
    await transport.wait_closed()

    assert frames == ['{"ok": true}']
    assert "Error handling frame" in caplog.text


@pytest.mark.asyncio
async def test_stdio_send_appends_newline():
    writer = BufferWriter()
    transport = StdioTransport(asyncio.StreamReader(), writer)

    transport.send('{"x": 1}')

    assert writer.data == b'{"x": 1}\n'


@pytest.mark.asyncio
async def test_stdio_stop_cancels_reading():
    transport = StdioTransport(asyncio.StreamReader(), BufferWriter())
    transport.set_message_handler(lambda frame: None)

    transport.start()
    await asyncio.sleep(0)
    transport.stop()
    await transport.wait_closed()

    assert not transport.is_running()


@pytest.mark.asyncio
async def test_stdio_request_round_trip():
    reader = asyncio.StreamReader()
    writer = BufferWriter()
    protocol = McpProtocol(StdioTransport(reader, writer))
    protocol.register_request_handler("ping", lambda params: "pong")

    protocol.start()
    reader.feed_data(b'{"jsonrpc": "2.0", "method": "ping", "id": "1"}\n')
    reader.feed_eof()
    await protocol.transport.wait_closed()

    assert json.loads(writer.data) == {"jsonrpc": "2.0", "result": "pong", "id": "1"}


# SSE


@pytest.fixture
def sse():
    output = []
    headers = []
    transport = (
        SseTransport()
        .set_output_callback(output.append)
        .set_header_callback(lambda name, value: headers.append((name, value)))
        .set_flush_callback(lambda: None)
    )
    return transport, output, headers


def test_sse_start_sends_headers_and_greeting(sse):
    transport, output, headers = sse

    transport.start()

    assert headers == [
        ("Content-Type", "text/event-stream"),
        ("Cache-Control", "no-cache"),
        ("Connection", "keep-alive"),
        ("X-Accel-Buffering", "no"),
    ]
    assert output == [": SSE connection established\n\n"]
    assert transport.is_running()


def test_sse_start_is_idempotent(sse):
    transport, output, headers = sse

    transport.start()
    transport.start()

    assert len(headers) == 4
    assert len(output) == 1


def test_sse_send_writes_data_event(sse):
    transport, output, _ = sse
    transport.start()

    transport.send('{"jsonrpc": "2.0"}')
    transport.send("line one\nline two")

    assert output[1:] == [
        'data: {"jsonrpc": "2.0"}\n\n',
        "data: line one\ndata: line two\n\n",
    ]


def test_sse_event_fields(sse):
    transport, output, _ = sse
    transport.start()

    transport.send_event("payload", id="7", event="message")
    transport.send_heartbeat()

    assert output[1:] == [
        "id: 7\nevent: message\ndata: payload\n\n",
        ": heartbeat\n\n",
    ]


def test_sse_drops_output_when_stopped(sse):
    transport, output, _ = sse

    transport.send("ignored")
    transport.send_event("ignored")
    transport.send_comment("ignored")

    assert output == []


def test_sse_handle_message_feeds_engine(sse):
    transport, output, _ = sse
    protocol = McpProtocol(transport)
    protocol.register_request_handler("ping", lambda params: "pong")
    protocol.start()

    transport.handle_message('{"jsonrpc": "2.0", "method": "ping", "id": "9"}')

    assert output[-1] == 'data: {"jsonrpc":"2.0","id":"9","result":"pong"}\n\n'


def test_sse_handle_message_without_handler():
    SseTransport().handle_message("{}")


def test_sse_defaults():
    transport = SseTransport()
    assert transport.message_path == "/mcp/message"
    assert transport.heartbeat_interval == 30
    assert transport.message_store_id is None


# HTTP


def make_http(handler, **kwargs) -> HttpTransport:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpTransport("http://mcp.test/rpc", client=client, **kwargs)


def test_http_posts_frames():
    requests = []

    def handler(request: httpx.Request):
        requests.append(request)
        return httpx.Response(204)

    transport = make_http(handler, headers={"Authorization": "Bearer t"})
    transport.send('{"jsonrpc": "2.0", "method": "ping"}')

    assert len(requests) == 1
    request = requests[0]
    assert request.method == "POST"
    assert str(request.url) == "http://mcp.test/rpc"
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["Authorization"] == "Bearer t"
    assert request.content == b'{"jsonrpc": "2.0", "method": "ping"}'


def test_http_response_body_is_an_inbound_frame():
    def handler(request: httpx.Request):
        return httpx.Response(200, text='{"jsonrpc": "2.0", "id": "1", "result": 3}')

    frames = []
    transport = make_http(handler)
    transport.set_message_handler(frames.append)

    transport.send('{"jsonrpc": "2.0", "method": "m", "id": "1"}')

    assert frames == ['{"jsonrpc": "2.0", "id": "1", "result": 3}']


def test_http_error_status_raises():
    transport = make_http(lambda request: httpx.Response(500, text="oops"))

    with pytest.raises(TransportError) as exc_info:
        transport.send("{}")
    assert exc_info.value.data == {"url": "http://mcp.test/rpc", "status": 500}


def test_http_connection_failure_raises():
    def handler(request: httpx.Request):
        raise httpx.ConnectError("refused", request=request)

    transport = make_http(handler)

    with pytest.raises(TransportError, match="HTTP request failed"):
        transport.send("{}")


@pytest.mark.asyncio
async def test_http_request_resolves_from_response_body():
    def handler(request: httpx.Request):
        sent = json.loads(request.content)
        return httpx.Response(
            200, json={"jsonrpc": "2.0", "id": sent["id"], "result": "pong"}
        )

    protocol = McpProtocol(make_http(handler))
    protocol.start()

    assert await protocol.send_request("ping") == "pong"


def test_http_lifecycle():
    transport = make_http(lambda request: httpx.Response(204))
    assert not transport.is_running()
    transport.start()
    assert transport.is_running()
    transport.stop()
    assert not transport.is_running()
