"""Additional transports: server-sent events and HTTP POST.

Both implement the `mcp_engine.jsonrpc.Transport` protocol.
"""

import logging
import sys
from collections.abc import Mapping
from typing import Callable

import httpx

from .jsonrpc import TransportError
from .jsonrpc.transport import MessageHandler

logger = logging.getLogger(__name__)


def _write_stdout(data: str):
    sys.stdout.write(data)


def _flush_stdout():
    sys.stdout.flush()


def _ignore_header(name: str, value: str):
    logger.debug("SSE header %s: %s", name, value)


class SseTransport:
    """Server-sent events transport.

    Outbound frames are written as `data:` event blocks through an output
    callback; inbound frames arrive out of band (typically the body of a POST
    to `message_path`) and are fed in with `handle_message`. The output,
    header and flush callbacks make it usable with any web framework.

    Args:
        message_path (str): Where clients POST their messages
        heartbeat_interval (int): Seconds between heartbeat comments
    """

    def __init__(self, message_path: str = "/mcp/message", heartbeat_interval: int = 30):
        self.message_path = message_path
        self.heartbeat_interval = heartbeat_interval
        self.message_store_id: str | None = None
        self._running = False
        self._handler: MessageHandler | None = None
        self._output: Callable[[str], None] = _write_stdout
        self._header: Callable[[str, str], None] = _ignore_header
        self._flush: Callable[[], None] = _flush_stdout

    def set_output_callback(self, callback: Callable[[str], None]) -> "SseTransport":
        self._output = callback
        return self

    def set_header_callback(
        self, callback: Callable[[str, str], None]
    ) -> "SseTransport":
        self._header = callback
        return self

    def set_flush_callback(self, callback: Callable[[], None]) -> "SseTransport":
        self._flush = callback
        return self

    def set_message_handler(self, handler: MessageHandler) -> None:
        self._handler = handler

    def start(self) -> None:
        if self._running:
            return
        self._running = True

        self._header("Content-Type", "text/event-stream")
        self._header("Cache-Control", "no-cache")
        self._header("Connection", "keep-alive")
        self._header("X-Accel-Buffering", "no")
        self.send_comment("SSE connection established")

    def stop(self) -> None:
        self._running = False

    def is_running(self) -> bool:
        return self._running

    def _emit(self, block: str):
        self._output(block)
        self._flush()

    def send(self, frame: str) -> None:
        """Send a frame as one `data:` event. Dropped unless running."""
        if not self._running:
            logger.debug("Dropping SSE frame sent while stopped")
            return
        self._emit(_field("data", frame) + "\n")

    def send_event(
        self, data: str, id: str | None = None, event: str | None = None
    ) -> None:
        if not self._running:
            return
        block = ""
        if id is not None:
            block += f"id: {id}\n"
        if event is not None:
            block += f"event: {event}\n"
        self._emit(block + _field("data", data) + "\n")

    def send_comment(self, comment: str) -> None:
        if not self._running:
            return
        self._emit(_field("", comment) + "\n")

    def send_heartbeat(self) -> None:
        self.send_comment("heartbeat")

    def handle_message(self, frame: str) -> None:
        """Deliver an inbound frame to the message handler."""
        if self._handler is None:
            logger.warning("Dropping SSE inbound frame with no message handler")
            return
        self._handler(frame)


def _field(name: str, value: str) -> str:
    return "".join(f"{name}: {line}\n" for line in value.split("\n"))


class HttpTransport:
    """HTTP transport.

    Every frame is POSTed to `url`. When the peer answers with a body, the body
    is handed to the message handler as an inbound frame, so replies to
    requests come back on the same call.

    Args:
        url (str): Where to POST frames
        headers (Mapping[str, str] | None): Extra headers for every request
        client (httpx.Client | None): Client to use. One is created (and
            closed on `stop`) when not given.
        timeout (float): Request timeout in seconds for a created client
    """

    def __init__(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ):
        self.url = url
        self.headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **(headers or {}),
        }
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout)
        self._handler: MessageHandler | None = None
        self._running = False

    def set_message_handler(self, handler: MessageHandler) -> None:
        self._handler = handler

    def start(self) -> None:
        self._running = True

    def stop(self) -> None:
        self._running = False
        if self._owns_client:
            self._client.close()

    def is_running(self) -> bool:
        return self._running

    def send(self, frame: str) -> None:
        """POST one frame.

        Raises:
            TransportError: If the request fails or the status is not 2xx
        """
        try:
            response = self._client.post(
                self.url, content=frame.encode(), headers=self.headers
            )
        except httpx.HTTPError as e:
            raise TransportError(
                f"HTTP request failed: {e}", data={"url": self.url}
            ) from e

        if not response.is_success:
            raise TransportError(
                f"HTTP request failed with code {response.status_code}",
                data={"url": self.url, "status": response.status_code},
            )

        body = response.text
        if body.strip() and self._handler is not None:
            self._handler(body)
