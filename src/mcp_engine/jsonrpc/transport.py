"""MCP Transport Layer

This module provides the transport layer abstraction for MCP communication.
A transport is responsible for moving complete frames (one serialized message
each) between the protocol engine and the peer.

The module defines:
1. A Protocol class that defines the transport interface
2. A concrete implementation for newline-delimited stream transport
   (e.g. stdin/stdout, pipes to a subprocess)

Custom transports can be implemented by creating classes that implement the
Transport protocol. See `mcp_engine.transports` for the SSE and HTTP ones.
"""

import asyncio
import logging
import sys
from typing import Any, Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str], Any]

MAX_FRAME_SIZE = 16 * 1024 * 1024


@runtime_checkable
class Transport(Protocol):
    """Protocol defining the transport layer interface.

    This protocol must be implemented by all transport classes.

    Example:
        ```python
        class MyTransport(Transport):
            def send(self, frame: str) -> None:
                # Hand one serialized message to the peer
                ...

            def set_message_handler(self, handler: MessageHandler) -> None:
                # Remember the callback to invoke once per inbound frame
                ...

            def start(self) -> None: ...
            def stop(self) -> None: ...
            def is_running(self) -> bool: ...
        ```
    """

    def send(self, frame: str) -> None:
        """Send one complete frame.

        Args:
            frame (str): The serialized message to send

        Raises:
            TransportError: If the frame could not be delivered
        """
        ...

    def set_message_handler(self, handler: MessageHandler) -> None:
        """Register the callback invoked with the raw text of each inbound frame.

        Args:
            handler (MessageHandler): The callback
        """
        ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def is_running(self) -> bool: ...


class StdioTransport:
    """Stream-based transport implementation.

    This transport exchanges newline-delimited frames over a pair of asyncio
    streams. Each line holds exactly one message; blank lines are skipped.

    Message Format:
        <message>\\n

    Args:
        reader (asyncio.StreamReader): The stream reader
        writer (asyncio.StreamWriter): The stream writer
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self._reader = reader
        self._writer = writer
        self._handler: MessageHandler | None = None
        self._read_task: asyncio.Task | None = None
        self._running = False

    def set_message_handler(self, handler: MessageHandler) -> None:
        self._handler = handler

    def start(self) -> None:
        """Start reading frames.

        Must be called from a running event loop. Calling it again while
        running does nothing.
        """
        if self._running:
            return
        self._running = True
        self._read_task = asyncio.get_running_loop().create_task(self._read_frames())

    def stop(self) -> None:
        self._running = False
        if self._read_task is not None and not self._read_task.done():
            self._read_task.cancel()

    def is_running(self) -> bool:
        return self._running

    async def wait_closed(self) -> None:
        """Wait until the reader task has finished (EOF or `stop()`)."""
        if self._read_task is None:
            return
        try:
            await self._read_task
        except asyncio.CancelledError:
            pass

    async def _read_frames(self) -> None:
        try:
            while self._running:
                try:
                    line = await self._reader.readline()
                except ValueError:
                    # readline() discards what it buffered; a remaining tail arrives
                    # as its own line and is dropped as malformed.
                    logger.warning("Dropping frame longer than the stream limit")
                    continue
                if not line:
                    logger.info("Input stream closed")
                    break

                try:
                    frame = line.decode().strip()
                except UnicodeDecodeError as e:
                    logger.warning("Dropping frame that is not valid UTF-8: %s", e)
                    continue
                if not frame:
                    continue
                if self._handler is None:
                    logger.warning("Dropping frame received with no message handler")
                    continue

                try:
                    self._handler(frame)
                except Exception:
                    logger.exception("Error handling frame")
        finally:
            self._running = False

    def send(self, frame: str) -> None:
        """Send a frame over the stream.

        Args:
            frame (str): The serialized message, without a trailing newline
        """
        self._writer.write(frame.encode() + b"\n")


async def open_stdio_transport(limit: int = MAX_FRAME_SIZE) -> StdioTransport:
    """Create a `StdioTransport` over the process' stdin and stdout.

    Args:
        limit (int): Longest accepted line in bytes. Longer frames are dropped.
    """
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=limit)
    await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader), sys.stdin
    )
    write_transport, write_protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout
    )
    writer = asyncio.StreamWriter(write_transport, write_protocol, reader, loop)
    return StdioTransport(reader, writer)
