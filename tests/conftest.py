"""Pytest fixtures shared by the engine and server tests."""

import json

import pytest

from mcp_engine.jsonrpc import McpProtocol


class MockTransport:
    """In-memory transport recording every frame sent through it."""

    def __init__(self):
        self.sent: list[str] = []
        self.handler = None
        self.running = False
        self.fail_with: Exception | None = None

    def send(self, frame: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(frame)

    def set_message_handler(self, handler) -> None:
        self.handler = handler

    def start(self) -> None:
        self.running = True

    def stop(self) -> None:
        self.running = False

    def is_running(self) -> bool:
        return self.running

    def receive(self, frame: str | dict):
        """Deliver an inbound frame as if it came from the peer."""
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        return self.handler(frame)

    def sent_messages(self) -> list[dict]:
        return [json.loads(frame) for frame in self.sent]

    def last_sent(self) -> dict:
        return json.loads(self.sent[-1])


@pytest.fixture
def transport() -> MockTransport:
    return MockTransport()


@pytest.fixture
def protocol(transport: MockTransport) -> McpProtocol:
    return McpProtocol(transport)
