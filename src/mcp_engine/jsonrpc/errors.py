"""MCP Error Taxonomy

This module defines the error codes and the exception type used across the
protocol engine. An `McpError` carries a numeric code, a message and optional
structured data, and converts losslessly to and from the wire error object.

Handlers raise `McpError` to have the engine forward an exact code to the peer,
and callers of `McpProtocol.send_request` receive one when the peer answers
with an error.

References:
    JSON-RPC 2.0 Specification: https://www.jsonrpc.org/specification
"""

from collections.abc import Mapping
from typing import Any

from typing_extensions import NotRequired, TypedDict


class ErrorObject(TypedDict):
    """A JSON-RPC error object.

    Fields:
        code: The error code (see error code constants below)
        message: A short description of the error
        data: Optional additional error information
    """

    code: int
    message: str
    data: NotRequired[Any]


# Standard JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
"""Invalid JSON was received."""

INVALID_REQUEST = -32600
"""The JSON sent is not a valid message."""

METHOD_NOT_FOUND = -32601
"""The method does not exist / is not available."""

INVALID_PARAMS = -32602
"""Invalid method parameter(s)."""

INTERNAL_ERROR = -32603
"""Internal JSON-RPC error."""

SERVER_ERROR = -32000
"""Generic implementation-defined server error."""

# MCP domain errors all share the generic server code on the wire; they are
# told apart only by their message text and data.
RESOURCE_NOT_FOUND = SERVER_ERROR
TOOL_NOT_FOUND = SERVER_ERROR
TOOL_EXECUTION_ERROR = SERVER_ERROR
PROMPT_EXECUTION_ERROR = SERVER_ERROR


class McpError(Exception):
    """Exception raised for MCP protocol errors.

    Args:
        message (str): A human-readable error description
        code (int): The error code
        data (Any): Optional additional error data

    Example:
        ```python
        try:
            result = await protocol.send_request("mcp/tools/execute", {"name": "calc"})
        except McpError as e:
            if e.code == METHOD_NOT_FOUND:
                print(f"Method not found: {e}")
            else:
                print(f"RPC error {e.code}: {e}")
        ```
    """

    def __init__(self, message: str, code: int, data: Any = None):
        super(McpError, self).__init__(message)
        self.code = code
        self.data = data

    @property
    def message(self) -> str:
        return str(self)

    def to_error(self) -> ErrorObject:
        """Convert the exception to a wire error object.

        Returns:
            ErrorObject: The error object, without `data` when there is none
        """
        if self.data is not None:
            return ErrorObject(code=self.code, message=str(self), data=self.data)
        else:
            return ErrorObject(code=self.code, message=str(self))

    @staticmethod
    def from_error(err: Any) -> "McpError":
        """Create an exception from a wire error object.

        Missing fields fall back to the message "Unknown error" and code 0.

        Args:
            err: The error object from an error message

        Returns:
            McpError: The corresponding exception
        """
        if not isinstance(err, Mapping):
            return McpError("Unknown error", 0, err)
        return McpError(
            err.get("message", "Unknown error"), err.get("code", 0), err.get("data")
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r}, {self.code!r}, {self.data!r})"


class MalformedMessage(McpError):
    """Raised when a frame is not a JSON object."""

    def __init__(self, message: str, data: Any = None):
        super(MalformedMessage, self).__init__(message, PARSE_ERROR, data)


class InvalidMessageShape(McpError):
    """Raised when a parsed message is none of the four message kinds."""

    def __init__(self, message: str = "Invalid message format", data: Any = None):
        super(InvalidMessageShape, self).__init__(message, INVALID_REQUEST, data)


class RequestTimeout(McpError):
    """Raised into a pending request that got no reply in time."""

    def __init__(self, message: str, data: Any = None):
        super(RequestTimeout, self).__init__(message, INTERNAL_ERROR, data)


class TransportError(McpError):
    """Raised by a transport that could not deliver a frame."""

    def __init__(self, message: str, data: Any = None):
        super(TransportError, self).__init__(message, INTERNAL_ERROR, data)
