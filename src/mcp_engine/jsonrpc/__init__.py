from .errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROMPT_EXECUTION_ERROR,
    RESOURCE_NOT_FOUND,
    SERVER_ERROR,
    TOOL_EXECUTION_ERROR,
    TOOL_NOT_FOUND,
    ErrorObject,
    InvalidMessageShape,
    MalformedMessage,
    McpError,
    RequestTimeout,
    TransportError,
)
from .messages import JSONRPC_VERSION, Message, MessageKind
from .protocol import McpProtocol
from .transport import StdioTransport, Transport, open_stdio_transport

__all__ = (
    "McpProtocol",
    "Message",
    "MessageKind",
    "JSONRPC_VERSION",
    "McpError",
    "MalformedMessage",
    "InvalidMessageShape",
    "RequestTimeout",
    "TransportError",
    "ErrorObject",
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
    "SERVER_ERROR",
    "RESOURCE_NOT_FOUND",
    "TOOL_NOT_FOUND",
    "TOOL_EXECUTION_ERROR",
    "PROMPT_EXECUTION_ERROR",
    "StdioTransport",
    "Transport",
    "open_stdio_transport",
)
