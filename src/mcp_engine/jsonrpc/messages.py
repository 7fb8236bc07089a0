"""MCP Message Type Definitions

This module defines the message type exchanged by the protocol engine.

The JSON-RPC 2.0 specification defines four kinds of messages:
1. Request - A call to a method that requires a response
2. Notification - A one-way message that doesn't require a response
3. Response - A response containing the result of a method call
4. Error - A response indicating an error occurred

All four share one envelope. The kind of a message is never stored on the
wire; it is derived from which fields are present, so a `Message` keeps track
of exactly which fields were given and serializes only those.

References:
    JSON-RPC 2.0 Specification: https://www.jsonrpc.org/specification
"""

import json
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from .errors import ErrorObject, MalformedMessage, McpError

JSONRPC_VERSION = "2.0"


class MessageKind(Enum):
    REQUEST = "request"
    RESPONSE = "response"
    ERROR = "error"
    NOTIFICATION = "notification"


class Message(BaseModel):
    """An immutable MCP message.

    Use one of the `new_*` constructors or `from_json` rather than building
    instances directly. Field values are not validated: a frame with an odd
    combination of fields parses fine and simply classifies as no kind at all.

    Fields:
        jsonrpc: Always "2.0"
        method: The name of the method to be invoked (requests, notifications)
        params: Named parameters (requests, notifications)
        id: Correlation id (requests, responses, errors)
        result: The result of the method call (responses)
        error: An `ErrorObject` (errors)
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    jsonrpc: Any = JSONRPC_VERSION
    method: Any = None
    params: Any = None
    id: Any = None
    result: Any = None
    error: Any = None

    @classmethod
    def new_request(
        cls, method: str, params: Mapping[str, Any] | None, id: str
    ) -> "Message":
        return cls(
            jsonrpc=JSONRPC_VERSION,
            method=method,
            params={} if params is None else params,
            id=id,
        )

    @classmethod
    def new_response(cls, result: Any, id: str) -> "Message":
        return cls(jsonrpc=JSONRPC_VERSION, result=result, id=id)

    @classmethod
    def new_error(cls, error: ErrorObject | McpError, id: str) -> "Message":
        if isinstance(error, McpError):
            error = error.to_error()
        return cls(jsonrpc=JSONRPC_VERSION, error=error, id=id)

    @classmethod
    def new_notification(
        cls, method: str, params: Mapping[str, Any] | None = None
    ) -> "Message":
        return cls(
            jsonrpc=JSONRPC_VERSION,
            method=method,
            params={} if params is None else params,
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> "Message":
        """Parse a frame into a message.

        Only the JSON itself is checked. Whatever fields the object carries
        are kept as they are.

        Args:
            text (str | bytes): One complete frame

        Returns:
            Message: The parsed message

        Raises:
            MalformedMessage: If the frame is not a JSON object, including
                frames nested too deeply to decode
        """
        try:
            obj = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedMessage(
                f"Invalid JSON: {e.msg}",
                data={"pos": e.pos, "lineno": e.lineno, "colno": e.colno},
            ) from e
        except UnicodeDecodeError as e:
            raise MalformedMessage(f"Invalid JSON: {e.reason}") from e
        except RecursionError as e:
            raise MalformedMessage("Invalid JSON: nested too deeply") from e
        except ValueError as e:
            raise MalformedMessage(f"Invalid JSON: {e}") from e

        if not isinstance(obj, dict):
            raise MalformedMessage(
                "Expected a JSON object", data={"type": type(obj).__name__}
            )
        return cls.model_validate({"jsonrpc": JSONRPC_VERSION, **obj})

    def to_json(self) -> str:
        """Serialize the message, leaving out every field that was not given."""
        return self.model_dump_json(exclude_unset=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)

    def has(self, field: str) -> bool:
        """Check whether a field is present.

        A `result` of null still counts as present; for the other fields a
        null value is treated as absent.
        """
        if field not in self.model_fields_set:
            return False
        return field == "result" or getattr(self, field) is not None

    def is_request(self) -> bool:
        return self.has("method") and self.has("id")

    def is_response(self) -> bool:
        return (
            self.has("id")
            and self.has("result")
            and not self.has("method")
            and not self.has("error")
        )

    def is_error(self) -> bool:
        return (
            self.has("id")
            and self.has("error")
            and not self.has("method")
            and not self.has("result")
        )

    def is_notification(self) -> bool:
        return self.has("method") and not self.has("id")

    @property
    def kind(self) -> MessageKind | None:
        """The kind of this message, or None if it matches no kind."""
        if self.is_request():
            return MessageKind.REQUEST
        if self.is_response():
            return MessageKind.RESPONSE
        if self.is_error():
            return MessageKind.ERROR
        if self.is_notification():
            return MessageKind.NOTIFICATION
        return None
