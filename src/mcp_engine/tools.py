"""MCP tools: named, schema-described handlers that produce side effects."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from . import schema as jsonschema_utils

ToolHandler = Callable[[dict[str, Any]], Any]


def text_content(text: str) -> list[dict[str, str]]:
    return [{"type": "text", "text": text}]


class ToolResult(BaseModel):
    """The result of a tool execution."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    content: list[dict[str, Any]]
    is_error: bool = Field(default=False, alias="isError")
    error_type: str | None = Field(default=None, alias="errorType")

    @classmethod
    def success(cls, content: list[dict[str, Any]] | str) -> "ToolResult":
        if isinstance(content, str):
            content = text_content(content)
        return cls(content=content)

    @classmethod
    def error(cls, message: str, error_type: str | None = None) -> "ToolResult":
        return cls(content=text_content(message), is_error=True, error_type=error_type)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"content": self.content}
        if self.is_error:
            result["isError"] = True
            if self.error_type is not None:
                result["errorType"] = self.error_type
        return result


def normalize_tool_result(value: Any) -> dict[str, Any]:
    """Shape whatever a tool handler returned into a `{"content": [...]}` payload.

    A `ToolResult` or a mapping that already has `content` is kept; a list is
    taken as the content itself; anything else becomes one text block.
    """
    if isinstance(value, ToolResult):
        return value.to_dict()
    if isinstance(value, Mapping) and "content" in value:
        return dict(value)
    if isinstance(value, list):
        return {"content": value}
    return {"content": text_content(str(value))}


@dataclass
class Tool:
    """A tool registered on a server.

    `schema` is a JSON schema for the tool's parameters, given either as a
    mapping or as JSON text.
    """

    name: str
    schema: Mapping[str, Any] | str
    handler: ToolHandler
    description: str | None = None

    def __post_init__(self):
        if self.description is None:
            self.description = f"Tool '{self.name}'"

    def get_schema(self) -> dict[str, Any]:
        return jsonschema_utils.load_schema(self.schema)

    def validate(self, params: Mapping[str, Any]) -> list[dict[str, Any]]:
        return jsonschema_utils.validate_with_errors(params, self.schema)

    def execute(self, params: dict[str, Any]) -> Any:
        return self.handler(params)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "schema": self.get_schema(),
        }
