"""MCP prompts: schema-described handlers that produce chat messages."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Literal

from pydantic import BaseModel
from typing_extensions import TypedDict

from . import schema as jsonschema_utils

PromptHandler = Callable[[dict[str, Any]], Any]


class PromptMessage(TypedDict):
    role: Literal["system", "user", "assistant"] | str
    content: str


class PromptArgument(BaseModel):
    """An argument accepted by a prompt."""

    name: str
    description: str
    required: bool = False
    type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "description": self.description,
            "required": self.required,
        }
        if self.type is not None:
            result["type"] = self.type
        return result


class PromptResult(BaseModel):
    """The messages produced by executing a prompt."""

    messages: list[PromptMessage]
    description: str | None = None

    @classmethod
    def from_message(
        cls, role: str, content: str, description: str | None = None
    ) -> "PromptResult":
        return cls(
            messages=[PromptMessage(role=role, content=content)],
            description=description,
        )

    @classmethod
    def from_messages(
        cls, messages: list[PromptMessage], description: str | None = None
    ) -> "PromptResult":
        return cls(messages=messages, description=description)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"messages": list(self.messages)}
        if self.description is not None:
            result["description"] = self.description
        return result


class Prompt(BaseModel):
    """Metadata describing a prompt and its arguments."""

    name: str
    description: str
    arguments: list[PromptArgument] = []

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "arguments": {arg.name: arg.to_dict() for arg in self.arguments},
        }


@dataclass
class RegisteredPrompt:
    name: str
    schema: Mapping[str, Any] | str
    handler: PromptHandler
    description: str | None = None

    def __post_init__(self):
        if self.description is None:
            self.description = f"Prompt '{self.name}'"

    def get_schema(self) -> dict[str, Any]:
        return jsonschema_utils.load_schema(self.schema)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "schema": self.get_schema(),
        }


def normalize_prompt_result(value: Any) -> Any:
    if isinstance(value, PromptResult):
        return value.to_dict()
    return value
