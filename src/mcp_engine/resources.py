"""MCP resources: URI templates and the handlers that serve them."""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

ResourceHandler = Callable[[str, dict[str, str]], Any]

_PARAM = re.compile(r"\{([a-zA-Z0-9_]+)\}")

DEFAULT_LIST_OPTIONS: Mapping[str, Any] = MappingProxyType({"enabled": True})


class ResourceTemplate:
    """A URI template such as ``echo://{message}``.

    Each ``{name}`` placeholder matches one path segment (no ``/``); everything
    else in the template must match literally, and the whole URI must match.

    Args:
        uri_template (str): The template
        list_options (Mapping | None): Options reported by `mcp/resources/list`.
            Templates with None are not listed.
    """

    def __init__(
        self,
        uri_template: str,
        list_options: Mapping[str, Any] | None = DEFAULT_LIST_OPTIONS,
    ):
        self.uri_template = uri_template
        self.list_options = dict(list_options) if list_options is not None else None
        self._regex = self._compile(uri_template)

    @staticmethod
    def _compile(template: str) -> re.Pattern:
        pattern = []
        last = 0
        for m in _PARAM.finditer(template):
            pattern.append(re.escape(template[last : m.start()]))
            pattern.append(f"(?P<{m.group(1)}>[^/]+)")
            last = m.end()
        pattern.append(re.escape(template[last:]))
        return re.compile("".join(pattern))

    @property
    def pattern(self) -> str:
        return self.uri_template

    def match(self, uri: str) -> dict[str, str] | None:
        """Match `uri` against the template.

        Returns:
            dict[str, str] | None: The placeholder values, or None if the URI
                does not match.
        """
        m = self._regex.fullmatch(uri)
        if m is None:
            return None
        return m.groupdict()

    def matches(self, uri: str) -> bool:
        return self.match(uri) is not None

    def extract_params(self, uri: str) -> dict[str, str]:
        params = self.match(uri)
        if params is None:
            raise ValueError(
                f"URI '{uri}' does not match template '{self.uri_template}'"
            )
        return params

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"uriTemplate": self.uri_template}
        if self.list_options is not None:
            result["list"] = self.list_options
        return result

    def __repr__(self) -> str:
        return f"ResourceTemplate({self.uri_template!r})"


@dataclass
class Resource:
    """A named resource served by `handler` for every URI matching `template`.

    The handler is called with the URI and the placeholder values.
    """

    name: str
    template: ResourceTemplate | str
    handler: ResourceHandler
    description: str | None = None

    def __post_init__(self):
        if isinstance(self.template, str):
            self.template = ResourceTemplate(self.template)
        if self.description is None:
            self.description = f"Resource '{self.name}'"

    def matches(self, uri: str) -> bool:
        return self.template.matches(uri)

    def handle(self, uri: str) -> Any:
        return self.handler(uri, self.template.extract_params(uri))

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "uriPattern": self.template.pattern,
            "description": self.description,
        }

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], handler: ResourceHandler | None = None
    ) -> "Resource":
        if handler is None:

            def handler(uri: str, params: dict[str, str]) -> dict[str, Any]:
                return {"contents": []}

        return cls(
            data["name"],
            ResourceTemplate(data["uriPattern"]),
            handler,
            data.get("description"),
        )


class ResourceContent(BaseModel):
    """The content of one resource, as returned by `mcp/resources/read`."""

    uri: str
    text: str
    mime_type: str | None = Field(default=None, alias="mimeType")
    metadata: dict[str, Any] | None = None

    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResourceContent":
        return cls.model_validate(data)
