"""MCP server built on top of the protocol engine.

The server keeps registries of resources, tools and prompts and exposes them
through the conventional MCP method surface:

- ``mcp/initialize``
- ``mcp/resources/list``, ``mcp/resources/read``
- ``mcp/tools/list``, ``mcp/tools/execute``
- ``mcp/prompts/list``, ``mcp/prompts/execute``

and sends the ``mcp/log`` and ``mcp/shutdown`` notifications. Domain failures
are raised as `McpError` so the engine turns them into error replies.
"""

import inspect
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Self

import logfire
from pydantic import BaseModel

from .jsonrpc import (
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    PROMPT_EXECUTION_ERROR,
    RESOURCE_NOT_FOUND,
    TOOL_EXECUTION_ERROR,
    TOOL_NOT_FOUND,
    McpError,
    McpProtocol,
    Message,
    Transport,
)
from .prompts import PromptHandler, RegisteredPrompt, normalize_prompt_result
from .resources import Resource, ResourceContent, ResourceHandler, ResourceTemplate
from .schema import validate_with_errors
from .tools import Tool, ToolHandler, ToolResult, normalize_tool_result

if TYPE_CHECKING:
    from .config import ServerConfig

logger = logging.getLogger(__name__)


class ServerCapabilities(BaseModel):
    """The features a server advertises in its `mcp/initialize` reply."""

    resources: bool = False
    resource_list_changes: bool = False
    tools: bool = False
    prompts: bool = False
    logging: bool = True
    logging_level: str | None = "info"

    @classmethod
    def create(cls) -> Self:
        return cls()

    def with_resources(self, enabled: bool = True, list_changes: bool = False) -> Self:
        self.resources = enabled
        self.resource_list_changes = list_changes
        return self

    def with_tools(self, enabled: bool = True) -> Self:
        self.tools = enabled
        return self

    def with_prompts(self, enabled: bool = True) -> Self:
        self.prompts = enabled
        return self

    def with_logging(self, level: str = "info") -> Self:
        self.logging = True
        self.logging_level = level
        return self

    def has_resources(self) -> bool:
        return self.resources

    def has_tools(self) -> bool:
        return self.tools

    def has_prompts(self) -> bool:
        return self.prompts

    def to_dict(self) -> dict[str, Any]:
        capabilities: dict[str, Any] = {
            "resources": self.resources,
            "tools": self.tools,
            "prompts": self.prompts,
        }
        if self.resources:
            capabilities["resource_list_changes"] = self.resource_list_changes
        if self.logging:
            capabilities["logging"] = {"level": self.logging_level}
        return capabilities

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Build capabilities from the `to_dict` format."""
        capabilities = cls()
        if "resources" in data:
            capabilities.with_resources(
                bool(data["resources"]), bool(data.get("resource_list_changes", False))
            )
        if "tools" in data:
            capabilities.with_tools(bool(data["tools"]))
        if "prompts" in data:
            capabilities.with_prompts(bool(data["prompts"]))
        if "logging" in data:
            logging_ = data["logging"]
            if isinstance(logging_, Mapping):
                capabilities.with_logging(logging_.get("level", "info"))
            elif logging_:
                capabilities.with_logging()
            else:
                capabilities.logging = False
        return capabilities


async def _then(awaitable: Awaitable, transform: Callable[[Any], Any]) -> Any:
    return transform(await awaitable)


def _normalize_resource_result(value: Any) -> Any:
    if isinstance(value, ResourceContent):
        return {"contents": [value.to_dict()]}
    if isinstance(value, list):
        return {
            "contents": [
                c.to_dict() if isinstance(c, ResourceContent) else c for c in value
            ]
        }
    return value


class McpServer:
    """An MCP server.

    Args:
        name (str): Reported by `mcp/initialize`
        version (str): Reported by `mcp/initialize`
        capabilities (ServerCapabilities | None): Enabled features. Defaults to
            `ServerCapabilities.create()` (logging only).
        transport (Transport | None): Attached right away when given; use
            `connect` to also register the method surface and start it.
        logger (logging.Logger | None): Passed on to the protocol engine.

    Example:
        ```python
        server = McpServer(
            name="Example",
            capabilities=ServerCapabilities.create().with_tools(),
        )

        @server.tool("add", {"type": "object"})
        def add(params):
            return {"content": [{"type": "text", "text": str(params["a"] + params["b"])}]}

        server.connect(transport)
        ```
    """

    def __init__(
        self,
        name: str = "MCP Python Server",
        version: str = "1.0.0",
        capabilities: ServerCapabilities | None = None,
        transport: Transport | None = None,
        *,
        logger: logging.Logger | None = None,
    ):
        self.name = name
        self.version = version
        self.capabilities = capabilities or ServerCapabilities.create()
        self.protocol = McpProtocol(transport, logger=logger)
        self.initialized = False
        self._resources: dict[str, Resource] = {}
        self._tools: dict[str, Tool] = {}
        self._prompts: dict[str, RegisteredPrompt] = {}

    @classmethod
    def from_config(
        cls, config: "ServerConfig", transport: Transport | None = None
    ) -> "McpServer":
        return cls(
            name=config.name,
            version=config.version,
            capabilities=config.capabilities.model_copy(),
            transport=transport,
        )

    @property
    def transport(self) -> Transport | None:
        return self.protocol.transport

    def connect(self, transport: Transport) -> Self:
        """Serve over `transport`: attach it, register the methods, start it."""
        self.protocol.attach_transport(transport)
        self._register_method_handlers()
        transport.start()
        return self

    def resource(
        self,
        name: str,
        uri_pattern: str | ResourceTemplate,
        handler: ResourceHandler | None = None,
        description: str | None = None,
    ):
        """Register a resource served for every URI matching `uri_pattern`.

        Can be used as a decorator when `handler` is omitted.

        Raises:
            RuntimeError: If resources are not enabled
        """
        if not self.capabilities.resources:
            raise RuntimeError("Resources are not enabled in this server")

        def decorator(func: ResourceHandler) -> ResourceHandler:
            self._resources[name] = Resource(name, uri_pattern, func, description)
            return func

        if handler is None:
            return decorator
        decorator(handler)
        return self

    def tool(
        self,
        name: str,
        schema: Mapping[str, Any] | str,
        handler: ToolHandler | None = None,
        description: str | None = None,
    ):
        """Register a tool whose parameters are described by `schema`.

        Can be used as a decorator when `handler` is omitted.

        Raises:
            RuntimeError: If tools are not enabled
        """
        if not self.capabilities.tools:
            raise RuntimeError("Tools are not enabled in this server")

        def decorator(func: ToolHandler) -> ToolHandler:
            self._tools[name] = Tool(name, schema, func, description)
            return func

        if handler is None:
            return decorator
        decorator(handler)
        return self

    def prompt(
        self,
        name: str,
        schema: Mapping[str, Any] | str,
        handler: PromptHandler | None = None,
        description: str | None = None,
    ):
        """Register a prompt whose parameters are described by `schema`.

        Can be used as a decorator when `handler` is omitted.

        Raises:
            RuntimeError: If prompts are not enabled
        """
        if not self.capabilities.prompts:
            raise RuntimeError("Prompts are not enabled in this server")

        def decorator(func: PromptHandler) -> PromptHandler:
            self._prompts[name] = RegisteredPrompt(name, schema, func, description)
            return func

        if handler is None:
            return decorator
        decorator(handler)
        return self

    def log(
        self,
        level: str,
        message: str,
        logger: str | None = None,
        data: Any = None,
    ) -> Message | None:
        """Send an `mcp/log` notification to the peer, if logging is enabled."""
        if not self.capabilities.logging:
            return None

        params: dict[str, Any] = {"level": level, "message": message}
        if logger is not None:
            params["logger"] = logger
        if data is not None:
            params["data"] = data
        return self.protocol.send_notification("mcp/log", params)

    def close(self) -> Message:
        """Tell the peer the server is shutting down."""
        return self.protocol.send_notification("mcp/shutdown", {})

    def _register_method_handlers(self):
        self.protocol.register_request_handler("mcp/initialize", self._initialize)

        if self.capabilities.resources:
            self.protocol.register_request_handler(
                "mcp/resources/read", self._read_resource
            )
            self.protocol.register_request_handler(
                "mcp/resources/list", self._list_resources
            )

        if self.capabilities.tools:
            self.protocol.register_request_handler(
                "mcp/tools/execute", self._execute_tool
            )
            self.protocol.register_request_handler("mcp/tools/list", self._list_tools)

        if self.capabilities.prompts:
            self.protocol.register_request_handler(
                "mcp/prompts/execute", self._execute_prompt
            )
            self.protocol.register_request_handler(
                "mcp/prompts/list", self._list_prompts
            )

    def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        self.initialized = True
        logger.info(
            "Initialized by client", extra={"client": params.get("client")}
        )
        return {
            "name": self.name,
            "version": self.version,
            "capabilities": self.capabilities.to_dict(),
        }

    def _read_resource(self, params: dict[str, Any]) -> Any:
        uri = params.get("uri")
        if not uri:
            raise McpError("URI is required", INVALID_PARAMS)

        for resource in self._resources.values():
            matches = resource.template.match(uri)
            if matches is None:
                continue

            result = resource.handler(uri, matches)
            if inspect.isawaitable(result):
                return _then(result, _normalize_resource_result)
            return _normalize_resource_result(result)

        raise McpError(
            f"No matching resource for URI: {uri}", RESOURCE_NOT_FOUND, {"uri": uri}
        )

    def _list_resources(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        resources = []
        for resource in self._resources.values():
            if resource.template.list_options is None:
                continue
            entry = resource.to_dict()
            entry["list"] = resource.template.list_options
            resources.append(entry)
        return resources

    def _execute_tool(self, params: dict[str, Any]) -> Any:
        name = params.get("name")
        parameters = params.get("parameters") or {}

        if not name:
            raise McpError("Tool name is required", INVALID_PARAMS)
        tool = self._tools.get(name)
        if tool is None:
            raise McpError(f"Tool not found: {name}", TOOL_NOT_FOUND, {"name": name})

        errors = tool.validate(parameters)
        if errors:
            raise McpError(
                f"Invalid parameters for tool {name}", INVALID_PARAMS, {"errors": errors}
            )

        with logfire.span("Execute tool {tool=}", tool=name):
            try:
                result = tool.execute(parameters)
            except McpError:
                raise
            except Exception as e:
                raise McpError(
                    f"Tool execution failed: {e}", TOOL_EXECUTION_ERROR
                ) from e

        if inspect.isawaitable(result):
            return self._settle_tool(name, result)
        return normalize_tool_result(result)

    async def _settle_tool(self, name: str, awaitable: Awaitable) -> dict[str, Any]:
        with logfire.span("Await tool {tool=}", tool=name):
            try:
                value = await awaitable
            except Exception as e:
                logger.warning("Tool %s failed", name, exc_info=True)
                return ToolResult.error(str(e) or "Tool execution failed").to_dict()
        return normalize_tool_result(value)

    def _list_tools(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        return [tool.to_dict() for tool in self._tools.values()]

    def _execute_prompt(self, params: dict[str, Any]) -> Any:
        name = params.get("name")
        parameters = params.get("parameters") or {}

        if not name:
            raise McpError("Prompt name is required", INVALID_PARAMS)
        prompt = self._prompts.get(name)
        if prompt is None:
            raise McpError(f"Prompt not found: {name}", METHOD_NOT_FOUND)

        errors = validate_with_errors(parameters, prompt.schema)
        if errors:
            raise McpError(
                f"Invalid parameters for prompt {name}",
                INVALID_PARAMS,
                {"errors": errors},
            )

        with logfire.span("Execute prompt {prompt=}", prompt=name):
            try:
                result = prompt.handler(parameters)
            except McpError:
                raise
            except Exception as e:
                raise McpError(
                    f"Prompt execution failed: {e}", PROMPT_EXECUTION_ERROR
                ) from e

        if inspect.isawaitable(result):
            return self._settle_prompt(name, result)
        return normalize_prompt_result(result)

    async def _settle_prompt(self, name: str, awaitable: Awaitable) -> Any:
        with logfire.span("Await prompt {prompt=}", prompt=name):
            try:
                value = await awaitable
            except McpError:
                raise
            except Exception as e:
                raise McpError(
                    f"Prompt execution failed: {e}", PROMPT_EXECUTION_ERROR
                ) from e
        return normalize_prompt_result(value)

    def _list_prompts(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        return [prompt.to_dict() for prompt in self._prompts.values()]
