import asyncio
import logging
import sys
from typing import Any

import logfire

from . import jsonrpc
from .config import ServerConfig
from .prompts import PromptResult
from .server import McpServer, ServerCapabilities
from .tools import ToolResult

logger = logging.getLogger(__name__)

CALCULATOR_SCHEMA = {
    "type": "object",
    "properties": {
        "operation": {
            "type": "string",
            "enum": ["add", "subtract", "multiply", "divide"],
        },
        "a": {"type": "number"},
        "b": {"type": "number"},
    },
    "required": ["operation", "a", "b"],
}

GREETING_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "The name to greet"},
        "formal": {
            "type": "boolean",
            "description": "Whether to use formal language",
        },
    },
    "required": ["name"],
}


def echo(uri: str, params: dict[str, str]) -> dict[str, Any]:
    return {"contents": [{"uri": uri, "text": f"You said: {params['message']}"}]}


def calculator(params: dict[str, Any]) -> ToolResult:
    a, b = params["a"], params["b"]
    match params["operation"]:
        case "add":
            result = a + b
        case "subtract":
            result = a - b
        case "multiply":
            result = a * b
        case "divide":
            if b == 0:
                return ToolResult.error("Cannot divide by zero")
            result = a / b
        case _:
            return ToolResult.error("Unknown operation")
    return ToolResult.success(f"Result: {result}")


def greeting(params: dict[str, Any]) -> PromptResult:
    name = params["name"]
    salutation = "Hello" if params.get("formal", False) else "Hi"
    return PromptResult.from_messages(
        [
            {
                "role": "system",
                "content": "You are a helpful assistant that greets users professionally.",
            },
            {
                "role": "assistant",
                "content": f"{salutation}, {name}! How can I assist you today?",
            },
        ],
        description=f"A greeting for {name}",
    )


def build_example_server(config: ServerConfig) -> McpServer:
    """An MCP server with an echo resource, a calculator tool and a greeting prompt."""
    server = McpServer.from_config(config)
    if server.capabilities.resources:
        server.resource("echo", "echo://{message}", echo, "Echoes the URI back")
    if server.capabilities.tools:
        server.tool("calculator", CALCULATOR_SCHEMA, calculator, "Basic arithmetic")
    if server.capabilities.prompts:
        server.prompt("greeting", GREETING_SCHEMA, greeting, "Greets someone")
    return server


async def _run(config: ServerConfig):
    server = build_example_server(config)
    transport = await jsonrpc.open_stdio_transport()
    server.connect(transport)
    server.log("info", "Server starting up")

    await transport.wait_closed()
    logger.info("Server stopped")


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(
        description="Runs an example MCP server over stdin/stdout"
    )
    parser.add_argument(
        "--config",
        help="Path to a JSON server configuration file",
    )
    parser.add_argument("--name", help="Server name reported to clients")
    parser.add_argument(
        "--server-version", help="Server version reported to clients"
    )
    parser.add_argument(
        "--disable-resources",
        action="store_true",
        help="Disables the echo resource",
    )
    parser.add_argument(
        "--disable-tools", action="store_true", help="Disables the calculator tool"
    )
    parser.add_argument(
        "--disable-prompts",
        action="store_true",
        help="Disables the greeting prompt",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level for diagnostics written to stderr. Defaults to INFO.",
    )
    parser.add_argument(
        "--enable-logfire",
        action="store_true",
        help="Enables sending logs and spans to Logfire",
    )

    args = parser.parse_args()

    if args.config is not None:
        config = ServerConfig.load(args.config)
    else:
        config = ServerConfig(
            capabilities=ServerCapabilities.create()
            .with_resources()
            .with_tools()
            .with_prompts()
        )

    overrides: dict[str, Any] = {}
    if args.name is not None:
        overrides["name"] = args.name
    if args.server_version is not None:
        overrides["version"] = args.server_version
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    config = config.model_copy(update=overrides)

    capabilities = config.capabilities
    if args.disable_resources:
        capabilities.with_resources(False)
    if args.disable_tools:
        capabilities.with_tools(False)
    if args.disable_prompts:
        capabilities.with_prompts(False)

    if args.enable_logfire:
        logfire.configure(scrubbing=False)
        logging.basicConfig(
            level=config.log_level, handlers=[logfire.LogfireLoggingHandler()]
        )
    else:
        logging.basicConfig(level=config.log_level, stream=sys.stderr)

    logging.info("Starting loop", extra={"cliArgs": vars(args)})
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    loop.run_until_complete(_run(config))
