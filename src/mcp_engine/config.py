"""Server configuration.

A `ServerConfig` can be built in code, loaded from a JSON file, or assembled
from command line flags by `mcp_engine.main`. Flags override the file.

Example config.json:
    {
      "name": "Example MCP Server",
      "version": "1.0.0",
      "capabilities": {"resources": true, "tools": true, "prompts": true},
      "log_level": "INFO"
    }
"""

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from .server import ServerCapabilities


class ServerConfig(BaseModel):
    name: str = "MCP Python Server"
    version: str = "1.0.0"
    capabilities: ServerCapabilities = Field(default_factory=ServerCapabilities)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @field_validator("capabilities", mode="before")
    @classmethod
    def _capabilities_from_dict(cls, value: Any) -> Any:
        # Accepts the same shape `mcp/initialize` reports.
        if isinstance(value, Mapping):
            return ServerCapabilities.from_dict(value)
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.upper()
        return value

    @classmethod
    def load(cls, path: str | Path) -> "ServerConfig":
        """Read a config from a JSON file.

        Raises:
            OSError: If the file cannot be read
            pydantic.ValidationError: If the contents are not a valid config
        """
        return cls.model_validate_json(Path(path).read_text())
