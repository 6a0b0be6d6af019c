"""
MCP Server Configuration.

Configuration models for the regexp-replace MCP server.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from replacer.config import ReplacerConfig, merge_replacer_section


def _get_package_version() -> str:
    """Get package version from metadata."""
    try:
        import importlib.metadata

        return importlib.metadata.version("wasm-regexp-replace")
    except Exception:
        return "0.1.0"


class ServerConfig(BaseModel):
    """Server identification and metadata."""

    name: str = "regexp-replace"
    title: str = "Regular Expression Replacer"
    version: str = Field(default_factory=_get_package_version)
    instructions: str = (
        "This server replaces text using regular expressions. The matching engine "
        "runs in a WebAssembly sandbox with a memory cap and a per-call deadline.\n\n"
        "Use the regexp-replace tool with:\n"
        "- pattern: regular expression (Rust regex syntax, no look-around or backreferences)\n"
        "- text: the text to search\n"
        "- replacement: replacement template; $1 or ${name} refer to capture groups\n\n"
        "Errors come back as {\"error\": {\"code\": -1, \"message\": ..., \"kind\": ...}} where "
        "kind is one of InvalidPattern, RuntimeFault, Timeout, ConfigurationFault, "
        "InputEncodingFault, OutputDecodingFault, InstantiationFault."
    )


class HTTPTransportConfig(BaseModel):
    """Configuration for the streamable HTTP transport."""

    host: str = "127.0.0.1"
    port: int = Field(default=12040, ge=1, le=65535)
    path: str = "/mcp"
    max_body_bytes: int = Field(default=1024 * 1024, ge=1)
    timeout_keep_alive_seconds: int = Field(default=10, ge=1)
    max_concurrent_requests: int = Field(default=64, ge=1)


class LoggingConfig(BaseModel):
    """Configuration for MCP logging."""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    structured: bool = True


class MCPConfig(BaseModel):
    """Main MCP server configuration."""

    server: ServerConfig = ServerConfig()
    transport_http: HTTPTransportConfig = HTTPTransportConfig()
    replacer: ReplacerConfig = Field(default_factory=ReplacerConfig)
    logging: LoggingConfig = LoggingConfig()

    @classmethod
    def from_file(cls, path: Path | str) -> MCPConfig:
        """Load configuration from TOML file."""
        import tomllib

        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        if "replacer" in data:
            data["replacer"] = merge_replacer_section(data["replacer"])

        return cls.model_validate(data)
