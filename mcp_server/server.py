"""
MCP Server for sandboxed regular expression replacement.

This module implements a Model Context Protocol (MCP) server that exposes
the replacer's single operation as the regexp-replace tool.
"""

from __future__ import annotations

import logging
from typing import Any

from fastmcp import FastMCP
from pydantic import BaseModel
from starlette.middleware import Middleware

from replacer import ReplaceCoordinator, ReplaceResult, create_replacer
from replacer.core.logging import ReplacerLogger

from .config import HTTPTransportConfig, MCPConfig
from .transports import MaxBodySizeMiddleware, get_uvicorn_config

CLIENT_ERROR_CODE = -1


class ToolError(BaseModel):
    code: int
    message: str
    kind: str


class ReplaceToolResult(BaseModel):
    """Result of the regexp-replace tool, mirroring the engine's wire shape."""

    replaced_text: str | None = None
    error: ToolError | None = None

    @classmethod
    def from_result(cls, result: ReplaceResult) -> ReplaceToolResult:
        if result.success:
            return cls(replaced_text=result.replaced_text)
        assert result.error_kind is not None
        return cls(
            error=ToolError(
                code=CLIENT_ERROR_CODE,
                message=result.message or "",
                kind=result.error_kind.value,
            )
        )


class MCPServer:
    """
    MCP Server for sandboxed regex replacement.

    Owns one ReplaceCoordinator (and through it the wasmtime runtime) for the
    lifetime of the process; shutdown() closes the runtime.
    """

    def __init__(
        self,
        config: MCPConfig | None = None,
        coordinator: ReplaceCoordinator | None = None,
    ):
        self.config = config or MCPConfig()
        self.logger = ReplacerLogger("mcp_server")
        self.coordinator = coordinator or create_replacer(self.config.replacer, self.logger)

        self.app = FastMCP(
            name=self.config.server.name,
            version=self.config.server.version,
            instructions=self.config.server.instructions,
        )

        self._register_tools()

        self.logger._emit(
            logging.INFO, "MCP server initialized", config=self.config.model_dump()
        )

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.app.tool(
            name="regexp-replace",
            description="Tool to replace text using a regular expression.",
        )
        async def regexp_replace(pattern: str, text: str, replacement: str) -> ReplaceToolResult:
            """Replace all matches of pattern in text with replacement."""
            return await self.handle_replace(pattern, text, replacement)

    async def handle_replace(self, pattern: str, text: str, replacement: str) -> ReplaceToolResult:
        """Run one replacement through the coordinator and shape it for MCP."""
        result = await self.coordinator.areplace(pattern, text, replacement)
        if not result.success:
            self.logger._emit(
                logging.WARNING,
                "Tool execution failed",
                tool="regexp-replace",
                error_kind=result.error_kind.value if result.error_kind else None,
                instance_id=result.instance_id,
            )
        return ReplaceToolResult.from_result(result)

    async def start_stdio(self) -> None:
        """Start the MCP server with stdio transport."""
        self.logger._emit(logging.INFO, "Starting MCP server with stdio transport")
        await self.app.run_stdio_async()

    async def start_http(self, config: HTTPTransportConfig | None = None) -> None:
        """Start the MCP server with stateless streamable HTTP transport."""
        http_config = config or self.config.transport_http

        self.logger._emit(
            logging.INFO,
            "Starting MCP server with HTTP transport",
            host=http_config.host,
            port=http_config.port,
        )

        # FastMCP takes host/port separately from uvicorn_config
        uvicorn_config: dict[str, Any] = get_uvicorn_config(http_config)
        host = uvicorn_config.pop("host")
        port = uvicorn_config.pop("port")

        await self.app.run_http_async(
            transport="http",
            host=host,
            port=port,
            path=http_config.path,
            stateless_http=True,
            middleware=[
                Middleware(MaxBodySizeMiddleware, max_bytes=http_config.max_body_bytes),
            ],
            uvicorn_config=uvicorn_config,
        )

    async def shutdown(self) -> None:
        """Shutdown the MCP server and release the wasmtime runtime."""
        self.logger._emit(logging.INFO, "Shutting down MCP server")
        self.coordinator.runtime.close()


def create_mcp_server(
    config: MCPConfig | None = None,
    coordinator: ReplaceCoordinator | None = None,
) -> MCPServer:
    """Create and configure an MCP server instance.

    Args:
        config: MCP server configuration. If None, uses defaults.
        coordinator: Pre-built ReplaceCoordinator. If None, one is created from
            config.replacer (compiling the engine binary).

    Returns:
        Configured MCPServer instance.

    Raises:
        InitializationFault: If the wasmtime engine cannot be created
        CompileFault: If the engine binary is missing or malformed
    """
    return MCPServer(config, coordinator=coordinator)
