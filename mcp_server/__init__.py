# MCP Server Package
"""
Model Context Protocol server for sandboxed regular expression replacement.

This package exposes the replacer's replace operation to MCP clients as the
regexp-replace tool.
"""

__version__ = "0.1.0"

from .config import MCPConfig
from .server import MCPServer, ReplaceToolResult, create_mcp_server
from .transports import MaxBodySizeMiddleware, TransportType

__all__ = [
    "MCPConfig",
    "MCPServer",
    "MaxBodySizeMiddleware",
    "ReplaceToolResult",
    "TransportType",
    "create_mcp_server",
]
