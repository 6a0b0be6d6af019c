#!/usr/bin/env python3
"""
MCP Server CLI for sandboxed regular expression replacement.

Command-line interface to run the regexp-replace MCP server over stdio or
stateless streamable HTTP.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from replacer.config import memory_mib_to_pages
from replacer.core.errors import ConfigValidationError, ReplacerFault
from replacer.core.logging import configure_structlog

from .config import MCPConfig
from .server import create_mcp_server
from .transports import TransportType

try:
    import importlib.metadata

    __version__ = importlib.metadata.version("wasm-regexp-replace")
except Exception:
    __version__ = "unknown"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="regexp-replace-mcp",
        description="Regular expression replace MCP server backed by a WASM sandbox",
    )
    parser.add_argument(
        "--transport",
        choices=[t.value for t in TransportType],
        default=TransportType.HTTP.value,
        help="MCP transport (default: http)",
    )
    parser.add_argument("--port", type=int, default=None, help="HTTP port to listen on (default: 12040)")
    parser.add_argument("--host", default=None, help="HTTP host to bind (default: 127.0.0.1)")
    parser.add_argument(
        "--path2engine",
        default=None,
        metavar="WASM",
        help="Path to the WASM regex engine (default: bundled bin/rs-regexp-replace-wasi.wasm)",
    )
    parser.add_argument("--mem", type=int, default=None, metavar="MIB", help="WASM memory limit in MiB (default: 64)")
    parser.add_argument(
        "--timeout", type=int, default=None, metavar="MS", help="WASM execution timeout in milliseconds (default: 100)"
    )
    parser.add_argument("--config", type=Path, default=None, metavar="TOML", help="Configuration file")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON")
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> MCPConfig:
    """Merge CLI overrides onto the file (or default) configuration."""
    config = MCPConfig.from_file(args.config) if args.config else MCPConfig()

    replacer_updates: dict[str, object] = {}
    if args.path2engine is not None:
        replacer_updates["wasm_path"] = args.path2engine
    if args.mem is not None:
        replacer_updates["memory_limit_pages"] = memory_mib_to_pages(args.mem)
    if args.timeout is not None:
        replacer_updates["timeout_ms"] = args.timeout

    http_updates: dict[str, object] = {}
    if args.port is not None:
        http_updates["port"] = args.port
    if args.host is not None:
        http_updates["host"] = args.host

    # CLI values go through the same validation as TOML
    data = config.model_dump()
    data["replacer"].update(replacer_updates)
    data["transport_http"].update(http_updates)
    return MCPConfig.model_validate(data)


async def async_main(config: MCPConfig, transport: TransportType) -> None:
    """Async main entry point; the runtime is closed once on the way out."""
    server = create_mcp_server(config)
    try:
        if transport is TransportType.STDIO:
            await server.start_stdio()
        else:
            await server.start_http()
    except asyncio.CancelledError:
        print("\nShutting down MCP server...", file=sys.stderr)
    finally:
        await server.shutdown()


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    args = parse_args(argv)
    try:
        config = build_config(args)
    except (FileNotFoundError, ValidationError, ConfigValidationError) as e:
        print(f"ERROR: invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    level = getattr(logging, config.logging.level)
    configure_structlog(level=level, use_json=args.json_logs)

    print(f"Regexp Replace MCP Server v{__version__}", file=sys.stderr)

    try:
        asyncio.run(async_main(config, TransportType(args.transport)))
    except ReplacerFault as e:
        print(f"ERROR: failed to start replacer engine: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nGraceful shutdown complete.", file=sys.stderr)


if __name__ == "__main__":
    main()
