"""
MCP Server Transport Implementations.

Transport selection and HTTP hardening for the MCP server.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .config import HTTPTransportConfig


class TransportType(Enum):
    """Supported MCP transport types."""

    STDIO = "stdio"
    HTTP = "http"


class MaxBodySizeMiddleware:
    """ASGI middleware rejecting request bodies larger than max_bytes.

    Requests declaring a larger Content-Length get 413. Bodies that grow past
    the limit while streaming are cut off and surfaced to the app as a client
    disconnect.
    """

    def __init__(self, app: ASGIApp, max_bytes: int) -> None:
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers") or [])
        content_length = headers.get(b"content-length")
        if content_length is not None:
            try:
                declared = int(content_length)
            except ValueError:
                response = PlainTextResponse("Invalid Content-Length", status_code=400)
                await response(scope, receive, send)
                return
            if declared > self.max_bytes:
                response = PlainTextResponse("Request body too large", status_code=413)
                await response(scope, receive, send)
                return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    return {"type": "http.disconnect"}
            return message

        await self.app(scope, limited_receive, send)


def get_uvicorn_config(config: HTTPTransportConfig) -> dict[str, Any]:
    """Get uvicorn configuration for the HTTP transport."""
    return {
        "host": config.host,
        "port": config.port,
        "access_log": True,
        "log_level": "info",
        "limit_concurrency": config.max_concurrent_requests,
        "timeout_keep_alive": config.timeout_keep_alive_seconds,
    }
