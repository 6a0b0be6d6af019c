"""Tests for the regexp-replace MCP server, its CLI and HTTP hardening."""

from __future__ import annotations

from typing import Any

import pytest
from fastmcp import Client

from mcp_server.__main__ import build_config, parse_args
from mcp_server.config import MCPConfig, ServerConfig
from mcp_server.server import MCPServer, ReplaceToolResult, create_mcp_server
from mcp_server.transports import MaxBodySizeMiddleware, TransportType, get_uvicorn_config
from replacer import ErrorKind, ReplaceResult
from replacer.config import load_config
from replacer.core.errors import CompileFault, ConfigValidationError
from wat_guests import SPIN_WAT, SUCCESS_FOO_WAT, writer_wat


@pytest.fixture
def make_server(make_coordinator):
    def _make(wat: str, **config_overrides: object) -> MCPServer:
        return create_mcp_server(coordinator=make_coordinator(wat, **config_overrides))

    return _make


class TestReplaceToolResult:
    """Test shaping of coordinator results for MCP clients."""

    def test_success_shape(self) -> None:
        shaped = ReplaceToolResult.from_result(ReplaceResult.ok("X bbb X"))

        assert shaped.model_dump() == {"replaced_text": "X bbb X", "error": None}

    def test_failure_shape(self) -> None:
        shaped = ReplaceToolResult.from_result(
            ReplaceResult.failure(ErrorKind.TIMEOUT, "Text replacement timed out")
        )

        assert shaped.replaced_text is None
        assert shaped.error is not None
        assert shaped.error.code == -1
        assert shaped.error.kind == "Timeout"
        assert shaped.error.message == "Text replacement timed out"


class TestMCPServerInitialization:
    """Test MCP server initialization and configuration."""

    def test_server_name(self, make_server) -> None:
        server = make_server(SUCCESS_FOO_WAT)

        assert server.app.name == "regexp-replace"
        assert isinstance(server.config, MCPConfig)

    def test_custom_server_config(self, make_coordinator) -> None:
        config = MCPConfig(server=ServerConfig(name="test-server", version="1.0.0"))
        server = create_mcp_server(config, coordinator=make_coordinator(SUCCESS_FOO_WAT))

        assert server.app.name == "test-server"

    @pytest.mark.asyncio
    async def test_shutdown_closes_runtime(self, make_server) -> None:
        server = make_server(SUCCESS_FOO_WAT)

        await server.shutdown()

        assert server.coordinator.runtime.closed

    def test_missing_engine_fails_at_startup(self, tmp_path) -> None:
        config = MCPConfig.model_validate(
            {"replacer": {"wasm_path": str(tmp_path / "missing.wasm")}}
        )

        with pytest.raises(CompileFault):
            create_mcp_server(config)


class TestRegexpReplaceTool:
    """Test the regexp-replace tool through an in-memory MCP client."""

    @pytest.mark.asyncio
    async def test_tool_is_listed(self, make_server) -> None:
        server = make_server(SUCCESS_FOO_WAT)

        async with Client(server.app) as client:
            tools = await client.list_tools()

        names = [tool.name for tool in tools]
        assert names == ["regexp-replace"]
        schema = tools[0].inputSchema
        assert set(schema["required"]) == {"pattern", "text", "replacement"}

    @pytest.mark.asyncio
    async def test_call_tool_success(self, make_server) -> None:
        server = make_server(SUCCESS_FOO_WAT)

        async with Client(server.app) as client:
            result = await client.call_tool(
                "regexp-replace", {"pattern": "a", "text": "aaa", "replacement": "b"}
            )

        assert result.structured_content["replaced_text"] == "foo"
        assert result.structured_content["error"] is None

    @pytest.mark.asyncio
    async def test_call_tool_invalid_pattern(self, make_server) -> None:
        server = make_server(writer_wat('{"error":{"code":2,"message":"unclosed group"}}'))

        async with Client(server.app) as client:
            result = await client.call_tool(
                "regexp-replace", {"pattern": "(", "text": "aaa", "replacement": "b"}
            )

        error = result.structured_content["error"]
        assert error["kind"] == "InvalidPattern"
        assert error["code"] == -1

    @pytest.mark.asyncio
    async def test_handle_replace_timeout(self, make_server) -> None:
        server = make_server(SPIN_WAT, timeout_ms=10)

        shaped = await server.handle_replace("a", "aaa", "b")

        assert shaped.error is not None
        assert shaped.error.kind == "Timeout"
        assert server.coordinator.factory.live_count == 0


class TestCLI:
    """Test argument parsing and config merging."""

    def test_defaults(self) -> None:
        args = parse_args([])
        config = build_config(args)

        assert TransportType(args.transport) is TransportType.HTTP
        assert config.transport_http.port == 12040
        assert config.replacer.memory_limit_pages == 1024
        assert config.replacer.timeout_ms == 100

    def test_overrides(self) -> None:
        args = parse_args(
            ["--port", "9000", "--mem", "8", "--timeout", "250", "--path2engine", "/tmp/e.wasm"]
        )
        config = build_config(args)

        assert config.transport_http.port == 9000
        assert config.replacer.memory_limit_pages == 128
        assert config.replacer.timeout_ms == 250
        assert config.replacer.wasm_path == "/tmp/e.wasm"

    def test_config_file_then_cli(self, tmp_path) -> None:
        config_file = tmp_path / "server.toml"
        config_file.write_text(
            "[replacer]\ntimeout_ms = 500\n\n[transport_http]\nport = 13000\n"
        )

        config = build_config(parse_args(["--config", str(config_file), "--port", "14000"]))

        assert config.replacer.timeout_ms == 500
        assert config.transport_http.port == 14000

    def test_memory_in_mib_from_file(self, tmp_path) -> None:
        config_file = tmp_path / "server.toml"
        config_file.write_text("[replacer]\nmemory_limit_mib = 4\n")

        config = MCPConfig.from_file(config_file)

        assert config.replacer.memory_limit_pages == 64

    def test_replacer_table_matches_load_config(self, tmp_path) -> None:
        """The server and the library read the same [replacer] table identically."""
        config_file = tmp_path / "server.toml"
        config_file.write_text(
            "[replacer]\nmemory_limit_mib = 2\ntimeout_ms = 300\n\n[transport_http]\nport = 13000\n"
        )

        config = MCPConfig.from_file(config_file)

        assert config.replacer == load_config(str(config_file))
        assert config.replacer.memory_limit_pages == 32

    def test_non_table_replacer_section_rejected(self, tmp_path) -> None:
        config_file = tmp_path / "server.toml"
        config_file.write_text('replacer = "fast"\n')

        with pytest.raises(ConfigValidationError, match="table"):
            MCPConfig.from_file(config_file)

    @pytest.mark.parametrize("argv", [["--timeout", "0"], ["--mem", "0"], ["--mem", "5000"]])
    def test_invalid_values_rejected(self, argv: list[str]) -> None:
        with pytest.raises((ConfigValidationError, ValueError)):
            build_config(parse_args(argv))

    def test_uvicorn_config(self) -> None:
        uvicorn_config = get_uvicorn_config(MCPConfig().transport_http)

        assert uvicorn_config["host"] == "127.0.0.1"
        assert uvicorn_config["port"] == 12040
        assert uvicorn_config["limit_concurrency"] == 64


class _RecordingApp:
    def __init__(self) -> None:
        self.called = False
        self.body = b""
        self.disconnected = False

    async def __call__(self, scope, receive, send) -> None:
        self.called = True
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                self.disconnected = True
                return
            self.body += message.get("body", b"")
            if not message.get("more_body", False):
                break
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"ok"})


async def _invoke(
    middleware: MaxBodySizeMiddleware, headers: list[tuple[bytes, bytes]], chunks: list[bytes]
) -> list[dict[str, Any]]:
    scope = {"type": "http", "method": "POST", "path": "/mcp", "headers": headers}
    pending = [
        {"type": "http.request", "body": chunk, "more_body": i < len(chunks) - 1}
        for i, chunk in enumerate(chunks)
    ]
    sent: list[dict[str, Any]] = []

    async def receive() -> dict[str, Any]:
        return pending.pop(0) if pending else {"type": "http.disconnect"}

    async def send(message: dict[str, Any]) -> None:
        sent.append(message)

    await middleware(scope, receive, send)
    return sent


class TestMaxBodySizeMiddleware:
    """Test request body limits on the HTTP transport."""

    @pytest.mark.asyncio
    async def test_small_body_passes(self) -> None:
        app = _RecordingApp()
        sent = await _invoke(MaxBodySizeMiddleware(app, max_bytes=16), [(b"content-length", b"5")], [b"hello"])

        assert app.body == b"hello"
        assert sent[0]["status"] == 200

    @pytest.mark.asyncio
    async def test_declared_oversize_is_413(self) -> None:
        app = _RecordingApp()
        sent = await _invoke(MaxBodySizeMiddleware(app, max_bytes=16), [(b"content-length", b"17")], [b"x" * 17])

        assert not app.called
        assert sent[0]["status"] == 413

    @pytest.mark.asyncio
    async def test_invalid_content_length_is_400(self) -> None:
        app = _RecordingApp()
        sent = await _invoke(MaxBodySizeMiddleware(app, max_bytes=16), [(b"content-length", b"abc")], [b""])

        assert not app.called
        assert sent[0]["status"] == 400

    @pytest.mark.asyncio
    async def test_streamed_oversize_disconnects(self) -> None:
        app = _RecordingApp()
        await _invoke(MaxBodySizeMiddleware(app, max_bytes=16), [], [b"x" * 10, b"y" * 10])

        assert app.disconnected
        assert app.body == b"x" * 10

    @pytest.mark.asyncio
    async def test_non_http_scope_passes_through(self) -> None:
        seen: list[str] = []

        async def app(scope, receive, send) -> None:
            seen.append(scope["type"])

        await MaxBodySizeMiddleware(app, max_bytes=1)({"type": "lifespan"}, None, None)

        assert seen == ["lifespan"]
