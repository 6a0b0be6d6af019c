"""Tests for replacer.core.logging module.

Verifies ReplacerLogger emission through structlog and the standard library,
and that untrusted call input is kept out of log events.
"""

from __future__ import annotations

import logging
from typing import Any

import pytest
import structlog

from replacer.core.errors import ErrorKind
from replacer.core.logging import ReplacerLogger, configure_structlog
from replacer.core.models import CallState, ReplaceRequest, ReplaceResult
from wat_guests import SPIN_WAT, SUCCESS_FOO_WAT, writer_wat


class StructlogCapture:
    """Helper to capture structlog events."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        """Capture event dict (structlog processor signature)."""
        self.events.append(event_dict.copy())
        return event_dict

    def named(self, event: str) -> list[dict[str, Any]]:
        return [e for e in self.events if e.get("event") == event]


@pytest.fixture
def log_capture() -> StructlogCapture:
    """Fixture providing structlog event capture."""
    return StructlogCapture()


@pytest.fixture
def custom_logger(log_capture: StructlogCapture) -> Any:
    """Fixture providing a structlog logger with capture processor."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            log_capture,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.BoundLogger,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    yield structlog.get_logger("test_replacer")

    structlog.reset_defaults()


def test_configure_structlog_console_renderer() -> None:
    """Test structlog configuration with console renderer."""
    configure_structlog(use_json=False)

    assert structlog.is_configured()
    structlog.reset_defaults()


def test_configure_structlog_json_renderer() -> None:
    """Test structlog configuration with JSON renderer."""
    configure_structlog(level=logging.DEBUG, use_json=True)

    assert structlog.is_configured()
    structlog.reset_defaults()


def test_call_start_truncates_pattern_and_omits_text(custom_logger, log_capture) -> None:
    """Untrusted text and replacement are logged only by length."""
    logger = ReplacerLogger(custom_logger)
    request = ReplaceRequest(pattern="a" * 200, text="secret text", replacement="hidden")

    logger.log_call_start(request, 100)

    event = log_capture.named("call.start")[0]
    assert len(event["pattern"]) == 80
    assert event["pattern"].endswith("...[truncated]")
    assert event["text_length"] == len("secret text")
    assert event["replacement_length"] == len("hidden")
    assert "secret text" not in str(event)
    assert "hidden" not in str(event)


def test_call_complete_success_and_failure(custom_logger, log_capture) -> None:
    logger = ReplacerLogger(custom_logger)

    logger.log_call_complete(ReplaceResult.ok("abc", instance_id="id-1", duration_ms=1.5))
    logger.log_call_complete(ReplaceResult.failure(ErrorKind.TIMEOUT, "Text replacement timed out"))

    ok_event, failed_event = log_capture.named("call.complete")
    assert ok_event["success"] is True
    assert ok_event["replaced_length"] == 3
    assert ok_event["instance_id"] == "id-1"
    assert failed_event["success"] is False
    assert failed_event["error_kind"] == "Timeout"


def test_call_fault_is_warning(custom_logger, log_capture) -> None:
    logger = ReplacerLogger(custom_logger)

    logger.log_call_fault("Timeout", "wasm trap: interrupt", instance_id="id-2")

    event = log_capture.named("call.fault")[0]
    assert event["level"] == "warning"
    assert event["detail"] == "wasm trap: interrupt"


def test_call_state_event(custom_logger, log_capture) -> None:
    logger = ReplacerLogger(custom_logger)

    logger.log_call_state(CallState.SPAWNING)

    assert log_capture.named("call.state")[0]["state"] == "spawning"


def test_std_logger_backend(caplog) -> None:
    """ReplacerLogger also accepts a standard library logger."""
    std_logger = logging.getLogger("replacer-test-logger")
    logger = ReplacerLogger(std_logger)

    with caplog.at_level(logging.INFO, logger="replacer-test-logger"):
        logger.log_runtime_closed()

    assert any(record.getMessage() == "replacer.runtime.closed" for record in caplog.records)


def test_coordinator_emits_lifecycle_events(make_coordinator, custom_logger, log_capture) -> None:
    """A successful call logs start, spawn, release and completion."""
    coordinator = make_coordinator(SUCCESS_FOO_WAT)
    coordinator.logger = ReplacerLogger(custom_logger)
    coordinator.factory.logger = coordinator.logger

    result = coordinator.replace("a", "aaa", "b")

    assert log_capture.named("call.start")
    assert log_capture.named("instance.spawned")[0]["instance_id"] == result.instance_id
    assert log_capture.named("instance.closed")[0]["instance_id"] == result.instance_id
    assert [e["state"] for e in log_capture.named("call.state")] == [
        "encoding",
        "spawning",
        "running",
        "decoding",
        "done",
    ]


def test_timeout_logs_fault_detail(make_coordinator, custom_logger, log_capture) -> None:
    coordinator = make_coordinator(SPIN_WAT)
    coordinator.logger = ReplacerLogger(custom_logger)
    coordinator.factory.logger = coordinator.logger

    coordinator.replace("a", "aaa", "b", timeout_ms=10)

    fault = log_capture.named("call.fault")[0]
    assert fault["error_kind"] == "Timeout"
    assert "TimeoutFault during running" in fault["detail"]
    assert fault["instance_id"] is not None


def test_guest_stderr_is_logged(make_coordinator, custom_logger, log_capture) -> None:
    coordinator = make_coordinator(writer_wat('{"replaced_text":"ok"}', stderr="engine warning"))
    coordinator.factory.logger = ReplacerLogger(custom_logger)

    coordinator.replace("a", "aaa", "b")

    assert log_capture.named("instance.stderr")[0]["stderr"] == "engine warning"
