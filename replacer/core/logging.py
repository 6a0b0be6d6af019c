"""Structured logging for replacer runtime, instance and call events.

Provides ReplacerLogger, which uses structlog for structured event emission
(runtime.created, call.start, call.complete, instance.stderr, ...).
Configures structlog with console rendering by default but allows custom
configuration.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from replacer.core.models import CallState, ReplaceRequest, ReplaceResult


def configure_structlog(level: int = logging.INFO, use_json: bool = False) -> None:
    """Configure structlog with sensible defaults for replacer logging.

    Args:
        level: Minimum log level (default: logging.INFO)
        use_json: If True, use JSON renderer; otherwise use console renderer
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        # stdout belongs to the MCP stdio transport
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


class ReplacerLogger:
    """Wrapper for structured logging of replacer events.

    Accepts either structlog or standard logging.Logger instances and normalizes
    emission so callers do not need to care which backend is in use.
    """

    _TRUNCATION_SUFFIX = "...[truncated]"
    _MAX_PATTERN_LENGTH = 80

    def __init__(self, logger: Any = None) -> None:
        """Initialize ReplacerLogger with optional custom logger.

        Args:
            logger: Optional structlog BoundLogger, logging.Logger, or string name.
                    If None, a default structlog logger named 'replacer' is created.
                    If string, creates a structlog logger with that name.
        """
        if logger is None:
            self._logger = structlog.get_logger("replacer")
        elif isinstance(logger, str):
            self._logger = structlog.get_logger(logger)
        else:
            self._logger = logger

    @property
    def logger(self) -> Any:
        """Expose the underlying logger instance (structlog or logging.Logger)."""
        return self._logger

    def _emit(self, level: int, message: str, **fields: Any) -> None:
        """Emit a log record regardless of logger backend."""
        extra = dict(fields)
        extra.setdefault("log_message", message)
        extra.setdefault("event", message.split(".", 1)[-1] if "." in message else message)
        extra.setdefault("event_type", extra.get("event"))

        if isinstance(self._logger, logging.Logger):
            self._logger.log(level, message, extra=extra)
            return

        method_name = logging.getLevelName(level).lower()
        log_method = getattr(self._logger, method_name, None)
        if not callable(log_method):
            log_method = self._logger.info

        log_kwargs = dict(extra)
        event_value = log_kwargs.pop("event", None)
        event_arg = event_value if event_value is not None else message
        log_method(event_arg, **log_kwargs)

    def _truncate(self, value: str) -> str:
        if len(value) <= self._MAX_PATTERN_LENGTH:
            return value
        keep = self._MAX_PATTERN_LENGTH - len(self._TRUNCATION_SUFFIX)
        return f"{value[:keep]}{self._TRUNCATION_SUFFIX}"

    def log_runtime_created(self, memory_limit_pages: int, epoch_tick_ms: float,
                            fuel_budget: int | None) -> None:
        self._emit(
            logging.INFO,
            "replacer.runtime.created",
            event="runtime.created",
            memory_limit_pages=memory_limit_pages,
            memory_limit_bytes=memory_limit_pages * 65536,
            epoch_tick_ms=epoch_tick_ms,
            fuel_budget=fuel_budget,
        )

    def log_module_compiled(self, source: str, size_bytes: int) -> None:
        self._emit(
            logging.INFO,
            "replacer.runtime.module_compiled",
            event="runtime.module_compiled",
            source=source,
            size_bytes=size_bytes,
        )

    def log_runtime_closed(self) -> None:
        self._emit(logging.INFO, "replacer.runtime.closed", event="runtime.closed")

    def log_call_start(self, request: ReplaceRequest, timeout_ms: int) -> None:
        """Log the start of a replace call.

        Only lengths and a truncated pattern are recorded; the text and
        replacement are untrusted and may be large or sensitive.
        """
        self._emit(
            logging.INFO,
            "replacer.call.start",
            event="call.start",
            pattern=self._truncate(request.pattern),
            text_length=len(request.text),
            replacement_length=len(request.replacement),
            timeout_ms=timeout_ms,
        )

    def log_call_state(self, state: CallState, instance_id: str | None = None) -> None:
        self._emit(
            logging.DEBUG,
            "replacer.call.state",
            event="call.state",
            state=state.value,
            instance_id=instance_id,
        )

    def log_call_complete(self, result: ReplaceResult) -> None:
        """Log the completion of a replace call with its outcome."""
        log_kwargs: dict[str, Any] = {
            "event": "call.complete",
            "success": result.success,
            "instance_id": result.instance_id,
            "duration_ms": result.duration_ms,
        }
        if result.success:
            log_kwargs["replaced_length"] = len(result.replaced_text or "")
        else:
            log_kwargs["error_kind"] = result.error_kind.value if result.error_kind else None

        self._emit(logging.INFO, "replacer.call.complete", **log_kwargs)

    def log_call_fault(self, kind: str, detail: str, instance_id: str | None = None) -> None:
        """Log the internal detail of a classified fault.

        This is the only place underlying engine errors are recorded; the
        caller only receives the classified kind and a fixed message.
        """
        self._emit(
            logging.WARNING,
            "replacer.call.fault",
            event="call.fault",
            error_kind=kind,
            detail=detail,
            instance_id=instance_id,
        )

    def log_instance_spawned(self, instance_id: str, deadline_ticks: int) -> None:
        self._emit(
            logging.DEBUG,
            "replacer.instance.spawned",
            event="instance.spawned",
            instance_id=instance_id,
            deadline_ticks=deadline_ticks,
        )

    def log_instance_closed(self, instance_id: str) -> None:
        self._emit(
            logging.DEBUG,
            "replacer.instance.closed",
            event="instance.closed",
            instance_id=instance_id,
        )

    def log_guest_stderr(self, instance_id: str, stderr: str, truncated: bool) -> None:
        """Forward guest stderr (the host diagnostic channel) to the log."""
        self._emit(
            logging.WARNING,
            "replacer.instance.stderr",
            event="instance.stderr",
            instance_id=instance_id,
            stderr=stderr,
            stderr_truncated=truncated,
        )
