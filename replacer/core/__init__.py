"""Core replacer types: errors, models and structured logging.

Provides the fixed ErrorKind taxonomy and fault exceptions, Pydantic models
for requests, boundary payloads and results, and the structlog-backed
ReplacerLogger.
"""

from __future__ import annotations

from .errors import (
    ApplicationError,
    CompileFault,
    ConfigurationFault,
    ConfigValidationError,
    ErrorKind,
    InitializationFault,
    InputEncodingFault,
    InstantiationFault,
    OutputDecodingFault,
    ReplacerFault,
    TimeoutFault,
)
from .logging import ReplacerLogger, configure_structlog
from .models import CallState, ReplaceRequest, ReplaceResult

__all__ = [
    "ApplicationError",
    "CallState",
    "CompileFault",
    "ConfigValidationError",
    "ConfigurationFault",
    "ErrorKind",
    "InitializationFault",
    "InputEncodingFault",
    "InstantiationFault",
    "OutputDecodingFault",
    "ReplaceRequest",
    "ReplaceResult",
    "ReplacerFault",
    "ReplacerLogger",
    "TimeoutFault",
    "configure_structlog",
]
