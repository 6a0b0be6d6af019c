"""Exception classes for replacer faults and configuration failures.

Every host-side failure raised by the runtime, instance factory or codec is a
ReplacerFault subclass carrying the ErrorKind it resolves to. The coordinator
converts these into (kind, message) pairs; callers of replace() never see
the exceptions themselves.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Fixed taxonomy of failures surfaced to callers."""

    INVALID_PATTERN = "InvalidPattern"
    RUNTIME_FAULT = "RuntimeFault"
    TIMEOUT = "Timeout"
    CONFIGURATION_FAULT = "ConfigurationFault"
    INPUT_ENCODING_FAULT = "InputEncodingFault"
    OUTPUT_DECODING_FAULT = "OutputDecodingFault"
    INSTANTIATION_FAULT = "InstantiationFault"


class ConfigValidationError(Exception):
    """Raised when replacer configuration is invalid.

    Wraps Pydantic ValidationError with a domain-specific name, the same way
    a malformed TOML value or a negative limit surfaces to startup code.
    """

    pass


class ReplacerFault(Exception):
    """Base class for faults raised inside the replacer core."""

    kind: ErrorKind = ErrorKind.RUNTIME_FAULT


class InitializationFault(ReplacerFault):
    """Raised when the wasmtime engine cannot be created from configuration.

    Fatal at startup: the process must not begin accepting calls.
    """

    kind = ErrorKind.CONFIGURATION_FAULT


class CompileFault(ReplacerFault):
    """Raised when the engine binary cannot be read, validated or compiled."""

    kind = ErrorKind.CONFIGURATION_FAULT


class ConfigurationFault(ReplacerFault):
    """Raised when host-side per-call setup fails (e.g. instance id generation)."""

    kind = ErrorKind.CONFIGURATION_FAULT


class InputEncodingFault(ReplacerFault):
    kind = ErrorKind.INPUT_ENCODING_FAULT


class OutputDecodingFault(ReplacerFault):
    kind = ErrorKind.OUTPUT_DECODING_FAULT


class InstantiationFault(ReplacerFault):
    """Raised when the guest fails to start, traps, or exits non-zero."""

    kind = ErrorKind.INSTANTIATION_FAULT


class TimeoutFault(ReplacerFault):
    """Raised when a guest is interrupted at its execution deadline."""

    kind = ErrorKind.TIMEOUT


class ApplicationError(ReplacerFault):
    """Well-formed error payload reported by the guest itself.

    Not a decoding failure: the guest wrote {"error": {"code": ..., "message": ...}}
    and the classifier decides which ErrorKind the code maps to.
    """

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"guest error {code}: {message}")
        self.code = code
        self.message = message
