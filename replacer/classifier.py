"""Mapping from internal faults to the external error taxonomy.

classify() is pure and total: every exception resolves to exactly one
ErrorKind and a client-safe message. Host-side details never appear in the
message; guest application errors keep the guest's own message, which is
already the guest's client-facing text.
"""

from __future__ import annotations

from typing import NamedTuple

from replacer.core.errors import (
    ApplicationError,
    ConfigurationFault,
    ErrorKind,
    InputEncodingFault,
    InstantiationFault,
    OutputDecodingFault,
    TimeoutFault,
)

INVALID_PATTERN_CODE = 2

CLIENT_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_PATTERN: "Invalid regular expression pattern",
    ErrorKind.RUNTIME_FAULT: "Text replacement failed",
    ErrorKind.TIMEOUT: "Text replacement timed out",
    ErrorKind.CONFIGURATION_FAULT: "Engine configuration error",
    ErrorKind.INPUT_ENCODING_FAULT: "Invalid pattern, text, or replacement input format",
    ErrorKind.OUTPUT_DECODING_FAULT: "Engine output error",
    ErrorKind.INSTANTIATION_FAULT: "Engine instantiation failed",
}

UNKNOWN_FAULT_MESSAGE = "Internal server error"


class Classification(NamedTuple):
    kind: ErrorKind
    message: str


def classify_application_error(code: int, message: str) -> Classification:
    """Classify a guest-reported error code."""
    kind = ErrorKind.INVALID_PATTERN if code == INVALID_PATTERN_CODE else ErrorKind.RUNTIME_FAULT
    base = CLIENT_MESSAGES[kind]
    return Classification(kind, f"{base}: {message}" if message else base)


def classify(fault: BaseException) -> Classification:
    """Resolve any failure raised during a call to (kind, message)."""
    if isinstance(fault, ApplicationError):
        return classify_application_error(fault.code, fault.message)

    for fault_type in (
        TimeoutFault,
        ConfigurationFault,
        InputEncodingFault,
        OutputDecodingFault,
        InstantiationFault,
    ):
        if isinstance(fault, fault_type):
            return Classification(fault_type.kind, CLIENT_MESSAGES[fault_type.kind])

    return Classification(ErrorKind.RUNTIME_FAULT, UNKNOWN_FAULT_MESSAGE)
