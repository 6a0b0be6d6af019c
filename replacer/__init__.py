"""Sandboxed regular expression replacement on wasmtime.

Runs an untrusted WASI regex engine once per call inside a memory- and
time-bounded wasmtime Store, exchanging JSON over the guest's stdin/stdout,
and classifies every failure into a fixed ErrorKind taxonomy.

Typical use:

    from replacer import ReplacerConfig, create_replacer

    coordinator = create_replacer(ReplacerConfig(wasm_path="bin/engine.wasm"))
    try:
        result = coordinator.replace("a+", "aaa bbb aaa", "X")
    finally:
        coordinator.runtime.close()
"""

from __future__ import annotations

from .classifier import Classification, classify
from .config import ReplacerConfig, load_config, memory_mib_to_pages
from .coordinator import ReplaceCoordinator
from .core import (
    ApplicationError,
    CallState,
    CompileFault,
    ConfigurationFault,
    ConfigValidationError,
    ErrorKind,
    InitializationFault,
    InputEncodingFault,
    InstantiationFault,
    OutputDecodingFault,
    ReplacerFault,
    ReplacerLogger,
    ReplaceRequest,
    ReplaceResult,
    TimeoutFault,
    configure_structlog,
)
from .factory import create_replacer
from .instance import InstanceFactory, InstanceHandle
from .runtime import ReplacerRuntime

__all__ = [
    "ApplicationError",
    "CallState",
    "Classification",
    "CompileFault",
    "ConfigValidationError",
    "ConfigurationFault",
    "ErrorKind",
    "InitializationFault",
    "InputEncodingFault",
    "InstanceFactory",
    "InstanceHandle",
    "InstantiationFault",
    "OutputDecodingFault",
    "ReplaceCoordinator",
    "ReplaceRequest",
    "ReplaceResult",
    "ReplacerConfig",
    "ReplacerFault",
    "ReplacerLogger",
    "ReplacerRuntime",
    "TimeoutFault",
    "classify",
    "configure_structlog",
    "create_replacer",
    "load_config",
    "memory_mib_to_pages",
]
