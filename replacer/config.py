"""Configuration for the replacer runtime.

Provides the ReplacerConfig model with secure defaults and TOML-based
loading that merges user settings over DEFAULT_CONFIG, the same way the
guest's memory, time and output budgets are tuned per deployment.
"""

from __future__ import annotations

import os
import tomllib
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from replacer.core.errors import ConfigValidationError

WASM_PAGE_SIZE = 65536
WASM_MAX_PAGES = 65536
PAGES_PER_MIB = (1024 * 1024) // WASM_PAGE_SIZE

DEFAULT_CONFIG: dict[str, Any] = {
    # Resolved through module_paths when left empty
    "wasm_path": None,

    # 64 MiB of guest linear memory
    "memory_limit_pages": 64 * PAGES_PER_MIB,

    # Per-call wall-clock budget
    "timeout_ms": 100,

    # Granularity of deadline enforcement
    "epoch_tick_ms": 1.0,

    # Instruction budget; None disables fuel metering
    "fuel_budget": None,

    # Capture caps for guest stdio
    "stdout_max_bytes": 1024 * 1024,
    "stderr_max_bytes": 64 * 1024,
}


def memory_mib_to_pages(mib: int) -> int:
    """Convert a memory limit in MiB to 64 KiB WASM pages."""
    return int(mib) * PAGES_PER_MIB


class ReplacerConfig(BaseModel):
    """Validated configuration for the runtime, instance factory and coordinator.

    Attributes:
        wasm_path: Path to the guest regex engine binary (None = bundled lookup)
        memory_limit_pages: Max linear memory per instance in 64 KiB pages
        timeout_ms: Default per-call execution deadline in milliseconds
        epoch_tick_ms: Interval of the engine epoch ticker in milliseconds
        fuel_budget: Optional per-call WASM instruction budget
        stdout_max_bytes: Cap on captured guest stdout
        stderr_max_bytes: Cap on captured guest stderr
    """

    wasm_path: str | None = Field(
        default=None,
        description="Path to the guest regex engine WASM binary"
    )

    memory_limit_pages: int = Field(
        default=DEFAULT_CONFIG["memory_limit_pages"],
        ge=1,
        le=WASM_MAX_PAGES,
        description="Linear memory cap per instance in 64 KiB pages"
    )

    timeout_ms: int = Field(
        default=DEFAULT_CONFIG["timeout_ms"],
        gt=0,
        description="Per-call execution deadline in milliseconds"
    )

    epoch_tick_ms: float = Field(
        default=DEFAULT_CONFIG["epoch_tick_ms"],
        gt=0,
        description="Epoch ticker interval in milliseconds"
    )

    fuel_budget: int | None = Field(
        default=None,
        description="Optional WASM instruction budget per call"
    )

    stdout_max_bytes: int = Field(
        default=DEFAULT_CONFIG["stdout_max_bytes"],
        gt=0,
        description="Maximum captured guest stdout"
    )

    stderr_max_bytes: int = Field(
        default=DEFAULT_CONFIG["stderr_max_bytes"],
        gt=0,
        description="Maximum captured guest stderr"
    )

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise ConfigValidationError(f"Invalid replacer config: {e}") from e

    @field_validator("fuel_budget")
    @classmethod
    def validate_fuel(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("Fuel budget must be positive")
        return v

    @property
    def memory_limit_bytes(self) -> int:
        return self.memory_limit_pages * WASM_PAGE_SIZE


def merge_replacer_section(section: Any) -> dict[str, Any]:
    """Merge a [replacer] table over DEFAULT_CONFIG.

    memory_limit_mib, when present, is converted to memory_limit_pages and
    takes precedence over it.

    Raises:
        ConfigValidationError: If the section is not a table
    """
    if not isinstance(section, dict):
        raise ConfigValidationError("[replacer] must be a table")

    merged = DEFAULT_CONFIG | section
    if "memory_limit_mib" in merged:
        merged["memory_limit_pages"] = memory_mib_to_pages(merged.pop("memory_limit_mib"))
    return merged


def load_config(path: str = "config/replacer.toml") -> ReplacerConfig:
    """Load and merge a user TOML configuration with secure defaults.

    Keys may sit at the top level or under a [replacer] table. Unknown keys
    are ignored by the model.

    Args:
        path: Path to the TOML file. If it doesn't exist, defaults are returned.

    Returns:
        ReplacerConfig: Validated configuration.

    Raises:
        ConfigValidationError: If the merged configuration is invalid
        tomllib.TOMLDecodeError: If the TOML file is malformed
        OSError: If the file exists but cannot be read
    """
    if not os.path.exists(path):
        return ReplacerConfig(**DEFAULT_CONFIG)

    with open(path, "rb") as f:
        data = tomllib.load(f)

    return ReplacerConfig(**merge_replacer_section(data.get("replacer", data)))
