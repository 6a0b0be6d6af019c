"""Factory function wiring config, runtime and coordinator together.

create_replacer() is the startup path: it builds the engine, compiles the
guest binary once and returns a ReplaceCoordinator. Initialization and
compile failures propagate so the process never starts accepting calls
with a broken engine.
"""

from __future__ import annotations

from pathlib import Path

from replacer.config import ReplacerConfig
from replacer.coordinator import ReplaceCoordinator
from replacer.core.errors import CompileFault
from replacer.core.logging import ReplacerLogger
from replacer.module_paths import resolve_engine_path
from replacer.runtime import ReplacerRuntime


def create_replacer(
    config: ReplacerConfig | None = None,
    logger: ReplacerLogger | None = None,
    module_bytes: bytes | None = None,
) -> ReplaceCoordinator:
    """Create a ready-to-use coordinator backed by a freshly compiled runtime.

    The caller owns the returned coordinator's runtime and must close it at
    shutdown (``coordinator.runtime.close()``).

    Args:
        config: Optional ReplacerConfig. If None, uses defaults.
        logger: Optional ReplacerLogger shared by all components.
        module_bytes: Guest binary to compile instead of reading config.wasm_path.

    Returns:
        ReplaceCoordinator with a compiled guest module.

    Raises:
        InitializationFault: If the engine cannot be created from config
        CompileFault: If the guest binary is missing or malformed

    Examples:
        >>> coordinator = create_replacer(ReplacerConfig(wasm_path="bin/engine.wasm"))
        >>> coordinator.replace("a+", "aaa bbb aaa", "X").replaced_text
        'X bbb X'
        >>> coordinator.runtime.close()
    """
    if config is None:
        config = ReplacerConfig()
    logger = logger or ReplacerLogger()

    runtime = ReplacerRuntime.create(
        config.memory_limit_pages,
        epoch_tick_ms=config.epoch_tick_ms,
        fuel_budget=config.fuel_budget,
        logger=logger,
    )

    try:
        if module_bytes is not None:
            runtime.compile(module_bytes)
        else:
            try:
                wasm_path: Path = resolve_engine_path(config.wasm_path)
            except FileNotFoundError as e:
                raise CompileFault(str(e)) from e
            runtime.compile_file(wasm_path)
    except BaseException:
        runtime.close()
        raise

    return ReplaceCoordinator(runtime, config, logger)
