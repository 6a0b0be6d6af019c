"""Shared pytest fixtures for all tests.

Host-side behavior is exercised against tiny WASI guests written in WAT and
compiled with wasmtime.wat2wasm, so most tests need no engine binary. Tests
that need the real regex engine carry the "engine" marker and use the
engine_wasm_path fixture.

The engine is the rs-regexp-replace-wasi Rust crate, built with

    cargo build --release --target wasm32-wasip1

and copied to bin/rs-regexp-replace-wasi.wasm. Without it the engine tests
skip, unless REPLACER_REQUIRE_ENGINE is set, in which case they fail. Run only
those tests with `REPLACER_REQUIRE_ENGINE=1 pytest -m engine`.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from wasmtime import wat2wasm

from replacer import ReplaceCoordinator, ReplacerConfig, create_replacer
from replacer.module_paths import get_engine_wasm_path
from wat_guests import TEST_MEMORY_PAGES


@pytest.fixture
def make_coordinator() -> Iterator[Callable[..., ReplaceCoordinator]]:
    """Build coordinators over WAT guests; runtimes are closed at teardown."""
    coordinators: list[ReplaceCoordinator] = []

    def _make(wat: str, **config_overrides: object) -> ReplaceCoordinator:
        settings: dict[str, object] = {"memory_limit_pages": TEST_MEMORY_PAGES, "timeout_ms": 1000}
        settings.update(config_overrides)
        config = ReplacerConfig(**settings)
        coordinator = create_replacer(config, module_bytes=bytes(wat2wasm(wat)))
        coordinators.append(coordinator)
        return coordinator

    yield _make

    for coordinator in coordinators:
        coordinator.runtime.close()


@pytest.fixture
def engine_wasm_path() -> Path:
    """Path to the real regex engine binary, or skip when it isn't built."""
    try:
        return get_engine_wasm_path()
    except FileNotFoundError:
        reason = "regex engine binary not built (bin/rs-regexp-replace-wasi.wasm)"
        if os.environ.get("REPLACER_REQUIRE_ENGINE"):
            pytest.fail(reason)
        pytest.skip(reason)
