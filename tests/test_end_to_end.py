"""End-to-end tests against the real regex engine binary.

Skipped when bin/rs-regexp-replace-wasi.wasm has not been built; see
tests/conftest.py for the build and REPLACER_REQUIRE_ENGINE.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from replacer import ErrorKind, ReplacerConfig, create_replacer

pytestmark = pytest.mark.engine


@pytest.fixture
def coordinator(engine_wasm_path: Path):
    coord = create_replacer(ReplacerConfig(wasm_path=str(engine_wasm_path), timeout_ms=2000))
    yield coord
    coord.runtime.close()


class TestEngine:
    def test_replace_all_matches(self, coordinator) -> None:
        result = coordinator.replace("a+", "aaa bbb aaa", "X")

        assert result.replaced_text == "X bbb X"

    def test_capture_group_reference(self, coordinator) -> None:
        result = coordinator.replace(r"(\w+)@(\w+)", "user@host", "$2 at $1")

        assert result.replaced_text == "host at user"

    def test_no_match_returns_input(self, coordinator) -> None:
        result = coordinator.replace("z", "abc", "y")

        assert result.replaced_text == "abc"

    def test_unicode_text(self, coordinator) -> None:
        result = coordinator.replace("ø", "smørrebrød", "o")

        assert result.replaced_text == "smorrebrod"

    def test_invalid_pattern(self, coordinator) -> None:
        result = coordinator.replace("(", "text", "x")

        assert result.error_kind is ErrorKind.INVALID_PATTERN
        assert coordinator.factory.live_count == 0
