"""Path resolution for the guest regex engine WASM binary.

Locates the engine binary bundled with the package, falling back to
project-relative paths for development workflows.
"""

from __future__ import annotations

from pathlib import Path

ENGINE_BINARY_NAME = "rs-regexp-replace-wasi.wasm"


def get_bundled_binary_path(binary_name: str) -> Path:
    """Get path to a bundled WASM binary, with fallback for development.

    Searches for the binary in the following order:
    1. In the package installation directory (bin/ next to replacer/)
    2. In the project bin/ directory relative to the current directory
    3. In site-packages/bin when installed as a wheel

    Args:
        binary_name: Name of the WASM binary file

    Returns:
        Path to the WASM binary file

    Raises:
        FileNotFoundError: If the binary cannot be found in any search location
    """
    package_dir = Path(__file__).parent.parent  # replacer/ -> project root
    bundled_path = package_dir / "bin" / binary_name
    if bundled_path.is_file():
        return bundled_path

    cwd_bin = Path.cwd() / "bin" / binary_name
    if cwd_bin.is_file():
        return cwd_bin

    if "site-packages" in str(Path(__file__)):
        site_bin = Path(__file__).parent.parent.parent / "bin" / binary_name
        if site_bin.is_file():
            return site_bin

    search_locations = [str(bundled_path), str(cwd_bin)]
    raise FileNotFoundError(
        f"WASM binary '{binary_name}' not found. Searched locations:\n"
        + "\n".join(f"  - {loc}" for loc in search_locations)
        + "\n\nBuild the engine with: cargo build --release --target wasm32-wasip1"
        + " and copy it into bin/"
    )


def get_engine_wasm_path() -> Path:
    """Get path to the regex replace engine binary.

    Raises:
        FileNotFoundError: If the engine binary cannot be found
    """
    return get_bundled_binary_path(ENGINE_BINARY_NAME)


def resolve_engine_path(configured: str | None) -> Path:
    """Return the configured engine path, or the bundled one when unset."""
    if configured:
        return Path(configured)
    return get_engine_wasm_path()
