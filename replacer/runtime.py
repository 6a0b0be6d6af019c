"""Process-wide wasmtime runtime for the regex replace engine.

ReplacerRuntime owns the wasmtime Engine, a WASI-enabled Linker, the epoch
ticker thread that drives per-call deadlines, and the single compiled guest
Module. It is created once at startup and closed once at shutdown; every
concurrent call shares it read-only.

Deadlines use wasmtime epoch interruption rather than fuel: the ticker
increments the engine epoch once per elapsed epoch_tick_ms of monotonic
time and each Store is given a deadline measured in ticks, so a guest stuck
in any loop traps within one tick of its budget.
"""

from __future__ import annotations

import math
import threading
import time
from pathlib import Path

from wasmtime import Config, Engine, Linker, Module, WasmtimeError

from replacer.config import WASM_MAX_PAGES
from replacer.core.errors import CompileFault, InitializationFault
from replacer.core.logging import ReplacerLogger


class ReplacerRuntime:
    """Explicitly constructed engine + compiled module shared by all calls.

    Use ReplacerRuntime.create() rather than the constructor, then compile()
    or compile_file() exactly once before spawning instances.

    Attributes:
        engine: wasmtime Engine configured for epoch interruption
        linker: Linker with WASI preview1 imports defined
        memory_limit_pages: Linear memory cap applied to every instance
        epoch_tick_ms: Epoch ticker interval in milliseconds
        fuel_budget: Optional per-instance instruction budget
    """

    def __init__(
        self,
        engine: Engine,
        linker: Linker,
        memory_limit_pages: int,
        epoch_tick_ms: float,
        fuel_budget: int | None,
        logger: ReplacerLogger,
    ) -> None:
        self.engine = engine
        self.linker = linker
        self.memory_limit_pages = memory_limit_pages
        self.epoch_tick_ms = epoch_tick_ms
        self.fuel_budget = fuel_budget
        self.logger = logger
        self._module: Module | None = None
        self._closed = False
        self._close_lock = threading.Lock()
        self._stop_ticker = threading.Event()
        self._next_tick = time.monotonic() + epoch_tick_ms / 1000.0
        self._ticker = threading.Thread(
            target=self._tick, name="replacer-epoch-ticker", daemon=True
        )
        self._ticker.start()

    @classmethod
    def create(
        cls,
        memory_limit_pages: int,
        *,
        epoch_tick_ms: float = 1.0,
        fuel_budget: int | None = None,
        logger: ReplacerLogger | None = None,
    ) -> ReplacerRuntime:
        """Initialize the sandbox engine with the given memory limit.

        Args:
            memory_limit_pages: Maximum linear memory per instance, in 64 KiB pages
            epoch_tick_ms: Deadline granularity in milliseconds
            fuel_budget: Optional instruction budget per instance
            logger: Optional ReplacerLogger

        Returns:
            A running ReplacerRuntime with no module compiled yet.

        Raises:
            InitializationFault: If the configuration is invalid or the engine
                cannot be created.
        """
        if isinstance(memory_limit_pages, bool) or not isinstance(memory_limit_pages, int):
            raise InitializationFault(f"memory_limit_pages must be an int, got {memory_limit_pages!r}")
        if not 1 <= memory_limit_pages <= WASM_MAX_PAGES:
            raise InitializationFault(
                f"memory_limit_pages must be between 1 and {WASM_MAX_PAGES}, got {memory_limit_pages}"
            )
        if epoch_tick_ms <= 0:
            raise InitializationFault(f"epoch_tick_ms must be positive, got {epoch_tick_ms}")
        if fuel_budget is not None and fuel_budget <= 0:
            raise InitializationFault(f"fuel_budget must be positive, got {fuel_budget}")

        logger = logger or ReplacerLogger()

        try:
            cfg = Config()
            cfg.epoch_interruption = True
            if fuel_budget is not None:
                cfg.consume_fuel = True
            engine = Engine(cfg)

            linker = Linker(engine)
            linker.define_wasi()
        except WasmtimeError as e:
            raise InitializationFault(f"Failed to initialize wasmtime engine: {e}") from e

        runtime = cls(engine, linker, memory_limit_pages, epoch_tick_ms, fuel_budget, logger)
        logger.log_runtime_created(memory_limit_pages, epoch_tick_ms, fuel_budget)
        return runtime

    def _tick(self) -> None:
        while not self._stop_ticker.wait(max(0.0, self._next_tick - time.monotonic())):
            self._advance_epoch(time.monotonic())

    def _advance_epoch(self, now: float) -> int:
        """Increment the epoch once for every tick interval elapsed up to now.

        A late wakeup catches up on the ticks it missed, so deadlines track
        wall-clock time even when the ticker thread is starved.
        """
        interval = self.epoch_tick_ms / 1000.0
        ticks = 0
        while self._next_tick <= now:
            self.engine.increment_epoch()
            self._next_tick += interval
            ticks += 1
        return ticks

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def module(self) -> Module:
        """The compiled guest module.

        Raises:
            CompileFault: If no module has been compiled yet.
        """
        if self._module is None:
            raise CompileFault("No guest module has been compiled")
        return self._module

    def compile(self, module_bytes: bytes, source: str = "<bytes>") -> Module:
        """Validate and compile the guest binary. May only succeed once.

        Raises:
            CompileFault: If the binary is malformed, a module is already
                compiled, or the runtime is closed.
        """
        if self._closed:
            raise CompileFault("Runtime is closed")
        if self._module is not None:
            raise CompileFault("A guest module is already compiled")

        try:
            module = Module(self.engine, bytes(module_bytes))
        except (WasmtimeError, TypeError, ValueError) as e:
            raise CompileFault(f"Failed to compile WASM module from {source}: {e}") from e

        self._module = module
        self.logger.log_module_compiled(source, len(module_bytes))
        return module

    def compile_file(self, path: str | Path) -> Module:
        """Read the guest binary from disk and compile it.

        Raises:
            CompileFault: If the file cannot be read or compiled.
        """
        wasm_path = Path(path)
        try:
            data = wasm_path.read_bytes()
        except OSError as e:
            raise CompileFault(f"Failed to read WASM file from {wasm_path}: {e}") from e
        return self.compile(data, source=str(wasm_path))

    def deadline_ticks(self, timeout_ms: float) -> int:
        """Convert a timeout to the number of epoch ticks a Store may run."""
        return max(1, math.ceil(timeout_ms / self.epoch_tick_ms))

    def close(self) -> None:
        """Stop the epoch ticker and release engine references.

        Must be called once, after the process has stopped accepting calls.
        Repeated calls are ignored.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        self._stop_ticker.set()
        if self._ticker.is_alive() and self._ticker is not threading.current_thread():
            self._ticker.join()
        self._module = None
        self.logger.log_runtime_closed()

    def __enter__(self) -> ReplacerRuntime:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
