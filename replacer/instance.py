"""Per-call sandbox instances for the guest regex engine.

InstanceFactory.spawn() creates a fresh wasmtime Store with its own WASI
context and memory limit, and wires the encoded request to the guest's stdin
and file-backed captures to its stdout/stderr. InstanceHandle.run() arms the
epoch deadline, then instantiates the guest and runs its _start export to
completion as a single unit.

Security boundaries enforced per instance:
- Memory: Store limits cap linear memory at memory_limit_pages * 64 KiB
- Time: Epoch deadline traps the guest once its tick budget is spent
- CPU (optional): Fuel budget bounds the instruction count
- Filesystem: No preopened directories; the guest only sees stdio
- I/O: Stdout/stderr captures are size-capped
"""

from __future__ import annotations

import os
import shutil
import tempfile
import threading
import time
import uuid
from pathlib import Path

from wasmtime import ExitTrap, Func, Store, Trap, TrapCode, WasiConfig, WasmtimeError

from replacer.config import ReplacerConfig
from replacer.core.errors import (
    CompileFault,
    ConfigurationFault,
    InstantiationFault,
    TimeoutFault,
)
from replacer.core.logging import ReplacerLogger
from replacer.runtime import ReplacerRuntime

STDIN_FILENAME = "stdin.json"
STDOUT_FILENAME = "stdout.json"
STDERR_FILENAME = "stderr.log"


def uuid7() -> uuid.UUID:
    """Generate a time-ordered UUID version 7 (RFC 9562).

    48-bit Unix millisecond timestamp followed by 74 random bits, so ids sort
    by creation time across instances and collide with negligible probability.
    """
    unix_ts_ms = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")
    rand_a = rand >> 68
    rand_b = rand & ((1 << 62) - 1)

    value = (unix_ts_ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= rand_a << 64
    value |= 0b10 << 62
    value |= rand_b
    return uuid.UUID(int=value)


class InstanceHandle:
    """Ephemeral sandbox instance owned by exactly one call.

    Holds the Store, the private stdio directory and the captured output.
    close() releases all of them and deregisters the id; it runs its release
    exactly once no matter how many times it is invoked. Use as a context
    manager so release happens on every exit path.

    Attributes:
        instance_id: UUIDv7 string unique among live instances
        timeout_ms: Wall-clock budget for instantiation plus execution
        stdout: Captured guest stdout (capped)
        stdout_truncated: True if the guest wrote more than the cap
        stderr: Captured guest stderr (capped)
        exit_code: Guest exit status once run, else None
    """

    def __init__(
        self, instance_id: str, workdir: Path, timeout_ms: float, factory: InstanceFactory
    ) -> None:
        self.instance_id = instance_id
        self.workdir = workdir
        self.timeout_ms = timeout_ms
        self._factory = factory
        self._store: Store | None = None
        self._closed = False
        self._close_lock = threading.Lock()
        self.stdout = b""
        self.stdout_truncated = False
        self.stderr = ""
        self.stderr_truncated = False
        self.exit_code: int | None = None

    @property
    def name(self) -> str:
        return f"instance-{self.instance_id}"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def stdout_path(self) -> Path:
        return self.workdir / STDOUT_FILENAME

    @property
    def stderr_path(self) -> Path:
        return self.workdir / STDERR_FILENAME

    def run(self) -> None:
        """Instantiate the guest and run its _start export to completion.

        The epoch deadline is armed immediately before instantiation, so the
        timeout covers instantiation plus execution.

        Raises:
            TimeoutFault: If the guest is interrupted at its deadline
            InstantiationFault: If the guest fails to start, traps, or exits non-zero
        """
        if self._closed or self._store is None:
            raise InstantiationFault(f"Instance {self.instance_id} is closed")

        factory = self._factory
        runtime = factory.runtime
        store = self._store
        try:
            module = runtime.module
        except CompileFault as e:
            raise InstantiationFault(str(e)) from e

        deadline_ticks = runtime.deadline_ticks(self.timeout_ms)
        store.set_epoch_deadline(deadline_ticks)
        factory.logger.log_instance_spawned(self.instance_id, deadline_ticks)

        try:
            instance = runtime.linker.instantiate(store, module)
            start = instance.exports(store)["_start"]
            if not isinstance(start, Func):
                raise InstantiationFault("Guest _start export is not a function")
            start(store)
            self.exit_code = 0
        except ExitTrap as trap:
            # Normal WASI proc_exit - only a zero status counts as success
            self.exit_code = trap.code
            if trap.code != 0:
                raise InstantiationFault(f"Guest exited with status {trap.code}") from trap
        except KeyError as e:
            raise InstantiationFault("Guest module has no _start export") from e
        except Trap as trap:
            message = str(trap)
            if trap.trap_code == TrapCode.INTERRUPT:
                raise TimeoutFault(
                    f"Guest exceeded {self.timeout_ms}ms deadline: {message}"
                ) from trap
            raise InstantiationFault(
                f"Guest trapped ({_classify_trap(message)}): {message}"
            ) from trap
        except WasmtimeError as e:
            raise InstantiationFault(f"Guest failed to instantiate: {e}") from e

        self.stdout, self.stdout_truncated = _read_capped(
            self.stdout_path, int(factory.config.stdout_max_bytes)
        )
        stderr_bytes, self.stderr_truncated = _read_capped(
            self.stderr_path, int(factory.config.stderr_max_bytes)
        )
        self.stderr = stderr_bytes.decode("utf-8", errors="replace")
        if self.stderr:
            factory.logger.log_guest_stderr(self.instance_id, self.stderr, self.stderr_truncated)

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        try:
            self._store = None
            shutil.rmtree(self.workdir, ignore_errors=True)
        finally:
            self._factory._release(self)

    def __enter__(self) -> InstanceHandle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class InstanceFactory:
    """Spawns isolated guest instances against a shared ReplacerRuntime.

    The runtime's Engine, Linker and Module are shared read-only. The only
    mutable state here is the registry of live instance ids, used to enforce
    id uniqueness and to make leaked instances observable.
    """

    def __init__(
        self,
        runtime: ReplacerRuntime,
        config: ReplacerConfig | None = None,
        logger: ReplacerLogger | None = None,
    ) -> None:
        self.runtime = runtime
        self.config = config or ReplacerConfig()
        self.logger = logger or runtime.logger
        self._live: set[str] = set()
        self._live_lock = threading.Lock()

    @property
    def live_count(self) -> int:
        with self._live_lock:
            return len(self._live)

    def live_ids(self) -> frozenset[str]:
        with self._live_lock:
            return frozenset(self._live)

    def _allocate_id(self) -> str:
        try:
            instance_id = str(uuid7())
        except (OSError, NotImplementedError, ValueError) as e:
            raise ConfigurationFault(f"Failed to generate instance id: {e}") from e

        with self._live_lock:
            if instance_id in self._live:
                raise ConfigurationFault(f"Instance id collision: {instance_id}")
            self._live.add(instance_id)
        return instance_id

    def _release(self, handle: InstanceHandle) -> None:
        with self._live_lock:
            self._live.discard(handle.instance_id)
        self.logger.log_instance_closed(handle.instance_id)

    def spawn(self, request_bytes: bytes, timeout_ms: float) -> InstanceHandle:
        """Prepare a fresh instance for one call and return its handle.

        The handle owns a new Store with WASI stdio wired to its private
        workspace and the memory limit applied; the guest has not run yet.
        The caller owns the handle, must call run() and must close it. On any
        failure the handle is closed before the fault propagates.

        Args:
            request_bytes: Encoded request fed to the guest's stdin
            timeout_ms: Wall-clock budget for instantiation plus execution

        Returns:
            InstanceHandle ready to run.

        Raises:
            ConfigurationFault: If id or workspace setup fails on the host
            InstantiationFault: If the runtime is closed or the Store cannot be configured
        """
        if self.runtime.closed:
            raise InstantiationFault("Runtime is closed")

        instance_id = self._allocate_id()
        try:
            workdir = Path(tempfile.mkdtemp(prefix="wasm-replacer-"))
        except OSError as e:
            with self._live_lock:
                self._live.discard(instance_id)
            raise ConfigurationFault(f"Failed to create instance workspace: {e}") from e

        handle = InstanceHandle(instance_id, workdir, timeout_ms, self)
        try:
            self._prepare(handle, request_bytes)
        except BaseException:
            handle.close()
            raise
        return handle

    def _prepare(self, handle: InstanceHandle, request_bytes: bytes) -> None:
        stdin_path = handle.workdir / STDIN_FILENAME
        try:
            stdin_path.write_bytes(request_bytes)
        except OSError as e:
            raise ConfigurationFault(f"Failed to stage instance input: {e}") from e

        try:
            wasi = WasiConfig()
            wasi.argv = (handle.name,)
            wasi.stdin_file = str(stdin_path)
            wasi.stdout_file = str(handle.stdout_path)
            wasi.stderr_file = str(handle.stderr_path)

            store = Store(self.runtime.engine)
            store.set_wasi(wasi)
            store.set_limits(memory_size=self.runtime.memory_limit_pages * 65536)
            if self.runtime.fuel_budget is not None:
                store.set_fuel(self.runtime.fuel_budget)
        except WasmtimeError as e:
            raise InstantiationFault(f"Failed to configure store: {e}") from e

        handle._store = store


def _read_capped(path: Path, cap: int) -> tuple[bytes, bool]:
    """Read file up to cap bytes to prevent DoS from unbounded output."""
    try:
        with open(path, "rb") as f:
            data = f.read(cap + 1)
    except FileNotFoundError:
        return b"", False
    return data[:cap], len(data) > cap


def _classify_trap(message: str | None) -> str | None:
    """Label a non-deadline trap from its message, for diagnostics only.

    Deadline traps are recognized by TrapCode.INTERRUPT in InstanceHandle.run().
    """
    if message is None:
        return None

    lowered = message.lower()
    if "fuel" in lowered:
        return "out_of_fuel"
    if "memory" in lowered:
        return "memory_limit"
    return "trap"
