"""Execution coordinator: one replace call from request to classified result.

ReplaceCoordinator drives a call through encode -> spawn/run -> decode and
turns any fault along the way into a ReplaceResult carrying an ErrorKind.
It never raises for a per-call failure, and the instance spawned for the
call is closed on every path out of it.
"""

from __future__ import annotations

import asyncio
import time

from pydantic import ValidationError

from replacer import codec
from replacer.classifier import classify
from replacer.config import ReplacerConfig
from replacer.core.errors import (
    ApplicationError,
    InputEncodingFault,
    OutputDecodingFault,
)
from replacer.core.logging import ReplacerLogger
from replacer.core.models import CallState, ReplaceRequest, ReplaceResult
from replacer.instance import InstanceFactory, InstanceHandle
from replacer.runtime import ReplacerRuntime


class ReplaceCoordinator:
    """Type-safe entry point for sandboxed regex replacement.

    Orchestrates each call by:
    1. Encoding the untrusted request to JSON
    2. Spawning an isolated guest instance with a per-call deadline
    3. Decoding the guest's stdout into a success or application error
    4. Classifying any failure into the fixed ErrorKind taxonomy
    5. Emitting structured log events for observability

    Attributes:
        runtime: Shared ReplacerRuntime (engine + compiled module)
        config: ReplacerConfig with the default timeout and output caps
        factory: InstanceFactory spawning per-call instances
        logger: ReplacerLogger for structured event emission
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
        self.factory = InstanceFactory(runtime, self.config, self.logger)

    def replace(
        self,
        pattern: str,
        text: str,
        replacement: str,
        timeout_ms: int | None = None,
    ) -> ReplaceResult:
        """Replace all matches of pattern in text inside the sandbox.

        Args:
            pattern: Untrusted regular expression
            text: Untrusted input text
            replacement: Untrusted replacement template
            timeout_ms: Deadline for this call; defaults to config.timeout_ms

        Returns:
            ReplaceResult with replaced_text, or error_kind and message.
        """
        budget_ms = self.config.timeout_ms if timeout_ms is None else timeout_ms
        try:
            request = ReplaceRequest(pattern=pattern, text=text, replacement=replacement)
        except ValidationError as e:
            kind, message = classify(InputEncodingFault(str(e)))
            self.logger.log_call_fault(kind.value, f"Rejected request: {e}")
            return ReplaceResult.failure(kind, message)
        return self.execute(request, budget_ms)

    async def areplace(
        self,
        pattern: str,
        text: str,
        replacement: str,
        timeout_ms: int | None = None,
    ) -> ReplaceResult:
        """Async variant of replace() running the guest in a worker thread.

        Cancelling the awaiting task does not stop the worker; the guest is
        still bounded by its own deadline and its instance is released there.
        """
        return await asyncio.to_thread(self.replace, pattern, text, replacement, timeout_ms)

    def execute(self, request: ReplaceRequest, timeout_ms: float) -> ReplaceResult:
        """Run one prepared request through the call state machine."""
        start_time = time.perf_counter()
        state = CallState.IDLE
        handle: InstanceHandle | None = None

        self.logger.log_call_start(request, int(timeout_ms))

        try:
            state = self._advance(CallState.ENCODING)
            request_bytes = codec.encode(request)

            state = self._advance(CallState.SPAWNING)
            handle = self.factory.spawn(request_bytes, timeout_ms)

            with handle:
                state = self._advance(CallState.RUNNING, handle.instance_id)
                handle.run()

                state = self._advance(CallState.DECODING, handle.instance_id)
                if handle.stdout_truncated:
                    raise OutputDecodingFault(
                        f"Guest output exceeded {self.config.stdout_max_bytes} bytes"
                    )
                decoded = codec.decode(handle.stdout)

            result = decoded.model_copy(
                update={
                    "instance_id": handle.instance_id,
                    "duration_ms": _elapsed_ms(start_time),
                }
            )
        except ApplicationError as e:
            kind, message = classify(e)
            result = ReplaceResult.failure(
                kind,
                message,
                instance_id=handle.instance_id if handle else None,
                duration_ms=_elapsed_ms(start_time),
            )
        except Exception as e:
            kind, message = classify(e)
            self.logger.log_call_fault(
                kind.value,
                f"{type(e).__name__} during {state.value}: {e}",
                instance_id=handle.instance_id if handle else None,
            )
            result = ReplaceResult.failure(
                kind,
                message,
                instance_id=handle.instance_id if handle else None,
                duration_ms=_elapsed_ms(start_time),
            )

        self._advance(CallState.DONE, result.instance_id)
        self.logger.log_call_complete(result)
        return result

    def _advance(self, state: CallState, instance_id: str | None = None) -> CallState:
        self.logger.log_call_state(state, instance_id)
        return state


def _elapsed_ms(start_time: float) -> float:
    return (time.perf_counter() - start_time) * 1000.0
