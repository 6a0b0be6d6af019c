"""Pydantic models for replace requests, boundary payloads and results.

ReplaceRequest is what crosses into the guest on stdin. The two payload
models describe the only shapes the guest may write to stdout. ReplaceResult
is what the coordinator hands back to callers.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, model_validator

from replacer.core.errors import ErrorKind


class CallState(str, Enum):
    """Lifecycle states of a single replace call."""

    IDLE = "idle"
    ENCODING = "encoding"
    SPAWNING = "spawning"
    RUNNING = "running"
    DECODING = "decoding"
    DONE = "done"


class ReplaceRequest(BaseModel):
    """Untrusted replace request sent to the guest as JSON on stdin.

    Attributes:
        pattern: Regular expression source, compiled by the guest
        text: Haystack to search
        replacement: Replacement template (guest-defined syntax, e.g. $1)
    """

    model_config = ConfigDict(frozen=True)

    pattern: str = Field(description="Untrusted regular expression")
    text: str = Field(description="Untrusted input text")
    replacement: str = Field(description="Untrusted replacement template")


class GuestErrorDetail(BaseModel):
    code: StrictInt
    message: StrictStr


class ReplaceSuccessPayload(BaseModel):
    """Guest output on success: {"replaced_text": "..."} (error absent or null)."""

    replaced_text: StrictStr
    error: None = None


class ReplaceErrorPayload(BaseModel):
    """Guest output on application error: {"error": {"code": 2, "message": "..."}}."""

    error: GuestErrorDetail
    replaced_text: StrictStr | None = None


class ReplaceResult(BaseModel):
    """Outcome of exactly one replace call.

    Exactly one of replaced_text or (error_kind, message) is set.

    Attributes:
        replaced_text: Text after replacement (success only)
        error_kind: Classified failure kind (failure only)
        message: Client-safe failure description (failure only)
        instance_id: Identifier of the sandbox instance, when one was spawned
        duration_ms: Wall-clock duration of the call in milliseconds
    """

    replaced_text: str | None = None
    error_kind: ErrorKind | None = None
    message: str | None = None
    instance_id: str | None = None
    duration_ms: float = 0.0

    @model_validator(mode="after")
    def check_exclusive(self) -> ReplaceResult:
        if (self.replaced_text is None) == (self.error_kind is None):
            raise ValueError("ReplaceResult must carry either replaced_text or error_kind")
        if self.error_kind is not None and self.message is None:
            raise ValueError("Failed ReplaceResult requires a message")
        return self

    @property
    def success(self) -> bool:
        return self.error_kind is None

    @classmethod
    def ok(cls, replaced_text: str, **extra: Any) -> ReplaceResult:
        return cls(replaced_text=replaced_text, **extra)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, **extra: Any) -> ReplaceResult:
        return cls(error_kind=kind, message=message, **extra)

