"""JSON codec for the guest stdin/stdout boundary.

encode() produces the canonical request object. decode() inspects which
fields the guest wrote and resolves the output to exactly one of: a success
payload, a guest application error (raised as ApplicationError), or an
OutputDecodingFault.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from replacer.core.errors import ApplicationError, InputEncodingFault, OutputDecodingFault
from replacer.core.models import (
    ReplaceErrorPayload,
    ReplaceRequest,
    ReplaceResult,
    ReplaceSuccessPayload,
)


def encode(request: ReplaceRequest) -> bytes:
    """Serialize a request to UTF-8 JSON with pattern, text and replacement.

    Raises:
        InputEncodingFault: If the request cannot be represented as UTF-8 JSON
            (e.g. strings containing lone surrogates).
    """
    try:
        payload = {
            "pattern": request.pattern,
            "text": request.text,
            "replacement": request.replacement,
        }
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError, UnicodeEncodeError) as e:
        raise InputEncodingFault(f"Failed to encode request as JSON: {e}") from e


def decode(raw: bytes) -> ReplaceResult:
    """Parse guest stdout into a successful ReplaceResult.

    Returns:
        ReplaceResult carrying replaced_text.

    Raises:
        ApplicationError: If the guest reported {"error": {"code", "message"}}.
        OutputDecodingFault: If the output matches neither known shape.
    """
    if not raw:
        raise OutputDecodingFault("Guest produced no output")

    try:
        document: Any = json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise OutputDecodingFault(f"Guest output is not valid UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise OutputDecodingFault(f"Guest output is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise OutputDecodingFault(
            f"Guest output must be a JSON object, got {type(document).__name__}"
        )

    if document.get("error") is not None:
        try:
            error_payload = ReplaceErrorPayload.model_validate(document)
        except ValidationError as e:
            raise OutputDecodingFault(f"Malformed guest error payload: {e}") from e
        raise ApplicationError(error_payload.error.code, error_payload.error.message)

    if "replaced_text" in document:
        try:
            success = ReplaceSuccessPayload.model_validate(document)
        except ValidationError as e:
            raise OutputDecodingFault(f"Malformed guest success payload: {e}") from e
        return ReplaceResult.ok(success.replaced_text)

    raise OutputDecodingFault(
        f"Guest output has neither replaced_text nor error (keys: {sorted(document)[:10]})"
    )
