"""Single mapping from classified pipeline failures to HTTP responses."""

from __future__ import annotations

from typing import Any

from fastapi import status

from app.modules.decks.errors import (
    ExtractionError,
    ExtractionErrorKind,
    GenerationError,
    GenerationErrorKind,
    MeteringError,
    MeteringErrorKind,
    PipelineError,
    RequestError,
    ValidationError,
)

# category tells the client whether to change the input or simply retry later
CATEGORY_INVALID_REQUEST = "invalid_request"
CATEGORY_SOURCE = "source"
CATEGORY_CONTENT_POLICY = "content_policy"
CATEGORY_UPSTREAM = "upstream"
CATEGORY_RETRY_LATER = "retry_later"
CATEGORY_GENERATION_QUALITY = "generation_quality"
CATEGORY_BILLING = "billing"
CATEGORY_ACCOUNT = "account"

_EXTRACTION_STATUS = {
    ExtractionErrorKind.FETCH_FAILED: status.HTTP_502_BAD_GATEWAY,
    ExtractionErrorKind.UNSUPPORTED_CONTENT_TYPE: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
}

_GENERATION_STATUS = {
    GenerationErrorKind.SAFETY_BLOCKED: (
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        CATEGORY_CONTENT_POLICY,
    ),
    GenerationErrorKind.RECITATION_BLOCKED: (
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        CATEGORY_CONTENT_POLICY,
    ),
    GenerationErrorKind.EMPTY_RESPONSE: (status.HTTP_502_BAD_GATEWAY, CATEGORY_UPSTREAM),
    GenerationErrorKind.UPSTREAM_REJECTED: (
        status.HTTP_502_BAD_GATEWAY,
        CATEGORY_UPSTREAM,
    ),
    GenerationErrorKind.TRANSIENT: (
        status.HTTP_503_SERVICE_UNAVAILABLE,
        CATEGORY_RETRY_LATER,
    ),
}

_METERING_STATUS = {
    MeteringErrorKind.INSUFFICIENT_BALANCE: (
        status.HTTP_402_PAYMENT_REQUIRED,
        CATEGORY_BILLING,
    ),
    MeteringErrorKind.PROFILE_NOT_FOUND: (status.HTTP_404_NOT_FOUND, CATEGORY_ACCOUNT),
    MeteringErrorKind.PROFILE_LOOKUP_FAILED: (
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        CATEGORY_ACCOUNT,
    ),
}


def classify(error: PipelineError) -> tuple[int, str]:
    """Status code and category for a pipeline error."""
    if isinstance(error, RequestError):
        return status.HTTP_400_BAD_REQUEST, CATEGORY_INVALID_REQUEST
    if isinstance(error, ExtractionError):
        return _EXTRACTION_STATUS.get(error.kind, status.HTTP_400_BAD_REQUEST), CATEGORY_SOURCE
    if isinstance(error, GenerationError):
        return _GENERATION_STATUS[error.kind]
    if isinstance(error, ValidationError):
        return status.HTTP_502_BAD_GATEWAY, CATEGORY_GENERATION_QUALITY
    if isinstance(error, MeteringError):
        return _METERING_STATUS[error.kind]
    return status.HTTP_500_INTERNAL_SERVER_ERROR, CATEGORY_UPSTREAM


def error_to_response(
    error: PipelineError, *, include_diagnostics: bool = False
) -> tuple[int, dict[str, Any]]:
    """Pure mapping of a pipeline error to ``(status_code, body)``.

    Raw model output is a developer diagnostic and is only included when
    ``include_diagnostics`` is set (non-production deployments).
    """
    status_code, category = classify(error)
    body: dict[str, Any] = {
        "error": error.message,
        "kind": error.kind.value,
        "category": category,
    }

    if isinstance(error, MeteringError) and error.kind is MeteringErrorKind.INSUFFICIENT_BALANCE:
        body["details"] = {"balance": error.balance, "required": error.required}
    elif isinstance(error, ValidationError):
        if include_diagnostics and error.raw_text is not None:
            body["details"] = {"raw_text": error.raw_text}
    elif isinstance(error, (GenerationError, ExtractionError)) and error.details:
        body["details"] = error.details
    return status_code, body
