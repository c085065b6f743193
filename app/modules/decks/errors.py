"""Classified failures raised by the deck-generation pipeline.

Every stage fails with a ``PipelineError`` subclass carrying a ``kind`` so the
HTTP layer can map failures to status codes without parsing messages.
"""

from __future__ import annotations

import enum
from typing import Any, Optional


class RequestErrorKind(enum.Enum):
    MISSING_FIELD = "missing_field"
    INVALID_OPTION = "invalid_option"


class ExtractionErrorKind(enum.Enum):
    UNSUPPORTED_SOURCE_KIND = "unsupported_source_kind"
    EMPTY_INPUT = "empty_input"
    ENCRYPTED_DOCUMENT = "encrypted_document"
    MALFORMED_DOCUMENT = "malformed_document"
    FETCH_FAILED = "fetch_failed"
    UNSUPPORTED_CONTENT_TYPE = "unsupported_content_type"
    NO_READABLE_TEXT = "no_readable_text"


class GenerationErrorKind(enum.Enum):
    EMPTY_RESPONSE = "empty_response"
    SAFETY_BLOCKED = "safety_blocked"
    RECITATION_BLOCKED = "recitation_blocked"
    TRANSIENT = "transient"
    UPSTREAM_REJECTED = "upstream_rejected"


class ValidationErrorKind(enum.Enum):
    MALFORMED_JSON = "malformed_json"
    UNEXPECTED_SHAPE = "unexpected_shape"
    NO_USABLE_CARDS = "no_usable_cards"


class MeteringErrorKind(enum.Enum):
    INSUFFICIENT_BALANCE = "insufficient_balance"
    PROFILE_NOT_FOUND = "profile_not_found"
    PROFILE_LOOKUP_FAILED = "profile_lookup_failed"


class PipelineError(Exception):
    """Base exception for all classified pipeline failures."""

    def __init__(
        self,
        kind: enum.Enum,
        message: str,
        *,
        details: Any = None,
        original: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details
        self.original = original

    def __str__(self) -> str:
        if self.original:
            return f"[{self.kind.value}] {self.message} (caused by: {self.original})"
        return f"[{self.kind.value}] {self.message}"


class RequestError(PipelineError):
    """The inbound payload is missing required fields or has invalid options."""

    kind: RequestErrorKind


class ExtractionError(PipelineError):
    """The source could not be turned into non-empty plain text."""

    kind: ExtractionErrorKind


class GenerationError(PipelineError):
    """The model call failed or its envelope carried no usable text."""

    kind: GenerationErrorKind

    @property
    def retriable(self) -> bool:
        return self.kind is GenerationErrorKind.TRANSIENT


class ValidationError(PipelineError):
    """The model's raw text could not be turned into at least one valid card."""

    kind: ValidationErrorKind

    def __init__(
        self,
        kind: ValidationErrorKind,
        message: str,
        *,
        raw_text: Optional[str] = None,
        details: Any = None,
        original: Exception | None = None,
    ) -> None:
        super().__init__(kind, message, details=details, original=original)
        self.raw_text = raw_text


class MeteringError(PipelineError):
    """The caller's allowance could not be checked or does not cover the cost."""

    kind: MeteringErrorKind

    def __init__(
        self,
        kind: MeteringErrorKind,
        message: str,
        *,
        balance: Optional[int] = None,
        required: Optional[int] = None,
        details: Any = None,
        original: Exception | None = None,
    ) -> None:
        super().__init__(kind, message, details=details, original=original)
        self.balance = balance
        self.required = required
