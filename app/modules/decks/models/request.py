"""Inbound generation request and its options.

The payload arriving from the HTTP layer (or the CLI) is untrusted; this module
is the single place where it is checked, normalized and frozen.
"""

from __future__ import annotations

import enum
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict

from app.modules.decks.errors import (
    ExtractionError,
    ExtractionErrorKind,
    RequestError,
    RequestErrorKind,
)

DEFAULT_DECK_TITLE = "Generated Deck"


class SourceKind(enum.Enum):
    TEXT = "text"
    PDF = "pdf"
    DOCX = "docx"
    URL = "url"

    @classmethod
    def parse(cls, value: Any) -> "SourceKind":
        if isinstance(value, SourceKind):
            return value
        name = str(value).strip().lower()
        for kind in cls:
            if kind.value == name:
                return kind
        raise ExtractionError(
            ExtractionErrorKind.UNSUPPORTED_SOURCE_KIND,
            f"Unsupported source kind '{value}'. Expected one of: "
            + ", ".join(k.value for k in cls),
        )


class ClozeStyle(enum.Enum):
    SINGLE = "single"
    MULTI = "multi"
    QA = "qa"

    @classmethod
    def parse(cls, value: Any) -> "ClozeStyle":
        if isinstance(value, ClozeStyle):
            return value
        name = str(value).strip().lower()
        name = _CLOZE_ALIASES.get(name, name)
        for style in cls:
            if style.value == name:
                return style
        raise RequestError(
            RequestErrorKind.INVALID_OPTION,
            f"Unsupported cloze style '{value}'. Expected one of: "
            + ", ".join(s.value for s in cls),
        )


# Older clients sent these names
_CLOZE_ALIASES = {"multiple": "multi", "none": "qa"}


def clamp_card_count(value: Any, *, default: int, maximum: int) -> int:
    """Coerce a caller-supplied card count into ``[1, maximum]``."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        count = value
    elif isinstance(value, float) and value.is_integer():
        count = int(value)
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        count = int(value.strip())
    else:
        return default
    return max(1, min(count, maximum))


class GenerationOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    card_count: int = 20
    cloze_style: ClozeStyle = ClozeStyle.SINGLE
    instruction: Optional[str] = None


class GenerationRequest(BaseModel):
    """One immutable deck-generation call."""

    model_config = ConfigDict(frozen=True)

    source_kind: SourceKind
    source_content: Union[str, bytes]
    deck_title: str = DEFAULT_DECK_TITLE
    options: GenerationOptions = GenerationOptions()

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        *,
        default_card_count: int = 20,
        max_card_count: int = 100,
    ) -> "GenerationRequest":
        """Validate an untrusted ``{source_kind, source_content, deck_title?, options?}`` mapping.

        ``source_type`` is accepted as an alias of ``source_kind``.
        """
        if not isinstance(payload, Mapping):
            raise RequestError(
                RequestErrorKind.MISSING_FIELD, "Request body must be a JSON object"
            )

        raw_kind = payload.get("source_kind") or payload.get("source_type")
        raw_content = payload.get("source_content")
        missing = [
            name
            for name, value in (("source_kind", raw_kind), ("source_content", raw_content))
            if value is None or (isinstance(value, (str, bytes)) and len(value) == 0)
        ]
        if missing:
            raise RequestError(
                RequestErrorKind.MISSING_FIELD,
                "Missing required fields: " + ", ".join(missing),
            )
        if not isinstance(raw_content, (str, bytes)):
            raise RequestError(
                RequestErrorKind.INVALID_OPTION, "source_content must be a string"
            )

        source_kind = SourceKind.parse(raw_kind)

        raw_options = payload.get("options") or {}
        if not isinstance(raw_options, Mapping):
            raise RequestError(
                RequestErrorKind.INVALID_OPTION, "options must be a JSON object"
            )

        instruction = raw_options.get("instruction")
        if instruction is not None and not isinstance(instruction, str):
            raise RequestError(
                RequestErrorKind.INVALID_OPTION, "options.instruction must be a string"
            )
        instruction = (instruction or "").strip() or None

        raw_style = raw_options.get("cloze_style")
        style = ClozeStyle.parse(raw_style) if raw_style else ClozeStyle.SINGLE

        options = GenerationOptions(
            card_count=clamp_card_count(
                raw_options.get("card_count"),
                default=default_card_count,
                maximum=max_card_count,
            ),
            cloze_style=style,
            instruction=instruction,
        )

        title = payload.get("deck_title")
        title = title.strip() if isinstance(title, str) else ""

        return cls(
            source_kind=source_kind,
            source_content=raw_content,
            deck_title=title or DEFAULT_DECK_TITLE,
            options=options,
        )
