from .deck import ExtractedDocument, GeneratedCard, GeneratedDeck
from .request import (
    DEFAULT_DECK_TITLE,
    ClozeStyle,
    GenerationOptions,
    GenerationRequest,
    SourceKind,
    clamp_card_count,
)

__all__ = [
    "ExtractedDocument",
    "GeneratedCard",
    "GeneratedDeck",
    "DEFAULT_DECK_TITLE",
    "ClozeStyle",
    "GenerationOptions",
    "GenerationRequest",
    "SourceKind",
    "clamp_card_count",
]
