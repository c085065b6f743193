"""Deck generation module exports."""

from .client import GenerationClient, build_generation_client
from .extractor import SourceExtractor, extract
from .metering import MeteringGate, MeteringState, ProfileStore, UsageLedgerEntry
from .models import GeneratedCard, GeneratedDeck, GenerationRequest
from .parser import parse_cards
from .pipeline import DeckPipeline, PipelineResult
from .prompts import build_prompt

__all__ = [
    "GenerationClient",
    "build_generation_client",
    "SourceExtractor",
    "extract",
    "MeteringGate",
    "MeteringState",
    "ProfileStore",
    "UsageLedgerEntry",
    "GeneratedCard",
    "GeneratedDeck",
    "GenerationRequest",
    "parse_cards",
    "DeckPipeline",
    "PipelineResult",
    "build_prompt",
]
