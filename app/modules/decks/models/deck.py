"""Pydantic models for extracted sources and generated decks."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field


class ExtractedDocument(BaseModel):
    """Normalized plain text pulled out of a source."""

    text: str
    page_count: Optional[int] = None


class GeneratedCard(BaseModel):
    """One flashcard; ``back`` is a list only for multi-blank cloze cards."""

    front: str
    back: Union[str, list[str]]
    source_page: Optional[int] = None
    context_snippet: Optional[str] = None


class GeneratedDeck(BaseModel):
    title: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    cards: list[GeneratedCard] = Field(default_factory=list)

    @property
    def card_count(self) -> int:
        return len(self.cards)

    def to_payload(self) -> dict:
        """Outbound success shape shared by the API and the CLI."""
        return {
            "deck_title": self.title,
            "created_at": self.created_at.isoformat(),
            "card_count": self.card_count,
            "cards": [c.model_dump() for c in self.cards],
        }
