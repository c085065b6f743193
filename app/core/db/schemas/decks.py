from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional
from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
    JSON,
    UniqueConstraint,
    text as sa_text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.db.base import Base

if TYPE_CHECKING:
    from .auth import User


class Deck(Base):
    __tablename__ = "decks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        server_default=sa_text("'[]'"),
    )
    is_public: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sa_text("false")
    )
    source_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    source_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Options the deck was generated with (card_count, cloze_style, instruction)
    generation_params: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON, nullable=True
    )
    generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        index=True,
    )

    user: Mapped["User"] = relationship("User", back_populates="decks")
    cards: Mapped[list["DeckCard"]] = relationship(
        "DeckCard",
        back_populates="deck",
        cascade="all, delete-orphan",
        order_by="DeckCard.order_index",
    )


class DeckCard(Base):
    __tablename__ = "deck_cards"
    __table_args__ = (
        UniqueConstraint(
            "deck_id",
            "order_index",
            name="uq_deck_card_order",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    deck_id: Mapped[int] = mapped_column(
        ForeignKey("decks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    front: Mapped[str] = mapped_column(Text, nullable=False)
    # A string, or a list of strings for multi-blank cloze cards
    back: Mapped[Any] = mapped_column(JSON, nullable=False)
    source_page: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    context_snippet: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    deck: Mapped["Deck"] = relationship("Deck", back_populates="cards")


__all__ = [
    "Deck",
    "DeckCard",
]
