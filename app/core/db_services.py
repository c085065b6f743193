"""Database service classes for usage metering and deck persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.db.schemas.decks import Deck, DeckCard
from app.core.db.schemas.user_profile import UsageAnomaly, UserProfile
from app.core.logging import get_logger
from app.modules.decks.metering import UsageLedgerEntry
from app.modules.decks.models import GeneratedCard, GeneratedDeck, GenerationRequest

logger = get_logger(__name__)


class SqlProfileStore:
    """Profile store backing the metering gate.

    Debits are a single conditional UPDATE so two concurrent generations can
    never both spend the last tokens.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_usage(self, user_id: int) -> Optional[UsageLedgerEntry]:
        result = await self.session.execute(
            select(UserProfile.token_count, UserProfile.subscription_status).where(
                UserProfile.user_id == user_id
            )
        )
        row = result.one_or_none()
        # Release the connection; the model call runs between this read and the debit
        await self.session.commit()
        if row is None:
            return None
        return UsageLedgerEntry(
            token_count=row.token_count, subscription_status=row.subscription_status
        )

    async def debit(self, user_id: int, cost: int) -> bool:
        stmt = (
            update(UserProfile)
            .where(UserProfile.user_id == user_id, UserProfile.token_count >= cost)
            .values(token_count=UserProfile.token_count - cost)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount == 1

    async def flag_debit_failure(self, user_id: int, cost: int, reason: str) -> None:
        self.session.add(UsageAnomaly(user_id=user_id, cost=cost, reason=reason))
        await self.session.commit()

    async def credit(self, user_id: int, amount: int) -> None:
        await self.session.execute(
            update(UserProfile)
            .where(UserProfile.user_id == user_id)
            .values(token_count=UserProfile.token_count + amount)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

    async def list_unresolved_anomalies(self) -> list[UsageAnomaly]:
        rows = await self.session.execute(
            select(UsageAnomaly)
            .where(UsageAnomaly.resolved.is_(False))
            .order_by(UsageAnomaly.created_at)
        )
        return list(rows.scalars().all())

    async def resolve_anomaly(self, anomaly_id: int) -> bool:
        """Apply the pending debit of an anomaly; True when it could be charged."""
        anomaly = await self.session.get(UsageAnomaly, anomaly_id)
        if anomaly is None or anomaly.resolved:
            return False
        charged = await self.debit(anomaly.user_id, anomaly.cost)
        if charged:
            anomaly.resolved = True
            anomaly.resolved_at = datetime.now()
            await self.session.commit()
        return charged


def _card_rows(cards: Iterable[GeneratedCard | dict[str, Any]]) -> list[DeckCard]:
    rows: list[DeckCard] = []
    for idx, card in enumerate(cards):
        if isinstance(card, dict):
            card = GeneratedCard.model_validate(card)
        rows.append(
            DeckCard(
                front=card.front,
                back=card.back,
                source_page=card.source_page,
                context_snippet=card.context_snippet,
                order_index=idx,
            )
        )
    return rows


class DeckService:
    """Persistence for user-owned decks."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_deck(
        self,
        user_id: int,
        *,
        title: str,
        cards: Iterable[GeneratedCard | dict[str, Any]],
        description: Optional[str] = None,
        tags: Optional[list[str]] = None,
        is_public: bool = False,
        source_type: Optional[str] = None,
        source_value: Optional[str] = None,
        generation_params: Optional[dict[str, Any]] = None,
        generated_at: Optional[datetime] = None,
    ) -> Deck:
        deck = Deck(
            user_id=user_id,
            title=title,
            description=description,
            tags=tags or [],
            is_public=is_public,
            source_type=source_type,
            source_value=source_value,
            generation_params=generation_params,
            generated_at=generated_at,
            cards=_card_rows(cards),
        )
        self.session.add(deck)
        await self.session.commit()
        return await self.get_deck(user_id, deck.id)  # type: ignore[return-value]

    async def save_generated_deck(
        self, user_id: int, deck: GeneratedDeck, request: GenerationRequest
    ) -> Deck:
        """Store a pipeline result; only text/URL sources keep their source value."""
        source_value = None
        if isinstance(request.source_content, str) and request.source_kind.value in (
            "text",
            "url",
        ):
            source_value = request.source_content
        return await self.create_deck(
            user_id,
            title=deck.title,
            cards=deck.cards,
            source_type=request.source_kind.value,
            source_value=source_value,
            generation_params={
                "card_count": request.options.card_count,
                "cloze_style": request.options.cloze_style.value,
                "instruction": request.options.instruction,
            },
            generated_at=deck.created_at.replace(tzinfo=None),
        )

    async def list_decks(self, user_id: int) -> list[Deck]:
        rows = await self.session.execute(
            select(Deck)
            .options(selectinload(Deck.cards))
            .where(Deck.user_id == user_id)
            .order_by(Deck.created_at.desc(), Deck.id.desc())
        )
        return list(rows.scalars().all())

    async def get_deck(self, user_id: int, deck_id: int) -> Optional[Deck]:
        result = await self.session.execute(
            select(Deck)
            .options(selectinload(Deck.cards))
            .where(Deck.id == deck_id, Deck.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def delete_deck(self, user_id: int, deck_id: int) -> bool:
        deck = await self.get_deck(user_id, deck_id)
        if deck is None:
            return False
        await self.session.delete(deck)
        await self.session.commit()
        logger.info("Deleted deck %s for user %s", deck_id, user_id)
        return True
