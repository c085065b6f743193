from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db.base import get_session
from app.core.db_services import DeckService, SqlProfileStore
from app.modules.decks.client import GenerationClient
from app.modules.decks.pipeline import DeckPipeline


def get_generation_client(request: Request) -> GenerationClient:
    """Client built once in the app lifespan and kept on ``app.state``."""
    client = getattr(request.app.state, "generation_client", None)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Deck generation is not configured on this server",
        )
    return client


def get_pipeline(
    client: GenerationClient = Depends(get_generation_client),
) -> DeckPipeline:
    return DeckPipeline(client)


def get_profile_store(session: AsyncSession = Depends(get_session)) -> SqlProfileStore:
    return SqlProfileStore(session)


def get_deck_service(session: AsyncSession = Depends(get_session)) -> DeckService:
    return DeckService(session)
