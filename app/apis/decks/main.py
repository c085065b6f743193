from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.db.schemas.auth import User
from app.core.db.schemas.decks import Deck
from app.core.db_services import DeckService, SqlProfileStore
from app.core.logging import get_logger
from app.modules.auth import current_active_user
from app.modules.decks.pipeline import DeckPipeline
from app.apis.deps import get_deck_service, get_pipeline, get_profile_store
from .errors import error_to_response
from .schemas import (
    DeckCardOut,
    DeckCreate,
    DeckRead,
    DeckSummary,
    GenerateDeckRequest,
    GeneratedDeckResponse,
)


logger = get_logger(__name__)

router = APIRouter()

CurrentUser = Annotated[User, Depends(current_active_user)]


def _summary(deck: Deck) -> DeckSummary:
    return DeckSummary(
        id=deck.id,
        title=deck.title,
        description=deck.description,
        tags=deck.tags or [],
        is_public=deck.is_public,
        source_type=deck.source_type,
        card_count=len(deck.cards),
        created_at=deck.created_at.isoformat(),
    )


def _read(deck: Deck) -> DeckRead:
    summary = _summary(deck)
    return DeckRead(
        **summary.model_dump(),
        source_value=deck.source_value,
        generation_params=deck.generation_params,
        generated_at=deck.generated_at.isoformat() if deck.generated_at else None,
        cards=[DeckCardOut.model_validate(c) for c in deck.cards],
    )


@router.post(
    f"/{settings.app.version}/decks/generate",
    response_model=GeneratedDeckResponse,
    status_code=status.HTTP_200_OK,
    tags=["decks"],
)
async def generate_deck(
    req: GenerateDeckRequest,
    user: CurrentUser,
    pipeline: DeckPipeline = Depends(get_pipeline),
    profile_store: SqlProfileStore = Depends(get_profile_store),
    decks: DeckService = Depends(get_deck_service),
    save: bool = Query(False, description="Persist the generated deck"),
):
    result = await pipeline.run_payload(
        req.model_dump(exclude_none=True),
        user_id=user.id,
        profile_store=profile_store,
    )
    if not result.ok:
        status_code, body = error_to_response(
            result.error, include_diagnostics=not settings.app.is_production
        )
        return JSONResponse(status_code=status_code, content=body)

    deck = result.deck
    response = GeneratedDeckResponse(**deck.to_payload())
    if save and result.request is not None:
        try:
            stored = await decks.save_generated_deck(user.id, deck, result.request)
            response.deck_id = stored.id
        except SQLAlchemyError as e:
            # The deck was already paid for; return it even if it cannot be stored
            logger.error("Failed to save generated deck for user %s: %s", user.id, e)
    return response


@router.post(
    f"/{settings.app.version}/decks",
    response_model=DeckRead,
    status_code=status.HTTP_201_CREATED,
    tags=["decks"],
)
async def create_deck(
    req: DeckCreate,
    user: CurrentUser,
    decks: DeckService = Depends(get_deck_service),
) -> DeckRead:
    deck = await decks.create_deck(
        user.id,
        title=req.title,
        cards=[c.model_dump() for c in req.cards],
        description=req.description,
        tags=req.tags,
        is_public=req.is_public,
        source_type=req.source_type,
        source_value=req.source_value,
        generation_params=req.generation_params,
    )
    return _read(deck)


@router.get(
    f"/{settings.app.version}/decks",
    response_model=list[DeckSummary],
    tags=["decks"],
)
async def list_decks(
    user: CurrentUser,
    decks: DeckService = Depends(get_deck_service),
) -> list[DeckSummary]:
    return [_summary(d) for d in await decks.list_decks(user.id)]


@router.get(
    f"/{settings.app.version}/decks/{{deck_id:int}}",
    response_model=DeckRead,
    tags=["decks"],
)
async def get_deck(
    deck_id: int,
    user: CurrentUser,
    decks: DeckService = Depends(get_deck_service),
) -> DeckRead:
    deck = await decks.get_deck(user.id, deck_id)
    if not deck:
        raise HTTPException(status_code=404, detail="Deck not found")
    return _read(deck)


@router.delete(
    f"/{settings.app.version}/decks/{{deck_id:int}}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["decks"],
)
async def delete_deck(
    deck_id: int,
    user: CurrentUser,
    decks: DeckService = Depends(get_deck_service),
) -> None:
    if not await decks.delete_deck(user.id, deck_id):
        raise HTTPException(status_code=404, detail="Deck not found")
