from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from app.core.config import settings
from app.core.db.schemas.auth import User
from app.core.db_services import SqlProfileStore
from app.modules.auth import current_active_user
from app.apis.deps import get_profile_store
from .schemas import UsageRead


router = APIRouter()

CurrentUser = Annotated[User, Depends(current_active_user)]


@router.get(
    f"/{settings.app.version}/profile/usage",
    response_model=UsageRead,
    tags=["user_profile"],
)
async def get_usage(
    user: CurrentUser,
    store: SqlProfileStore = Depends(get_profile_store),
):
    """Remaining generation allowance for the current user"""
    entry = await store.get_usage(user.id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Usage profile not found")
    return UsageRead(
        token_count=entry.token_count,
        subscription_status=entry.subscription_status,
        unlimited=entry.subscription_status == settings.metering.active_status,
        generation_cost=settings.metering.deck_generation_cost,
    )
