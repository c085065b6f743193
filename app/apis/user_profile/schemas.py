from typing import Optional
from pydantic import BaseModel, Field


class UsageRead(BaseModel):
    token_count: int = Field(..., ge=0)
    subscription_status: Optional[str] = None
    # Active subscribers are never debited
    unlimited: bool = False
    generation_cost: int
