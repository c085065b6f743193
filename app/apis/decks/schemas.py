from __future__ import annotations

from typing import Annotated, Any, Optional, Union

from pydantic import BaseModel, Field


# Inbound generation fields are parsed and classified by the pipeline, not here,
# so every failure uses the same error body.
class GenerateOptionsIn(BaseModel):
    card_count: Any = Field(None, description="Requested cards, clamped to 1-100")
    cloze_style: Any = Field(None, description="single | multi | qa")
    instruction: Any = Field(None, description="Free-text guidance for the model")


class GenerateDeckRequest(BaseModel):
    source_kind: Any = Field(None, description="text | pdf | docx | url")
    source_type: Any = Field(None, description="Alias of source_kind")
    source_content: Any = Field(
        None, description="Raw text, base64 file content, or a URL"
    )
    deck_title: Any = None
    options: Annotated[
        Union[GenerateOptionsIn, Any], Field(union_mode="left_to_right")
    ] = None


class DeckCardIn(BaseModel):
    front: str = Field(..., min_length=1)
    back: Union[str, list[str]]
    source_page: Optional[int] = None
    context_snippet: Optional[str] = None


class DeckCardOut(BaseModel):
    front: str
    back: Union[str, list[str]]
    source_page: Optional[int] = None
    context_snippet: Optional[str] = None

    model_config = {"from_attributes": True}


class GeneratedDeckResponse(BaseModel):
    deck_title: str
    created_at: str
    card_count: int
    cards: list[DeckCardOut] = Field(default_factory=list)
    deck_id: Optional[int] = None


class DeckCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    cards: list[DeckCardIn] = Field(default_factory=list)
    description: Optional[str] = Field(None, max_length=2000)
    tags: list[str] = Field(default_factory=list)
    is_public: bool = False
    source_type: Optional[str] = None
    source_value: Optional[str] = None
    generation_params: Optional[dict[str, Any]] = None


class DeckSummary(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    is_public: bool = False
    source_type: Optional[str] = None
    card_count: int = 0
    created_at: str


class DeckRead(DeckSummary):
    source_value: Optional[str] = None
    generation_params: Optional[dict[str, Any]] = None
    generated_at: Optional[str] = None
    cards: list[DeckCardOut] = Field(default_factory=list)
