"""Parse and validate the model's raw text into flashcards.

Markdown code fences around the JSON are known model output noise and are
stripped before parsing; nothing else is "repaired". Individual bad cards are
dropped, the batch only fails when nothing usable is left.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

from app.core.logging import get_logger, snippet
from app.modules.decks.errors import ValidationError, ValidationErrorKind
from app.modules.decks.models import ClozeStyle, GeneratedCard

logger = get_logger(__name__)

# ```json / ```JSON / ``` on the first line, ``` on the last line
_OPENING_FENCE_RE = re.compile(r"\A\s*```[A-Za-z0-9_-]*[ \t]*\r?\n?")
_CLOSING_FENCE_RE = re.compile(r"\r?\n?[ \t]*```\s*\Z")


def strip_code_fences(raw_text: str) -> str:
    """Remove one leading/trailing markdown fence pair, if present."""
    text = raw_text.strip()
    if text.startswith("```"):
        text = _OPENING_FENCE_RE.sub("", text, count=1)
        text = _CLOSING_FENCE_RE.sub("", text, count=1)
    return text.strip()


def _clean_str(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _clean_back(value: Any, style: ClozeStyle) -> Optional[str | list[str]]:
    if isinstance(value, str):
        return _clean_str(value)
    if style is ClozeStyle.MULTI and isinstance(value, list) and value:
        items = [_clean_str(v) for v in value]
        if all(items):
            return items  # type: ignore[return-value]
    return None


def _clean_page(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        page = int(value.strip())
        return page if page > 0 else None
    return None


def validate_card(item: Any, style: ClozeStyle) -> Optional[GeneratedCard]:
    """Return a normalized card, or None when the item breaks the card invariants."""
    if not isinstance(item, dict):
        return None
    front = _clean_str(item.get("front"))
    back = _clean_back(item.get("back"), style)
    if front is None or back is None:
        return None
    return GeneratedCard(
        front=front,
        back=back,
        source_page=_clean_page(item.get("source_page")),
        context_snippet=_clean_str(item.get("context_snippet")),
    )


def parse_cards(raw_text: str, style: ClozeStyle) -> list[GeneratedCard]:
    """Turn raw model text into at least one valid card or raise ``ValidationError``."""
    cleaned = strip_code_fences(raw_text or "")
    try:
        data = json.loads(cleaned)
    except (json.JSONDecodeError, ValueError) as e:
        logger.error("Model output is not valid JSON: %s", snippet(raw_text, 500))
        raise ValidationError(
            ValidationErrorKind.MALFORMED_JSON,
            "The model returned output that is not valid JSON.",
            raw_text=raw_text,
            original=e,
        )

    if not isinstance(data, list):
        logger.error("Model output is JSON but not an array (%s)", type(data).__name__)
        raise ValidationError(
            ValidationErrorKind.UNEXPECTED_SHAPE,
            f"Expected a JSON array of cards, got {type(data).__name__}.",
            raw_text=raw_text,
        )

    cards: list[GeneratedCard] = []
    dropped = 0
    for item in data:
        card = validate_card(item, style)
        if card is None:
            dropped += 1
            continue
        cards.append(card)

    if dropped:
        logger.warning(
            "Dropped %d of %d cards that failed %s validation",
            dropped,
            len(data),
            style.value,
        )
    if not cards:
        raise ValidationError(
            ValidationErrorKind.NO_USABLE_CARDS,
            "The model returned no usable cards.",
            raw_text=raw_text,
            details={"received": len(data), "dropped": dropped},
        )
    return cards
