"""Deck-generation pipeline: metering, extraction, prompt, model call, parsing.

``DeckPipeline.run`` is the public entry point and always returns a
``PipelineResult``; classified failures are carried in ``result.error``
instead of being raised, so the HTTP layer maps them in exactly one place.
"""

from __future__ import annotations

import asyncio
import random
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from app.core.config import Settings, settings as default_settings
from app.core.logging import get_logger, log_context
from app.modules.decks.client import GenerationClient
from app.modules.decks.errors import GenerationError, PipelineError
from app.modules.decks.extractor import SourceExtractor
from app.modules.decks.metering import MeteringGate, MeteringState, ProfileStore
from app.modules.decks.models import GeneratedDeck, GenerationRequest
from app.modules.decks.parser import parse_cards
from app.modules.decks.prompts import build_prompt

logger = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class PipelineResult:
    ok: bool
    deck: Optional[GeneratedDeck] = None
    error: Optional[PipelineError] = None
    metering_state: Optional[MeteringState] = None
    request: Optional[GenerationRequest] = None


class DeckPipeline:
    """Sequences extraction -> prompt -> generation -> validation."""

    def __init__(
        self,
        generation_client: GenerationClient,
        *,
        extractor: Optional[SourceExtractor] = None,
        config: Optional[Settings] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.client = generation_client
        self.config = config or default_settings
        self.extractor = extractor or SourceExtractor(config=self.config.extraction)
        self._sleep = sleep

    def parse_request(self, payload: dict) -> GenerationRequest:
        return GenerationRequest.from_payload(
            payload,
            default_card_count=self.config.generation.default_card_count,
            max_card_count=self.config.generation.max_card_count,
        )

    async def build_deck(self, request: GenerationRequest) -> GeneratedDeck:
        """Run the unmetered pipeline; raises ``PipelineError`` on failure."""
        logger.info(
            "Generating deck '%s' from %s source (cards=%d, style=%s)",
            request.deck_title,
            request.source_kind.value,
            request.options.card_count,
            request.options.cloze_style.value,
        )
        document = await self.extractor.extract(
            request.source_kind, request.source_content
        )

        text = document.text
        limit = self.config.extraction.max_source_chars
        if len(text) > limit:
            logger.warning(
                "Source text truncated from %d to %d characters", len(text), limit
            )
            text = text[:limit]

        prompt = build_prompt(text, request.options)
        raw_text = await self._generate_with_retry(prompt)
        cards = parse_cards(raw_text, request.options.cloze_style)

        if len(cards) != request.options.card_count:
            logger.info(
                "Model returned %d cards, %d requested",
                len(cards),
                request.options.card_count,
            )
        return GeneratedDeck(title=request.deck_title, cards=cards)

    async def _generate_with_retry(self, prompt: str) -> str:
        attempts = 1 + max(0, self.config.generation.max_retries)
        for attempt in range(1, attempts + 1):
            try:
                return await self.client.generate(prompt)
            except GenerationError as e:
                if not e.retriable or attempt >= attempts:
                    raise
                base = self.config.generation.backoff_seconds * (2 ** (attempt - 1))
                delay = random.uniform(base * 0.8, base * 1.2)
                logger.warning(
                    "Transient generation error (attempt %d/%d), retrying in %.1fs: %s",
                    attempt,
                    attempts,
                    delay,
                    e,
                )
                await self._sleep(delay)
        raise AssertionError("unreachable")

    async def run(
        self,
        request: GenerationRequest,
        *,
        user_id: int,
        profile_store: ProfileStore,
        cost: Optional[int] = None,
    ) -> PipelineResult:
        """Metered generation for one user; never raises a ``PipelineError``."""
        with log_context(request_id=_new_request_id(), user_id=user_id):
            return await self._run(request, user_id, profile_store, cost)

    async def _run(
        self,
        request: GenerationRequest,
        user_id: int,
        profile_store: ProfileStore,
        cost: Optional[int],
    ) -> PipelineResult:
        gate = MeteringGate(
            profile_store, active_status=self.config.metering.active_status
        )
        cost = self.config.metering.deck_generation_cost if cost is None else cost
        try:
            metered = await gate.with_metering(
                user_id, cost, lambda: self.build_deck(request)
            )
        except PipelineError as e:
            logger.error("Deck generation failed: %s", e)
            return PipelineResult(
                ok=False, error=e, metering_state=gate.state, request=request
            )

        logger.info(
            "Deck generated with %d cards (%s)",
            metered.deck.card_count,
            metered.state.value,
        )
        return PipelineResult(
            ok=True, deck=metered.deck, metering_state=metered.state, request=request
        )

    async def run_payload(
        self,
        payload: dict,
        *,
        user_id: int,
        profile_store: ProfileStore,
        cost: Optional[int] = None,
    ) -> PipelineResult:
        """Validate an untrusted payload, then ``run`` it."""
        try:
            request = self.parse_request(payload)
        except PipelineError as e:
            with log_context(user_id=user_id):
                logger.warning("Rejected generation request: %s", e)
            return PipelineResult(ok=False, error=e)
        return await self.run(
            request, user_id=user_id, profile_store=profile_store, cost=cost
        )


def _new_request_id() -> str:
    return uuid.uuid4().hex[:12]
