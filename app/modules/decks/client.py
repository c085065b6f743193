"""Gemini generation client.

The underlying ``google.genai`` client is built once at startup (see
``build_generation_client``) and injected; this module never keeps a global
client. The response envelope is inspected exactly once, in
``interpret_response``, and turned into one of four outcomes.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx
from google.genai import errors as genai_errors
from google.genai import types

from app.core.config import GenerationSettings, settings
from app.core.logging import get_logger
from app.modules.decks.errors import GenerationError, GenerationErrorKind

logger = get_logger(__name__)

SAFETY_FINISH_REASONS = frozenset(
    {"SAFETY", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII", "IMAGE_SAFETY"}
)
RECITATION_FINISH_REASONS = frozenset({"RECITATION"})

HARM_CATEGORIES = (
    types.HarmCategory.HARM_CATEGORY_HARASSMENT,
    types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
    types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
    types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
)


@dataclass(frozen=True)
class ModelText:
    text: str
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class EmptyResponse:
    detail: str


@dataclass(frozen=True)
class SafetyBlocked:
    detail: str


@dataclass(frozen=True)
class RecitationBlocked:
    detail: str


ModelOutcome = Union[ModelText, EmptyResponse, SafetyBlocked, RecitationBlocked]


def _enum_name(value: Any) -> Optional[str]:
    if value is None:
        return None
    name = getattr(value, "value", value)
    return str(name).upper()


def interpret_response(response: Optional[types.GenerateContentResponse]) -> ModelOutcome:
    """Classify a raw ``generate_content`` response envelope."""
    if response is None:
        return EmptyResponse("No response returned by the model.")

    candidates = response.candidates or []
    if not candidates:
        feedback = response.prompt_feedback
        block_reason = _enum_name(feedback.block_reason) if feedback else None
        if block_reason:
            detail = (feedback.block_reason_message if feedback else None) or block_reason
            return SafetyBlocked(f"Prompt blocked: {detail}")
        return EmptyResponse("The model returned no candidates.")

    candidate = candidates[0]
    finish_reason = _enum_name(candidate.finish_reason)
    if finish_reason in SAFETY_FINISH_REASONS:
        ratings = [
            f"{_enum_name(r.category)}={_enum_name(r.probability)}"
            for r in (candidate.safety_ratings or [])
            if r.blocked
        ]
        detail = "Content generation blocked due to safety settings."
        if ratings:
            detail += " (" + ", ".join(ratings) + ")"
        return SafetyBlocked(detail)
    if finish_reason in RECITATION_FINISH_REASONS:
        return RecitationBlocked("Content generation blocked due to recitation policy.")

    parts = candidate.content.parts if candidate.content else None
    text = "".join(
        p.text for p in (parts or []) if p.text and not getattr(p, "thought", False)
    )
    if not text.strip():
        return EmptyResponse(
            f"The first candidate carried no text (finish_reason={finish_reason})."
        )
    return ModelText(text=text, finish_reason=finish_reason)


class GenerationClient:
    """Sends one prompt to Gemini and returns the first candidate's raw text."""

    def __init__(self, client: Any, *, config: Optional[GenerationSettings] = None) -> None:
        self._client = client
        self.config = config or settings.generation

    def _request_config(self) -> types.GenerateContentConfig:
        thinking = None
        if self.config.thinking_budget is not None:
            thinking = types.ThinkingConfig(thinking_budget=self.config.thinking_budget)
        return types.GenerateContentConfig(
            temperature=self.config.temperature,
            max_output_tokens=self.config.max_output_tokens,
            response_mime_type="application/json",
            safety_settings=[
                types.SafetySetting(
                    category=category,
                    threshold=types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
                )
                for category in HARM_CATEGORIES
            ],
            thinking_config=thinking,
        )

    async def generate(self, prompt: str) -> str:
        logger.info(
            "Sending %d-char prompt to %s", len(prompt), self.config.model_name
        )
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self.config.model_name,
                    contents=prompt,
                    config=self._request_config(),
                ),
                timeout=self.config.timeout_seconds,
            )
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise GenerationError(
                GenerationErrorKind.TRANSIENT,
                f"The model did not answer within {self.config.timeout_seconds:.0f}s.",
                original=e,
            )
        except genai_errors.APIError as e:
            code = getattr(e, "code", None) or 0
            if code == 429 or code >= 500:
                raise GenerationError(
                    GenerationErrorKind.TRANSIENT,
                    f"The model service is temporarily unavailable ({code}).",
                    details={"status_code": code},
                    original=e,
                )
            raise GenerationError(
                GenerationErrorKind.UPSTREAM_REJECTED,
                f"The model service rejected the request ({code}).",
                details={"status_code": code},
                original=e,
            )
        except httpx.TransportError as e:
            raise GenerationError(
                GenerationErrorKind.TRANSIENT,
                "Network error while calling the model service.",
                original=e,
            )

        outcome = interpret_response(response)
        if isinstance(outcome, ModelText):
            logger.info(
                "Model answered with %d chars (finish_reason=%s)",
                len(outcome.text),
                outcome.finish_reason,
            )
            return outcome.text
        if isinstance(outcome, SafetyBlocked):
            raise GenerationError(
                GenerationErrorKind.SAFETY_BLOCKED,
                "Content generation blocked due to safety settings.",
                details=outcome.detail,
            )
        if isinstance(outcome, RecitationBlocked):
            raise GenerationError(
                GenerationErrorKind.RECITATION_BLOCKED,
                "Content generation blocked due to recitation policy.",
                details=outcome.detail,
            )
        raise GenerationError(
            GenerationErrorKind.EMPTY_RESPONSE,
            "Invalid or empty response from the model.",
            details=outcome.detail,
        )


def build_generation_client(config: Optional[GenerationSettings] = None) -> GenerationClient:
    """Build the Gemini-backed client once at startup (lazy provider import)."""
    from pydantic_ai.providers.google import GoogleProvider

    config = config or settings.generation
    if not config.gemini_api_key:
        raise RuntimeError(
            "Gemini API key not configured. Set GEMINI_API_KEY in your environment."
        )
    provider = GoogleProvider(api_key=config.gemini_api_key)
    return GenerationClient(provider.client, config=config)
