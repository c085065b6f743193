import asyncio

import httpx
import pytest
from google.genai import errors as genai_errors
from google.genai import types

from conftest import FakeGenaiClient, blocked_response, text_response
from app.modules.decks.client import (
    EmptyResponse,
    GenerationClient,
    ModelText,
    RecitationBlocked,
    SafetyBlocked,
    interpret_response,
)
from app.modules.decks.errors import GenerationError, GenerationErrorKind


def test_interpret_text():
    outcome = interpret_response(text_response('[{"front": "a", "back": "b"}]'))
    assert isinstance(outcome, ModelText)
    assert outcome.text.startswith("[")
    assert outcome.finish_reason == "STOP"


def test_interpret_joins_parts_and_skips_thoughts():
    response = types.GenerateContentResponse(
        candidates=[
            types.Candidate(
                content=types.Content(
                    role="model",
                    parts=[
                        types.Part(text="thinking about it", thought=True),
                        types.Part(text="[1, "),
                        types.Part(text="2]"),
                    ],
                ),
                finish_reason=types.FinishReason.STOP,
            )
        ]
    )
    outcome = interpret_response(response)
    assert outcome == ModelText(text="[1, 2]", finish_reason="STOP")


@pytest.mark.parametrize("reason", ["SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST"])
def test_interpret_safety(reason):
    assert isinstance(interpret_response(blocked_response(reason)), SafetyBlocked)


def test_interpret_recitation():
    assert isinstance(interpret_response(blocked_response("RECITATION")), RecitationBlocked)


def test_interpret_prompt_block_without_candidates():
    response = types.GenerateContentResponse(
        candidates=[],
        prompt_feedback=types.GenerateContentResponsePromptFeedback(
            block_reason=types.BlockedReason.SAFETY
        ),
    )
    assert isinstance(interpret_response(response), SafetyBlocked)


@pytest.mark.parametrize(
    "response",
    [
        None,
        types.GenerateContentResponse(candidates=[]),
        text_response("   "),
        blocked_response("MAX_TOKENS"),
    ],
    ids=["none", "no-candidates", "blank-text", "no-parts"],
)
def test_interpret_empty(response):
    assert isinstance(interpret_response(response), EmptyResponse)


async def test_generate_returns_text_and_sends_config(generation_settings):
    genai = FakeGenaiClient(text_response("[]"))
    client = GenerationClient(genai, config=generation_settings)

    assert await client.generate("prompt") == "[]"
    call = genai.calls[0]
    assert call["model"] == generation_settings.model_name
    assert call["contents"] == "prompt"
    config = call["config"]
    assert config.response_mime_type == "application/json"
    assert config.temperature == generation_settings.temperature
    assert len(config.safety_settings) == 4


@pytest.mark.parametrize(
    "response, kind",
    [
        (blocked_response("SAFETY"), GenerationErrorKind.SAFETY_BLOCKED),
        (blocked_response("RECITATION"), GenerationErrorKind.RECITATION_BLOCKED),
        (types.GenerateContentResponse(candidates=[]), GenerationErrorKind.EMPTY_RESPONSE),
    ],
)
async def test_generate_classifies_outcomes(generation_settings, response, kind):
    client = GenerationClient(FakeGenaiClient(response), config=generation_settings)
    with pytest.raises(GenerationError) as exc:
        await client.generate("prompt")
    assert exc.value.kind is kind
    assert not exc.value.retriable


@pytest.mark.parametrize(
    "error, kind",
    [
        (
            genai_errors.ServerError(503, {"error": {"message": "overloaded"}}),
            GenerationErrorKind.TRANSIENT,
        ),
        (
            genai_errors.ClientError(429, {"error": {"message": "quota"}}),
            GenerationErrorKind.TRANSIENT,
        ),
        (
            genai_errors.ClientError(400, {"error": {"message": "bad request"}}),
            GenerationErrorKind.UPSTREAM_REJECTED,
        ),
        (httpx.ReadError("connection reset"), GenerationErrorKind.TRANSIENT),
    ],
    ids=["503", "429", "400", "network"],
)
async def test_generate_classifies_api_errors(generation_settings, error, kind):
    client = GenerationClient(FakeGenaiClient(error), config=generation_settings)
    with pytest.raises(GenerationError) as exc:
        await client.generate("prompt")
    assert exc.value.kind is kind
    assert exc.value.retriable is (kind is GenerationErrorKind.TRANSIENT)


async def test_generate_timeout_is_transient(generation_settings):
    class SlowModels:
        async def generate_content(self, **kwargs):
            await asyncio.sleep(10)

    class SlowClient:
        def __init__(self):
            self.aio = type("Aio", (), {"models": SlowModels()})()

    config = generation_settings.model_copy(update={"timeout_seconds": 0.01})
    client = GenerationClient(SlowClient(), config=config)
    with pytest.raises(GenerationError) as exc:
        await client.generate("prompt")
    assert exc.value.kind is GenerationErrorKind.TRANSIENT
