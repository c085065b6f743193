import os

# Settings are read at import time; set the required values before importing app code
os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_DB_PORT", "5432")
os.environ.setdefault("POSTGRES_DB_NAME", "deckgen_test")
os.environ.setdefault("POSTGRES_DB_USER", "deckgen")
os.environ.setdefault("POSTGRES_DB_PASSWORD", "deckgen")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("MODE", "dev")

import json
from typing import Any, Callable, Optional, Union

import pytest
from google.genai import types

from app.core.config import GenerationSettings, Settings
from app.modules.decks.client import GenerationClient
from app.modules.decks.metering import UsageLedgerEntry
from app.modules.decks.pipeline import DeckPipeline


def text_response(text: str, finish_reason: str = "STOP") -> types.GenerateContentResponse:
    return types.GenerateContentResponse(
        candidates=[
            types.Candidate(
                content=types.Content(role="model", parts=[types.Part(text=text)]),
                finish_reason=types.FinishReason(finish_reason),
            )
        ]
    )


def blocked_response(finish_reason: str) -> types.GenerateContentResponse:
    return types.GenerateContentResponse(
        candidates=[
            types.Candidate(
                content=types.Content(role="model", parts=[]),
                finish_reason=types.FinishReason(finish_reason),
            )
        ]
    )


def cards_json(n: int = 3, *, multi: bool = False) -> str:
    cards = []
    for i in range(1, n + 1):
        cards.append(
            {
                "front": f"Fact number ____ is about topic {i}.",
                "back": [str(i), f"topic {i}"] if multi else str(i),
                "source_page": None,
                "context_snippet": f"Fact number {i} is about topic {i}.",
            }
        )
    return json.dumps(cards)


Outcome = Union[types.GenerateContentResponse, BaseException]


class _FakeModels:
    def __init__(self, outcomes: list[Outcome]):
        self.outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []

    async def generate_content(self, *, model: str, contents: Any, config: Any = None):
        self.calls.append({"model": model, "contents": contents, "config": config})
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class _FakeAio:
    def __init__(self, models: _FakeModels):
        self.models = models


class FakeGenaiClient:
    """Stands in for ``google.genai.Client``; replays outcomes in order, repeating the last."""

    def __init__(self, *outcomes: Outcome):
        self.models = _FakeModels(list(outcomes))
        self.aio = _FakeAio(self.models)

    @property
    def calls(self) -> list[dict[str, Any]]:
        return self.models.calls


class FakeProfileStore:
    """In-memory profile store that records every call."""

    def __init__(
        self,
        entries: Optional[dict[int, UsageLedgerEntry]] = None,
        *,
        debit_result: Optional[bool] = None,
        debit_error: Optional[Exception] = None,
        lookup_error: Optional[Exception] = None,
    ):
        self.entries = dict(entries or {})
        self.debit_result = debit_result
        self.debit_error = debit_error
        self.lookup_error = lookup_error
        self.lookups: list[int] = []
        self.debits: list[tuple[int, int]] = []
        self.anomalies: list[tuple[int, int, str]] = []

    async def get_usage(self, user_id: int) -> Optional[UsageLedgerEntry]:
        self.lookups.append(user_id)
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.entries.get(user_id)

    async def debit(self, user_id: int, cost: int) -> bool:
        self.debits.append((user_id, cost))
        if self.debit_error is not None:
            raise self.debit_error
        if self.debit_result is not None:
            return self.debit_result
        entry = self.entries[user_id]
        if entry.token_count < cost:
            return False
        self.entries[user_id] = UsageLedgerEntry(
            entry.token_count - cost, entry.subscription_status
        )
        return True

    async def flag_debit_failure(self, user_id: int, cost: int, reason: str) -> None:
        self.anomalies.append((user_id, cost, reason))


@pytest.fixture
def generation_settings() -> GenerationSettings:
    return GenerationSettings(
        GEMINI_API_KEY="test-key",
        GENERATION_TIMEOUT_SECONDS=5,
        GENERATION_MAX_RETRIES=2,
        GENERATION_BACKOFF_SECONDS=1.0,
    )


@pytest.fixture
def app_settings(generation_settings: GenerationSettings) -> Settings:
    return Settings(generation=generation_settings)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_pipeline(
    app_settings: Settings, generation_settings: GenerationSettings, sleeps: list[float]
) -> Callable[..., tuple[DeckPipeline, FakeGenaiClient]]:
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    def _make(*outcomes: Outcome, extractor=None) -> tuple[DeckPipeline, FakeGenaiClient]:
        genai = FakeGenaiClient(*outcomes)
        pipeline = DeckPipeline(
            GenerationClient(genai, config=generation_settings),
            extractor=extractor,
            config=app_settings,
            sleep=fake_sleep,
        )
        return pipeline, genai

    return _make
