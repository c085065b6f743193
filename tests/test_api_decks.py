from types import SimpleNamespace

import httpx
import pytest

from conftest import FakeProfileStore, cards_json, text_response
from app.apis.deps import get_deck_service, get_pipeline, get_profile_store
from app.modules.auth import current_active_user
from app.modules.decks.metering import UsageLedgerEntry
from main import app

USER = SimpleNamespace(id=11, is_active=True)


class FakeDeckService:
    def __init__(self):
        self.saved = []

    async def save_generated_deck(self, user_id, deck, request):
        self.saved.append((user_id, deck, request))
        return SimpleNamespace(id=len(self.saved))


@pytest.fixture
def api(make_pipeline):
    state = {}

    def _configure(*outcomes, tokens=100, status=None):
        pipeline, genai = make_pipeline(*outcomes)
        store = FakeProfileStore({USER.id: UsageLedgerEntry(tokens, status)})
        decks = FakeDeckService()
        app.dependency_overrides[current_active_user] = lambda: USER
        app.dependency_overrides[get_pipeline] = lambda: pipeline
        app.dependency_overrides[get_profile_store] = lambda: store
        app.dependency_overrides[get_deck_service] = lambda: decks
        state.update(genai=genai, store=store, decks=decks)
        client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )
        return client, state

    yield _configure
    app.dependency_overrides.clear()


async def test_generate_returns_deck(api):
    client, state = api(text_response(cards_json(2)))
    async with client:
        resp = await client.post(
            "/v1/decks/generate",
            json={
                "source_kind": "text",
                "source_content": "Some study material about cells.",
                "deck_title": "Cells",
            },
        )
    assert resp.status_code == 200
    body = resp.json()
    assert body["deck_title"] == "Cells"
    assert body["card_count"] == 2
    assert body["deck_id"] is None
    assert state["store"].debits == [(USER.id, 10)]
    assert state["decks"].saved == []


async def test_generate_and_save(api):
    client, state = api(text_response(cards_json(1)))
    async with client:
        resp = await client.post(
            "/v1/decks/generate?save=true",
            json={"source_type": "text", "source_content": "Some material."},
        )
    assert resp.status_code == 200
    assert resp.json()["deck_id"] == 1
    assert state["decks"].saved[0][0] == USER.id


async def test_generate_insufficient_balance(api):
    client, state = api(text_response(cards_json()), tokens=2)
    async with client:
        resp = await client.post(
            "/v1/decks/generate",
            json={"source_kind": "text", "source_content": "Some material."},
        )
    assert resp.status_code == 402
    body = resp.json()
    assert body["kind"] == "insufficient_balance"
    assert body["details"] == {"balance": 2, "required": 10}
    assert state["genai"].calls == []


async def test_generate_missing_content(api):
    client, _ = api(text_response(cards_json()))
    async with client:
        resp = await client.post("/v1/decks/generate", json={"source_kind": "text"})
    assert resp.status_code == 400
    assert resp.json()["kind"] == "missing_field"


async def test_generate_bad_model_output_shows_raw_text_outside_production(api):
    client, _ = api(text_response("not json"))
    async with client:
        resp = await client.post(
            "/v1/decks/generate",
            json={"source_kind": "text", "source_content": "Some material."},
        )
    assert resp.status_code == 502
    body = resp.json()
    assert body["category"] == "generation_quality"
    assert body["details"] == {"raw_text": "not json"}


async def test_root_status():
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        resp = await client.get("/")
    assert resp.json()["status"] == "ok"


async def test_generate_non_integer_card_count_uses_default(api):
    client, state = api(text_response(cards_json(2)))
    async with client:
        resp = await client.post(
            "/v1/decks/generate",
            json={
                "source_kind": "text",
                "source_content": "Some material.",
                "options": {"card_count": "ten"},
            },
        )
    assert resp.status_code == 200
    assert "Generate exactly 20 flashcards." in state["genai"].calls[0]["contents"]


@pytest.mark.parametrize(
    "body",
    [
        {"source_kind": "text", "source_content": 123},
        {"source_kind": "text", "source_content": "x", "options": "fast"},
        {"source_kind": "text", "source_content": "x", "options": {"cloze_style": "fancy"}},
    ],
    ids=["content-not-string", "options-not-object", "unknown-style"],
)
async def test_generate_invalid_values_use_error_body(api, body):
    client, state = api(text_response(cards_json()))
    async with client:
        resp = await client.post("/v1/decks/generate", json=body)
    assert resp.status_code == 400
    assert resp.json()["kind"] == "invalid_option"
    assert resp.json()["category"] == "invalid_request"
    assert state["genai"].calls == []
