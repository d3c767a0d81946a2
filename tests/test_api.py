"""Integration-focused tests for the Party Planner FastAPI surface."""
from __future__ import annotations

from typing import Any, Dict
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from party_planner.api import app as api_app
from party_planner.api.chat_service import ChatService
from party_planner.core.config import ApiSettings
from party_planner.core.schemas import WILDNESS_QUESTION, FactProposal, FactUpdates, Reduction
from party_planner.services.catalog import InMemoryCatalog
from tests.conftest import StubLLM


def _austin_reduction() -> Reduction:
    return Reduction(
        facts=FactUpdates(destination=FactProposal(value="Austin")),
        reply="Austin it is! When are you thinking?",
        asked_about=["startDate"],
    )


def _install(monkeypatch, service: ChatService) -> ChatService:
    api_app.get_chat_service.cache_clear()
    monkeypatch.setattr(api_app, "get_chat_service", lambda: service)
    return service


@pytest.fixture
def stub_llm() -> StubLLM:
    return StubLLM()


@pytest.fixture
def service(monkeypatch, stub_llm: StubLLM, catalog: InMemoryCatalog) -> ChatService:
    """Provide a chat service wired to the stub model and the in-memory catalog."""

    return _install(monkeypatch, ChatService(ApiSettings(), llm=stub_llm, catalog=catalog))


@pytest.fixture
def client(service: ChatService) -> TestClient:
    """Yield a TestClient that uses the stubbed chat service."""

    with TestClient(api_app.app) as test_client:
        yield test_client


def _chat(client: TestClient, **payload: Any) -> Dict[str, Any]:
    response = client.post("/chat", json=payload)
    assert response.status_code == 200, response.text
    return response.json()


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "party-planner-api"}


def test_chat_turn_returns_reply_facts_and_snapshot(client: TestClient, stub_llm: StubLLM) -> None:
    stub_llm.queue(Reduction, _austin_reduction())

    data = _chat(client, conversationId="abc-123", message="Austin with 8 guys")

    assert data["conversationId"] == "abc-123"
    assert data["response"] == "Austin it is! When are you thinking?"
    assert data["phase"] == "gathering"
    assert data["facts"]["destination"]["value"] == "Austin"
    assert data["facts"]["groupSize"] == {
        "value": 8,
        "status": "set",
        "confidence": 1.0,
        "provenance": "parser",
        "priority": "essential",
    }
    assert data["itinerary"] is None
    assert data["interactive"] == {"type": "date_picker", "fact": "startDate", "options": []}
    assert data["snapshot"]["id"] == "abc-123"


def test_conversation_state_persists_between_turns(client: TestClient) -> None:
    _chat(client, conversationId="abc-123", message="we're 8")
    data = _chat(client, conversationId="abc-123", message="", structuredInput={"wildnessLevel": 4})

    assert data["facts"]["groupSize"]["value"] == 8
    assert data["facts"]["wildnessLevel"]["value"] == 4
    assert client.get("/conversations/abc-123").json()["facts"]["wildnessLevel"]["value"] == 4


def test_snapshot_restores_a_conversation_under_a_new_id(client: TestClient, stub_llm: StubLLM) -> None:
    stub_llm.queue(Reduction, _austin_reduction())
    snapshot = _chat(client, conversationId="first", message="Austin")["snapshot"]

    data = _chat(client, conversationId="second", message="we're 10", snapshot=snapshot)

    assert data["conversationId"] == "second"
    assert data["facts"]["destination"]["value"] == "Austin"
    assert data["facts"]["groupSize"]["value"] == 10


@pytest.mark.parametrize(
    "payload, detail",
    [
        ({"conversationId": "abc", "message": "   "}, "message is required"),
        ({"message": "hi"}, "conversationId is required"),
        ({"conversationId": "abc", "message": "hi", "snapshot": "oops"}, "snapshot must be a JSON object"),
    ],
)
def test_chat_rejects_bad_payloads(client: TestClient, payload: Dict[str, Any], detail: str) -> None:
    response = client.post("/chat", json=payload)

    assert response.status_code == 400
    assert response.json()["detail"] == detail


def test_chat_maps_planner_failures_to_500(client: TestClient, service: ChatService, monkeypatch) -> None:
    monkeypatch.setattr(service, "handle_message", AsyncMock(side_effect=RuntimeError("graph exploded")))

    response = client.post("/chat", json={"conversationId": "abc", "message": "hi"})

    assert response.status_code == 500
    assert response.json()["detail"] == "graph exploded"


def test_unknown_conversation_returns_404(client: TestClient) -> None:
    response = client.get("/conversations/missing")

    assert response.status_code == 404


def test_cleanup_removes_idle_conversations(client: TestClient) -> None:
    _chat(client, conversationId="old", message="we're 8")

    kept = client.post("/conversations/cleanup").json()
    removed = client.post("/conversations/cleanup", params={"max_age_minutes": 0}).json()

    assert kept == {"removed": 0, "activeConversations": 1}
    assert removed == {"removed": 1, "activeConversations": 0}
    assert client.get("/conversations/old").status_code == 404


def test_workflow_info(client: TestClient) -> None:
    info = client.get("/workflow/info").json()["workflow_info"]

    assert info["llm_model"] == "stub-llm"
    assert info["catalog"] == "InMemoryCatalog"
    assert info["nodes"] == ["dev_commands", "extract", "finalize", "gathering", "planning", "standby"]


def test_wildness_first_opens_with_the_scale_question(monkeypatch, stub_llm: StubLLM, catalog) -> None:
    _install(monkeypatch, ChatService(ApiSettings(wildness_first=True), llm=stub_llm, catalog=catalog))

    with TestClient(api_app.app) as client:
        first = _chat(client, conversationId="w1", message="hey")
        second = _chat(client, conversationId="w1", message="5")

    assert first["response"] == WILDNESS_QUESTION
    assert first["interactive"] is None
    assert second["facts"]["wildnessLevel"]["value"] == 5
    assert second["response"].startswith("Wildness 5/5, noted.")
    assert stub_llm.calls == []


def test_wildness_first_keeps_facts_from_the_opening_message(monkeypatch, stub_llm: StubLLM, catalog) -> None:
    _install(monkeypatch, ChatService(ApiSettings(wildness_first=True), llm=stub_llm, catalog=catalog))

    with TestClient(api_app.app) as client:
        first = _chat(client, conversationId="w2", message="8 guys, Sept 5-7")
        second = _chat(client, conversationId="w2", message="4")

    assert first["response"] == WILDNESS_QUESTION
    assert first["facts"]["groupSize"]["value"] == 8
    assert first["facts"]["startDate"]["value"].endswith("-09-05")
    assert first["facts"]["wildnessLevel"]["status"] == "unknown"
    assert second["facts"]["wildnessLevel"]["value"] == 4
    assert second["facts"]["groupSize"]["value"] == 8
    assert stub_llm.calls == []
