"""Tests for the service catalog backends and the per-conversation catalog load."""
from __future__ import annotations

import json
from typing import Any, Dict, List
from unittest.mock import AsyncMock

import httpx
import pytest

from party_planner.core.config import ApiSettings
from party_planner.core.extraction import FactUpdate, merge_updates
from party_planner.core.schemas import TripFacts
from party_planner.services.catalog import (
    InMemoryCatalog,
    SupabaseCatalog,
    category_for_type,
    create_catalog,
    extract_keywords,
    gather_catalog,
)
from tests.conftest import AUSTIN_SERVICES, make_service


def _facts(**values: Any) -> TripFacts:
    facts = TripFacts()
    merge_updates(facts, [FactUpdate(name=name, value=value) for name, value in values.items()])
    return facts


# ---------------------------------------------------------------------------
# In-memory catalog
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_in_memory_search_filters_city_and_type(catalog: InMemoryCatalog) -> None:
    clubs = await catalog.search_services("austin", "Night Club")
    everything = await catalog.search_services("Austin")

    assert [s.id for s in clubs] == ["n1", "n2"]
    assert len(everything) == 8
    assert [c.name for c in await catalog.list_cities()] == ["Austin", "Dallas"]


@pytest.mark.asyncio
async def test_in_memory_keyword_search_and_details(catalog: InMemoryCatalog) -> None:
    assert [s.id for s in await catalog.search_by_keyword("rooftop")] == ["n1"]
    assert await catalog.search_by_keyword("brewery", "Austin") == []

    details = await catalog.get_service_details("d1")
    assert details.pricing["default_cad"] == 150
    assert details.timing == {"duration_hours": 4}
    assert await catalog.get_service_details("missing") is None


@pytest.mark.asyncio
async def test_in_memory_catalog_from_supabase_style_json(tmp_path) -> None:
    path = tmp_path / "catalog.json"
    path.write_text(
        json.dumps(
            {
                "cities": [{"name": "Nashville"}],
                "services": [
                    {
                        "ser_id": 11,
                        "ser_name": "Honky Tonk Crawl",
                        "ser_type": "Bar",
                        "ser_default_price_cad": 30,
                        "cities": {"cit_name": "Nashville"},
                    }
                ],
            }
        ),
        encoding="utf-8",
    )

    catalog = InMemoryCatalog.from_json(path)
    found = await catalog.search_services("Nashville", "Bar")

    assert [(s.id, s.name, s.price_cad) for s in found] == [("11", "Honky Tonk Crawl", 30)]


# ---------------------------------------------------------------------------
# Catalog load for a conversation
# ---------------------------------------------------------------------------


def test_category_and_keyword_helpers() -> None:
    assert category_for_type("Night Club") == "night_club"
    assert category_for_type(None) is None
    assert extract_keywords(["Steak dinner", "a round of GOLF"]) == ["golf", "steakhouse"]


@pytest.mark.asyncio
async def test_gather_catalog_tags_categories_and_merges_keyword_hits() -> None:
    hunting = make_service(
        "h1", "Hill Country Hunt", "Experience", 200, description="Guided hunting trip outside town"
    )
    catalog = InMemoryCatalog([*AUSTIN_SERVICES, hunting])
    facts = _facts(destination="Austin", interested_activities=["hunting", "steak"])

    services = await gather_catalog(catalog, facts)

    by_id = {s.id: s for s in services}
    assert len(services) == 9
    assert by_id["n1"].category == "night_club"
    assert by_id["s1"].category == "strip_club"
    assert by_id["h1"].category == "experience"
    assert "x1" not in by_id


@pytest.mark.asyncio
async def test_gather_catalog_without_destination_or_on_failure() -> None:
    failing = AsyncMock()
    failing.search_services.side_effect = httpx.ConnectError("boom")

    assert await gather_catalog(failing, TripFacts()) == []
    assert await gather_catalog(failing, _facts(destination="Austin")) == []
    failing.search_services.assert_awaited_once()


# ---------------------------------------------------------------------------
# Supabase catalog
# ---------------------------------------------------------------------------


CLUB_ROW: Dict[str, Any] = {
    "ser_id": 7,
    "ser_name": "Summit Rooftop",
    "ser_type": "Night Club",
    "ser_description": "Rooftop club",
    "ser_default_price_cad": 40,
    "ser_duration_hrs": 4,
    "ser_show_in_app": True,
    "cities": {"cit_name": "Austin"},
}


def _supabase(requests: List[httpx.Request]) -> SupabaseCatalog:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/rest/v1/cities":
            name = request.url.params.get("cit_name", "")
            rows = [{"cit_id": 3, "cit_name": "Austin"}] if name in ("", "ilike.Austin") else []
            return httpx.Response(200, json=rows)
        if request.url.path == "/rest/v1/services":
            return httpx.Response(200, json=[CLUB_ROW])
        return httpx.Response(404, json={"message": "not found"})

    return SupabaseCatalog("https://demo.supabase.co/", "anon-key", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_supabase_search_resolves_city_then_filters_services() -> None:
    requests: List[httpx.Request] = []
    async with _supabase(requests) as catalog:
        services = await catalog.search_services("Austin", "Night Club", 8, 5)

    assert [(s.id, s.name, s.city, s.price_cad) for s in services] == [("7", "Summit Rooftop", "Austin", 40)]
    service_request = requests[-1]
    assert service_request.headers["apikey"] == "anon-key"
    assert service_request.headers["authorization"] == "Bearer anon-key"
    assert service_request.url.params["ser_city_id"] == "eq.3"
    assert service_request.url.params["ser_type"] == "eq.Night Club"
    assert service_request.url.params["limit"] == "5"


@pytest.mark.asyncio
async def test_supabase_unknown_city_returns_nothing() -> None:
    requests: List[httpx.Request] = []
    async with _supabase(requests) as catalog:
        assert await catalog.search_services("Atlantis") == []

    assert [r.url.path for r in requests] == ["/rest/v1/cities"]


@pytest.mark.asyncio
async def test_supabase_details_and_cities() -> None:
    async with _supabase([]) as catalog:
        details = await catalog.get_service_details("7")
        cities = await catalog.list_cities()

    assert details.pricing["default_cad"] == 40
    assert details.timing["duration_hours"] == 4
    assert [(c.id, c.name) for c in cities] == [("3", "Austin")]


@pytest.mark.asyncio
async def test_supabase_http_errors_propagate() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"message": "down"}))
    async with SupabaseCatalog("https://demo.supabase.co", "k", transport=transport) as catalog:
        with pytest.raises(httpx.HTTPStatusError):
            await catalog.list_cities()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_catalog_prefers_supabase_then_json_then_empty(tmp_path) -> None:
    supabase = create_catalog(ApiSettings(supabase_url="https://demo.supabase.co", supabase_anon_key="k"))
    assert isinstance(supabase, SupabaseCatalog)
    await supabase.aclose()

    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"services": [AUSTIN_SERVICES[0].model_dump()]}), encoding="utf-8")
    from_file = create_catalog(ApiSettings(catalog_path=str(path)))
    assert [s.id for s in await from_file.search_services("Austin")] == ["r1"]

    empty = create_catalog(ApiSettings())
    assert isinstance(empty, InMemoryCatalog)
    assert await empty.list_cities() == []
