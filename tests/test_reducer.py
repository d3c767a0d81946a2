"""Tests for the catalog merge reducer."""
from __future__ import annotations

from party_planner.core.reducer import dedupe, reducer
from party_planner.core.schemas import ServiceRecord, ServiceSelection


class TestReducer:
    """Test suite for the generic reducer function."""

    def test_reducer_with_none_existing(self):
        new = [ServiceRecord(id="1", name="Summit Rooftop")]

        assert reducer(None, new) == new

    def test_reducer_with_none_new(self):
        existing = [ServiceRecord(id="1", name="Summit Rooftop")]

        assert reducer(existing, None) == existing
        assert reducer(existing, []) == existing

    def test_reducer_keeps_first_occurrence_of_each_id(self):
        existing = [ServiceRecord(id="1", name="Summit Rooftop", category="night_club")]
        new = [
            ServiceRecord(id="1", name="Summit Rooftop (keyword hit)"),
            ServiceRecord(id="2", name="Lit Lounge"),
        ]

        merged = reducer(existing, new)

        assert [(s.id, s.name) for s in merged] == [("1", "Summit Rooftop"), ("2", "Lit Lounge")]
        assert merged[0].category == "night_club"

    def test_reducer_dedupes_new_items_when_nothing_exists(self):
        new = [ServiceRecord(id="1", name="A"), ServiceRecord(id="1", name="A again")]

        assert [s.name for s in reducer([], new)] == ["A"]


def test_dedupe_uses_service_id_for_selections():
    items = [
        ServiceSelection(service_id="r1", service_name="BBQ", time_slot="evening"),
        ServiceSelection(service_id="r1", service_name="BBQ", time_slot="night"),
        ServiceSelection(service_id="n1", service_name="Club", time_slot="night"),
    ]

    assert [(s.service_id, s.time_slot) for s in dedupe(items)] == [("r1", "evening"), ("n1", "night")]
