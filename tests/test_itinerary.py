"""Tests for the planning cursor, saved days, estimates and summaries."""
from __future__ import annotations

from datetime import date
from typing import List

import pytest

from party_planner.core.errors import PlannerInvariantError
from party_planner.core.extraction import FactUpdate, merge_updates
from party_planner.core.itinerary import (
    advance_cursor,
    calculate_estimate,
    fold_day,
    format_itinerary_for_frontend,
    replace_saved_day,
    resolve_target_day_index,
    start_planning,
    trip_summary,
)
from party_planner.core.narration import all_days_scheduled, edit_confirmation
from party_planner.core.schemas import Conversation, DayPlan, ServiceRecord, ServiceSelection
from tests.conftest import TODAY


def _plan(day_number: int, *items: tuple) -> DayPlan:
    return DayPlan(
        day_number=day_number,
        selected_services=[
            ServiceSelection(service_id=sid, service_name=name, time_slot=slot) for sid, name, slot in items
        ],
    )


@pytest.fixture
def planned(conversation: Conversation, austin_services: List[ServiceRecord]) -> Conversation:
    merge_updates(
        conversation.facts,
        [
            FactUpdate(name="destination", value="Austin"),
            FactUpdate(name="group_size", value=8),
            FactUpdate(name="start_date", value=date(2025, 9, 5)),
            FactUpdate(name="end_date", value=date(2025, 9, 7)),
        ],
    )
    conversation.available_services = austin_services
    start_planning(conversation, TODAY)
    return conversation


def test_start_planning_resets_the_cursor(planned: Conversation) -> None:
    planning = planned.day_by_day_planning

    assert (planning.total_days, planning.current_day, planning.trip_type) == (3, 0, "weekend")
    assert planning.completed_days == [None, None, None]
    assert format_itinerary_for_frontend(planned)["days"][0]["status"] == "pending"


def test_itinerary_is_absent_before_planning(conversation: Conversation) -> None:
    assert format_itinerary_for_frontend(conversation) is None


def test_fold_day_saves_prices_and_advances(planned: Conversation) -> None:
    saved = fold_day(planned, 0, _plan(1, ("r2", "Jeffrey's Steakhouse", "evening"), ("n1", "Summit Rooftop", "night")))

    planning = planned.day_by_day_planning
    assert planning.current_day == 1
    assert planning.used_services == {"r2", "n1"}
    assert saved.selected_services[0].price_cad == 120
    assert planned.selected_services[0] is saved


def test_folding_out_of_order_keeps_cursor_on_first_unsaved_day(planned: Conversation) -> None:
    fold_day(planned, 1, _plan(2, ("r1", "Terry Black's BBQ", "evening")))

    assert planned.day_by_day_planning.current_day == 0

    fold_day(planned, 0, _plan(1, ("r2", "Jeffrey's Steakhouse", "evening")))
    assert planned.day_by_day_planning.current_day == 2
    assert not planned.day_by_day_planning.is_complete


def test_cursor_never_moves_backwards(planned: Conversation) -> None:
    planning = planned.day_by_day_planning
    advance_cursor(planning, 2)

    with pytest.raises(PlannerInvariantError):
        advance_cursor(planning, 1)
    with pytest.raises(PlannerInvariantError):
        advance_cursor(planning, 4)
    with pytest.raises(PlannerInvariantError):
        fold_day(planned, 3, _plan(1))


def test_replace_saved_day_rebuilds_used_services(planned: Conversation) -> None:
    fold_day(planned, 0, _plan(1, ("r2", "Jeffrey's Steakhouse", "evening")))

    replace_saved_day(planned, 0, _plan(1, ("r1", "Terry Black's BBQ", "evening")))

    assert planned.day_by_day_planning.used_services == {"r1"}
    assert planned.day_by_day_planning.current_day == 1


def test_estimate_and_full_itinerary(planned: Conversation) -> None:
    fold_day(planned, 0, _plan(1, ("r2", "Jeffrey's Steakhouse", "evening"), ("n1", "Summit Rooftop", "night")))
    fold_day(planned, 1, _plan(2, ("r1", "Terry Black's BBQ", "evening"), ("n2", "Lit Lounge", "late_night")))
    fold_day(planned, 2, _plan(3, ("r2", "Jeffrey's Steakhouse", "morning")))

    assert calculate_estimate(planned) == {"perPerson": 375.0, "total": 3000.0, "groupSize": 8, "currency": "CAD"}

    payload = format_itinerary_for_frontend(planned)
    assert payload["isComplete"] is True
    assert payload["currentDay"] == 3
    assert payload["days"][1]["label"] == "Saturday (Day 2)"
    assert payload["days"][1]["date"] == "2025-09-06"
    assert payload["days"][2]["services"][0]["priceCad"] == 120

    summary = trip_summary(planned, TODAY)
    assert summary.startswith("Here's the plan at a glance (starting Fri, Sep 5):")
    assert "• Friday (Day 1) - Evening: Jeffrey's Steakhouse, Night: Summit Rooftop" in summary


def test_completion_message_rotates(planned: Conversation) -> None:
    first = all_days_scheduled(planned, TODAY)
    second = all_days_scheduled(planned, TODAY)

    assert first != second
    assert "(Fri, Sep 5 - Sun, Sep 7)" in first
    assert planned.standby.nudges_sent == 2


def test_edit_confirmation_mentions_the_next_day(planned: Conversation) -> None:
    assert edit_confirmation(planned, 0, 1) == (
        "Done! Updated Friday (Day 1). Want to keep planning Day 2, or review anything else?"
    )
    assert edit_confirmation(planned, 2, None) == "Done! Updated Sunday (Day 3). Want to review anything else?"


@pytest.mark.parametrize(
    "message, expected",
    [
        ("change day 2", 1),
        ("what about the third day", 2),
        ("swap the club on saturday", 1),
        ("move dinner on sept 7", 2),
        ("looks fine", 0),
        ("day 9 please", 0),
    ],
)
def test_resolve_target_day_index(message: str, expected: int) -> None:
    index = resolve_target_day_index(
        message, start_date=date(2025, 9, 5), total_days=3, current_day=0, today=TODAY
    )

    assert index == expected


def test_reducer_index_wins_when_in_range() -> None:
    assert resolve_target_day_index("day 3", start_date=None, total_days=3, current_day=0, reducer_index=1) == 1
    assert resolve_target_day_index("day 3", start_date=None, total_days=3, current_day=0, reducer_index=7) == 2
