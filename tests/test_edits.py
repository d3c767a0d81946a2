"""Tests for edit directives applied to a planned day."""
from __future__ import annotations

from typing import List

import pytest

from party_planner.core.edits import (
    apply_edit_directives,
    find_service_by_name,
    heuristic_edit_directives,
    infer_edit_directives,
    pick_service_smart,
    pick_time_slot,
)
from party_planner.core.schemas import (
    DayInfo,
    DayPlan,
    EditDirectives,
    EditOp,
    ServiceRecord,
    ServiceSelection,
)
from party_planner.core.selection import LLMServiceSelector, PlannerPreferences
from tests.conftest import StubLLM

DAY = DayInfo(day_number=2, total_days=3, time_slots=["afternoon", "evening", "night", "late_night"])


@pytest.fixture
def plan() -> DayPlan:
    return DayPlan(
        day_number=2,
        time_slots=list(DAY.time_slots),
        selected_services=[
            ServiceSelection(
                service_id="r2", service_name="Jeffrey's Steakhouse", time_slot="evening", category="restaurant"
            ),
            ServiceSelection(service_id="n1", service_name="Summit Rooftop", time_slot="late_night", category="night_club"),
        ],
        day_theme="Steak and skyline",
    )


def _lineup(selection) -> List[tuple]:
    return [(s.service_id, s.time_slot) for s in selection.selected_services]


def test_find_service_by_itinerary_name_or_name(austin_services: List[ServiceRecord]) -> None:
    services = [austin_services[0].model_copy(update={"itinerary_name": "BBQ Feast"}), *austin_services[1:]]

    assert find_service_by_name("bbq feast", services).id == "r1"
    assert find_service_by_name("Jeffrey`s Steakhouse", services).id == "r2"
    assert find_service_by_name("Nowhere", services) is None


def test_pick_time_slot_prefers_night_for_nightlife(austin_services: List[ServiceRecord]) -> None:
    club = next(s for s in austin_services if s.id == "s1")
    dinner = next(s for s in austin_services if s.id == "r1")

    assert pick_time_slot(club, DAY.time_slots) == "night"
    assert pick_time_slot(dinner, DAY.time_slots) == "late_night"
    assert pick_time_slot(dinner, DAY.time_slots, forced="evening") == "evening"


def test_pick_service_smart_scores_keywords(austin_services: List[ServiceRecord]) -> None:
    assert pick_service_smart(["boat", "lake"], None, austin_services).id == "d1"
    assert pick_service_smart(["karaoke"], None, austin_services) is None
    assert pick_service_smart([], "restaurant", austin_services).category == "restaurant"


def test_substitute_keeps_the_original_slot(plan: DayPlan, austin_services: List[ServiceRecord]) -> None:
    directives = EditDirectives(
        ops=[EditOp(op="substitute_service", target_name="Jeffrey's", new_service_name="Terry Black's BBQ")]
    )

    edited = apply_edit_directives(plan, directives, austin_services, DAY)

    assert _lineup(edited) == [("r1", "evening"), ("n1", "late_night")]
    assert edited.selected_services[0].reason == "Swapped to Terry Black's BBQ"
    assert edited.day_theme == "Steak and skyline"
    # the input plan is untouched
    assert plan.selected_services[0].service_id == "r2"


def test_substitute_targets_the_catalog_name_behind_a_display_name(austin_services: List[ServiceRecord]) -> None:
    services = [austin_services[0].model_copy(update={"itinerary_name": "BBQ Feast"}), *austin_services[1:]]
    shown = DayPlan(
        day_number=2,
        time_slots=list(DAY.time_slots),
        selected_services=[
            ServiceSelection(service_id="r1", service_name="BBQ Feast", time_slot="evening", category="restaurant"),
            ServiceSelection(service_id="n2", service_name="Lit Lounge", time_slot="late_night", category="night_club"),
        ],
    )
    directives = EditDirectives(
        ops=[
            EditOp(
                op="substitute_service", target_name="Terry Black's BBQ", new_service_name="Jeffrey's Steakhouse"
            )
        ]
    )

    edited = apply_edit_directives(shown, directives, services, DAY)

    assert _lineup(edited) == [("r2", "evening"), ("n2", "late_night")]


def test_substitute_by_keywords_when_no_name_matches(plan: DayPlan, austin_services: List[ServiceRecord]) -> None:
    directives = EditDirectives(
        ops=[EditOp(op="substitute_service", target_category="night_club", keywords=["gentlemen"])]
    )

    edited = apply_edit_directives(plan, directives, austin_services, DAY)

    assert _lineup(edited) == [("r2", "evening"), ("s1", "late_night")]


def test_remove_requires_every_given_target_to_match(plan: DayPlan, austin_services: List[ServiceRecord]) -> None:
    mismatched = EditDirectives(ops=[EditOp(op="remove_activity", target_name="Summit", target_time="evening")])
    matched = EditDirectives(ops=[EditOp(op="remove_activity", target_name="Summit", target_time="late_night")])

    assert len(apply_edit_directives(plan, mismatched, austin_services, DAY).selected_services) == 2
    assert _lineup(apply_edit_directives(plan, matched, austin_services, DAY)) == [("r2", "evening")]


def test_add_adjust_and_reorder(plan: DayPlan, austin_services: List[ServiceRecord]) -> None:
    directives = EditDirectives(
        ops=[
            EditOp(op="add_activity", new_service_id="d1", target_time="afternoon"),
            EditOp(op="adjust_time", target_name="Summit", new_time="night"),
            EditOp(op="reorder", sequence=["afternoon", "evening", "night"]),
            EditOp(op="set_constraint", constraints={"budget": "tight"}),
        ]
    )

    edited = apply_edit_directives(plan, directives, austin_services, DAY)

    assert _lineup(edited) == [("d1", "afternoon"), ("r2", "evening"), ("n1", "night")]


def test_heuristic_directive_from_catalog_vocabulary(austin_services: List[ServiceRecord]) -> None:
    directives = heuristic_edit_directives("can we squeeze in a strip club?", austin_services, DAY)

    assert directives is not None
    assert directives.confidence == 0.55
    op = directives.ops[0]
    assert op.op == "add_activity"
    assert op.target_time == "night"
    assert "strip club" in op.keywords
    assert heuristic_edit_directives("hmm not sure", austin_services, DAY) is None


@pytest.mark.asyncio
async def test_infer_edit_directives_returns_none_on_failure(llm: StubLLM, plan: DayPlan) -> None:
    assert await infer_edit_directives(llm, "swap dinner", plan, {}, DAY) is None

    llm.set_response(EditDirectives, EditDirectives(ops=[]))
    assert await infer_edit_directives(llm, "swap dinner", plan, {}, DAY) is None

    llm.set_response(EditDirectives, EditDirectives(ops=[EditOp(op="remove_activity", target_name="Summit")]))
    directives = await infer_edit_directives(llm, "drop the club", plan, {"destination": "Austin"}, DAY)
    assert directives.ops[0].target_name == "Summit"
    assert "drop the club" in llm.prompts_for(EditDirectives)[-1]


@pytest.mark.asyncio
async def test_rewrite_falls_back_to_local_edits(
    llm: StubLLM, plan: DayPlan, austin_services: List[ServiceRecord]
) -> None:
    directives = EditDirectives(
        ops=[EditOp(op="substitute_service", target_name="Summit", new_service_name="Lit Lounge")]
    )

    selection = await LLMServiceSelector(llm).rewrite_day_with_edits(
        austin_services, PlannerPreferences(), DAY, plan, directives, {"r2", "n1"}
    )

    assert _lineup(selection) == [("r2", "evening"), ("n2", "late_night")]
