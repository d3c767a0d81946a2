"""Tests for the fact merge policy, deterministic parsers and the reducer call."""
from __future__ import annotations

from datetime import date

import pytest

from party_planner.core.extraction import (
    FactUpdate,
    apply_turn_extraction,
    extract_deterministic,
    merge_updates,
    parse_budget,
    parse_group_size,
    parse_wildness,
    reduce_state,
    serialize_facts,
    structured_updates,
)
from party_planner.core.schemas import (
    Conversation,
    Fact,
    FactProposal,
    FactStatus,
    FactUpdates,
    GatheringStep,
    Reduction,
    TripFacts,
)
from tests.conftest import TODAY, StubLLM


# ---------------------------------------------------------------------------
# Merge policy
# ---------------------------------------------------------------------------


def test_unknown_fact_never_carries_a_value() -> None:
    fact = Fact[int](value=3, status=FactStatus.UNKNOWN, confidence=0.8)

    assert fact.value is None
    assert fact.confidence == 0.0


def test_confirmed_fact_is_not_downgraded_by_lower_confidence_guess() -> None:
    facts = TripFacts()
    merge_updates(facts, [FactUpdate(name="destination", value="Austin")])

    outcome = merge_updates(facts, [FactUpdate(name="destination", value="Dallas", confidence=0.6)])

    assert facts.destination.value == "Austin"
    assert facts.destination.status is FactStatus.SET
    assert [u.name for u in outcome.ambiguous] == ["destination"]
    assert outcome.applied == []


def test_same_value_from_the_user_upgrades_an_assumed_fact() -> None:
    facts = TripFacts()
    merge_updates(
        facts, [FactUpdate(name="wildness_level", value=3, status=FactStatus.ASSUMED, confidence=0.5)]
    )

    outcome = merge_updates(facts, extract_deterministic("3 out of 5", TODAY))

    fact = facts.wildness_level
    assert (fact.value, fact.status, fact.confidence) == (3, FactStatus.SET, 1.0)
    assert [u.name for u in outcome.applied] == ["wildness_level"]
    assert merge_updates(facts, extract_deterministic("3 out of 5", TODAY)).applied == []


def test_explicit_correction_overwrites_confirmed_fact() -> None:
    facts = TripFacts()
    merge_updates(facts, [FactUpdate(name="destination", value="Austin")])

    outcome = merge_updates(
        facts, [FactUpdate(name="destination", value="Dallas", confidence=0.6)], correction=True
    )

    assert facts.destination.value == "Dallas"
    assert facts.destination.status is FactStatus.CORRECTED
    assert facts.destination.confidence == 1.0
    assert outcome.changed("destination").previous == "Austin"


def test_assumed_fact_accepts_any_proposal() -> None:
    facts = TripFacts()
    merge_updates(
        facts,
        [FactUpdate(name="wildness_level", value=3, status=FactStatus.ASSUMED, confidence=0.5)],
    )

    merge_updates(facts, [FactUpdate(name="wildnessLevel", value=4, confidence=0.7)])

    assert facts.wildness_level.value == 4
    assert facts.wildness_level.status is FactStatus.SET


def test_invalid_value_asks_for_clarification_without_mutating() -> None:
    facts = TripFacts()
    merge_updates(facts, [FactUpdate(name="group_size", value=8)])

    outcome = merge_updates(facts, [FactUpdate(name="group_size", value=0)], correction=True)

    assert facts.group_size.value == 8
    assert outcome.clarify == ["group_size"]


def test_null_and_unknown_proposals_are_ignored() -> None:
    facts = TripFacts()
    outcome = merge_updates(
        facts,
        [
            FactUpdate(name="destination", value=None),
            FactUpdate(name="budget", value=500, status=FactStatus.UNKNOWN),
            FactUpdate(name="favouriteColour", value="blue"),
        ],
    )

    assert outcome.applied == []
    assert not facts.destination.is_known
    assert not facts.budget.is_known


def test_priorities_are_fixed_per_fact() -> None:
    facts = TripFacts()
    merge_updates(facts, [FactUpdate(name="group_size", value=8)])

    assert facts.group_size.priority.value == "essential"
    assert facts.budget.priority.value == "helpful"
    assert facts.single_event.priority.value == "optional"


# ---------------------------------------------------------------------------
# Deterministic parsers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "text, expected",
    [
        ("we'll be 8 guys", 8),
        ("a party of twelve", 12),
        ("we're 10 total", 10),
        ("I'm 30 years old", None),
    ],
)
def test_parse_group_size(text: str, expected) -> None:
    assert parse_group_size(text) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("$3,000 total", (3000, "total")),
        ("3k per person", (3000, "per_person")),
        ("around 500 bucks each", (500, "per_person")),
        ("$1.5k each", (1500, "per_person")),
        ("budget is flexible", ("flexible", None)),
        ("we like flexible plans", None),
    ],
)
def test_parse_budget(text: str, expected) -> None:
    assert parse_budget(text) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("4 out of 5", 4),
        ("4/5", 4),
        ("3", 3),
        ("let's go absolutely wild", 5),
        ("keep it classy", 1),
        ("pretty chill honestly", 2),
        ("banana", None),
    ],
)
def test_parse_wildness(text: str, expected) -> None:
    assert parse_wildness(text) == expected


def test_extract_deterministic_reads_the_whole_request() -> None:
    updates = {
        u.name: u.value
        for u in extract_deterministic("Austin, first weekend of September, 8 guys, ~$500 each", TODAY)
    }

    assert updates == {
        "group_size": 8,
        "budget": 500,
        "budget_type": "per_person",
        "start_date": date(2025, 9, 5),
        "end_date": date(2025, 9, 7),
    }


def test_wildness_fraction_is_not_read_as_a_date() -> None:
    updates = {u.name: u.value for u in extract_deterministic("wildness 4/5 please", TODAY)}

    assert updates == {"wildness_level": 4}


def test_structured_updates_reports_unparseable_dates() -> None:
    updates, unparsed = structured_updates(
        {"wildnessLevel": 4, "startDate": "next friday??", "bogus": 1}, TODAY
    )

    assert [(u.name, u.value, u.provenance) for u in updates] == [("wildness_level", 4, "selector")]
    assert unparsed == ["start_date"]


# ---------------------------------------------------------------------------
# Turn extraction
# ---------------------------------------------------------------------------


def test_turn_extraction_merges_reducer_and_parsers(conversation: Conversation) -> None:
    reduction = Reduction(
        facts=FactUpdates(destination=FactProposal(value="Austin", confidence=0.9)),
        asked_about=["wildnessLevel"],
    )

    outcome = apply_turn_extraction(conversation, "Austin with 8 guys", reduction=reduction, today=TODAY)

    assert conversation.facts.destination.value == "Austin"
    assert conversation.facts.group_size.value == 8
    assert "wildness_level" in conversation.asked_facts
    assert {u.name for u in outcome.applied} == {"destination", "group_size"}


def test_selector_input_lands_in_facts(conversation: Conversation) -> None:
    apply_turn_extraction(
        conversation, "", structured_input={"startDate": "2025-09-05", "endDate": "2025-09-07"}, today=TODAY
    )

    assert conversation.facts.start_date.value == date(2025, 9, 5)
    assert conversation.facts.end_date.provenance == "selector"


def test_wildness_answer_is_consumed_once() -> None:
    conversation = Conversation.create("c-wild", wildness_first=True)
    assert conversation.gathering_step is GatheringStep.AWAITING_WILDNESS

    apply_turn_extraction(conversation, "4", today=TODAY)

    assert conversation.facts.wildness_level.value == 4
    assert conversation.gathering_step is GatheringStep.OPEN


def test_wildness_answer_keeps_other_parsed_facts() -> None:
    conversation = Conversation.create("c-wild", wildness_first=True)

    apply_turn_extraction(conversation, "4/5, we're 8 guys", today=TODAY)

    assert conversation.facts.wildness_level.value == 4
    assert conversation.facts.group_size.value == 8


def test_unreadable_wildness_answer_is_assumed_middle_of_the_scale() -> None:
    conversation = Conversation.create("c-wild", wildness_first=True)

    apply_turn_extraction(conversation, "no idea, you pick", today=TODAY)

    fact = conversation.facts.wildness_level
    assert (fact.value, fact.status, fact.confidence) == (3, FactStatus.ASSUMED, 0.5)
    assert conversation.gathering_step is GatheringStep.OPEN


# ---------------------------------------------------------------------------
# Reducer call
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_reduce_state_returns_structured_reduction(llm: StubLLM, conversation: Conversation) -> None:
    llm.set_response(Reduction, {"reply": "How wild are we talking?", "asked_about": ["wildnessLevel"]})

    reduction = await reduce_state(llm, conversation, "Austin", TODAY)

    assert reduction.reply == "How wild are we talking?"
    prompt = llm.prompts_for(Reduction)[0]
    assert "2025-08-01" in prompt
    assert serialize_facts(conversation.facts) in prompt


@pytest.mark.asyncio
async def test_reduce_state_falls_back_when_the_call_fails(llm: StubLLM, conversation: Conversation) -> None:
    llm.set_response(Reduction, RuntimeError("rate limited"))

    reduction = await reduce_state(llm, conversation, "Austin", TODAY)

    assert reduction.blocking_questions
    assert reduction.safe_transition is False
