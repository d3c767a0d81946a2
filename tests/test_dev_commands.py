"""Tests for the development slash commands."""
from __future__ import annotations

from datetime import date
from typing import Any, Dict

import pytest

from party_planner.core.dev_commands import SEED_USAGE, handle_dev_command, parse_seed
from party_planner.core.schemas import Conversation, GatheringStep, Phase
from tests.conftest import TODAY


@pytest.fixture
def store() -> Dict[str, Dict[str, Any]]:
    return {}


def test_plain_messages_are_not_commands(conversation: Conversation, store) -> None:
    assert handle_dev_command(conversation, "Austin please", store) is None


def test_parse_seed_compact_form() -> None:
    payload = parse_seed("Austin 7 2025-09-05..2025-09-07 wild=5 budget=flexible")

    assert payload == {
        "destination": "Austin",
        "groupSize": 7,
        "startDate": "2025-09-05",
        "endDate": "2025-09-07",
        "wildnessLevel": 5,
        "budget": "flexible",
    }


def test_parse_seed_budget_forms() -> None:
    assert parse_seed("Las Vegas 10 2025-10-10 budget=2000")["budget"] == 2000
    assert parse_seed("Austin 8 2025-09-05 budget=$3k-total") == {
        "destination": "Austin",
        "groupSize": 8,
        "startDate": "2025-09-05",
        "endDate": "2025-09-05",
        "budget": 3000,
        "budgetType": "total",
    }


def test_seed_sets_facts_and_enters_planning(conversation: Conversation, store) -> None:
    result = handle_dev_command(
        conversation, '/seed {"destination": "Austin", "groupSize": 8, "startDate": "2025-09-05", "endDate": "2025-09-07"}', store, today=TODAY
    )

    assert result.seeded
    facts = result.conversation.facts
    assert facts.destination.value == "Austin"
    assert facts.end_date.value == date(2025, 9, 7)
    assert facts.destination.provenance == "dev"
    assert result.conversation.phase is Phase.PLANNING


def test_seed_without_destination_shows_usage(conversation: Conversation, store) -> None:
    result = handle_dev_command(conversation, "/seed 8 2025-09-05", store)

    assert result.reply == SEED_USAGE
    assert not result.seeded


def test_phase_and_facts_commands(conversation: Conversation, store) -> None:
    assert handle_dev_command(conversation, "/phase standby", store).reply == "(dev) Phase forced to standby"
    assert conversation.phase is Phase.STANDBY
    assert handle_dev_command(conversation, "/phase chaos", store).reply.startswith("Unknown phase 'chaos'")

    reply = handle_dev_command(conversation, '/facts {"groupSize": 12}', store).reply
    assert reply == "(dev) Facts updated."
    assert conversation.facts.group_size.value == 12


def test_snapshot_save_and_load(conversation: Conversation, store) -> None:
    handle_dev_command(conversation, '/facts {"destination": "Austin"}', store)
    handle_dev_command(conversation, "/snapshot save before", store)
    handle_dev_command(conversation, '/facts {"destination": "Nashville"}', store)

    result = handle_dev_command(conversation, "/snapshot load before", store)

    assert result.reply == "(dev) Snapshot **before** loaded."
    assert result.conversation.facts.destination.value == "Austin"
    assert result.conversation.id == conversation.id
    assert handle_dev_command(conversation, "/snapshot load missing", store).reply == "(dev) No snapshot named **missing**."


def test_reset_and_unknown_commands(conversation: Conversation, store) -> None:
    result = handle_dev_command(conversation, "/reset", store, wildness_first=True)

    assert result.reply == "(dev) Conversation reset."
    assert result.conversation.id == conversation.id
    assert result.conversation.gathering_step is GatheringStep.AWAITING_WILDNESS
    assert handle_dev_command(conversation, "/dance", store).reply.startswith("Unknown dev command /dance")
