"""Phase transition rules: GATHERING -> PLANNING -> STANDBY, plus reverts."""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from party_planner.core.extraction import MergeOutcome, signals_readiness
from party_planner.core.schemas import (
    ESSENTIAL_FACTS,
    HELPFUL_FACTS,
    Conversation,
    DayByDayPlanning,
    FactStatus,
    Phase,
    Reduction,
)
from party_planner.core.trip_structure import planning_day_count, structure_from_facts

logger = logging.getLogger(__name__)

_READY_STATUSES = frozenset({FactStatus.SET, FactStatus.ASSUMED, FactStatus.CORRECTED})
_PLAN_INVALIDATING = ("destination", "group_size")


def essentials_ready(conversation: Conversation) -> bool:
    return all(conversation.facts.get(name).status in _READY_STATUSES for name in ESSENTIAL_FACTS)


def helpfuls_addressed(conversation: Conversation) -> bool:
    """Every helpful fact has been asked about at least once or is already known."""

    return all(
        name in conversation.asked_facts or conversation.facts.get(name).is_known for name in HELPFUL_FACTS
    )


def missing_essentials(conversation: Conversation) -> list[str]:
    return [name for name in ESSENTIAL_FACTS if conversation.facts.get(name).status not in _READY_STATUSES]


def ready_for_planning(conversation: Conversation, reduction: Optional[Reduction], message: str) -> bool:
    if not essentials_ready(conversation):
        return False
    user_ready = bool(reduction and reduction.safe_transition) or signals_readiness(message)
    return helpfuls_addressed(conversation) or user_ready


def invalidates_plan(conversation: Conversation, outcome: MergeOutcome, today: Optional[date] = None) -> bool:
    """Whether an essential correction makes the built days meaningless.

    Destination and group size changes always do. A date change only does
    when it changes the number of planning days.
    """

    for name in _PLAN_INVALIDATING:
        change = outcome.changed(name)
        if change is not None and change.previous is not None and change.previous != change.value:
            return True

    if outcome.changed("start_date") or outcome.changed("end_date") or outcome.changed("single_event"):
        planning = conversation.day_by_day_planning
        if not planning.total_days:
            return False
        structure = structure_from_facts(conversation.facts, today)
        return planning_day_count(structure) != planning.total_days
    return False


def revert_to_gathering(conversation: Conversation) -> None:
    """Drop the built plan, catalog snapshot and used services."""

    logger.info("Reverting conversation %s to gathering", conversation.id)
    conversation.phase = Phase.GATHERING
    conversation.day_by_day_planning = DayByDayPlanning()
    conversation.available_services = []
    conversation.selected_services = []


def next_phase(
    conversation: Conversation,
    outcome: MergeOutcome,
    *,
    reduction: Optional[Reduction] = None,
    message: str = "",
    today: Optional[date] = None,
) -> Phase:
    """Re-evaluate the phase after facts were merged for a turn.

    Performs a revert as a side effect when a correction invalidates the plan.
    """

    phase = conversation.phase
    if phase in (Phase.PLANNING, Phase.STANDBY) and invalidates_plan(conversation, outcome, today):
        revert_to_gathering(conversation)
        phase = Phase.GATHERING

    if phase is Phase.GATHERING:
        if ready_for_planning(conversation, reduction, message):
            return Phase.PLANNING
        return Phase.GATHERING

    if phase is Phase.PLANNING and conversation.day_by_day_planning.is_complete:
        return Phase.STANDBY
    return phase
