"""Itinerary assembly: saving day plans, the planning cursor and summaries."""
from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from party_planner.core.dates import (
    WEEKDAYS,
    WORD_NUMBERS,
    format_day_label,
    format_short,
    parse_explicit_date,
    to_local_date,
)
from party_planner.core.errors import PlannerInvariantError
from party_planner.core.schemas import (
    Conversation,
    DayByDayPlanning,
    DayPlan,
    ServiceRecord,
    ServiceSelection,
    TripStructure,
)
from party_planner.core.trip_structure import planning_day_count, structure_from_facts

logger = logging.getLogger(__name__)

ESTIMATE_CURRENCY = "CAD"

_DAY_NUMBER_RE = re.compile(r"\bday\s*(\d+)\b")
_NUMBERED_DAY_RE = re.compile(r"\b(\d+)(st|nd|rd|th)?\s*day\b")
_WORD_DAY_RE = re.compile(
    r"\b(?:day\s+(" + "|".join(WORD_NUMBERS) + r")|(" + "|".join(WORD_NUMBERS) + r")\s+day)\b"
)


def slot_label(slot: str) -> str:
    return slot.replace("_", " ").capitalize()


# ---------------------------------------------------------------------------
# Planning cursor
# ---------------------------------------------------------------------------


def start_planning(conversation: Conversation, today: Optional[date] = None) -> TripStructure:
    """Compute the day skeleton once and reset the planning cursor."""

    structure = structure_from_facts(conversation.facts, today)
    total = planning_day_count(structure)
    conversation.day_by_day_planning = DayByDayPlanning(
        total_days=total,
        completed_days=[None] * total,
        trip_type=structure.trip_type,
    )
    conversation.selected_services = [None] * total
    logger.info("Planning %s day(s) for conversation %s", total, conversation.id)
    return structure


def first_unsaved_day(planning: DayByDayPlanning) -> int:
    for index in range(planning.total_days):
        if index >= len(planning.completed_days) or planning.completed_days[index] is None:
            return index
    return planning.total_days


def advance_cursor(planning: DayByDayPlanning, new_day: int) -> None:
    if new_day < planning.current_day:
        raise PlannerInvariantError(f"Planning cursor cannot move back from {planning.current_day} to {new_day}")
    if new_day > planning.total_days:
        raise PlannerInvariantError(f"Planning cursor {new_day} beyond {planning.total_days} day(s)")
    planning.current_day = new_day
    planning.is_complete = new_day == planning.total_days


def _check_index(planning: DayByDayPlanning, day_index: int) -> None:
    if not 0 <= day_index < planning.total_days:
        raise PlannerInvariantError(f"Day index {day_index} outside trip of {planning.total_days} day(s)")


def _grow(items: List[Optional[DayPlan]], size: int) -> None:
    while len(items) < size:
        items.append(None)


# ---------------------------------------------------------------------------
# Folding selections into the itinerary
# ---------------------------------------------------------------------------


def enrich_with_prices(plan: DayPlan, catalog: Sequence[ServiceRecord]) -> DayPlan:
    """Copy catalog prices and categories onto every selection of ``plan``."""

    by_id = {s.id: s for s in catalog}
    enriched: List[ServiceSelection] = []
    for item in plan.selected_services:
        service = by_id.get(item.service_id)
        if service is None:
            enriched.append(item)
            continue
        enriched.append(
            item.model_copy(
                update={
                    "price_cad": service.price_cad,
                    "price_usd": service.price_usd,
                    "category": item.category or service.category_key,
                }
            )
        )
    return plan.model_copy(update={"selected_services": enriched})


def fold_day(conversation: Conversation, day_index: int, plan: DayPlan) -> DayPlan:
    """Persist an approved day and advance the cursor to the next unsaved day."""

    planning = conversation.day_by_day_planning
    _check_index(planning, day_index)
    saved = enrich_with_prices(plan, conversation.available_services)

    _grow(planning.completed_days, planning.total_days)
    _grow(conversation.selected_services, planning.total_days)
    planning.completed_days[day_index] = saved
    conversation.selected_services[day_index] = saved
    planning.used_services.update(saved.service_ids())
    planning.drafts.pop(day_index, None)
    planning.current_day_plan = None

    advance_cursor(planning, first_unsaved_day(planning))
    logger.info(
        "Saved day %s with %s services; cursor at %s/%s",
        day_index + 1,
        len(saved.selected_services),
        planning.current_day,
        planning.total_days,
    )
    return saved


def rebuild_used_services(conversation: Conversation) -> None:
    planning = conversation.day_by_day_planning
    planning.used_services = {sid for day in conversation.saved_days() for sid in day.service_ids()}


def replace_saved_day(conversation: Conversation, day_index: int, plan: DayPlan) -> DayPlan:
    """Swap a saved day for an edited one; ids of the old day leave the used set."""

    planning = conversation.day_by_day_planning
    _check_index(planning, day_index)
    saved = enrich_with_prices(plan, conversation.available_services)
    _grow(planning.completed_days, planning.total_days)
    _grow(conversation.selected_services, planning.total_days)
    planning.completed_days[day_index] = saved
    conversation.selected_services[day_index] = saved
    rebuild_used_services(conversation)
    return saved


def saved_day(conversation: Conversation, day_index: int) -> Optional[DayPlan]:
    if 0 <= day_index < len(conversation.selected_services):
        return conversation.selected_services[day_index]
    return None


# ---------------------------------------------------------------------------
# Estimates and summaries
# ---------------------------------------------------------------------------


def calculate_estimate(conversation: Conversation) -> Dict[str, Any]:
    """Per-person and group totals over all saved days."""

    per_person = 0.0
    for day in conversation.saved_days():
        for item in day.selected_services:
            per_person += item.price_cad if item.price_cad is not None else (item.price_usd or 0.0)
    group_size = conversation.facts.group_size.value or 1
    return {
        "perPerson": round(per_person, 2),
        "total": round(per_person * group_size, 2),
        "groupSize": group_size,
        "currency": ESTIMATE_CURRENCY,
    }


def day_label(conversation: Conversation, day_index: int) -> str:
    return format_day_label(conversation.facts.start_date.value, day_index)


def _bullet_summary(conversation: Conversation, today: Optional[date]) -> str:
    start = format_short(conversation.facts.start_date.value, today)
    header = f"Here's the plan at a glance (starting {start}):" if start else "Here's the plan at a glance:"
    lines = [header]
    for index, day in enumerate(conversation.selected_services):
        if day is None:
            continue
        parts = ", ".join(f"{slot_label(s.time_slot)}: {s.service_name}" for s in day.selected_services)
        lines.append(f"• {day_label(conversation, index)} - {parts or 'Open day'}")
    lines.append("")
    lines.append("Ask away - timing, prices, swaps - whatever you want to adjust.")
    return "\n".join(lines)


def _option_summary(conversation: Conversation, today: Optional[date]) -> str:
    day = next(iter(conversation.saved_days()), None)
    destination = conversation.facts.destination.value or "your city"
    if day is None or not day.selected_services:
        return f"Your night in {destination} is still open. Tell me the vibe and I'll line it up."
    stops = [f"{s.service_name} in the {slot_label(s.time_slot).lower()}" for s in day.selected_services]
    lineup = stops[0] if len(stops) == 1 else ", then ".join(stops)
    return f"Here's the lineup for your night in {destination}: {lineup}. Want to swap anything or check prices?"


SUMMARY_TEMPLATES: Dict[str, Callable[[Conversation, Optional[date]], str]] = {
    "single_event": _option_summary,
    "single_night": _bullet_summary,
    "weekend": _bullet_summary,
    "extended": _bullet_summary,
}


def trip_summary(conversation: Conversation, today: Optional[date] = None) -> str:
    template = SUMMARY_TEMPLATES.get(conversation.day_by_day_planning.trip_type or "extended", _bullet_summary)
    return template(conversation, today)


def format_itinerary_for_frontend(conversation: Conversation) -> Optional[Dict[str, Any]]:
    """Itinerary payload returned to the client, or None before planning."""

    planning = conversation.day_by_day_planning
    if not planning.total_days:
        return None
    start = to_local_date(conversation.facts.start_date.value)
    days = []
    for index in range(planning.total_days):
        saved = saved_day(conversation, index)
        plan = saved or planning.drafts.get(index)
        if plan is None and planning.current_day_plan and planning.current_day_plan.day_number == index + 1:
            plan = planning.current_day_plan
        days.append(
            {
                "dayNumber": index + 1,
                "label": day_label(conversation, index),
                "date": (start + timedelta(days=index)).isoformat() if start else None,
                "status": "saved" if saved else ("draft" if plan else "pending"),
                "dayTheme": plan.day_theme if plan else None,
                "logisticsNotes": plan.logistics_notes if plan else None,
                "services": [
                    {
                        "id": s.service_id,
                        "name": s.service_name,
                        "timeSlot": s.time_slot,
                        "category": s.category,
                        "estimatedDuration": s.estimated_duration,
                        "priceCad": s.price_cad,
                        "priceUsd": s.price_usd,
                    }
                    for s in (plan.selected_services if plan else [])
                ],
            }
        )
    return {
        "tripType": planning.trip_type,
        "totalDays": planning.total_days,
        "currentDay": planning.current_day,
        "isComplete": planning.is_complete,
        "days": days,
        "estimate": calculate_estimate(conversation),
    }


# ---------------------------------------------------------------------------
# Target day resolution
# ---------------------------------------------------------------------------


def _day_from_text(text: str) -> Optional[int]:
    match = _DAY_NUMBER_RE.search(text) or _NUMBERED_DAY_RE.search(text)
    if match:
        return int(match.group(1))
    match = _WORD_DAY_RE.search(text)
    if match:
        if match.group(1):
            return WORD_NUMBERS[match.group(1)]
        return WORD_NUMBERS[match.group(2)]
    return None


def resolve_target_day_index(
    message: str,
    *,
    start_date: Any,
    total_days: int,
    current_day: int,
    reducer_index: Optional[int] = None,
    fallback: Optional[int] = None,
    today: Optional[date] = None,
) -> int:
    """Zero-based day the user is talking about.

    Checks the reducer's index, then "day N" style phrases, then weekday
    names within the trip span, then an explicit calendar date.
    """

    default = fallback if fallback is not None else current_day
    if reducer_index is not None and 0 <= reducer_index < total_days:
        return reducer_index
    if total_days <= 0:
        return default

    text = (message or "").lower()
    number = _day_from_text(text)
    if number is not None and 1 <= number <= total_days:
        return number - 1

    start = to_local_date(start_date)
    if start is None:
        return default

    for index in range(total_days):
        if WEEKDAYS[(start + timedelta(days=index)).weekday()] in text:
            return index

    explicit = parse_explicit_date(text, today or start)
    if explicit is not None:
        delta = (explicit - start).days
        if 0 <= delta < total_days:
            return delta
    return default
