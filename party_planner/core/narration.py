"""User-facing texts: day presentations, confirmations and answers.

Every text that the model writes has a deterministic fallback so a failed
call never reaches the user as an error.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Dict, List, Optional, Sequence

from langchain_core.language_models.chat_models import BaseChatModel

from party_planner.core.dates import format_short
from party_planner.core.itinerary import day_label, slot_label
from party_planner.core.post_processing import message_text
from party_planner.core.prompts import (
    day_response_prompt,
    general_question_prompt,
    planning_transition_prompt,
)
from party_planner.core.schemas import (
    FALLBACK_REPLY,
    Conversation,
    DayInfo,
    DayPlan,
    EditDirectives,
    InteractiveDirective,
    Reduction,
    ServiceRecord,
    TripFacts,
)

logger = logging.getLogger(__name__)

QUESTION_FALLBACK = (
    "I'm having trouble accessing that information right now. "
    "Can you be more specific about what you'd like to know?"
)
NO_CATALOG_APOLOGY = (
    "Sorry, I couldn't pull up venues for that destination right now. "
    "Give me a moment and try again, or tell me another city you're considering."
)
SERVICES_PER_CATEGORY = 8

SINGLE_DAY_TEMPLATES = (
    "Locked in for {destination}{range}. Ask me anything or say the word if you want tweaks.",
    "Your night in {destination} is set{range}. Want to swap something or check details?",
    "All set for {destination}{range}. I can adjust timing or venues, just tell me how.",
)
MULTI_DAY_TEMPLATES = (
    "Your {days}-day {destination} plan is locked{range}. Questions or changes? I can tweak any day.",
    "All set for {destination}{range}. We can still swap activities, change timing, or add transport.",
    "Itinerary saved{range}. Want me to move dinner, add brunch, or upgrade nightlife? Just say the word.",
)

_EDIT_VERBS = {
    "substitute_service": "swapped",
    "replace_activity": "swapped",
    "add_activity": "added",
    "remove_activity": "removed",
}


async def generate_text(llm: BaseChatModel, prompt: str, what: str) -> Optional[str]:
    try:
        response = await llm.ainvoke(prompt)
    except Exception as exc:
        logger.warning("Failed to generate %s: %s", what, exc, exc_info=True)
        return None
    text = message_text(response)
    return text.strip() if text and text.strip() else None


# ---------------------------------------------------------------------------
# Day presentation
# ---------------------------------------------------------------------------


def describe_plan(plan: DayPlan) -> str:
    lines = []
    for item in plan.selected_services:
        line = f"- {slot_label(item.time_slot)}: {item.service_name}"
        if item.reason:
            line += f" ({item.reason})"
        lines.append(line)
    return "\n".join(lines) or "- Nothing booked yet"


def _closing(day_info: DayInfo) -> str:
    if day_info.is_last_day:
        return "Does this look good, or want me to adjust anything?"
    return f"This should flow well. Ready to map out day {day_info.day_number + 1}?"


def fallback_day_response(plan: DayPlan, day_info: DayInfo) -> str:
    stops = " ".join(f"{slot_label(s.time_slot)}: {s.service_name}." for s in plan.selected_services)
    body = stops or "I couldn't find a great fit for this day yet, so tell me what you're in the mood for."
    return f"Here's the plan for day {day_info.day_number}: {body} {_closing(day_info)}"


async def day_response(
    llm: BaseChatModel, conversation: Conversation, plan: DayPlan, day_info: DayInfo
) -> str:
    if not plan.selected_services:
        return fallback_day_response(plan, day_info)
    prompt = day_response_prompt.format(
        day_number=day_info.day_number,
        total_days=day_info.total_days,
        destination=conversation.facts.destination.value or "town",
        group_size=conversation.facts.group_size.value or "the group",
        day_plan=describe_plan(plan),
        day_theme=plan.day_theme or "n/a",
        logistics_notes=plan.logistics_notes or "n/a",
        closing_instruction=f'End with exactly: "{_closing(day_info)}"',
    )
    return await generate_text(llm, prompt, "day response") or fallback_day_response(plan, day_info)


def fallback_transition(total_days: int) -> str:
    noun = "day" if total_days == 1 else "days"
    return f"Perfect! Let's plan out your {total_days} {noun} step by step.\n\n"


async def planning_transition(
    llm: BaseChatModel, conversation: Conversation, total_days: int, trip_type: Optional[str]
) -> str:
    prompt = planning_transition_prompt.format(
        destination=conversation.facts.destination.value,
        group_size=conversation.facts.group_size.value,
        total_days=total_days,
        trip_type=trip_type or "extended",
    )
    text = await generate_text(llm, prompt, "planning transition")
    return f"{text}\n\n" if text else fallback_transition(total_days)


def next_day_failure(day_number: int) -> str:
    return f"Awesome! Let's plan day {day_number}. I'm putting together some epic options for you guys!"


# ---------------------------------------------------------------------------
# Completion and confirmations
# ---------------------------------------------------------------------------


def _date_range(conversation: Conversation, today: Optional[date]) -> str:
    start = format_short(conversation.facts.start_date.value, today)
    end = format_short(conversation.facts.end_date.value, today)
    if start and end and start != end:
        return f" ({start} - {end})"
    if start:
        return f" ({start})"
    return ""


def all_days_scheduled(conversation: Conversation, today: Optional[date] = None) -> str:
    """Rotating completion message; records the template used on the conversation."""

    standby = conversation.standby
    total = conversation.day_by_day_planning.total_days or 1
    templates = SINGLE_DAY_TEMPLATES if total <= 1 else MULTI_DAY_TEMPLATES
    index = standby.nudges_sent % len(templates)
    if index == standby.last_template:
        index = (index + 1) % len(templates)
    standby.nudges_sent += 1
    standby.last_template = index
    return templates[index].format(
        destination=conversation.facts.destination.value or "your trip",
        range=_date_range(conversation, today),
        days=total,
    )


def edit_confirmation(conversation: Conversation, day_index: int, next_day: Optional[int]) -> str:
    label = day_label(conversation, day_index)
    if next_day is not None and next_day != day_index:
        return f"Done! Updated {label}. Want to keep planning Day {next_day + 1}, or review anything else?"
    return f"Done! Updated {label}. Want to review anything else?"


def standby_edit_confirmation(directives: Optional[EditDirectives], day_number: int) -> str:
    if directives is None or not directives.ops:
        return f"Updated Day {day_number}. Want to see the new lineup or tweak anything else?"
    op = directives.ops[0]
    verb = _EDIT_VERBS.get(op.op)
    if verb is None:
        return f"Done! I updated the plan for Day {day_number}. Your itinerary is updated."
    subject = (op.target_category or op.category_hint or op.target_name or "").lower()
    if "club" in subject:
        thing = "the club"
    elif "restaurant" in subject or "dinner" in subject:
        thing = "the restaurant"
    elif verb == "added":
        thing = "that to the lineup"
    elif verb == "removed":
        thing = "that from the plan"
    elif subject:
        thing = "the activity"
    else:
        thing = "that spot"
    return f"Done! I {verb} {thing} for Day {day_number}. Your itinerary is updated."


def standby_no_directive(total_days: int) -> str:
    example_day = min(2, max(total_days, 1))
    return (
        "Tell me what to change and which day "
        f'(e.g., "Swap dinner on Day {example_day} for a steakhouse" or "Move the club later").'
    )


# ---------------------------------------------------------------------------
# General questions
# ---------------------------------------------------------------------------


def build_question_context(conversation: Conversation, today: Optional[date] = None) -> str:
    facts = conversation.facts
    lines: List[str] = ["TRIP DETAILS:"]
    lines.append(f"- Destination: {facts.destination.value or 'Not set'}")
    lines.append(f"- Group size: {facts.group_size.value or 'Not set'}")
    start = format_short(facts.start_date.value, today)
    end = format_short(facts.end_date.value, today)
    lines.append(f"- Dates: {start or 'Not set'}{f' to {end}' if end and end != start else ''}")
    lines.append(f"- Wildness: {facts.wildness_level.value or 'Not set'}/5")
    if facts.budget.value is not None:
        lines.append(f"- Budget: {facts.budget.value} {facts.budget_type.value or ''}".rstrip())
    if facts.activities:
        lines.append(f"- Interests: {facts.special_requests}")

    lines.append("")
    lines.append("CURRENT ITINERARY:")
    days = [(i, d) for i, d in enumerate(conversation.selected_services) if d is not None]
    planning = conversation.day_by_day_planning
    if planning.current_day_plan is not None:
        draft_index = planning.current_day_plan.day_number - 1
        if all(i != draft_index for i, _ in days):
            days.append((draft_index, planning.current_day_plan))
    if not days:
        lines.append("- Nothing planned yet")
    for index, day in sorted(days, key=lambda pair: pair[0]):
        lines.append(f"{day_label(conversation, index)}:")
        lines.extend(f"  {line}" for line in describe_plan(day).splitlines())

    lines.append("")
    lines.append("AVAILABLE SERVICES BY CATEGORY:")
    lines.extend(_services_by_category(conversation.available_services))
    return "\n".join(lines)


def _services_by_category(services: Sequence[ServiceRecord]) -> List[str]:
    grouped: Dict[str, List[ServiceRecord]] = defaultdict(list)
    for service in services:
        grouped[service.category_key].append(service)
    if not grouped:
        return ["- No services loaded"]
    lines = []
    for category, items in grouped.items():
        lines.append(f"{category.replace('_', ' ').title()}:")
        for service in items[:SERVICES_PER_CATEGORY]:
            price = f" - ~${service.price:g}" if service.price else ""
            lines.append(f"  - {service.display_name}{price}: {(service.description or '')[:80]}")
    return lines


async def answer_general_question(
    llm: BaseChatModel, conversation: Conversation, message: str, today: Optional[date] = None
) -> str:
    prompt = general_question_prompt.format(
        message=message, context=build_question_context(conversation, today)
    )
    return await generate_text(llm, prompt, "general answer") or QUESTION_FALLBACK


# ---------------------------------------------------------------------------
# Gathering
# ---------------------------------------------------------------------------

ESSENTIAL_QUESTIONS = {
    "destination": "Where are you planning to have your bachelor party?",
    "group_size": "How many guys are coming along?",
    "start_date": "What dates are you thinking? A specific weekend works great.",
    "end_date": "Is that one night, or a whole weekend? When do you head home?",
}
REVERT_NOTICE = "Got it, that changes the plan, so I'll rebuild the itinerary once we lock the details in."
_FACT_LABELS = {
    "destination": "destination",
    "group_size": "group size",
    "start_date": "start date",
    "end_date": "end date",
    "wildness_level": "wildness level",
    "budget": "budget",
    "budget_type": "budget type",
}


def _label(name: str) -> str:
    return _FACT_LABELS.get(name, name.replace("_", " "))


def gathering_reply(
    conversation: Conversation,
    reduction: Optional[Reduction],
    *,
    missing: Sequence[str],
    ambiguous: Sequence[str] = (),
    clarify: Sequence[str] = (),
    reverted: bool = False,
    wildness_answered: bool = False,
) -> str:
    """Reply for a GATHERING turn: clarifications first, then the next question."""

    if ambiguous:
        return (
            f"Just to confirm, do you want to change the {_label(ambiguous[0])}? "
            "Say it again with \"actually\" and I'll update it."
        )
    if clarify:
        return f"I couldn't quite read the {_label(clarify[0])}. Could you give it to me another way?"

    if wildness_answered:
        level = conversation.facts.wildness_level.value
        opener = f"Wildness {level}/5, noted." if level else "Noted."
        next_question = ESSENTIAL_QUESTIONS[missing[0]] if missing else "What else should I know about the group?"
        return f"{opener} {next_question}"

    reply = reduction.reply if reduction else ""
    if not reply or reply == FALLBACK_REPLY:
        reply = ESSENTIAL_QUESTIONS[missing[0]] if missing else (reply or FALLBACK_REPLY)
    if reverted:
        return f"{REVERT_NOTICE} {reply}"
    return reply


def interactive_for(
    conversation: Conversation, reduction: Optional[Reduction], missing: Sequence[str]
) -> Optional[InteractiveDirective]:
    """Structured selector hint for the fact the reply is asking about."""

    asked = [TripFacts.resolve_name(name) for name in (reduction.asked_about if reduction else [])]
    target = next((name for name in asked if name), None) or (missing[0] if missing else None)
    if target == "wildness_level":
        return InteractiveDirective(type="wildness_scale", fact="wildnessLevel", min_value=1, max_value=5)
    if target in ("start_date", "end_date"):
        return InteractiveDirective(type="date_picker", fact="startDate" if target == "start_date" else "endDate")
    if target in ("budget", "budget_type"):
        return InteractiveDirective(type="budget_selector", fact="budget", options=["per_person", "total", "flexible"])
    if target == "group_size":
        return InteractiveDirective(type="group_size", fact="groupSize", min_value=1, max_value=50)
    return None
