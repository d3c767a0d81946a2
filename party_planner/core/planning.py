"""Day-by-day planning and STANDBY turn handling.

These coroutines hold the behaviour of the planning and standby graph nodes.
They mutate the conversation only after a selection (or its fallback) has
been fully computed.
"""
from __future__ import annotations

import logging
import re
from datetime import date
from typing import Iterable, Optional

from langchain_core.language_models.chat_models import BaseChatModel

from party_planner.core.edits import heuristic_edit_directives, infer_edit_directives
from party_planner.core.itinerary import (
    day_label,
    fold_day,
    replace_saved_day,
    resolve_target_day_index,
    saved_day,
    start_planning,
    trip_summary,
)
from party_planner.core.narration import (
    NO_CATALOG_APOLOGY,
    all_days_scheduled,
    answer_general_question,
    day_response,
    edit_confirmation,
    next_day_failure,
    planning_transition,
    standby_edit_confirmation,
    standby_no_directive,
)
from party_planner.core.options import is_options_question, present_options
from party_planner.core.prompts import standby_intent_prompt
from party_planner.core.extraction import serialize_facts
from party_planner.core.schemas import (
    Conversation,
    DayInfo,
    DayPlan,
    IntentType,
    Phase,
    Reduction,
    StandbyClassification,
)
from party_planner.core.selection import PlannerPreferences, ServiceSelector
from party_planner.core.trip_structure import build_day_info, structure_from_facts
from party_planner.services.catalog import ServiceCatalog, gather_catalog

logger = logging.getLogger(__name__)

APPROVAL_RE = re.compile(
    r"\b(yes|yep|yeah|sure|ok(?:ay)?|cool|perfect|great|works|approved|approve|sounds good"
    r"|looks good|good to me|let'?s go|go ahead)\b"
)
NAVIGATION_RE = re.compile(r"\b(go to|show(?: me)?|switch(?: to)?|work on|plan|open)\b")
EDIT_INTENTS = frozenset(
    {IntentType.SUBSTITUTION, IntentType.ADDITION, IntentType.REMOVAL, IntentType.EDIT_ITINERARY}
)


def preferences_for(conversation: Conversation) -> PlannerPreferences:
    return PlannerPreferences.from_facts(conversation.facts, conversation.day_by_day_planning.total_days)


def day_info_for(conversation: Conversation, day_index: int, today: Optional[date] = None) -> DayInfo:
    return build_day_info(structure_from_facts(conversation.facts, today), day_index)


def viewed_day(conversation: Conversation) -> int:
    planning = conversation.day_by_day_planning
    if planning.current_day_plan is not None:
        return planning.current_day_plan.day_number - 1
    return min(planning.current_day, max(planning.total_days - 1, 0))


async def ensure_catalog(
    catalog: ServiceCatalog, conversation: Conversation, extra_texts: Iterable[str] = ()
) -> bool:
    """Load the catalog snapshot once per planning session."""

    if not conversation.available_services:
        conversation.available_services = await gather_catalog(
            catalog, conversation.facts, extra_texts=extra_texts
        )
    return bool(conversation.available_services)


async def plan_day(
    selector: ServiceSelector,
    conversation: Conversation,
    day_index: int,
    today: Optional[date] = None,
    *,
    user_request: Optional[str] = None,
    allow_repeats: bool = False,
) -> DayPlan:
    info = day_info_for(conversation, day_index, today)
    selection = await selector.select(
        conversation.available_services,
        preferences_for(conversation),
        info,
        conversation.day_by_day_planning.used_services,
        allow_repeats=allow_repeats,
        user_explicit_request=user_request,
    )
    return DayPlan.from_selection(selection, info)


def _stash_current(conversation: Conversation) -> None:
    planning = conversation.day_by_day_planning
    plan = planning.current_day_plan
    if plan is not None and saved_day(conversation, plan.day_number - 1) is None:
        planning.drafts[plan.day_number - 1] = plan
    planning.current_day_plan = None


async def show_day(
    llm: BaseChatModel,
    selector: ServiceSelector,
    conversation: Conversation,
    day_index: int,
    today: Optional[date] = None,
    *,
    user_request: Optional[str] = None,
) -> str:
    """Present a day: a saved day or stored draft is reused, otherwise it is selected."""

    planning = conversation.day_by_day_planning
    _stash_current(conversation)
    saved = saved_day(conversation, day_index)
    if saved is not None:
        plan = saved.model_copy(deep=True)
    elif day_index in planning.drafts:
        plan = planning.drafts.pop(day_index)
    else:
        plan = await plan_day(selector, conversation, day_index, today, user_request=user_request)
    planning.current_day_plan = plan
    return await day_response(llm, conversation, plan, day_info_for(conversation, day_index, today))


async def begin_planning(
    llm: BaseChatModel,
    selector: ServiceSelector,
    catalog: ServiceCatalog,
    conversation: Conversation,
    message: str = "",
    today: Optional[date] = None,
) -> str:
    if not await ensure_catalog(catalog, conversation, [message]):
        logger.warning("No catalog services for %s", conversation.facts.destination.value)
        return NO_CATALOG_APOLOGY
    structure = start_planning(conversation, today)
    total = conversation.day_by_day_planning.total_days
    transition = await planning_transition(llm, conversation, total, structure.trip_type)
    return transition + await show_day(llm, selector, conversation, 0, today)


# ---------------------------------------------------------------------------
# PLANNING
# ---------------------------------------------------------------------------


def _is_navigation(message: str, reduction: Optional[Reduction], conversation: Conversation, today: Optional[date]) -> bool:
    text = (message or "").lower()
    if APPROVAL_RE.search(text):
        return False
    if NAVIGATION_RE.search(text):
        return True
    planning = conversation.day_by_day_planning
    current = viewed_day(conversation)
    target = resolve_target_day_index(
        text,
        start_date=conversation.facts.start_date.value,
        total_days=planning.total_days,
        current_day=current,
        reducer_index=reduction.target_day_index if reduction else None,
        today=today,
    )
    return target != current


async def _approve(
    llm: BaseChatModel, selector: ServiceSelector, conversation: Conversation, today: Optional[date]
) -> str:
    planning = conversation.day_by_day_planning
    plan = planning.current_day_plan
    if plan is None:
        return await show_day(llm, selector, conversation, planning.current_day, today)

    fold_day(conversation, plan.day_number - 1, plan)
    if planning.is_complete:
        conversation.phase = Phase.STANDBY
        return f"{all_days_scheduled(conversation, today)}\n\n{trip_summary(conversation, today)}"

    reply = await show_day(llm, selector, conversation, planning.current_day, today)
    upcoming = planning.current_day_plan
    if upcoming is None or not upcoming.selected_services:
        return next_day_failure(planning.current_day + 1)
    return reply


async def _edit(
    llm: BaseChatModel,
    selector: ServiceSelector,
    conversation: Conversation,
    message: str,
    reduction: Optional[Reduction],
    today: Optional[date],
) -> str:
    planning = conversation.day_by_day_planning
    viewing = viewed_day(conversation)
    target = resolve_target_day_index(
        message,
        start_date=conversation.facts.start_date.value,
        total_days=planning.total_days,
        current_day=viewing,
        reducer_index=reduction.target_day_index if reduction else None,
        today=today,
    )
    saved = saved_day(conversation, target)
    if planning.current_day_plan is not None and viewing == target:
        current = planning.current_day_plan
    else:
        current = planning.drafts.get(target) or saved

    info = day_info_for(conversation, target, today)
    preferences = preferences_for(conversation)
    catalog = conversation.available_services
    directives = await infer_edit_directives(
        llm, message, current, preferences.model_dump(), info
    ) or heuristic_edit_directives(message, catalog, info)

    if directives is None or current is None:
        selection = await selector.select(
            catalog,
            preferences,
            info,
            planning.used_services,
            allow_repeats=True,
            user_explicit_request=message,
        )
    else:
        selection = await selector.rewrite_day_with_edits(
            catalog,
            preferences,
            info,
            current,
            directives,
            planning.used_services,
            user_explicit_request=message,
        )
    new_plan = DayPlan.from_selection(selection, info)

    if saved is not None:
        new_plan = replace_saved_day(conversation, target, new_plan)
    if planning.current_day_plan is not None and viewing == target:
        planning.current_day_plan = new_plan.model_copy(deep=True)
        if saved is None:
            response = await day_response(llm, conversation, new_plan, info)
            return f"Done! Updated {day_label(conversation, target)}.\n\n{response}"
    elif saved is None:
        planning.drafts[target] = new_plan

    next_day = None if planning.is_complete else planning.current_day
    return edit_confirmation(conversation, target, next_day)


async def handle_planning_turn(
    llm: BaseChatModel,
    selector: ServiceSelector,
    catalog: ServiceCatalog,
    conversation: Conversation,
    message: str,
    reduction: Optional[Reduction],
    today: Optional[date] = None,
) -> str:
    """Route one PLANNING turn by the reducer's intent."""

    planning = conversation.day_by_day_planning
    if not planning.total_days or not conversation.available_services:
        return await begin_planning(llm, selector, catalog, conversation, message, today)

    intent = reduction.intent_type if reduction else IntentType.GENERAL_QUESTION
    if intent is IntentType.APPROVAL_NEXT and _is_navigation(message, reduction, conversation, today):
        intent = IntentType.SHOW_DAY
    logger.info("Planning intent for conversation %s: %s", conversation.id, intent.value)

    if intent is IntentType.APPROVAL_NEXT:
        return await _approve(llm, selector, conversation, today)
    if intent is IntentType.SHOW_DAY:
        target = resolve_target_day_index(
            message,
            start_date=conversation.facts.start_date.value,
            total_days=planning.total_days,
            current_day=viewed_day(conversation),
            reducer_index=reduction.target_day_index if reduction else None,
            today=today,
        )
        return await show_day(llm, selector, conversation, target, today)
    if intent in EDIT_INTENTS:
        return await _edit(llm, selector, conversation, message, reduction, today)
    if is_options_question(message):
        return await present_options(llm, conversation, message)
    return await answer_general_question(llm, conversation, message, today)


# ---------------------------------------------------------------------------
# STANDBY
# ---------------------------------------------------------------------------


async def classify_standby_intent(
    llm: BaseChatModel, conversation: Conversation, message: str
) -> StandbyClassification:
    prompt = standby_intent_prompt.format(
        facts=serialize_facts(conversation.facts),
        recent_messages=conversation.recent_messages(6),
        message=message,
    )
    structured_llm = llm.with_structured_output(StandbyClassification)
    try:
        result = await structured_llm.ainvoke(prompt)
        if isinstance(result, dict):
            result = StandbyClassification.model_validate(result)
        if result is not None:
            return result
    except Exception as exc:
        logger.warning("classify_intent failed, treating as a question: %s", exc, exc_info=True)
    return StandbyClassification()


async def _standby_edit(
    llm: BaseChatModel,
    selector: ServiceSelector,
    conversation: Conversation,
    message: str,
    today: Optional[date],
) -> str:
    planning = conversation.day_by_day_planning
    target = resolve_target_day_index(
        message,
        start_date=conversation.facts.start_date.value,
        total_days=planning.total_days,
        current_day=0,
        fallback=0,
        today=today,
    )
    info = day_info_for(conversation, target, today)
    preferences = preferences_for(conversation)
    catalog = conversation.available_services
    current = saved_day(conversation, target)

    directives = await infer_edit_directives(
        llm, message, current, preferences.model_dump(), info
    ) or heuristic_edit_directives(message, catalog, info)
    if directives is None:
        return standby_no_directive(planning.total_days)

    selection = await selector.rewrite_day_with_edits(
        catalog,
        preferences,
        info,
        current,
        directives,
        planning.used_services,
        user_explicit_request=message,
    )
    if not selection.selected_services:
        return standby_edit_confirmation(None, target + 1)
    replace_saved_day(conversation, target, DayPlan.from_selection(selection, info))
    return standby_edit_confirmation(directives, target + 1)


async def handle_standby_turn(
    llm: BaseChatModel,
    selector: ServiceSelector,
    conversation: Conversation,
    message: str,
    today: Optional[date] = None,
) -> str:
    classification = await classify_standby_intent(llm, conversation, message)
    logger.info("Standby intent for conversation %s: %s", conversation.id, classification.intent_type)
    if classification.intent_type == "edit_itinerary":
        return await _standby_edit(llm, selector, conversation, message, today)
    if classification.intent_type == "approval_next":
        return all_days_scheduled(conversation, today)
    if is_options_question(message):
        return await present_options(llm, conversation, message)
    return await answer_general_question(llm, conversation, message, today)
