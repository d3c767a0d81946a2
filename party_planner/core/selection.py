"""Service selection for one day of the itinerary.

The selector is a strategy (``ServiceSelector``). The default implementation
asks the chat model for a structured ``DaySelection``, retries once with raw
text repair and then validates every pick against the catalog slice it was
given. When the model cannot produce anything usable a rule-based selection
is returned so a non-empty catalog always yields at least one service.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Set, Union, runtime_checkable

from langchain_core.language_models.chat_models import BaseChatModel
from pydantic import BaseModel, Field

from party_planner.core.edits import apply_edit_directives, find_service_by_name, norm, plan_summary
from party_planner.core.post_processing import message_text, repair_day_selection
from party_planner.core.prompts import (
    dedup_avoid_section,
    dedup_repeats_ok_section,
    request_matching_section,
    rewrite_day_prompt,
    selector_prompt,
)
from party_planner.core.schemas import (
    AlternativeOption,
    DayInfo,
    DayPlan,
    DaySelection,
    EditDirectives,
    ServiceRecord,
    ServiceSelection,
    TripFacts,
)

logger = logging.getLogger(__name__)

FALLBACK_THEME = "Classic bachelor party experience"
FALLBACK_NOTES = "Standard timing progression"
REWRITE_SERVICE_LIMIT = 40

# category -> preferred slot, in order of the evening
_FALLBACK_PLAN = (
    ("restaurant", "evening"),
    ("strip_club", "night"),
    ("night_club", "late_night"),
    ("bar", "late_night"),
)
_CATEGORY_SLOTS = {
    "restaurant": "evening",
    "catering": "evening",
    "strip_club": "night",
    "night_club": "late_night",
    "bar": "late_night",
    "daytime": "afternoon",
    "package": "afternoon",
    "transportation": "evening",
    "accommodation": "afternoon",
}
_WORD_RE = re.compile(r"[a-z]{4,}")


class PlannerPreferences(BaseModel):
    """The subset of trip facts the selector prompts need."""

    destination: Optional[str] = None
    group_size: Optional[int] = None
    duration: int = 1
    wildness_level: int = 3
    budget: Optional[str] = None
    special_requests: str = ""
    interested_activities: List[str] = Field(default_factory=list)

    @classmethod
    def from_facts(cls, facts: TripFacts, total_days: int) -> "PlannerPreferences":
        budget = facts.budget.value
        if budget is not None and facts.budget_type.value:
            budget = f"{budget} ({facts.budget_type.value})"
        return cls(
            destination=facts.destination.value,
            group_size=facts.group_size.value,
            duration=max(total_days, 1),
            wildness_level=facts.wildness_level.value or 3,
            budget=str(budget) if budget is not None else None,
            special_requests=facts.special_requests,
            interested_activities=facts.activities,
        )

    def as_prompt_values(self) -> Dict[str, Any]:
        return {
            "destination": self.destination or "Unknown",
            "group_size": self.group_size or "?",
            "duration": self.duration,
            "wildness_level": self.wildness_level,
            "budget": self.budget or "Not specified",
            "special_requests": self.special_requests or "None",
        }


@runtime_checkable
class ServiceSelector(Protocol):
    async def select(
        self,
        catalog: Sequence[ServiceRecord],
        preferences: PlannerPreferences,
        day_info: DayInfo,
        used_services: Iterable[str],
        *,
        allow_repeats: bool = False,
        user_explicit_request: Optional[str] = None,
    ) -> DaySelection:
        ...

    async def rewrite_day_with_edits(
        self,
        catalog: Sequence[ServiceRecord],
        preferences: PlannerPreferences,
        day_info: DayInfo,
        current_plan: Union[DayPlan, DaySelection, None],
        directives: EditDirectives,
        used_services: Iterable[str],
        *,
        user_explicit_request: Optional[str] = None,
    ) -> DaySelection:
        ...


# ---------------------------------------------------------------------------
# Prompt sections
# ---------------------------------------------------------------------------


def format_services(catalog: Sequence[ServiceRecord]) -> str:
    lines = []
    for s in catalog:
        currency = "CAD" if s.price_cad is not None else "USD"
        lines.append(
            f'- ID: {s.id} | Name: "{s.display_name}" | Category: {s.category_key} | '
            f"Description: {(s.description or '')[:100]} | Price: {s.price:g} {currency} | "
            f"Duration: {s.duration_hours if s.duration_hours is not None else '?'} hours"
        )
    return "\n".join(lines) or "(no services available)"


def format_rewrite_services(catalog: Sequence[ServiceRecord]) -> str:
    return "\n".join(
        f'- {s.id} | name="{s.name}" | itinerary_name="{s.itinerary_name or s.name}" | '
        f"{s.category_key} | {s.duration_hours if s.duration_hours else 'flex'}h"
        for s in catalog[:REWRITE_SERVICE_LIMIT]
    )


def build_dedup_section(
    used_services: Iterable[str],
    catalog: Sequence[ServiceRecord],
    *,
    allow_repeats: bool,
    user_request: Optional[str] = None,
) -> str:
    by_id = {s.id: s for s in catalog}
    used = [by_id[i] for i in sorted(set(used_services)) if i in by_id]
    if not used:
        return ""
    listing = "\n".join(f"- {s.display_name} ({s.category_key})" for s in used)
    if allow_repeats:
        return dedup_repeats_ok_section.format(used=listing, request=user_request or "")
    return dedup_avoid_section.format(used=listing)


def build_selection_prompt(
    catalog: Sequence[ServiceRecord],
    preferences: PlannerPreferences,
    day_info: DayInfo,
    used_services: Iterable[str],
    *,
    allow_repeats: bool = False,
    user_explicit_request: Optional[str] = None,
) -> str:
    request_section = (
        request_matching_section.format(request=user_explicit_request) if user_explicit_request else ""
    )
    return selector_prompt.format(
        **preferences.as_prompt_values(),
        user_request=user_explicit_request or "Create the best possible day",
        day_number=day_info.day_number,
        day_type=day_info.day_type,
        time_slots=", ".join(day_info.time_slots),
        dedup_section=build_dedup_section(
            used_services, catalog, allow_repeats=allow_repeats, user_request=user_explicit_request
        ),
        services=format_services(catalog),
        request_section=request_section,
    )


# ---------------------------------------------------------------------------
# Validation against the catalog
# ---------------------------------------------------------------------------


def _slot_for(service: ServiceRecord, slots: Sequence[str], taken: Set[str]) -> str:
    preferred = _CATEGORY_SLOTS.get(service.category_key)
    if preferred in slots:
        return preferred  # type: ignore[return-value]
    free = [slot for slot in slots if slot not in taken]
    return free[0] if free else slots[-1]


def _lookup(
    service_id: str, service_name: str, by_id: Dict[str, ServiceRecord], catalog: Sequence[ServiceRecord]
) -> Optional[ServiceRecord]:
    service = by_id.get(service_id)
    if service is None:
        service = find_service_by_name(service_name, catalog)
    return service


def validate_against_catalog(
    selection: DaySelection, catalog: Sequence[ServiceRecord], day_info: DayInfo
) -> DaySelection:
    """Drop unknown services and repair ids, slots, categories and prices.

    Name-only matches are re-keyed to the catalog id and a slot outside the
    day's slots is re-picked from the day's slots.
    """

    by_id = {s.id: s for s in catalog}
    slots = list(day_info.time_slots)
    validated: List[ServiceSelection] = []
    seen = set()
    for item in selection.selected_services:
        service = _lookup(item.service_id, item.service_name, by_id, catalog)
        if service is None:
            logger.warning("Dropping selection %r (%s): not in catalog", item.service_name, item.service_id)
            continue
        slot = item.time_slot
        if slot not in slots:
            slot = _slot_for(service, slots, {v.time_slot for v in validated})
        if (service.id, slot) in seen:
            continue
        seen.add((service.id, slot))
        validated.append(
            item.model_copy(
                update={
                    "service_id": service.id,
                    "service_name": item.service_name or service.display_name,
                    "time_slot": slot,
                    "category": service.category_key,
                    "price_cad": service.price_cad,
                    "price_usd": service.price_usd,
                    "estimated_duration": item.estimated_duration
                    or (f"{service.duration_hours:g} hours" if service.duration_hours else "2-3 hours"),
                }
            )
        )

    alternatives: List[AlternativeOption] = []
    for alt in selection.alternative_options:
        service = _lookup(alt.service_id, alt.service_name, by_id, catalog)
        if service is not None:
            alternatives.append(alt.model_copy(update={"service_id": service.id}))

    return DaySelection(
        selected_services=validated,
        alternative_options=alternatives,
        day_theme=selection.day_theme,
        logistics_notes=selection.logistics_notes,
    )


# ---------------------------------------------------------------------------
# Rule-based fallback
# ---------------------------------------------------------------------------


def _request_terms(preferences: PlannerPreferences, user_request: Optional[str]) -> List[str]:
    text = " ".join([preferences.special_requests, *preferences.interested_activities, user_request or ""]).lower()
    return sorted(set(_WORD_RE.findall(text)))


def _fallback_score(service: ServiceRecord, terms: Sequence[str]) -> float:
    description = norm(f"{service.description or ''} {service.itinerary_description or ''}")
    hits = sum(1 for term in terms if term in description)
    return hits * 2 + service.price * 0.01


def _best(pool: Sequence[ServiceRecord], used: Set[str], terms: Sequence[str]) -> Optional[ServiceRecord]:
    if not pool:
        return None
    fresh = [s for s in pool if s.id not in used]
    return max(fresh or pool, key=lambda s: _fallback_score(s, terms))


def fallback_selection(
    catalog: Sequence[ServiceRecord],
    preferences: PlannerPreferences,
    day_info: DayInfo,
    used_services: Iterable[str] = (),
    *,
    user_explicit_request: Optional[str] = None,
) -> DaySelection:
    """Pick services without the model.

    Restaurant in the evening, a strip club at night only when asked for,
    then a night club (or a bar) late at night.
    """

    used = set(used_services)
    terms = _request_terms(preferences, user_explicit_request)
    wants_strip = "strip" in " ".join([preferences.special_requests, user_explicit_request or ""]).lower()
    slots = list(day_info.time_slots)

    def fits(preferred: str, taken: Set[str]) -> Optional[str]:
        if preferred in slots and preferred not in taken:
            return preferred
        later = [s for s in slots if s not in taken]
        return later[0] if later else None

    picks: List[ServiceSelection] = []
    taken: Set[str] = set()
    nightlife_done = False
    for category, preferred in _FALLBACK_PLAN:
        if category == "strip_club" and not wants_strip:
            continue
        if category == "bar" and nightlife_done:
            continue
        service = _best([s for s in catalog if s.category_key == category], used, terms)
        if service is None:
            continue
        slot = fits(preferred, taken)
        if slot is None:
            break
        taken.add(slot)
        picks.append(_fallback_pick(service, slot))
        if category == "night_club":
            nightlife_done = True

    if not picks and catalog:
        service = _best(list(catalog), used, terms)
        if service is not None:
            picks.append(_fallback_pick(service, slots[0]))

    return DaySelection(
        selected_services=picks,
        day_theme=FALLBACK_THEME,
        logistics_notes=FALLBACK_NOTES,
    )


def _fallback_pick(service: ServiceRecord, slot: str) -> ServiceSelection:
    return ServiceSelection(
        service_id=service.id,
        service_name=service.display_name,
        time_slot=slot,
        reason=f"Popular {service.category_key.replace('_', ' ')} pick for groups",
        estimated_duration=f"{service.duration_hours:g} hours" if service.duration_hours else "2-3 hours",
        group_suitability="Works well for groups",
        category=service.category_key,
        price_cad=service.price_cad,
        price_usd=service.price_usd,
    )


# ---------------------------------------------------------------------------
# LLM selector
# ---------------------------------------------------------------------------


class LLMServiceSelector:
    """Chat-model backed ``ServiceSelector``."""

    def __init__(self, llm: BaseChatModel) -> None:
        self.llm = llm

    async def _invoke(self, prompt: str) -> Optional[DaySelection]:
        structured_llm = self.llm.with_structured_output(DaySelection)
        try:
            result = await structured_llm.ainvoke(prompt)
            if isinstance(result, dict):
                result = DaySelection.model_validate(result)
            if result is not None and result.selected_services:
                return result
            logger.info("Structured selection came back empty, retrying with raw output")
        except Exception as exc:
            logger.warning("Structured selection failed, retrying with raw output: %s", exc)

        try:
            raw = await self.llm.ainvoke(prompt)
        except Exception as exc:
            logger.error("Raw selection call failed: %s", exc, exc_info=True)
            return None
        return repair_day_selection(message_text(raw))

    async def select(
        self,
        catalog: Sequence[ServiceRecord],
        preferences: PlannerPreferences,
        day_info: DayInfo,
        used_services: Iterable[str],
        *,
        allow_repeats: bool = False,
        user_explicit_request: Optional[str] = None,
    ) -> DaySelection:
        used = set(used_services)
        if not catalog:
            logger.warning("No services available for day %s", day_info.day_number)
            return DaySelection(day_theme=FALLBACK_THEME, logistics_notes=FALLBACK_NOTES)

        prompt = build_selection_prompt(
            catalog,
            preferences,
            day_info,
            used,
            allow_repeats=allow_repeats,
            user_explicit_request=user_explicit_request,
        )
        selection = await self._invoke(prompt)
        if selection is not None:
            selection = validate_against_catalog(selection, catalog, day_info)
        if selection is None or not selection.selected_services:
            logger.info("Using fallback selection for day %s", day_info.day_number)
            return fallback_selection(
                catalog, preferences, day_info, used, user_explicit_request=user_explicit_request
            )
        logger.info(
            "Selected %s services for day %s", len(selection.selected_services), day_info.day_number
        )
        return selection

    async def rewrite_day_with_edits(
        self,
        catalog: Sequence[ServiceRecord],
        preferences: PlannerPreferences,
        day_info: DayInfo,
        current_plan: Union[DayPlan, DaySelection, None],
        directives: EditDirectives,
        used_services: Iterable[str],
        *,
        user_explicit_request: Optional[str] = None,
    ) -> DaySelection:
        """Re-plan one day from edit directives; repeats are allowed."""

        prompt = rewrite_day_prompt.format(
            day_number=day_info.day_number,
            current_plan=plan_summary(current_plan.selected_services if current_plan else []),
            destination=preferences.destination or "Unknown",
            group_size=preferences.group_size or "?",
            wildness_level=preferences.wildness_level,
            special_requests=preferences.special_requests or "None",
            directives=directives.model_dump_json(exclude_none=True),
            user_request=user_explicit_request or "",
            dedup_section=build_dedup_section(
                used_services, catalog, allow_repeats=True, user_request=user_explicit_request
            ),
            services=format_rewrite_services(catalog),
            time_slots=", ".join(day_info.time_slots),
        )
        selection = await self._invoke(prompt)
        if selection is not None:
            selection = validate_against_catalog(selection, catalog, day_info)
        if selection is None or not selection.selected_services:
            logger.info("Rewrite failed for day %s, applying edits locally", day_info.day_number)
            return apply_edit_directives(current_plan, directives, catalog, day_info)
        return selection
