"""Edit directives for an already planned day and their local application."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from langchain_core.language_models.chat_models import BaseChatModel

from party_planner.core.prompts import edit_directives_prompt
from party_planner.core.schemas import (
    DayInfo,
    DayPlan,
    DaySelection,
    EditDirectives,
    EditOp,
    ServiceRecord,
    ServiceSelection,
)

logger = logging.getLogger(__name__)

DEFAULT_SLOTS = ["morning", "afternoon", "evening", "night"]
NIGHTLIFE_HINTS = ("club", "bar", "strip")
_NIGHTLIFE_RE = re.compile(r"club|bar|strip|gentlemen")
_NIGHTLIFE_NAME_RE = re.compile(r"club|bar|night", re.IGNORECASE)


def norm(value: Optional[str]) -> str:
    """Lowercase, unify quotes and collapse punctuation into single spaces."""

    text = str(value or "").lower().replace("`", "'").replace("&amp;", "&")
    return re.sub(r"[^a-z0-9]+", " ", text).strip()


def plan_summary(selections: Sequence[ServiceSelection]) -> str:
    return "\n".join(f"- {s.service_name} ({s.time_slot})" for s in selections) or "(none yet)"


def _slots(day_info: Optional[DayInfo]) -> List[str]:
    if day_info and day_info.time_slots:
        return list(day_info.time_slots)
    return list(DEFAULT_SLOTS)


def pick_time_slot(service: Optional[ServiceRecord], slots: Sequence[str], forced: Optional[str] = None) -> str:
    """Forced slot if valid, then night for nightlife, then the last slot of the day."""

    if forced and forced in slots:
        return forced
    if service is not None:
        haystack = norm(f"{service.itinerary_name or ''} {service.name} {service.category or ''} {service.type or ''}")
        if "night" in slots and _NIGHTLIFE_RE.search(haystack):
            return "night"
    return slots[-1]


def find_service_by_name(name: Optional[str], catalog: Iterable[ServiceRecord]) -> Optional[ServiceRecord]:
    """Exact normalised match on ``itinerary_name`` or ``name``."""

    if not name:
        return None
    target = norm(name)
    for service in catalog:
        if norm(service.itinerary_name) == target or norm(service.name) == target:
            return service
    return None


def pick_service_smart(
    keywords: Optional[Sequence[str]],
    category_hint: Optional[str],
    catalog: Sequence[ServiceRecord],
) -> Optional[ServiceRecord]:
    """Best keyword match, optionally restricted to a category."""

    terms = [norm(k) for k in keywords or [] if k]
    pool = list(catalog)
    if category_hint:
        hint = norm(category_hint).replace(" ", "_")
        pool = [s for s in pool if hint in norm(s.category or s.type).replace(" ", "_")]
    if not pool:
        return None

    def score(service: ServiceRecord) -> float:
        haystack = norm(f"{service.display_name} {service.description or ''} {service.category or ''} {service.type or ''}")
        hits = sum(1 for term in terms if term and term in haystack)
        return hits + (0.25 if category_hint else 0)

    best = max(pool, key=score)
    if terms and score(best) - (0.25 if category_hint else 0) <= 0 and not category_hint:
        return None
    return best


def _name_matches(target_name: str, item: ServiceSelection, by_id: Dict[str, ServiceRecord]) -> bool:
    """Match against the shown name and the catalog record's ``name`` and ``itinerary_name``."""

    target = norm(target_name)
    names = [item.service_name]
    record = by_id.get(item.service_id)
    if record is not None:
        names.extend([record.name, record.itinerary_name])
    return any(target in norm(name) for name in names if name)


def _target_index(selections: List[ServiceSelection], op: EditOp, by_id: Dict[str, ServiceRecord]) -> int:
    """id, then name, then category, then time, then the last nightlife item."""

    if op.target_service_id is not None:
        for i, item in enumerate(selections):
            if item.service_id == op.target_service_id:
                return i
    if op.target_name:
        for i, item in enumerate(selections):
            if _name_matches(op.target_name, item, by_id):
                return i
    if op.target_category:
        category = norm(op.target_category)
        for i, item in enumerate(selections):
            if category in norm(item.category):
                return i
    if op.target_time:
        for i, item in enumerate(selections):
            if item.time_slot == op.target_time:
                return i
    for i in range(len(selections) - 1, -1, -1):
        if _NIGHTLIFE_NAME_RE.search(selections[i].service_name):
            return i
    return len(selections) - 1 if selections else -1


def _selection_for(service: ServiceRecord, slot: str, reason: Optional[str], previous: Optional[ServiceSelection] = None) -> ServiceSelection:
    duration = f"{service.duration_hours:g} hours" if service.duration_hours else (
        previous.estimated_duration if previous and previous.estimated_duration else "2-3 hours"
    )
    return ServiceSelection(
        service_id=service.id,
        service_name=service.display_name,
        time_slot=slot,
        reason=reason or "Updated per user feedback",
        estimated_duration=duration,
        group_suitability=(previous.group_suitability if previous else None) or "Works well for groups",
        category=service.category_key,
        price_cad=service.price_cad,
        price_usd=service.price_usd,
    )


def _push(selections: List[ServiceSelection], service: ServiceRecord, slot: str, reason: Optional[str]) -> None:
    if any(item.service_id == service.id and item.time_slot == slot for item in selections):
        return
    selections.append(_selection_for(service, slot, reason))


def _resolve_new_service(op: EditOp, catalog: Sequence[ServiceRecord], by_id: Dict[str, ServiceRecord]) -> Optional[ServiceRecord]:
    service = by_id.get(op.new_service_id) if op.new_service_id else None
    if service is None and op.new_service_name:
        service = find_service_by_name(op.new_service_name, catalog)
    return service


def apply_edit_directives(
    plan: Union[DayPlan, DaySelection, None],
    directives: EditDirectives,
    catalog: Sequence[ServiceRecord],
    day_info: Optional[DayInfo],
) -> DaySelection:
    """Apply edit ops to a copy of ``plan`` without calling the model."""

    slots = _slots(day_info)
    by_id = {s.id: s for s in catalog}
    selections = [item.model_copy() for item in (plan.selected_services if plan else [])]

    for op in directives.ops:
        if op.op == "remove_activity":
            provided = [bool(op.target_name), bool(op.target_category), bool(op.target_time)]
            if not any(provided):
                continue
            kept = []
            for item in selections:
                matched = [
                    bool(op.target_name) and _name_matches(op.target_name, item, by_id),
                    bool(op.target_category) and norm(op.target_category) in norm(item.category),
                    bool(op.target_time) and item.time_slot == op.target_time,
                ]
                if sum(matched) != sum(provided):
                    kept.append(item)
            selections = kept

        elif op.op == "substitute_service":
            if not selections:
                continue
            idx = _target_index(selections, op, by_id)
            if idx < 0:
                continue
            replacement = _resolve_new_service(op, catalog, by_id)
            if replacement is None:
                keywords = op.keywords or (op.new_service_name.split() if op.new_service_name else [])
                replacement = pick_service_smart(keywords, op.category_hint, catalog)
            if replacement is None:
                continue
            previous = selections[idx]
            slot = pick_time_slot(replacement, slots, op.target_time or previous.time_slot)
            selections[idx] = _selection_for(
                replacement, slot, op.notes or f"Swapped to {replacement.display_name}", previous
            )

        elif op.op in ("add_activity", "replace_activity"):
            service = _resolve_new_service(op, catalog, by_id) or pick_service_smart(op.keywords, op.category_hint, catalog)
            if service is None:
                continue
            if op.op == "replace_activity":
                idx = _target_index(selections, op, by_id)
                if idx >= 0:
                    selections.pop(idx)
                elif op.target_time:
                    selections = [item for item in selections if item.time_slot != op.target_time]
            _push(selections, service, pick_time_slot(service, slots, op.target_time or op.new_time), op.notes)

        elif op.op == "adjust_time":
            to = op.new_time or op.target_time
            if not to or to not in slots:
                continue
            for item in selections:
                if (op.target_service_id and item.service_id == op.target_service_id) or (
                    op.target_name and _name_matches(op.target_name, item, by_id)
                ):
                    item.time_slot = to
                    break

        elif op.op == "reorder":
            if not op.sequence:
                continue
            order = {slot: i for i, slot in enumerate(op.sequence)}
            selections.sort(key=lambda item: order.get(item.time_slot, 999))

        # set_constraint carries no plan change

    return DaySelection(
        selected_services=selections,
        alternative_options=list(plan.alternative_options) if plan else [],
        day_theme=(plan.day_theme if plan else "") or "",
        logistics_notes=(plan.logistics_notes if plan else "") or "",
    )


def heuristic_edit_directives(
    message: str, catalog: Sequence[ServiceRecord], day_info: Optional[DayInfo]
) -> Optional[EditDirectives]:
    """Catalog names or categories mentioned in the message become an ``add_activity``."""

    lowered = (message or "").lower()
    vocabulary: List[str] = []
    for service in catalog:
        for term in (service.name, service.category, service.type):
            if term and term.lower() not in vocabulary:
                vocabulary.append(term.lower())
    found = [term for term in vocabulary if len(term) >= 4 and term in lowered]
    if not found:
        return None

    slots = _slots(day_info)
    if any(hint in lowered for hint in NIGHTLIFE_HINTS):
        target = "night" if "night" in slots else ("late_night" if "late_night" in slots else slots[-1])
    else:
        target = slots[-1]
    return EditDirectives(
        ops=[EditOp(op="add_activity", keywords=found[:3], target_time=target, notes="heuristic add")],
        confidence=0.55,
    )


async def infer_edit_directives(
    llm: BaseChatModel,
    message: str,
    plan: Union[DayPlan, DaySelection, None],
    preferences: Dict[str, Any],
    day_info: DayInfo,
) -> Optional[EditDirectives]:
    """Ask the model (``propose_plan_edits``) to turn feedback into edit ops."""

    prompt = edit_directives_prompt.format(
        day_number=day_info.day_number,
        message=message,
        current_plan=plan_summary(plan.selected_services if plan else []),
        destination=preferences.get("destination") or "Unknown",
        group_size=preferences.get("group_size") or "?",
        wildness_level=preferences.get("wildness_level") or 3,
        special_requests=preferences.get("special_requests") or "None",
        time_slots=", ".join(day_info.time_slots),
    )
    structured_llm = llm.with_structured_output(EditDirectives)
    try:
        directives = await structured_llm.ainvoke(prompt)
    except Exception as exc:
        logger.warning("propose_plan_edits failed, using heuristics: %s", exc, exc_info=True)
        return None
    if directives is None or not directives.ops:
        return None
    logger.debug("Edit directives: %s", json.dumps(directives.model_dump(exclude_none=True)))
    return directives
