"""Fact extraction from user turns and the merge policy that applies it.

Proposals come from three sources: the ``reduce_state`` LLM call, the
deterministic parsers in this module and structured selector input sent by
the client. Every proposal goes through :func:`merge_updates`, which decides
whether it may overwrite the stored fact.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from langchain_core.language_models.chat_models import BaseChatModel
from pydantic import BaseModel, ValidationError

from party_planner.core.dates import WORD_NUMBERS, parse_date_range, parse_user_date
from party_planner.core.prompts import (
    planning_context_section,
    planning_intent_section,
    reduce_state_prompt,
)
from party_planner.core.schemas import (
    Conversation,
    FactStatus,
    GatheringStep,
    Phase,
    Reduction,
    TripFacts,
)
from party_planner.core.types import Confidence

logger = logging.getLogger(__name__)

DEFAULT_WILDNESS = 3
SELECTOR_PROVENANCE = "selector"

_OVERWRITABLE = frozenset({FactStatus.UNKNOWN, FactStatus.SUGGESTED, FactStatus.ASSUMED})
_STATUS_RANK = {
    FactStatus.UNKNOWN: 0,
    FactStatus.SUGGESTED: 1,
    FactStatus.ASSUMED: 2,
    FactStatus.SET: 3,
    FactStatus.CORRECTED: 3,
}
# Once the itinerary exists these only change through an explicit correction.
_PLAN_SHAPING = frozenset({"start_date", "end_date", "group_size"})

_NUMBER = r"(\d{1,3}|" + "|".join(sorted(WORD_NUMBERS, key=len, reverse=True)) + r")"
_GROUP_PATTERNS = [
    re.compile(rf"\bparty of {_NUMBER}\b"),
    re.compile(rf"\bgroup of {_NUMBER}\b"),
    re.compile(rf"\b(?:we're|we are|there are|there will be)\s+(?:about\s+|around\s+)?{_NUMBER}\b(?!\s*(?:/|out of|k\b|%))"),
    re.compile(rf"\b{_NUMBER}\s+(?:of us|guys|people|dudes|friends|men|bros|groomsmen|ppl|pax)\b"),
]
_MONEY_RE = re.compile(r"\$\s*(\d[\d,]*(?:\.\d+)?)\s*(k)?\b|\b(\d[\d,]*(?:\.\d+)?)\s*(k|grand|dollars|bucks|usd|cad)\b")
_PER_PERSON_RE = re.compile(r"\b(per person|per head|a head|each|pp|a person|per guy|/person)\b")
_TOTAL_RE = re.compile(r"\b(total|in total|overall|for everyone|for the group|all in)\b")
_FLEXIBLE_RE = re.compile(
    r"\b(flexible|no budget|not sure|don't know|dont know|haven't decided|havent decided|no idea|tbd|to be determined|whatever it takes)\b"
)
_WILDNESS_NUMERIC = [
    re.compile(r"\b([1-5])\s*(?:out of|/)\s*5\b"),
    re.compile(r"\blevel\s+([1-5])\b"),
    re.compile(r"^\s*([1-5])\s*[.!]?\s*$"),
]
_WILDNESS_WORDS: List[Tuple[int, re.Pattern[str]]] = [
    (5, re.compile(r"\b(debaucherous|absolutely wild|insane|full send|no limits|go crazy|off the rails|max)\b")),
    (4, re.compile(r"\b(wild|crazy|rowdy|rager|party hard)\b")),
    (1, re.compile(r"\b(classy|tame|low[- ]key|super chill)\b")),
    (2, re.compile(r"\b(chill|relaxed|laid[- ]back|mellow)\b")),
    (3, re.compile(r"\b(moderate|middle|medium|balanced|somewhere in between)\b")),
]
_WILDNESS_HINT_RE = re.compile(r"\b(wild|wildness|crazy|debaucherous|classy|scale)\b")
_SINGLE_EVENT_RE = re.compile(
    r"\b(single event|one event|just (?:a|one) (?:dinner|event|party|night out)|one-off|just the one evening)\b"
)
_CORRECTION_RE = re.compile(
    r"\b(actually|correction|change (?:it|that)|make it|instead|scratch that|update|i meant|not \w+ but)\b"
)
_READINESS_RE = re.compile(
    r"\b(ready to plan|just plan it|let'?s plan|start planning|plan it out|what do you suggest|that's why i'm here|just want to party)\b"
)


class FactUpdate(BaseModel):
    """Proposed change to a single fact."""

    name: str
    value: Any = None
    status: FactStatus = FactStatus.SET
    confidence: Confidence = 1.0
    provenance: Optional[str] = None


@dataclass
class AppliedUpdate:
    name: str
    previous: Any
    value: Any
    status: FactStatus


@dataclass
class MergeOutcome:
    """Result of merging proposals into the fact record."""

    applied: List[AppliedUpdate] = field(default_factory=list)
    ambiguous: List[FactUpdate] = field(default_factory=list)
    clarify: List[str] = field(default_factory=list)

    def extend(self, other: "MergeOutcome") -> None:
        self.applied.extend(other.applied)
        self.ambiguous.extend(other.ambiguous)
        self.clarify.extend(name for name in other.clarify if name not in self.clarify)

    def changed(self, name: str) -> Optional[AppliedUpdate]:
        for update in reversed(self.applied):
            if update.name == name:
                return update
        return None


# ---------------------------------------------------------------------------
# Merge policy
# ---------------------------------------------------------------------------


def _raises(status: FactStatus, confidence: float, update: FactUpdate) -> bool:
    return _STATUS_RANK[update.status] > _STATUS_RANK[status] or update.confidence > confidence


def merge_updates(facts: TripFacts, updates: Iterable[FactUpdate], *, correction: bool = False) -> MergeOutcome:
    """Apply proposals to ``facts`` in place.

    A proposal overwrites the stored fact when the fact is not yet confirmed,
    when its confidence is at least the stored confidence, or when it is part
    of an explicit correction. Lower-confidence guesses against confirmed
    facts come back as ambiguous; null or invalid values are never applied.
    """

    outcome = MergeOutcome()
    for update in updates:
        name = TripFacts.resolve_name(update.name)
        if name is None:
            logger.debug("Ignoring proposal for unknown fact %r", update.name)
            continue
        if update.value is None or update.status is FactStatus.UNKNOWN:
            continue

        current = facts.get(name)
        if (
            current.is_known
            and current.value == update.value
            and update.status is not FactStatus.CORRECTED
            and not _raises(current.status, current.confidence, update)
        ):
            continue
        is_correction = correction or update.status is FactStatus.CORRECTED
        if current.is_confirmed and update.confidence < current.confidence and not is_correction:
            logger.info("Ambiguous proposal for %s (%.2f < %.2f), not applied", name, update.confidence, current.confidence)
            outcome.ambiguous.append(update)
            continue
        if not (current.status in _OVERWRITABLE or update.confidence >= current.confidence or is_correction):
            outcome.ambiguous.append(update)
            continue

        status = update.status
        if current.is_known and current.value != update.value and (is_correction or current.is_confirmed):
            status = FactStatus.CORRECTED
        elif status is FactStatus.CORRECTED and not current.is_known:
            status = FactStatus.SET

        fact_cls = TripFacts.fact_type(name)
        try:
            new_fact = fact_cls.model_validate(
                {
                    "value": update.value,
                    "status": status,
                    "confidence": update.confidence,
                    "provenance": update.provenance,
                    "priority": current.priority,
                }
            )
        except ValidationError as exc:
            logger.warning("Rejected %s=%r: %s", name, update.value, exc.errors()[0].get("msg"))
            if name not in outcome.clarify:
                outcome.clarify.append(name)
            continue

        if (
            current.is_known
            and current.value == new_fact.value
            and current.status == new_fact.status
            and current.confidence >= new_fact.confidence
        ):
            continue
        setattr(facts, name, new_fact)
        outcome.applied.append(AppliedUpdate(name=name, previous=current.value, value=new_fact.value, status=new_fact.status))
    return outcome


# ---------------------------------------------------------------------------
# Deterministic parsers
# ---------------------------------------------------------------------------


def _to_int(token: str) -> Optional[int]:
    if token.isdigit():
        return int(token)
    return WORD_NUMBERS.get(token)


def parse_group_size(text: str) -> Optional[int]:
    """"8 guys", "party of 12", "we're 10" -> int."""

    lowered = (text or "").lower()
    for pattern in _GROUP_PATTERNS:
        match = pattern.search(lowered)
        if match:
            value = _to_int(match.group(1))
            if value:
                return value
    return None


def parse_budget(text: str) -> Optional[Tuple[Union[int, float, str], Optional[str]]]:
    """Return ``(amount, budget_type)`` for "$3,000 total" or "3k per person".

    "flexible" style answers return ``("flexible", None)`` when the message is
    about the budget.
    """

    lowered = (text or "").lower()
    match = _MONEY_RE.search(lowered)
    budget_type: Optional[str] = None
    if _PER_PERSON_RE.search(lowered):
        budget_type = "per_person"
    elif _TOTAL_RE.search(lowered):
        budget_type = "total"

    if match:
        raw = (match.group(1) or match.group(3) or "").replace(",", "")
        suffix = match.group(2) or (match.group(4) if match.group(4) in ("k", "grand") else None)
        try:
            amount: Union[int, float] = float(raw)
        except ValueError:
            return None
        if suffix:
            amount *= 1000
        if float(amount).is_integer():
            amount = int(amount)
        return amount, budget_type

    if "budget" in lowered and _FLEXIBLE_RE.search(lowered):
        return "flexible", budget_type
    return None


def parse_wildness(text: str) -> Optional[int]:
    """"4 out of 5", "4/5", a bare digit or scale words -> 1..5."""

    lowered = (text or "").lower()
    for pattern in _WILDNESS_NUMERIC:
        match = pattern.search(lowered)
        if match:
            return int(match.group(1))
    for level, pattern in _WILDNESS_WORDS:
        if pattern.search(lowered):
            return level
    return None


def is_single_event(text: str) -> bool:
    return bool(_SINGLE_EVENT_RE.search((text or "").lower()))


def is_correction(text: str) -> bool:
    return bool(_CORRECTION_RE.search((text or "").lower()))


def signals_readiness(text: str) -> bool:
    return bool(_READINESS_RE.search((text or "").lower()))


def extract_deterministic(message: str, today: Optional[date] = None) -> List[FactUpdate]:
    """Parse the explicit numbers and dates out of one utterance."""

    today = today or date.today()
    updates: List[FactUpdate] = []
    provenance = "parser"

    group_size = parse_group_size(message)
    if group_size is not None:
        updates.append(FactUpdate(name="group_size", value=group_size, provenance=provenance))

    budget = parse_budget(message)
    if budget is not None:
        amount, budget_type = budget
        updates.append(FactUpdate(name="budget", value=amount, provenance=provenance))
        if budget_type:
            updates.append(FactUpdate(name="budget_type", value=budget_type, provenance=provenance))

    lowered = (message or "").lower()
    if _WILDNESS_NUMERIC[0].search(lowered) or _WILDNESS_HINT_RE.search(lowered):
        wildness = parse_wildness(message)
        if wildness is not None:
            updates.append(FactUpdate(name="wildness_level", value=wildness, provenance=provenance))

    dates = parse_date_range(_WILDNESS_NUMERIC[0].sub(" ", lowered), today)
    if dates:
        start, end = dates
        updates.append(FactUpdate(name="start_date", value=start, provenance=provenance))
        if end is not None:
            updates.append(FactUpdate(name="end_date", value=end, provenance=provenance))

    if is_single_event(message):
        updates.append(FactUpdate(name="single_event", value=True, provenance=provenance))

    return updates


def structured_updates(payload: Mapping[str, Any], today: Optional[date] = None) -> Tuple[List[FactUpdate], List[str]]:
    """Convert selector input (``{"wildnessLevel": 4}``) into proposals.

    Returns the proposals plus the names of fields that could not be parsed.
    """

    updates: List[FactUpdate] = []
    unparsed: List[str] = []
    for key, value in (payload or {}).items():
        name = TripFacts.resolve_name(key)
        if name is None:
            logger.debug("Ignoring structured input for unknown fact %r", key)
            continue
        if name in ("start_date", "end_date"):
            parsed = parse_user_date(value, today)
            if parsed is None:
                unparsed.append(name)
                continue
            value = parsed
        updates.append(FactUpdate(name=name, value=value, provenance=SELECTOR_PROVENANCE))
    return updates, unparsed


# ---------------------------------------------------------------------------
# LLM reducer
# ---------------------------------------------------------------------------


def serialize_facts(facts: TripFacts) -> str:
    payload = {
        TripFacts.model_fields[name].alias or name: {"value": fact.value, "status": fact.status.value}
        for name, fact in facts.items()
    }
    return json.dumps(payload, default=str)


def _planning_sections(conversation: Conversation) -> Tuple[str, str]:
    if conversation.phase is not Phase.PLANNING:
        return "", ""
    planning = conversation.day_by_day_planning
    current_day = planning.current_day + 1
    intent = planning_intent_section.format(current_day=current_day)
    plan = planning.current_day_plan
    if plan is None or not plan.selected_services:
        return "", intent
    services = "\n".join(f"  * {s.service_name} ({s.time_slot})" for s in plan.selected_services)
    context = planning_context_section.format(
        current_day=current_day, count=len(plan.selected_services), services=services
    )
    return context, intent


def reduction_updates(reduction: Reduction, today: Optional[date] = None) -> List[FactUpdate]:
    """Flatten the reducer's per-fact proposals; dates pass through ``parse_user_date``."""

    updates: List[FactUpdate] = []
    for name in TripFacts.model_fields:
        proposal = getattr(reduction.facts, name, None)
        if proposal is None or proposal.value is None:
            continue
        value = proposal.value
        if name in ("start_date", "end_date"):
            value = parse_user_date(value, today)
            if value is None:
                continue
        updates.append(
            FactUpdate(
                name=name,
                value=value,
                status=proposal.status,
                confidence=proposal.confidence,
                provenance=proposal.provenance or "llm",
            )
        )
    return updates


async def reduce_state(
    llm: BaseChatModel,
    conversation: Conversation,
    message: str,
    today: Optional[date] = None,
) -> Reduction:
    """Single LLM call that proposes fact updates, classifies intent and drafts a reply."""

    today = today or date.today()
    planning_context, intent_section = _planning_sections(conversation)
    prompt = reduce_state_prompt.format(
        today=today.isoformat(),
        phase=conversation.phase.value,
        facts=serialize_facts(conversation.facts),
        recent_messages=conversation.recent_messages(6),
        planning_context=planning_context,
        message=message,
        intent_section=intent_section,
    )
    structured_llm = llm.with_structured_output(Reduction)
    try:
        reduction = await structured_llm.ainvoke(prompt)
    except Exception as exc:
        logger.error("Error in reduce_state call: %s", exc, exc_info=True)
        return Reduction.fallback()
    if reduction is None:
        logger.warning("reduce_state returned no structured output, using fallback")
        return Reduction.fallback()
    if isinstance(reduction, dict):
        try:
            reduction = Reduction.model_validate(reduction)
        except ValidationError as exc:
            logger.warning("reduce_state returned an invalid payload: %s", exc)
            return Reduction.fallback()
    return reduction


# ---------------------------------------------------------------------------
# Turn-level orchestration
# ---------------------------------------------------------------------------


def _without_wildness(updates: Iterable[FactUpdate]) -> List[FactUpdate]:
    return [update for update in updates if update.name != "wildness_level"]


def absorb_opening_message(conversation: Conversation, message: str, today: Optional[date] = None) -> MergeOutcome:
    """Merge parser facts from a first message sent before the wildness question was shown.

    The wildness level stays open for the answer to the question.
    """

    outcome = merge_updates(conversation.facts, _without_wildness(extract_deterministic(message, today)))
    if outcome.applied:
        logger.info("Opening message carried: %s", ", ".join(u.name for u in outcome.applied))
    return outcome


def consume_wildness_answer(conversation: Conversation, message: str, today: Optional[date] = None) -> MergeOutcome:
    """Interpret the turn right after the wildness question as ``wildnessLevel``.

    The step is left for good afterwards. Without a recognisable signal the
    level is stored as Assumed 3. Parser facts in the same answer ("4/5,
    we're 8 guys") are merged as well.
    """

    conversation.gathering_step = GatheringStep.OPEN
    level = parse_wildness(message)
    if level is None:
        logger.info("No wildness signal in %r, assuming %s", message, DEFAULT_WILDNESS)
        update = FactUpdate(
            name="wildness_level",
            value=DEFAULT_WILDNESS,
            status=FactStatus.ASSUMED,
            confidence=0.5,
            provenance="wildness_default",
        )
    else:
        update = FactUpdate(name="wildness_level", value=level, provenance="wildness_question")
    return merge_updates(conversation.facts, [update, *_without_wildness(extract_deterministic(message, today))])


def record_asked_facts(conversation: Conversation, names: Iterable[str]) -> None:
    for raw in names:
        name = TripFacts.resolve_name(raw)
        if name is not None:
            conversation.asked_facts.add(name)


def hold_plan_shaping(
    conversation: Conversation,
    updates: Iterable[FactUpdate],
    outcome: MergeOutcome,
    *,
    correction: bool = False,
) -> List[FactUpdate]:
    """Keep dates and group size out of the merge once planning has started.

    During PLANNING and STANDBY a date or headcount usually points at a day
    or a table ("swap the club on September 6", "dinner for 4 people"). Such
    proposals only apply as part of a correction; otherwise they are reported
    as ambiguous on ``outcome`` and dropped from the returned list.
    """

    if correction or conversation.phase is Phase.GATHERING:
        return list(updates)
    kept: List[FactUpdate] = []
    for update in updates:
        name = TripFacts.resolve_name(update.name)
        if (
            name in _PLAN_SHAPING
            and update.status is not FactStatus.CORRECTED
            and conversation.facts.get(name).value != update.value
        ):
            logger.info("Holding %s=%r during %s, no correction signalled", name, update.value, conversation.phase.value)
            outcome.ambiguous.append(update)
            continue
        kept.append(update)
    return kept


def apply_turn_extraction(
    conversation: Conversation,
    message: str,
    *,
    reduction: Optional[Reduction] = None,
    structured_input: Optional[Dict[str, Any]] = None,
    today: Optional[date] = None,
) -> MergeOutcome:
    """Merge every proposal source for one user turn into the conversation facts.

    LLM proposals are merged first so that explicit parser and selector values
    (confidence 1.0) win over them.
    """

    today = today or date.today()
    outcome = MergeOutcome()
    correction = is_correction(message)

    if conversation.gathering_step is GatheringStep.AWAITING_WILDNESS:
        outcome.extend(consume_wildness_answer(conversation, message, today))
        return outcome

    if reduction is not None:
        updates = hold_plan_shaping(conversation, reduction_updates(reduction, today), outcome, correction=correction)
        outcome.extend(merge_updates(conversation.facts, updates))
        record_asked_facts(conversation, reduction.asked_about)

    updates = hold_plan_shaping(conversation, extract_deterministic(message, today), outcome, correction=correction)
    outcome.extend(merge_updates(conversation.facts, updates, correction=correction))

    if structured_input:
        updates, unparsed = structured_updates(structured_input, today)
        outcome.extend(merge_updates(conversation.facts, updates, correction=correction))
        outcome.clarify.extend(name for name in unparsed if name not in outcome.clarify)

    if outcome.applied:
        logger.info("Applied fact updates: %s", ", ".join(u.name for u in outcome.applied))
    return outcome
