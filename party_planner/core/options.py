"""Answers to "what are my options" questions, scoped to one service category."""
from __future__ import annotations

import json
import logging
import re
from typing import List, Optional, Sequence

from langchain_core.language_models.chat_models import BaseChatModel

from party_planner.core.narration import generate_text
from party_planner.core.prompts import option_intent_prompt, present_options_prompt
from party_planner.core.schemas import Conversation, OptionIntent, ServiceRecord

logger = logging.getLogger(__name__)

TOP_OPTIONS = 5
NO_MATCHES = "I didn't find great matches for that yet. Want me to cast a wider net or try a different vibe?"

_OPTIONS_PATTERNS = (
    re.compile(r"\b(options?|choices?|lineup|catalog|list)\b"),
    re.compile(r"^(what|which)\b.*\b(options?|choices?)\b"),
    re.compile(r"\bshow (me|us)\b.*\b(options?|spots?|places?)\b"),
)

# category -> words that hint at it, checked in order
OPTION_HINTS = {
    "strip_club": ("strip", "gentlemen"),
    "night_club": ("nightclub", "club"),
    "restaurant": ("restaurant", "steak", "steakhouse", "dinner"),
    "bar": ("bar", "pub"),
    "daytime": ("daytime", "golf", "boat", "activity"),
    "transportation": ("sprinter", "van", "bus", "transport"),
}


def is_options_question(message: str) -> bool:
    text = (message or "").strip().lower()
    return any(pattern.search(text) for pattern in _OPTIONS_PATTERNS)


def heuristic_option_intent(message: str) -> Optional[OptionIntent]:
    text = (message or "").lower()
    for category, hints in OPTION_HINTS.items():
        found = [hint for hint in hints if hint in text]
        if found:
            return OptionIntent(category=category, keywords=found)
    return None


async def infer_option_intent(llm: BaseChatModel, message: str) -> Optional[OptionIntent]:
    structured_llm = llm.with_structured_output(OptionIntent)
    try:
        intent = await structured_llm.ainvoke(option_intent_prompt.format(message=message))
        if isinstance(intent, dict):
            intent = OptionIntent.model_validate(intent)
        if intent is not None:
            return intent
    except Exception as exc:
        logger.warning("Option intent call failed, using hint map: %s", exc)
    return heuristic_option_intent(message)


def select_top_services_by_intent(
    services: Sequence[ServiceRecord], intent: OptionIntent, limit: int = TOP_OPTIONS
) -> List[ServiceRecord]:
    """Score services against the intent and keep the best ``limit``."""

    keywords = [k.lower() for k in intent.keywords if k]
    scored = []
    for service in services:
        category = service.category_key.lower()
        haystack = " ".join(
            filter(None, [service.name, service.description, service.itinerary_description])
        ).lower()
        score = 0.0
        if intent.category in category:
            score += 3
        if intent.category == "night_club" and "night" in category and "club" in category:
            score += 2
        score += sum(1 for k in keywords if k in haystack)
        if service.price:
            score += 0.5
        if service.duration_hours:
            score += 0.25
        if score >= 1:
            scored.append((score, service))
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [service for _, service in scored[:limit]]


def fallback_options_list(services: Sequence[ServiceRecord]) -> str:
    lines = ["Here are a few solid options:"]
    for position, service in enumerate(services, start=1):
        price = f" - ~${service.price:g} CAD" if service.price else ""
        lines.append(f"{position}) {service.display_name}{price}")
    lines.append("")
    lines.append("Want me to slot one in for late night on Day 1, or do you want a different vibe?")
    return "\n".join(lines)


async def present_options(llm: BaseChatModel, conversation: Conversation, message: str) -> str:
    intent = await infer_option_intent(llm, message)
    if intent is None:
        return NO_MATCHES
    top = select_top_services_by_intent(conversation.available_services, intent)
    if not top:
        return NO_MATCHES

    facts = conversation.facts
    options = json.dumps(
        [
            {
                "name": s.display_name,
                "description": (s.description or "")[:160],
                "priceCad": s.price_cad,
                "durationHours": s.duration_hours,
            }
            for s in top
        ]
    )
    prompt = present_options_prompt.format(
        category=intent.category.replace("_", " "),
        destination=facts.destination.value or "town",
        group_size=facts.group_size.value or "the group",
        wildness_level=facts.wildness_level.value or 3,
        options=options,
    )
    return await generate_text(llm, prompt, "options answer") or fallback_options_list(top)
