from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import httpx

from party_planner.core.reducer import dedupe, reducer
from party_planner.core.schemas import ServiceRecord, TripFacts
from party_planner.services.catalog.schemas import ServiceCatalog

logger = logging.getLogger(__name__)

SERVICE_TYPES = (
    "Restaurant",
    "Bar",
    "Night Club",
    "Daytime",
    "Transportation",
    "Strip Club",
    "Package",
    "Catering",
    "Accommodation",
)
DEFAULT_GROUP_SIZE = 8

# keyword searched -> phrases that trigger it
KEYWORD_TRIGGERS = {
    "strip club": ("strip club", "gentlemen"),
    "golf": ("golf",),
    "boat": ("boat",),
    "steakhouse": ("steakhouse", "steak"),
    "hibachi": ("hibachi",),
    "hunting": ("hunting",),
}


def category_for_type(service_type: Optional[str]) -> Optional[str]:
    """"Night Club" -> "night_club"."""

    if not service_type:
        return None
    return "_".join(service_type.lower().split())


def extract_keywords(texts: Iterable[str]) -> List[str]:
    haystack = " ".join(t for t in texts if t).lower()
    return [keyword for keyword, triggers in KEYWORD_TRIGGERS.items() if any(t in haystack for t in triggers)]


def _with_category(services: Iterable[ServiceRecord]) -> List[ServiceRecord]:
    tagged = []
    for service in services:
        if not service.category:
            service = service.model_copy(update={"category": category_for_type(service.type)})
        tagged.append(service)
    return tagged


async def gather_catalog(
    catalog: ServiceCatalog,
    facts: TripFacts,
    *,
    extra_texts: Iterable[str] = (),
    max_results: int = 10,
) -> List[ServiceRecord]:
    """Load the catalog snapshot for one conversation.

    Searches every service type in the destination, then merges in keyword
    matches from the group's interests. Catalog failures are logged and yield
    an empty list.
    """

    destination = facts.destination.value
    if not destination:
        logger.warning("No destination available for service search")
        return []
    group_size = facts.group_size.value or DEFAULT_GROUP_SIZE

    services: List[ServiceRecord] = []
    try:
        for service_type in SERVICE_TYPES:
            found = await catalog.search_services(destination, service_type, group_size, max_results)
            services.extend(
                s.model_copy(update={"category": category_for_type(service_type)}) for s in found
            )

        keywords = extract_keywords([*facts.activities, facts.relationship.value or "", *extra_texts])
        for keyword in keywords:
            matches = await catalog.search_by_keyword(keyword, destination)
            services = reducer(services, _with_category(matches))
    except (httpx.HTTPError, KeyError, ValueError) as exc:
        logger.error("Error searching services for %s: %s", destination, exc, exc_info=True)
        return []

    logger.info("Found %s total services for %s", len(services), destination)
    return dedupe(services)
