from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from party_planner.core.schemas import ServiceRecord
from party_planner.services.catalog.schemas import CityRecord, ServiceDetails, SupabaseServiceRow

logger = logging.getLogger(__name__)


class InMemoryCatalog:
    """Catalog held in process memory, used for development and tests."""

    def __init__(self, services: Optional[Iterable[ServiceRecord]] = None, cities: Optional[Iterable[str]] = None) -> None:
        self._services: List[ServiceRecord] = list(services or [])
        names = set(cities or []) | {s.city for s in self._services if s.city}
        self._cities = [CityRecord(id=str(i), name=name) for i, name in enumerate(sorted(names), start=1)]

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "InMemoryCatalog":
        """Load ``{"cities": [...], "services": [...]}``; rows may use ``ser_*`` column names."""

        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        rows: List[Dict[str, Any]] = payload.get("services", []) if isinstance(payload, dict) else payload
        services = [
            SupabaseServiceRow.model_validate(row).to_record() if "ser_id" in row else ServiceRecord.model_validate(row)
            for row in rows
        ]
        cities = payload.get("cities", []) if isinstance(payload, dict) else []
        logger.info("Loaded %s catalog services from %s", len(services), path)
        return cls(services, cities=[c["name"] if isinstance(c, dict) else c for c in cities])

    async def aclose(self) -> None:
        return None

    @staticmethod
    def _same(a: Optional[str], b: Optional[str]) -> bool:
        return (a or "").strip().lower() == (b or "").strip().lower()

    async def list_cities(self) -> List[CityRecord]:
        return list(self._cities)

    async def search_services(
        self,
        city_name: str,
        service_type: Optional[str] = None,
        group_size: Optional[int] = None,
        max_results: int = 10,
    ) -> List[ServiceRecord]:
        matches = [
            s
            for s in self._services
            if self._same(s.city, city_name) and (not service_type or self._same(s.type, service_type))
        ]
        return [s.model_copy() for s in matches[:max_results]]

    async def get_service_details(self, service_id: str) -> Optional[ServiceDetails]:
        for service in self._services:
            if service.id == str(service_id):
                return ServiceDetails(
                    **service.model_dump(),
                    pricing={"default_cad": service.price_cad, "default_usd": service.price_usd},
                    timing={"duration_hours": service.duration_hours},
                )
        return None

    async def search_by_keyword(self, keyword: str, city_name: Optional[str] = None) -> List[ServiceRecord]:
        needle = keyword.lower()
        found = []
        for service in self._services:
            if city_name and not self._same(service.city, city_name):
                continue
            haystack = " ".join(filter(None, [service.name, service.description, service.itinerary_name])).lower()
            if needle in haystack:
                found.append(service.model_copy())
        return found[:10]
