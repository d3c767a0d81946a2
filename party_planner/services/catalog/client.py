from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from party_planner.core.config import ApiSettings
from party_planner.core.schemas import ServiceRecord
from party_planner.services.catalog.memory import InMemoryCatalog
from party_planner.services.catalog.schemas import (
    SERVICE_COLUMNS,
    CityRecord,
    ServiceCatalog,
    ServiceDetails,
    SupabaseServiceRow,
)

logger = logging.getLogger(__name__)


class SupabaseCatalog:
    """Thin async wrapper around the Supabase PostgREST ``services`` and ``cities`` tables."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout_s: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/rest/v1",
            headers={
                "accept": "application/json",
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
            },
            timeout=httpx.Timeout(timeout_s, connect=10.0),
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTPX client."""

        await self._client.aclose()

    async def __aenter__(self) -> "SupabaseCatalog":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self._client.aclose()

    async def _aget(self, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Execute a GET request against PostgREST and return the parsed rows."""

        response = await self._client.get(path, params=params)
        response.raise_for_status()
        data = response.json()
        return data if isinstance(data, list) else [data]

    async def _city_id(self, city_name: str) -> Optional[str]:
        rows = await self._aget(
            "/cities",
            {"select": "cit_id,cit_name", "cit_name": f"ilike.{city_name}", "limit": 1},
        )
        if not rows:
            logger.warning("City %r not found in catalog", city_name)
            return None
        return str(rows[0]["cit_id"])

    async def list_cities(self) -> List[CityRecord]:
        rows = await self._aget("/cities", {"select": "cit_id,cit_name", "order": "cit_name"})
        return [CityRecord(id=str(row["cit_id"]), name=row["cit_name"]) for row in rows]

    async def search_services(
        self,
        city_name: str,
        service_type: Optional[str] = None,
        group_size: Optional[int] = None,
        max_results: int = 10,
    ) -> List[ServiceRecord]:
        """Visible services in ``city_name``, optionally narrowed to one ``ser_type``."""

        city_id = await self._city_id(city_name)
        if city_id is None:
            return []
        params: Dict[str, Any] = {
            "select": SERVICE_COLUMNS,
            "ser_city_id": f"eq.{city_id}",
            "ser_show_in_app": "eq.true",
            "limit": max_results,
        }
        if service_type:
            params["ser_type"] = f"eq.{service_type}"
        rows = await self._aget("/services", params)
        logger.debug("Catalog returned %s %s service(s) for %s", len(rows), service_type or "any", city_name)
        return [SupabaseServiceRow.model_validate(row).to_record() for row in rows]

    async def get_service_details(self, service_id: str) -> Optional[ServiceDetails]:
        rows = await self._aget("/services", {"select": "*,cities(cit_name)", "ser_id": f"eq.{service_id}", "limit": 1})
        if not rows:
            return None
        row = rows[0]
        base = SupabaseServiceRow.model_validate(row).to_record()
        return ServiceDetails(
            **base.model_dump(),
            in_app_description=row.get("ser_in_app_description"),
            pricing={
                "default_cad": row.get("ser_default_price_cad"),
                "minimum_cad": row.get("ser_minimum_price_cad"),
                "default_usd": row.get("ser_default_price_usd"),
                "minimum_usd": row.get("ser_minimum_price_usd"),
                "base_cad": row.get("ser_base_price_cad"),
                "additional_person_price": row.get("ser_additional_person_price"),
            },
            timing={
                "duration_hours": row.get("ser_duration_hrs"),
                "default_start_time": row.get("ser_default_start_time"),
                "earliest_start_time": row.get("ser_earliest_start_time"),
                "latest_start_time": row.get("ser_latest_start_time"),
            },
            logistics={
                "venue_booking_required": row.get("ser_venue_booking_required"),
                "contractor_booking_required": row.get("ser_contractor_booking_required"),
            },
            image_url=row.get("ser_image_url"),
        )

    async def search_by_keyword(self, keyword: str, city_name: Optional[str] = None) -> List[ServiceRecord]:
        params: Dict[str, Any] = {
            "select": "ser_id,ser_name,ser_type,ser_description,ser_itinerary_name,ser_default_price_cad,ser_show_in_app,cities(cit_name)",
            "ser_show_in_app": "eq.true",
            "or": f"(ser_name.ilike.*{keyword}*,ser_description.ilike.*{keyword}*,ser_itinerary_name.ilike.*{keyword}*)",
            "limit": 10,
        }
        if city_name:
            city_id = await self._city_id(city_name)
            if city_id is not None:
                params["ser_city_id"] = f"eq.{city_id}"
        rows = await self._aget("/services", params)
        return [SupabaseServiceRow.model_validate(row).to_record() for row in rows]


def create_catalog(settings: ApiSettings) -> ServiceCatalog:
    """Pick the catalog backend from project settings.

    Supabase is used when both URL and key are configured, then a JSON file
    from ``CATALOG_PATH``, then an empty in-memory catalog.
    """

    if settings.supabase_url and settings.supabase_anon_key:
        return SupabaseCatalog(settings.supabase_url, settings.ensure("supabase_anon_key"))
    if settings.catalog_path:
        return InMemoryCatalog.from_json(settings.catalog_path)
    logger.warning("No catalog configured; planning will use an empty catalog")
    return InMemoryCatalog()
