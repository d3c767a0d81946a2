from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from party_planner.core.schemas import ServiceRecord

SERVICE_COLUMNS = ",".join(
    [
        "ser_id",
        "ser_name",
        "ser_type",
        "ser_description",
        "ser_itinerary_name",
        "ser_itinerary_description",
        "ser_default_price_cad",
        "ser_default_price_usd",
        "ser_duration_hrs",
        "ser_show_in_app",
        "ser_in_app_description",
    ]
)


class CityRecord(BaseModel):
    id: str
    name: str


class SupabaseServiceRow(BaseModel):
    """Row of the ``services`` table as returned by PostgREST."""

    model_config = ConfigDict(extra="allow")

    ser_id: Any
    ser_name: str
    ser_type: Optional[str] = None
    ser_description: Optional[str] = None
    ser_itinerary_name: Optional[str] = None
    ser_itinerary_description: Optional[str] = None
    ser_default_price_cad: Optional[float] = None
    ser_default_price_usd: Optional[float] = None
    ser_duration_hrs: Optional[float] = None
    ser_show_in_app: Optional[bool] = None
    ser_in_app_description: Optional[str] = None
    cities: Optional[Dict[str, Any]] = None

    def to_record(self, *, category: Optional[str] = None) -> ServiceRecord:
        return ServiceRecord(
            id=str(self.ser_id),
            name=self.ser_name,
            type=self.ser_type,
            category=category,
            description=self.ser_description or self.ser_in_app_description,
            itinerary_name=self.ser_itinerary_name,
            itinerary_description=self.ser_itinerary_description,
            price_cad=self.ser_default_price_cad,
            price_usd=self.ser_default_price_usd,
            duration_hours=self.ser_duration_hrs,
            city=(self.cities or {}).get("cit_name"),
        )


class ServiceDetails(ServiceRecord):
    """Full detail view of one service, including pricing and timing blocks."""

    in_app_description: Optional[str] = None
    pricing: Dict[str, Optional[float]] = Field(default_factory=dict)
    timing: Dict[str, Any] = Field(default_factory=dict)
    logistics: Dict[str, Any] = Field(default_factory=dict)
    image_url: Optional[str] = None


@runtime_checkable
class ServiceCatalog(Protocol):
    """Read-only catalog of bookable services."""

    async def search_services(
        self,
        city_name: str,
        service_type: Optional[str] = None,
        group_size: Optional[int] = None,
        max_results: int = 10,
    ) -> List[ServiceRecord]: ...

    async def get_service_details(self, service_id: str) -> Optional[ServiceDetails]: ...

    async def search_by_keyword(self, keyword: str, city_name: Optional[str] = None) -> List[ServiceRecord]: ...

    async def list_cities(self) -> List[CityRecord]: ...

    async def aclose(self) -> None: ...
