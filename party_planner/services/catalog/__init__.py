"""Service catalog integration.

Public API:
    - ServiceCatalog: protocol every catalog backend implements
    - SupabaseCatalog: async HTTP client for the Supabase PostgREST tables
    - InMemoryCatalog: in-process catalog, optionally loaded from JSON
    - create_catalog: factory picking a backend from ``ApiSettings``
    - gather_catalog: loads the per-conversation catalog snapshot
"""
from party_planner.services.catalog.client import SupabaseCatalog, create_catalog
from party_planner.services.catalog.memory import InMemoryCatalog
from party_planner.services.catalog.schemas import (
    CityRecord,
    ServiceCatalog,
    ServiceDetails,
    SupabaseServiceRow,
)
from party_planner.services.catalog.search import (
    SERVICE_TYPES,
    category_for_type,
    extract_keywords,
    gather_catalog,
)

__all__ = [
    "SupabaseCatalog",
    "create_catalog",
    "InMemoryCatalog",
    "CityRecord",
    "ServiceCatalog",
    "ServiceDetails",
    "SupabaseServiceRow",
    "SERVICE_TYPES",
    "category_for_type",
    "extract_keywords",
    "gather_catalog",
]
