"""External service integrations for the party planner.

- Catalog: bookable services and cities, served from Supabase (PostgREST)
  or from an in-memory JSON-backed store for development and tests.

Each integration exports:
    - create_*: factory building the client from ``ApiSettings``
    - the client classes and their pydantic schemas

Example Usage:
    >>> from party_planner.services.catalog import create_catalog
    >>> from party_planner.core.config import ApiSettings
    >>>
    >>> catalog = create_catalog(ApiSettings.from_env())
    >>> services = await catalog.search_services("Austin", "Restaurant", 8)
"""

from party_planner.services.catalog import (
    CityRecord,
    InMemoryCatalog,
    ServiceCatalog,
    ServiceDetails,
    SupabaseCatalog,
    create_catalog,
    gather_catalog,
)

__all__ = [
    "CityRecord",
    "InMemoryCatalog",
    "ServiceCatalog",
    "ServiceDetails",
    "SupabaseCatalog",
    "create_catalog",
    "gather_catalog",
]
