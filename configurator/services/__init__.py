"""External service clients."""

from configurator.services.clients import (
    GeometryClient,
    GeometryResult,
    PricingParamsClient,
    SampleCatalogClient,
    SavedConfigurationClient,
    ServiceError,
    sample_prices_from_catalog,
)

__all__ = [
    "GeometryClient",
    "GeometryResult",
    "PricingParamsClient",
    "SampleCatalogClient",
    "SavedConfigurationClient",
    "ServiceError",
    "sample_prices_from_catalog",
]
