"""HTTP clients for the external collaborators.

All clients are synchronous httpx wrappers. Transport errors, HTTP error
statuses, non-JSON bodies and `success: false` payloads all surface as
ServiceError so callers handle one exception type.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Sequence

import httpx
from pydantic import ValidationError

from configurator.config import DEFAULT_HTTP_TIMEOUT_S
from configurator.pricing.params import PricingParameterTable
from configurator.schema import SavedConfiguration

PRICING_CONFIG_PATH = "/api/pricing-config"
SAMPLES_PATH = "/api/samples"
GENERATE_PATH = "/api/generate"
CONFIGURATIONS_PATH = "/api/configurations"


class ServiceError(RuntimeError):
    """External service call failed; the caller keeps its last good state."""


@dataclass(frozen=True)
class GeometryResult:
    glb_url: str
    dxf_url: Optional[str] = None
    message: str = ""


class PricingParamsSource(Protocol):
    def fetch_table(self) -> PricingParameterTable:
        ...


class SampleCatalogSource(Protocol):
    def fetch_sample_prices(self) -> dict[str, float]:
        ...


class GeometryService(Protocol):
    def generate(
        self,
        prompt: str,
        *,
        closed: bool = True,
        color: Optional[str] = None,
        colors: Optional[Mapping[str, str]] = None,
        deleted_panels: Optional[Sequence[str]] = None,
    ) -> GeometryResult:
        ...


class SavedConfigurationSource(Protocol):
    def get(self, configuration_id: Any) -> Optional[SavedConfiguration]:
        ...


class _JsonApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT_S,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._base_url = str(base_url).rstrip("/")
        self._timeout = float(timeout)
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self._base_url, timeout=self._timeout, transport=self._transport)

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            with self._client() as client:
                resp = client.request(method, path, **kwargs)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise ServiceError(f"{method} {path} -> HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise ServiceError(f"{method} {path} failed: {exc}") from exc
        except ValueError as exc:
            raise ServiceError(f"{method} {path} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise ServiceError(f"{method} {path} returned {type(data).__name__}, expected object")
        if data.get("success") is False:
            raise ServiceError(str(data.get("message") or data.get("error") or f"{method} {path} unsuccessful"))
        return data


class PricingParamsClient(_JsonApiClient):
    def fetch_table(self) -> PricingParameterTable:
        data = self._request("GET", PRICING_CONFIG_PATH)
        rows = data.get("data")
        if not isinstance(rows, list):
            raise ServiceError("pricing config payload has no row list")
        return PricingParameterTable.from_rows(rows)


def _non_negative(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number >= 0 else None


def sample_prices_from_catalog(materials: Mapping[str, Any]) -> dict[str, float]:
    """Flatten {material: [sample type]} into colour id -> price per m2.

    A colour's own price_per_m2 overrides its sample type's price.
    """
    prices: dict[str, float] = {}
    for sample_types in (materials or {}).values():
        if not isinstance(sample_types, list):
            continue
        for sample_type in sample_types:
            if not isinstance(sample_type, Mapping):
                continue
            type_price = _non_negative(sample_type.get("price_per_m2"))
            for color in sample_type.get("colors") or ():
                if not isinstance(color, Mapping) or color.get("id") is None:
                    continue
                color_price = _non_negative(color.get("price_per_m2"))
                value = color_price if color_price is not None else type_price
                prices[str(color["id"])] = value if value is not None else 0.0
    return prices


class SampleCatalogClient(_JsonApiClient):
    def fetch_sample_prices(self) -> dict[str, float]:
        data = self._request("GET", SAMPLES_PATH)
        materials = data.get("materials")
        if not isinstance(materials, Mapping):
            raise ServiceError("sample catalog payload has no materials")
        return sample_prices_from_catalog(materials)


class GeometryClient(_JsonApiClient):
    def generate(
        self,
        prompt: str,
        *,
        closed: bool = True,
        color: Optional[str] = None,
        colors: Optional[Mapping[str, str]] = None,
        deleted_panels: Optional[Sequence[str]] = None,
    ) -> GeometryResult:
        body: dict[str, Any] = {"prompt": prompt, "closed": bool(closed)}
        if colors:
            body["colors"] = dict(colors)
        elif color:
            body["color"] = color
        if deleted_panels:
            body["deletedPanels"] = list(deleted_panels)
        data = self._request("POST", GENERATE_PATH, json=body)
        glb_url = data.get("glb_url")
        if not glb_url:
            raise ServiceError("geometry service returned no glb_url")
        return GeometryResult(glb_url=str(glb_url), dxf_url=data.get("dxf_url"), message=str(data.get("message") or ""))


class SavedConfigurationClient(_JsonApiClient):
    def get(self, configuration_id: Any) -> Optional[SavedConfiguration]:
        data = self._request("GET", CONFIGURATIONS_PATH, params={"id": str(configuration_id)})
        record = data.get("data") or data.get("configuration")
        if not record:
            return None
        try:
            return SavedConfiguration.from_record(record)
        except ValidationError as exc:
            raise ServiceError(f"configuration {configuration_id} is malformed: {exc}") from exc

    def create(self, configuration: SavedConfiguration) -> SavedConfiguration:
        data = self._request("POST", CONFIGURATIONS_PATH, json=configuration.to_record())
        created_id = data.get("id")
        if created_id is None and isinstance(data.get("data"), Mapping):
            created_id = data["data"].get("id")
        return configuration.model_copy(update={"id": created_id}) if created_id is not None else configuration
