"""Discovery data models and normalization of the directory API payloads.

The directory API is inconsistent about field casing and naming, so every
logical field accepts a list of synonyms. The first non-empty synonym wins.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .._logging import get_logger
from ..descriptors import SERVICE_DESCRIPTORS, find_family

LOGGER = get_logger("discovery.models")

SUPPLIER_ID_KEYS = ("Code", "code", "id", "Id", "supplierId", "SupplierId")
SUPPLIER_NAME_KEYS = ("Name", "name", "companyName", "CompanyName")
ASI_KEYS = ("AsiNumber", "asiNumber", "ASINumber", "asi")
SAGE_KEYS = ("SageNumber", "sageId", "SAGEId", "sage")
PPAI_KEYS = ("PpaiNumber", "ppaiId", "PPAIId", "ppai")
WEBSITE_KEYS = ("Website", "website", "url")
STATUS_KEYS = ("Status", "status")

SUPPLIER_CONTAINER_KEYS = ("Companies", "companies", "suppliers", "Suppliers")
SERVICE_CONTAINER_KEYS = ("Endpoints", "endpoints", "services", "Services")

SERVICE_CODE_KEYS = ("ServiceCode", "ServiceTypeCode", "serviceCode", "code")
SERVICE_VERSION_KEYS = ("WsVersion", "Version", "version")
SERVICE_WSDL_KEYS = ("ServiceUrl", "wsdl", "WSDL", "wsdlUrl", "WSDLUrl")
SERVICE_ENDPOINT_KEYS = ("ServiceUrl", "endpoint", "Endpoint", "url", "URL")


class ResolutionState(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    STATIC = "static"


class EndpointDescriptor(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    wsdl_url: str = Field(validation_alias=AliasChoices("wsdl_url", "wsdlUrl", "wsdl"))
    endpoint_url: str | None = Field(default=None, validation_alias=AliasChoices("endpoint_url", "endpointUrl", "endpoint"))
    version: str | None = None
    status: str = "active"


class Supplier(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    name: str | None = None
    asi_number: str | None = None
    sage_id: str | None = None
    ppai_id: str | None = None
    website: str | None = None
    status: str = "active"
    endpoints: dict[str, list[EndpointDescriptor]] | None = None

    def association_numbers(self) -> list[str]:
        return [value for value in (self.asi_number, self.sage_id, self.ppai_id) if value]

    def matches(self, term: str) -> bool:
        needle = term.lower()
        haystack = [self.name, self.id, *self.association_numbers()]
        return any(needle in value.lower() for value in haystack if value)


class ServiceSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    family: str
    versions: list[str | None]
    latest_version: str | None = None


def _first(data: dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _text(value: Any) -> str | None:
    return None if value is None else str(value)


def _unwrap(data: Any, container_keys: tuple[str, ...]) -> list[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        items = _first(data, container_keys)
        if isinstance(items, list):
            return items
    return []


def normalize_supplier(data: dict[str, Any]) -> Supplier:
    endpoints = data.get("endpoints")
    return Supplier(
        id=_text(_first(data, SUPPLIER_ID_KEYS)),
        name=_text(_first(data, SUPPLIER_NAME_KEYS)),
        asi_number=_text(_first(data, ASI_KEYS)),
        sage_id=_text(_first(data, SAGE_KEYS)),
        ppai_id=_text(_first(data, PPAI_KEYS)),
        website=_text(_first(data, WEBSITE_KEYS)),
        status=_text(_first(data, STATUS_KEYS)) or "active",
        endpoints=normalize_endpoints(endpoints) if endpoints else None,
    )


def normalize_supplier_list(data: Any) -> list[Supplier]:
    return [normalize_supplier(item) for item in _unwrap(data, SUPPLIER_CONTAINER_KEYS) if isinstance(item, dict)]


def normalize_endpoints(data: Any) -> dict[str, list[EndpointDescriptor]]:
    """Group service entries by family; every known family is present, possibly empty."""
    endpoints: dict[str, list[EndpointDescriptor]] = {family: [] for family in SERVICE_DESCRIPTORS}

    for entry in _unwrap(data, SERVICE_CONTAINER_KEYS):
        if not isinstance(entry, dict):
            continue

        code = _first(entry, SERVICE_CODE_KEYS)
        family = find_family(str(code)) if code is not None else None
        if family is None:
            LOGGER.debug("Skipping endpoint with unknown service code %s", code)
            continue

        wsdl_url = _first(entry, SERVICE_WSDL_KEYS)
        if not wsdl_url:
            LOGGER.warning("Skipping %s endpoint without a service URL", family)
            continue

        endpoints[family].append(
            EndpointDescriptor(
                wsdl_url=str(wsdl_url),
                endpoint_url=_text(_first(entry, SERVICE_ENDPOINT_KEYS)),
                version=_text(_first(entry, SERVICE_VERSION_KEYS)),
                status=_text(_first(entry, STATUS_KEYS)) or "active",
            )
        )

    return endpoints


def _version_parts(version: str | None) -> list[int]:
    parts = []
    for component in (version or "").split("."):
        parts.append(int(component) if component.isdigit() else 0)
    return parts


def compare_versions(left: str | None, right: str | None) -> int:
    """Compare dotted versions numerically; missing trailing components count as zero."""
    if not left or not right:
        return 0

    left_parts = _version_parts(left)
    right_parts = _version_parts(right)
    width = max(len(left_parts), len(right_parts))
    left_parts += [0] * (width - len(left_parts))
    right_parts += [0] * (width - len(right_parts))

    if left_parts == right_parts:
        return 0
    return 1 if left_parts > right_parts else -1


def select_latest(endpoints: list[EndpointDescriptor]) -> EndpointDescriptor | None:
    latest = None
    for endpoint in endpoints:
        if latest is None or compare_versions(endpoint.version, latest.version) > 0:
            latest = endpoint
    return latest
