from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable
from urllib.parse import quote

import httpx

from .._logging import get_logger, redact_config
from ..descriptors import SERVICE_DESCRIPTORS, find_family
from ..errors import PromoStandardsError
from .config import DEFAULT_ENV_PREFIX, DiscoveryConfig, resolve_discovery_config
from .models import (
    EndpointDescriptor,
    ServiceSummary,
    Supplier,
    normalize_endpoints,
    normalize_supplier,
    normalize_supplier_list,
    select_latest,
)


class DiscoveryClient:
    """Client for the PromoStandards directory API.

    Every read goes through a TTL cache keyed by request shape. Expired
    entries are dropped when they are looked up, never swept in the
    background. Concurrent misses on one key may both fetch; the later
    write wins.
    """

    def __init__(
        self,
        config: DiscoveryConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or DiscoveryConfig()
        self.logger = get_logger("discovery.client")
        self._client = client
        self._owns_client = client is None
        self._clock = clock
        self._cache: dict[str, tuple[Any, float]] = {}

    @classmethod
    def from_config(
        cls,
        config: dict[str, Any] | None = None,
        *,
        file_path: str | Path | None = None,
        env_prefix: str | None = DEFAULT_ENV_PREFIX,
        client: httpx.AsyncClient | None = None,
        **overrides: Any,
    ) -> DiscoveryClient:
        resolved = resolve_discovery_config(config, file_path=file_path, env_prefix=env_prefix, **overrides)
        return cls(resolved, client=client)

    async def __aenter__(self) -> DiscoveryClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
        self.logger.info("Discovery client closed")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self.logger.info("Creating discovery HTTP client config=%s", redact_config(self.config.model_dump(mode="json")))
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
        return self._client

    def _build_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        headers.update(self.config.headers)
        return headers

    def _get_cached(self, key: str) -> Any:
        entry = self._cache.get(key)
        if entry is None:
            return None

        value, stored_at = entry
        if self._clock() - stored_at > self.config.cache_ttl_seconds:
            del self._cache[key]
            self.logger.debug("Cache expired: %s", key)
            return None

        self.logger.debug("Cache hit: %s", key)
        return value

    def _set_cached(self, key: str, value: Any) -> None:
        self._cache[key] = (value, self._clock())

    def clear_cache(self) -> None:
        self._cache.clear()
        self.logger.info("Discovery cache cleared")

    def invalidate(self, key: str) -> bool:
        return self._cache.pop(key, None) is not None

    async def _get_json(self, path: str, operation: str) -> Any:
        url = f"{self.config.base_url}/{path.lstrip('/')}"
        self.logger.info("Discovery request operation=%s url=%s", operation, url)

        try:
            response = await self._get_client().get(url, headers=self._build_headers(), timeout=self.config.timeout_seconds)
        except httpx.TimeoutException as exc:
            raise PromoStandardsError.timeout(
                f"Discovery request timed out after {self.config.timeout_seconds}s",
                self.config.timeout_seconds,
                {"operation": operation, "url": url},
            ) from exc
        except httpx.HTTPError as exc:
            raise PromoStandardsError.network(
                f"Network error: {exc}",
                {"operation": operation, "url": url, "original_error": str(exc)},
            ) from exc

        if response.is_success:
            try:
                return response.json()
            except ValueError as exc:
                raise PromoStandardsError.network(
                    "Discovery API returned invalid JSON",
                    {"operation": operation, "url": url, "status": response.status_code, "response": response.text},
                ) from exc

        body = self._error_body(response)
        message = body.get("message") if isinstance(body, dict) else None
        message = message or response.reason_phrase or "request failed"

        if response.status_code == 404:
            raise PromoStandardsError.not_found(
                f"Not found: {message}",
                {"operation": operation, "status": 404},
            )

        raise PromoStandardsError.network(
            f"HTTP {response.status_code}: {message}",
            {"operation": operation, "status": response.status_code, "response": body},
        )

    @staticmethod
    def _error_body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _require(value: str | None, name: str, method: str) -> str:
        if not value:
            raise PromoStandardsError.validation(f"{name} is required", {"method": method})
        return value

    async def list_suppliers(self) -> list[Supplier]:
        cache_key = "suppliers:all"
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        suppliers = normalize_supplier_list(await self._get_json("companies", "list_suppliers"))
        self._set_cached(cache_key, suppliers)
        self.logger.info("Fetched %s suppliers", len(suppliers))
        return suppliers

    async def search(self, query: str | dict[str, Any]) -> list[Supplier]:
        """Filter the full supplier list by name, id or association number."""
        term = query if isinstance(query, str) else str(query.get("name") or "")
        suppliers = await self.list_suppliers()
        return [supplier for supplier in suppliers if supplier.matches(term)]

    async def get_supplier(self, supplier_id: str) -> Supplier:
        self._require(supplier_id, "supplier_id", "get_supplier")

        cache_key = f"supplier:{supplier_id}"
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        data = await self._get_json(f"companies/{quote(str(supplier_id), safe='')}", "get_supplier")
        supplier = normalize_supplier(data if isinstance(data, dict) else {})
        self._set_cached(cache_key, supplier)
        return supplier

    async def get_supplier_endpoints(self, supplier_id: str) -> dict[str, list[EndpointDescriptor]]:
        self._require(supplier_id, "supplier_id", "get_supplier_endpoints")

        cache_key = f"endpoints:{supplier_id}"
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        data = await self._get_json(f"companies/{quote(str(supplier_id), safe='')}/endpoints", "get_supplier_endpoints")
        endpoints = normalize_endpoints(data)
        self._set_cached(cache_key, endpoints)
        self.logger.info(
            "Fetched endpoints for supplier %s: %s",
            supplier_id,
            {family: len(items) for family, items in endpoints.items() if items},
        )
        return endpoints

    async def get_service_endpoint(
        self,
        supplier_id: str,
        family: str,
        version: str | None = None,
    ) -> EndpointDescriptor:
        if not supplier_id or not family:
            raise PromoStandardsError.validation(
                "supplier_id and family are required",
                {"method": "get_service_endpoint", "provided": {"supplier_id": supplier_id, "family": family, "version": version}},
            )

        family_key = find_family(family)
        if family_key is None:
            raise PromoStandardsError.validation(
                f"Unknown service: {family}",
                {"method": "get_service_endpoint", "available_services": list(SERVICE_DESCRIPTORS)},
            )

        cache_key = f"endpoint:{supplier_id}:{family_key}:{version or 'latest'}"
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        endpoints = await self.get_supplier_endpoints(supplier_id)
        candidates = endpoints.get(family_key) or []
        if not candidates:
            raise PromoStandardsError.validation(
                f"Supplier {supplier_id} does not support {family_key}",
                {
                    "supplier_id": supplier_id,
                    "service": family_key,
                    "available_services": [name for name, items in endpoints.items() if items],
                },
            )

        if version:
            endpoint = next((candidate for candidate in candidates if candidate.version == version), None)
            if endpoint is None:
                raise PromoStandardsError.validation(
                    f"Version {version} not available for {family_key}",
                    {
                        "supplier_id": supplier_id,
                        "service": family_key,
                        "requested_version": version,
                        "available_versions": [candidate.version for candidate in candidates],
                    },
                )
        else:
            endpoint = select_latest(candidates)

        self._set_cached(cache_key, endpoint)
        return endpoint

    async def get_supported_services(self, supplier_id: str) -> list[ServiceSummary]:
        endpoints = await self.get_supplier_endpoints(supplier_id)

        summaries = []
        for family, items in endpoints.items():
            if not items:
                continue
            latest = select_latest(items)
            summaries.append(
                ServiceSummary(
                    family=family,
                    versions=[item.version for item in items],
                    latest_version=latest.version if latest else None,
                )
            )
        return summaries
