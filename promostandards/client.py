from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ._config import load_client_config
from ._logging import get_logger, redact_config
from .auth import Credentials
from .cache import ResponseCache
from .codec.xml import NormalizedNode
from .descriptors import find_family
from .discovery.client import DiscoveryClient
from .discovery.config import resolve_discovery_config
from .errors import PromoStandardsError
from .service import DEFAULT_CACHE_TTL_SECONDS, CallResult, PromoStandardsService
from .transport import DEFAULT_TIMEOUT_SECONDS, SoapTransport

LOGGER = get_logger("client")


class ServiceConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    family: str | None = None
    wsdl: str | None = None
    endpoint: str | None = None
    version: str | None = None
    supplier_id: str | None = None
    namespace: str | None = None
    enabled: bool = True
    introspect: bool = True
    cache_ttl_seconds: float | None = Field(default=None, ge=0)


class ClientConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    credentials: dict[str, Any] | None = None
    id: str | None = None
    username: str | None = None
    password: str | None = None
    version: str | None = None
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    cache_ttl_seconds: float = Field(default=DEFAULT_CACHE_TTL_SECONDS, ge=0)
    headers: dict[str, str] = Field(default_factory=dict)
    discovery: dict[str, Any] | bool | None = None
    services: dict[str, ServiceConfig] = Field(default_factory=dict)

    def credential_values(self) -> dict[str, Any] | None:
        values = dict(self.credentials or {})
        for key in ("id", "username", "password", "version"):
            value = getattr(self, key)
            if value is not None:
                values.setdefault(key, value)
        return values or None


class PromoStandardsClient:
    """Registry of configured services sharing one credential set and one transport.

    Services are looked up by name through ``get_service``. When no client
    credentials are configured, each service must be given its own.
    """

    def __init__(
        self,
        credentials: Credentials | dict[str, Any] | None = None,
        *,
        discovery: DiscoveryClient | None = None,
        cache: ResponseCache | None = None,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        headers: dict[str, str] | None = None,
        transport: SoapTransport | None = None,
    ):
        self.credentials = self._to_credentials(credentials)
        self.discovery = discovery
        self.cache = cache
        self.cache_ttl_seconds = cache_ttl_seconds
        self.timeout_seconds = timeout_seconds
        self.transport = transport or SoapTransport(timeout_seconds=timeout_seconds, headers=headers)
        self._owns_transport = transport is None
        self._owns_discovery = False
        self._services: dict[str, PromoStandardsService] = {}
        self._shared_credentials: set[str] = set()

        if self.credentials is None:
            LOGGER.info("No client-level credentials configured, per-service credentials required")

    @staticmethod
    def _to_credentials(credentials: Credentials | dict[str, Any] | None) -> Credentials | None:
        if credentials is None or isinstance(credentials, Credentials):
            return credentials
        return Credentials.model_validate(credentials)

    @classmethod
    def from_config(
        cls,
        config: dict[str, Any] | None = None,
        *,
        file_path: str | Path | None = None,
        env_prefix: str | None = "PROMOSTANDARDS",
        cache: ResponseCache | None = None,
    ) -> PromoStandardsClient:
        """Build a client and its services from a mapping, a JSON/YAML file and the environment."""
        merged = load_client_config(config, file_path=file_path, env_prefix=env_prefix)
        settings = ClientConfig.model_validate(merged)
        LOGGER.info("Building client from config=%s", redact_config(settings.model_dump(exclude={"services"})))

        discovery = None
        if settings.discovery:
            section = settings.discovery if isinstance(settings.discovery, dict) else {}
            discovery = DiscoveryClient(resolve_discovery_config(section))

        client = cls(
            settings.credential_values(),
            discovery=discovery,
            cache=cache,
            cache_ttl_seconds=settings.cache_ttl_seconds,
            timeout_seconds=settings.timeout_seconds,
            headers=settings.headers,
        )
        client._owns_discovery = discovery is not None

        for name, service_config in settings.services.items():
            if not service_config.enabled:
                LOGGER.info("Service %s disabled in config, skipping", name)
                continue
            options = service_config.model_dump(exclude={"family", "enabled"}, exclude_none=True)
            client.add_service(name, service_config.family or name, **options)

        return client

    @property
    def service_names(self) -> list[str]:
        return list(self._services)

    def add_service(self, name: str, family: str, **options: Any) -> PromoStandardsService:
        credentials = options.pop("credentials", None)
        if credentials is None:
            if self.credentials is None:
                raise PromoStandardsError.authentication(
                    "Credentials required. Pass credentials for the service or configure client-level credentials.",
                    {"service": name},
                )
            credentials = self.credentials
            self._shared_credentials.add(name)

        if options.get("wsdl") is None and options.get("endpoint"):
            options["wsdl"] = options["endpoint"]
        if options.get("supplier_id") and "discovery" not in options:
            if self.discovery is None:
                raise PromoStandardsError.configuration(
                    "A discovery client is required for supplier-based services",
                    {"service": name, "supplier_id": options["supplier_id"]},
                )
            options["discovery"] = self.discovery

        options.setdefault("cache", self.cache)
        options.setdefault("cache_ttl_seconds", self.cache_ttl_seconds)
        options.setdefault("timeout_seconds", self.timeout_seconds)
        options.setdefault("transport", self.transport)

        service = PromoStandardsService(family, credentials=credentials, **options)
        self._services[name] = service
        LOGGER.info("Added service %s (%s)", name, service.name)
        return service

    def get_service(self, name: str) -> PromoStandardsService:
        service = self._services.get(name)
        if service is None:
            raise PromoStandardsError.validation(
                f"Service '{name}' not found",
                {"available_services": self.service_names},
            )
        return service

    def service(
        self,
        family: str,
        wsdl: str | None = None,
        *,
        supplier_id: str | None = None,
        version: str | None = None,
        credentials: Credentials | dict[str, Any] | None = None,
        **options: Any,
    ) -> PromoStandardsService:
        """Return a memoized service for a direct WSDL URL or a discovered supplier endpoint."""
        family_key = find_family(family) or family
        if wsdl:
            key = f"{family_key}:direct:{wsdl}"
        elif supplier_id:
            key = f"{family_key}:{supplier_id}:{version or 'latest'}"
        else:
            raise PromoStandardsError.validation(
                "Either a WSDL URL or a supplier_id is required",
                {"service": family},
            )

        existing = self._services.get(key)
        if existing is not None:
            return existing

        return self.add_service(
            key,
            family,
            wsdl=wsdl,
            supplier_id=supplier_id,
            version=version,
            credentials=self._to_credentials(credentials),
            **options,
        )

    async def call(
        self,
        name: str,
        operation: str,
        payload: NormalizedNode = None,
        **options: Any,
    ) -> NormalizedNode | CallResult:
        return await self.get_service(name).call(operation, payload, **options)

    def update_credentials(self, **values: Any) -> Credentials:
        """Replace the client credentials and hand them to every service that shares them."""
        if self.credentials is None:
            self.credentials = Credentials.model_validate(values)
        else:
            self.credentials = self.credentials.with_updates(**values)

        for name in self._shared_credentials:
            self._services[name].credentials = self.credentials

        LOGGER.info("Credentials updated: %s", self.credentials.redacted())
        return self.credentials

    async def get_all_service_info(self) -> dict[str, dict[str, Any]]:
        info: dict[str, dict[str, Any]] = {}
        for name, service in self._services.items():
            try:
                operations = await service.get_available_operations()
            except PromoStandardsError as exc:
                info[name] = {"error": exc.message, "kind": exc.kind.value}
                continue

            info[name] = {
                "version": service.version,
                "wsdl": service.wsdl_url,
                "operations": [operation["name"] for operation in operations],
            }
        return info

    @classmethod
    async def quick_call(
        cls,
        family: str,
        operation: str,
        payload: NormalizedNode = None,
        *,
        wsdl: str,
        credentials: Credentials | dict[str, Any],
        **options: Any,
    ) -> NormalizedNode | CallResult:
        """One-off call without keeping a client around."""
        if not family or not operation:
            raise PromoStandardsError.validation(
                "family and operation are required for quick_call",
                {"family": family, "operation": operation},
            )
        if not wsdl:
            raise PromoStandardsError.validation("wsdl is required for quick_call", {"family": family})

        call_options = {key: options.pop(key) for key in ("no_cache", "element_name", "include_raw") if key in options}
        client = cls(credentials)
        try:
            service = client.service(family, wsdl, **options)
            return await service.call(operation, payload, **call_options)
        finally:
            await client.aclose()

    async def aclose(self) -> None:
        if self._owns_transport:
            await self.transport.aclose()
        if self._owns_discovery and self.discovery is not None:
            await self.discovery.aclose()
        LOGGER.info("Client closed")

    async def __aenter__(self) -> PromoStandardsClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
