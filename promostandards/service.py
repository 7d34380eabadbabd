"""
One PromoStandards service (family + version) and its operation calls.

A call resolves the endpoint, checks the operation and its required fields,
consults the response cache, merges the auth header, sends the SOAP
envelope, pulls the response body or fault out of the reply and checks the
response shape before caching it.
"""

from __future__ import annotations

import json
import time
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field

from ._logging import get_logger
from .auth import Credentials, inject_auth
from .cache import ResponseCache, epoch_millis
from .codec.envelope import FaultInfo, build_envelope, extract_body, extract_fault, resolve_element_name
from .codec.xml import NormalizedNode, parse_xml
from .descriptors import OperationSpec, ServiceDescriptor, get_descriptor
from .discovery.client import DiscoveryClient
from .discovery.models import EndpointDescriptor, ResolutionState
from .errors import ErrorKind, PromoStandardsError
from .resolver import CustomResolver, EndpointResolver
from .transport import DEFAULT_TIMEOUT_SECONDS, SoapTransport, build_soap_headers, response_body_from_error
from .wsdl import InterfaceDefinition, load_definition

DEFAULT_CACHE_TTL_SECONDS = 300.0

DefinitionLoader = Callable[[str, float], Awaitable[InterfaceDefinition]]

_MISS = object()


class CallResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    result: Any = None
    raw_request: str
    raw_response: str
    response_headers: dict[str, str] = Field(default_factory=dict)


def _coerce_credentials(credentials: Credentials | dict[str, Any] | None, service: str) -> Credentials:
    if isinstance(credentials, Credentials):
        return credentials
    if credentials is None:
        raise PromoStandardsError.authentication(
            "Credentials are required",
            {"service": service},
        )
    return Credentials.model_validate(credentials)


class PromoStandardsService:
    def __init__(
        self,
        family: str,
        *,
        credentials: Credentials | dict[str, Any] | None = None,
        wsdl: str | None = None,
        endpoint: str | None = None,
        version: str | None = None,
        supplier_id: str | None = None,
        discovery: DiscoveryClient | None = None,
        resolver: CustomResolver | None = None,
        endpoint_resolver: EndpointResolver | None = None,
        transport: SoapTransport | None = None,
        cache: ResponseCache | None = None,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        headers: dict[str, str] | None = None,
        namespace: str | None = None,
        introspect: bool = True,
        definition_loader: DefinitionLoader | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.descriptor: ServiceDescriptor = get_descriptor(family)
        self.logger = get_logger(f"service.{self.descriptor.family}")

        if endpoint_resolver is None:
            if not wsdl and resolver is None and discovery is None:
                raise PromoStandardsError.validation(
                    "WSDL URL, resolver or discovery client is required",
                    {"service": self.descriptor.name},
                )
            endpoint_resolver = EndpointResolver(
                family=self.descriptor.family,
                wsdl_url=wsdl,
                endpoint_url=endpoint,
                version=version,
                resolver=resolver,
                discovery=discovery,
                supplier_id=supplier_id,
            )

        # A discovered endpoint may report any version, so only static targets are checked up front.
        if version and endpoint_resolver.is_static:
            self.descriptor.ensure_version(version)

        self.credentials = _coerce_credentials(credentials, self.descriptor.name)
        self.endpoint_resolver = endpoint_resolver
        self.timeout_seconds = timeout_seconds
        self.transport = transport or SoapTransport(timeout_seconds=timeout_seconds, headers=headers)
        self._owns_transport = transport is None
        self.cache = cache
        self.cache_ttl_seconds = cache_ttl_seconds
        self.namespace = namespace
        self.introspect = introspect
        self._definition_loader = definition_loader
        self._definition: InterfaceDefinition | None = None
        self._definition_loaded = False
        self._clock = clock

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def version(self) -> str:
        return self.endpoint_resolver.version or self.descriptor.default_version

    @property
    def wsdl_url(self) -> str | None:
        return self.endpoint_resolver.wsdl_url

    @property
    def is_resolved(self) -> bool:
        return self.endpoint_resolver.is_resolved

    @property
    def state(self) -> ResolutionState:
        return self.endpoint_resolver.state

    def update_credentials(self, **values: Any) -> Credentials:
        self.credentials = self.credentials.with_updates(**values)
        return self.credentials

    async def initialize(self) -> PromoStandardsService:
        descriptor = await self.endpoint_resolver.resolve()
        await self._load_definition(descriptor)
        return self

    async def get_available_operations(self) -> list[dict[str, Any]]:
        descriptor = await self.endpoint_resolver.resolve()
        definition = await self._load_definition(descriptor)

        if definition is not None and definition.operations:
            return [
                {"name": name, "input_element": element or resolve_element_name(name)}
                for name, element in definition.operations.items()
            ]
        return [
            {"name": name, "input_element": resolve_element_name(name)}
            for name in self.descriptor.operation_names(self._table_version(self.version))
        ]

    def get_info(self) -> dict[str, Any]:
        return {
            "service": self.name,
            "family": self.descriptor.family,
            "version": self.version,
            "supported_versions": list(self.descriptor.versions),
            "wsdl_url": self.wsdl_url,
            "endpoint_url": self.endpoint_resolver.endpoint_url,
            "state": self.state.value,
            "operations": self.descriptor.operation_names(self._table_version(self.version)),
        }

    async def call(
        self,
        operation: str,
        payload: NormalizedNode = None,
        *,
        no_cache: bool = False,
        element_name: str | None = None,
        include_raw: bool = False,
    ) -> NormalizedNode | CallResult:
        try:
            return await self._call(operation, payload, no_cache, element_name, include_raw)
        except PromoStandardsError as exc:
            wrapped = self._wrap_error(exc, operation)
            if wrapped is exc:
                raise
            raise wrapped from exc

    async def _call(
        self,
        operation: str,
        payload: NormalizedNode,
        no_cache: bool,
        element_name: str | None,
        include_raw: bool,
    ) -> NormalizedNode | CallResult:
        endpoint = await self.endpoint_resolver.resolve()
        version = self.version
        spec = self._operation_spec(operation, version)
        spec.validate_request(payload)

        use_cache = self.cache is not None and not no_cache
        cache_key = self.cache_key(operation, payload, version)
        # Raw output is never cached, so it always goes to the wire.
        if use_cache and not include_raw:
            cached = await self._read_cache(cache_key)
            if cached is not _MISS:
                self.logger.info("Cache hit for %s.%s", self.name, operation)
                return cached

        request_data = inject_auth(self.credentials, payload if payload is not None else {}, version)
        definition = await self._load_definition(endpoint)
        request_element = resolve_element_name(operation, element_name, definition)
        envelope = build_envelope(request_data, request_element, self._namespace(definition, version))
        url = self._invocation_url(endpoint, definition)

        self.logger.info("Calling %s.%s v%s at %s", self.name, operation, version, url)
        try:
            response = await self.transport.post(url, envelope, build_soap_headers(operation))
        except PromoStandardsError as exc:
            if exc.kind is ErrorKind.NETWORK:
                fault = self._fault_from_body(response_body_from_error(exc))
                if fault is not None:
                    raise self._fault_error(fault, operation, exc.details.get("status")) from exc
            raise

        parsed = parse_xml(response.data)
        fault = extract_fault(parsed)
        if fault is not None:
            raise self._fault_error(fault, operation, response.status)

        result = spec.validate_response(extract_body(parsed))

        if use_cache:
            await self._write_cache(cache_key, result)

        if include_raw:
            return CallResult(
                result=result,
                raw_request=envelope,
                raw_response=response.data,
                response_headers=response.headers,
            )
        return result

    def cache_key(self, operation: str, payload: NormalizedNode, version: str | None = None) -> str:
        serialized = json.dumps(payload if payload is not None else {}, sort_keys=True, default=str)
        return f"{self.name}:{version or self.version}:{operation}:{serialized}"

    def _table_version(self, version: str) -> str:
        if self.descriptor.supports_version(version):
            return version
        self.logger.warning(
            "%s reported version %s which has no operation table, using %s",
            self.name,
            version,
            self.descriptor.default_version,
        )
        return self.descriptor.default_version

    def _operation_spec(self, operation: str, version: str) -> OperationSpec:
        table_version = self._table_version(version)
        spec = self.descriptor.operation(table_version, operation)
        if spec is None:
            raise PromoStandardsError.validation(
                f"Unknown operation {operation} for {self.name} {version}",
                {"version": version, "available_operations": self.descriptor.operation_names(table_version)},
            )
        return spec

    async def _load_definition(self, endpoint: EndpointDescriptor) -> InterfaceDefinition | None:
        if not self.introspect or self._definition_loaded:
            return self._definition

        try:
            loader = self._definition_loader or load_definition
            self._definition = await loader(endpoint.wsdl_url, self.timeout_seconds)
        except PromoStandardsError as exc:
            self.logger.warning("Interface definition unavailable for %s, using conventions: %s", self.name, exc)
            self._definition = None
        self._definition_loaded = True
        return self._definition

    def _namespace(self, definition: InterfaceDefinition | None, version: str) -> str:
        if self.namespace:
            return self.namespace
        if definition is not None and definition.target_namespace:
            return definition.target_namespace
        return self.descriptor.namespace_for(version)

    @staticmethod
    def _invocation_url(endpoint: EndpointDescriptor, definition: InterfaceDefinition | None) -> str:
        if endpoint.endpoint_url:
            return endpoint.endpoint_url
        if definition is not None and definition.address:
            return definition.address
        return endpoint.wsdl_url.split("?", 1)[0]

    @staticmethod
    def _fault_from_body(body: Any) -> FaultInfo | None:
        if not isinstance(body, (str, bytes)) or not body.strip():
            return None
        try:
            return extract_fault(parse_xml(body))
        except PromoStandardsError:
            return None

    def _fault_error(self, fault: FaultInfo, operation: str, status: int | None) -> PromoStandardsError:
        self.logger.warning("%s.%s returned SOAP fault %s: %s", self.name, operation, fault.code, fault.message)
        return PromoStandardsError.service(
            fault.message or "SOAP Fault",
            self.name,
            operation,
            {
                "fault_code": fault.code or "SOAP_FAULT",
                "fault_message": fault.message,
                "detail": fault.detail,
                "status": status,
            },
        )

    def _wrap_error(self, error: PromoStandardsError, operation: str) -> PromoStandardsError:
        if error.kind is ErrorKind.NETWORK:
            wrapped = PromoStandardsError.service(
                error.message,
                self.name,
                operation,
                {"status": error.details.get("status"), "original_error": error},
            )
            self.logger.error("%s.%s failed: %s", self.name, operation, error.message)
            return wrapped
        return error.with_details(service=self.name, operation=operation)

    async def _read_cache(self, key: str) -> Any:
        try:
            raw = await self.cache.get(key)
            if raw is None:
                return _MISS

            entry = json.loads(raw)
            if epoch_millis(self._clock) - entry["storedAtEpochMillis"] > self.cache_ttl_seconds * 1000:
                await self.cache.delete(key)
                return _MISS
            return entry["payload"]
        except Exception as exc:
            self.logger.warning("Cache read failed for %s, treating as miss: %s", key, exc)
            return _MISS

    async def _write_cache(self, key: str, result: NormalizedNode) -> None:
        try:
            await self.cache.set(key, json.dumps({"payload": result, "storedAtEpochMillis": epoch_millis(self._clock)}))
        except Exception as exc:
            self.logger.warning("Cache write failed for %s: %s", key, exc)

    async def aclose(self) -> None:
        if self._owns_transport:
            await self.transport.aclose()
