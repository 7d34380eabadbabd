"""
Endpoint resolution with single-flight de-duplication.

A resolver turns a logical target into an EndpointDescriptor. A static
target resolves immediately. A dynamic target asks a custom resolver
function or the DiscoveryClient exactly once, no matter how many callers
are waiting. Success is kept for the resolver's lifetime; failure clears
the in-flight slot so the next call can try again.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Union

from pydantic import ValidationError

from ._logging import get_logger
from .discovery.models import EndpointDescriptor, ResolutionState
from .errors import PromoStandardsError

if TYPE_CHECKING:
    from .discovery.client import DiscoveryClient

LOGGER = get_logger("resolver")

ResolverResult = Union[EndpointDescriptor, Mapping[str, Any]]
CustomResolver = Callable[[Union[str, None]], Union[ResolverResult, Awaitable[ResolverResult]]]


class EndpointResolver:
    def __init__(
        self,
        *,
        family: str | None = None,
        wsdl_url: str | None = None,
        endpoint_url: str | None = None,
        version: str | None = None,
        resolver: CustomResolver | None = None,
        discovery: DiscoveryClient | None = None,
        supplier_id: str | None = None,
    ):
        if resolver is not None and discovery is not None:
            raise PromoStandardsError.configuration(
                "Configure either a custom resolver or a discovery client, not both",
                {"family": family},
            )
        if wsdl_url and (resolver is not None or discovery is not None):
            raise PromoStandardsError.configuration(
                "A static WSDL URL cannot be combined with dynamic resolution",
                {"family": family, "wsdl_url": wsdl_url},
            )
        if discovery is not None and not (supplier_id and family):
            raise PromoStandardsError.configuration(
                "Discovery resolution needs a supplier_id and a service family",
                {"family": family, "supplier_id": supplier_id},
            )

        self.family = family
        self.supplier_id = supplier_id
        self._pinned_version = version
        self._resolver = resolver
        self._discovery = discovery
        self._static = (
            EndpointDescriptor(wsdl_url=wsdl_url, endpoint_url=endpoint_url, version=version) if wsdl_url else None
        )
        self._descriptor: EndpointDescriptor | None = None
        self._pending: asyncio.Task[EndpointDescriptor] | None = None

    @classmethod
    def from_wsdl(cls, wsdl_url: str, endpoint_url: str | None = None, version: str | None = None) -> EndpointResolver:
        return cls(wsdl_url=wsdl_url, endpoint_url=endpoint_url, version=version)

    @classmethod
    def from_resolver(cls, resolver: CustomResolver, version: str | None = None, family: str | None = None) -> EndpointResolver:
        return cls(resolver=resolver, version=version, family=family)

    @classmethod
    def from_discovery(
        cls,
        discovery: DiscoveryClient,
        supplier_id: str,
        family: str,
        version: str | None = None,
    ) -> EndpointResolver:
        return cls(discovery=discovery, supplier_id=supplier_id, family=family, version=version)

    @property
    def state(self) -> ResolutionState:
        if self._static is not None:
            return ResolutionState.STATIC
        if self._descriptor is not None:
            return ResolutionState.RESOLVED
        return ResolutionState.UNRESOLVED

    @property
    def is_static(self) -> bool:
        return self._static is not None

    @property
    def is_resolved(self) -> bool:
        return self._descriptor is not None

    @property
    def is_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    @property
    def pinned_version(self) -> str | None:
        return self._pinned_version

    @property
    def version(self) -> str | None:
        """The pinned version, else the version the resolved endpoint reported."""
        if self._pinned_version:
            return self._pinned_version
        return self._descriptor.version if self._descriptor else None

    @property
    def wsdl_url(self) -> str | None:
        current = self._descriptor or self._static
        return current.wsdl_url if current else None

    @property
    def endpoint_url(self) -> str | None:
        current = self._descriptor or self._static
        return current.endpoint_url if current else None

    async def resolve(self) -> EndpointDescriptor:
        if self._descriptor is not None:
            return self._descriptor

        if self._static is not None:
            self._descriptor = self._static
            LOGGER.debug("Using static endpoint %s", self._static.wsdl_url)
            return self._descriptor

        if self._resolver is None and self._discovery is None:
            raise PromoStandardsError.configuration(
                "Cannot resolve endpoint: provide a WSDL URL, a custom resolver or a discovery client",
                {"family": self.family},
            )

        task = self._pending
        if task is None:
            LOGGER.info("Resolving endpoint for %s", self._target_label())
            task = asyncio.ensure_future(self._resolve_once())
            task.add_done_callback(self._release_pending)
            self._pending = task
        else:
            LOGGER.debug("Resolution already in flight for %s, waiting", self._target_label())

        # Shielded so one cancelled waiter does not cancel the shared attempt.
        return await asyncio.shield(task)

    def _release_pending(self, task: asyncio.Task[EndpointDescriptor]) -> None:
        if self._pending is task:
            self._pending = None
        if not task.cancelled() and task.exception() is not None:
            LOGGER.warning("Endpoint resolution failed for %s: %s", self._target_label(), task.exception())

    async def _resolve_once(self) -> EndpointDescriptor:
        if self._resolver is not None:
            result = self._resolver(self._pinned_version)
            if inspect.isawaitable(result):
                result = await result
        else:
            result = await self._discovery.get_service_endpoint(self.supplier_id, self.family, self._pinned_version)

        descriptor = self._to_descriptor(result)
        self._descriptor = descriptor
        LOGGER.info(
            "Endpoint resolved for %s: wsdl=%s version=%s",
            self._target_label(),
            descriptor.wsdl_url,
            descriptor.version,
        )
        return descriptor

    def _to_descriptor(self, result: Any) -> EndpointDescriptor:
        if isinstance(result, EndpointDescriptor):
            return result
        if not isinstance(result, Mapping):
            raise PromoStandardsError.validation(
                "Resolver must return an endpoint descriptor or mapping",
                {"family": self.family, "result_type": type(result).__name__},
            )
        try:
            return EndpointDescriptor.model_validate(dict(result))
        except ValidationError as exc:
            raise PromoStandardsError.validation(
                "Resolver returned an invalid endpoint",
                {"family": self.family, "errors": exc.errors(include_url=False)},
            ) from exc

    def _target_label(self) -> str:
        if self.supplier_id:
            return f"{self.supplier_id}/{self.family}"
        return self.family or "custom resolver"
