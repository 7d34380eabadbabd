"""Interface-definition (WSDL) loading through zeep.

Only the facts the invoker needs are kept: the target namespace, the input
element name of every operation and the service address. Parsing runs in a
worker thread because zeep and requests are blocking.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from ._definition_cache import get_or_create_definition
from ._logging import get_logger
from .errors import PromoStandardsError

LOGGER = get_logger("wsdl")

DEFAULT_DEFINITION_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class InterfaceDefinition:
    target_namespace: str | None = None
    operations: dict[str, str | None] = field(default_factory=dict)
    address: str | None = None

    def input_element(self, operation: str) -> str | None:
        return self.operations.get(operation)

    def operation_names(self) -> list[str]:
        return list(self.operations)


def _input_element_name(binding_operation: Any) -> str | None:
    body = getattr(getattr(binding_operation, "input", None), "body", None)
    qname = getattr(body, "qname", None)
    if qname is None:
        return None
    return getattr(qname, "localname", None) or str(qname)


def read_definition(document: Any) -> InterfaceDefinition:
    """Extract namespace, operations and address from a zeep wsdl Document."""
    root = getattr(document, "root_definitions", None)
    target_namespace = getattr(root, "target_namespace", None)

    operations: dict[str, str | None] = {}
    address = None
    for service in getattr(document, "services", {}).values():
        for port in service.ports.values():
            if address is None:
                address = (getattr(port, "binding_options", None) or {}).get("address")
            for name, binding_operation in port.binding.all().items():
                operations.setdefault(name, _input_element_name(binding_operation))

    return InterfaceDefinition(target_namespace=target_namespace, operations=operations, address=address)


def _fetch_definition(url: str, timeout_seconds: float) -> InterfaceDefinition:
    try:
        from requests import Session
        from zeep import Client
        from zeep.transports import Transport
    except ImportError as exc:
        raise PromoStandardsError.configuration(
            "zeep is not installed. Add it to requirements to load WSDL definitions.",
            {"url": url},
        ) from exc

    LOGGER.info("Loading interface definition from %s", url)
    session = Session()
    try:
        transport = Transport(session=session, timeout=timeout_seconds, operation_timeout=timeout_seconds)
        client = Client(wsdl=url, transport=transport)
        return read_definition(client.wsdl)
    finally:
        session.close()


async def load_definition(
    url: str,
    timeout_seconds: float = DEFAULT_DEFINITION_TIMEOUT_SECONDS,
    *,
    reuse: bool = True,
) -> InterfaceDefinition:
    """Load and cache the interface definition published at url."""
    try:
        return await asyncio.to_thread(
            get_or_create_definition,
            url,
            lambda: _fetch_definition(url, timeout_seconds),
            reuse=reuse,
        )
    except PromoStandardsError:
        raise
    except Exception as exc:
        raise PromoStandardsError.network(
            f"Failed to load interface definition: {exc}",
            {"url": url, "original_error": str(exc)},
        ) from exc
