from .auth import Credentials, inject_auth
from .cache import InMemoryResponseCache, ResponseCache
from .client import ClientConfig, PromoStandardsClient, ServiceConfig
from .codec import build_envelope, build_xml, extract_body, extract_fault, parse_xml, resolve_element_name
from .descriptors import SERVICE_DESCRIPTORS, OperationSpec, ServiceDescriptor, get_descriptor
from .discovery import DiscoveryClient, DiscoveryConfig, EndpointDescriptor, ResolutionState, Supplier
from .errors import ErrorKind, PromoStandardsError
from .resolver import EndpointResolver
from .service import CallResult, PromoStandardsService
from .transport import SoapTransport, TransportResponse
from .wsdl import InterfaceDefinition, load_definition

__all__ = [
    "CallResult",
    "ClientConfig",
    "Credentials",
    "DiscoveryClient",
    "DiscoveryConfig",
    "EndpointDescriptor",
    "EndpointResolver",
    "ErrorKind",
    "InMemoryResponseCache",
    "InterfaceDefinition",
    "OperationSpec",
    "PromoStandardsClient",
    "PromoStandardsError",
    "PromoStandardsService",
    "ResolutionState",
    "ResponseCache",
    "SERVICE_DESCRIPTORS",
    "ServiceConfig",
    "ServiceDescriptor",
    "Supplier",
    "SoapTransport",
    "TransportResponse",
    "build_envelope",
    "build_xml",
    "create_service",
    "extract_body",
    "extract_fault",
    "get_descriptor",
    "inject_auth",
    "load_definition",
    "parse_xml",
    "resolve_element_name",
]


def create_service(family: str, **options) -> PromoStandardsService:
    """Build a standalone service; see PromoStandardsService for the options."""
    return PromoStandardsService(family, **options)
