from .client import DiscoveryClient
from .config import DiscoveryConfig, resolve_discovery_config
from .models import (
    EndpointDescriptor,
    ResolutionState,
    ServiceSummary,
    Supplier,
    compare_versions,
    normalize_endpoints,
    normalize_supplier,
    normalize_supplier_list,
    select_latest,
)

__all__ = [
    "DiscoveryClient",
    "DiscoveryConfig",
    "EndpointDescriptor",
    "ResolutionState",
    "ServiceSummary",
    "Supplier",
    "compare_versions",
    "normalize_endpoints",
    "normalize_supplier",
    "normalize_supplier_list",
    "resolve_discovery_config",
    "select_latest",
]
