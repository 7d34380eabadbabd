"""
Static descriptors for the eleven PromoStandards service families.

Each descriptor lists the supported protocol versions, the default version,
and the operations available in each version together with the request
fields they require and the top-level response keys that prove a response
has the expected shape. Response keys are given in their normalized
lowerCamelCase form; a response passes when any one of them is present.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from .errors import PromoStandardsError

NAMESPACE_TEMPLATE = "http://www.promostandards.org/WSDL/{wsdl_name}/{version}/"


@dataclass(frozen=True)
class OperationSpec:
    name: str
    required_fields: tuple[str, ...] = ()
    response_keys: tuple[str, ...] = ()

    def validate_request(self, payload: Any) -> None:
        if not self.required_fields:
            return

        values = payload if isinstance(payload, dict) else {}
        missing = [name for name in self.required_fields if values.get(name) in (None, "")]
        if missing:
            raise PromoStandardsError.validation(
                f"{', '.join(missing)} is required for {self.name}",
                {"operation": self.name, "missing": missing},
            )

    def validate_response(self, response: Any) -> Any:
        if not self.response_keys:
            return response

        if isinstance(response, dict) and any(response.get(key) is not None for key in self.response_keys):
            return response

        raise PromoStandardsError.validation(
            f"Invalid response from {self.name}: missing {' or '.join(self.response_keys)}",
            {
                "operation": self.name,
                "expected_keys": list(self.response_keys),
                "received_keys": sorted(response) if isinstance(response, dict) else [],
            },
        )


@dataclass(frozen=True)
class ServiceDescriptor:
    family: str
    name: str
    code: str
    wsdl_name: str
    versions: tuple[str, ...]
    default_version: str
    operations: Mapping[str, tuple[OperationSpec, ...]]
    type_names: tuple[str, ...] = field(default_factory=tuple)

    def supports_version(self, version: str) -> bool:
        return version in self.versions

    def operations_for(self, version: str | None) -> tuple[OperationSpec, ...]:
        return self.operations.get(version or self.default_version, ())

    def operation(self, version: str | None, name: str) -> OperationSpec | None:
        for spec in self.operations_for(version):
            if spec.name == name:
                return spec
        return None

    def operation_names(self, version: str | None) -> list[str]:
        return [spec.name for spec in self.operations_for(version)]

    def namespace_for(self, version: str | None) -> str:
        return NAMESPACE_TEMPLATE.format(wsdl_name=self.wsdl_name, version=version or self.default_version)

    def ensure_version(self, version: str) -> None:
        if not self.supports_version(version):
            raise PromoStandardsError.validation(
                f"Unsupported version: {version}",
                {"service": self.name, "supported_versions": list(self.versions), "provided": version},
            )


def _same(versions: tuple[str, ...], operations: tuple[OperationSpec, ...]) -> dict[str, tuple[OperationSpec, ...]]:
    return {version: operations for version in versions}


_INVENTORY_V1 = (
    OperationSpec("getInventoryLevels", ("productId",), ("inventory",)),
    OperationSpec("getFilterValues", ("productId",), ("filterValues",)),
)
_INVENTORY_V2 = (
    OperationSpec("getInventoryLevels", (), ("inventory",)),
    OperationSpec("getFilterValues", ("productId",), ("filterValues",)),
)

_PRODUCT_DATA_V1 = (
    OperationSpec("getProduct", ("productId",), ("product",)),
    OperationSpec("getProductDateModified", ("changeTimeStamp",), ("productDateModifiedArray",)),
    OperationSpec("getProductSellable", ("productId",), ("productSellableArray",)),
)
_PRODUCT_DATA_V2 = _PRODUCT_DATA_V1 + (
    OperationSpec("getProductCloseOut", (), ("productCloseOutArray",)),
)

_ORDER_STATUS_V1 = (
    OperationSpec("getOrderStatusDetails", ("queryType",), ("orderStatusDetails", "orderStatus")),
    OperationSpec("getOrderStatusTypes", (), ("orderStatusTypes", "statusTypes")),
)
_ORDER_STATUS_V2 = (
    OperationSpec("getOrderStatus", ("queryType",), ("orderStatusArray", "orderStatus")),
    OperationSpec("getIssue", ("issueId",), ("issue", "issueArray")),
    OperationSpec("getServiceMethods", (), ("serviceMethods", "serviceMethodArray")),
)

_PRICING_CONFIG = (
    OperationSpec("getConfigurationAndPricing", ("productId",), ("configuration", "configurationAndPricing")),
    OperationSpec("getAvailableLocations", ("productId",), ("availableLocationArray", "availableLocations")),
    OperationSpec("getAvailableCharges", ("productId",), ("availableChargeArray", "availableCharges")),
    OperationSpec("getDecorationColors", ("productId", "locationId"), ("decorationColorArray", "decorationColors")),
    OperationSpec("getFobPoints", ("productId",), ("fobPointArray", "fobPoints")),
)

_DESCRIPTORS = (
    ServiceDescriptor(
        family="inventory",
        name="Inventory",
        code="INV",
        wsdl_name="Inventory",
        versions=("1.2.1", "2.0.0"),
        default_version="2.0.0",
        operations={"1.2.1": _INVENTORY_V1, "2.0.0": _INVENTORY_V2},
        type_names=("inventory",),
    ),
    ServiceDescriptor(
        family="product_data",
        name="ProductData",
        code="PROD",
        wsdl_name="ProductDataService",
        versions=("1.0.0", "2.0.0"),
        default_version="2.0.0",
        operations={"1.0.0": _PRODUCT_DATA_V1, "2.0.0": _PRODUCT_DATA_V2},
        type_names=("productdata",),
    ),
    ServiceDescriptor(
        family="invoice",
        name="Invoice",
        code="INVC",
        wsdl_name="Invoice",
        versions=("1.0.0",),
        default_version="1.0.0",
        operations=_same(
            ("1.0.0",),
            (
                OperationSpec("getInvoices", ("queryType",), ("invoiceArray", "invoices")),
                OperationSpec("getVoidedInvoices", (), ("voidedInvoiceArray", "voidedInvoices")),
            ),
        ),
        type_names=("invoice",),
    ),
    ServiceDescriptor(
        family="order_status",
        name="OrderStatus",
        code="ORDSTAT",
        wsdl_name="OrderStatusService",
        versions=("1.0.0", "2.0.0"),
        default_version="2.0.0",
        operations={"1.0.0": _ORDER_STATUS_V1, "2.0.0": _ORDER_STATUS_V2},
        type_names=("orderstatus",),
    ),
    ServiceDescriptor(
        family="order_shipment",
        name="OrderShipmentNotification",
        code="OSN",
        wsdl_name="OrderShipmentNotificationService",
        versions=("1.0.0", "2.0.0", "2.1.0"),
        default_version="2.0.0",
        operations=_same(
            ("1.0.0", "2.0.0", "2.1.0"),
            (
                OperationSpec(
                    "getOrderShipmentNotification",
                    ("queryType",),
                    ("orderShipmentNotificationArray", "salesOrderArray", "shipmentNotification"),
                ),
            ),
        ),
        type_names=("ordershipmentnotification",),
    ),
    ServiceDescriptor(
        family="purchase_order",
        name="PurchaseOrder",
        code="PO",
        wsdl_name="PO",
        versions=("1.0.0", "2.0.0"),
        default_version="1.0.0",
        operations=_same(
            ("1.0.0", "2.0.0"),
            (
                OperationSpec("sendPO", ("PO",), ("transactionId", "poResponse")),
                OperationSpec("getSupportedOrderTypes", (), ("supportedOrderTypes", "orderTypes")),
            ),
        ),
        type_names=("purchaseorder",),
    ),
    ServiceDescriptor(
        family="pricing_config",
        name="PricingConfiguration",
        code="PPC",
        wsdl_name="PricingAndConfiguration",
        versions=("1.0.0", "2.0.0"),
        default_version="1.0.0",
        operations=_same(("1.0.0", "2.0.0"), _PRICING_CONFIG),
        type_names=("productpricingandconfiguration", "ppc"),
    ),
    ServiceDescriptor(
        family="product_media",
        name="ProductMedia",
        code="MED",
        wsdl_name="MediaService",
        versions=("1.0.0", "1.1.0"),
        default_version="1.1.0",
        operations=_same(
            ("1.0.0", "1.1.0"),
            (
                OperationSpec("getMediaContent", ("productId",), ("mediaContentArray", "mediaContent")),
                OperationSpec(
                    "getMediaDateModified",
                    ("changeTimeStamp",),
                    ("mediaDateModifiedArray", "mediaDateModified"),
                ),
            ),
        ),
        type_names=("mediacontent",),
    ),
    ServiceDescriptor(
        family="product_compliance",
        name="ProductCompliance",
        code="PCOMP",
        wsdl_name="ProductComplianceService",
        versions=("1.0.0",),
        default_version="1.0.0",
        operations=_same(
            ("1.0.0",),
            (
                OperationSpec(
                    "getProductComplianceInfo",
                    ("productId",),
                    ("productComplianceArray", "productCompliance"),
                ),
            ),
        ),
        type_names=("productcompliance",),
    ),
    ServiceDescriptor(
        family="company_data",
        name="CompanyData",
        code="COMP",
        wsdl_name="CompanyDataService",
        versions=("1.0.0",),
        default_version="1.0.0",
        operations=_same(("1.0.0",), (OperationSpec("getCompanyInfo", (), ("companyInfo", "company")),)),
        type_names=("companydata",),
    ),
    ServiceDescriptor(
        family="remittance_advice",
        name="RemittanceAdvice",
        code="RA",
        wsdl_name="RemittanceAdvice",
        versions=("1.0.0",),
        default_version="1.0.0",
        operations=_same(
            ("1.0.0",),
            (
                OperationSpec(
                    "getRemittanceAdvice",
                    ("queryType",),
                    ("remittanceAdviceArray", "remittanceAdvice"),
                ),
            ),
        ),
        type_names=("remittanceadvice",),
    ),
)

SERVICE_DESCRIPTORS: dict[str, ServiceDescriptor] = {descriptor.family: descriptor for descriptor in _DESCRIPTORS}


def _squash(value: str) -> str:
    return "".join(ch for ch in value.lower() if ch.isalnum())


def find_family(identifier: str | None) -> str | None:
    """Map a family key, service name, discovery code or type name to a family key."""
    if not identifier:
        return None

    upper = identifier.strip().upper()
    for descriptor in _DESCRIPTORS:
        if descriptor.code == upper:
            return descriptor.family

    squashed = _squash(identifier)
    for descriptor in _DESCRIPTORS:
        candidates = {_squash(descriptor.family), _squash(descriptor.name), *descriptor.type_names}
        if squashed in candidates:
            return descriptor.family
    return None


def get_descriptor(identifier: str) -> ServiceDescriptor:
    family = find_family(identifier)
    if family is None:
        raise PromoStandardsError.validation(
            f"Unknown service: {identifier}",
            {"available_services": list(SERVICE_DESCRIPTORS)},
        )
    return SERVICE_DESCRIPTORS[family]
