"""SOAP envelope construction and response body / fault extraction."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from ..errors import PromoStandardsError
from .xml import NormalizedNode, escape_text, pascal_case, render_children

if TYPE_CHECKING:
    from ..wsdl import InterfaceDefinition

SOAP_ENVELOPE_NAMESPACE = "http://schemas.xmlsoap.org/soap/envelope/"
REQUEST_PREFIX = "ns"


@dataclass(frozen=True)
class FaultInfo:
    code: str | None
    message: str | None
    detail: NormalizedNode = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _verbatim(key: str) -> str:
    return key


def _render_request_children(request_body: NormalizedNode) -> str:
    prefix = f"{REQUEST_PREFIX}:"

    if request_body is None:
        return ""
    if isinstance(request_body, dict):
        return render_children(request_body, _verbatim, prefix)
    if isinstance(request_body, list):
        parts = []
        for item in request_body:
            if not isinstance(item, dict):
                raise PromoStandardsError.validation(
                    "Request list items must be key-value objects",
                    {"item_type": type(item).__name__},
                )
            parts.append(render_children(item, _verbatim, prefix))
        return "".join(parts)

    raise PromoStandardsError.validation(
        "Request body must be a key-value object",
        {"body_type": type(request_body).__name__},
    )


def build_envelope(request_body: NormalizedNode, element_name: str, target_namespace: str) -> str:
    """Wrap the request element in a minimal SOAP 1.1 envelope.

    Request keys are emitted as given; PromoStandards schemas already use the
    camelCase element names the payload carries (``wsVersion``, ``productId``).
    """
    if not element_name:
        raise PromoStandardsError.validation("Request element name is required", {})

    inner = _render_request_children(request_body)
    qualified = f"{REQUEST_PREFIX}:{element_name}"
    request_element = (
        f'<{qualified} xmlns:{REQUEST_PREFIX}="{escape_text(target_namespace)}">{inner}</{qualified}>'
    )

    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        f'<soap:Envelope xmlns:soap="{SOAP_ENVELOPE_NAMESPACE}">\n'
        f"  <soap:Body>{request_element}</soap:Body>\n"
        "</soap:Envelope>"
    )


def resolve_element_name(
    operation: str,
    override: str | None = None,
    definition: InterfaceDefinition | None = None,
) -> str:
    """Pick the request element name: caller override, then definition, then convention."""
    if override:
        return override

    if definition is not None:
        discovered = definition.input_element(operation)
        if discovered:
            return discovered

    return f"{pascal_case(operation)}Request"


def _find_key(node: dict[str, Any], fragment: str) -> str | None:
    for key in node:
        if fragment in key.lower():
            return key
    return None


def _locate_body(node: NormalizedNode) -> tuple[NormalizedNode, bool]:
    """Return (body, found); when no body exists return the closest container."""
    if not isinstance(node, dict):
        return node, False

    envelope_key = _find_key(node, "envelope")
    if envelope_key is None:
        return node, False

    envelope = node[envelope_key]
    if not isinstance(envelope, dict):
        return envelope, False

    body_key = _find_key(envelope, "body")
    if body_key is None:
        return envelope, False

    return envelope[body_key], True


def extract_body(node: NormalizedNode) -> NormalizedNode:
    """Return the operation response inside a parsed envelope, whatever its prefix."""
    body, found = _locate_body(node)
    if not found or not isinstance(body, dict):
        return body

    response_keys = [key for key in body if "fault" not in key.lower()]
    if len(response_keys) == 1:
        return body[response_keys[0]]
    return body


def _text_of(value: NormalizedNode) -> str | None:
    if value is None:
        return None
    if isinstance(value, dict):
        # SOAP 1.2 Code/Value and Reason/Text nest the text one level down.
        for key in ("value", "text"):
            if key in value:
                return _text_of(value[key])
        return None
    if isinstance(value, list):
        return _text_of(value[0]) if value else None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def extract_fault(node: NormalizedNode) -> FaultInfo | None:
    """Return the SOAP fault in a parsed envelope, or None when the body holds none."""
    body, found = _locate_body(node)
    if not found or not isinstance(body, dict):
        return None

    fault_key = _find_key(body, "fault")
    if fault_key is None:
        return None

    fault = body[fault_key]
    if not isinstance(fault, dict):
        return FaultInfo(code=None, message=_text_of(fault), detail=None)

    code = _text_of(fault.get("faultcode")) or _text_of(fault.get("code"))
    message = (
        _text_of(fault.get("faultstring"))
        or _text_of(fault.get("reason"))
        or _text_of(fault.get("message"))
    )
    return FaultInfo(code=code, message=message, detail=fault.get("detail"))
