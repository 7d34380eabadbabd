from .envelope import FaultInfo, build_envelope, extract_body, extract_fault, resolve_element_name
from .xml import NormalizedNode, build_xml, camel_case, coerce_text, parse_xml, pascal_case

__all__ = [
    "FaultInfo",
    "NormalizedNode",
    "build_envelope",
    "build_xml",
    "camel_case",
    "coerce_text",
    "extract_body",
    "extract_fault",
    "parse_xml",
    "pascal_case",
    "resolve_element_name",
]
