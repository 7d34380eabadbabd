"""XML <-> JSON conversion with PromoStandards casing and type coercion rules.

Parsing folds every element and attribute name to lowerCamelCase and coerces
leaf text (empty -> None, "true"/"false" -> bool, complete numbers -> int or
float). Building goes the other way with a deliberately simpler casing rule:
only the first character of each key is uppercased, so parse -> build is not
an exact inverse for names such as ``ProductID``.
"""

import math
import re
from typing import Any, Callable, Union
from xml.sax.saxutils import escape

from lxml import etree

from ..errors import PromoStandardsError

NormalizedNode = Union[None, bool, int, float, str, list["NormalizedNode"], dict[str, "NormalizedNode"]]

TEXT_KEY = "value"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

_DECLARATION_RE = re.compile(r"^\s*<\?xml[^>]*\?>")
_WORD_RE = re.compile(
    r"[A-Z]?[a-z]+(?=[^A-Za-z0-9]|[A-Z]|$)"
    r"|[A-Z]+(?=[^A-Za-z0-9]|[A-Z][a-z]|$)"
    r"|[A-Z]?[a-z]+"
    r"|[A-Z]+"
    r"|[0-9]+"
)
_ESCAPE_ENTITIES = {'"': "&quot;", "'": "&apos;"}
_NON_NUMERIC_WORDS = {"nan", "inf", "infinity"}


def camel_case(name: str) -> str:
    """Fold PascalCase, snake_case and SCREAMING_SNAKE names to lowerCamelCase."""
    words = _WORD_RE.findall(name)
    if not words:
        return ""
    head, *tail = words
    return head.lower() + "".join(word[:1].upper() + word[1:].lower() for word in tail)


def pascal_case(name: str) -> str:
    """Uppercase the first character only; the rest of the key is kept verbatim."""
    return name[:1].upper() + name[1:]


def _to_number(text: str) -> int | float | None:
    candidate = text.strip()
    if not candidate or "_" in candidate:
        return None
    if candidate.lower().lstrip("+-") in _NON_NUMERIC_WORDS:
        return None

    try:
        number = float(candidate)
    except ValueError:
        return None

    if not math.isfinite(number):
        return None
    if number.is_integer():
        try:
            return int(candidate)
        except ValueError:
            return int(number)
    return number


def coerce_text(text: str | None) -> NormalizedNode:
    """Apply the leaf coercion rules to one text value."""
    if text is None or text == "":
        return None
    if text == "true":
        return True
    if text == "false":
        return False

    number = _to_number(text)
    if number is not None:
        return number
    return text


def _local_name(tag: str) -> str:
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def _own_text(element: Any) -> str:
    parts = [element.text or ""]
    for child in element:
        parts.append(child.tail or "")
    return "".join(parts)


def _element_value(element: Any) -> NormalizedNode:
    children = [child for child in element if isinstance(child.tag, str)]
    text = _own_text(element)

    if not children and not element.attrib:
        return coerce_text(text)

    node: dict[str, NormalizedNode] = {}
    for name, value in element.attrib.items():
        node[camel_case(_local_name(name))] = coerce_text(value)

    child_keys: set[str] = set()
    repeated: set[str] = set()
    for child in children:
        key = camel_case(_local_name(child.tag))
        value = _element_value(child)

        if key not in child_keys:
            node[key] = value
            child_keys.add(key)
        elif key in repeated:
            node[key].append(value)
        else:
            node[key] = [node[key], value]
            repeated.add(key)

    if text.strip():
        node[TEXT_KEY] = coerce_text(text)

    return node


def _parse_document(xml_text: str | bytes) -> Any:
    parser = etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=True, remove_pis=True)
    try:
        if isinstance(xml_text, str):
            # lxml rejects unicode input that still carries an encoding declaration.
            return etree.fromstring(_DECLARATION_RE.sub("", xml_text, count=1), parser)
        return etree.fromstring(xml_text, parser)
    except etree.XMLSyntaxError as exc:
        raise PromoStandardsError.validation(
            f"XML parsing failed: {exc}",
            {"reason": "malformed_xml"},
        ) from exc


def parse_xml(xml_text: str | bytes) -> NormalizedNode:
    """Parse an XML document into a NormalizedNode keyed by the root element name."""
    if not xml_text or not xml_text.strip():
        raise PromoStandardsError.validation("XML parsing failed: empty document", {"reason": "malformed_xml"})

    root = _parse_document(xml_text)
    return {camel_case(_local_name(root.tag)): _element_value(root)}


def escape_text(value: Any) -> str:
    """Escape the five XML-reserved characters."""
    return escape(str(value), _ESCAPE_ENTITIES)


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return escape_text(value)


def render_element(tag: str, value: Any, key_transform: Callable[[str], str], prefix: str = "") -> str:
    """Render one key/value pair as XML; lists become repeated siblings, None is skipped."""
    if value is None:
        return ""

    if isinstance(value, (list, tuple)):
        return "".join(render_element(tag, item, key_transform, prefix) for item in value)

    qualified = f"{prefix}{tag}"
    if isinstance(value, dict):
        inner = render_children(value, key_transform, prefix)
        return f"<{qualified}>{inner}</{qualified}>"

    return f"<{qualified}>{_scalar_text(value)}</{qualified}>"


def render_children(node: dict[str, Any], key_transform: Callable[[str], str], prefix: str = "") -> str:
    return "".join(render_element(key_transform(key), value, key_transform, prefix) for key, value in node.items())


def build_xml(node: NormalizedNode, root_element_name: str = "Request", *, declaration: bool = True) -> str:
    """Serialize a NormalizedNode under ``root_element_name`` with PascalCased keys."""
    head = XML_DECLARATION if declaration else ""

    if node is None or node == {}:
        return f"{head}<{root_element_name}/>"

    if isinstance(node, dict):
        inner = render_children(node, pascal_case)
        return f"{head}<{root_element_name}>{inner}</{root_element_name}>"

    if isinstance(node, (list, tuple)):
        # A document has exactly one root element.
        raise PromoStandardsError.validation(
            "Root node must be a key-value object or scalar",
            {"node_type": type(node).__name__, "root_element": root_element_name},
        )

    return head + render_element(root_element_name, node, pascal_case)
