"""XML → JSON transcoding for Concur API payloads.

Mapping rules:
  - the root element becomes the single top-level key
  - child element names become object keys
  - repeated sibling elements collapse into a list (document order kept)
  - text content stays a string; "10" is never coerced to 10
  - an element with children AND non-blank text keeps the text under "content"
  - empty elements become ""
  - attributes are ignored, namespaces are stripped from tag names
"""

from __future__ import annotations

import json
from xml.etree import ElementTree as ET

from expense_gateway.core.exceptions import TranscodeError

INDENT_FACTOR = 4
CONTENT_KEY = "content"


def _local_name(tag: str) -> str:
    """Strip the ``{namespace}`` prefix ElementTree puts on qualified tags."""
    if tag.startswith("{"):
        return tag.rsplit("}", 1)[1]
    return tag


def _element_value(element: ET.Element) -> dict | str:
    children = list(element)
    text = (element.text or "").strip()
    if not children:
        return text

    value: dict = {}
    for child in children:
        key = _local_name(child.tag)
        child_value = _element_value(child)
        if key not in value:
            value[key] = child_value
        elif isinstance(value[key], list):
            value[key].append(child_value)
        else:
            value[key] = [value[key], child_value]

    # Mixed content: text between children is joined into one string
    tails = [text] + [(child.tail or "").strip() for child in children]
    content = " ".join(t for t in tails if t)
    if content:
        value[CONTENT_KEY] = content
    return value


def xml_to_dict(xml_text: str | bytes) -> dict:
    """Parse *xml_text* and return its JSON-ready dict form.

    Raises:
        TranscodeError: If the payload is not well-formed XML or nests
            deeper than the interpreter can walk.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise TranscodeError(f"Malformed XML payload: {exc}") from exc
    try:
        return {_local_name(root.tag): _element_value(root)}
    except RecursionError as exc:
        raise TranscodeError("XML payload is nested too deeply") from exc


def xml_to_json(xml_text: str | bytes, indent: int = INDENT_FACTOR) -> str:
    """Convert an XML document into indented JSON text."""
    value = xml_to_dict(xml_text)
    try:
        return json.dumps(value, indent=indent, ensure_ascii=False)
    except RecursionError as exc:
        raise TranscodeError("XML payload is nested too deeply") from exc
