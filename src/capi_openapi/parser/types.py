"""Map the prose type column of documentation tables onto OpenAPI schemas."""

import copy
import re
from typing import Any

from capi_openapi.document import SCHEMA_REF_PREFIX

_PRIMITIVES: dict[str, dict[str, Any]] = {
    "string": {"type": "string"},
    "str": {"type": "string"},
    "integer": {"type": "integer"},
    "int": {"type": "integer"},
    "number": {"type": "number"},
    "float": {"type": "number", "format": "float"},
    "boolean": {"type": "boolean"},
    "bool": {"type": "boolean"},
    "uuid": {"type": "string", "format": "uuid"},
    "guid": {"type": "string", "format": "uuid"},
    "timestamp": {"type": "string", "format": "date-time"},
    "datetime": {"type": "string", "format": "date-time"},
    "date-time": {"type": "string", "format": "date-time"},
    "date": {"type": "string", "format": "date"},
    "url": {"type": "string", "format": "uri"},
    "uri": {"type": "string", "format": "uri"},
    "object": {"type": "object"},
    "hash": {"type": "object"},
    "map": {"type": "object"},
}

_RELATIONSHIPS = {
    "to-one relationship": {"$ref": SCHEMA_REF_PREFIX + "ToOneRelationship"},
    "to-many relationship": {
        "type": "object",
        "properties": {
            "data": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {"guid": {"type": "string", "format": "uuid"}},
                },
            }
        },
    },
}

_LIST_RE = re.compile(r"^(?:list|array)\s+of\s+(.+?)s?$|^\[\s*(.+?)\s*\]$")
_OBJECT_RE = re.compile(r"^(.+?)\s+object$")


def normalize_type_text(text: str) -> str:
    text = re.sub(r"\s+", " ", text or "").strip().lower()
    return text.strip("_* ")


def parse_type(text: str) -> dict[str, Any]:
    """Convert a type cell such as ``list of strings`` into a schema.

    Unknown prose falls back to ``{"type": "string"}``; an empty cell gives
    an empty schema so later passes can fill it in.
    """
    normalized = normalize_type_text(text)
    if not normalized:
        return {}

    if normalized in _PRIMITIVES:
        return dict(_PRIMITIVES[normalized])
    if normalized in _RELATIONSHIPS:
        return copy.deepcopy(_RELATIONSHIPS[normalized])

    match = _LIST_RE.match(normalized)
    if match:
        inner = (match.group(1) or match.group(2) or "").strip()
        return {"type": "array", "items": parse_type(inner) or {"type": "string"}}

    # "string or null", "integer or null"
    if normalized.endswith(" or null"):
        schema = parse_type(normalized[: -len(" or null")])
        if schema:
            schema["nullable"] = True
            return schema

    if _OBJECT_RE.match(normalized):
        if normalized in ("metadata object", "labels object", "annotations object"):
            return {"$ref": SCHEMA_REF_PREFIX + "Metadata"}
        return {"type": "object"}

    first = normalized.split()[0]
    if first in _PRIMITIVES:
        return dict(_PRIMITIVES[first])

    return {"type": "string"}


def nest_property(schema: dict[str, Any], dotted_name: str, prop: dict[str, Any], required: bool) -> None:
    """Place ``prop`` into an object schema at a dotted path.

    ``relationships.space`` creates ``properties.relationships`` as an object
    (unless already present) and sets ``space`` inside it. A segment ending in
    ``[]`` becomes an array of objects. ``required`` marks every segment along
    the path as required in its parent.
    """
    segments = [s for s in dotted_name.split(".") if s]
    if not segments:
        return
    node = schema
    for index, segment in enumerate(segments):
        is_array = segment.endswith("[]")
        key = segment[:-2] if is_array else segment
        node.setdefault("type", "object")
        properties = node.setdefault("properties", {})
        if required:
            names = node.setdefault("required", [])
            if key not in names:
                names.append(key)

        last = index == len(segments) - 1
        if last and not is_array:
            existing = properties.get(key)
            if isinstance(existing, dict) and "properties" in existing:
                # a parent row documented after its children keeps the children
                for k, v in prop.items():
                    if k not in ("type", "$ref"):
                        existing.setdefault(k, v)
            else:
                properties[key] = prop
            return

        child = properties.get(key)
        if is_array:
            if not isinstance(child, dict) or child.get("type") != "array":
                child = {"type": "array", "items": {"type": "object"}}
                properties[key] = child
            if last:
                child["items"] = prop or {"type": "object"}
                return
            node = child.setdefault("items", {"type": "object"})
        else:
            if not isinstance(child, dict) or "$ref" in child or child.get("type", "object") != "object":
                child = {"type": "object", **{k: v for k, v in (child or {}).items() if k == "description"}}
                properties[key] = child
            node = child
