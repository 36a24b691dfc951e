"""Helpers for working with an OpenAPI document held as a JSON tree.

The document is plain ``dict``/``list``/scalar values, exactly what
``json.load`` returns. Passes and checks visit it through the helpers here
so traversal order is always the same.
"""

import json
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import yaml

HTTP_METHODS = ("get", "post", "put", "patch", "delete", "head", "options")

SCHEMA_REF_PREFIX = "#/components/schemas/"
PARAMETER_REF_PREFIX = "#/components/parameters/"

JsonPath = tuple[str | int, ...]

# Mappings whose keys are user-chosen names (a property called "default"),
# not schema keywords.
NAMED_MAPPING_KEYS = frozenset({
    "properties",
    "patternProperties",
    "paths",
    "schemas",
    "parameters",
    "responses",
    "requestBodies",
    "headers",
    "securitySchemes",
    "content",
    "encoding",
    "links",
    "callbacks",
})


def walk(
    node: Any,
    visit: Callable[[dict, JsonPath], None],
    path: JsonPath = (),
    skip_keys: frozenset[str] = frozenset(),
) -> None:
    """Call ``visit(mapping, path)`` for every mapping in the tree, parents first.

    Values stored under a key in ``skip_keys`` (e.g. ``example``) are not entered,
    unless the mapping is keyed by names, such as a ``properties`` mapping.
    """
    _walk(node, visit, path, skip_keys, named=False)


def _walk(node, visit, path, skip_keys, named):
    if isinstance(node, dict):
        visit(node, path)
        for key, value in list(node.items()):
            if named:
                _walk(value, visit, path + (key,), skip_keys, named=False)
            elif key not in skip_keys:
                _walk(value, visit, path + (key,), skip_keys, named=key in NAMED_MAPPING_KEYS)
    elif isinstance(node, list):
        for index, value in enumerate(node):
            _walk(value, visit, path + (index,), skip_keys, named=False)


def format_path(path: JsonPath) -> str:
    """Render a tree path as a JSON pointer-ish string for reports."""
    return "/" + "/".join(str(p).replace("~", "~0").replace("/", "~1") for p in path)


def iter_operations(doc: dict) -> Iterator[tuple[str, str, dict]]:
    """Yield (path, method, operation) in sorted path order, then fixed method order."""
    paths = doc.get("paths") or {}
    for path in sorted(paths):
        item = paths[path]
        if not isinstance(item, dict):
            continue
        for method in HTTP_METHODS:
            operation = item.get(method)
            if isinstance(operation, dict):
                yield path, method, operation


def iter_refs(node: Any) -> Iterator[tuple[str, JsonPath]]:
    """Yield every ``$ref`` string in the tree with its location."""
    found: list[tuple[str, JsonPath]] = []

    def visit(mapping: dict, path: JsonPath) -> None:
        ref = mapping.get("$ref")
        if isinstance(ref, str):
            found.append((ref, path))

    walk(node, visit)
    yield from found


def resolve_ref(doc: dict, ref: str) -> Any | None:
    """Resolve a local ``#/...`` reference, or return None if it does not resolve."""
    if not ref.startswith("#/"):
        return None
    node: Any = doc
    for part in ref[2:].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def dump_json(doc: Any) -> str:
    """Canonical JSON: sorted keys, two-space indent, trailing newline."""
    return json.dumps(doc, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def dump_yaml(doc: Any) -> str:
    return yaml.safe_dump(doc, sort_keys=True, allow_unicode=True, default_flow_style=False)


def write_document(doc: dict, base_path: Path, fmt: str = "json") -> list[Path]:
    """Write ``doc`` next to ``base_path`` as .json, .yaml or both.

    Returns the paths written.
    """
    base_path.parent.mkdir(parents=True, exist_ok=True)
    written = []
    if fmt in ("json", "both"):
        target = base_path.with_suffix(".json")
        target.write_text(dump_json(doc), encoding="utf-8")
        written.append(target)
    if fmt in ("yaml", "both"):
        target = base_path.with_suffix(".yaml")
        target.write_text(dump_yaml(doc), encoding="utf-8")
        written.append(target)
    return written
