"""Detect input formats and load OpenAPI documents."""

import json
from pathlib import Path

import yaml

from capi_openapi.exceptions import InputError


def detect_format(file_path: Path) -> str:
    """Detect the format of an input file.

    Returns: 'html', 'json' or 'yaml'.
    """
    suffix = file_path.suffix.lower()
    if suffix in (".html", ".htm"):
        return "html"
    if suffix == ".json":
        return "json"
    if suffix in (".yaml", ".yml"):
        return "yaml"

    head = file_path.read_text(encoding="utf-8", errors="replace")[:512].lstrip().lower()
    if head.startswith(("<!doctype html", "<html", "<")):
        return "html"
    if head.startswith(("{", "[")):
        return "json"
    return "yaml"


def load_document(file_path: Path) -> dict:
    """Load an OpenAPI document from JSON or YAML.

    Raises InputError when the file is missing, unparseable, or not a mapping.
    """
    if not file_path.is_file():
        raise InputError(f"Spec file not found: {file_path}")

    fmt = detect_format(file_path)
    if fmt == "html":
        raise InputError(f"Expected a JSON or YAML spec, got HTML: {file_path}")

    try:
        text = file_path.read_text(encoding="utf-8")
        if fmt == "json":
            doc = json.loads(text)
        else:
            doc = yaml.safe_load(text)
    except (UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise InputError(f"Cannot parse {file_path}: {e}") from e

    if not isinstance(doc, dict):
        raise InputError(f"Spec root must be a mapping: {file_path}")
    return _string_keys(doc)


def _string_keys(node):
    """YAML reads unquoted keys such as ``200:`` as ints; JSON keys are always strings."""
    if isinstance(node, dict):
        return {str(key): _string_keys(value) for key, value in node.items()}
    if isinstance(node, list):
        return [_string_keys(value) for value in node]
    return node
