"""Normalization passes over an assembled OpenAPI document.

Every pass has the signature ``pass_(doc, report) -> doc``: it corrects one
class of defect in place, records how many changes it made on the
FixReport, and returns the document. Every pass is idempotent, so the
pipeline (or any single pass) can be re-run safely.

``normalize`` runs them in the order listed in ``PASSES``.
"""

import copy
import logging
from collections.abc import Callable, Iterable, Iterator
from functools import partial
from typing import Any

from capi_openapi.document import (
    HTTP_METHODS,
    PARAMETER_REF_PREFIX,
    iter_operations,
    resolve_ref,
    walk,
)
from capi_openapi.generator.assembler import (
    PARAMETER_COMPONENTS,
    SECURITY_SCHEME_NAME,
    SECURITY_SCHEMES,
    default_response,
    derive_operation_id,
    tag_description,
)
from capi_openapi.generator.predicates import (
    is_exempt_from_security,
    is_list_operation,
    is_parameterized_path,
    is_success_status,
)
from capi_openapi.report import FixReport

logger = logging.getLogger(__name__)

Pass = Callable[[dict, FixReport], dict]

BOOLEAN_FIELDS = frozenset(
    {
        "required",
        "nullable",
        "deprecated",
        "readOnly",
        "writeOnly",
        "uniqueItems",
        "additionalProperties",
        "exclusiveMinimum",
        "exclusiveMaximum",
        "allowEmptyValue",
        "explode",
        "allowReserved",
    }
)
# example payloads are data, not schema
NON_SCHEMA_KEYS = frozenset({"example", "examples", "default", "enum"})

PARAMETER_EXAMPLES: dict[str, Any] = {
    "guid": "6a2e4ce4-5d2b-4e36-9b5a-3e6f0d6c8f3e",
    "page": 1,
    "per_page": 50,
    "order_by": "-created_at",
    "label_selector": "environment=production",
    "include": "space",
    "guids": "guid1,guid2",
    "names": "name1,name2",
    "organization_guids": "org-guid1,org-guid2",
    "space_guids": "space-guid1,space-guid2",
}

DEFAULT_SECURITY_EXEMPT_PATHS = ("/v3/info",)


# -- helpers -------------------------------------------------------------------


def _to_bool(value: Any) -> bool | None:
    """The boolean meaning of a 0/1 or "true"/"false"/"1"/"0"/"" value, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1"):
            return True
        if lowered in ("false", "0", ""):
            return False
    return None


def parameter_identity(doc: dict, param: dict) -> tuple[str, str]:
    """(location, name) of a parameter, resolving ``$ref`` parameters first.

    A reference that does not resolve is identified by the reference itself.
    """
    ref = param.get("$ref")
    if isinstance(ref, str):
        target = resolve_ref(doc, ref)
        if isinstance(target, dict) and target.get("name"):
            return str(target.get("in", "")), str(target["name"])
        return "$ref", ref
    return str(param.get("in", "")), str(param.get("name", ""))


def _parameter_lists(doc: dict) -> Iterator[list]:
    """Every parameter list in the document: path level, then operation level."""
    for path in sorted(doc.get("paths") or {}):
        item = doc["paths"][path]
        if not isinstance(item, dict):
            continue
        if isinstance(item.get("parameters"), list):
            yield item["parameters"]
        for method in HTTP_METHODS:
            operation = item.get(method)
            if isinstance(operation, dict) and isinstance(operation.get("parameters"), list):
                yield operation["parameters"]


def _inline_parameters(doc: dict) -> Iterator[dict]:
    for params in _parameter_lists(doc):
        for param in params:
            if isinstance(param, dict) and "$ref" not in param:
                yield param
    for param in ((doc.get("components") or {}).get("parameters") or {}).values():
        if isinstance(param, dict) and "$ref" not in param:
            yield param


# -- passes ----------------------------------------------------------------------


def filter_paths(doc: dict, report: FixReport) -> dict:
    """Drop paths outside ``/v3`` (scrape artifacts such as ``/``)."""
    paths = doc.get("paths") or {}
    dropped = [path for path in paths if not path.startswith("/v3")]
    for path in dropped:
        del paths[path]
    report.record("filter_paths", len(dropped))
    return doc


def coerce_booleans(doc: dict, report: FixReport) -> dict:
    """Turn 0/1 and "true"/"false"/"1"/"0"/"" into real booleans for boolean fields."""
    changed = 0

    def visit(mapping: dict, path) -> None:
        nonlocal changed
        for key in BOOLEAN_FIELDS.intersection(mapping):
            coerced = _to_bool(mapping[key])
            if coerced is not None:
                mapping[key] = coerced
                changed += 1

    walk(doc, visit, skip_keys=NON_SCHEMA_KEYS)
    report.record("coerce_booleans", changed)
    return doc


def repair_operation_ids(doc: dict, report: FixReport) -> dict:
    """Synthesize missing operationIds and make them unique with _1, _2 suffixes."""
    changed = 0
    seen: set[str] = set()
    for path, method, operation in iter_operations(doc):
        current = operation.get("operationId")
        base = current
        if not isinstance(base, str) or base.strip() in ("", "_"):
            base = derive_operation_id(method, path)
        candidate = base
        suffix = 0
        while candidate in seen:
            suffix += 1
            candidate = f"{base}_{suffix}"
        if candidate != current:
            operation["operationId"] = candidate
            changed += 1
        seen.add(candidate)
    report.record("repair_operation_ids", changed)
    return doc


def backfill_security(
    doc: dict,
    report: FixReport,
    exempt_paths: Iterable[str] = DEFAULT_SECURITY_EXEMPT_PATHS,
) -> dict:
    """Operations without a security requirement get bearer auth."""
    exempt_paths = tuple(exempt_paths)
    changed = 0
    for path, _method, operation in iter_operations(doc):
        if is_exempt_from_security(path, exempt_paths):
            continue
        if not operation.get("security"):
            operation["security"] = [{SECURITY_SCHEME_NAME: []}]
            changed += 1
    report.record("backfill_security", changed)
    return doc


def backfill_pagination(doc: dict, report: FixReport) -> dict:
    """List endpoints on collection paths get page/per_page parameters."""
    changed = 0
    pagination = [
        (("query", PARAMETER_COMPONENTS[name]["name"]), PARAMETER_REF_PREFIX + name)
        for name in ("Page", "PerPage")
    ]
    for path, method, operation in iter_operations(doc):
        if method != "get" or is_parameterized_path(path) or not is_list_operation(operation):
            continue
        params = operation.setdefault("parameters", [])
        identities = {parameter_identity(doc, p) for p in params if isinstance(p, dict)}
        refs = {p.get("$ref") for p in params if isinstance(p, dict)}
        for identity, ref in pagination:
            if identity in identities or ref in refs:
                continue
            params.append({"$ref": ref})
            changed += 1
    report.record("backfill_pagination", changed)
    return doc


def fix_parameters(doc: dict, report: FixReport) -> dict:
    """Examples for well-known parameters; path parameters required; a schema for every parameter."""
    changed = 0
    for param in _inline_parameters(doc):
        name = param.get("name")
        if name in PARAMETER_EXAMPLES and "example" not in param:
            param["example"] = PARAMETER_EXAMPLES[name]
            changed += 1
        if param.get("in") == "path" and param.get("required") is not True:
            param["required"] = True
            changed += 1
        if not isinstance(param.get("schema"), dict) and "content" not in param:
            param["schema"] = {"type": "string"}
            changed += 1
    report.record("fix_parameters", changed)
    return doc


def backfill_components(doc: dict, report: FixReport) -> dict:
    """Page/PerPage parameter components and the bearer security scheme exist."""
    changed = 0
    components = doc.setdefault("components", {})
    components.setdefault("schemas", {})
    parameters = components.setdefault("parameters", {})
    for name in ("Page", "PerPage"):
        if name not in parameters:
            parameters[name] = copy.deepcopy(PARAMETER_COMPONENTS[name])
            changed += 1
    schemes = components.setdefault("securitySchemes", {})
    if SECURITY_SCHEME_NAME not in schemes:
        schemes[SECURITY_SCHEME_NAME] = copy.deepcopy(SECURITY_SCHEMES[SECURITY_SCHEME_NAME])
        changed += 1
    report.record("backfill_components", changed)
    return doc


def backfill_tags(doc: dict, report: FixReport) -> dict:
    """Declare every tag used by an operation, each with a description."""
    changed = 0
    tags = doc.setdefault("tags", [])
    declared = {t.get("name"): t for t in tags if isinstance(t, dict)}
    for tag in declared.values():
        if not tag.get("description") and tag.get("name"):
            tag["description"] = tag_description(tag["name"])
            changed += 1
    for _path, _method, operation in iter_operations(doc):
        for name in operation.get("tags") or []:
            if name not in declared:
                declared[name] = {"name": name, "description": tag_description(name)}
                tags.append(declared[name])
                changed += 1
    report.record("backfill_tags", changed)
    return doc


def backfill_responses(doc: dict, report: FixReport) -> dict:
    """Operations with no 2xx response get 201 Created (POST) or 200 OK."""
    changed = 0
    for _path, method, operation in iter_operations(doc):
        responses = operation.setdefault("responses", {})
        if any(is_success_status(status) for status in responses):
            continue
        status, response = default_response(method)
        responses[status] = response
        changed += 1
    report.record("backfill_responses", changed)
    return doc


def _merge_into(first: dict, duplicate: dict) -> None:
    for key in ("description", "example", "schema", "required"):
        if first.get(key) in (None, "") and duplicate.get(key) not in (None, ""):
            first[key] = copy.deepcopy(duplicate[key])


def dedupe_parameters(doc: dict, report: FixReport) -> dict:
    """Keep the first parameter of each (location, name); merge missing fields from the rest."""
    changed = 0
    for params in _parameter_lists(doc):
        kept: list = []
        by_identity: dict[tuple[str, str], dict] = {}
        for param in params:
            if not isinstance(param, dict):
                kept.append(param)
                continue
            identity = parameter_identity(doc, param)
            first = by_identity.get(identity)
            if first is None:
                by_identity[identity] = param
                kept.append(param)
                continue
            if "$ref" not in first:
                source = param
                if "$ref" in param:
                    source = resolve_ref(doc, param["$ref"]) or {}
                _merge_into(first, source)
            changed += 1
        if len(kept) != len(params):
            params[:] = kept
    report.record("dedupe_parameters", changed)
    return doc


def merge_path_parameters(doc: dict, report: FixReport) -> dict:
    """Copy path-level parameters into every operation, then drop the path-level list."""
    changed = 0
    for path in sorted(doc.get("paths") or {}):
        item = doc["paths"][path]
        if not isinstance(item, dict) or "parameters" not in item:
            continue
        shared = item.pop("parameters") or []
        changed += 1
        for method in HTTP_METHODS:
            operation = item.get(method)
            if not isinstance(operation, dict):
                continue
            params = operation.setdefault("parameters", [])
            identities = {parameter_identity(doc, p) for p in params if isinstance(p, dict)}
            refs = {p.get("$ref") for p in params if isinstance(p, dict) and "$ref" in p}
            inherited = []
            for param in shared:
                if not isinstance(param, dict):
                    continue
                identity = parameter_identity(doc, param)
                if identity in identities or ("$ref" in param and param["$ref"] in refs):
                    continue
                identities.add(identity)
                inherited.append(copy.deepcopy(param))
            params[:0] = inherited
    report.record("merge_path_parameters", changed)
    return doc


PASSES: list[tuple[str, Pass]] = [
    ("filter_paths", filter_paths),
    ("coerce_booleans", coerce_booleans),
    ("repair_operation_ids", repair_operation_ids),
    ("backfill_security", backfill_security),
    ("backfill_pagination", backfill_pagination),
    ("fix_parameters", fix_parameters),
    ("backfill_components", backfill_components),
    ("backfill_tags", backfill_tags),
    ("backfill_responses", backfill_responses),
    ("dedupe_parameters", dedupe_parameters),
    ("merge_path_parameters", merge_path_parameters),
]


def normalize(
    doc: dict,
    report: FixReport | None = None,
    security_exempt_paths: Iterable[str] = DEFAULT_SECURITY_EXEMPT_PATHS,
) -> tuple[dict, FixReport]:
    """Run every pass in order. Returns the document and the FixReport."""
    report = report if report is not None else FixReport()
    for name, pass_ in PASSES:
        if pass_ is backfill_security:
            pass_ = partial(backfill_security, exempt_paths=security_exempt_paths)
        before = report.total
        doc = pass_(doc, report)
        logger.debug("Pass %s made %d changes", name, report.total - before, extra={"pass_name": name})
    return doc, report
