"""Structural and convention checks over a finished OpenAPI document.

Read-only. Each check adds findings to a ValidationReport under its own
category; only error-severity findings make ``report.passed`` false.
"""

import re
from collections.abc import Iterable

from capi_openapi.document import (
    format_path,
    iter_operations,
    iter_refs,
    resolve_ref,
    walk,
)
from capi_openapi.generator.passes import (
    BOOLEAN_FIELDS,
    DEFAULT_SECURITY_EXEMPT_PATHS,
    NON_SCHEMA_KEYS,
)
from capi_openapi.generator.predicates import (
    PATH_TEMPLATE_RE,
    is_exempt_from_security,
    is_snake_case,
    is_success_status,
)
from capi_openapi.report import ValidationReport

REQUIRED_TOP_LEVEL = ("openapi", "info", "servers", "tags", "paths", "components")
REQUIRED_COMPONENTS = ("schemas", "parameters", "securitySchemes")
VALID_TYPES = frozenset({"string", "number", "integer", "boolean", "array", "object"})
OPERATION_ID_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")


def check_structure(doc: dict, report: ValidationReport) -> None:
    for key in REQUIRED_TOP_LEVEL:
        if key in doc:
            report.ok("structure")
        else:
            report.add("error", "structure", f"/{key}", f"Missing top-level key '{key}'")
    components = doc.get("components") or {}
    for key in REQUIRED_COMPONENTS:
        if key in components:
            report.ok("structure")
        else:
            report.add("error", "structure", f"/components/{key}", f"Missing 'components.{key}'")


def check_references(doc: dict, report: ValidationReport) -> None:
    for ref, path in iter_refs(doc):
        if resolve_ref(doc, ref) is None:
            report.add("error", "references", format_path(path), f"Dangling reference {ref}")
        else:
            report.ok("references")


def check_data_types(doc: dict, report: ValidationReport) -> None:
    def visit(mapping: dict, path) -> None:
        location = format_path(path)
        declared = mapping.get("type")
        if isinstance(declared, str) and "securitySchemes" not in path:
            if declared in VALID_TYPES:
                report.ok("data_types")
            else:
                report.add("error", "data_types", location, f"Invalid schema type '{declared}'")

        for key in BOOLEAN_FIELDS.intersection(mapping):
            value = mapping[key]
            if isinstance(value, bool):
                report.ok("data_types")
            elif key == "required" and isinstance(value, list):
                continue
            elif key == "additionalProperties" and isinstance(value, dict):
                continue
            else:
                report.add(
                    "error",
                    "data_types",
                    f"{location}/{key}",
                    f"'{key}' must be a boolean, got {value!r}",
                )

    walk(doc, visit, skip_keys=NON_SCHEMA_KEYS)


def check_required_fields(doc: dict, report: ValidationReport) -> None:
    for path, method, operation in iter_operations(doc):
        location = f"{method.upper()} {path}"
        responses = operation.get("responses")
        if not responses:
            report.add("error", "required_fields", location, "Operation has no responses")
        else:
            report.ok("required_fields")
            for status, response in responses.items():
                if isinstance(response, dict) and "$ref" not in response and not response.get("description"):
                    report.add("error", "required_fields", f"{location} {status}", "Response has no description")

        declared_path_params = set()
        path_item = doc["paths"][path]
        for param in [*(path_item.get("parameters") or []), *(operation.get("parameters") or [])]:
            if not isinstance(param, dict):
                continue
            target = resolve_ref(doc, param["$ref"]) if "$ref" in param else param
            if not isinstance(target, dict):
                continue  # reported by check_references
            if not target.get("name") or not target.get("in"):
                report.add("error", "required_fields", location, "Parameter without 'name' or 'in'")
                continue
            if target["in"] == "path":
                declared_path_params.add(target["name"])
                if target.get("required") is not True:
                    report.add(
                        "error",
                        "required_fields",
                        f"{location} {target['name']}",
                        "Path parameter must be required",
                    )
                    continue
            report.ok("required_fields")

        for name in PATH_TEMPLATE_RE.findall(path):
            name = name.strip("{}")
            if name not in declared_path_params:
                report.add("error", "required_fields", location, f"Path parameter '{name}' is not declared")

    def visit(mapping: dict, path) -> None:
        required = mapping.get("required")
        properties = mapping.get("properties")
        if not isinstance(required, list) or not isinstance(properties, dict):
            return
        for name in required:
            if name not in properties:
                report.add(
                    "warning",
                    "required_fields",
                    format_path(path),
                    f"Required property '{name}' is not defined",
                )

    walk(doc, visit, skip_keys=NON_SCHEMA_KEYS)


def check_security(
    doc: dict,
    report: ValidationReport,
    exempt_paths: Iterable[str] = DEFAULT_SECURITY_EXEMPT_PATHS,
) -> None:
    schemes = (doc.get("components") or {}).get("securitySchemes") or {}
    if not schemes:
        report.add("error", "security", "/components/securitySchemes", "No security schemes defined")
    else:
        report.ok("security")

    exempt_paths = tuple(exempt_paths)
    for path, method, operation in iter_operations(doc):
        location = f"{method.upper()} {path}"
        requirements = operation.get("security")
        if not requirements:
            if not is_exempt_from_security(path, exempt_paths):
                report.add("warning", "security", location, "Operation has no security requirement")
            continue
        unknown = [name for req in requirements if isinstance(req, dict) for name in req if name not in schemes]
        for name in unknown:
            report.add("error", "security", location, f"Unknown security scheme '{name}'")
        if not unknown:
            report.ok("security")


def check_response_codes(doc: dict, report: ValidationReport) -> None:
    for path, method, operation in iter_operations(doc):
        location = f"{method.upper()} {path}"
        statuses = [str(s) for s in (operation.get("responses") or {})]
        if not any(is_success_status(s) for s in statuses):
            report.add("warning", "response_codes", location, "No 2xx response defined")
            continue
        if method == "post" and not {"201", "202"} & set(statuses):
            report.add("info", "response_codes", location, "POST without 201 or 202 response")
            continue
        report.ok("response_codes")


def check_schema_ambiguity(doc: dict, report: ValidationReport) -> None:
    def visit(mapping: dict, path) -> None:
        for keyword in ("oneOf", "anyOf"):
            if isinstance(mapping.get(keyword), list):
                if "discriminator" in mapping:
                    report.ok("schema_ambiguity")
                else:
                    report.add(
                        "warning",
                        "schema_ambiguity",
                        format_path(path),
                        f"{keyword} without discriminator",
                    )
                return

    walk(doc, visit, skip_keys=NON_SCHEMA_KEYS)


def check_naming(doc: dict, report: ValidationReport) -> None:
    seen: dict[str, str] = {}
    for path, method, operation in iter_operations(doc):
        location = f"{method.upper()} {path}"
        operation_id = operation.get("operationId")
        if not isinstance(operation_id, str) or not OPERATION_ID_RE.match(operation_id):
            report.add("error", "naming", location, f"Invalid operationId {operation_id!r}")
        elif operation_id in seen:
            report.add(
                "error",
                "naming",
                location,
                f"Duplicate operationId '{operation_id}' (also {seen[operation_id]})",
            )
        else:
            seen[operation_id] = location
            report.ok("naming")

        for param in operation.get("parameters") or []:
            if isinstance(param, dict) and "name" in param and not is_snake_case(str(param["name"])):
                report.add("warning", "naming", location, f"Parameter '{param['name']}' is not snake_case")

    for index, tag in enumerate(doc.get("tags") or []):
        if isinstance(tag, dict) and tag.get("description"):
            report.ok("naming")
        else:
            report.add("warning", "naming", f"/tags/{index}", "Tag has no description")


def validate(
    doc: dict,
    security_exempt_paths: Iterable[str] = DEFAULT_SECURITY_EXEMPT_PATHS,
) -> ValidationReport:
    """Run every check and return the combined report."""
    report = ValidationReport()
    check_structure(doc, report)
    check_references(doc, report)
    check_data_types(doc, report)
    check_required_fields(doc, report)
    check_security(doc, report, security_exempt_paths)
    check_response_codes(doc, report)
    check_schema_ambiguity(doc, report)
    check_naming(doc, report)
    return report
