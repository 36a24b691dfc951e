"""Known corrections applied to extracted records before assembly.

Each correction has a stable name and only touches records it recognises by
method + path, parameter name or component name. Running the whole list
twice gives the same result as running it once; anything not listed here
passes through untouched.
"""

import copy
import logging
from collections.abc import Callable
from typing import Any

from capi_openapi.document import SCHEMA_REF_PREFIX
from capi_openapi.parser.base import EndpointRecord, ExtractionResult
from capi_openapi.report import FixReport

logger = logging.getLogger(__name__)

Correction = Callable[[ExtractionResult], int]


def _ref(name: str) -> dict[str, str]:
    return {"$ref": SCHEMA_REF_PREFIX + name}


_GUID = {"type": "string", "format": "uuid"}

SHARED_COMPONENTS: dict[str, dict[str, Any]] = {
    "Error": {
        "type": "object",
        "required": ["errors"],
        "properties": {
            "errors": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["code", "title", "detail"],
                    "properties": {
                        "code": {"type": "integer"},
                        "detail": {"type": "string"},
                        "title": {"type": "string"},
                    },
                },
            }
        },
    },
    "Metadata": {
        "type": "object",
        "properties": {
            "annotations": {"type": "object", "additionalProperties": {"type": "string"}},
            "labels": {"type": "object", "additionalProperties": {"type": "string"}},
        },
    },
    "ToOneRelationship": {
        "type": "object",
        "required": ["data"],
        "properties": {
            "data": {
                "type": "object",
                "required": ["guid"],
                "properties": {"guid": dict(_GUID)},
            }
        },
    },
}


def _to_one(*names: str, required: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {
        "type": "object",
        "properties": {name: _ref("ToOneRelationship") for name in names},
    }
    if required:
        schema["required"] = required
    return schema


POLYMORPHIC_COMPONENTS: dict[str, dict[str, Any]] = {
    "BitsPackage": {
        "type": "object",
        "required": ["type", "relationships"],
        "properties": {
            "type": {"type": "string", "enum": ["bits"], "description": "Package type for buildpack applications"},
            "data": {"type": "object", "description": "Data for bits packages (usually empty)"},
            "metadata": _ref("Metadata"),
            "relationships": _to_one("app", required=["app"]),
        },
    },
    "DockerPackage": {
        "type": "object",
        "required": ["type", "data", "relationships"],
        "properties": {
            "type": {"type": "string", "enum": ["docker"], "description": "Package type for Docker images"},
            "data": {
                "type": "object",
                "required": ["image"],
                "properties": {
                    "image": {"type": "string", "description": "Docker image URL"},
                    "username": {"type": "string", "description": "Username for private Docker registry"},
                    "password": {"type": "string", "description": "Password for private Docker registry"},
                },
            },
            "metadata": _ref("Metadata"),
            "relationships": _to_one("app", required=["app"]),
        },
    },
    "AppCredentialBinding": {
        "type": "object",
        "required": ["type", "relationships"],
        "properties": {
            "type": {"type": "string", "enum": ["app"], "description": "Type of credential binding"},
            "name": {"type": "string", "description": "Name of the service credential binding"},
            "parameters": {"type": "object", "description": "Parameters to pass to the service broker"},
            "metadata": _ref("Metadata"),
            "relationships": _to_one("service_instance", "app", required=["service_instance", "app"]),
        },
    },
    "KeyCredentialBinding": {
        "type": "object",
        "required": ["type", "relationships"],
        "properties": {
            "type": {"type": "string", "enum": ["key"], "description": "Type of credential binding"},
            "name": {
                "type": "string",
                "description": "Name of the service credential binding (required for key type)",
            },
            "parameters": {"type": "object", "description": "Parameters to pass to the service broker"},
            "metadata": _ref("Metadata"),
            "relationships": _to_one("service_instance", "app", required=["service_instance"]),
        },
    },
}

# (method, path) -> discriminator value -> component
POLYMORPHIC_BODIES: dict[tuple[str, str], dict[str, str]] = {
    ("POST", "/v3/packages"): {"bits": "BitsPackage", "docker": "DockerPackage"},
    ("POST", "/v3/service_credential_bindings"): {
        "app": "AppCredentialBinding",
        "key": "KeyCredentialBinding",
    },
}

KNOWN_PARAMETER_SCHEMAS: dict[str, dict[str, Any]] = {
    "guid": dict(_GUID),
    "page": {"type": "integer", "minimum": 1},
    "per_page": {"type": "integer", "minimum": 1, "maximum": 5000},
    "order_by": {"type": "string"},
    "label_selector": {"type": "string"},
    "include": {"type": "string"},
    "created_ats": {"type": "string"},
    "updated_ats": {"type": "string"},
}

# documentation section name -> resource name used as tag
TAG_ALIASES: dict[str, str] = {
    "Service Credential Binding": "Service Credential Bindings",
    "Service Route Binding": "Service Route Bindings",
    "Organizations Quotas": "Organization Quotas",
    "Service Plan Visibility": "Service Plan Visibilities",
}

# extracted "The X object" components that clash with a shared component
COMPONENT_ALIASES: dict[str, str] = {
    "Error": "ErrorDetail",
    "Metadata": "MetadataObject",
}


def add_shared_components(result: ExtractionResult) -> int:
    """Error, Metadata and ToOneRelationship, never overwriting extracted ones."""
    changed = 0
    for name, schema in SHARED_COMPONENTS.items():
        if name not in result.components:
            result.components[name] = copy.deepcopy(schema)
            changed += 1
    return changed


def resolve_component_collisions(result: ExtractionResult) -> int:
    """Move documentation objects that shadow a shared component to an alias."""
    changed = 0
    for name, alias in COMPONENT_ALIASES.items():
        schema = result.components.get(name)
        if schema is None or schema == SHARED_COMPONENTS[name]:
            continue
        result.components.setdefault(alias, schema)
        result.components[name] = copy.deepcopy(SHARED_COMPONENTS[name])
        changed += 1
    return changed


def _set_polymorphic_body(endpoint: EndpointRecord, mapping: dict[str, str]) -> bool:
    body = {
        "oneOf": [_ref(name) for name in mapping.values()],
        "discriminator": {
            "propertyName": "type",
            "mapping": {value: SCHEMA_REF_PREFIX + name for value, name in mapping.items()},
        },
    }
    body_params = endpoint.params_in("body")
    if endpoint.request_body == body and not body_params:
        return False
    endpoint.request_body = body
    endpoint.parameters = [p for p in endpoint.parameters if p.location != "body"]
    return True


def polymorphic_request_bodies(result: ExtractionResult) -> int:
    """Packages (bits vs docker) and credential bindings (app vs key) get a discriminated oneOf."""
    changed = 0
    for (method, path), mapping in POLYMORPHIC_BODIES.items():
        endpoint = result.find(method, path)
        if endpoint is None:
            continue
        for name in mapping.values():
            if name not in result.components:
                result.components[name] = copy.deepcopy(POLYMORPHIC_COMPONENTS[name])
                changed += 1
        if _set_polymorphic_body(endpoint, mapping):
            changed += 1
    return changed


def parameter_types(result: ExtractionResult) -> int:
    """Give a schema type to parameters whose type column was missing or unreadable."""
    changed = 0
    for endpoint in result.endpoints:
        for param in endpoint.parameters:
            if param.schema_.get("type") or "$ref" in param.schema_:
                continue
            known = KNOWN_PARAMETER_SCHEMAS.get(param.name)
            if known is not None:
                param.schema_ = {**param.schema_, **copy.deepcopy(known)}
            elif param.name.endswith(("[gt]", "[gte]", "[lt]", "[lte]")):
                param.schema_ = {**param.schema_, "type": "string", "format": "date-time"}
            else:
                param.schema_ = {**param.schema_, "type": "string"}
            changed += 1
    return changed


def resource_tags(result: ExtractionResult) -> int:
    """Rename documentation section names to the resource name used as tag."""
    changed = 0
    for endpoint in result.endpoints:
        renamed = []
        for tag in endpoint.tags:
            new = TAG_ALIASES.get(tag, tag)
            if new not in renamed:
                renamed.append(new)
        if renamed != endpoint.tags:
            endpoint.tags = renamed
            changed += 1
    return changed


def metadata_fields(result: ExtractionResult) -> int:
    """metadata.labels / metadata.annotations body fields are string maps, not strings."""
    changed = 0
    for endpoint in result.endpoints:
        for param in endpoint.parameters:
            if param.location != "body":
                continue
            if param.name not in ("metadata.labels", "metadata.annotations"):
                continue
            if param.schema_.get("type") == "object" and "additionalProperties" in param.schema_:
                continue
            param.schema_ = {"type": "object", "additionalProperties": {"type": "string"}}
            changed += 1
    return changed


CORRECTIONS: list[tuple[str, Correction]] = [
    ("shared-components", add_shared_components),
    ("component-name-collisions", resolve_component_collisions),
    ("polymorphic-request-bodies", polymorphic_request_bodies),
    ("parameter-types", parameter_types),
    ("resource-name-collisions", resource_tags),
    ("metadata-fields", metadata_fields),
]


def apply_edge_cases(result: ExtractionResult, report: FixReport | None = None) -> ExtractionResult:
    """Apply every known correction in order. Returns the same (mutated) result."""
    report = report if report is not None else FixReport()
    for name, correction in CORRECTIONS:
        changed = correction(result)
        if changed:
            logger.debug("Edge case %s changed %d records", name, changed)
        report.record(f"edge_case:{name}", changed)
    return result
