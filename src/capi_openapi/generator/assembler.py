"""Turn extracted records into an OpenAPI 3.0 document skeleton."""

import copy
import re
from typing import Any

from capi_openapi.parser.base import EndpointRecord, ExtractionResult, ParamRecord
from capi_openapi.parser.types import nest_property

OPENAPI_VERSION = "3.0.3"
DEFAULT_SERVER_URL = "https://api.example.org"
SECURITY_SCHEME_NAME = "bearerAuth"

INFO: dict[str, Any] = {
    "title": "Cloud Foundry CAPI",
    "description": "Cloud Controller API for Cloud Foundry",
    "contact": {"name": "Cloud Foundry", "url": "https://www.cloudfoundry.org/"},
}

SECURITY_SCHEMES: dict[str, Any] = {
    SECURITY_SCHEME_NAME: {"type": "http", "scheme": "bearer"},
}

PARAMETER_COMPONENTS: dict[str, dict[str, Any]] = {
    "Page": {
        "name": "page",
        "in": "query",
        "description": "Page number",
        "schema": {"type": "integer", "minimum": 1},
    },
    "PerPage": {
        "name": "per_page",
        "in": "query",
        "description": "Number of results per page",
        "schema": {"type": "integer", "minimum": 1, "maximum": 5000},
    },
    "OrderBy": {
        "name": "order_by",
        "in": "query",
        "description": "Field to sort by",
        "schema": {"type": "string"},
    },
    "LabelSelector": {
        "name": "label_selector",
        "in": "query",
        "description": "Label selector (comma-separated list for AND)",
        "schema": {"type": "string"},
    },
}


def derive_operation_id(method: str, path: str) -> str:
    """``GET /v3/apps/{guid}`` -> ``get_apps_by_guid``."""
    rest = path[len("/v3/"):] if path.startswith("/v3/") else path
    rest = rest.replace("/", "_")
    rest = re.sub(r"\{([^}]+)\}", r"by_\1", rest)
    return f"{method.lower()}_{rest}"


def tag_description(tag: str) -> str:
    return f"Operations for {tag}"


def default_response(method: str) -> tuple[str, dict[str, Any]]:
    """The minimal success response used when none is documented."""
    status, description = ("201", "Created") if method.lower() == "post" else ("200", "OK")
    return status, {
        "description": description,
        "content": {"application/json": {"schema": {"type": "object"}}},
    }


def param_to_openapi(param: ParamRecord) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": param.name,
        "in": param.location,
        "description": param.description,
        "required": param.required,
        "schema": copy.deepcopy(param.schema_) or {"type": "string"},
    }
    if param.example is not None:
        data["example"] = param.example
    return data


def request_body_schema(params: list[ParamRecord]) -> dict[str, Any]:
    """Fold body parameters into one object schema. Dotted names nest."""
    schema: dict[str, Any] = {"type": "object", "properties": {}}
    for param in params:
        prop = copy.deepcopy(param.schema_) or {"type": "string"}
        if param.description and "$ref" not in prop:
            prop.setdefault("description", param.description)
        # only top-level names are required by the parent body
        nest_property(schema, param.name, prop, required=False)
        if param.required:
            top = param.name.split(".")[0].removesuffix("[]")
            names = schema.setdefault("required", [])
            if top not in names:
                names.append(top)
    return schema


def build_operation(endpoint: EndpointRecord) -> dict[str, Any]:
    operation: dict[str, Any] = {
        "operationId": endpoint.operation_id or derive_operation_id(endpoint.method, endpoint.path),
        "summary": endpoint.summary,
        "description": endpoint.description,
        "tags": list(endpoint.tags),
        "parameters": [param_to_openapi(p) for p in endpoint.parameters if p.location != "body"],
    }

    body_params = endpoint.params_in("body")
    if endpoint.request_body is not None:
        operation["requestBody"] = {
            "required": True,
            "content": {"application/json": {"schema": copy.deepcopy(endpoint.request_body)}},
        }
    elif body_params:
        operation["requestBody"] = {
            "required": any(p.required for p in body_params),
            "content": {"application/json": {"schema": request_body_schema(body_params)}},
        }

    if endpoint.responses:
        operation["responses"] = copy.deepcopy(endpoint.responses)
    else:
        status, response = default_response(endpoint.method)
        operation["responses"] = {status: response}

    if endpoint.security:
        operation["security"] = copy.deepcopy(endpoint.security)
    for key, value in endpoint.extensions.items():
        operation[key] = copy.deepcopy(value)
    return operation


def assemble(
    result: ExtractionResult,
    version: str = "",
    server_url: str = DEFAULT_SERVER_URL,
) -> dict[str, Any]:
    """Build the OpenAPI document. Pure: ``result`` is not modified."""
    paths: dict[str, dict[str, Any]] = {}
    tags: list[str] = []
    for endpoint in result.endpoints:
        paths.setdefault(endpoint.path, {})[endpoint.method.lower()] = build_operation(endpoint)
        for tag in endpoint.tags:
            if tag not in tags:
                tags.append(tag)

    return {
        "openapi": OPENAPI_VERSION,
        "info": {**copy.deepcopy(INFO), "version": version or "0.0.0"},
        "servers": [{"url": server_url}],
        "tags": [{"name": tag, "description": tag_description(tag)} for tag in tags],
        "paths": paths,
        "components": {
            "schemas": copy.deepcopy(result.components),
            "parameters": copy.deepcopy(PARAMETER_COMPONENTS),
            "securitySchemes": copy.deepcopy(SECURITY_SCHEMES),
        },
    }
