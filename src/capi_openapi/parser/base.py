"""Intermediate representation produced by the HTML extractor.

The extractor turns documentation sections into these models; the edge-case
handler corrects them and the assembler turns them into an OpenAPI document.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]
# "body" never reaches the OpenAPI document: the assembler folds body
# parameters into the request body schema.
ParamLocation = Literal["query", "path", "header", "cookie", "body"]


class ParamRecord(BaseModel):
    """A single parameter row from a documentation table."""

    name: str
    location: ParamLocation
    description: str = ""
    required: bool = False
    schema_: dict[str, Any] = Field(default_factory=dict, alias="schema")
    example: Any = None

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _path_params_required(self) -> "ParamRecord":
        if self.location == "path":
            self.required = True
        return self


class ExampleBlock(BaseModel):
    """An example request or response snippet."""

    kind: Literal["request", "response", "other"]
    text: str
    status: str | None = None
    body: Any = None


class EndpointRecord(BaseModel):
    """One HTTP method bound to one path, as documented."""

    method: HttpMethod
    path: str  # /v3/apps/{guid}
    summary: str = ""
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    parameters: list[ParamRecord] = Field(default_factory=list)
    request_body: dict[str, Any] | None = None
    responses: dict[str, dict[str, Any]] = Field(default_factory=dict)
    security: list[dict[str, list[str]]] = Field(default_factory=list)
    extensions: dict[str, Any] = Field(default_factory=dict)
    operation_id: str | None = None
    examples: list[ExampleBlock] = Field(default_factory=list)

    @property
    def key(self) -> tuple[str, str]:
        return self.method, self.path

    def add_tag(self, tag: str) -> None:
        if tag and tag not in self.tags:
            self.tags.append(tag)

    def params_in(self, location: str) -> list[ParamRecord]:
        return [p for p in self.parameters if p.location == location]


class SkippedSection(BaseModel):
    """A documentation section the extractor could not turn into a record."""

    heading: str
    anchor: str = ""
    reason: str


class ExtractionResult(BaseModel):
    """Everything extracted from one HTML document."""

    endpoints: list[EndpointRecord] = Field(default_factory=list)
    components: dict[str, dict[str, Any]] = Field(default_factory=dict)
    skipped: list[SkippedSection] = Field(default_factory=list)

    def find(self, method: str, path: str) -> EndpointRecord | None:
        for endpoint in self.endpoints:
            if endpoint.method == method and endpoint.path == path:
                return endpoint
        return None
