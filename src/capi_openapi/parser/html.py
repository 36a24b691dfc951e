"""CAPI v3 HTML documentation extractor.

The documentation is one long page. Every resource is an ``h2``, every
operation or object description an ``h3``, and the parts of an operation
(definition, parameter tables, permitted roles, errors) are ``h4``
sub-headings followed by a ``<code>`` span or a ``<table>``::

    <h2>Apps</h2>
    <h3 id="create-an-app">Create an app</h3>
    <pre>Example Request</pre> <pre>curl "https://api.example.org/v3/apps" ...</pre>
    <h4>Definition</h4> <p><code>POST /v3/apps</code></p>
    <h4>Required parameters</h4> <table>...</table>

The page is read as a stream of block nodes in document order and fed
through a small state machine (before-section, in-section,
in-parameter-table). An ``h1``/``h2``/``h3`` always ends the current
section, so tables never bleed into the next operation. Anything that
cannot be understood is recorded in ``ExtractionResult.skipped`` and
extraction carries on.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup, Tag

from capi_openapi.exceptions import ExtractionError, InputError
from capi_openapi.parser.base import (
    EndpointRecord,
    ExampleBlock,
    ExtractionResult,
    ParamRecord,
    SkippedSection,
)
from capi_openapi.parser.types import nest_property, parse_type

logger = logging.getLogger(__name__)

METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
BODY_METHODS = ("POST", "PUT", "PATCH")
BLOCK_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6", "p", "pre", "table", "code"]

DEFINITION_RE = re.compile(r"^\s*([A-Z]+)\s+(/\S*)\s*$")
PATH_PARAM_RE = re.compile(r"/:([A-Za-z_][A-Za-z0-9_]*)")
OBJECT_HEADING_RE = re.compile(r"^the\s+(.+?)\s+object$", re.IGNORECASE)
STATUS_LINE_RE = re.compile(r"^HTTP/\d(?:\.\d)?\s+(\d{3})\s*(.*)$")
RELATIONAL_RE = re.compile(r"relational\s+operators?", re.IGNORECASE)
RELATIONAL_OPERATORS = ("gt", "gte", "lt", "lte")


class State(Enum):
    BEFORE_SECTION = "before-section"
    IN_SECTION = "in-section"
    IN_PARAMETER_TABLE = "in-parameter-table"


# sub-heading text -> table kind
TABLE_KINDS = (
    ("required parameters", "required"),
    ("optional parameters", "optional"),
    ("query parameters", "query"),
    ("permitted roles", "roles"),
    ("errors", "errors"),
)


def classify_subheading(text: str) -> str | None:
    """Return the table kind announced by an h4 sub-heading, if any."""
    lowered = _clean(text).lower()
    if lowered.startswith("definition"):
        return "definition"
    for prefix, kind in TABLE_KINDS:
        if lowered.startswith(prefix) or lowered.startswith("potential " + prefix):
            return kind
    return None


def parse_definition(text: str) -> tuple[str, str] | None:
    """Split ``METHOD /path`` on the first whitespace and convert ``:param`` to ``{param}``.

    Returns None when the text is not a definition of a supported method.
    """
    match = DEFINITION_RE.match(_clean(text))
    if not match:
        return None
    method, path = match.group(1), match.group(2)
    if method not in METHODS:
        return None
    path = path.split("?", 1)[0]
    path = PATH_PARAM_RE.sub(r"/{\1}", path)
    if len(path) > 1:
        path = path.rstrip("/")
    return method, path


def component_name(noun: str) -> str:
    """``service credential binding`` -> ``ServiceCredentialBinding``."""
    words = re.split(r"[\s_\-]+", noun.strip())
    return "".join(w[:1].upper() + w[1:] for w in words if w)


@dataclass
class _Section:
    heading: str
    anchor: str
    tag: str | None
    level: int
    definition: tuple[str, str] | None = None
    fallback_definition: tuple[str, str] | None = None
    malformed_definition: str | None = None
    paragraphs: list[str] = field(default_factory=list)
    seen_subheading: bool = False
    table_kind: str | None = None
    rows: dict[str, list[list[Tag]]] = field(default_factory=dict)
    field_rows: list[list[Tag]] = field(default_factory=list)
    examples: list[ExampleBlock] = field(default_factory=list)
    pending_label: str | None = None

    @property
    def object_name(self) -> str | None:
        match = OBJECT_HEADING_RE.match(self.heading)
        return component_name(match.group(1)) if match else None


class HtmlExtractor:
    """Walks the documentation and accumulates an ExtractionResult."""

    def __init__(self) -> None:
        self.result = ExtractionResult()
        self.state = State.BEFORE_SECTION
        self.section: _Section | None = None
        self.tag: str | None = None

    def extract(self, html: str) -> ExtractionResult:
        if not html or not html.strip():
            raise ExtractionError("HTML document is empty")
        soup = BeautifulSoup(html, "lxml")
        root = soup.body or soup

        for node in root.find_all(BLOCK_TAGS):
            if self._is_nested(node):
                continue
            self._feed(node)
        self._close_section()

        logger.info(
            "Extracted %d operations, %d components, skipped %d sections",
            len(self.result.endpoints),
            len(self.result.components),
            len(self.result.skipped),
        )
        return self.result

    # -- stream -----------------------------------------------------------

    @staticmethod
    def _is_nested(node: Tag) -> bool:
        # Tables and pre blocks are consumed whole.
        if node.name == "table":
            return node.find_parent("table") is not None
        return node.find_parent(["table", "pre"]) is not None

    def _feed(self, node: Tag) -> None:
        name = node.name
        if name in ("h1", "h2", "h3"):
            self._on_heading(int(name[1]), node)
        else:
            if self.section is None:
                self._open_untitled_section()
            if name in ("h4", "h5", "h6"):
                self._on_subheading(node)
            elif name == "code":
                self._on_code(node)
            elif name == "p":
                self._on_paragraph(node)
            elif name == "pre":
                self._on_pre(node)
            elif name == "table":
                self._on_table(node)

    def _on_heading(self, level: int, node: Tag) -> None:
        self._close_section()
        text = _clean(node.get_text())
        if level == 1:
            self.tag = None
        elif level == 2:
            self.tag = text or None
        self.section = _Section(heading=text, anchor=node.get("id", ""), tag=self.tag, level=level)
        self.state = State.IN_SECTION

    def _open_untitled_section(self) -> None:
        # Content before the first heading, kept so a stray definition is not lost.
        self.section = _Section(heading="", anchor="", tag=self.tag, level=0)
        self.state = State.IN_SECTION

    def _on_subheading(self, node: Tag) -> None:
        self.section.seen_subheading = True
        kind = classify_subheading(node.get_text())
        self.section.table_kind = kind
        if kind in (None, "definition"):
            self.state = State.IN_SECTION
        else:
            self.state = State.IN_PARAMETER_TABLE

    def _on_code(self, node: Tag) -> None:
        self._try_definition(node.get_text())

    def _on_paragraph(self, node: Tag) -> None:
        text = _clean(node.get_text())
        if not text or self._try_definition(text):
            return
        if not self.section.seen_subheading:
            self.section.paragraphs.append(text)

    def _try_definition(self, text: str) -> bool:
        """Record a ``METHOD /path`` definition. Returns True if ``text`` was one.

        A definition under the "Definition" sub-heading wins over one found
        anywhere else in the section.
        """
        section = self.section
        in_definition = section.table_kind == "definition"
        parsed = parse_definition(text)
        if parsed is None:
            cleaned = _clean(text)
            if in_definition and section.definition is None and re.match(r"^[A-Z]{3,}\b", cleaned):
                section.malformed_definition = cleaned
            return False
        if in_definition and section.definition is None:
            section.definition = parsed
        elif section.fallback_definition is None:
            section.fallback_definition = parsed
        return True

    def _on_pre(self, node: Tag) -> None:
        text = node.get_text().strip()
        if not text:
            return
        lowered = text.lower()
        if lowered in ("example request", "example response"):
            self.section.pending_label = lowered.split()[-1]
            return

        label = self.section.pending_label
        self.section.pending_label = None
        status_match = STATUS_LINE_RE.match(text.splitlines()[0].strip())
        if status_match:
            self.section.examples.append(self._response_example(text, status_match))
        elif label == "request" or lowered.startswith("curl"):
            self.section.examples.append(ExampleBlock(kind="request", text=text))
        else:
            self.section.examples.append(ExampleBlock(kind="other", text=text))

    def _response_example(self, text: str, status_match: re.Match) -> ExampleBlock:
        status = status_match.group(1)
        parts = re.split(r"\r?\n\s*\r?\n", text, maxsplit=1)
        body: Any = None
        if len(parts) == 2 and parts[1].strip():
            try:
                body = json.loads(parts[1])
            except ValueError:
                self._skip(self.section, f"malformed example ({status} response body is not JSON)")
        return ExampleBlock(kind="response", text=text, status=status, body=body)

    def _on_table(self, node: Tag) -> None:
        section = self.section
        rows = _table_rows(node)
        if self.state == State.IN_PARAMETER_TABLE and section.table_kind:
            section.rows.setdefault(section.table_kind, []).extend(rows)
            self.state = State.IN_SECTION
            section.table_kind = None
        elif section.object_name and not section.field_rows:
            section.field_rows = rows

    # -- section completion ----------------------------------------------

    def _close_section(self) -> None:
        section = self.section
        self.section = None
        self.state = State.BEFORE_SECTION
        if section is None:
            return

        if section.definition is None:
            section.definition = section.fallback_definition

        if section.definition is not None:
            self._emit_endpoint(section)
        elif section.object_name and section.level == 3:
            self._emit_component(section)
        elif section.level == 3 or section.malformed_definition:
            reason = (
                f"malformed definition: {section.malformed_definition}"
                if section.malformed_definition
                else "no definition"
            )
            self._skip(section, reason)

    def _emit_endpoint(self, section: _Section) -> None:
        method, path = section.definition
        if self.result.find(method, path) is not None:
            self._skip(section, f"duplicate operation {method} {path}")
            return

        endpoint = EndpointRecord(
            method=method,
            path=path,
            summary=section.heading,
            description="\n\n".join(section.paragraphs),
            examples=section.examples,
        )
        if section.tag:
            endpoint.add_tag(section.tag)

        for name in re.findall(r"\{([^}]+)\}", path):
            endpoint.parameters.append(
                ParamRecord(
                    name=name,
                    location="path",
                    description=f"The {name} identifier",
                    schema={"type": "string"},
                )
            )

        body_location = "body" if method in BODY_METHODS else "query"
        for kind, location, required in (
            ("required", body_location, True),
            ("optional", body_location, False),
            ("query", "query", False),
        ):
            for row in section.rows.get(kind, []):
                param = _param_from_row(row, location, required)
                if param is None:
                    continue
                endpoint.parameters.append(param)
                if location == "query" and RELATIONAL_RE.search(param.description):
                    endpoint.parameters.extend(_relational_filters(param.name))

        roles = [_clean(row[0].get_text()) for row in section.rows.get("roles", []) if row]
        roles = [r for r in roles if r]
        if roles:
            endpoint.extensions["x-required-roles"] = roles

        for example in section.examples:
            if example.kind == "response" and example.status not in endpoint.responses:
                response: dict[str, Any] = {"description": _reason_phrase(example.text)}
                if isinstance(example.body, (dict, list)):
                    response["content"] = {"application/json": {"example": example.body}}
                endpoint.responses[example.status] = response

        for status, description in _error_rows(section.rows.get("errors", [])):
            existing = endpoint.responses.get(status)
            if existing is None:
                endpoint.responses[status] = {
                    "description": description,
                    "content": {
                        "application/json": {
                            "schema": {"$ref": "#/components/schemas/Error"}
                        }
                    },
                }
            elif description and description not in existing.get("description", ""):
                existing["description"] = f"{existing['description']}; {description}".strip("; ")

        self.result.endpoints.append(endpoint)

    def _emit_component(self, section: _Section) -> None:
        name = section.object_name
        if name in self.result.components:
            self._skip(section, f"duplicate component {name}")
            return
        schema: dict[str, Any] = {"type": "object", "properties": {}}
        for row in section.field_rows:
            param = _param_from_row(row, "query", False)
            if param is None:
                continue
            prop = dict(param.schema_)
            if param.description and "$ref" not in prop:
                prop.setdefault("description", param.description)
            nest_property(schema, param.name, prop, required=False)
        self.result.components[name] = schema

    def _skip(self, section: _Section, reason: str) -> None:
        logger.debug("Skipping section %r: %s", section.heading, reason)
        self.result.skipped.append(
            SkippedSection(heading=section.heading, anchor=section.anchor, reason=reason)
        )


def extract(html: str) -> ExtractionResult:
    """Extract operations and object schemas from CAPI HTML documentation."""
    return HtmlExtractor().extract(html)


def extract_file(file_path: Path) -> ExtractionResult:
    """Read an HTML file and extract it. A missing file is a fatal input error."""
    if not file_path.is_file():
        raise InputError(f"HTML documentation not found: {file_path}")
    text = file_path.read_text(encoding="utf-8", errors="replace")
    return extract(text)


# -- table helpers ---------------------------------------------------------


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def _table_rows(table: Tag) -> list[list[Tag]]:
    """Data rows of a table as lists of cells; header rows are dropped."""
    rows = []
    for tr in table.find_all("tr"):
        if tr.find_parent("table") is not table:
            continue
        cells = tr.find_all(["td", "th"], recursive=False)
        if not cells or all(c.name == "th" for c in cells):
            continue
        rows.append(cells)
    return rows


def _param_from_row(cells: list[Tag], location: str, required: bool) -> ParamRecord | None:
    first = cells[0]
    bold = first.find(["strong", "b"])
    name = _clean((bold or first).get_text())
    if not name or " " in name:
        return None
    type_text = cells[1].get_text() if len(cells) > 1 else ""
    description = " ".join(_clean(c.get_text()) for c in cells[2:]).strip()
    return ParamRecord(
        name=name,
        location=location,
        required=required,
        description=description,
        schema=parse_type(type_text),
    )


def _relational_filters(name: str) -> list[ParamRecord]:
    base = name[:-1] if name.endswith("s") else name
    return [
        ParamRecord(
            name=f"{base}[{op}]",
            location="query",
            description=f"Filter by {base} using {op} operator",
            schema={"type": "string", "format": "date-time"},
        )
        for op in RELATIONAL_OPERATORS
    ]


def _error_rows(rows: list[list[Tag]]) -> list[tuple[str, str]]:
    """(status, description) for each errors-table row with an HTTP status cell."""
    errors = []
    for cells in rows:
        texts = [_clean(c.get_text()) for c in cells]
        status = next((t for t in texts if re.fullmatch(r"[45]\d\d", t)), None)
        if status is None:
            continue
        description = texts[-1] if texts[-1] != status else texts[0]
        errors.append((status, description))
    return errors


def _reason_phrase(text: str) -> str:
    match = STATUS_LINE_RE.match(text.splitlines()[0].strip())
    reason = match.group(2).strip() if match else ""
    return reason or "Success"
