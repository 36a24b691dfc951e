"""HTML -> extractor -> edge cases -> assembler -> normalization passes."""

import logging
from collections.abc import Iterable
from pathlib import Path

from capi_openapi.generator.assembler import DEFAULT_SERVER_URL, assemble
from capi_openapi.generator.edge_cases import apply_edge_cases
from capi_openapi.generator.passes import DEFAULT_SECURITY_EXEMPT_PATHS, normalize
from capi_openapi.parser.base import ExtractionResult
from capi_openapi.parser.html import extract_file
from capi_openapi.report import FixReport

logger = logging.getLogger(__name__)


def generate_spec(
    result: ExtractionResult,
    version: str,
    server_url: str = DEFAULT_SERVER_URL,
    security_exempt_paths: Iterable[str] = DEFAULT_SECURITY_EXEMPT_PATHS,
) -> tuple[dict, FixReport]:
    """Build a normalized OpenAPI document from extracted records."""
    report = FixReport()
    apply_edge_cases(result, report)
    doc = assemble(result, version=version, server_url=server_url)
    doc, report = normalize(doc, report, security_exempt_paths=security_exempt_paths)
    logger.info("Generated spec for %s with %d fixes", version, report.total, extra={"version": version})
    return doc, report


def generate_spec_from_html(html_path: Path, version: str, **kwargs) -> tuple[dict, ExtractionResult, FixReport]:
    result = extract_file(html_path)
    doc, report = generate_spec(result, version, **kwargs)
    return doc, result, report


def generation_report(version: str, doc: dict, result: ExtractionResult, report: FixReport) -> str:
    """Markdown summary of one generation run."""
    operations = sum(
        1 for item in (doc.get("paths") or {}).values() for key in item if key != "parameters"
    )
    lines = [
        f"# Generation Report for CAPI {version}",
        "",
        f"- Paths: {len(doc.get('paths') or {})}",
        f"- Operations: {operations}",
        f"- Schemas: {len((doc.get('components') or {}).get('schemas') or {})}",
        f"- Skipped sections: {len(result.skipped)}",
        "",
        "## Fixes applied",
        "",
        "| Fix | Count |",
        "|-----|-------|",
    ]
    for name in sorted(report.counts):
        lines.append(f"| {name} | {report.counts[name]} |")

    if result.skipped:
        lines.extend(["", "## Skipped sections", ""])
        for skipped in result.skipped:
            anchor = f" (#{skipped.anchor})" if skipped.anchor else ""
            lines.append(f"- {skipped.heading}{anchor}: {skipped.reason}")
    return "\n".join(lines) + "\n"
