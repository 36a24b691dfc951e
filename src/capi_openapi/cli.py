"""CLI entry point for capi-openapi."""

import functools
import json
from pathlib import Path

import click

from capi_openapi import tools
from capi_openapi.config import Settings, get_settings
from capi_openapi.document import dump_json, dump_yaml, write_document
from capi_openapi.exceptions import (
    CapiOpenApiError,
    ExtractionError,
    InputError,
    ToolError,
    ValidationFailedError,
)
from capi_openapi.generator.passes import normalize
from capi_openapi.generator.validator import validate
from capi_openapi.logging_config import setup_logging
from capi_openapi.parser.detect import load_document
from capi_openapi.parser.html import extract_file
from capi_openapi.pipeline import generate_spec_from_html, generation_report

EXIT_VALIDATION_FAILED = 1
EXIT_INPUT_ERROR = 2
EXIT_TOOL_ERROR = 3

FORMATS = click.Choice(["json", "yaml", "both"])


def _handle_errors(func):
    """Map exceptions onto exit codes: 1 validation, 2 input, 3 external tool."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ValidationFailedError as e:
            click.echo(f"Validation failed: {e}", err=True)
            raise SystemExit(EXIT_VALIDATION_FAILED)
        except (InputError, ExtractionError) as e:
            click.echo(f"Input error: {e}", err=True)
            raise SystemExit(EXIT_INPUT_ERROR)
        except ToolError as e:
            click.echo(f"Environment error: {e}", err=True)
            raise SystemExit(EXIT_TOOL_ERROR)
        except CapiOpenApiError as e:
            click.echo(f"Error: {e}", err=True)
            raise SystemExit(EXIT_VALIDATION_FAILED)

    return wrapper


def _html_path(settings: Settings, version: str, input_path: Path | None) -> Path:
    return input_path or settings.html_path(version)


def _spec_path(settings: Settings, version: str, input_path: Path | None) -> Path:
    if input_path is not None:
        return input_path
    base = settings.version_dir(version) / "openapi.json"
    if not base.exists() and base.with_suffix(".yaml").exists():
        return base.with_suffix(".yaml")
    return base


@click.group()
@click.option("--workdir", type=click.Path(file_okay=False, path_type=Path), default=None, help="Root directory holding capi/<version>/.")
@click.option("--log-level", default=None, help="Logging level (DEBUG, INFO, WARNING, ERROR).")
@click.option("--log-json", is_flag=True, default=None, help="Emit logs as JSON lines.")
@click.pass_context
def main(ctx: click.Context, workdir: Path | None, log_level: str | None, log_json: bool | None):
    """capi-openapi: build an OpenAPI spec from the CAPI v3 HTML docs."""
    settings = get_settings(workdir=workdir, log_level=log_level, log_json=log_json)
    setup_logging(settings.log_level, settings.log_json)
    ctx.obj = settings


@main.command()
@click.option("--version", "version", required=True, help="CAPI version, e.g. 3.195.0.")
@click.option("--url", default=None, help="Override the documentation URL.")
@click.pass_obj
@_handle_errors
def prepare(settings: Settings, version: str, url: str | None):
    """Download the HTML documentation for a version."""
    url = url or settings.docs_url_template.format(version=version)
    dest = settings.html_path(version)
    click.echo(f"Downloading {url}...")
    tools.download_docs(url, dest, curl=settings.curl)
    click.echo(f"Saved to {dest}")


@main.command()
@click.option("--version", "version", required=True, help="CAPI version, e.g. 3.195.0.")
@click.option("-i", "--input", "input_path", type=click.Path(path_type=Path), default=None, help="HTML file (default: capi/<version>/index.html).")
@click.pass_obj
@_handle_errors
def parse(settings: Settings, version: str, input_path: Path | None):
    """Extract endpoints and schemas from the HTML into parsed.json."""
    html_path = _html_path(settings, version, input_path)
    click.echo(f"Parsing {html_path}...")
    result = extract_file(html_path)
    click.echo(f"Found {len(result.endpoints)} endpoints and {len(result.components)} schemas.")

    out = settings.version_dir(version) / "parsed.json"
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(dump_json(result.model_dump(mode="json", by_alias=True)), encoding="utf-8")
    click.echo(f"Intermediate representation saved to {out}")

    if result.skipped:
        click.echo(f"Skipped {len(result.skipped)} sections:")
        for skipped in result.skipped:
            click.echo(f"  - {skipped.heading}: {skipped.reason}")


@main.command()
@click.option("--version", "version", required=True, help="CAPI version, e.g. 3.195.0.")
@click.option("-i", "--input", "input_path", type=click.Path(path_type=Path), default=None, help="HTML file (default: capi/<version>/index.html).")
@click.option("--format", "fmt", default="both", type=FORMATS, help="Output format.")
@click.pass_obj
@_handle_errors
def spec(settings: Settings, version: str, input_path: Path | None, fmt: str):
    """Full pipeline: parse HTML -> apply corrections -> assemble -> normalize."""
    html_path = _html_path(settings, version, input_path)
    click.echo(f"Generating spec from {html_path}...")
    doc, result, report = generate_spec_from_html(
        html_path,
        version,
        server_url=settings.server_url,
        security_exempt_paths=settings.security_exempt_paths,
    )
    click.echo(f"Found {len(result.endpoints)} endpoints.")

    version_dir = settings.version_dir(version)
    for path in write_document(doc, version_dir / "openapi", fmt):
        click.echo(f"  Created {path}")
    report_path = version_dir / "generation-report.md"
    report_path.write_text(generation_report(version, doc, result, report), encoding="utf-8")
    click.echo(f"Done! Applied {report.total} fixes; report saved to {report_path}")


@main.command()
@click.argument("spec_path", type=click.Path(path_type=Path))
@click.option("--format", "fmt", default=None, type=FORMATS, help="Output format (default: same as input).")
@click.pass_obj
@_handle_errors
def fix(settings: Settings, spec_path: Path, fmt: str | None):
    """Re-run the normalization passes over an existing spec in place."""
    doc = load_document(spec_path)
    doc, report = normalize(doc, security_exempt_paths=settings.security_exempt_paths)
    input_fmt = "yaml" if spec_path.suffix.lower() in (".yaml", ".yml") else "json"
    fmt = fmt or input_fmt
    for target_fmt in ("json", "yaml") if fmt == "both" else (fmt,):
        target = spec_path if target_fmt == input_fmt else spec_path.with_suffix(f".{target_fmt}")
        target.write_text(dump_yaml(doc) if target_fmt == "yaml" else dump_json(doc), encoding="utf-8")
        click.echo(f"  Updated {target}")
    click.echo(json.dumps(report.counts, indent=2, sort_keys=True))


@main.command("validate")
@click.option("--version", "version", default=None, help="CAPI version, e.g. 3.195.0.")
@click.option("-i", "--input", "input_path", type=click.Path(path_type=Path), default=None, help="Spec file (default: capi/<version>/openapi.json).")
@click.option("--spectral", "use_spectral", is_flag=True, help="Also lint with Spectral.")
@click.pass_obj
@_handle_errors
def validate_cmd(settings: Settings, version: str | None, input_path: Path | None, use_spectral: bool):
    """Validate a finished spec. Exits non-zero only on errors, never on warnings."""
    if version is None and input_path is None:
        raise click.UsageError("Pass --version or --input.")
    spec_path = _spec_path(settings, version or "", input_path)
    doc = load_document(spec_path)

    report = validate(doc, security_exempt_paths=settings.security_exempt_paths)
    if use_spectral:
        report.merge(tools.run_spectral(spec_path, settings.spectral_ruleset, spectral=settings.spectral))

    for category in sorted(report.tallies):
        t = report.tallies[category]
        click.echo(f"{category:18} passed={t.passed} warnings={t.warnings} failures={t.failures}")

    report_path = spec_path.parent / "validation-report.md"
    report_path.write_text(report.to_markdown(), encoding="utf-8")
    click.echo(f"Report saved to {report_path}")

    if not report.passed:
        for finding in report.errors:
            click.echo(f"  ERROR {finding.location}: {finding.message}", err=True)
        raise ValidationFailedError(len(report.errors))
    click.echo(f"Validation passed with {len(report.warnings)} warnings.")


@main.command()
@click.option("--version", "version", required=True, help="CAPI version, e.g. 3.195.0.")
@click.option("--language", default="go", type=click.Choice(sorted(tools.OPENAPI_GENERATORS)), help="SDK language.")
@click.option("--generator", default=None, type=click.Choice(["openapi-generator", "oapi-codegen"]), help="Code generator to use.")
@click.pass_obj
@_handle_errors
def sdk(settings: Settings, version: str, language: str, generator: str | None):
    """Generate an SDK from the finished spec."""
    spec_path = settings.version_dir(version) / "openapi.json"
    if not spec_path.is_file():
        raise InputError(f"Spec not found, run 'spec' first: {spec_path}")

    binary = settings.oapi_codegen if generator == "oapi-codegen" else settings.openapi_generator
    out = settings.sdk_dir(version, language)
    click.echo(f"Generating {language} SDK with {binary}...")
    try:
        path = tools.generate_sdk(spec_path, out, language, generator=binary)
    except ValueError as e:
        raise click.UsageError(str(e))
    click.echo(f"SDK generated in {path}")
