"""Thin wrappers around the external tools the pipeline shells out to.

The tools are opaque: they get file paths and either succeed or fail. A
missing binary raises ToolNotFoundError and a failing one ToolFailedError,
so the CLI can report setup problems separately from spec problems.
"""

import json
import logging
import shutil
import subprocess
from pathlib import Path

from capi_openapi.exceptions import ToolFailedError, ToolNotFoundError
from capi_openapi.report import ValidationReport

logger = logging.getLogger(__name__)

SPECTRAL_SEVERITIES = {0: "error", 1: "warning", 2: "info", 3: "info"}

# language -> openapi-generator generator name
OPENAPI_GENERATORS = {
    "go": "go",
    "python": "python",
    "java": "java",
    "typescript": "typescript-fetch",
    "ruby": "ruby",
}


def run_tool(args: list[str], check: bool = True) -> subprocess.CompletedProcess:
    """Run an external tool and capture its output."""
    tool = args[0]
    if shutil.which(tool) is None:
        raise ToolNotFoundError(tool)

    logger.info("Running %s", " ".join(args), extra={"tool": tool})
    result = subprocess.run(args, capture_output=True, text=True)
    if check and result.returncode != 0:
        output = (result.stderr + result.stdout).strip()
        raise ToolFailedError(tool, result.returncode, output[:2000])
    return result


def download_docs(url: str, dest: Path, curl: str = "curl") -> Path:
    """Fetch the HTML documentation to ``dest``."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    run_tool([curl, "--fail", "--silent", "--show-error", "--location", "-o", str(dest), url])
    return dest


def generate_sdk(
    spec_path: Path,
    output_dir: Path,
    language: str,
    generator: str = "openapi-generator-cli",
    package_name: str = "capiclient",
) -> Path:
    """Generate an SDK with openapi-generator, or with oapi-codegen for Go."""
    output_dir.mkdir(parents=True, exist_ok=True)
    if Path(generator).name == "oapi-codegen":
        if language != "go":
            raise ValueError("oapi-codegen only generates Go clients")
        target = output_dir / package_name / "client.go"
        target.parent.mkdir(parents=True, exist_ok=True)
        run_tool([
            generator,
            "-generate", "types,client",
            "-package", package_name,
            "-o", str(target),
            str(spec_path),
        ])
        return target.parent

    if language not in OPENAPI_GENERATORS:
        raise ValueError(f"Unsupported SDK language: {language}")
    run_tool([
        generator,
        "generate",
        "-i", str(spec_path),
        "-g", OPENAPI_GENERATORS[language],
        "-o", str(output_dir),
        "--package-name", package_name,
    ])
    return output_dir


def run_spectral(spec_path: Path, ruleset: Path | None = None, spectral: str = "spectral") -> ValidationReport:
    """Lint with Spectral and convert its JSON output into a ValidationReport.

    Spectral exits non-zero when it reports errors, so the exit code alone is
    not treated as a tool failure; unparseable output is.
    """
    args = [spectral, "lint", str(spec_path), "--format", "json", "--quiet"]
    if ruleset is not None:
        args += ["--ruleset", str(ruleset)]
    result = run_tool(args, check=False)

    try:
        results = json.loads(result.stdout or "[]")
    except json.JSONDecodeError:
        raise ToolFailedError(spectral, result.returncode, (result.stderr or result.stdout)[:2000]) from None

    report = ValidationReport()
    for item in results:
        severity = SPECTRAL_SEVERITIES.get(item.get("severity"), "info")
        location = "/" + "/".join(str(p) for p in item.get("path", []))
        report.add(severity, "spectral", location, f"{item.get('code', '')}: {item.get('message', '')}")
    if not results:
        report.ok("spectral")
    return report
