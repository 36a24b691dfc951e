import json
import shutil
from pathlib import Path
from unittest.mock import patch

import yaml
from click.testing import CliRunner

from capi_openapi.cli import main

FIXTURES = Path(__file__).parent / "fixtures"
VERSION = "3.195.0"


def _invoke(workdir: Path, *args: str):
    runner = CliRunner()
    return runner.invoke(main, ["--workdir", str(workdir), *args])


def _install_html(workdir: Path) -> Path:
    target = workdir / "capi" / VERSION / "index.html"
    target.parent.mkdir(parents=True)
    shutil.copy(FIXTURES / "capi-sample.html", target)
    return target


class TestCliParse:
    def test_parse_writes_intermediate_representation(self, tmp_path):
        _install_html(tmp_path)
        result = _invoke(tmp_path, "parse", "--version", VERSION)

        assert result.exit_code == 0, result.output
        assert "Found 10 endpoints and 1 schemas." in result.output
        assert "Skipped 3 sections:" in result.output
        assert "  - Authentication: no definition" in result.output

        parsed = json.loads((tmp_path / "capi" / VERSION / "parsed.json").read_text())
        assert len(parsed["endpoints"]) == 10
        assert "App" in parsed["components"]
        get_app = next(e for e in parsed["endpoints"] if e["path"] == "/v3/apps/{guid}" and e["method"] == "GET")
        assert get_app["parameters"][0]["schema"] == {"type": "string"}

    def test_parse_explicit_input(self, tmp_path):
        result = _invoke(tmp_path, "parse", "--version", VERSION, "-i", str(FIXTURES / "capi-sample.html"))
        assert result.exit_code == 0, result.output
        assert (tmp_path / "capi" / VERSION / "parsed.json").exists()

    def test_missing_html_is_input_error(self, tmp_path):
        result = _invoke(tmp_path, "parse", "--version", VERSION)
        assert result.exit_code == 2
        assert "HTML documentation not found" in result.output


class TestCliSpec:
    def test_spec_writes_json_yaml_and_report(self, tmp_path):
        _install_html(tmp_path)
        result = _invoke(tmp_path, "spec", "--version", VERSION)

        assert result.exit_code == 0, result.output
        version_dir = tmp_path / "capi" / VERSION
        doc = json.loads((version_dir / "openapi.json").read_text())
        assert yaml.safe_load((version_dir / "openapi.yaml").read_text()) == doc

        assert doc["info"]["version"] == VERSION
        assert "/" not in doc["paths"]
        assert doc["paths"]["/v3/apps/{guid}"]["get"]["operationId"] == "get_apps_by_guid"
        packages = doc["paths"]["/v3/packages"]["post"]["requestBody"]["content"]["application/json"]["schema"]
        assert packages["discriminator"]["propertyName"] == "type"
        assert doc["paths"]["/v3/apps"]["get"]["security"] == [{"bearerAuth": []}]
        assert "security" not in doc["paths"]["/v3/info"]["get"]

        report = (version_dir / "generation-report.md").read_text()
        assert report.startswith(f"# Generation Report for CAPI {VERSION}")
        assert "| filter_paths | 1 |" in report

    def test_spec_json_only(self, tmp_path):
        _install_html(tmp_path)
        result = _invoke(tmp_path, "spec", "--version", VERSION, "--format", "json")
        assert result.exit_code == 0, result.output
        assert (tmp_path / "capi" / VERSION / "openapi.json").exists()
        assert not (tmp_path / "capi" / VERSION / "openapi.yaml").exists()

    def test_regeneration_is_byte_identical(self, tmp_path):
        _install_html(tmp_path)
        spec_path = tmp_path / "capi" / VERSION / "openapi.json"
        _invoke(tmp_path, "spec", "--version", VERSION)
        first = spec_path.read_bytes()
        _invoke(tmp_path, "spec", "--version", VERSION)
        assert spec_path.read_bytes() == first


class TestCliValidate:
    def test_generated_spec_passes(self, tmp_path):
        _install_html(tmp_path)
        _invoke(tmp_path, "spec", "--version", VERSION)
        result = _invoke(tmp_path, "validate", "--version", VERSION)

        assert result.exit_code == 0, result.output
        assert "Validation passed" in result.output
        assert (tmp_path / "capi" / VERSION / "validation-report.md").exists()

    def test_errors_exit_non_zero(self, tmp_path):
        spec_path = tmp_path / "openapi.json"
        spec_path.write_text(json.dumps({
            "openapi": "3.0.3",
            "paths": {"/v3/apps": {"get": {"responses": {"200": {"$ref": "#/components/responses/Missing"}}}}},
        }))
        result = _invoke(tmp_path, "validate", "-i", str(spec_path))

        assert result.exit_code == 1
        assert "Dangling reference" in result.output
        assert "FAILED" in (tmp_path / "validation-report.md").read_text()

    def test_warnings_only_exit_zero(self, tmp_path):
        doc = yaml.safe_load((FIXTURES / "partial-spec.yaml").read_text())
        spec_path = tmp_path / "openapi.yaml"
        _invoke(tmp_path, "fix", str(_write_yaml(spec_path, doc)))
        fixed = yaml.safe_load(spec_path.read_text())
        fixed["tags"].append({"name": "Undocumented"})
        _write_yaml(spec_path, fixed)

        result = _invoke(tmp_path, "validate", "-i", str(spec_path))
        assert result.exit_code == 0, result.output
        assert "Validation passed with 1 warnings." in result.output

    def test_requires_version_or_input(self, tmp_path):
        result = _invoke(tmp_path, "validate")
        assert result.exit_code == 2

    @patch("capi_openapi.tools.run_spectral")
    def test_spectral_findings_merged(self, mock_spectral, tmp_path):
        from capi_openapi.report import ValidationReport

        spectral_report = ValidationReport()
        spectral_report.add("error", "spectral", "/paths", "oas3-schema: bad")
        mock_spectral.return_value = spectral_report

        _install_html(tmp_path)
        _invoke(tmp_path, "spec", "--version", VERSION)
        result = _invoke(tmp_path, "validate", "--version", VERSION, "--spectral")

        assert result.exit_code == 1
        assert "oas3-schema: bad" in result.output
        mock_spectral.assert_called_once()


def _write_yaml(path: Path, doc: dict) -> Path:
    path.write_text(yaml.safe_dump(doc))
    return path


class TestCliFix:
    def test_fix_in_place(self, tmp_path):
        spec_path = tmp_path / "openapi.yaml"
        shutil.copy(FIXTURES / "partial-spec.yaml", spec_path)
        result = _invoke(tmp_path, "fix", str(spec_path))

        assert result.exit_code == 0, result.output
        doc = yaml.safe_load(spec_path.read_text())
        assert "/" not in doc["paths"]
        assert doc["paths"]["/v3/apps/{guid}"]["get"]["parameters"][0]["required"] is True
        assert '"filter_paths": 1' in result.output

    def test_fix_to_json(self, tmp_path):
        spec_path = tmp_path / "openapi.yaml"
        shutil.copy(FIXTURES / "partial-spec.yaml", spec_path)
        result = _invoke(tmp_path, "fix", str(spec_path), "--format", "json")

        assert result.exit_code == 0, result.output
        assert (tmp_path / "openapi.json").exists()

    def test_fix_is_idempotent(self, tmp_path):
        spec_path = tmp_path / "openapi.yaml"
        shutil.copy(FIXTURES / "partial-spec.yaml", spec_path)
        _invoke(tmp_path, "fix", str(spec_path))
        first = spec_path.read_text()

        result = _invoke(tmp_path, "fix", str(spec_path))
        assert spec_path.read_text() == first
        assert result.output.strip().endswith("{}")

    def test_fix_yml_in_place(self, tmp_path):
        spec_path = tmp_path / "openapi.yml"
        shutil.copy(FIXTURES / "partial-spec.yaml", spec_path)
        result = _invoke(tmp_path, "fix", str(spec_path))

        assert result.exit_code == 0, result.output
        assert not (tmp_path / "openapi.yaml").exists()
        assert "/" not in yaml.safe_load(spec_path.read_text())["paths"]

    def test_integer_status_keys(self, tmp_path):
        spec_path = tmp_path / "openapi.yaml"
        spec_path.write_text(
            "openapi: 3.0.3\n"
            "info: {title: CAPI, version: 3.195.0}\n"
            "paths:\n"
            "  /v3/apps:\n"
            "    get:\n"
            "      responses:\n"
            "        200: {description: OK}\n"
            "        default: {description: Error}\n"
        )
        result = _invoke(tmp_path, "fix", str(spec_path), "--format", "json")

        assert result.exit_code == 0, result.output
        doc = json.loads((tmp_path / "openapi.json").read_text())
        assert sorted(doc["paths"]["/v3/apps"]["get"]["responses"]) == ["200", "default"]

    def test_missing_spec(self, tmp_path):
        result = _invoke(tmp_path, "fix", str(tmp_path / "nope.yaml"))
        assert result.exit_code == 2


class TestCliPrepare:
    @patch("capi_openapi.tools.download_docs")
    def test_downloads_versioned_docs(self, mock_download, tmp_path):
        result = _invoke(tmp_path, "prepare", "--version", VERSION)

        assert result.exit_code == 0, result.output
        url, dest = mock_download.call_args[0]
        assert url == f"https://v3-apidocs.cloudfoundry.org/version/{VERSION}/index.html"
        assert dest == tmp_path / "capi" / VERSION / "index.html"

    @patch("capi_openapi.tools.shutil.which", return_value=None)
    def test_missing_curl_is_tool_error(self, _which, tmp_path):
        result = _invoke(tmp_path, "prepare", "--version", VERSION)
        assert result.exit_code == 3
        assert "External tool not found on PATH: curl" in result.output


class TestCliSdk:
    def test_requires_spec(self, tmp_path):
        result = _invoke(tmp_path, "sdk", "--version", VERSION)
        assert result.exit_code == 2
        assert "run 'spec' first" in result.output

    @patch("capi_openapi.tools.generate_sdk")
    def test_generates_into_sdk_dir(self, mock_generate, tmp_path):
        _install_html(tmp_path)
        _invoke(tmp_path, "spec", "--version", VERSION, "--format", "json")
        mock_generate.return_value = tmp_path / "sdk" / VERSION / "python"

        result = _invoke(tmp_path, "sdk", "--version", VERSION, "--language", "python")

        assert result.exit_code == 0, result.output
        spec_path, out, language = mock_generate.call_args[0]
        assert spec_path == tmp_path / "capi" / VERSION / "openapi.json"
        assert out == tmp_path / "sdk" / VERSION / "python"
        assert language == "python"
        assert mock_generate.call_args[1]["generator"] == "openapi-generator-cli"

    @patch("capi_openapi.tools.generate_sdk")
    def test_oapi_codegen_binary(self, mock_generate, tmp_path):
        _install_html(tmp_path)
        _invoke(tmp_path, "spec", "--version", VERSION, "--format", "json")
        mock_generate.return_value = tmp_path / "sdk"

        result = _invoke(tmp_path, "sdk", "--version", VERSION, "--generator", "oapi-codegen")
        assert result.exit_code == 0, result.output
        assert mock_generate.call_args[1]["generator"] == "oapi-codegen"
