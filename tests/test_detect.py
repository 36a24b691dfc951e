from pathlib import Path

import pytest

from capi_openapi.exceptions import InputError
from capi_openapi.parser.detect import detect_format, load_document

FIXTURES = Path(__file__).parent / "fixtures"


class TestDetectFormat:
    def test_by_suffix(self):
        assert detect_format(FIXTURES / "capi-sample.html") == "html"
        assert detect_format(FIXTURES / "partial-spec.yaml") == "yaml"
        assert detect_format(Path("openapi.json")) == "json"

    def test_by_content(self, tmp_path):
        html = tmp_path / "index"
        html.write_text("<!DOCTYPE html><html></html>")
        spec = tmp_path / "spec"
        spec.write_text('{"openapi": "3.0.3"}')
        other = tmp_path / "other"
        other.write_text("openapi: 3.0.3\n")

        assert detect_format(html) == "html"
        assert detect_format(spec) == "json"
        assert detect_format(other) == "yaml"


class TestLoadDocument:
    def test_yaml(self):
        doc = load_document(FIXTURES / "partial-spec.yaml")
        assert doc["openapi"] == "3.0.3"
        assert "/v3/apps" in doc["paths"]

    def test_json(self, tmp_path):
        path = tmp_path / "openapi.json"
        path.write_text('{"openapi": "3.0.3", "paths": {}}')
        assert load_document(path) == {"openapi": "3.0.3", "paths": {}}

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputError, match="not found"):
            load_document(tmp_path / "missing.json")

    def test_html_rejected(self):
        with pytest.raises(InputError, match="got HTML"):
            load_document(FIXTURES / "capi-sample.html")

    def test_unparseable(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text('{"openapi": ')
        with pytest.raises(InputError, match="Cannot parse"):
            load_document(path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(InputError, match="must be a mapping"):
            load_document(path)

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "openapi.json"
        path.write_bytes(b'{"x": "\xff\xfe"}')
        with pytest.raises(InputError, match="Cannot parse"):
            load_document(path)

    def test_integer_keys_become_strings(self, tmp_path):
        path = tmp_path / "openapi.yaml"
        path.write_text(
            "paths:\n"
            "  /v3/apps:\n"
            "    get:\n"
            "      responses:\n"
            "        200: {description: OK}\n"
            "        default: {description: Error}\n"
        )
        responses = load_document(path)["paths"]["/v3/apps"]["get"]["responses"]
        assert list(responses) == ["200", "default"]
