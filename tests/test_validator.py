from pathlib import Path

import yaml

from capi_openapi.generator.passes import normalize
from capi_openapi.generator.validator import (
    check_data_types,
    check_naming,
    check_references,
    check_required_fields,
    check_response_codes,
    check_schema_ambiguity,
    check_security,
    check_structure,
    validate,
)
from capi_openapi.report import ValidationReport

FIXTURES = Path(__file__).parent / "fixtures"


def _doc(paths: dict | None = None, schemas: dict | None = None) -> dict:
    return {
        "openapi": "3.0.3",
        "info": {"title": "t", "version": "1"},
        "servers": [{"url": "https://api.example.org"}],
        "tags": [{"name": "Apps", "description": "Operations for Apps"}],
        "paths": paths or {},
        "components": {
            "schemas": schemas or {},
            "parameters": {},
            "securitySchemes": {"bearerAuth": {"type": "http", "scheme": "bearer"}},
        },
    }


def _operation(**extra) -> dict:
    operation = {
        "operationId": "get_apps",
        "security": [{"bearerAuth": []}],
        "responses": {"200": {"description": "OK"}},
    }
    operation.update(extra)
    return operation


class TestStructure:
    def test_complete(self):
        report = ValidationReport()
        check_structure(_doc(), report)
        assert report.passed
        assert report.tallies["structure"].passed == 9

    def test_missing_keys(self):
        doc = _doc()
        del doc["servers"]
        del doc["components"]["securitySchemes"]
        report = ValidationReport()
        check_structure(doc, report)
        assert {f.location for f in report.errors} == {"/servers", "/components/securitySchemes"}


class TestReferences:
    def test_dangling_reference_is_error(self):
        doc = _doc(schemas={"App": {"properties": {"space": {"$ref": "#/components/schemas/Space"}}}})
        report = ValidationReport()
        check_references(doc, report)

        assert not report.passed
        assert report.errors[0].message == "Dangling reference #/components/schemas/Space"
        assert report.errors[0].location == "/components/schemas/App/properties/space"

    def test_resolving_reference(self):
        doc = _doc(schemas={"App": {"$ref": "#/components/schemas/Base"}, "Base": {"type": "object"}})
        report = ValidationReport()
        check_references(doc, report)
        assert report.passed
        assert report.tallies["references"].passed == 1


class TestDataTypes:
    def test_string_boolean_is_error(self):
        doc = _doc({"/v3/apps": {"get": _operation(parameters=[{"name": "n", "in": "query", "required": "true"}])}})
        report = ValidationReport()
        check_data_types(doc, report)
        assert len(report.errors) == 1
        assert report.errors[0].location.endswith("/required")

    def test_invalid_type(self):
        doc = _doc(schemas={"App": {"type": "hash"}})
        report = ValidationReport()
        check_data_types(doc, report)
        assert report.errors[0].message == "Invalid schema type 'hash'"

    def test_security_scheme_type_is_not_a_schema_type(self):
        report = ValidationReport()
        check_data_types(_doc(), report)
        assert report.passed

    def test_additional_properties_schema_allowed(self):
        doc = _doc(schemas={"Labels": {"type": "object", "additionalProperties": {"type": "string"}}})
        report = ValidationReport()
        check_data_types(doc, report)
        assert report.passed

    def test_property_named_default_is_checked(self):
        doc = _doc(schemas={"Stack": {"type": "object", "properties": {"default": {"type": "boolean", "nullable": "1"}}}})
        report = ValidationReport()
        check_data_types(doc, report)
        assert [f.location for f in report.errors] == ["/components/schemas/Stack/properties/default/nullable"]


class TestRequiredFields:
    def test_operation_without_responses(self):
        doc = _doc({"/v3/apps": {"get": _operation(responses={})}})
        report = ValidationReport()
        check_required_fields(doc, report)
        assert report.errors[0].message == "Operation has no responses"

    def test_undeclared_path_parameter(self):
        doc = _doc({"/v3/apps/{guid}": {"get": _operation()}})
        report = ValidationReport()
        check_required_fields(doc, report)
        assert report.errors[0].message == "Path parameter 'guid' is not declared"

    def test_path_level_parameter_declares_template(self):
        doc = _doc({
            "/v3/apps/{guid}": {
                "parameters": [{"name": "guid", "in": "path", "required": True}],
                "get": _operation(),
            }
        })
        report = ValidationReport()
        check_required_fields(doc, report)
        assert report.passed

    def test_optional_path_parameter(self):
        doc = _doc({
            "/v3/apps/{guid}": {
                "get": _operation(parameters=[{"name": "guid", "in": "path", "required": False}])
            }
        })
        report = ValidationReport()
        check_required_fields(doc, report)
        assert [f.message for f in report.errors] == ["Path parameter must be required"]

    def test_required_property_not_defined_is_warning(self):
        doc = _doc(schemas={"App": {"type": "object", "required": ["name"], "properties": {}}})
        report = ValidationReport()
        check_required_fields(doc, report)
        assert report.passed
        assert len(report.warnings) == 1


class TestSecurity:
    def test_missing_security_is_warning(self):
        doc = _doc({"/v3/apps": {"get": _operation(security=[])}})
        report = ValidationReport()
        check_security(doc, report)
        assert report.passed
        assert report.warnings[0].location == "GET /v3/apps"

    def test_exempt_path(self):
        doc = _doc({"/v3/info": {"get": _operation(security=[])}})
        report = ValidationReport()
        check_security(doc, report)
        assert report.warnings == []

    def test_unknown_scheme_is_error(self):
        doc = _doc({"/v3/apps": {"get": _operation(security=[{"oauth": []}])}})
        report = ValidationReport()
        check_security(doc, report)
        assert report.errors[0].message == "Unknown security scheme 'oauth'"


class TestResponseCodes:
    def test_no_success_response_is_warning(self):
        doc = _doc({"/v3/apps": {"get": _operation(responses={"404": {"description": "Not found"}})}})
        report = ValidationReport()
        check_response_codes(doc, report)
        assert report.passed
        assert report.tallies["response_codes"].warnings == 1

    def test_post_with_200_is_info(self):
        doc = _doc({"/v3/apps": {"post": _operation()}})
        report = ValidationReport()
        check_response_codes(doc, report)
        assert [f.severity for f in report.findings] == ["info"]
        assert report.tallies["response_codes"].warnings == 0


class TestSchemaAmbiguity:
    def test_one_of_without_discriminator(self):
        doc = _doc(schemas={
            "Package": {
                "oneOf": [
                    {"$ref": "#/components/schemas/Bits"},
                    {"$ref": "#/components/schemas/Docker"},
                ]
            },
            "Bits": {"type": "object"},
            "Docker": {"type": "object"},
        })
        report = ValidationReport()
        check_schema_ambiguity(doc, report)

        findings = report.by_category("schema_ambiguity")
        assert len(findings) == 1
        assert findings[0].severity == "warning"
        assert findings[0].location == "/components/schemas/Package"
        assert report.tallies["schema_ambiguity"].failures == 0

    def test_discriminated_one_of_passes(self):
        doc = _doc(schemas={
            "Package": {
                "oneOf": [{"$ref": "#/components/schemas/Bits"}],
                "discriminator": {"propertyName": "type"},
            },
            "Bits": {"type": "object"},
        })
        report = ValidationReport()
        check_schema_ambiguity(doc, report)
        assert report.by_category("schema_ambiguity") == []
        assert report.tallies["schema_ambiguity"].passed == 1

    def test_examples_not_inspected(self):
        doc = _doc(schemas={"App": {"type": "object", "example": {"oneOf": [1, 2]}}})
        report = ValidationReport()
        check_schema_ambiguity(doc, report)
        assert report.findings == []


class TestNaming:
    def test_duplicate_operation_ids(self):
        doc = _doc({"/v3/apps": {"get": _operation(), "post": _operation()}})
        report = ValidationReport()
        check_naming(doc, report)
        assert len(report.errors) == 1
        assert "Duplicate operationId 'get_apps'" in report.errors[0].message

    def test_invalid_operation_id(self):
        doc = _doc({"/v3/apps": {"get": _operation(operationId="get apps")}})
        report = ValidationReport()
        check_naming(doc, report)
        assert report.errors[0].message == "Invalid operationId 'get apps'"

    def test_non_snake_parameter_is_warning(self):
        doc = _doc({
            "/v3/apps": {
                "get": _operation(parameters=[
                    {"name": "perPage", "in": "query"},
                    {"name": "created_at[gte]", "in": "query"},
                    {"name": "fields[space.organization]", "in": "query"},
                ])
            }
        })
        report = ValidationReport()
        check_naming(doc, report)
        assert report.passed
        assert [f.message for f in report.warnings] == [
            "Parameter 'perPage' is not snake_case",
        ]

    def test_tag_without_description(self):
        doc = _doc()
        doc["tags"] = [{"name": "Apps"}]
        report = ValidationReport()
        check_naming(doc, report)
        assert report.warnings[0].location == "/tags/0"


class TestValidate:
    def test_normalized_partial_spec_passes(self):
        doc = yaml.safe_load((FIXTURES / "partial-spec.yaml").read_text())
        doc, _ = normalize(doc)
        report = validate(doc)
        assert report.passed, report.to_markdown()

    def test_raw_partial_spec_fails(self):
        doc = yaml.safe_load((FIXTURES / "partial-spec.yaml").read_text())
        report = validate(doc)
        assert not report.passed
        assert report.tallies["data_types"].failures > 0

    def test_markdown_report(self):
        doc = _doc({"/v3/apps": {"get": _operation(security=[{"oauth": []}])}})
        markdown = validate(doc).to_markdown()
        assert "**Status**: FAILED (1 errors" in markdown
        assert "| security |" in markdown
        assert "Unknown security scheme 'oauth'" in markdown
