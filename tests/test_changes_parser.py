from pathlib import Path

from apiweaver.amender.models import ChangeOperation, TargetKind
from apiweaver.config import Settings
from apiweaver.errors import ErrorType
from apiweaver.parser.base import Component, Endpoint, Parameter, Response
from apiweaver.parser.changes import field_bullet, parse_changes

FIXTURES = Path(__file__).parent / "fixtures"


def _fixture() -> str:
    return (FIXTURES / "changes.md").read_text(encoding="utf-8")


class TestChangeParser:
    def test_fixture_parses_cleanly(self):
        outcome = parse_changes(_fixture())
        assert outcome.diagnostics == []
        assert len(outcome.value) == 6

    def test_operations_and_targets_in_order(self):
        changes = parse_changes(_fixture()).value.changes
        assert [c.describe() for c in changes] == [
            "add endpoint DELETE /tasks/{id}",
            "modify endpoint GET /tasks",
            "add parameter GET /tasks parameter status (query)",
            "modify response GET /tasks response 200",
            "add component component Error",
            "remove component component NotFound (response)",
        ]

    def test_add_endpoint_payload(self):
        change = parse_changes(_fixture()).value.changes[0]
        assert isinstance(change.payload, Endpoint)
        assert change.payload.summary == "Delete a task."
        assert change.payload.find_parameter("id", "path").required is True
        assert change.payload.find_response("204").description == "Deleted"
        assert change.fields == ["parameters", "responses", "summary"]
        assert change.line_number == 3

    def test_modify_endpoint_records_supplied_fields(self):
        change = parse_changes(_fixture()).value.changes[1]
        assert change.operation == ChangeOperation.MODIFY
        assert change.fields == ["summary", "tags"]
        assert change.payload.summary == "List every task"
        assert change.payload.tags == ["tasks", "list"]

    def test_parameter_payload(self):
        change = parse_changes(_fixture()).value.changes[2]
        assert isinstance(change.payload, Parameter)
        assert change.payload.description == "Filter by status"
        assert change.payload.example == "open"
        assert change.fields == ["type", "description", "example"]

    def test_response_payload(self):
        change = parse_changes(_fixture()).value.changes[3]
        assert isinstance(change.payload, Response)
        assert change.payload.description == "Updated"
        assert change.fields == ["description"]

    def test_component_payload(self):
        change = parse_changes(_fixture()).value.changes[4]
        assert isinstance(change.payload, Component)
        assert change.payload.schema_.properties["message"].type == "string"
        assert change.fields == ["schema"]

    def test_remove_has_no_payload(self):
        change = parse_changes(_fixture()).value.changes[5]
        assert change.payload is None
        assert change.target.component_kind == "response"

    def test_aliases(self):
        text = "## Update Endpoint GET /a\n- summary: x\n\n## Delete Response 404 in GET /a\n"
        ops = [c.operation for c in parse_changes(text).value.changes]
        assert ops == [ChangeOperation.MODIFY, ChangeOperation.REMOVE]

    def test_parameter_location_defaults_to_query(self):
        change = parse_changes("## Remove Parameter limit in GET /a\n").value.changes[0]
        assert change.target.kind == TargetKind.PARAMETER
        assert change.target.location == "query"

    def test_path_parameter_forced_required(self):
        text = "## Add Parameter id (path) in GET /a/{id}\n- type: integer\n"
        change = parse_changes(text).value.changes[0]
        assert change.payload.required is True
        assert "required" in change.fields

    def test_added_response_defaults_description(self):
        change = parse_changes("## Add Response 404 in GET /a\n").value.changes[0]
        assert change.payload.description == "Not Found"

    def test_response_content_from_code_block(self):
        text = '## Modify Response 200 in GET /a\n- media: application/xml\n```json\n{"id": 1}\n```\n'
        change = parse_changes(text).value.changes[0]
        assert change.fields == ["content"]
        assert change.payload.content["application/xml"].type == "object"

    def test_component_description_only_modify(self):
        change = parse_changes("## Modify Component Task\n- description: A unit of work\n").value.changes[0]
        assert change.fields == ["description"]
        assert change.payload.schema_.description == "A unit of work"

    def test_parameter_component(self):
        text = "## Add Component PageSize (parameter)\n- in: query\n- type: integer\n- description: Items per page\n"
        comp = parse_changes(text).value.changes[0].payload
        assert comp.kind == "parameter"
        assert comp.parameter.type == "integer"
        assert comp.parameter.description == "Items per page"

    def test_parameter_component_records_supplied_fields(self):
        text = "## Modify Component PageSize (parameter)\n- description: Items per page\n"
        change = parse_changes(text).value.changes[0]
        assert change.fields == ["description"]

        text = "## Modify Component PageSize (parameter)\n- in: header\n- required: yes\n"
        assert parse_changes(text).value.changes[0].fields == ["location", "required"]

    def test_response_component_records_content(self):
        text = '## Modify Component NotFound (response)\n```json\n{"message": "x"}\n```\n'
        change = parse_changes(text).value.changes[0]
        assert change.fields == ["content"]
        assert "application/json" in change.payload.response.content

    def test_explicit_kind_recorded(self):
        text = "## Modify Component Shared\n- kind: response\n- description: Shared reply\n"
        change = parse_changes(text).value.changes[0]
        assert change.fields == ["kind", "description"]

    def test_h1_ignored(self):
        outcome = parse_changes("# Release notes\n\n## Remove Endpoint GET /a\n")
        assert outcome.diagnostics == []
        assert len(outcome.value) == 1

    def test_field_bullet(self):
        assert field_bullet("Media-Type: text/plain") == ("media_type", "text/plain")
        assert field_bullet("no colon here") is None


class TestChangeParserErrors:
    def test_bad_heading_skips_body(self):
        text = "## Rename Endpoint GET /a\n- summary: x\n\n## Remove Endpoint GET /b\n"
        outcome = parse_changes(text)
        assert [c.target.path for c in outcome.value.changes] == ["/b"]
        err = outcome.errors[0]
        assert err.type == ErrorType.CHANGE
        assert err.line_number == 1
        assert err.column == 4

    def test_bad_targets(self):
        text = (
            "## Add Endpoint /a\n\n"
            "## Add Parameter x (body) in GET /a\n\n"
            "## Add Response 99 in GET /a\n\n"
            "## Add Component Task (widget)\n"
        )
        outcome = parse_changes(text)
        assert len(outcome.value) == 0
        assert [e.line_number for e in outcome.errors] == [1, 3, 5, 7]

    def test_disallowed_method(self):
        outcome = parse_changes("## Remove Endpoint DELETE /a\n", Settings(allowed_methods=["GET"]))
        assert len(outcome.value) == 0
        assert "not allowed" in outcome.errors[0].message

    def test_schema_component_without_code_block(self):
        outcome = parse_changes("## Add Component Task\n- description: x\n")
        assert len(outcome.value) == 0
        assert "has no schema code block" in outcome.errors[0].message

    def test_modify_without_fields_warns(self):
        outcome = parse_changes("## Modify Endpoint GET /a\n")
        assert len(outcome.value) == 1
        assert outcome.errors == []
        assert "supplies no fields" in outcome.warnings[0].message

    def test_unknown_field_warns(self):
        outcome = parse_changes("## Modify Parameter q in GET /a\n- colour: red\n- type: integer\n")
        assert outcome.value.changes[0].fields == ["type"]
        assert "unknown parameter field 'colour'" in outcome.warnings[0].message
        assert outcome.warnings[0].context == "GET /a parameter q (query)"

    def test_heading_errors_have_no_section_context(self):
        outcome = parse_changes("## Rename Endpoint GET /a\n\n## Modify Response 200 in GET /a\n- colour: red\n")
        assert outcome.errors[0].context != "GET /a response 200"
        assert outcome.warnings[0].context == "GET /a response 200"

    def test_unterminated_fence_is_fatal(self):
        text = "## Remove Endpoint GET /a\n\n## Add Component Task\n```json\n{\"type\": \"object\"}\n"
        outcome = parse_changes(text)
        assert outcome.has_fatal
        assert [c.target.identity for c in outcome.value.changes] == ["GET /a"]
        assert outcome.diagnostics[-1].line_number == 4
