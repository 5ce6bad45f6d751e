import pytest
from pydantic import ValidationError

from apiweaver.parser.base import (
    Component,
    Document,
    Endpoint,
    Parameter,
    Response,
    Schema,
    normalize_ref,
)


class TestParameter:
    def test_create_required_param(self):
        p = Parameter(name="id", location="path", required=True, type="integer")
        assert p.name == "id"
        assert p.required is True
        assert p.description == ""
        assert p.schema_ is None

    def test_defaults(self):
        p = Parameter(name="q", location="query")
        assert p.type == "string"
        assert p.required is False
        assert p.identity == ("q", "query")

    def test_schema_alias(self):
        p = Parameter(name="ids", location="query", schema=Schema(type="array", items=Schema(type="integer")))
        assert p.schema_.items.type == "integer"

    def test_frozen(self):
        p = Parameter(name="q", location="query")
        with pytest.raises(ValidationError):
            p.name = "other"


class TestSchema:
    def test_reference_properties(self):
        s = Schema(ref="#/components/schemas/Task")
        assert s.is_reference
        assert s.ref_name == "Task"

    def test_inline_has_no_ref_name(self):
        assert Schema(type="string").ref_name == ""

    def test_ref_with_description_allowed(self):
        s = Schema(ref="#/components/schemas/Task", description="The task")
        assert s.description == "The task"

    def test_ref_mixed_with_structure_rejected(self):
        with pytest.raises(ValidationError, match="cannot be combined with type"):
            Schema(ref="#/components/schemas/Task", type="object")

    def test_ref_mixed_with_properties_rejected(self):
        with pytest.raises(ValueError):
            Schema(ref="#/components/schemas/Task", properties={"id": Schema(type="integer")})


class TestNormalizeRef:
    def test_bare_name(self):
        assert normalize_ref("Task") == "#/components/schemas/Task"

    def test_full_ref_untouched(self):
        assert normalize_ref("#/components/schemas/Task") == "#/components/schemas/Task"

    def test_external_file_untouched(self):
        assert normalize_ref("common.yaml") == "common.yaml"


class TestEndpoint:
    def test_create_minimal_endpoint(self):
        ep = Endpoint(method="GET", path="/tasks")
        assert ep.key == "GET /tasks"
        assert ep.parameters == []
        assert ep.responses == []
        assert ep.request_body is None
        assert ep.tags == []

    def test_find_parameter_and_response(self):
        ep = Endpoint(
            method="GET",
            path="/tasks/{id}",
            parameters=[Parameter(name="id", location="path", required=True)],
            responses=[Response(status_code="200", description="OK")],
        )
        assert ep.find_parameter("id", "path").name == "id"
        assert ep.find_parameter("id", "query") is None
        assert ep.find_response("200").description == "OK"
        assert ep.find_response("404") is None


class TestDocument:
    def _doc(self) -> Document:
        return Document(
            endpoints=[Endpoint(method="GET", path="/tasks"), Endpoint(method="POST", path="/tasks")],
            components=[
                Component(name="Task", schema=Schema(type="object")),
                Component(name="TaskRef", schema=Schema(ref="#/components/schemas/Task")),
                Component(name="Loop", schema=Schema(ref="#/components/schemas/Loop")),
            ],
        )

    def test_defaults_are_empty(self):
        doc = Document()
        assert doc.frontmatter is None
        assert doc.endpoints == []
        assert doc.components == []
        assert doc.errors == []
        assert doc.title == ""

    def test_find_endpoints_uppercases_method(self):
        doc = self._doc()
        assert [ep.key for ep in doc.find_endpoints("post", "/tasks")] == ["POST /tasks"]

    def test_component_lookup_by_kind(self):
        doc = self._doc()
        assert doc.component("Task").name == "Task"
        assert doc.component("Task", "parameter") is None

    def test_resolve_follows_reference_chain(self):
        doc = self._doc()
        resolved = doc.resolve(Schema(ref="#/components/schemas/TaskRef"))
        assert resolved.type == "object"

    def test_resolve_inline_returns_itself(self):
        s = Schema(type="string")
        assert self._doc().resolve(s) is s

    def test_resolve_dangling_and_cycle(self):
        doc = self._doc()
        assert doc.resolve(Schema(ref="#/components/schemas/Missing")) is None
        assert doc.resolve(Schema(ref="#/components/schemas/Loop")) is None

    def test_structure_ignores_parse_time(self):
        a = self._doc()
        b = self._doc()
        assert a.structure() == b.structure()
