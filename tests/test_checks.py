from pathlib import Path

from apiweaver.config import Settings
from apiweaver.parser.base import Component, Document, Endpoint, Parameter, Response, Schema
from apiweaver.parser.checks import check_document, document_statistics, schema_depth
from apiweaver.parser.markdown import parse_markdown

FIXTURES = Path(__file__).parent / "fixtures"


class TestCheckDocument:
    def test_undeclared_path_parameter_warns(self):
        doc = Document(endpoints=[Endpoint(method="GET", path="/tasks/{id}")])
        diags = check_document(doc, Settings())
        assert [d.message for d in diags] == ["path parameter 'id' is not declared"]
        assert diags[0].is_warning

    def test_optional_path_parameter_is_error(self):
        ep = Endpoint(method="GET", path="/tasks/{id}", parameters=[Parameter(name="id", location="path")])
        diags = check_document(Document(endpoints=[ep]), Settings())
        assert any(d.is_error and "must be required" in d.message for d in diags)

    def test_duplicate_component(self):
        doc = Document(
            endpoints=[Endpoint(method="GET", path="/a")],
            components=[Component(name="Task", schema=Schema(type="object"))] * 2,
        )
        assert any("duplicate component 'Task'" in d.message for d in check_document(doc, Settings()))

    def test_strict_mode_recommendations(self):
        doc = Document(endpoints=[Endpoint(method="GET", path="/a")])
        assert check_document(doc, Settings()) == []
        messages = [d.message for d in check_document(doc, Settings(strict_mode=True))]
        assert messages == ["endpoint description is recommended", "endpoint declares no responses"]

    def test_reference_to_non_schema_component(self):
        ep = Endpoint(
            method="GET",
            path="/a",
            responses=[Response(status_code="200", content={"application/json": Schema(ref="#/components/schemas/Page")})],
        )
        doc = Document(endpoints=[ep], components=[Component(name="Page", kind="parameter", parameter=Parameter(name="p", location="query"))])
        diags = check_document(doc, Settings())
        assert len(diags) == 1
        assert "unresolved reference" in diags[0].message


class TestStatistics:
    def test_fixture_statistics(self):
        doc = parse_markdown((FIXTURES / "tasks-api.md").read_text(encoding="utf-8")).value
        stats = document_statistics(doc)
        assert stats.total_endpoints == 3
        assert stats.endpoints_by_method == {"GET": 2, "POST": 1}
        assert stats.total_parameters == 3
        assert stats.has_frontmatter
        assert stats.total_components == 3
        assert stats.max_schema_depth >= 2

    def test_empty_document(self):
        stats = document_statistics(Document())
        assert stats.total_endpoints == 0
        assert stats.average_path_length == 0.0

    def test_schema_depth(self):
        nested = Schema(type="array", items=Schema(type="object", properties={"id": Schema(type="integer")}))
        assert schema_depth(nested) == 2
        assert schema_depth(Schema(type="string")) == 0
