from datetime import datetime, timezone

import pytest

from apiweaver.builder.ast_builder import ComponentBuilder, DocumentBuilder, EndpointBuilder, ParameterBuilder
from apiweaver.builder.schema_builder import (
    RequestBodyBuilder,
    ResponseBuilder,
    SchemaBuilder,
    array_schema,
    integer_schema,
    object_schema,
    ref_schema,
    string_schema,
)
from apiweaver.errors import ErrorType, new_error, new_fatal
from apiweaver.parser.base import Endpoint, Header, Parameter, Response, Schema


class TestSchemaBuilder:
    def test_builds_object(self):
        schema = (
            SchemaBuilder(3)
            .with_type("object")
            .add_property("id", integer_schema())
            .add_required("id")
            .build()
        )
        assert schema.type == "object"
        assert schema.properties["id"].type == "integer"
        assert schema.required == ["id"]
        assert schema.line_number == 3

    def test_empty_property_name_is_noop(self):
        builder = SchemaBuilder().with_type("object")
        before = builder.build()
        builder.add_property("", string_schema()).add_property("name", None)
        assert builder.build() == before

    def test_required_ignores_empty_and_duplicates(self):
        schema = SchemaBuilder().add_required("id").add_required("id").add_required("").build()
        assert schema.required == ["id"]

    def test_build_returns_fresh_equal_values(self):
        builder = SchemaBuilder().with_type("string")
        first, second = builder.build(), builder.build()
        assert first == second
        assert first is not second

    def test_ref_is_normalized(self):
        assert ref_schema("Task").ref == "#/components/schemas/Task"

    def test_ref_mixed_with_type_raises(self):
        with pytest.raises(ValueError):
            SchemaBuilder().with_ref("Task").with_type("object").build()

    def test_shorthands(self):
        assert array_schema(string_schema()).items.type == "string"
        obj = object_schema({"a": string_schema()}, required=["a"])
        assert obj.required == ["a"]


class TestResponseBuilder:
    def test_noop_for_empty_header_and_media(self):
        builder = ResponseBuilder("200").with_description("OK")
        before = builder.build()
        builder.add_header("", Header()).add_header("X-Id", None)
        builder.add_content("", string_schema()).add_content("application/json", None)
        assert builder.build() == before

    def test_content_and_headers(self):
        response = (
            ResponseBuilder("201")
            .add_header("Location", Header(description="New URL"))
            .add_content("application/json", string_schema())
            .build()
        )
        assert response.headers["Location"].type == "string"
        assert "application/json" in response.content


class TestRequestBodyBuilder:
    def test_required_toggle(self):
        builder = RequestBodyBuilder().required()
        assert builder.build().required is True
        assert builder.optional().build().required is False


class TestEndpointBuilder:
    def test_method_uppercased(self):
        assert EndpointBuilder("get", "/tasks").build().method == "GET"

    def test_tags_unique_in_insertion_order(self):
        ep = EndpointBuilder("GET", "/tasks").add_tags(["b", "a", "b", " ", ""]).build()
        assert ep.tags == ["b", "a"]

    def test_noop_for_invalid_children(self):
        builder = EndpointBuilder("GET", "/tasks")
        before = builder.build()
        builder.add_parameter(None)
        builder.add_parameter(Parameter(name="", location="query"))
        builder.add_response(None)
        builder.add_response(Response(status_code=""))
        builder.add_tag("")
        assert builder.build() == before

    def test_containers_never_none(self):
        ep = EndpointBuilder("GET", "/tasks").build()
        assert ep.parameters == []
        assert ep.responses == []
        assert ep.tags == []


class TestParameterBuilder:
    def test_defaults_to_string(self):
        p = ParameterBuilder("q", "query").with_type("").build()
        assert p.type == "string"
        assert p.required is False

    def test_required_and_example(self):
        p = ParameterBuilder("id", "path").with_type("integer").required().with_example(42).build()
        assert p.required is True
        assert p.example == 42


class TestComponentBuilder:
    def test_kind_follows_last_content(self):
        builder = ComponentBuilder("Thing").with_schema(Schema(type="object"))
        assert builder.build().kind == "schema"
        comp = builder.with_response(Response(status_code="default", description="x")).build()
        assert comp.kind == "response"
        assert comp.schema_ is None

    def test_none_content_is_noop(self):
        comp = ComponentBuilder("Thing").with_schema(Schema(type="object")).with_parameter(None).build()
        assert comp.kind == "schema"


class TestDocumentBuilder:
    def test_noop_for_invalid_entities(self):
        builder = DocumentBuilder(parsed_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
        before = builder.build()
        builder.add_endpoint(None)
        builder.add_endpoint(Endpoint(method="", path="/x"))
        builder.add_component(None)
        builder.add_error(None)
        assert builder.build() == before

    def test_error_tracking(self):
        builder = DocumentBuilder()
        assert not builder.has_errors()
        builder.add_error(new_error(ErrorType.TABLE, "bad row", 3))
        assert builder.has_errors()
        assert not builder.has_fatal_errors()
        builder.add_errors([new_fatal(ErrorType.SYNTAX, "broken", 9)])
        assert builder.has_fatal_errors()

    def test_components_always_present(self):
        assert DocumentBuilder().build().components == []
