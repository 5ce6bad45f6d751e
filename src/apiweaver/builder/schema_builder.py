"""Fluent builders for schemas, responses and request bodies.

Empty names and None values are ignored rather than rejected, so optional
fields can be chained without guards at the call site.
"""

from typing import Any

from apiweaver.parser.base import Header, RequestBody, Response, Schema, normalize_ref


class SchemaBuilder:
    def __init__(self, line_number: int = 0):
        self._line_number = line_number
        self._type = ""
        self._format = ""
        self._description = ""
        self._example: Any = None
        self._properties: dict[str, Schema] = {}
        self._required: list[str] = []
        self._items: Schema | None = None
        self._enum: list[Any] = []
        self._ref = ""

    def with_type(self, schema_type: str) -> "SchemaBuilder":
        self._type = schema_type or ""
        return self

    def with_format(self, fmt: str) -> "SchemaBuilder":
        self._format = fmt or ""
        return self

    def with_description(self, description: str) -> "SchemaBuilder":
        self._description = description or ""
        return self

    def with_example(self, example: Any) -> "SchemaBuilder":
        self._example = example
        return self

    def add_property(self, name: str, prop: Schema | None) -> "SchemaBuilder":
        if name and prop is not None:
            self._properties[name] = prop
        return self

    def with_items(self, items: Schema | None) -> "SchemaBuilder":
        self._items = items
        return self

    def add_required(self, name: str) -> "SchemaBuilder":
        if name and name not in self._required:
            self._required.append(name)
        return self

    def with_enum(self, values: list[Any] | None) -> "SchemaBuilder":
        self._enum = list(values or [])
        return self

    def with_ref(self, ref: str) -> "SchemaBuilder":
        self._ref = normalize_ref(ref or "")
        return self

    def build(self) -> Schema:
        """Construct the schema; raises ValueError if a ref is mixed with inline structure."""
        return Schema(
            type=self._type,
            format=self._format,
            description=self._description,
            example=self._example,
            properties=dict(self._properties),
            required=list(self._required),
            items=self._items,
            enum=list(self._enum),
            ref=self._ref,
            line_number=self._line_number,
        )


class ResponseBuilder:
    def __init__(self, status_code: str, line_number: int = 0):
        self._status_code = status_code
        self._line_number = line_number
        self._description = ""
        self._headers: dict[str, Header] = {}
        self._content: dict[str, Schema] = {}

    @property
    def status_code(self) -> str:
        return self._status_code

    @property
    def description(self) -> str:
        return self._description

    @property
    def has_content(self) -> bool:
        return bool(self._content)

    def with_description(self, description: str) -> "ResponseBuilder":
        self._description = description or ""
        return self

    def add_header(self, name: str, header: Header | None) -> "ResponseBuilder":
        if name and header is not None:
            self._headers[name] = header
        return self

    def add_content(self, media_type: str, schema: Schema | None) -> "ResponseBuilder":
        if media_type and schema is not None:
            self._content[media_type] = schema
        return self

    def build(self) -> Response:
        return Response(
            status_code=self._status_code,
            description=self._description,
            headers=dict(self._headers),
            content=dict(self._content),
            line_number=self._line_number,
        )


class RequestBodyBuilder:
    def __init__(self, line_number: int = 0):
        self._line_number = line_number
        self._description = ""
        self._required = False
        self._content: dict[str, Schema] = {}

    @property
    def description(self) -> str:
        return self._description

    @property
    def has_content(self) -> bool:
        return bool(self._content)

    def with_description(self, description: str) -> "RequestBodyBuilder":
        self._description = description or ""
        return self

    def required(self) -> "RequestBodyBuilder":
        self._required = True
        return self

    def optional(self) -> "RequestBodyBuilder":
        self._required = False
        return self

    def add_content(self, media_type: str, schema: Schema | None) -> "RequestBodyBuilder":
        if media_type and schema is not None:
            self._content[media_type] = schema
        return self

    def build(self) -> RequestBody:
        return RequestBody(
            description=self._description,
            required=self._required,
            content=dict(self._content),
            line_number=self._line_number,
        )


# Shorthands for common schema shapes

def string_schema(line_number: int = 0) -> Schema:
    return SchemaBuilder(line_number).with_type("string").build()


def integer_schema(line_number: int = 0) -> Schema:
    return SchemaBuilder(line_number).with_type("integer").build()


def array_schema(items: Schema, line_number: int = 0) -> Schema:
    return SchemaBuilder(line_number).with_type("array").with_items(items).build()


def object_schema(properties: dict[str, Schema], required: list[str] | None = None, line_number: int = 0) -> Schema:
    builder = SchemaBuilder(line_number).with_type("object")
    for name, prop in properties.items():
        builder.add_property(name, prop)
    for name in required or []:
        builder.add_required(name)
    return builder.build()


def ref_schema(ref: str, line_number: int = 0) -> Schema:
    return SchemaBuilder(line_number).with_ref(ref).build()
