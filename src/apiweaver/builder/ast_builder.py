"""Fluent builders for documents, endpoints, parameters and components."""

from datetime import datetime
from typing import Any

from apiweaver.errors import ParseError
from apiweaver.parser.base import (
    Component,
    Document,
    Endpoint,
    Frontmatter,
    Parameter,
    RequestBody,
    Response,
    Schema,
)


class DocumentBuilder:
    def __init__(self, parsed_at: datetime | None = None):
        self._frontmatter: Frontmatter | None = None
        self._endpoints: list[Endpoint] = []
        self._components: list[Component] = []
        self._errors: list[ParseError] = []
        self._parsed_at = parsed_at

    def with_frontmatter(self, frontmatter: Frontmatter | None) -> "DocumentBuilder":
        self._frontmatter = frontmatter
        return self

    @property
    def frontmatter(self) -> Frontmatter | None:
        return self._frontmatter

    def add_endpoint(self, endpoint: Endpoint | None) -> "DocumentBuilder":
        if endpoint is not None and endpoint.method and endpoint.path:
            self._endpoints.append(endpoint)
        return self

    def add_endpoints(self, endpoints: list[Endpoint]) -> "DocumentBuilder":
        for endpoint in endpoints:
            self.add_endpoint(endpoint)
        return self

    def add_component(self, component: Component | None) -> "DocumentBuilder":
        if component is not None and component.name:
            self._components.append(component)
        return self

    def add_components(self, components: list[Component]) -> "DocumentBuilder":
        for component in components:
            self.add_component(component)
        return self

    def add_error(self, err: ParseError | None) -> "DocumentBuilder":
        if err is not None:
            self._errors.append(err)
        return self

    def add_errors(self, errs: list[ParseError]) -> "DocumentBuilder":
        for err in errs:
            self.add_error(err)
        return self

    def has_errors(self) -> bool:
        return len(self._errors) > 0

    def has_fatal_errors(self) -> bool:
        return any(err.is_fatal for err in self._errors)

    def build(self) -> Document:
        kwargs: dict[str, Any] = {}
        if self._parsed_at is not None:
            kwargs["parsed_at"] = self._parsed_at
        return Document(
            frontmatter=self._frontmatter,
            endpoints=list(self._endpoints),
            components=list(self._components),
            errors=list(self._errors),
            **kwargs,
        )


class EndpointBuilder:
    def __init__(self, method: str, path: str, line_number: int = 0):
        self._method = method.upper()
        self._path = path
        self._line_number = line_number
        self._summary = ""
        self._description = ""
        self._parameters: list[Parameter] = []
        self._request_body: RequestBody | None = None
        self._responses: list[Response] = []
        self._tags: list[str] = []

    @property
    def key(self) -> str:
        return f"{self._method} {self._path}"

    @property
    def summary(self) -> str:
        return self._summary

    @property
    def description(self) -> str:
        return self._description

    @property
    def tags(self) -> list[str]:
        return list(self._tags)

    def with_summary(self, summary: str) -> "EndpointBuilder":
        self._summary = summary or ""
        return self

    def with_description(self, description: str) -> "EndpointBuilder":
        self._description = description or ""
        return self

    def add_parameter(self, param: Parameter | None) -> "EndpointBuilder":
        if param is not None and param.name:
            self._parameters.append(param)
        return self

    def add_parameters(self, params: list[Parameter]) -> "EndpointBuilder":
        for param in params:
            self.add_parameter(param)
        return self

    def with_request_body(self, request_body: RequestBody | None) -> "EndpointBuilder":
        self._request_body = request_body
        return self

    def add_response(self, response: Response | None) -> "EndpointBuilder":
        if response is not None and response.status_code:
            self._responses.append(response)
        return self

    def add_responses(self, responses: list[Response]) -> "EndpointBuilder":
        for response in responses:
            self.add_response(response)
        return self

    def add_tag(self, tag: str) -> "EndpointBuilder":
        tag = (tag or "").strip()
        if tag and tag not in self._tags:
            self._tags.append(tag)
        return self

    def add_tags(self, tags: list[str]) -> "EndpointBuilder":
        for tag in tags:
            self.add_tag(tag)
        return self

    def build(self) -> Endpoint:
        return Endpoint(
            method=self._method,
            path=self._path,
            summary=self._summary,
            description=self._description,
            parameters=list(self._parameters),
            request_body=self._request_body,
            responses=list(self._responses),
            tags=list(self._tags),
            line_number=self._line_number,
        )


class ParameterBuilder:
    def __init__(self, name: str, location: str, line_number: int = 0):
        self._name = name
        self._location = location
        self._line_number = line_number
        self._type = "string"
        self._required = False
        self._description = ""
        self._example: Any = None
        self._schema: Schema | None = None

    def with_type(self, param_type: str) -> "ParameterBuilder":
        if param_type:
            self._type = param_type
        return self

    def required(self) -> "ParameterBuilder":
        self._required = True
        return self

    def optional(self) -> "ParameterBuilder":
        self._required = False
        return self

    def with_description(self, description: str) -> "ParameterBuilder":
        self._description = description or ""
        return self

    def with_example(self, example: Any) -> "ParameterBuilder":
        self._example = example
        return self

    def with_schema(self, schema: Schema | None) -> "ParameterBuilder":
        self._schema = schema
        return self

    def build(self) -> Parameter:
        return Parameter(
            name=self._name,
            location=self._location,
            type=self._type,
            required=self._required,
            description=self._description,
            example=self._example,
            schema=self._schema,
            line_number=self._line_number,
        )


class ComponentBuilder:
    """Builds a named component holding exactly one schema, parameter or response."""

    def __init__(self, name: str, line_number: int = 0):
        self._name = name
        self._line_number = line_number
        self._kind = "schema"
        self._schema: Schema | None = None
        self._parameter: Parameter | None = None
        self._response: Response | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def kind(self) -> str:
        return self._kind

    def with_schema(self, schema: Schema | None) -> "ComponentBuilder":
        if schema is not None:
            self._kind, self._schema = "schema", schema
            self._parameter = self._response = None
        return self

    def with_parameter(self, parameter: Parameter | None) -> "ComponentBuilder":
        if parameter is not None:
            self._kind, self._parameter = "parameter", parameter
            self._schema = self._response = None
        return self

    def with_response(self, response: Response | None) -> "ComponentBuilder":
        if response is not None:
            self._kind, self._response = "response", response
            self._schema = self._parameter = None
        return self

    def build(self) -> Component:
        return Component(
            name=self._name,
            kind=self._kind,
            schema=self._schema,
            parameter=self._parameter,
            response=self._response,
            line_number=self._line_number,
        )
