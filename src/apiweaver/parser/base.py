"""Document model for parsed API specifications.

The Markdown parser, the OpenAPI reader and the amendment engine all
produce these models. Instances are frozen: a Document handed to a caller
is never changed in place.
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from apiweaver.errors import ParseError

PARAMETER_LOCATIONS = ("path", "query", "header", "cookie")
COMPONENT_KINDS = ("schema", "parameter", "response")
SCHEMA_REF_PREFIX = "#/components/schemas/"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Server(_Frozen):
    url: str
    description: str = ""


class Frontmatter(_Frozen):
    """Document-level metadata from the leading YAML block."""

    title: str = ""
    version: str = ""
    description: str = ""
    servers: list[Server] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)
    line_number: int = 0


class Schema(_Frozen):
    """A schema node: either a reference (``ref`` set) or an inline definition."""

    type: str = ""
    format: str = ""
    description: str = ""
    example: Any = None
    properties: dict[str, "Schema"] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    items: "Schema | None" = None
    enum: list[Any] = Field(default_factory=list)
    ref: str = ""
    line_number: int = 0

    @model_validator(mode="after")
    def _ref_excludes_structure(self):
        if self.ref:
            mixed = [
                name
                for name in ("type", "format", "properties", "required", "items", "enum")
                if getattr(self, name)
            ]
            if mixed:
                raise ValueError(f"schema reference {self.ref!r} cannot be combined with {', '.join(mixed)}")
        return self

    @property
    def is_reference(self) -> bool:
        return bool(self.ref)

    @property
    def ref_name(self) -> str:
        """Component name a reference points at (empty for inline schemas)."""
        if not self.ref:
            return ""
        return self.ref.rsplit("/", 1)[-1]


class Header(_Frozen):
    type: str = "string"
    description: str = ""
    example: Any = None


class Parameter(_Frozen):
    name: str
    location: str  # path / query / header / cookie
    type: str = "string"
    required: bool = False
    description: str = ""
    example: Any = None
    schema_: Schema | None = Field(default=None, alias="schema")
    line_number: int = 0

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @property
    def identity(self) -> tuple[str, str]:
        return (self.name, self.location)


class RequestBody(_Frozen):
    description: str = ""
    required: bool = False
    content: dict[str, Schema] = Field(default_factory=dict)  # media type -> schema
    line_number: int = 0


class Response(_Frozen):
    status_code: str  # "200", "4XX", "default"
    description: str = ""
    headers: dict[str, Header] = Field(default_factory=dict)
    content: dict[str, Schema] = Field(default_factory=dict)
    line_number: int = 0


class Endpoint(_Frozen):
    """A single HTTP operation, identified by method and path."""

    method: str  # GET / POST / PUT / DELETE / PATCH / HEAD / OPTIONS
    path: str  # /tasks/{id}
    summary: str = ""
    description: str = ""
    parameters: list[Parameter] = Field(default_factory=list)
    request_body: RequestBody | None = None
    responses: list[Response] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    line_number: int = 0

    @property
    def key(self) -> str:
        return f"{self.method} {self.path}"

    def find_parameter(self, name: str, location: str) -> Parameter | None:
        for param in self.parameters:
            if param.identity == (name, location):
                return param
        return None

    def find_response(self, status_code: str) -> Response | None:
        for response in self.responses:
            if response.status_code == status_code:
                return response
        return None


class Component(_Frozen):
    """A named reusable schema, parameter or response."""

    name: str
    kind: Literal["schema", "parameter", "response"] = "schema"
    schema_: Schema | None = Field(default=None, alias="schema")
    parameter: Parameter | None = None
    response: Response | None = None
    line_number: int = 0

    model_config = ConfigDict(frozen=True, populate_by_name=True)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(_Frozen):
    """Root of a parsed API specification."""

    frontmatter: Frontmatter | None = None
    endpoints: list[Endpoint] = Field(default_factory=list)
    components: list[Component] = Field(default_factory=list)
    errors: list[ParseError] = Field(default_factory=list)
    parsed_at: datetime = Field(default_factory=_utcnow)

    @property
    def title(self) -> str:
        return self.frontmatter.title if self.frontmatter else ""

    def find_endpoints(self, method: str, path: str) -> list[Endpoint]:
        method = method.upper()
        return [ep for ep in self.endpoints if ep.method == method and ep.path == path]

    def component(self, name: str, kind: str | None = None) -> Component | None:
        for comp in self.components:
            if comp.name == name and (kind is None or comp.kind == kind):
                return comp
        return None

    def resolve(self, schema: Schema) -> Schema | None:
        """Follow a schema reference through the component registry.

        Inline schemas resolve to themselves; dangling references to None.
        Chains of references are followed, and a cycle resolves to None.
        """
        seen: set[str] = set()
        current: Schema | None = schema
        while current is not None and current.is_reference:
            if current.ref in seen:
                return None
            seen.add(current.ref)
            comp = self.component(current.ref_name, "schema")
            current = comp.schema_ if comp else None
        return current

    def has_errors(self) -> bool:
        return any(e.is_error for e in self.errors)

    def has_fatal_errors(self) -> bool:
        return any(e.is_fatal for e in self.errors)

    def structure(self) -> dict:
        """Model dump without the parse timestamp, for structural comparison."""
        return self.model_dump(exclude={"parsed_at"})


def normalize_ref(ref: str) -> str:
    """Turn a bare component name into a schema reference path."""
    ref = ref.strip()
    if not ref or ref.startswith("#/") or "://" in ref or ref.endswith((".yaml", ".json")):
        return ref
    return SCHEMA_REF_PREFIX + ref
