"""OpenAPI / Swagger document reader.

Reads OpenAPI 3.x (and Swagger 2.0) YAML or JSON into the same Document
model the Markdown parser produces, so a generated specification can be
used as the base of an amendment. Only the fields the Document model
carries are read; anything else is dropped.
"""

from datetime import datetime, timezone
from typing import Any

import yaml

from apiweaver.builder.ast_builder import ComponentBuilder, DocumentBuilder, EndpointBuilder, ParameterBuilder
from apiweaver.builder.schema_builder import RequestBodyBuilder, ResponseBuilder
from apiweaver.config import Settings
from apiweaver.errors import ErrorCollector, ErrorType, Outcome, new_error, new_fatal, new_warning
from apiweaver.parser.base import (
    PARAMETER_LOCATIONS,
    SCHEMA_REF_PREFIX,
    Document,
    Frontmatter,
    Header,
    Parameter,
    RequestBody,
    Response,
    Schema,
    Server,
)
from apiweaver.parser.checks import check_document
from apiweaver.parser.schema import SchemaContext, plain, schema_from_mapping

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")
PARAMETER_REF_PREFIX = "#/components/parameters/"
RESPONSE_REF_PREFIX = "#/components/responses/"
REQUEST_BODY_REF_PREFIX = "#/components/requestBodies/"
SWAGGER_DEFINITIONS_PREFIX = "#/definitions/"


def parse_openapi(text: str, settings: Settings | None = None) -> Outcome[Document]:
    """Parse OpenAPI/Swagger text into a Document.

    Text that is not YAML/JSON, or not a mapping, is a fatal diagnostic.
    """
    settings = settings or Settings()
    collector = ErrorCollector(settings.max_errors)
    builder = DocumentBuilder(parsed_at=datetime.now(timezone.utc))

    try:
        spec = plain(yaml.safe_load(text))
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        collector.add(
            new_fatal(
                ErrorType.SYNTAX,
                f"invalid YAML/JSON: {getattr(e, 'problem', None) or e}",
                mark.line + 1 if mark else 0,
                column=mark.column + 1 if mark else 0,
                source="openapi",
            )
        )
        return _outcome(builder, collector)

    if not isinstance(spec, dict):
        collector.add(new_fatal(ErrorType.SYNTAX, "specification must be a mapping", 1, source="openapi"))
        return _outcome(builder, collector)

    reader = _Reader(spec, settings, collector)
    reader.read(builder)
    if not collector.has_fatal_errors():
        collector.extend(check_document(builder.build(), settings))
    return _outcome(builder, collector)


def _outcome(builder: DocumentBuilder, collector: ErrorCollector) -> Outcome[Document]:
    builder.add_errors(collector.items)
    document = builder.build()
    return Outcome(value=document, diagnostics=list(document.errors))


class _Reader:
    def __init__(self, spec: dict, settings: Settings, collector: ErrorCollector):
        self.swagger = "swagger" in spec and "openapi" not in spec
        self.spec = _rewrite_definitions(spec) if self.swagger else spec
        self.settings = settings
        self.collector = collector
        components = self.spec.get("components")
        self.components = components if isinstance(components, dict) else {}
        if self.swagger and isinstance(self.spec.get("definitions"), dict):
            self.components = {"schemas": self.spec["definitions"]}

    def read(self, builder: DocumentBuilder) -> None:
        if "openapi" not in self.spec and "swagger" not in self.spec:
            self.collector.add(
                new_warning(ErrorType.VALIDATION, "missing 'openapi' version field", 1, source="openapi")
            )
        builder.with_frontmatter(self._frontmatter())

        paths = self.spec.get("paths") or {}
        if not isinstance(paths, dict):
            self.collector.add(new_error(ErrorType.VALIDATION, "'paths' must be a mapping", 0, source="openapi"))
            paths = {}
        for path, item in paths.items():
            if not isinstance(item, dict):
                self.collector.add(new_error(ErrorType.ENDPOINT, f"path item '{path}' must be a mapping", source="openapi"))
                continue
            shared = self._parameters(self._sequence(item.get("parameters"), "parameters", str(path)), str(path))
            for method, operation in item.items():
                method = str(method)
                if method.lower() not in HTTP_METHODS:
                    continue
                if method.upper() not in self.settings.allowed_methods:
                    self.collector.add(
                        new_warning(ErrorType.ENDPOINT, f"skipping {method.upper()} {path}: method not allowed", source="openapi")
                    )
                    continue
                where = f"{method.upper()} {path}"
                operation = self._mapping(operation, "operation", where)
                builder.add_endpoint(self._endpoint(method, str(path), operation, shared))

        self._components(builder)

    def _frontmatter(self) -> Frontmatter | None:
        info = self.spec.get("info")
        servers = self._servers()
        if not isinstance(info, dict) and not servers:
            return None
        info = info if isinstance(info, dict) else {}
        metadata = {
            str(k)[2:]: str(v)
            for k, v in info.items()
            if str(k).startswith("x-") and v is not None
        }
        return Frontmatter(
            title=str(info.get("title") or ""),
            version=str(info.get("version") or ""),
            description=str(info.get("description") or ""),
            servers=servers,
            metadata=metadata,
        )

    def _servers(self) -> list[Server]:
        if self.swagger and self.spec.get("host"):
            schemes = self.spec.get("schemes")
            scheme = schemes[0] if isinstance(schemes, list) and schemes else "https"
            return [Server(url=f"{scheme}://{self.spec['host']}{self.spec.get('basePath', '')}")]
        servers = []
        for entry in self._sequence(self.spec.get("servers"), "servers", "document"):
            if isinstance(entry, dict) and entry.get("url"):
                servers.append(Server(url=str(entry["url"]), description=str(entry.get("description") or "")))
        return servers

    def _endpoint(self, method: str, path: str, operation: dict, shared: list[Parameter]):
        where = f"{method.upper()} {path}"
        builder = EndpointBuilder(method, path)
        builder.with_summary(str(operation.get("summary") or ""))
        builder.with_description(str(operation.get("description") or ""))
        builder.add_tags([str(t) for t in self._sequence(operation.get("tags"), "tags", where)])

        params = self._sequence(operation.get("parameters"), "parameters", where)
        own = self._parameters(params, where)
        own_ids = {p.identity for p in own}
        builder.add_parameters([p for p in shared if p.identity not in own_ids] + own)

        if self.swagger:
            body = next((p for p in params if isinstance(p, dict) and p.get("in") == "body"), None)
            if body is not None:
                builder.with_request_body(self._swagger_body(body, operation))
        elif operation.get("requestBody"):
            body = self._mapping(operation["requestBody"], "requestBody", where)
            if body:
                builder.with_request_body(self._request_body(body, where))

        for status, response in self._mapping(operation.get("responses"), "responses", where).items():
            builder.add_response(self._response(str(status), response, f"{where} response {status}"))
        return builder.build()

    def _mapping(self, value: Any, what: str, where: str) -> dict:
        """``value`` when it is a mapping; anything else but null is reported and read as empty."""
        if isinstance(value, dict):
            return value
        if value is not None:
            self.collector.add(
                new_error(ErrorType.VALIDATION, f"'{what}' must be a mapping", context=where, source="openapi")
            )
        return {}

    def _sequence(self, value: Any, what: str, where: str) -> list:
        if isinstance(value, list):
            return value
        if value is not None:
            self.collector.add(
                new_error(ErrorType.VALIDATION, f"'{what}' must be a list", context=where, source="openapi")
            )
        return []

    # parameters

    def _parameters(self, params: list, where: str) -> list[Parameter]:
        result = []
        for p in params:
            if not isinstance(p, dict):
                continue
            if "$ref" in p:
                p = self._lookup(p["$ref"], PARAMETER_REF_PREFIX, "parameters", where)
                if p is None:
                    continue
            param = self._parameter(p, where)
            if param is not None:
                result.append(param)
        return result

    def _parameter(self, p: dict, where: str) -> Parameter | None:
        name = str(p.get("name") or "")
        location = str(p.get("in") or "query")
        if location in ("body", "formData"):
            return None
        if not name or location not in PARAMETER_LOCATIONS:
            self.collector.add(
                new_error(ErrorType.VALIDATION, f"invalid parameter '{name}' in {location}", context=where, source="openapi")
            )
            return None

        schema = p.get("schema") if isinstance(p.get("schema"), dict) else {}
        if self.swagger:
            schema = {k: v for k, v in p.items() if k in ("type", "format", "enum", "items")}
        builder = ParameterBuilder(name, location)
        builder.with_type(str(schema.get("type") or ""))
        builder.with_description(str(p.get("description") or ""))
        example = p.get("example", schema.get("example"))
        if example is not None:
            builder.with_example(example)
        if p.get("required") or location == "path":
            builder.required()
        if set(schema) - {"type", "example"}:
            builder.with_schema(self._schema(schema))
        return builder.build()

    # bodies

    def _request_body(self, body: dict, where: str) -> RequestBody | None:
        if "$ref" in body:
            body = self._lookup(body["$ref"], REQUEST_BODY_REF_PREFIX, "requestBodies", where)
            if body is None:
                return None
        builder = RequestBodyBuilder()
        builder.with_description(str(body.get("description") or ""))
        if body.get("required"):
            builder.required()
        self._content(builder, body.get("content"), f"{where} requestBody")
        return builder.build()

    def _swagger_body(self, param: dict, operation: dict) -> RequestBody:
        builder = RequestBodyBuilder()
        builder.with_description(str(param.get("description") or ""))
        if param.get("required"):
            builder.required()
        consumes = operation.get("consumes") or self.spec.get("consumes")
        media = consumes[0] if isinstance(consumes, list) and consumes else "application/json"
        schema = param.get("schema")
        builder.add_content(str(media), self._schema(schema if isinstance(schema, dict) else {}))
        return builder.build()

    def _response(self, status: str, response: Any, where: str) -> Response | None:
        response = self._mapping(response, "response", where)
        if "$ref" in response:
            response = self._lookup(response["$ref"], RESPONSE_REF_PREFIX, "responses", where)
            if response is None:
                return None
        builder = ResponseBuilder(status)
        builder.with_description(str(response.get("description") or ""))
        for name, header in self._mapping(response.get("headers"), "headers", where).items():
            header = self._mapping(header, f"header {name}", where)
            schema = header.get("schema") if isinstance(header.get("schema"), dict) else header
            builder.add_header(
                str(name),
                Header(
                    type=str(schema.get("type") or "string"),
                    description=str(header.get("description") or ""),
                    example=header.get("example"),
                ),
            )
        if self.swagger:
            if isinstance(response.get("schema"), dict):
                produces = self.spec.get("produces")
                media = produces[0] if isinstance(produces, list) and produces else "application/json"
                builder.add_content(str(media), self._schema(response["schema"]))
        else:
            self._content(builder, response.get("content"), where)
        return builder.build()

    def _content(self, builder, content: Any, where: str) -> None:
        for media, entry in self._mapping(content, "content", where).items():
            entry = self._mapping(entry, f"content {media}", where)
            schema = entry.get("schema")
            builder.add_content(str(media), self._schema(schema if isinstance(schema, dict) else {}))

    # components

    def _components(self, builder: DocumentBuilder) -> None:
        schemas = self._mapping(self.components.get("schemas"), "schemas", "components")
        for name, schema in schemas.items():
            built = self._schema(schema if isinstance(schema, dict) else {})
            if built is not None:
                builder.add_component(ComponentBuilder(str(name)).with_schema(built).build())
        parameters = self._mapping(self.components.get("parameters"), "parameters", "components")
        for name, p in parameters.items():
            where = f"components.parameters.{name}"
            param = self._parameter(p, where) if isinstance(p, dict) else None
            if param is not None:
                builder.add_component(ComponentBuilder(str(name)).with_parameter(param).build())
        responses = self._mapping(self.components.get("responses"), "responses", "components")
        for name, r in responses.items():
            response = self._response("default", r, f"components.responses.{name}")
            if response is not None:
                builder.add_component(ComponentBuilder(str(name)).with_response(response).build())

    def _schema(self, data: dict) -> Schema | None:
        ctx = SchemaContext(0, self.settings.max_nesting_depth)
        schema = schema_from_mapping(data, ctx)
        self.collector.extend(ctx.diagnostics)
        return schema

    def _lookup(self, ref: Any, prefix: str, section: str, where: str) -> dict | None:
        ref = str(ref)
        name = ref[len(prefix):] if ref.startswith(prefix) else ""
        entries = self.components.get(section)
        target = entries.get(name) if isinstance(entries, dict) else None
        if not isinstance(target, dict):
            self.collector.add(
                new_warning(ErrorType.REFERENCE, f"cannot resolve reference '{ref}'", context=where, source="openapi")
            )
            return None
        return target


def _rewrite_definitions(value: Any) -> Any:
    """Point Swagger 2.0 ``#/definitions/`` references at component schemas."""
    if isinstance(value, dict):
        result = {}
        for k, v in value.items():
            if k == "$ref" and isinstance(v, str) and v.startswith(SWAGGER_DEFINITIONS_PREFIX):
                result[k] = SCHEMA_REF_PREFIX + v[len(SWAGGER_DEFINITIONS_PREFIX):]
            else:
                result[k] = _rewrite_definitions(v)
        return result
    if isinstance(value, list):
        return [_rewrite_definitions(v) for v in value]
    return value
