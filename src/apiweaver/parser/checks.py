"""Structural checks and statistics over a parsed Document."""

import re
from collections import Counter
from typing import Iterator

from pydantic import BaseModel, Field

from apiweaver.config import Settings
from apiweaver.errors import ErrorType, ParseError, new_error, new_warning
from apiweaver.parser.base import PARAMETER_LOCATIONS, Document, Endpoint, Schema

PATH_TEMPLATE_RE = re.compile(r"\{([^}/]+)\}")


def check_document(doc: Document, settings: Settings) -> list[ParseError]:
    """Return validation diagnostics for ``doc`` in document order."""
    errors: list[ParseError] = []

    if not doc.endpoints:
        errors.append(new_warning(ErrorType.VALIDATION, "document contains no endpoints", 0, source="document"))

    seen: set[str] = set()
    for endpoint in doc.endpoints:
        if endpoint.key in seen:
            errors.append(
                new_error(ErrorType.VALIDATION, f"duplicate endpoint: {endpoint.key}", endpoint.line_number, source="endpoint")
            )
        seen.add(endpoint.key)
        errors.extend(_check_endpoint(endpoint, settings))

    names: set[str] = set()
    for comp in doc.components:
        if comp.name in names:
            errors.append(
                new_error(ErrorType.VALIDATION, f"duplicate component '{comp.name}'", comp.line_number, source="components")
            )
        names.add(comp.name)

    for schema, where in iter_schemas(doc):
        if schema.is_reference and doc.component(schema.ref_name, "schema") is None:
            errors.append(
                new_error(
                    ErrorType.REFERENCE,
                    f"unresolved reference '{schema.ref}'",
                    schema.line_number,
                    context=where,
                    source="schema",
                    suggestion=f"define '{schema.ref_name}' under the Components section",
                )
            )
    return errors


def _check_endpoint(endpoint: Endpoint, settings: Settings) -> list[ParseError]:
    errors: list[ParseError] = []
    where = f"endpoint[{endpoint.key}]"
    line = endpoint.line_number

    if endpoint.method not in settings.allowed_methods:
        errors.append(
            new_error(
                ErrorType.VALIDATION,
                f"invalid HTTP method: {endpoint.method}",
                line,
                context=where,
                suggestion="use one of: " + ", ".join(settings.allowed_methods),
            )
        )
    if not endpoint.path.startswith("/"):
        errors.append(new_error(ErrorType.VALIDATION, "path must start with /", line, context=where))

    identities: set[tuple[str, str]] = set()
    for param in endpoint.parameters:
        if param.identity in identities:
            errors.append(
                new_warning(
                    ErrorType.VALIDATION,
                    f"duplicate parameter '{param.name}' in {param.location}",
                    param.line_number,
                    context=where,
                )
            )
        identities.add(param.identity)
        if param.location not in PARAMETER_LOCATIONS:
            errors.append(
                new_error(ErrorType.VALIDATION, f"invalid parameter location: {param.location}", param.line_number, context=where)
            )
        if param.location == "path" and not param.required:
            errors.append(
                new_error(ErrorType.VALIDATION, "path parameters must be required", param.line_number, context=where)
            )

    declared = {p.name for p in endpoint.parameters if p.location == "path"}
    for name in PATH_TEMPLATE_RE.findall(endpoint.path):
        if name not in declared:
            errors.append(
                new_warning(
                    ErrorType.VALIDATION,
                    f"path parameter '{name}' is not declared",
                    line,
                    context=where,
                    suggestion=f"add '{name}' to the Parameters table with In = path",
                )
            )

    if settings.strict_mode:
        if not endpoint.description and not endpoint.summary:
            errors.append(new_warning(ErrorType.VALIDATION, "endpoint description is recommended", line, context=where))
        if not endpoint.responses:
            errors.append(new_warning(ErrorType.VALIDATION, "endpoint declares no responses", line, context=where))
    return errors


def iter_schemas(doc: Document) -> Iterator[tuple[Schema, str]]:
    """Yield every schema node in the document with a path describing where it sits."""
    for endpoint in doc.endpoints:
        base = f"endpoint[{endpoint.key}]"
        for param in endpoint.parameters:
            if param.schema_ is not None:
                yield from _walk(param.schema_, f"{base}.parameter[{param.name}]")
        if endpoint.request_body is not None:
            for media, schema in endpoint.request_body.content.items():
                yield from _walk(schema, f"{base}.requestBody[{media}]")
        for response in endpoint.responses:
            for media, schema in response.content.items():
                yield from _walk(schema, f"{base}.response[{response.status_code}][{media}]")
    for comp in doc.components:
        base = f"component[{comp.name}]"
        if comp.schema_ is not None:
            yield from _walk(comp.schema_, base)
        if comp.parameter is not None and comp.parameter.schema_ is not None:
            yield from _walk(comp.parameter.schema_, base)
        if comp.response is not None:
            for media, schema in comp.response.content.items():
                yield from _walk(schema, f"{base}[{media}]")


def _walk(schema: Schema, where: str) -> Iterator[tuple[Schema, str]]:
    yield schema, where
    for name, prop in schema.properties.items():
        yield from _walk(prop, f"{where}.{name}")
    if schema.items is not None:
        yield from _walk(schema.items, f"{where}[]")


def schema_depth(schema: Schema) -> int:
    children = list(schema.properties.values())
    if schema.items is not None:
        children.append(schema.items)
    if not children:
        return 0
    return 1 + max(schema_depth(child) for child in children)


class DocumentStatistics(BaseModel):
    total_endpoints: int = 0
    endpoints_by_method: dict[str, int] = Field(default_factory=dict)
    total_parameters: int = 0
    parameters_by_type: dict[str, int] = Field(default_factory=dict)
    total_schemas: int = 0
    schemas_by_type: dict[str, int] = Field(default_factory=dict)
    max_schema_depth: int = 0
    has_frontmatter: bool = False
    total_components: int = 0
    average_path_length: float = 0.0


def document_statistics(doc: Document) -> DocumentStatistics:
    params = [p for ep in doc.endpoints for p in ep.parameters]
    schemas = [s for s, _ in iter_schemas(doc)]
    return DocumentStatistics(
        total_endpoints=len(doc.endpoints),
        endpoints_by_method=dict(Counter(ep.method for ep in doc.endpoints)),
        total_parameters=len(params),
        parameters_by_type=dict(Counter(p.type for p in params)),
        total_schemas=len(schemas),
        schemas_by_type=dict(Counter(s.type for s in schemas if s.type)),
        max_schema_depth=max((schema_depth(s) for s in schemas), default=0),
        has_frontmatter=doc.frontmatter is not None,
        total_components=len(doc.components),
        average_path_length=(sum(len(ep.path) for ep in doc.endpoints) / len(doc.endpoints)) if doc.endpoints else 0.0,
    )
