"""Render a Document as an OpenAPI 3.1 specification."""

import json

import yaml

from apiweaver.errors import SerializationError
from apiweaver.parser.base import Component, Document, Endpoint, Header, Parameter, RequestBody, Response, Schema

OPENAPI_VERSION = "3.1.0"
DEFAULT_TITLE = "Generated API"
DEFAULT_VERSION = "1.0.0"
OUTPUT_FORMATS = ("yaml", "json")


def to_openapi(doc: Document) -> dict:
    """Build the OpenAPI mapping for ``doc``; key order follows the document."""
    spec: dict = {"openapi": OPENAPI_VERSION, "info": _info(doc)}

    if doc.frontmatter and doc.frontmatter.servers:
        spec["servers"] = [_server(s.url, s.description) for s in doc.frontmatter.servers]

    paths: dict = {}
    for endpoint in doc.endpoints:
        paths.setdefault(endpoint.path, {})[endpoint.method.lower()] = _operation(endpoint)
    spec["paths"] = paths

    components = _components(doc.components)
    if components:
        spec["components"] = components
    return spec


def serialize(doc: Document, fmt: str = "yaml", pretty: bool = True) -> str:
    """Serialize ``doc`` as YAML or JSON text.

    Raises SerializationError for an unknown format or unserializable content.
    """
    fmt = (fmt or "").lower()
    if fmt not in OUTPUT_FORMATS:
        raise SerializationError(f"unsupported output format '{fmt}' (use one of: {', '.join(OUTPUT_FORMATS)})")

    spec = to_openapi(doc)
    try:
        if fmt == "json":
            return json.dumps(spec, indent=2 if pretty else None, ensure_ascii=False) + ("\n" if pretty else "")
        return yaml.safe_dump(
            spec,
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
            width=100 if pretty else float("inf"),
        )
    except (TypeError, ValueError, yaml.YAMLError) as e:
        raise SerializationError(f"cannot serialize document as {fmt}: {e}") from e


def _info(doc: Document) -> dict:
    fm = doc.frontmatter
    info = {
        "title": (fm.title if fm else "") or DEFAULT_TITLE,
        "version": (fm.version if fm else "") or DEFAULT_VERSION,
    }
    if fm is not None:
        if fm.description:
            info["description"] = fm.description
        for key, value in fm.metadata.items():
            info[f"x-{key}"] = value
    return info


def _server(url: str, description: str) -> dict:
    server = {"url": url}
    if description:
        server["description"] = description
    return server


def _operation(endpoint: Endpoint) -> dict:
    op: dict = {}
    if endpoint.summary:
        op["summary"] = endpoint.summary
    if endpoint.description:
        op["description"] = endpoint.description
    if endpoint.tags:
        op["tags"] = list(endpoint.tags)
    if endpoint.parameters:
        op["parameters"] = [_parameter(p) for p in endpoint.parameters]
    if endpoint.request_body is not None:
        op["requestBody"] = _request_body(endpoint.request_body)
    # responses are optional in OpenAPI 3.1
    if endpoint.responses:
        op["responses"] = {r.status_code: _response(r) for r in endpoint.responses}
    return op


def _parameter(param: Parameter) -> dict:
    out: dict = {"name": param.name, "in": param.location}
    if param.description:
        out["description"] = param.description
    if param.required or param.location == "path":
        out["required"] = True
    out["schema"] = schema_dict(param.schema_) if param.schema_ is not None else {"type": param.type}
    if param.example is not None:
        out["example"] = param.example
    return out


def _request_body(body: RequestBody) -> dict:
    out: dict = {}
    if body.description:
        out["description"] = body.description
    if body.required:
        out["required"] = True
    out["content"] = _content(body.content)
    return out


def _response(response: Response) -> dict:
    out: dict = {"description": response.description}
    if response.headers:
        out["headers"] = {name: _header(h) for name, h in response.headers.items()}
    if response.content:
        out["content"] = _content(response.content)
    return out


def _header(header: Header) -> dict:
    out: dict = {}
    if header.description:
        out["description"] = header.description
    out["schema"] = {"type": header.type}
    if header.example is not None:
        out["example"] = header.example
    return out


def _content(content: dict[str, Schema]) -> dict:
    return {media: {"schema": schema_dict(schema)} for media, schema in content.items()}


def schema_dict(schema: Schema) -> dict:
    """JSON-schema mapping for a Schema node."""
    if schema.is_reference:
        out = {"$ref": schema.ref}
        if schema.description:
            out["description"] = schema.description
        return out

    out = {}
    if schema.type:
        out["type"] = schema.type
    if schema.format:
        out["format"] = schema.format
    if schema.description:
        out["description"] = schema.description
    if schema.enum:
        out["enum"] = list(schema.enum)
    if schema.properties:
        out["properties"] = {name: schema_dict(prop) for name, prop in schema.properties.items()}
    if schema.required:
        out["required"] = list(schema.required)
    if schema.items is not None:
        out["items"] = schema_dict(schema.items)
    if schema.example is not None:
        out["example"] = schema.example
    return out


def _components(components: list[Component]) -> dict:
    out: dict = {}
    for comp in components:
        if comp.kind == "schema" and comp.schema_ is not None:
            out.setdefault("schemas", {})[comp.name] = schema_dict(comp.schema_)
        elif comp.kind == "parameter" and comp.parameter is not None:
            out.setdefault("parameters", {})[comp.name] = _parameter(comp.parameter)
        elif comp.kind == "response" and comp.response is not None:
            out.setdefault("responses", {})[comp.name] = _response(comp.response)
    return out
