"""Schema construction from fenced code payloads.

A payload is either a schema literal (JSON-schema subset) or an example
body from which a schema is inferred.
"""

import json
import re
from datetime import date, datetime
from typing import Any

import yaml

from apiweaver.builder.schema_builder import SchemaBuilder
from apiweaver.errors import ErrorType, ParseError, new_error, new_warning
from apiweaver.parser.base import Schema

JSON_TYPES = {"object", "array", "string", "integer", "number", "boolean", "null"}
REF_KEYS = ("$ref", "ref")

_DATE_TIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")


class SchemaContext:
    """Carries the depth limit and collects diagnostics while building schemas."""

    def __init__(self, line_number: int, max_depth: int = 10):
        self.line_number = line_number
        self.max_depth = max_depth
        self.diagnostics: list[ParseError] = []
        self._truncated = False

    def truncated(self):
        if not self._truncated:
            self._truncated = True
            self.diagnostics.append(
                new_warning(
                    ErrorType.SCHEMA,
                    f"schema nesting exceeds maximum depth of {self.max_depth}; deeper levels are untyped",
                    self.line_number,
                    source="schema",
                )
            )


def load_payload(body: list[str], line_number: int) -> tuple[Any, ParseError | None]:
    """Parse fence contents as YAML (which also accepts JSON).

    ``line_number`` is the fence's opening line; YAML error marks are offset
    so that the reported line points into the file.
    """
    text = "\n".join(body)
    try:
        return plain(yaml.safe_load(text)), None
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        line = line_number + 1 + mark.line if mark else line_number
        column = mark.column + 1 if mark else 0
        problem = getattr(e, "problem", None) or str(e)
        return None, new_error(
            ErrorType.SCHEMA,
            f"invalid code block payload: {problem}",
            line,
            column=column,
            source="schema",
            context=body[mark.line] if mark and mark.line < len(body) else "",
        )


def is_schema_literal(payload: Any, info: str = "", prefer_schema: bool = False) -> bool:
    if "schema" in info.split():
        return True
    if not isinstance(payload, dict):
        return False
    if set(payload) and set(payload) <= set(REF_KEYS) | {"description"} and any(k in payload for k in REF_KEYS):
        return True
    if prefer_schema:
        return payload.get("type") in JSON_TYPES or isinstance(payload.get("properties"), dict)
    return False


def schema_from_payload(payload: Any, ctx: SchemaContext, info: str = "", prefer_schema: bool = False) -> Schema | None:
    """Build a schema from a parsed fence payload, recording problems on ``ctx``."""
    if is_schema_literal(payload, info, prefer_schema):
        if not isinstance(payload, dict):
            ctx.diagnostics.append(
                new_error(ErrorType.SCHEMA, "schema literal must be a mapping", ctx.line_number, source="schema")
            )
            return None
        return schema_from_mapping(payload, ctx)
    return infer_schema(payload, ctx, example=True)


def schema_from_mapping(data: dict, ctx: SchemaContext, depth: int = 0) -> Schema | None:
    """Translate a JSON-schema mapping into a Schema node.

    A mapping that mixes ``$ref`` with inline structure is reported as an
    error and dropped.
    """
    if depth > ctx.max_depth:
        ctx.truncated()
        return SchemaBuilder(ctx.line_number).with_type("object").build()

    builder = SchemaBuilder(ctx.line_number)
    ref = next((data[k] for k in REF_KEYS if k in data), None)
    if ref is not None:
        builder.with_ref(str(ref))
    builder.with_type(_schema_type(data.get("type")))
    builder.with_format(str(data.get("format") or ""))
    builder.with_description(str(data.get("description") or ""))
    if "example" in data:
        builder.with_example(data["example"])

    properties = data.get("properties")
    if isinstance(properties, dict):
        for name, prop in properties.items():
            if isinstance(prop, dict):
                builder.add_property(str(name), schema_from_mapping(prop, ctx, depth + 1))
            else:
                builder.add_property(str(name), SchemaBuilder(ctx.line_number).with_type(str(prop or "")).build())
    required = data.get("required")
    if isinstance(required, list):
        for name in required:
            builder.add_required(str(name))
    items = data.get("items")
    if isinstance(items, dict):
        builder.with_items(schema_from_mapping(items, ctx, depth + 1))
    enum = data.get("enum")
    if isinstance(enum, list):
        builder.with_enum(enum)

    try:
        return builder.build()
    except ValueError as e:
        ctx.diagnostics.append(
            new_error(
                ErrorType.SCHEMA,
                _first_error_line(e),
                ctx.line_number,
                source="schema",
                suggestion="use either $ref or an inline definition",
            )
        )
        return None


def infer_schema(value: Any, ctx: SchemaContext, example: bool = False, depth: int = 0) -> Schema:
    """Infer a schema from an example value; the top-level node keeps the example."""
    builder = SchemaBuilder(ctx.line_number)
    if example:
        builder.with_example(value)

    if depth > ctx.max_depth:
        ctx.truncated()
        return builder.with_type("object").build()

    if isinstance(value, dict):
        builder.with_type("object")
        for name, prop in value.items():
            builder.add_property(str(name), infer_schema(prop, ctx, depth=depth + 1))
    elif isinstance(value, list):
        builder.with_type("array")
        if value:
            builder.with_items(infer_schema(value[0], ctx, depth=depth + 1))
        else:
            builder.with_items(SchemaBuilder(ctx.line_number).with_type("string").build())
    elif isinstance(value, bool):
        builder.with_type("boolean")
    elif isinstance(value, int):
        builder.with_type("integer")
    elif isinstance(value, float):
        builder.with_type("number")
    elif isinstance(value, str):
        builder.with_type("string").with_format(string_format(value))
    elif value is None:
        builder.with_type("null")
    else:
        builder.with_type("string")
    return builder.build()


def string_format(value: str) -> str:
    if _DATE_TIME_RE.match(value):
        return "date-time"
    if _DATE_RE.match(value):
        return "date"
    if _UUID_RE.match(value):
        return "uuid"
    if _EMAIL_RE.match(value):
        return "email"
    return ""


def coerce_scalar(text: str) -> Any:
    """Interpret a table cell or bullet value as a JSON-style scalar ("42" -> 42)."""
    text = text.strip().strip("`")
    if not text:
        return None
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered == "null":
        return None
    for convert in (int, float):
        try:
            return convert(text)
        except ValueError:
            pass
    if text[0] in "[{\"":
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass
    return text


def _first_error_line(e: ValueError) -> str:
    # pydantic wraps validator messages; keep the part after "Value error, "
    message = str(e)
    for line in message.splitlines():
        if "Value error, " in line:
            return line.split("Value error, ", 1)[1].split(" [type=")[0]
    return message.splitlines()[0] if message else "invalid schema"


def plain(value: Any) -> Any:
    """Replace YAML timestamps with ISO strings so payloads stay JSON-serializable."""
    if isinstance(value, dict):
        return {str(k): plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [plain(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _schema_type(value: Any) -> str:
    # OpenAPI 3.1 allows a list of types; keep the first non-null one
    if isinstance(value, list):
        value = next((v for v in value if v != "null"), value[0] if value else "")
    return str(value or "")
