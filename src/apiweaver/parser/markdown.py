"""Markdown API documentation parser.

Reads the apiweaver Markdown dialect (YAML frontmatter, one
``## METHOD /path`` heading per endpoint, bold markers for parameters,
request bodies and responses, and an optional ``## Components`` section)
into a Document. Problems are collected as diagnostics instead of
aborting, except for an unterminated code block, which stops the parse.
"""

import re
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any

import yaml

from apiweaver.builder.ast_builder import ComponentBuilder, DocumentBuilder, EndpointBuilder, ParameterBuilder
from apiweaver.builder.schema_builder import RequestBodyBuilder, ResponseBuilder
from apiweaver.config import Settings
from apiweaver.errors import ErrorCollector, ErrorType, Outcome, new_error, new_fatal, new_warning
from apiweaver.parser.base import (
    PARAMETER_LOCATIONS,
    Document,
    Endpoint,
    Frontmatter,
    Header,
    Parameter,
    Server,
)
from apiweaver.parser.blocks import Block, scan
from apiweaver.parser.checks import check_document
from apiweaver.parser.schema import SchemaContext, coerce_scalar, load_payload, schema_from_payload

DEFAULT_MEDIA_TYPE = "application/json"
KNOWN_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS", "TRACE", "CONNECT"}
COMPONENT_HEADINGS = {"components", "schemas"}
REQUIRED_WORDS = {"yes", "y", "true", "required", "x", "✓", "✔"}

METHOD_PATH_RE = re.compile(r"^([A-Za-z]+)\s+(\S+)(?:\s+[-:]?\s*(.*))?$")
STATUS_RE = re.compile(r"^([1-5]\d\d|[1-5]XX|default)$", re.IGNORECASE)
RESPONSE_LABEL_RE = re.compile(r"^responses?\s*\(\s*([^,)\s]+)\s*(?:,\s*([^)]+?)\s*)?\)$", re.IGNORECASE)
REQUEST_BODY_LABEL_RE = re.compile(r"^request\s*body(?:\s*\(\s*([^)]+?)\s*\))?$", re.IGNORECASE)
PARAMETERS_LABEL_RE = re.compile(r"^(?:(path|query|header|cookie)\s+)?(?:parameters|params)$", re.IGNORECASE)
BULLET_PARAM_RE = re.compile(r"^`?([^`\s(]+)`?\s*\(([^)]*)\)\s*(?:[:-]\s*)?(.*)$")
COMPONENT_HEADING_RE = re.compile(r"^(?:(schema|parameter|response)\s*:\s*)?`?([A-Za-z0-9_.\-]+)`?$", re.IGNORECASE)

COLUMN_ALIASES = {
    "name": ("name", "parameter", "field", "header"),
    "in": ("in", "location", "where"),
    "type": ("type",),
    "required": ("required", "req", "mandatory"),
    "description": ("description", "desc", "notes"),
    "example": ("example", "sample"),
}


class MarkdownParser:
    """Parses Markdown API documentation into a Document."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()

    def parse(self, text: str) -> Outcome[Document]:
        return _DocumentParse(text, self.settings).run()


def parse_markdown(text: str, settings: Settings | None = None) -> Outcome[Document]:
    return MarkdownParser(settings).parse(text)


def status_phrase(status_code: str) -> str:
    """Default response description for a status code."""
    if status_code.isdigit():
        try:
            return HTTPStatus(int(status_code)).phrase
        except ValueError:
            pass
    return "Default response" if status_code.lower() == "default" else "Response"


def column_map(header: list[str]) -> dict[str, int]:
    """Map canonical column names to their index in a table header row."""
    mapping: dict[str, int] = {}
    for index, cell in enumerate(header):
        key = cell.strip().strip("*`").lower()
        for canonical, aliases in COLUMN_ALIASES.items():
            if key in aliases and canonical not in mapping:
                mapping[canonical] = index
    return mapping


def row_cells(columns: dict[str, int], row: list[str]) -> dict[str, str]:
    return {name: (row[index] if index < len(row) else "") for name, index in columns.items()}


def is_required(text: str) -> bool:
    return text.strip().strip("*`").lower() in REQUIRED_WORDS


def parameter_from_cells(
    cells: dict[str, str], default_location: str, line: int, collector: ErrorCollector
) -> Parameter | None:
    """Build a parameter from a table row (or bullet) already split into named cells."""
    name = cells.get("name", "").strip().strip("`")
    if not name:
        collector.add(new_error(ErrorType.TABLE, "parameter row has no name", line, source="table"))
        return None
    location = (cells.get("in") or default_location).strip().strip("`").lower()
    if location not in PARAMETER_LOCATIONS:
        collector.add(
            new_error(
                ErrorType.TABLE,
                f"unknown parameter location '{location}' for '{name}'",
                line,
                source="table",
                suggestion="use one of: " + ", ".join(PARAMETER_LOCATIONS),
            )
        )
        return None

    builder = ParameterBuilder(name, location, line)
    builder.with_type(cells.get("type", "").strip().strip("`"))
    builder.with_description(cells.get("description", "").strip())
    example = coerce_scalar(cells.get("example", ""))
    if example is not None:
        builder.with_example(example)
    if location == "path" or is_required(cells.get("required", "")):
        builder.required()
    return builder.build()


def parameter_from_bullet(text: str, default_location: str, line: int, collector: ErrorCollector) -> Parameter | None:
    """Parse ``name (location, type, required): description`` bullets."""
    match = BULLET_PARAM_RE.match(text)
    if not match:
        collector.add(
            new_error(
                ErrorType.TABLE,
                f"cannot parse parameter bullet '{text}'",
                line,
                source="table",
                suggestion="write `name` (location, type, required): description",
            )
        )
        return None
    cells = {"name": match.group(1), "description": match.group(3)}
    for token in (t.strip() for t in match.group(2).split(",")):
        lowered = token.lower()
        if lowered in PARAMETER_LOCATIONS:
            cells["in"] = lowered
        elif lowered in ("required", "optional"):
            cells["required"] = "yes" if lowered == "required" else "no"
        elif token:
            cells["type"] = token
    return parameter_from_cells(cells, default_location, line, collector)


def is_marker_label(label: str) -> bool:
    lowered = label.strip().lower()
    return bool(
        PARAMETERS_LABEL_RE.match(label)
        or REQUEST_BODY_LABEL_RE.match(label)
        or RESPONSE_LABEL_RE.match(label)
        or lowered in ("response headers", "headers", "tags", "summary", "description")
    )


def header_from_cells(cells: dict[str, str]) -> Header:
    example = coerce_scalar(cells.get("example", ""))
    return Header(
        type=cells.get("type", "").strip().strip("`") or "string",
        description=cells.get("description", "").strip(),
        example=example,
    )


class EndpointBodyParser:
    """Feeds the blocks of one endpoint section into an EndpointBuilder.

    ``fields`` records which endpoint fields the section supplied, which the
    change parser needs to tell a partial payload from an empty one.
    """

    def __init__(self, builder: EndpointBuilder, collector: ErrorCollector, settings: Settings):
        self.builder = builder
        self.collector = collector
        self.settings = settings
        self.fields: set[str] = set()
        self._pending = ""  # parameters / request_body / response / headers / skip
        self._default_location = "query"
        self._request_body: RequestBodyBuilder | None = None
        self._request_media = DEFAULT_MEDIA_TYPE
        self._response: ResponseBuilder | None = None
        self._response_media = DEFAULT_MEDIA_TYPE
        self._responses: dict[str, ResponseBuilder] = {}
        self._description: list[str] = []

    def feed(self, block: Block) -> None:
        handler = getattr(self, f"_on_{block.kind}", None)
        if handler is not None:
            handler(block)

    @property
    def section(self) -> str:
        """The marker section currently receiving blocks ("" before any marker)."""
        return self._pending

    def set_summary(self, summary: str) -> None:
        if summary:
            self.builder.with_summary(summary)
            self.fields.add("summary")

    def add_description(self, text: str) -> None:
        if text:
            self._description.append(text)
            self.fields.add("description")

    def add_tags(self, text: str) -> None:
        tags = [t.strip().strip("`") for t in text.split(",")]
        self.builder.add_tags(tags)
        if self.builder.tags:
            self.fields.add("tags")

    def finish(self) -> Endpoint:
        if self._description:
            self.builder.with_description("\n\n".join(self._description))
        if self._request_body is not None:
            self.builder.with_request_body(self._request_body.build())
        for response in self._responses.values():
            if not response.description:
                response.with_description(status_phrase(response.status_code))
            self.builder.add_response(response.build())
        return self.builder.build()

    # block handlers

    def _on_heading(self, block: Block) -> None:
        # ### Parameters / ### Response (404) behave like bold markers; other subheadings are ignored
        if not is_marker_label(block.text.rstrip(":")):
            return
        self._on_marker(Block(kind="marker", line=block.line, label=block.text.rstrip(":"), column=block.column, source=block.source))

    def _on_marker(self, block: Block) -> None:
        label = block.label
        lowered = label.lower()

        params = PARAMETERS_LABEL_RE.match(label)
        if params:
            self._pending = "parameters"
            self._default_location = (params.group(1) or "query").lower()
            self.fields.add("parameters")
            return

        body = REQUEST_BODY_LABEL_RE.match(label)
        if body:
            self._start_request_body(block, body.group(1) or "")
            return

        response = RESPONSE_LABEL_RE.match(label)
        if response:
            self._start_response(block, response.group(1), response.group(2) or "")
            return

        if lowered in ("response headers", "headers") and self._pending in ("response", "headers"):
            self._pending = "headers"
            return
        if lowered == "response headers":
            self.collector.add(
                new_warning(ErrorType.ENDPOINT, "response headers given before any response; ignored", block.line, source="endpoint")
            )
            self._pending = "skip"
            return
        if lowered == "headers":
            self._pending = "parameters"
            self._default_location = "header"
            self.fields.add("parameters")
            return
        if lowered == "tags":
            self.add_tags(block.text)
            return
        if lowered == "summary":
            self.set_summary(block.text)
            return
        if lowered == "description":
            self.add_description(block.text)
            return

        # unknown bold label: ordinary prose
        self._on_prose(Block(kind="prose", line=block.line, text=block.source.strip()))

    def _start_request_body(self, block: Block, qualifier: str) -> None:
        self._request_body = RequestBodyBuilder(block.line)
        self._request_media = DEFAULT_MEDIA_TYPE
        optional = False
        for token in (t.strip() for t in qualifier.split(",") if t.strip()):
            if token.lower() == "optional":
                optional = True
            elif token.lower() != "required":
                self._request_media = token
        if not optional:
            self._request_body.required()
        if block.text:
            self._request_body.with_description(block.text)
        self._pending = "request_body"
        self.fields.add("request_body")

    def _start_response(self, block: Block, status: str, media: str) -> None:
        status = status.upper() if status.lower() != "default" else "default"
        if not STATUS_RE.match(status):
            self.collector.add(
                new_error(
                    ErrorType.ENDPOINT,
                    f"invalid response status code '{status}'",
                    block.line,
                    column=block.column,
                    source="endpoint",
                    context=block.source,
                    suggestion="use a three-digit code, a range such as 4XX, or 'default'",
                )
            )
            self._pending = "skip"
            return
        if status in self._responses:
            self.collector.add(
                new_warning(
                    ErrorType.ENDPOINT,
                    f"duplicate response {status} for {self.builder.key}; the later one wins",
                    block.line,
                    source="endpoint",
                )
            )
        self._response = ResponseBuilder(status, block.line)
        if block.text:
            self._response.with_description(block.text)
        self._responses[status] = self._response
        self._response_media = media or DEFAULT_MEDIA_TYPE
        self._pending = "response"
        self.fields.add("responses")

    def _on_prose(self, block: Block) -> None:
        if self._pending == "request_body" and self._request_body is not None:
            if not self._request_body.description and not self._request_body.has_content:
                self._request_body.with_description(block.text)
                return
        if self._pending in ("response", "headers") and self._response is not None:
            if not self._response.description and not self._response.has_content:
                self._response.with_description(block.text)
                return
        if not self.builder.summary:
            self.set_summary(block.text)
        else:
            self.add_description(block.text)

    def _on_bullet(self, block: Block) -> None:
        if self._pending == "parameters":
            param = parameter_from_bullet(block.text, self._default_location, block.line, self.collector)
            self.builder.add_parameter(param)
            return
        self.add_description(f"- {block.text}")

    def _on_table(self, block: Block) -> None:
        if not block.rows:
            return
        header_line, header = block.rows[0]
        columns = column_map(header)
        if self._pending in ("parameters", "headers") and "name" not in columns:
            self.collector.add(
                new_error(
                    ErrorType.TABLE,
                    "table has no Name column",
                    header_line,
                    source="table",
                    context=block.source,
                )
            )
            return
        if self._pending == "parameters":
            for line, row in block.rows[1:]:
                param = parameter_from_cells(row_cells(columns, row), self._default_location, line, self.collector)
                self.builder.add_parameter(param)
        elif self._pending == "headers" and self._response is not None:
            for line, row in block.rows[1:]:
                cells = row_cells(columns, row)
                self._response.add_header(cells.get("name", "").strip().strip("`"), header_from_cells(cells))
        elif self._pending != "skip":
            self.collector.add(
                new_warning(
                    ErrorType.TABLE,
                    "table outside a Parameters or Response Headers section ignored",
                    block.line,
                    source="table",
                )
            )

    def _on_fence(self, block: Block) -> None:
        if self._pending == "request_body" and self._request_body is not None:
            schema = self._fence_schema(block)
            self._request_body.add_content(self._request_media, schema)
        elif self._pending in ("response", "headers") and self._response is not None:
            schema = self._fence_schema(block)
            self._response.add_content(self._response_media, schema)
        elif self._pending != "skip":
            self.collector.add(
                new_warning(
                    ErrorType.SCHEMA,
                    "code block outside a Request Body or Response section ignored",
                    block.line,
                    source="schema",
                )
            )

    def _fence_schema(self, block: Block, prefer_schema: bool = False):
        return fence_schema(block, self.collector, self.settings, prefer_schema)


def fence_schema(block: Block, collector: ErrorCollector, settings: Settings, prefer_schema: bool = False):
    payload, err = load_payload(block.body, block.line)
    if err is not None:
        collector.add(err)
        return None
    ctx = SchemaContext(block.line, settings.max_nesting_depth)
    schema = schema_from_payload(payload, ctx, block.info, prefer_schema)
    collector.extend(ctx.diagnostics)
    return schema


class _ComponentSection:
    """Collects the blocks under one ``### Name`` heading of the components section."""

    def __init__(self, kind: str, name: str, line: int):
        self.kind = kind
        self.name = name
        self.line = line
        self.description: list[str] = []
        self.fences: list[Block] = []
        self.tables: list[Block] = []
        self.bullets: list[Block] = []

    def feed(self, block: Block) -> None:
        if block.kind == "prose":
            self.description.append(block.text)
        elif block.kind == "marker":
            self.description.append(block.source.strip())
        elif block.kind == "fence":
            self.fences.append(block)
        elif block.kind == "table":
            self.tables.append(block)
        elif block.kind == "bullet":
            self.bullets.append(block)


class _DocumentParse:
    def __init__(self, text: str, settings: Settings):
        self.lines = text.splitlines()
        self.settings = settings
        self.collector = ErrorCollector(settings.max_errors)
        self.doc = DocumentBuilder(parsed_at=datetime.now(timezone.utc))
        self._endpoint: EndpointBodyParser | None = None
        self._components = False
        self._component: _ComponentSection | None = None
        self._skipping = False
        self._component_names: set[str] = set()

    def run(self) -> Outcome[Document]:
        body_start = self._parse_frontmatter()
        blocks = scan(self.lines, body_start)
        for block in blocks:
            if self.collector.stopped:
                break
            self._dispatch(block)

        if not self.collector.has_fatal_errors():
            self._close_section()
            self.collector.extend(check_document(self.doc.build(), self.settings))

        self.doc.add_errors(self.collector.items)
        document = self.doc.build()
        return Outcome(value=document, diagnostics=list(document.errors))

    def _dispatch(self, block: Block) -> None:
        if block.kind == "fatal":
            self.collector.add(
                new_fatal(
                    ErrorType.SYNTAX,
                    "unterminated code block",
                    block.line,
                    column=1,
                    context=block.source,
                    suggestion="close the block with a matching fence line",
                )
            )
            return

        if block.kind == "heading" and block.level <= 2:
            self._close_section()
            self._open_section(block)
            return

        if self._skipping:
            return
        if self._components:
            self._component_block(block)
        elif self._endpoint is not None:
            self._endpoint.feed(block)
        elif block.kind in ("fence", "table"):
            self.collector.add(
                new_warning(ErrorType.SYNTAX, f"{block.kind} outside an endpoint section ignored", block.line)
            )

    def _open_section(self, block: Block) -> None:
        self._skipping = False
        if block.level == 1:
            frontmatter = self.doc.frontmatter
            if frontmatter is None:
                self.doc.with_frontmatter(Frontmatter(title=block.text, line_number=block.line))
            elif not frontmatter.title:
                self.doc.with_frontmatter(frontmatter.model_copy(update={"title": block.text}))
            return

        if block.text.strip().lower() in COMPONENT_HEADINGS:
            self._components = True
            return

        endpoint = self._endpoint_from_heading(block)
        if endpoint is None:
            self._skipping = True
        else:
            self._endpoint = EndpointBodyParser(endpoint, self.collector, self.settings)
            self.collector.context = endpoint.key

    def _endpoint_from_heading(self, block: Block) -> EndpointBuilder | None:
        match = METHOD_PATH_RE.match(block.text)
        method = match.group(1).upper() if match else ""
        if not match or method not in KNOWN_METHODS:
            self.collector.add(
                new_error(
                    ErrorType.ENDPOINT,
                    f"cannot parse heading '{block.text}' as METHOD PATH",
                    block.line,
                    column=block.column,
                    context=block.source,
                    source="endpoint",
                    suggestion="write endpoint headings as '## GET /path'",
                )
            )
            return None
        if method not in self.settings.allowed_methods:
            self.collector.add(
                new_error(
                    ErrorType.ENDPOINT,
                    f"HTTP method {method} is not allowed",
                    block.line,
                    column=block.column,
                    context=block.source,
                    source="endpoint",
                    suggestion="use one of: " + ", ".join(self.settings.allowed_methods),
                )
            )
            return None
        path = match.group(2)
        if not path.startswith("/"):
            self.collector.add(
                new_error(
                    ErrorType.ENDPOINT,
                    f"endpoint path '{path}' must start with '/'",
                    block.line,
                    column=block.column + len(block.text[: match.start(2)].encode("utf-8")),
                    context=block.source,
                    source="endpoint",
                )
            )
            return None
        builder = EndpointBuilder(method, path, block.line)
        if match.group(3):
            builder.with_summary(match.group(3).strip())
        return builder

    def _close_section(self) -> None:
        if self._endpoint is not None:
            self.doc.add_endpoint(self._endpoint.finish())
            self._endpoint = None
        self._close_component()
        self._components = False
        self.collector.context = ""

    # components

    def _component_block(self, block: Block) -> None:
        if block.kind == "heading":
            self._close_component()
            match = COMPONENT_HEADING_RE.match(block.text.strip())
            if not match:
                self.collector.add(
                    new_error(
                        ErrorType.SCHEMA,
                        f"cannot parse component heading '{block.text}'",
                        block.line,
                        column=block.column,
                        context=block.source,
                        source="components",
                        suggestion="use '### Name' or '### Parameter: Name'",
                    )
                )
                return
            kind = (match.group(1) or "schema").lower()
            self._component = _ComponentSection(kind, match.group(2), block.line)
            self.collector.context = f"component {match.group(2)}"
        elif self._component is not None:
            self._component.feed(block)

    def _close_component(self) -> None:
        section, self._component = self._component, None
        if section is None:
            return
        builder = ComponentBuilder(section.name, section.line)
        description = "\n\n".join(section.description)

        if section.kind == "schema":
            schema = fence_schema(section.fences[0], self.collector, self.settings, prefer_schema=True) if section.fences else None
            if schema is None:
                if not section.fences:
                    self._component_error(section, "has no schema code block")
                return
            if description and not schema.description:
                schema = schema.model_copy(update={"description": description})
            builder.with_schema(schema)

        elif section.kind == "parameter":
            param = None
            if section.tables and len(section.tables[0].rows) > 1:
                table = section.tables[0]
                columns = column_map(table.rows[0][1])
                line, row = table.rows[1]
                param = parameter_from_cells(row_cells(columns, row), "query", line, self.collector)
            elif section.bullets:
                bullet = section.bullets[0]
                param = parameter_from_bullet(bullet.text, "query", bullet.line, self.collector)
            else:
                self._component_error(section, "has no parameter table row")
            if param is None:
                return
            if description and not param.description:
                param = param.model_copy(update={"description": description})
            builder.with_parameter(param)

        else:
            response = ResponseBuilder("default", section.line)
            response.with_description(description or section.name)
            if section.fences:
                response.add_content(DEFAULT_MEDIA_TYPE, fence_schema(section.fences[0], self.collector, self.settings))
            builder.with_response(response.build())

        if section.name in self._component_names:
            self.collector.add(
                new_error(ErrorType.SCHEMA, f"duplicate component '{section.name}'", section.line, source="components")
            )
            return
        self._component_names.add(section.name)
        self.doc.add_component(builder.build())

    def _component_error(self, section: _ComponentSection, problem: str) -> None:
        self.collector.add(
            new_error(ErrorType.SCHEMA, f"component '{section.name}' {problem}", section.line, source="components")
        )

    # frontmatter

    def _parse_frontmatter(self) -> int:
        """Parse the leading ``---`` block; returns the index where the body starts."""
        if not self.lines or self.lines[0].strip() != "---":
            return 0
        end = next((j for j in range(1, len(self.lines)) if self.lines[j].strip() in ("---", "...")), None)
        if end is None:
            self.collector.add(
                new_error(
                    ErrorType.FRONTMATTER,
                    "frontmatter block is not closed",
                    1,
                    column=1,
                    context=self.lines[0],
                    source="frontmatter",
                    suggestion="end the block with a '---' line",
                )
            )
            return 1

        source = "\n".join(self.lines[1:end])
        try:
            data = yaml.safe_load(source) or {}
        except yaml.YAMLError as e:
            mark = getattr(e, "problem_mark", None)
            line = mark.line + 2 if mark else 1
            self.collector.add(
                new_error(
                    ErrorType.FRONTMATTER,
                    f"invalid frontmatter: {getattr(e, 'problem', None) or e}",
                    line,
                    column=mark.column + 1 if mark else 0,
                    context=self.lines[line - 1] if line - 1 < len(self.lines) else "",
                    source="frontmatter",
                )
            )
            return end + 1

        if not isinstance(data, dict):
            self.collector.add(
                new_error(
                    ErrorType.FRONTMATTER,
                    "frontmatter must be a mapping of key: value pairs",
                    2,
                    column=1,
                    source="frontmatter",
                )
            )
            return end + 1

        raw = yaml.load(source, Loader=yaml.BaseLoader)
        self.doc.with_frontmatter(self._frontmatter_from(data, raw if isinstance(raw, dict) else {}))
        return end + 1

    def _frontmatter_from(self, data: dict, raw: dict) -> Frontmatter:
        entries = data.get("servers")
        if isinstance(entries, str):
            entries = [entries]
        elif entries is not None and not isinstance(entries, list):
            self.collector.add(
                new_warning(ErrorType.FRONTMATTER, f"'servers' must be a list, got {entries!r}", 1, source="frontmatter")
            )
            entries = []
        servers = []
        for entry in entries or []:
            if isinstance(entry, str):
                servers.append(Server(url=entry))
            elif isinstance(entry, dict) and entry.get("url"):
                servers.append(Server(url=str(entry["url"]), description=str(entry.get("description") or "")))
            else:
                self.collector.add(
                    new_warning(ErrorType.FRONTMATTER, f"ignoring server entry {entry!r}", 1, source="frontmatter")
                )
        metadata = {
            str(k): _scalar_text(v, raw.get(k))
            for k, v in data.items()
            if k not in ("title", "version", "description", "servers") and v is not None
        }
        return Frontmatter(
            title=_scalar_text(data.get("title"), raw.get("title")),
            version=_scalar_text(data.get("version"), raw.get("version")),
            description=_scalar_text(data.get("description"), raw.get("description")),
            servers=servers,
            metadata=metadata,
            line_number=1,
        )


def _scalar_text(value: Any, raw: Any) -> str:
    """Source text of a frontmatter scalar, so ``version: 1.10`` stays "1.10"."""
    if value is None or value == "":
        return ""
    return raw if isinstance(raw, str) else str(value)
