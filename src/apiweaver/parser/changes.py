"""Change-description parser.

A change description is Markdown with one ``## <Op> <Kind> <target>``
heading per change::

    ## Add Endpoint DELETE /tasks/{id}
    ## Modify Parameter limit (query) in GET /tasks
    ## Modify Response 200 in GET /tasks
    ## Remove Component Legacy (schema)

Endpoint bodies use the regular endpoint grammar; everything else uses
``- key: value`` bullets and an optional code block. Errors follow the
document parser: a bad heading is reported and its body skipped, an
unterminated code block stops the parse.
"""

import re

from apiweaver.amender.models import Change, ChangeOperation, ChangeSet, ChangeTarget, TargetKind
from apiweaver.builder.ast_builder import ComponentBuilder, EndpointBuilder, ParameterBuilder
from apiweaver.builder.schema_builder import ResponseBuilder, SchemaBuilder
from apiweaver.config import Settings
from apiweaver.errors import ErrorCollector, ErrorType, Outcome, new_error, new_fatal, new_warning
from apiweaver.parser.base import COMPONENT_KINDS, PARAMETER_LOCATIONS
from apiweaver.parser.blocks import Block, scan
from apiweaver.parser.markdown import (
    DEFAULT_MEDIA_TYPE,
    KNOWN_METHODS,
    STATUS_RE,
    EndpointBodyParser,
    fence_schema,
    is_required,
    status_phrase,
)
from apiweaver.parser.schema import coerce_scalar

CHANGE_HEADING_RE = re.compile(r"^(add|modify|update|remove|delete)\s+(endpoint|parameter|response|component)\s+(.+)$", re.IGNORECASE)
ENDPOINT_TARGET_RE = re.compile(r"^([A-Za-z]+)\s+(\S+)$")
PARAMETER_TARGET_RE = re.compile(r"^`?([^`\s(]+)`?\s*(?:\(\s*([A-Za-z]+)\s*\))?\s+in\s+([A-Za-z]+)\s+(\S+)$", re.IGNORECASE)
RESPONSE_TARGET_RE = re.compile(r"^(\S+)\s+in\s+([A-Za-z]+)\s+(\S+)$", re.IGNORECASE)
COMPONENT_TARGET_RE = re.compile(r"^`?([A-Za-z0-9_.\-]+)`?\s*(?:\(\s*([A-Za-z]+)\s*\))?$")
FIELD_BULLET_RE = re.compile(r"^`?([A-Za-z][\w-]*)`?\s*:\s*(.*)$")

OPERATION_ALIASES = {"update": "modify", "delete": "remove"}
ENDPOINT_FIELDS = ("summary", "description", "tags")


class ChangeParser:
    """Parses a Markdown change description into a ChangeSet."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()

    def parse(self, text: str) -> Outcome[ChangeSet]:
        return _ChangeParse(text, self.settings).run()


def parse_changes(text: str, settings: Settings | None = None) -> Outcome[ChangeSet]:
    return ChangeParser(settings).parse(text)


def field_bullet(text: str) -> tuple[str, str] | None:
    """Split a ``key: value`` bullet into a lowercase key and its value."""
    match = FIELD_BULLET_RE.match(text)
    if not match:
        return None
    return match.group(1).lower().replace("-", "_"), match.group(2).strip()


class _Section:
    """Blocks under one change heading, kept until the next heading."""

    def __init__(self, operation: ChangeOperation, target: ChangeTarget, heading: Block):
        self.operation = operation
        self.target = target
        self.heading = heading
        self.blocks: list[Block] = []


class _ChangeParse:
    def __init__(self, text: str, settings: Settings):
        self.lines = text.splitlines()
        self.settings = settings
        self.collector = ErrorCollector(settings.max_errors)
        self.changes: list[Change] = []
        self._section: _Section | None = None

    def run(self) -> Outcome[ChangeSet]:
        for block in scan(self.lines):
            if self.collector.stopped:
                break
            if block.kind == "fatal":
                self.collector.add(
                    new_fatal(
                        ErrorType.SYNTAX,
                        "unterminated code block",
                        block.line,
                        column=1,
                        context=block.source,
                        source="change",
                        suggestion="close the block with a matching fence line",
                    )
                )
                self._section = None
                break
            if block.kind == "heading" and block.level <= 2:
                self._close()
                self._open(block)
            elif self._section is not None:
                self._section.blocks.append(block)

        if not self.collector.has_fatal_errors():
            self._close()
        return Outcome(value=ChangeSet(changes=self.changes), diagnostics=self.collector.items)

    # headings

    def _open(self, block: Block) -> None:
        if block.level == 1:
            return
        match = CHANGE_HEADING_RE.match(block.text.strip())
        if not match:
            self._heading_error(block, f"cannot parse change heading '{block.text}'")
            return
        op = match.group(1).lower()
        operation = ChangeOperation(OPERATION_ALIASES.get(op, op))
        kind = TargetKind(match.group(2).lower())
        target = self._target(kind, match.group(3).strip(), block)
        if target is not None:
            self._section = _Section(operation, target, block)

    def _target(self, kind: TargetKind, text: str, block: Block) -> ChangeTarget | None:
        if kind == TargetKind.ENDPOINT:
            match = ENDPOINT_TARGET_RE.match(text)
            if not match:
                self._heading_error(block, f"expected 'METHOD /path' after 'Endpoint', got '{text}'")
                return None
            method, path = match.groups()
            if not self._check_endpoint(method, path, block):
                return None
            return ChangeTarget(kind=kind, method=method.upper(), path=path)

        if kind == TargetKind.PARAMETER:
            match = PARAMETER_TARGET_RE.match(text)
            if not match:
                self._heading_error(block, f"expected 'name (location) in METHOD /path', got '{text}'")
                return None
            name, location, method, path = match.groups()
            location = (location or "query").lower()
            if location not in PARAMETER_LOCATIONS:
                self._heading_error(block, f"unknown parameter location '{location}'")
                return None
            if not self._check_endpoint(method, path, block):
                return None
            return ChangeTarget(kind=kind, method=method.upper(), path=path, name=name, location=location)

        if kind == TargetKind.RESPONSE:
            match = RESPONSE_TARGET_RE.match(text)
            if not match:
                self._heading_error(block, f"expected 'STATUS in METHOD /path', got '{text}'")
                return None
            status, method, path = match.groups()
            status = "default" if status.lower() == "default" else status.upper()
            if not STATUS_RE.match(status):
                self._heading_error(block, f"invalid response status code '{status}'")
                return None
            if not self._check_endpoint(method, path, block):
                return None
            return ChangeTarget(kind=kind, method=method.upper(), path=path, status_code=status)

        match = COMPONENT_TARGET_RE.match(text)
        if not match:
            self._heading_error(block, f"expected a component name, got '{text}'")
            return None
        name, component_kind = match.groups()
        component_kind = (component_kind or "").lower()
        if component_kind and component_kind not in COMPONENT_KINDS:
            self._heading_error(block, f"unknown component kind '{component_kind}'")
            return None
        return ChangeTarget(kind=kind, name=name, component_kind=component_kind)

    def _check_endpoint(self, method: str, path: str, block: Block) -> bool:
        method = method.upper()
        if method not in KNOWN_METHODS or method not in self.settings.allowed_methods:
            self._heading_error(block, f"HTTP method {method} is not allowed")
            return False
        if not path.startswith("/"):
            self._heading_error(block, f"endpoint path '{path}' must start with '/'")
            return False
        return True

    def _heading_error(self, block: Block, message: str) -> None:
        self.collector.add(
            new_error(
                ErrorType.CHANGE,
                message,
                block.line,
                column=block.column,
                context=block.source,
                source="change",
                suggestion="write change headings as '## Add Endpoint GET /path'",
            )
        )

    # bodies

    def _close(self) -> None:
        section, self._section = self._section, None
        if section is None:
            return
        change = Change(
            operation=section.operation,
            target=section.target,
            line_number=section.heading.line,
        )
        if section.operation != ChangeOperation.REMOVE:
            build = {
                TargetKind.ENDPOINT: self._endpoint_payload,
                TargetKind.PARAMETER: self._parameter_payload,
                TargetKind.RESPONSE: self._response_payload,
                TargetKind.COMPONENT: self._component_payload,
            }[section.target.kind]
            self.collector.context = section.target.identity
            payload, fields = build(section)
            self.collector.context = ""
            if payload is None:
                return
            change = change.model_copy(update={"payload": payload, "fields": fields})
            if section.operation == ChangeOperation.MODIFY and not fields:
                self.collector.add(
                    new_warning(
                        ErrorType.CHANGE,
                        f"modify {section.target.identity} supplies no fields",
                        section.heading.line,
                        source="change",
                    )
                )
        self.changes.append(change)

    def _endpoint_payload(self, section: _Section):
        target = section.target
        body = EndpointBodyParser(EndpointBuilder(target.method, target.path, section.heading.line), self.collector, self.settings)
        for block in section.blocks:
            if block.kind == "bullet" and body.section != "parameters":
                pair = field_bullet(block.text)
                if pair and pair[0] in ENDPOINT_FIELDS:
                    key, value = pair
                    if key == "summary":
                        body.set_summary(value)
                    elif key == "description":
                        body.add_description(value)
                    else:
                        body.add_tags(value)
                    continue
            body.feed(block)
        endpoint = body.finish()
        return endpoint, sorted(body.fields)

    def _parameter_payload(self, section: _Section):
        target = section.target
        builder = ParameterBuilder(target.name, target.location, section.heading.line)
        fields: list[str] = []
        if target.location == "path":
            builder.required()
            if section.operation == ChangeOperation.ADD:
                fields.append("required")
        for key, value, block in self._field_bullets(section):
            if key == "type":
                builder.with_type(value.strip("`"))
            elif key == "required":
                if is_required(value):
                    builder.required()
                elif target.location == "path":
                    self._field_warning(block, "path parameters are always required")
                    continue
                else:
                    builder.optional()
            elif key == "description":
                builder.with_description(value)
            elif key == "example":
                builder.with_example(coerce_scalar(value))
            else:
                self._field_warning(block, f"unknown parameter field '{key}'")
                continue
            if key not in fields:
                fields.append(key)
        for block in section.blocks:
            if block.kind == "prose" and "description" not in fields:
                builder.with_description(block.text)
                fields.append("description")
        return builder.build(), fields

    def _response_payload(self, section: _Section):
        target = section.target
        builder = ResponseBuilder(target.status_code, section.heading.line)
        fields: list[str] = []
        media = DEFAULT_MEDIA_TYPE
        for key, value, block in self._field_bullets(section):
            if key == "description":
                builder.with_description(value)
                fields.append("description")
            elif key in ("media", "media_type", "content_type"):
                media = value.strip("`") or DEFAULT_MEDIA_TYPE
            else:
                self._field_warning(block, f"unknown response field '{key}'")
        for block in section.blocks:
            if block.kind == "prose" and "description" not in fields:
                builder.with_description(block.text)
                fields.append("description")
            elif block.kind == "fence":
                schema = fence_schema(block, self.collector, self.settings)
                if schema is not None:
                    builder.add_content(media, schema)
                    if "content" not in fields:
                        fields.append("content")
        if section.operation == ChangeOperation.ADD and not builder.description:
            builder.with_description(status_phrase(target.status_code))
        return builder.build(), fields

    def _component_payload(self, section: _Section):
        target = section.target
        kind = target.component_kind or "schema"
        fields: list[str] = []
        description = ""
        param_fields: dict[str, str] = {}
        for key, value, block in self._field_bullets(section):
            if key == "kind":
                if value.lower() not in COMPONENT_KINDS:
                    self._field_warning(block, f"unknown component kind '{value}'")
                    continue
                kind = value.lower()
                fields.append("kind")
            elif key == "description":
                description = value
            elif key in ("in", "location", "type", "required", "example"):
                param_fields["location" if key == "in" else key] = value
            else:
                self._field_warning(block, f"unknown component field '{key}'")
        fences = [b for b in section.blocks if b.kind == "fence"]
        if not description:
            description = "\n\n".join(b.text for b in section.blocks if b.kind == "prose")
        if description:
            fields.append("description")

        builder = ComponentBuilder(target.name, section.heading.line)
        if kind == "schema":
            if not fences:
                if section.operation == ChangeOperation.ADD:
                    self._missing(section, "has no schema code block")
                    return None, []
                # modify without a code block only touches the description
                if description:
                    builder.with_schema(SchemaBuilder(section.heading.line).with_description(description).build())
                return builder.build(), fields
            schema = fence_schema(fences[0], self.collector, self.settings, prefer_schema=True)
            if schema is None:
                return None, []
            if description and not schema.description:
                schema = schema.model_copy(update={"description": description})
            builder.with_schema(schema)
            fields.append("schema")
        elif kind == "parameter":
            location = (param_fields.get("location") or "query").lower()
            if location not in PARAMETER_LOCATIONS:
                self._missing(section, f"has unknown location '{location}'")
                return None, []
            param = ParameterBuilder(target.name, location, section.heading.line)
            param.with_type(param_fields.get("type", "").strip("`"))
            param.with_description(description)
            if location == "path" or is_required(param_fields.get("required", "")):
                param.required()
            if "example" in param_fields:
                param.with_example(coerce_scalar(param_fields["example"]))
            builder.with_parameter(param.build())
            fields.extend(name for name in ("location", "type", "required", "example") if name in param_fields)
        else:
            response = ResponseBuilder("default", section.heading.line)
            response.with_description(description or target.name)
            if fences:
                schema = fence_schema(fences[0], self.collector, self.settings)
                if schema is not None:
                    response.add_content(DEFAULT_MEDIA_TYPE, schema)
                    fields.append("content")
            builder.with_response(response.build())
        return builder.build(), fields

    def _field_bullets(self, section: _Section):
        for block in section.blocks:
            if block.kind != "bullet":
                continue
            pair = field_bullet(block.text)
            if pair is None:
                self._field_warning(block, f"expected '- field: value', got '{block.text}'")
                continue
            yield pair[0], pair[1], block

    def _field_warning(self, block: Block, message: str) -> None:
        self.collector.add(new_warning(ErrorType.CHANGE, message, block.line, column=block.column, source="change"))

    def _missing(self, section: _Section, problem: str) -> None:
        self.collector.add(
            new_error(
                ErrorType.CHANGE,
                f"{section.target.identity} {problem}",
                section.heading.line,
                source="change",
            )
        )
