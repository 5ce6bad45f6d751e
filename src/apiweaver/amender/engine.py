"""Amendment engine: merges a ChangeSet into an existing Document."""

import logging
import time

from apiweaver.amender.models import (
    AmendmentMetadata,
    AmendmentReport,
    AmendmentResult,
    Change,
    ChangeOperation,
    ChangeSet,
    Conflict,
    TargetKind,
)
from apiweaver.config import Settings
from apiweaver.errors import OperationError, Outcome, ParseFailure, SerializationError
from apiweaver.generator.openapi import OUTPUT_FORMATS, serialize
from apiweaver.parser.base import Component, Document, Endpoint, Parameter, RequestBody, Response
from apiweaver.parser.changes import parse_changes
from apiweaver.parser.detect import detect_format
from apiweaver.parser.markdown import parse_markdown
from apiweaver.parser.openapi import parse_openapi

logger = logging.getLogger(__name__)

PARAMETER_FIELDS = ("location", "type", "required", "description", "example")


class Amender:
    """Applies change descriptions to existing specifications.

    Two conflict policies exist: strict (the default) records a Conflict and
    leaves the target alone; permissive (``allow_breaking_changes``)
    accepts the incoming change and records a warning instead.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()

    def apply_changes(self, document: Document, change_set: ChangeSet) -> AmendmentReport:
        """Merge ``change_set`` into a copy of ``document``; the input is left untouched."""
        merge = _Merge(document.model_copy(deep=True), self.settings.allow_breaking_changes)
        for change in change_set.changes:
            merge.apply(change)
        return merge.report()

    def amend(self, existing_spec: str, changes: str, fmt: str | None = None, dry_run: bool = False) -> AmendmentResult:
        """Parse, merge and (unless ``dry_run``) serialize.

        Raises ParseFailure when either input has a fatal diagnostic and
        SerializationError when the merged document cannot be rendered.
        Conflicts are reported on the result, never raised.
        """
        start = time.perf_counter()
        fmt = (fmt or self.settings.output_format).lower()
        if fmt not in OUTPUT_FORMATS:
            raise SerializationError(f"unsupported output format '{fmt}' (use one of: {', '.join(OUTPUT_FORMATS)})")
        logger.info("Amending specification (%d bytes, dry_run=%s)", len(existing_spec.encode("utf-8")), dry_run)

        base = self._parse_base(existing_spec)
        change_outcome = parse_changes(changes, self.settings)
        if change_outcome.has_fatal:
            raise ParseFailure("cannot parse change description", change_outcome.diagnostics)
        logger.debug("Parsed %d changes", len(change_outcome.value))

        report = self.apply_changes(base.value, change_outcome.value)
        diagnostics = base.diagnostics + change_outcome.diagnostics
        warnings = [str(d) for d in diagnostics if d.is_warning] + report.warnings
        errors = [str(d) for d in diagnostics if d.is_error] + report.errors

        content = "" if dry_run else serialize(report.document, fmt, self.settings.pretty_print)

        metadata = AmendmentMetadata(
            processing_time_ms=int((time.perf_counter() - start) * 1000),
            input_size_bytes=len(existing_spec.encode("utf-8")) + len(changes.encode("utf-8")),
            output_size_bytes=len(content.encode("utf-8")),
            changes_applied=len(report.changes),
            conflicts_resolved=report.conflicts_resolved,
        )
        if report.conflicts:
            logger.warning("Amendment left %d unresolved conflicts", len(report.conflicts))
        logger.info(
            "Amendment finished: %d changes, %d conflicts, %d warnings, %d errors in %d ms",
            len(report.changes),
            len(report.conflicts),
            len(warnings),
            len(errors),
            metadata.processing_time_ms,
        )
        return AmendmentResult(
            content=content,
            format=fmt,
            document=report.document,
            changes=report.changes,
            conflicts=report.conflicts,
            warnings=warnings,
            errors=errors,
            metadata=metadata,
        )

    def preview(self, existing_spec: str, changes: str, fmt: str | None = None) -> AmendmentResult:
        return self.amend(existing_spec, changes, fmt, dry_run=True)

    def validate_changes(self, changes: str) -> Outcome[ChangeSet]:
        """Parse a change description on its own, raising if it is unusable."""
        if not changes.strip():
            raise OperationError("change description is empty")
        outcome = parse_changes(changes, self.settings)
        if outcome.has_fatal:
            raise ParseFailure("cannot parse change description", outcome.diagnostics)
        if not outcome.value.changes:
            raise ParseFailure("change description contains no changes", outcome.diagnostics)
        return outcome

    def _parse_base(self, text: str) -> Outcome[Document]:
        fmt = detect_format(text)
        logger.debug("Existing specification detected as %s", fmt)
        outcome = parse_openapi(text, self.settings) if fmt == "openapi" else parse_markdown(text, self.settings)
        if outcome.has_fatal:
            raise ParseFailure("cannot parse existing specification", outcome.diagnostics)
        return outcome


class _Merge:
    """Mutable working state for one apply_changes call."""

    def __init__(self, document: Document, permissive: bool):
        self.document = document
        self.permissive = permissive
        self.endpoints: list[Endpoint] = list(document.endpoints)
        self.components: list[Component] = list(document.components)
        self.changes: list[str] = []
        self.conflicts: list[Conflict] = []
        self.warnings: list[str] = []
        self.errors: list[str] = []
        self.resolved = 0

    def report(self) -> AmendmentReport:
        document = self.document.model_copy(update={"endpoints": self.endpoints, "components": self.components})
        return AmendmentReport(
            document=document,
            changes=self.changes,
            conflicts=self.conflicts,
            warnings=self.warnings,
            errors=self.errors,
            conflicts_resolved=self.resolved,
        )

    def apply(self, change: Change) -> None:
        kind = change.target.kind
        if kind == TargetKind.ENDPOINT:
            self._endpoint(change)
        elif kind == TargetKind.COMPONENT:
            self._component(change)
        else:
            self._nested(change)

    # policy

    def _conflict(self, change: Change, reason: str, existing: str = "", incoming: str = "") -> bool:
        """Record a conflict; returns True when the incoming change should go ahead anyway."""
        if self.permissive:
            self.resolved += 1
            self.warnings.append(f"{change.describe()}: {reason}; applied incoming change")
            return True
        self.conflicts.append(
            Conflict(
                kind=change.target.kind,
                identity=change.target.identity,
                operation=change.operation,
                existing=existing,
                incoming=incoming,
                reason=reason,
                line_number=change.line_number,
            )
        )
        return False

    def _find_endpoint(self, change: Change) -> int | None:
        """Index of the target endpoint; None when absent, -1 when ambiguous under strict policy."""
        target = change.target
        matches = [i for i, ep in enumerate(self.endpoints) if ep.method == target.method and ep.path == target.path]
        if len(matches) > 1:
            existing = "; ".join(_summary(self.endpoints[i]) for i in matches)
            if not self._conflict(change, f"ambiguous target: {len(matches)} endpoints share {target.endpoint_key}", existing):
                return -1
        return matches[0] if matches else None

    # endpoints

    def _endpoint(self, change: Change) -> None:
        key = change.target.endpoint_key
        index = self._find_endpoint(change)
        if index == -1:
            return
        incoming = change.payload

        if change.operation == ChangeOperation.REMOVE:
            if index is None:
                self.warnings.append(f"endpoint {key} not found; nothing to remove")
                return
            del self.endpoints[index]
            self.changes.append(f"removed endpoint {key}")
            return

        if change.operation == ChangeOperation.ADD:
            if index is None:
                self.endpoints.append(incoming)
                self.changes.append(f"added endpoint {key}")
            elif self._conflict(change, "endpoint already exists", _summary(self.endpoints[index]), _summary(incoming)):
                self.endpoints[index] = incoming
                self.changes.append(f"replaced endpoint {key}")
            return

        if index is None:
            if self._conflict(change, "endpoint does not exist", incoming=_summary(incoming)):
                self.endpoints.append(incoming)
                self.changes.append(f"added endpoint {key}")
            return
        self.endpoints[index] = overlay_endpoint(self.endpoints[index], incoming, change.fields)
        self.changes.append(f"modified endpoint {key} ({', '.join(change.fields)})")

    # parameters and responses

    def _nested(self, change: Change) -> None:
        target = change.target
        is_parameter = target.kind == TargetKind.PARAMETER
        what = f"parameter {target.name} ({target.location})" if is_parameter else f"response {target.status_code}"
        where = f"{what} in {target.endpoint_key}"

        index = self._find_endpoint(change)
        if index == -1:
            return
        if index is None:
            message = f"cannot {change.operation.value} {where}: endpoint {target.endpoint_key} not found"
            if change.operation == ChangeOperation.REMOVE:
                self.warnings.append(message)
            else:
                self.errors.append(message)
            return

        endpoint = self.endpoints[index]
        items: list = list(endpoint.parameters if is_parameter else endpoint.responses)
        if is_parameter:
            position = next((i for i, p in enumerate(items) if p.identity == (target.name, target.location)), None)
        else:
            position = next((i for i, r in enumerate(items) if r.status_code == target.status_code), None)
        incoming = change.payload

        if change.operation == ChangeOperation.REMOVE:
            if position is None:
                self.warnings.append(f"{where} not found; nothing to remove")
                return
            del items[position]
            verb = "removed"
        elif change.operation == ChangeOperation.ADD:
            if position is None:
                items.append(incoming)
                verb = "added"
            elif self._conflict(change, f"{what} already exists", _summary(items[position]), _summary(incoming)):
                items[position] = incoming
                verb = "replaced"
            else:
                return
        elif position is None:
            if not self._conflict(change, f"{what} does not exist", incoming=_summary(incoming)):
                return
            items.append(incoming)
            verb = "added"
        else:
            if is_parameter:
                items[position] = overlay_parameter(items[position], incoming, change.fields)
            else:
                items[position] = overlay_response(items[position], incoming, change.fields)
            verb = "modified"

        field = "parameters" if is_parameter else "responses"
        self.endpoints[index] = endpoint.model_copy(update={field: items})
        detail = f" ({', '.join(change.fields)})" if verb == "modified" and change.fields else ""
        self.changes.append(f"{verb} {where}{detail}")

    # components

    def _component(self, change: Change) -> None:
        target = change.target
        name = target.name
        matches = [
            i
            for i, comp in enumerate(self.components)
            if comp.name == name and (not target.component_kind or comp.kind == target.component_kind)
        ]
        if len(matches) > 1:
            existing = "; ".join(_summary(self.components[i]) for i in matches)
            if not self._conflict(change, f"ambiguous target: {len(matches)} components named {name}", existing):
                return
        index = matches[0] if matches else None
        incoming = change.payload

        if change.operation == ChangeOperation.REMOVE:
            if index is None:
                self.warnings.append(f"component {name} not found; nothing to remove")
                return
            del self.components[index]
            self.changes.append(f"removed component {name}")
            return

        if change.operation == ChangeOperation.ADD:
            if index is None:
                self.components.append(incoming)
                self.changes.append(f"added component {name}")
            elif self._conflict(change, "component already exists", _summary(self.components[index]), _summary(incoming)):
                self.components[index] = incoming
                self.changes.append(f"replaced component {name}")
            return

        if index is None:
            if self._conflict(change, "component does not exist", incoming=_summary(incoming)):
                self.components.append(incoming)
                self.changes.append(f"added component {name}")
            return
        self.components[index] = overlay_component(self.components[index], incoming, change.fields)
        self.changes.append(f"modified component {name} ({', '.join(change.fields)})")


def overlay_endpoint(existing: Endpoint, incoming: Endpoint, fields: list[str]) -> Endpoint:
    """Apply the supplied ``fields`` of ``incoming`` over ``existing``.

    Parameters and responses are upserted by identity, tags are unioned
    and content maps merged; fields not listed are kept.
    """
    update: dict = {}
    for name in ("summary", "description"):
        if name in fields:
            update[name] = getattr(incoming, name)
    if "tags" in fields:
        update["tags"] = existing.tags + [t for t in incoming.tags if t not in existing.tags]
    if "parameters" in fields:
        params = list(existing.parameters)
        for param in incoming.parameters:
            position = next((i for i, p in enumerate(params) if p.identity == param.identity), None)
            if position is None:
                params.append(param)
            else:
                params[position] = param
        update["parameters"] = params
    if "request_body" in fields and incoming.request_body is not None:
        update["request_body"] = _merge_request_body(existing.request_body, incoming.request_body)
    if "responses" in fields:
        responses = list(existing.responses)
        for response in incoming.responses:
            position = next((i for i, r in enumerate(responses) if r.status_code == response.status_code), None)
            if position is None:
                responses.append(response)
            else:
                responses[position] = overlay_response(responses[position], response, ["description", "headers", "content"])
        update["responses"] = responses
    return existing.model_copy(update=update)


def overlay_parameter(existing: Parameter, incoming: Parameter, fields: list[str]) -> Parameter:
    update = {name: getattr(incoming, name) for name in PARAMETER_FIELDS if name in fields}
    if "type" in fields:
        update["schema_"] = incoming.schema_
    if update.get("location", existing.location) == "path":
        update["required"] = True
    return existing.model_copy(update=update)


def overlay_response(existing: Response, incoming: Response, fields: list[str]) -> Response:
    update: dict = {}
    if "description" in fields and incoming.description:
        update["description"] = incoming.description
    if "headers" in fields and incoming.headers:
        update["headers"] = {**existing.headers, **incoming.headers}
    if "content" in fields and incoming.content:
        update["content"] = {**existing.content, **incoming.content}
    return existing.model_copy(update=update)


def overlay_component(existing: Component, incoming: Component, fields: list[str]) -> Component:
    """Apply the supplied ``fields`` of ``incoming`` over ``existing``.

    A new kind or a new schema body replaces the component outright;
    anything else is merged into the existing parameter or response.
    """
    if "kind" in fields or ("schema" in fields and incoming.schema_ is not None):
        return incoming.model_copy(update={"line_number": existing.line_number})
    if existing.parameter is not None and incoming.parameter is not None:
        parameter = overlay_parameter(existing.parameter, incoming.parameter, fields)
        return existing.model_copy(update={"parameter": parameter})
    if existing.response is not None and incoming.response is not None:
        response = overlay_response(existing.response, incoming.response, fields)
        return existing.model_copy(update={"response": response})
    if "description" not in fields:
        return existing
    description = _component_description(incoming)
    if existing.schema_ is not None:
        if existing.schema_.is_reference:
            return existing
        return existing.model_copy(update={"schema_": existing.schema_.model_copy(update={"description": description})})
    if existing.parameter is not None:
        return existing.model_copy(update={"parameter": existing.parameter.model_copy(update={"description": description})})
    if existing.response is not None:
        return existing.model_copy(update={"response": existing.response.model_copy(update={"description": description})})
    return existing


def _component_description(component: Component) -> str:
    for part in (component.schema_, component.parameter, component.response):
        if part is not None:
            return part.description
    return ""


def _merge_request_body(existing: RequestBody | None, incoming: RequestBody) -> RequestBody:
    if existing is None:
        return incoming
    return existing.model_copy(
        update={
            "description": incoming.description or existing.description,
            "required": incoming.required,
            "content": {**existing.content, **incoming.content},
        }
    )


def _summary(item) -> str:
    """One-line description of a model, used in conflict reports."""
    if item is None:
        return ""
    if isinstance(item, Endpoint):
        text = item.key
        if item.summary:
            text += f" - {item.summary}"
        return f"{text} ({len(item.parameters)} parameters, {len(item.responses)} responses)"
    if isinstance(item, Parameter):
        required = "required" if item.required else "optional"
        return f"{item.name} ({item.location}, {item.type}, {required})"
    if isinstance(item, Response):
        return f"{item.status_code}: {item.description}"
    if isinstance(item, Component):
        return f"{item.name} ({item.kind})"
    return str(item)
