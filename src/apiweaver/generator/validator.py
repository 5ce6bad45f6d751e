"""Validates serialized OpenAPI specifications and Markdown sources."""

from typing import Any, Iterator

import yaml
from pydantic import BaseModel, Field

from apiweaver.config import Settings
from apiweaver.errors import ErrorType, filter_by_type
from apiweaver.parser.markdown import parse_markdown

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")
TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
    "null": lambda v: v is None,
}


class ValidatorConfig(BaseModel):
    strict_mode: bool = False
    check_best_practices: bool = False
    allow_extensions: bool = True
    validate_examples: bool = False


class ValidationResult(BaseModel):
    valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class SpecValidator:
    """Checks a specification for required structure and common omissions."""

    def __init__(self, config: ValidatorConfig | None = None):
        self.config = config or ValidatorConfig()

    def validate(self, content: str) -> ValidationResult:
        """Validate serialized OpenAPI (YAML or JSON) text."""
        errors: list[str] = []
        warnings: list[str] = []
        suggestions: list[str] = []

        try:
            spec = yaml.safe_load(content)
        except yaml.YAMLError as e:
            return ValidationResult(valid=False, errors=[f"invalid YAML/JSON: {e}"])
        if not isinstance(spec, dict):
            return ValidationResult(valid=False, errors=["specification must be a mapping"])

        version = str(spec.get("openapi") or "")
        if "swagger" in spec or version.startswith("2."):
            warnings.append("OpenAPI 2.x (Swagger) detected - consider upgrading to OpenAPI 3.1")
        elif not version:
            errors.append("Missing 'openapi' field")

        info = spec.get("info")
        if not isinstance(info, dict):
            errors.append("Missing 'info' object")
        else:
            for key in ("title", "version"):
                if not info.get(key):
                    errors.append(f"Missing 'info.{key}'")

        paths = spec.get("paths")
        if not paths:
            warnings.append("No 'paths' object found - API has no endpoints")
        elif not isinstance(paths, dict):
            errors.append("'paths' must be a mapping")
            paths = {}

        operations = list(_operations(paths or {}))
        for key, operation in operations:
            if not isinstance(operation, dict):
                errors.append(f"{key}: operation must be a mapping")

        if self.config.strict_mode and not self.config.allow_extensions:
            extensions = sorted(set(_extension_keys(spec)))
            if extensions:
                warnings.append(f"OpenAPI extensions found in strict mode: {', '.join(extensions)}")

        if self.config.check_best_practices:
            for key, operation in operations:
                if isinstance(operation, dict) and not (operation.get("description") or operation.get("summary")):
                    suggestions.append(f"{key}: consider adding a summary or description")
            if not any(True for _ in _examples(spec)):
                suggestions.append("Consider adding examples to improve API usability")
            if not spec.get("components"):
                suggestions.append("Consider using components for reusable schemas")

        if self.config.validate_examples:
            for where, example, schema in _examples(spec):
                problem = example_problem(example, schema)
                if problem:
                    warnings.append(f"{where}: example {problem}")

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings, suggestions=suggestions)

    def validate_markdown(self, text: str, settings: Settings | None = None) -> ValidationResult:
        """Validate Markdown documentation by parsing it."""
        settings = settings or Settings(strict_mode=self.config.strict_mode)
        outcome = parse_markdown(text, settings)
        doc = outcome.value
        suggestions = []
        # a broken frontmatter block is already reported as an error
        if doc.frontmatter is None and not filter_by_type(outcome.diagnostics, ErrorType.FRONTMATTER):
            suggestions.append("Consider adding YAML frontmatter with API metadata")
        if self.config.check_best_practices:
            for endpoint in doc.endpoints:
                if not endpoint.description:
                    suggestions.append(f"Endpoint {endpoint.key} is missing a description")
        return ValidationResult(
            valid=not outcome.errors,
            errors=[str(d) for d in outcome.errors],
            warnings=[str(d) for d in outcome.warnings],
            suggestions=suggestions,
        )


def example_problem(example: Any, schema: dict) -> str:
    """Describe why ``example`` does not fit ``schema`` ("" when it fits or cannot be checked)."""
    expected = schema.get("type")
    if isinstance(expected, list):
        if not any(TYPE_CHECKS.get(t, lambda v: True)(example) for t in expected):
            return f"does not match types {expected}"
        return ""
    check = TYPE_CHECKS.get(expected) if isinstance(expected, str) else None
    if check is not None and not check(example):
        return f"does not match type '{expected}'"
    enum = schema.get("enum")
    if isinstance(enum, list) and enum and example not in enum:
        return f"is not one of {enum}"
    if expected == "object" and isinstance(example, dict):
        missing = [name for name in schema.get("required") or [] if name not in example]
        if missing:
            return f"is missing required properties: {', '.join(missing)}"
    return ""


def _operations(paths: dict) -> Iterator[tuple[str, Any]]:
    for path, item in paths.items():
        if not isinstance(item, dict):
            continue
        for method, operation in item.items():
            if method in HTTP_METHODS:
                yield f"{method.upper()} {path}", operation


def _extension_keys(value: Any) -> Iterator[str]:
    if isinstance(value, dict):
        for key, child in value.items():
            if isinstance(key, str) and key.startswith("x-"):
                yield key
            yield from _extension_keys(child)
    elif isinstance(value, list):
        for child in value:
            yield from _extension_keys(child)


def _examples(value: Any, where: str = "") -> Iterator[tuple[str, Any, dict]]:
    """Yield (location, example, schema) for every example in the document."""
    if isinstance(value, dict):
        if "example" in value:
            schema = value.get("schema") if isinstance(value.get("schema"), dict) else value
            yield where or "/", value["example"], schema
        for key, child in value.items():
            if key != "example":
                yield from _examples(child, f"{where}/{key}")
    elif isinstance(value, list):
        for index, child in enumerate(value):
            yield from _examples(child, f"{where}/{index}")
