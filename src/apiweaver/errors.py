"""Error taxonomy shared by the parser, builders and amendment engine.

Diagnostics (ParseError) are values collected alongside a best-effort
result; only operation-level failures are raised as exceptions.
"""

from enum import Enum
from typing import Callable, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ErrorType(str, Enum):
    SYNTAX = "syntax"
    VALIDATION = "validation"
    CONFIG = "config"
    SCHEMA = "schema"
    TABLE = "table"
    FRONTMATTER = "frontmatter"
    ENDPOINT = "endpoint"
    REFERENCE = "reference"
    CHANGE = "change"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


class ParseError(BaseModel):
    """A diagnostic tied to a position in the source text."""

    model_config = ConfigDict(frozen=True)

    type: ErrorType
    severity: Severity = Severity.ERROR
    message: str
    line_number: int = 0  # 1-based, 0 when unknown
    column: int = 0  # 1-based byte offset, 0 when unknown
    context: str = ""
    suggestion: str = ""
    source: str = ""  # frontmatter / endpoint / schema / table / change
    code: str = ""

    @property
    def is_fatal(self) -> bool:
        return self.severity == Severity.FATAL

    @property
    def is_error(self) -> bool:
        return self.severity in (Severity.ERROR, Severity.FATAL)

    @property
    def is_warning(self) -> bool:
        return self.severity == Severity.WARNING

    def __str__(self) -> str:
        parts = []
        if self.code:
            parts.append(f"[{self.code}]")
        if self.line_number > 0:
            if self.column > 0:
                parts.append(f"line {self.line_number}:{self.column}")
            else:
                parts.append(f"line {self.line_number}")
        if self.source:
            parts.append(f"in {self.source}")
        parts.append(self.message)
        text = " ".join(parts)
        if self.suggestion:
            text += f" (suggestion: {self.suggestion})"
        return text


def new_error(error_type: ErrorType, message: str, line: int = 0, **kwargs) -> ParseError:
    """Build a recoverable error-level diagnostic."""
    return ParseError(type=error_type, severity=Severity.ERROR, message=message, line_number=line, **kwargs)


def new_warning(error_type: ErrorType, message: str, line: int = 0, **kwargs) -> ParseError:
    return ParseError(type=error_type, severity=Severity.WARNING, message=message, line_number=line, **kwargs)


def new_fatal(error_type: ErrorType, message: str, line: int = 0, **kwargs) -> ParseError:
    return ParseError(type=error_type, severity=Severity.FATAL, message=message, line_number=line, **kwargs)


class Outcome(BaseModel, Generic[T]):
    """A best-effort value together with the ordered diagnostics produced while building it."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    value: T
    diagnostics: list[ParseError] = Field(default_factory=list)

    @property
    def has_fatal(self) -> bool:
        return any(d.is_fatal for d in self.diagnostics)

    @property
    def errors(self) -> list[ParseError]:
        return [d for d in self.diagnostics if d.is_error]

    @property
    def warnings(self) -> list[ParseError]:
        return [d for d in self.diagnostics if d.is_warning]

    @property
    def ok(self) -> bool:
        return not self.errors


class ErrorCollector:
    """Append-only diagnostic list with an optional cap on error-level entries.

    Once ``max_errors`` error-level diagnostics have been added, a fatal
    "too many errors" diagnostic is appended and ``stopped`` becomes true.
    """

    def __init__(self, max_errors: int = 0):
        self.max_errors = max_errors
        self.context = ""
        self._items: list[ParseError] = []
        self._error_count = 0
        self.stopped = False

    def add(self, err: ParseError | None) -> None:
        if err is None or self.stopped:
            return
        if not err.context and self.context:
            err = err.model_copy(update={"context": self.context})
        self._items.append(err)
        if err.is_fatal:
            self.stopped = True
            return
        if err.is_error:
            self._error_count += 1
            if self.max_errors > 0 and self._error_count >= self.max_errors:
                self._items.append(
                    new_fatal(
                        ErrorType.VALIDATION,
                        f"too many errors (limit: {self.max_errors})",
                        err.line_number,
                    )
                )
                self.stopped = True

    def extend(self, errs: list[ParseError]) -> None:
        for err in errs:
            self.add(err)

    def has_errors(self) -> bool:
        return any(e.is_error for e in self._items)

    def has_fatal_errors(self) -> bool:
        return any(e.is_fatal for e in self._items)

    @property
    def items(self) -> list[ParseError]:
        return list(self._items)


def filter_errors(errors: list[ParseError], predicate: Callable[[ParseError], bool]) -> list[ParseError]:
    return [e for e in errors if predicate(e)]


def filter_by_severity(errors: list[ParseError], severity: Severity) -> list[ParseError]:
    return filter_errors(errors, lambda e: e.severity == severity)


def filter_by_type(errors: list[ParseError], error_type: ErrorType) -> list[ParseError]:
    return filter_errors(errors, lambda e: e.type == error_type)


def format_errors(errors: list[ParseError]) -> str:
    """Render diagnostics grouped by severity, most severe first."""
    if not errors:
        return "No errors"

    sections = [
        ("FATAL ERRORS", Severity.FATAL),
        ("ERRORS", Severity.ERROR),
        ("WARNINGS", Severity.WARNING),
        ("INFO", Severity.INFO),
    ]
    blocks = []
    for title, severity in sections:
        group = filter_by_severity(errors, severity)
        if group:
            lines = [f"{title}:"] + [f"  {e}" for e in group]
            blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


class ApiWeaverError(Exception):
    """Base class for operation-level failures."""


class ConfigError(ApiWeaverError):
    def __init__(self, message: str, field: str = ""):
        self.field = field
        if field:
            message = f"configuration error in field '{field}': {message}"
        else:
            message = f"configuration error: {message}"
        super().__init__(message)


class OperationError(ApiWeaverError):
    """A Generate/Amend call failed as a whole."""


class ParseFailure(OperationError):
    """Input could not be parsed; carries the diagnostics that caused it."""

    def __init__(self, message: str, diagnostics: list[ParseError] | None = None):
        self.diagnostics = list(diagnostics or [])
        details = [str(d) for d in self.diagnostics if d.is_error]
        if details:
            message = f"{message}: " + "; ".join(details)
        super().__init__(message)


class SerializationError(OperationError):
    """A document could not be rendered in the requested format."""
