"""Generate an OpenAPI specification from Markdown documentation."""

import logging
import time
from pathlib import Path

from pydantic import BaseModel, Field

from apiweaver.config import Settings
from apiweaver.errors import OperationError, ParseError, ParseFailure
from apiweaver.generator.openapi import serialize
from apiweaver.parser.base import Document
from apiweaver.parser.checks import DocumentStatistics, document_statistics
from apiweaver.parser.markdown import MarkdownParser

logger = logging.getLogger(__name__)


class GenerationMetadata(BaseModel):
    processing_time_ms: int = 0
    input_size_bytes: int = 0
    output_size_bytes: int = 0
    endpoint_count: int = 0
    component_count: int = 0
    statistics: DocumentStatistics = Field(default_factory=DocumentStatistics)


class GenerationResult(BaseModel):
    content: str
    format: str
    document: Document
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    diagnostics: list[ParseError] = Field(default_factory=list)
    metadata: GenerationMetadata = Field(default_factory=GenerationMetadata)


class Generator:
    """Parses Markdown and serializes the resulting Document."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()
        self.parser = MarkdownParser(self.settings)

    def generate(self, text: str, fmt: str | None = None) -> GenerationResult:
        """Generate a specification from Markdown ``text``.

        Raises ParseFailure on a fatal diagnostic, or on any error in strict
        mode; recoverable diagnostics are otherwise reported on the result.
        """
        start = time.perf_counter()
        fmt = (fmt or self.settings.output_format).lower()
        logger.info("Generating OpenAPI (%d bytes, format=%s)", len(text.encode("utf-8")), fmt)

        outcome = self.parser.parse(text)
        if outcome.has_fatal:
            logger.error("Markdown parsing failed")
            raise ParseFailure("cannot parse markdown", outcome.diagnostics)
        if self.settings.strict_mode and outcome.errors:
            logger.error("Parsing reported %d errors in strict mode", len(outcome.errors))
            raise ParseFailure(f"parsing failed with {len(outcome.errors)} errors", outcome.diagnostics)

        document = outcome.value
        content = serialize(document, fmt, self.settings.pretty_print)
        stats = document_statistics(document)
        logger.debug("Document statistics: %s", stats.model_dump())
        result = GenerationResult(
            content=content,
            format=fmt,
            document=document,
            warnings=[str(d) for d in outcome.warnings],
            errors=[str(d) for d in outcome.errors],
            diagnostics=outcome.diagnostics,
            metadata=GenerationMetadata(
                processing_time_ms=int((time.perf_counter() - start) * 1000),
                input_size_bytes=len(text.encode("utf-8")),
                output_size_bytes=len(content.encode("utf-8")),
                endpoint_count=stats.total_endpoints,
                component_count=stats.total_components,
                statistics=stats,
            ),
        )
        logger.info(
            "Generated %d endpoints and %d components (%d warnings, %d errors)",
            result.metadata.endpoint_count,
            result.metadata.component_count,
            len(result.warnings),
            len(result.errors),
        )
        return result

    def generate_file(self, path: Path, fmt: str | None = None) -> GenerationResult:
        logger.info("Generating from file %s", path)
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise OperationError(f"cannot read {path}: {e}") from e
        return self.generate(text, fmt)
