"""CLI entry point for apiweaver."""

import json
import logging
import sys
from pathlib import Path

import click

from apiweaver.amender.engine import Amender
from apiweaver.config import Settings, load_config
from apiweaver.errors import ApiWeaverError, ParseFailure, format_errors
from apiweaver.generator.service import Generator
from apiweaver.generator.validator import SpecValidator, ValidatorConfig
from apiweaver.parser.detect import detect_format

logger = logging.getLogger("apiweaver")


def _load_settings(config_path: Path | None, verbose: bool, **overrides) -> Settings:
    """Load configuration and apply command-line overrides."""
    try:
        settings = load_config(config_path)
    except ApiWeaverError as e:
        raise click.ClickException(str(e)) from e
    update = {k: v for k, v in overrides.items() if v is not None}
    if verbose:
        update["verbose"] = True
    settings = settings.model_copy(update=update)
    _setup_logging(settings)
    return settings


def _setup_logging(settings: Settings) -> None:
    level = logging.DEBUG if settings.verbose else getattr(logging, settings.log_level)
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s", stream=sys.stderr, force=True
    )
    logger.setLevel(level)


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise click.ClickException(f"cannot read {path}: {e}") from e


def _report(title: str, items: list[str]) -> None:
    if items:
        click.echo(f"{title}:", err=True)
        for item in items:
            click.echo(f"  - {item}", err=True)


@click.group()
@click.version_option(package_name="apiweaver")
def main():
    """APIWeaver: generate and amend OpenAPI specifications from Markdown."""
    pass


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-o", "--output", default=None, type=click.Path(path_type=Path), help="Output file for the generated OpenAPI spec (stdout if omitted).")
@click.option("-f", "--format", "fmt", default=None, type=click.Choice(["yaml", "json"]), help="Output format.")
@click.option("-c", "--config", "config_path", default=None, type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Configuration file path.")
@click.option("--strict", is_flag=True, help="Fail on any parse error.")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging.")
def generate(doc_path: Path, output: Path | None, fmt: str | None, config_path: Path | None, strict: bool, verbose: bool):
    """Generate an OpenAPI specification from Markdown documentation."""
    settings = _load_settings(config_path, verbose, output_format=fmt, strict_mode=strict or None)
    text = _read(doc_path)

    try:
        result = Generator(settings).generate(text, fmt)
    except ParseFailure as e:
        click.echo(format_errors(e.diagnostics), err=True)
        raise click.ClickException(str(e)) from e
    except ApiWeaverError as e:
        raise click.ClickException(str(e)) from e

    if result.diagnostics:
        click.echo(format_errors(result.diagnostics), err=True)

    if output is None:
        click.echo(result.content, nl=False)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(result.content, encoding="utf-8")
    click.echo(
        f"Generated {result.metadata.endpoint_count} endpoints and "
        f"{result.metadata.component_count} components to {output}"
    )


@main.command()
@click.argument("spec_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-c", "--changes", "changes_path", required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Markdown file describing the changes to apply.")
@click.option("-o", "--output", default=None, type=click.Path(path_type=Path), help="Output file for the amended spec (defaults to overwriting SPEC_PATH).")
@click.option("-f", "--format", "fmt", default=None, type=click.Choice(["yaml", "json"]), help="Output format (detected from the output file name if omitted).")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Configuration file path.")
@click.option("--dry-run", is_flag=True, help="Show what would change without writing anything.")
@click.option("--allow-breaking", is_flag=True, help="Accept incoming changes on conflict instead of reporting them.")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging.")
def amend(
    spec_path: Path,
    changes_path: Path,
    output: Path | None,
    fmt: str | None,
    config_path: Path | None,
    dry_run: bool,
    allow_breaking: bool,
    verbose: bool,
):
    """Apply a Markdown change description to an existing specification."""
    settings = _load_settings(config_path, verbose, allow_breaking_changes=allow_breaking or None)
    output = output or spec_path
    fmt = fmt or ("json" if output.suffix.lower() == ".json" else "yaml")

    try:
        result = Amender(settings).amend(_read(spec_path), _read(changes_path), fmt, dry_run=dry_run)
    except ApiWeaverError as e:
        raise click.ClickException(str(e)) from e

    prefix = "Would apply" if dry_run else "Applied"
    click.echo(f"{prefix} {len(result.changes)} changes:")
    for change in result.changes:
        click.echo(f"  - {change}")
    _report("Conflicts", [c.describe() for c in result.conflicts])
    _report("Warnings", result.warnings)
    _report("Errors", result.errors)

    if dry_run:
        click.echo("Dry run: no files written.")
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(result.content, encoding="utf-8")
    click.echo(f"Amended specification written to {output}")
    if result.conflicts:
        click.echo(f"{len(result.conflicts)} conflicts were not applied.", err=True)
        sys.exit(1)


@main.command()
@click.argument("spec_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-t", "--type", "input_type", default="auto", type=click.Choice(["auto", "markdown", "openapi"]), help="Input type.")
@click.option("-s", "--strict", is_flag=True, help="Enable strict validation mode.")
@click.option("--best-practices", is_flag=True, help="Suggest documentation improvements.")
@click.option("--allow-extensions", is_flag=True, help="Accept x- extensions in strict mode.")
@click.option("--validate-examples", is_flag=True, help="Check examples against their schemas.")
@click.option("-f", "--format", "output_format", default="text", type=click.Choice(["text", "json"]), help="Report format.")
@click.option("-c", "--config", "config_path", default=None, type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Configuration file path.")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging.")
def validate(
    spec_path: Path,
    input_type: str,
    strict: bool,
    best_practices: bool,
    allow_extensions: bool,
    validate_examples: bool,
    output_format: str,
    config_path: Path | None,
    verbose: bool,
):
    """Validate a Markdown document or an OpenAPI specification."""
    settings = _load_settings(config_path, verbose, strict_mode=strict or None)
    text = _read(spec_path)
    if input_type == "auto":
        input_type = detect_format(text)
    logger.info("Validating %s as %s", spec_path, input_type)

    validator = SpecValidator(
        ValidatorConfig(
            strict_mode=settings.strict_mode,
            check_best_practices=best_practices,
            allow_extensions=allow_extensions,
            validate_examples=validate_examples,
        )
    )
    if input_type == "markdown":
        result = validator.validate_markdown(text, settings)
    else:
        result = validator.validate(text)

    if output_format == "json":
        click.echo(json.dumps(result.model_dump(), indent=2))
    else:
        click.echo("Valid" if result.valid else "Invalid")
        for title, items in (("Errors", result.errors), ("Warnings", result.warnings), ("Suggestions", result.suggestions)):
            if items:
                click.echo(f"{title}:")
                for item in items:
                    click.echo(f"  - {item}")
    if not result.valid:
        sys.exit(1)
