"""Runtime configuration.

Settings come from defaults, then an optional YAML file, then
``APIWEAVER_*`` environment variables (highest precedence).
"""

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from apiweaver.errors import ConfigError

DEFAULT_ALLOWED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]
DEFAULT_CONFIG_NAMES = ("apiweaver.yaml", "apiweaver.yml")
ENV_PREFIX = "APIWEAVER_"
OUTPUT_FORMATS = ("yaml", "json")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class Settings(BaseModel):
    # Parser
    strict_mode: bool = False
    allowed_methods: list[str] = list(DEFAULT_ALLOWED_METHODS)
    max_errors: int = 100  # error-level diagnostics before parsing stops; 0 = unlimited
    max_nesting_depth: int = 10

    # Amendment
    allow_breaking_changes: bool = False

    # Output
    output_format: str = "yaml"
    pretty_print: bool = True

    # Logging
    verbose: bool = False
    log_level: str = "WARNING"

    @field_validator("allowed_methods")
    @classmethod
    def _upper_methods(cls, value: list[str]) -> list[str]:
        methods = [m.strip().upper() for m in value if m.strip()]
        if not methods:
            raise ValueError("at least one HTTP method must be allowed")
        return methods

    @field_validator("max_errors")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be non-negative")
        return value

    @field_validator("max_nesting_depth")
    @classmethod
    def _depth_range(cls, value: int) -> int:
        if not 1 <= value <= 100:
            raise ValueError("must be between 1 and 100")
        return value

    @field_validator("output_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in OUTPUT_FORMATS:
            raise ValueError(f"must be one of: {', '.join(OUTPUT_FORMATS)}")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.upper()
        if value not in LOG_LEVELS:
            raise ValueError(f"must be one of: {', '.join(LOG_LEVELS)}")
        return value


def load_config(path: Path | None = None, environ: dict[str, str] | None = None) -> Settings:
    """Load settings from ``path`` (or a default file in the cwd) and the environment."""
    environ = os.environ if environ is None else environ
    data: dict = {}

    if path is None:
        path = next((Path(name) for name in DEFAULT_CONFIG_NAMES if Path(name).is_file()), None)
    if path is not None:
        data.update(_read_file(Path(path)))

    data.update(_read_env(environ))

    try:
        return Settings(**data)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(p) for p in err["loc"])
        raise ConfigError(err["msg"], field=field) from e


def _read_file(path: Path) -> dict:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}") from e
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    unknown = set(data) - set(Settings.model_fields)
    if unknown:
        raise ConfigError(f"unknown keys: {', '.join(sorted(unknown))}")
    return data


def _read_env(environ) -> dict:
    data = {}
    for name in Settings.model_fields:
        raw = environ.get(ENV_PREFIX + name.upper())
        if raw is None:
            continue
        if name == "allowed_methods":
            data[name] = raw.split(",")
        else:
            data[name] = raw
    return data
