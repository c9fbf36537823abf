"""
Configuration loader for Schema Reconciler.

This module loads the optional YAML settings file, validates it with the
MigrationSettings Pydantic model, merges command-line overrides and reads
the desired-schema script from disk.

Functions:
    load_settings: Load and validate reconciler.config.yaml
    resolve_settings: Combine an optional settings file with CLI overrides
    read_schema_script: Read the desired-schema DDL file
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from schema_reconciler.exceptions import ConfigFileNotFoundError, ConfigValidationError

from .schema import MigrationSettings


def _format_validation_error(source: str, error: ValidationError) -> str:
    error_messages = []
    for detail in error.errors():
        loc = ".".join(str(x) for x in detail["loc"])
        error_messages.append(f"  - {loc}: {detail['msg']}")

    return f"Configuration validation failed in {source}:\n" + "\n".join(
        error_messages
    )


def load_settings(config_path: str | Path) -> MigrationSettings:
    """
    Load reconciler.config.yaml and validate it.

    Args:
        config_path: Path to the YAML settings file (relative or absolute)

    Returns:
        Validated MigrationSettings

    Raises:
        ConfigFileNotFoundError: If the file doesn't exist
        ConfigValidationError: If YAML is invalid, the file is empty or
                               validation fails

    Example:
        >>> settings = load_settings("reconciler.config.yaml")
        >>> settings.dsn
        'file:quakes.sqlite3'

    Note:
        Uses yaml.safe_load() to prevent code injection.
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigFileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with config_path.open(encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML syntax in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigValidationError(
            f"Failed to read configuration file {config_path}: {e}"
        ) from e

    if raw_config is None:
        raise ConfigValidationError(f"Configuration file is empty: {config_path}")

    if not isinstance(raw_config, dict):
        raise ConfigValidationError(
            f"Configuration file must contain a mapping: {config_path}"
        )

    try:
        return MigrationSettings.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigValidationError(
            _format_validation_error(str(config_path), e)
        ) from e


def resolve_settings(
    config_path: str | Path | None = None, **overrides: Any
) -> MigrationSettings:
    """
    Build settings from an optional file plus command-line overrides.

    Overrides set to None are ignored, so unset CLI flags fall back to the
    file (or to the model defaults when no file is given).

    Args:
        config_path: Optional YAML settings file
        **overrides: Field values from the command line

    Returns:
        Validated MigrationSettings

    Raises:
        ConfigFileNotFoundError: If config_path is given but missing
        ConfigValidationError: If the merged values fail validation

    Example:
        >>> resolve_settings(None, dsn="file:test.sqlite3", schema_path=None).dsn
        'file:test.sqlite3'
    """
    base = load_settings(config_path) if config_path is not None else MigrationSettings()

    values = base.model_dump()
    values.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return MigrationSettings.model_validate(values)
    except ValidationError as e:
        raise ConfigValidationError(
            _format_validation_error("command line options", e)
        ) from e


def read_schema_script(schema_path: str | Path) -> str:
    """
    Read the desired-schema DDL script.

    Args:
        schema_path: Path to the .sql file

    Returns:
        The script text

    Raises:
        ConfigFileNotFoundError: If the file doesn't exist
        ConfigValidationError: If the file cannot be read or is empty
    """
    schema_path = Path(schema_path)

    if not schema_path.is_file():
        raise ConfigFileNotFoundError(f"Schema file not found: {schema_path}")

    try:
        script = schema_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigValidationError(f"Failed to read schema file {schema_path}: {e}") from e

    if not script.strip():
        raise ConfigValidationError(f"Schema file is empty: {schema_path}")

    return script
