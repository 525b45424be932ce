"""Kindred configuration loading and validation.

Reads kindred.toml from a config directory, parses all sections, and returns
a validated KindredConfig dataclass.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from kindred.anniversaries.store import DEFAULT_MAX_LOOKAHEAD_YEARS

CONFIG_FILENAME = "kindred.toml"
DEFAULT_PORT = 40300

# Pattern matching ${VAR_NAME}: supports alphanumeric + underscore variable names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_DB_SCHEMA_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_LOG_FORMATS = {"text", "json"}


class ConfigError(Exception):
    """Raised when kindred configuration is missing, malformed, or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from [kindred.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class AnniversariesConfig:
    """Occurrence engine settings from the [anniversaries] section.

    ``default_locale`` is the locale assumed for requests that send no
    ``x-locale`` header. ``max_lookahead_years`` bounds how far past the
    current year a month query may push the horizon.
    """

    default_locale: str | None = "he"
    max_lookahead_years: int = DEFAULT_MAX_LOOKAHEAD_YEARS


@dataclass
class KindredConfig:
    """Parsed and validated kindred configuration."""

    name: str = "kindred"
    port: int = DEFAULT_PORT
    db_name: str = "kindred"
    db_schema: str | None = None
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    anniversaries: AnniversariesConfig = field(default_factory=AnniversariesConfig)


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaf values (int, bool,
    float, None) are returned unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


def _parse_int(value: Any, path: str, *, minimum: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{path} must be an integer, got {value!r}") from None
    if parsed < minimum:
        raise ConfigError(f"Invalid {path}: {parsed!r}. Must be >= {minimum}.")
    return parsed


def _parse_logging(section: dict[str, Any]) -> LoggingConfig:
    level = str(section.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ConfigError(f"Invalid kindred.logging.level: {level!r}")
    fmt = str(section.get("format", "text")).lower()
    if fmt not in _LOG_FORMATS:
        raise ConfigError(f"Invalid kindred.logging.format: {fmt!r}. Expected 'text' or 'json'.")
    log_root = section.get("log_root")
    if log_root is not None and not isinstance(log_root, str):
        raise ConfigError("kindred.logging.log_root must be a string when set")
    return LoggingConfig(level=level, format=fmt, log_root=log_root or None)


def _parse_anniversaries(section: dict[str, Any]) -> AnniversariesConfig:
    default_locale = section.get("default_locale", "he")
    if default_locale is not None and not isinstance(default_locale, str):
        raise ConfigError("anniversaries.default_locale must be a string when set")
    return AnniversariesConfig(
        default_locale=default_locale or None,
        max_lookahead_years=_parse_int(
            section.get("max_lookahead_years", DEFAULT_MAX_LOOKAHEAD_YEARS),
            "anniversaries.max_lookahead_years",
            minimum=1,
        ),
    )


def parse_config(data: dict[str, Any]) -> KindredConfig:
    """Validate an already-decoded TOML document into a KindredConfig."""
    data = resolve_env_vars(data)

    kindred_section = data.get("kindred", {})
    if not isinstance(kindred_section, dict):
        raise ConfigError("[kindred] must be a table")

    name = str(kindred_section.get("name", "kindred")).strip()
    if not name:
        raise ConfigError("kindred.name must be a non-empty string")
    port = _parse_int(kindred_section.get("port", DEFAULT_PORT), "kindred.port", minimum=1)

    # --- [kindred.db] sub-section ---
    db_section = kindred_section.get("db", {})
    db_name = str(db_section.get("name", name)).strip()
    if not db_name:
        raise ConfigError("kindred.db.name must be a non-empty string")

    db_schema_raw = db_section.get("schema")
    db_schema: str | None = None
    if db_schema_raw is not None:
        if not isinstance(db_schema_raw, str):
            raise ConfigError("kindred.db.schema must be a string when set")
        normalized_schema = db_schema_raw.strip()
        if _DB_SCHEMA_PATTERN.fullmatch(normalized_schema) is None:
            raise ConfigError(
                "Invalid kindred.db.schema: "
                f"{db_schema_raw!r}. Expected a valid SQL identifier-style value."
            )
        db_schema = normalized_schema

    return KindredConfig(
        name=name,
        port=port,
        db_name=db_name,
        db_schema=db_schema,
        logging=_parse_logging(kindred_section.get("logging", {})),
        anniversaries=_parse_anniversaries(data.get("anniversaries", {})),
    )


def load_config(config_dir: Path) -> KindredConfig:
    """Load and validate kindred.toml from *config_dir*.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or holds invalid values.
    """
    toml_path = config_dir / CONFIG_FILENAME

    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    try:
        data = tomllib.loads(toml_path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    return parse_config(data)
