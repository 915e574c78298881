# src/pgstat_collector/config.py
"""
Central configuration loader for pgstat_collector.

- Loads KEY=VALUE pairs from a local env file (db_config.env) if present
- Optionally reads a YAML file for base values (unknown keys ignored)
- Applies PSD_* environment overrides on top
- Validates everything up front so bad values fail before any connection
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import load_dotenv

from pgstat_collector.exceptions import ConfigError


ENV_PREFIX = "PSD_"
DEFAULT_ENV_FILE = "db_config.env"

# Roughly 1ns .. 136 years
MIN_SECONDS = 1e-9
MAX_SECONDS = float(1 << 32)

OUTPUT_FORMATS = ("text", "jsonl")

EXAMPLE_DSN = "host=localhost user=postgres sslmode=require"


@dataclass
class Settings:
    """
    Root configuration object for the collector.

    Durations are seconds as floats; fractional values are allowed.
    """

    # Required
    conn_string: str

    # Optional
    poll_interval: float = 53.0
    max_uptime: float = 60.0 * 60.0
    statement_timeout_ms: int = 5000
    out_dir: str = "."
    output_format: str = "text"
    compression_level: int = 9
    sslmode: str = "require"


# env var -> Settings field
_ENV_FIELDS = {
    "PSD_CONN_STRING": "conn_string",
    "PSD_POLL_INTERVAL_SECS": "poll_interval",
    "PSD_MAX_UPTIME_SECS": "max_uptime",
    "PSD_STATEMENT_TIMEOUT_MS": "statement_timeout_ms",
    "PSD_OUT_DIR": "out_dir",
    "PSD_OUTPUT_FORMAT": "output_format",
    "PSD_COMPRESSION_LEVEL": "compression_level",
    "PSD_SSLMODE": "sslmode",
}


# -----------------------------
# Helpers
# -----------------------------
def parse_seconds(value: Any, name: str = "seconds") -> float:
    """
    Interpret a seconds value (string or number) as a float duration.

    Raises ConfigError for non-numbers and for values outside 1ns..2**32s.
    """
    try:
        secs = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"interpreting {name}: parsing {value!r} as float") from e

    # NaN fails both comparisons, so test for the valid range instead
    if not (MIN_SECONDS <= secs <= MAX_SECONDS):
        raise ConfigError(
            f"interpreting {name}: seconds values must roughly be between 1ns and 100 years, got {value!r}"
        )
    return secs


def _parse_int(value: Any, name: str, lo: int, hi: Optional[int] = None) -> int:
    try:
        n = int(str(value).strip())
    except (TypeError, ValueError) as e:
        raise ConfigError(f"interpreting {name}: parsing {value!r} as integer") from e
    if n < lo or (hi is not None and n > hi):
        bound = f"between {lo} and {hi}" if hi is not None else f">= {lo}"
        raise ConfigError(f"interpreting {name}: must be {bound}, got {n}")
    return n


def load_local_env(env_path: str | Path = DEFAULT_ENV_FILE) -> bool:
    """
    Load KEY=VALUE lines from an env file if it exists.

    Values already present in os.environ win. Returns True if a file was read.
    """
    p = Path(env_path)
    if not p.exists():
        return False
    load_dotenv(p, override=False)
    return True


def _read_yaml(yaml_path: str | Path) -> dict[str, Any]:
    p = Path(yaml_path)
    if not p.exists():
        raise ConfigError(f"Configuration file not found: {p}")
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"parsing {p}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{p}: expected a mapping at the top level")
    known = {f.name for f in fields(Settings)}
    return {k: v for k, v in data.items() if k in known}


def validate(settings: Settings) -> Settings:
    """Coerce and range-check every field; returns a new Settings."""
    if not settings.conn_string or not str(settings.conn_string).strip():
        raise ConfigError(f"PSD_CONN_STRING required, e.g.: {EXAMPLE_DSN}")

    fmt = str(settings.output_format).strip().lower()
    if fmt not in OUTPUT_FORMATS:
        raise ConfigError(
            f"interpreting output_format: expected one of {', '.join(OUTPUT_FORMATS)}, got {settings.output_format!r}"
        )

    return replace(
        settings,
        conn_string=str(settings.conn_string).strip(),
        poll_interval=parse_seconds(settings.poll_interval, "poll_interval"),
        max_uptime=parse_seconds(settings.max_uptime, "max_uptime"),
        statement_timeout_ms=_parse_int(settings.statement_timeout_ms, "statement_timeout_ms", 1),
        compression_level=_parse_int(settings.compression_level, "compression_level", 1, 22),
        output_format=fmt,
        out_dir=str(settings.out_dir),
        sslmode=str(settings.sslmode).strip(),
    )


def load_settings(
    yaml_path: str | Path | None = None,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> Settings:
    """
    Build Settings from (lowest to highest precedence) defaults, an optional
    YAML file, PSD_* environment variables, and explicit overrides (CLI flags).

    Raises ConfigError if the connection string is missing or any value is
    out of range.
    """
    env = os.environ if environ is None else environ

    data: dict[str, Any] = {}
    if yaml_path is not None:
        data.update(_read_yaml(yaml_path))

    for var, field_name in _ENV_FIELDS.items():
        value = env.get(var)
        if value is not None and value != "":
            data[field_name] = value

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    conn_string = data.pop("conn_string", None)
    if not conn_string:
        raise ConfigError(f"PSD_CONN_STRING required, e.g.: {EXAMPLE_DSN}")

    return validate(Settings(conn_string=str(conn_string), **data))


def preview_settings(settings: Settings) -> dict[str, Any]:
    """
    Summary of the effective config for startup logging (password redacted).
    """
    from pgstat_collector.connection import redact_conn_string

    return {
        "conn_string": redact_conn_string(settings.conn_string),
        "poll_interval": settings.poll_interval,
        "max_uptime": settings.max_uptime,
        "statement_timeout_ms": settings.statement_timeout_ms,
        "out_dir": settings.out_dir,
        "output_format": settings.output_format,
        "compression_level": settings.compression_level,
    }
