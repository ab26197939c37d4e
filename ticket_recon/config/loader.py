from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ticket_recon.models.config_models import (
    DEFAULT_ODBC_DRIVER,
    DEFAULT_SCHEMA,
    DEFAULT_TABLE,
    JiraConfig,
    ParserDefaults,
    PathsConfig,
    ReconConfig,
    SqlConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config/recon.yml
- Validate against the bundled JSON schema (config_schema.json)
- Apply defaults and environment overrides (.env is loaded by the CLI first)
"""

SCHEMA_PATH = Path(__file__).parent / "config_schema.json"
DEFAULT_CONFIG_PATH = Path("config/recon.yml")

# 環境変数 -> (section, key)。環境変数が YAML より優先
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "JIRA_BASE_URL": ("jira", "base_url"),
    "JIRA_USERNAME": ("jira", "username"),
    "JIRA_API_TOKEN": ("jira", "api_token"),
    "SQL_SERVER": ("sql", "server"),
    "SQL_DATABASE": ("sql", "database"),
    "SQL_USER": ("sql", "user"),
    "SQL_PASSWORD": ("sql", "password"),
    "SQL_ENCRYPT": ("sql", "encrypt"),
    "SQL_DRIVER": ("sql", "driver"),
}

_TRUE_STRINGS = {"1", "true", "yes", "on"}


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: schema file missing or unreadable, or the config data
            fails validation (missing required keys, wrong types, unknown keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _apply_env_overrides(data: dict[str, Any], environ: dict[str, str]) -> dict[str, Any]:
    merged = {k: (dict(v) if isinstance(v, dict) else v) for k, v in data.items()}
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if not value:
            continue
        target = merged.setdefault(section, {})
        if key == "encrypt":
            target[key] = value.strip().lower() in _TRUE_STRINGS
        else:
            target[key] = value
    return merged


def load_config(path: Path = DEFAULT_CONFIG_PATH, environ: dict[str, str] | None = None) -> ReconConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)
    data = _apply_env_overrides(data, dict(os.environ) if environ is None else environ)

    jira_raw = data["jira"]
    sql_raw = data.get("sql", {})
    paths_raw = data["paths"]
    defaults_raw = data.get("defaults", {})

    jira = JiraConfig(
        project=jira_raw["project"],
        base_url=jira_raw.get("base_url"),
        username=jira_raw.get("username"),
        api_token=jira_raw.get("api_token"),
        max_results=jira_raw.get("max_results", 100),
        timeout=float(jira_raw.get("timeout", 30)),
    )
    sql = SqlConfig(
        server=sql_raw.get("server"),
        database=sql_raw.get("database"),
        user=sql_raw.get("user"),
        password=sql_raw.get("password"),
        driver=sql_raw.get("driver", DEFAULT_ODBC_DRIVER),
        encrypt=bool(sql_raw.get("encrypt", False)),
        trust_server_certificate=bool(sql_raw.get("trust_server_certificate", True)),
        connect_timeout=sql_raw.get("connect_timeout", 30),
        query_timeout=sql_raw.get("query_timeout", 30),
    )
    paths = PathsConfig(
        sprint_data=Path(paths_raw["sprint_data"]),
        output=Path(paths_raw["output"]),
        reference=Path(paths_raw["reference"]),
    )
    defaults = ParserDefaults(
        table=defaults_raw.get("table", DEFAULT_TABLE),
        schema=defaults_raw.get("schema", DEFAULT_SCHEMA),
    )
    return ReconConfig(jira=jira, sql=sql, paths=paths, defaults=defaults)


def validate_jira_config(jira: JiraConfig) -> list[str]:
    """Return human readable problems with the JIRA settings (empty when usable)."""
    errors: list[str] = []
    if not jira.base_url:
        errors.append("JIRA base URL is required")
    elif not jira.base_url.startswith(("http://", "https://")):
        errors.append("JIRA base URL must start with http:// or https://")
    if not jira.username:
        errors.append("JIRA username is required")
    if not jira.api_token:
        errors.append("JIRA API token is required")
    return errors
