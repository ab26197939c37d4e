from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

"""Config dataclasses for the ticket reconciliation tool.

The loader in ticket_recon/config/loader.py builds these from YAML plus
environment overrides. Everything is frozen: one config per run.
"""

DEFAULT_TABLE = "sTaxTable"
DEFAULT_SCHEMA = "escher"
DEFAULT_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"


@dataclass(frozen=True)
class JiraConfig:
    """Issue tracker connection settings.

    base_url / username / api_token are usually supplied via .env
    (JIRA_BASE_URL / JIRA_USERNAME / JIRA_API_TOKEN).
    """
    project: str
    base_url: str | None = None
    username: str | None = None
    api_token: str | None = None
    max_results: int = 100
    timeout: float = 30.0


@dataclass(frozen=True)
class SqlConfig:
    """SQL Server connection settings (ODBC)."""
    server: str | None = None
    database: str | None = None
    user: str | None = None
    password: str | None = None
    driver: str = DEFAULT_ODBC_DRIVER
    encrypt: bool = False
    trust_server_certificate: bool = True
    connect_timeout: int = 30
    query_timeout: int = 30


@dataclass(frozen=True)
class PathsConfig:
    sprint_data: Path  # fetched/ inProgress/ completed/ を含むルート
    output: Path
    reference: Path  # Excel reference files


@dataclass(frozen=True)
class ParserDefaults:
    """Fallback table/schema when a ticket names neither."""
    table: str = DEFAULT_TABLE
    schema: str = DEFAULT_SCHEMA


@dataclass(frozen=True)
class ReconConfig:
    """Root configuration object."""
    jira: JiraConfig
    sql: SqlConfig
    paths: PathsConfig
    defaults: ParserDefaults = field(default_factory=ParserDefaults)
