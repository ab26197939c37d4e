# Shared pytest fixtures
from __future__ import annotations

import re
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

from ticket_recon.logging.init import reset_logging

ENV_KEYS = (
    "JIRA_BASE_URL",
    "JIRA_USERNAME",
    "JIRA_API_TOKEN",
    "SQL_SERVER",
    "SQL_DATABASE",
    "SQL_USER",
    "SQL_PASSWORD",
    "SQL_ENCRYPT",
    "SQL_DRIVER",
)


@pytest.fixture(autouse=True)
def _clean_state(monkeypatch):
    # 環境変数の上書きとロガー状態をテスト間で持ち越さない
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(tmp_path: Path, monkeypatch) -> Path:
    for name in ("config", "sprintData", "reference", "output", "logs"):
        (tmp_path / name).mkdir()
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture()
def sample_config_yaml() -> str:
    return """jira:
  project: WTCI
  base_url: https://example.atlassian.net
  username: bot@example.com
  api_token: token-123
sql:
  server: sql.example.local
  database: TaxDB
  user: recon
  password: secret
paths:
  sprint_data: ./sprintData
  output: ./output
  reference: ./reference
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "recon.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


class FakeCursor:
    """DB-API cursor stand-in for the validator.

    Answers the INFORMATION_SCHEMA probes from ``tables`` and evaluates the
    validation query (codes/patterns CTEs + one UNION ALL branch per column)
    against the in-memory rows.

    tables: {(schema, table): {"key": col, "columns": [(name, data_type)], "rows": [dict]}}
    """

    def __init__(self, tables: dict[tuple[str, str], dict[str, Any]], fail_query: str | None = None) -> None:
        self.tables = tables
        self.fail_query = fail_query
        self.executed: list[tuple[str, list[Any]]] = []
        self.description: list[tuple[Any, ...]] | None = None
        self._rows: list[tuple[Any, ...]] = []

    def _set(self, columns: list[str], rows: list[list[Any]]) -> None:
        self.description = [(c, None, None, None, None, None, None) for c in columns]
        self._rows = [tuple(r) for r in rows]

    def _table(self, schema: str, table: str) -> dict[str, Any]:
        return self.tables.get((schema, table), {"columns": [], "rows": []})

    def execute(self, sql: str, params: Any = ()) -> None:
        params = list(params)
        self.executed.append((sql, params))
        if "INFORMATION_SCHEMA.TABLES" in sql:
            schema, table = params
            hits = [list(k) for k in self.tables if k[0].lower() == schema.lower() and k[1].lower() == table.lower()]
            self._set(["TABLE_SCHEMA", "TABLE_NAME"], hits)
        elif "INFORMATION_SCHEMA.COLUMNS" in sql and "ORDER BY" not in sql:
            schema, table, *candidates = params
            wanted = {c.lower() for c in candidates}
            cols = [[n] for n, _ in self._table(schema, table)["columns"] if n.lower() in wanted]
            self._set(["COLUMN_NAME"], cols)
        elif "INFORMATION_SCHEMA.COLUMNS" in sql:
            schema, table = params
            cols = [[n] for n, t in self._table(schema, table)["columns"] if t not in ("text", "ntext", "image")]
            self._set(["COLUMN_NAME"], cols)
        else:
            if self.fail_query:
                raise RuntimeError(self.fail_query)
            self._run_union(sql, params)

    def _run_union(self, sql: str, params: list[Any]) -> None:
        m = re.search(r"FROM \[(.+?)\]\.\[(.+?)\] AS t WHERE t\.\[(.+?)\]", sql)
        assert m, sql
        schema, table, key = m.groups()
        data = self._table(schema, table)
        row_columns = [n for n, _ in data["columns"]]
        n_codes = re.search(r"codes\(code\) AS \(SELECT v\.code FROM \(VALUES ([(?), ]+)\)", sql).group(1).count("?")
        # SQL Server の既定照合順序に合わせて大文字小文字を区別しない
        codes = {str(c).casefold() for c in params[:n_codes]}
        needles = [re.sub(r"\\(.)", r"\1", p[1:-1]) for p in params[n_codes:]]
        out: list[list[Any]] = []
        for branch in sql.split("\nUNION ALL\n"):
            column = re.search(r"N'((?:[^']|'')*)' AS column_name", branch).group(1).replace("''", "'")
            filtered = "EXISTS (SELECT 1 FROM patterns" in branch
            for row in data["rows"]:
                if str(row.get(key)).casefold() not in codes:
                    continue
                cell = row.get(column)
                text = "" if cell is None else str(cell)
                if filtered and not any(n.casefold() in text.casefold() for n in needles):
                    continue
                out.append([table, column, text, *(row.get(c) for c in row_columns)])
        self._set(["table_name", "column_name", "found_value", *row_columns], out)

    def fetchall(self) -> list[tuple[Any, ...]]:
        return list(self._rows)

    def close(self) -> None:
        pass


@pytest.fixture()
def tax_tables() -> dict[tuple[str, str], dict[str, Any]]:
    return {
        ("escher", "sTaxTable"): {
            "key": "tCode",
            "columns": [
                ("tCode", "varchar"),
                ("description", "varchar"),
                ("rate", "decimal"),
                ("TaxCollector", "varchar"),
                ("notes", "text"),
            ],
            "rows": [
                {"tCode": "OH-VIO3", "description": "Ohio violation 3", "rate": Decimal("0.0000"),
                 "TaxCollector": "City of Columbus", "notes": "n/a"},
                {"tCode": "OH-VIO4", "description": "Ohio violation 4", "rate": Decimal("0.0000"),
                 "TaxCollector": "City of Columbus", "notes": "n/a"},
                {"tCode": "OH-CAN2", "description": "Canton 2", "rate": Decimal("0.0250"),
                 "TaxCollector": "Regional Income Tax Agency", "notes": None},
                {"tCode": "OH-CAN5", "description": "Canton 5", "rate": Decimal("0.0250"),
                 "TaxCollector": "Regional Income Tax Agency", "notes": None},
                {"tCode": "OH-CLE1", "description": "Cleveland 1", "rate": Decimal("0.0250"),
                 "TaxCollector": "Central Collection Agency", "notes": None},
            ],
        },
        ("escher", "sTaxCodeRules"): {
            "key": "taxCode",
            "columns": [("taxCode", "varchar"), ("rule", "varchar")],
            "rows": [{"taxCode": "OH-VIO3", "rule": "flat"}],
        },
        ("escher", "sNoKeyTable"): {
            "columns": [("code", "varchar")],
            "rows": [],
        },
    }


@pytest.fixture()
def fake_cursor(tax_tables) -> FakeCursor:
    return FakeCursor(tax_tables)


@pytest.fixture()
def fake_cursor_cls() -> type[FakeCursor]:
    return FakeCursor
