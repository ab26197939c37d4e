from __future__ import annotations

import json
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

import ticket_recon.cli.__main__ as cli_module
from ticket_recon.cli.__main__ import main as cli_main
from ticket_recon.jira.fetcher import JiraFetchError

"""End-to-end run: fetch (sample tickets) -> promote -> validate -> promote.

JIRA and SQL Server are replaced at the CLI seam; snapshot files, reference
workbooks, reports and the error log are real files in a temp workdir.
"""

SNAPSHOT = "wtci-sprint-tickets-2025-09-25.txt"
SUMMARY_RE = re.compile(
    r"^SUMMARY tickets=(\d+)/(\d+) passed=(\d+) partial=(\d+) failed=(\d+) skipped=(\d+) "
    r"requirements=(\d+)/(\d+) elapsed_sec=[0-9.]+$",
    re.MULTILINE,
)


def _make_excel_file(path: Path, sheets: dict[str, list[list[object]]]) -> Path:
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet_name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
    return path


@pytest.fixture
def offline_run(temp_workdir: Path, write_config: Any, monkeypatch, fake_cursor) -> dict[str, Any]:
    class Unreachable:
        def __init__(self, config):
            raise JiraFetchError("connection refused")

    @contextmanager
    def fake_sql(cfg):
        yield fake_cursor

    monkeypatch.setattr(cli_module, "JiraClient", Unreachable)
    monkeypatch.setattr(cli_module, "sql_connection", fake_sql)
    _make_excel_file(
        temp_workdir / "reference" / "OH_violation_codes.xlsx",
        {
            "Codes": [
                ["tCode", "description"],
                ["OH-VIO3", "Ohio violation 3"],
                ["OH-VIO4", "Ohio violation 4"],
            ]
        },
    )
    return {"root": temp_workdir, "cursor": fake_cursor}


def test_full_workflow_all_passed(offline_run, capsys):
    root: Path = offline_run["root"]

    assert cli_main(["fetch", "--allow-mock"]) == 0
    assert (root / "sprintData" / "fetched" / SNAPSHOT).exists()
    assert cli_main(["promote", SNAPSHOT, "inProgress"]) == 0
    capsys.readouterr()

    assert cli_main(["validate"]) == 0
    out = capsys.readouterr().out
    m = SUMMARY_RE.search(out)
    assert m, out
    assert m.groups()[:8] == ("3", "3", "3", "0", "0", "0", "3", "3")

    reports = sorted((root / "output").glob("validation-report-*.txt"))
    assert len(reports) == 1
    text = reports[0].read_text(encoding="utf-8")
    assert "--- Ticket 1: WTCI-1001 ---" in text
    assert "Excel Matches: 2" in text
    assert "T-Codes Validated: 5/5 (100.0%)" in text

    workbook = reports[0].with_suffix(".xlsx")
    sheets = pd.read_excel(workbook, sheet_name=None)
    assert set(sheets) == {"Tickets", "Requirements"}
    assert list(sheets["Tickets"]["Ticket"]) == ["WTCI-1001", "WTCI-1002", "WTCI-1003"]
    assert set(sheets["Requirements"]["Result"]) == {"PASS"}

    # エラーなし → ログファイルは作られない
    assert not list((root / "logs").glob("errors-*.log"))

    assert cli_main(["promote", SNAPSHOT, "completed"]) == 0
    assert (root / "sprintData" / "completed" / SNAPSHOT).exists()


def test_values_are_bound_as_parameters(offline_run):
    root: Path = offline_run["root"]
    assert cli_main(["fetch", "--allow-mock"]) == 0
    assert cli_main(["promote", SNAPSHOT, "inProgress"]) == 0
    assert cli_main(["validate"]) == 0

    union_queries = [(sql, params) for sql, params in offline_run["cursor"].executed if "UNION ALL" in sql]
    assert union_queries
    for sql, params in union_queries:
        assert "OH-" not in sql
        assert "Regional" not in sql
    assert any("%Regional Income Tax Agency%" in params for _, params in union_queries)
    assert root.joinpath("sprintData", "inProgress", SNAPSHOT).exists()


def test_missing_reference_and_query_failure_are_logged(offline_run, fake_cursor_cls, tax_tables, monkeypatch, capsys):
    root: Path = offline_run["root"]
    (root / "reference" / "OH_violation_codes.xlsx").unlink()
    failing = fake_cursor_cls(tax_tables, fail_query="Invalid column name 'rate'")

    @contextmanager
    def fake_sql(cfg):
        yield failing

    monkeypatch.setattr(cli_module, "sql_connection", fake_sql)
    assert cli_main(["fetch", "--allow-mock"]) == 0
    assert cli_main(["promote", SNAPSHOT, "inProgress"]) == 0
    capsys.readouterr()

    assert cli_main(["validate"]) == 2
    out = capsys.readouterr().out
    m = SUMMARY_RE.search(out)
    assert m, out
    assert (m.group(3), m.group(5)) == ("0", "3")

    logs = list((root / "logs").glob("errors-*.log"))
    assert len(logs) == 1
    records = [json.loads(line) for line in logs[0].read_text(encoding="utf-8").splitlines()]
    types = [r["error_type"] for r in records]
    assert types.count("QUERY_FAILURE") == 3
    assert "MISSING_REFERENCE_FILE" in types
    assert all("Invalid column name 'rate'" in r["message"] for r in records if r["error_type"] == "QUERY_FAILURE")
