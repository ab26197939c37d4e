from __future__ import annotations

import re
from contextlib import contextmanager
from pathlib import Path

import ticket_recon.cli.__main__ as cli_module
from ticket_recon.cli.__main__ import main as cli_main
from ticket_recon.db.connection import ConnectionFailure
from ticket_recon.jira.mock_data import MOCK_SPRINT_NAME, MOCK_TICKETS
from ticket_recon.models.ticket import Ticket
from ticket_recon.services.workspace import render_snapshot

"""Exit code contract: 0 all tickets PASSED, 2 some FAILED/PARTIAL, 1 fatal."""


def _snapshot(root: Path, tickets) -> None:
    folder = root / "sprintData" / "inProgress"
    folder.mkdir(parents=True, exist_ok=True)
    (folder / "wtci-sprint-tickets-2025-09-25.txt").write_text(
        render_snapshot("WTCI", tickets, MOCK_SPRINT_NAME), encoding="utf-8"
    )


def _use_cursor(monkeypatch, cursor) -> None:
    @contextmanager
    def fake(cfg):
        yield cursor

    monkeypatch.setattr(cli_module, "sql_connection", fake)


def test_exit_code_fatal_startup(temp_workdir: Path, capsys):
    # config/recon.yml 無し → exit 1
    code = cli_main(["validate"])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_all_success(write_config, temp_workdir: Path, monkeypatch, fake_cursor, capsys):
    _snapshot(temp_workdir, MOCK_TICKETS)
    _use_cursor(monkeypatch, fake_cursor)
    code = cli_main(["validate"])
    out = capsys.readouterr().out
    assert code == 0
    assert "SUMMARY tickets=3/3 passed=3 partial=0 failed=0" in out


def test_exit_code_partial_failure(write_config, temp_workdir: Path, monkeypatch, fake_cursor, capsys):
    mixed = Ticket(key="WTCI-1100", summary="mixed", description="Added: OH-VIO3\nAdded: OH-MISS1\n")
    _snapshot(temp_workdir, (*MOCK_TICKETS, mixed))
    _use_cursor(monkeypatch, fake_cursor)
    code = cli_main(["validate"])
    out = capsys.readouterr().out
    assert code == 2
    m = re.search(r"partial=(\d+) failed=(\d+)", out)
    assert m is not None, out
    assert (int(m.group(1)), int(m.group(2))) == (1, 0)


def test_exit_code_connection_failure(write_config, temp_workdir: Path, monkeypatch, capsys):
    _snapshot(temp_workdir, MOCK_TICKETS)

    @contextmanager
    def refused(cfg):
        raise ConnectionFailure("TCP Provider: No connection could be made")
        yield  # pragma: no cover

    monkeypatch.setattr(cli_module, "sql_connection", refused)
    assert cli_main(["validate"]) == 1
