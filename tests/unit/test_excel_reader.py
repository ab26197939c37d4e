from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

import ticket_recon.excel.reader as reader_module
from ticket_recon.excel.reader import (
    MissingReferenceFile,
    column_letter,
    excel_engine,
    find_reference_files,
    read_reference_file,
    search_codes,
    write_rows,
)


def _write_xlsx(path: Path, sheets: dict[str, list[list[object]]]) -> Path:
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, index=False, header=False)
    return path


@pytest.mark.parametrize(
    "index, label",
    [(0, "A"), (1, "B"), (25, "Z"), (26, "AA"), (27, "AB"), (51, "AZ"), (52, "BA"), (701, "ZZ"), (702, "AAA")],
)
def test_column_letter(index, label):
    assert column_letter(index) == label


def test_column_letter_rejects_negative():
    with pytest.raises(ValueError):
        column_letter(-1)


def test_search_codes_reports_sheet_row_column(tmp_path: Path):
    f = _write_xlsx(
        tmp_path / "OH_violation_codes.xlsx",
        {
            "Codes": [["tCode", "Description"], ["OH-VIO3", "Violation 3"], ["OH-VIO4", "see OH-VIO3 too"]],
            "Notes": [["note"], [12.5], ["nothing here"]],
        },
    )
    result = search_codes(f, ["OH-VIO3", "OH-VIO4"])
    assert result.missing is False
    assert result.sheets_processed == 2
    assert result.total_rows == 6
    found = {(m.code, m.sheet_name, m.row, m.column) for m in result.matches}
    assert found == {
        ("OH-VIO3", "Codes", 2, "A"),
        ("OH-VIO4", "Codes", 3, "A"),
        ("OH-VIO3", "Codes", 3, "B"),
    }
    assert all(m.file_path == str(f) for m in result.matches)


def test_search_codes_missing_file_is_empty_result(tmp_path: Path):
    result = search_codes(tmp_path / "absent.xlsx", ["OH-VIO3"])
    assert result.missing is True
    assert result.matches == ()
    assert "not found" in (result.error or "")


def test_search_codes_unreadable_file_is_empty_result(tmp_path: Path):
    bad = tmp_path / "broken.xlsx"
    bad.write_bytes(b"not a zip")
    result = search_codes(bad, ["OH-VIO3"])
    assert result.missing is True
    assert result.error.startswith("read error")


def test_read_reference_file_rejects_non_excel(tmp_path: Path):
    txt = tmp_path / "codes.txt"
    txt.write_text("OH-VIO3", encoding="utf-8")
    with pytest.raises(MissingReferenceFile, match="Invalid Excel file format"):
        read_reference_file(txt)


def test_find_reference_files_filters_by_name(tmp_path: Path):
    for name in ("OH_codes.xlsx", "oh_codes (2).xlsx", "rates.xlsm", "readme.txt"):
        (tmp_path / name).write_bytes(b"")
    (tmp_path / "nested.xlsx").mkdir()
    assert [p.name for p in find_reference_files(tmp_path)] == ["OH_codes.xlsx", "oh_codes (2).xlsx", "rates.xlsm"]
    assert [p.name for p in find_reference_files(tmp_path, "OH_CODES")] == ["OH_codes.xlsx", "oh_codes (2).xlsx"]
    assert find_reference_files(tmp_path / "missing") == []


def test_write_rows_writes_header_then_rows(tmp_path: Path):
    out = write_rows(
        tmp_path / "out" / "report.xlsx",
        {"Tickets": [{"Ticket": "WTCI-1", "Status": "PASSED"}, {"Ticket": "WTCI-2", "Status": "FAILED"}], "Empty": []},
    )
    df = pd.read_excel(out, sheet_name="Tickets")
    assert list(df.columns) == ["Ticket", "Status"]
    assert df["Status"].tolist() == ["PASSED", "FAILED"]
    assert "Empty" in pd.ExcelFile(out).sheet_names


def test_excel_engine_by_suffix():
    assert excel_engine(Path("codes.xls")) == "xlrd"
    assert excel_engine(Path("CODES.XLS")) == "xlrd"
    assert excel_engine(Path("codes.xlsx")) == "openpyxl"
    assert excel_engine(Path("codes.xlsm")) == "openpyxl"


def test_legacy_xls_is_read_with_xlrd(tmp_path: Path, monkeypatch):
    legacy = tmp_path / "OH_codes.xls"
    legacy.write_bytes(b"\xd0\xcf\x11\xe0")
    opened = []

    class FakeExcelFile:
        sheet_names = ["Codes"]

        def __init__(self, path, engine=None):
            opened.append((Path(path).name, engine))

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def parse(self, name, header=None, dtype=None):
            return pd.DataFrame([["tCode"], ["OH-VIO3"]], dtype=object)

    monkeypatch.setattr(reader_module.pd, "ExcelFile", FakeExcelFile)
    result = search_codes(legacy, ["OH-VIO3"])
    assert opened == [("OH_codes.xls", "xlrd")]
    assert result.missing is False
    assert [(m.code, m.row, m.column) for m in result.matches] == [("OH-VIO3", 2, "A")]
