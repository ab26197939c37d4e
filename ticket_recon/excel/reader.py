from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import pandas as pd

from ticket_recon.models.spreadsheet import SpreadsheetMatch, SpreadsheetSearchResult

"""Excel reference file scanning.

Reference files are plain tabular workbooks: first row = headers, following
rows = data. Searching is a pure scan over every text cell of every sheet;
the header row is scanned too and row numbers are 1-based sheet rows, the
way a user would locate the cell in Excel.

A missing or unreadable file is not an error for the pipeline: the search
result is empty and flagged ``missing`` so the caller can warn and move on.
"""

__all__ = [
    "EXCEL_SUFFIXES",
    "MissingReferenceFile",
    "column_letter",
    "excel_engine",
    "find_reference_files",
    "read_reference_file",
    "search_codes",
    "write_rows",
]

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xls", ".xlsm"}
# 旧形式 .xls は xlrd、それ以外は openpyxl
LEGACY_ENGINE = "xlrd"
DEFAULT_ENGINE = "openpyxl"


class MissingReferenceFile(Exception):
    """Raised when a reference workbook does not exist or is not a workbook."""


def column_letter(index: int) -> str:
    """0-based column index -> spreadsheet label (0 -> A, 25 -> Z, 26 -> AA)."""
    if index < 0:
        raise ValueError(f"column index must be >= 0: {index}")
    label = ""
    while index >= 0:
        label = chr(65 + index % 26) + label
        index = index // 26 - 1
    return label


def is_excel_file(path: Path) -> bool:
    return path.suffix.lower() in EXCEL_SUFFIXES


def excel_engine(path: Path) -> str:
    return LEGACY_ENGINE if path.suffix.lower() == ".xls" else DEFAULT_ENGINE


def find_reference_files(directory: Path, name_pattern: str | None = None) -> list[Path]:
    """Workbooks directly inside ``directory`` (non-recursive, sorted).

    name_pattern: case-insensitive substring filter on the file name.
    """
    if not directory.is_dir():
        return []
    files = []
    for p in sorted(directory.iterdir()):
        if not (p.is_file() and is_excel_file(p)):
            continue
        if name_pattern and name_pattern.lower() not in p.name.lower():
            continue
        files.append(p)
    return files


def read_reference_file(path: Path) -> dict[str, pd.DataFrame]:
    """Read every sheet raw (no header inference) keyed by sheet name."""
    if not path.is_file():
        raise MissingReferenceFile(f"Excel file not found: {path}")
    if not is_excel_file(path):
        raise MissingReferenceFile(f"Invalid Excel file format: {path}")
    dfs: dict[str, pd.DataFrame] = {}
    with pd.ExcelFile(path, engine=excel_engine(path)) as xls:
        for name in xls.sheet_names:
            # ヘッダなしで生読み (ヘッダ行も検索対象)
            dfs[str(name)] = xls.parse(name, header=None, dtype=object)
    return dfs


def search_codes(path: Path, codes: Sequence[str]) -> SpreadsheetSearchResult:
    """Every text cell in ``path`` containing one of ``codes`` as a substring."""
    try:
        sheets = read_reference_file(path)
    except MissingReferenceFile as e:
        logger.warning(str(e))
        return SpreadsheetSearchResult(file_path=str(path), missing=True, error=str(e))
    except Exception as e:  # corrupt or mislabeled workbook
        logger.warning("failed to read %s: %s", path, e)
        return SpreadsheetSearchResult(file_path=str(path), missing=True, error=f"read error: {e}")

    matches: list[SpreadsheetMatch] = []
    total_rows = 0
    sheets_processed = 0
    for sheet_name, df in sheets.items():
        if df.empty:
            continue
        sheets_processed += 1
        total_rows += df.shape[0]
        for row_pos, row in enumerate(df.itertuples(index=False, name=None)):
            for col_pos, value in enumerate(row):
                if not isinstance(value, str) or not value:
                    continue
                for code in codes:
                    if code in value:
                        matches.append(
                            SpreadsheetMatch(
                                code=code,
                                row=row_pos + 1,
                                column=column_letter(col_pos),
                                value=value,
                                sheet_name=sheet_name,
                                file_path=str(path),
                            )
                        )
    logger.debug("searched %s sheets=%d rows=%d matches=%d", path, sheets_processed, total_rows, len(matches))
    return SpreadsheetSearchResult(
        file_path=str(path),
        matches=tuple(matches),
        total_rows=total_rows,
        sheets_processed=sheets_processed,
    )


def write_rows(path: Path, sheets: Mapping[str, Sequence[Mapping[str, Any]]]) -> Path:
    """Write output workbook: one sheet per key, header row first.

    Column order follows the first appearance of each key across rows.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet_name, rows in sheets.items():
            columns = list(dict.fromkeys(k for r in rows for k in r.keys()))
            df = pd.DataFrame(list(rows), columns=columns)
            df.to_excel(writer, sheet_name=sheet_name[:31], index=False)
    return path
