from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""Spreadsheet search result models."""

__all__ = [
    "SpreadsheetMatch",
    "SpreadsheetSearchResult",
]


@dataclass(frozen=True)
class SpreadsheetMatch:
    """One cell whose text contains a searched code."""
    code: str
    row: int  # 1-based sheet row (header row = 1)
    column: str  # spreadsheet letter label (A, B, ..., AA)
    value: Any
    sheet_name: str
    file_path: str


@dataclass(frozen=True)
class SpreadsheetSearchResult:
    file_path: str
    matches: tuple[SpreadsheetMatch, ...] = ()
    total_rows: int = 0
    sheets_processed: int = 0
    missing: bool = False  # file not found / unreadable -> empty search
    error: str | None = None

    def for_codes(self, codes: tuple[str, ...] | list[str]) -> SpreadsheetSearchResult:
        """Copy of this result keeping only matches for ``codes``."""
        wanted = set(codes)
        return SpreadsheetSearchResult(
            file_path=self.file_path,
            matches=tuple(m for m in self.matches if m.code in wanted),
            total_rows=self.total_rows,
            sheets_processed=self.sheets_processed,
            missing=self.missing,
            error=self.error,
        )

