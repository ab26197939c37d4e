from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ticket_recon.models.requirement import ParsedTicket, Requirement
from ticket_recon.models.spreadsheet import SpreadsheetSearchResult
from ticket_recon.models.validation import TicketReport, TicketStatus, ValidationOutcome

"""Requirement / ticket verdicts.

Rules:
- a code is found when some returned row carries it in its key column
  (``tCode`` / ``taxCode``, or the key column the validator probed)
- a value is found when some row's stringified column value contains it
- a requirement passes iff no code is missing and the query did not fail;
  missing values and unmatched reference files are warnings only
- ticket: all pass -> PASSED, none pass -> FAILED, else PARTIAL
"""

__all__ = [
    "KEY_COLUMNS",
    "evaluate_requirement",
    "ticket_status",
    "build_ticket_report",
    "relevant_evidence",
]

KEY_COLUMNS = ("tCode", "taxCode", "tcode")


def _found_codes(rows: Sequence[Mapping[str, Any]], key_column: str | None) -> set[str]:
    keys = (key_column, *KEY_COLUMNS) if key_column else KEY_COLUMNS
    found: set[str] = set()
    for row in rows:
        for k in keys:
            v = row.get(k)
            if v is not None:
                # SQL Server の既定照合順序は大文字小文字を区別しない
                found.add(str(v).strip().casefold())
    return found


def _found_values(rows: Sequence[Mapping[str, Any]], values: Sequence[str]) -> set[str]:
    found: set[str] = set()
    if not values:
        return found
    for row in rows:
        for cell in row.values():
            if cell is None:
                continue
            text = str(cell).casefold()
            for expected in values:
                if expected.casefold() in text:
                    found.add(expected)
    return found


def relevant_evidence(
    requirement: Requirement, search_results: Iterable[SpreadsheetSearchResult]
) -> tuple[SpreadsheetSearchResult, ...]:
    """Search results narrowed to the requirement's codes; empty ones dropped."""
    narrowed = (r.for_codes(requirement.codes) for r in search_results)
    return tuple(r for r in narrowed if r.matches)


def evaluate_requirement(
    requirement: Requirement,
    rows: Sequence[Mapping[str, Any]],
    search_results: Iterable[SpreadsheetSearchResult] = (),
    error: str | None = None,
    key_column: str | None = None,
) -> ValidationOutcome:
    """Combine database rows and spreadsheet evidence into one outcome.

    ``error`` is a query/schema failure message; the requirement is then
    unvalidated and fails regardless of ``rows``.
    """
    errors: list[str] = []
    warnings: list[str] = []
    if error:
        errors.append(f"SQL validation failed: {error}")

    codes_found = _found_codes(rows, key_column)
    missing_codes = tuple(c for c in requirement.codes if c.casefold() not in codes_found)
    for code in missing_codes:
        errors.append(f"T-Code {code} not found in SQL results")

    values_found = _found_values(rows, requirement.values)
    missing_values = tuple(v for v in requirement.values if v not in values_found)
    for value in missing_values:
        warnings.append(f'Value "{value}" not found in SQL results')

    evidence = relevant_evidence(requirement, search_results)
    if requirement.source_file and not evidence:
        warnings.append(f"Excel file {requirement.source_file} referenced but no matching data found")

    return ValidationOutcome(
        requirement=requirement,
        passed=not errors,
        missing_codes=missing_codes,
        missing_values=missing_values,
        rows=tuple(dict(r) for r in rows),
        evidence=evidence,
        errors=tuple(errors),
        warnings=tuple(warnings),
    )


def ticket_status(outcomes: Sequence[ValidationOutcome]) -> TicketStatus:
    # 要件ゼロ件は PASSED 扱い (呼び出し側で skip 済みの想定)
    passed = sum(1 for o in outcomes if o.passed)
    if passed == len(outcomes):
        return TicketStatus.PASSED
    if passed == 0:
        return TicketStatus.FAILED
    return TicketStatus.PARTIAL


def build_ticket_report(parsed: ParsedTicket, outcomes: Sequence[ValidationOutcome]) -> TicketReport:
    return TicketReport(parsed=parsed, outcomes=tuple(outcomes), status=ticket_status(outcomes))
