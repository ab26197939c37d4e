from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from .requirement import ParsedTicket, Requirement
from .spreadsheet import SpreadsheetSearchResult

"""Validation outcome and report models.

ValidationOutcome  : one requirement checked against DB rows + spreadsheet evidence
TicketReport       : all outcomes of one ticket plus the ticket-level status
RunResult          : aggregated result of one validation run (SUMMARY line source)
"""

__all__ = [
    "TicketStatus",
    "ValidationOutcome",
    "TicketReport",
    "RunResult",
]

DatabaseRow = dict[str, Any]


class TicketStatus(Enum):
    """Ticket-level status.

    PASSED: every requirement passed
    FAILED: no requirement passed
    PARTIAL: anything in between
    """
    PASSED = "PASSED"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"


@dataclass(frozen=True)
class ValidationOutcome:
    requirement: Requirement
    passed: bool
    missing_codes: tuple[str, ...] = ()
    missing_values: tuple[str, ...] = ()
    rows: tuple[DatabaseRow, ...] = ()
    evidence: tuple[SpreadsheetSearchResult, ...] = ()
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def codes_found(self) -> int:
        return len(self.requirement.codes) - len(self.missing_codes)

    @property
    def values_found(self) -> int:
        return len(self.requirement.values) - len(self.missing_values)

    @property
    def evidence_matches(self) -> int:
        return sum(len(r.matches) for r in self.evidence)


@dataclass(frozen=True)
class TicketReport:
    parsed: ParsedTicket
    outcomes: tuple[ValidationOutcome, ...]
    status: TicketStatus

    @property
    def key(self) -> str:
        return self.parsed.ticket.key

    @property
    def passed_requirements(self) -> int:
        return sum(1 for o in self.outcomes if o.passed)

    @property
    def failed_requirements(self) -> int:
        return len(self.outcomes) - self.passed_requirements

    @property
    def total_codes(self) -> int:
        return sum(len(o.requirement.codes) for o in self.outcomes)

    @property
    def validated_codes(self) -> int:
        return sum(o.codes_found for o in self.outcomes)

    @property
    def total_values(self) -> int:
        return sum(len(o.requirement.values) for o in self.outcomes)

    @property
    def validated_values(self) -> int:
        return sum(o.values_found for o in self.outcomes)


@dataclass(frozen=True)
class RunResult:
    reports: tuple[TicketReport, ...]
    total_tickets: int  # 入力チケット数 (skip 含む)
    skipped_tickets: int  # requirement 0 件のチケット
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float

    def count(self, status: TicketStatus) -> int:
        return sum(1 for r in self.reports if r.status is status)

    @property
    def total_requirements(self) -> int:
        return sum(len(r.outcomes) for r in self.reports)

    @property
    def passed_requirements(self) -> int:
        return sum(r.passed_requirements for r in self.reports)

    @property
    def all_passed(self) -> bool:
        return all(r.status is TicketStatus.PASSED for r in self.reports)
