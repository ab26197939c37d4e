from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from ..db.validator import QueryFailure, QueryResult, SchemaMismatch
from ..excel.reader import find_reference_files, search_codes
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import ReconConfig
from ..models.requirement import ParsedTicket, Requirement
from ..models.spreadsheet import SpreadsheetSearchResult
from ..models.ticket import Ticket
from ..models.validation import RunResult, TicketReport, TicketStatus, ValidationOutcome
from ..parsing.requirements import RequirementParser, all_codes
from .aggregator import build_ticket_report, evaluate_requirement
from .progress import ProgressTracker

"""Validation run orchestration.

Sequential batch: parse every ticket, scan the reference workbooks once for
all codes, then for each ticket and each of its requirements run one
database query and evaluate it against the rows and the spreadsheet matches.

- QueryFailure / SchemaMismatch: recorded on the requirement (failed
  outcome + error log record), the run continues
- ConnectionFailure (the validator raises it for SQLSTATE 08xxx driver
  errors, e.g. a link dropped mid-run) propagates; the CLI treats it as
  fatal. Other driver errors arrive here as QueryFailure
"""

logger = logging.getLogger(__name__)

RUN_TICKET = "<RUN>"


class RowSource(Protocol):
    def fetch_rows(self, requirement: Requirement) -> QueryResult: ...


def _referenced_files(parsed: Sequence[ParsedTicket]) -> list[str]:
    names = dict.fromkeys(name for p in parsed for name in p.excel_files)
    return list(names)


def collect_reference_evidence(
    reference_dir: Path, parsed: Sequence[ParsedTicket], error_log: ErrorLogBuffer
) -> list[SpreadsheetSearchResult]:
    """Scan reference workbooks for every code of the run.

    Files named in tickets are searched first (matched by stem, so
    ``OH_codes.xlsx`` also finds ``OH_codes (2).xlsx``). When none of them
    exist, every workbook in ``reference_dir`` is searched and only files
    with at least one match are kept.
    """
    codes = all_codes(parsed)
    if not codes:
        return []

    results: list[SpreadsheetSearchResult] = []
    for name in _referenced_files(parsed):
        stem = Path(name).stem
        found = find_reference_files(reference_dir, name_pattern=stem)
        if not found:
            logger.warning(f"referenced Excel file not found in {reference_dir}: {name}")
            error_log.record(RUN_TICKET, -1, "MISSING_REFERENCE_FILE", f"{name} not found in {reference_dir}")
            continue
        for path in found:
            result = search_codes(path, codes)
            if result.missing:
                error_log.record(RUN_TICKET, -1, "REFERENCE_READ_ERROR", result.error or str(path))
                continue
            results.append(result)

    if not results:
        for path in find_reference_files(reference_dir):
            result = search_codes(path, codes)
            if result.missing:
                error_log.record(RUN_TICKET, -1, "REFERENCE_READ_ERROR", result.error or str(path))
                continue
            if result.matches:
                results.append(result)

    logger.debug(f"reference search: files={len(results)} matches={sum(len(r.matches) for r in results)}")
    return results


def validate_requirement(
    requirement: Requirement,
    index: int,
    validator: RowSource,
    search_results: Sequence[SpreadsheetSearchResult],
    error_log: ErrorLogBuffer,
) -> ValidationOutcome:
    """Query + evaluate one requirement. ``index`` is 1-based (error log)."""
    try:
        result = validator.fetch_rows(requirement)
    except SchemaMismatch as e:
        logger.warning(f"{requirement.ticket_key} #{index}: {e}")
        error_log.record(requirement.ticket_key, index, "SCHEMA_MISMATCH", str(e))
        return evaluate_requirement(requirement, [], search_results, error=str(e))
    except QueryFailure as e:
        logger.warning(f"{requirement.ticket_key} #{index}: {e}")
        error_log.record(requirement.ticket_key, index, "QUERY_FAILURE", str(e))
        return evaluate_requirement(requirement, [], search_results, error=str(e))
    return evaluate_requirement(requirement, result.rows, search_results, key_column=result.key_column)


def process_tickets(
    config: ReconConfig,
    tickets: Sequence[Ticket],
    validator: RowSource,
    error_log: ErrorLogBuffer,
    parser: RequirementParser | None = None,
) -> RunResult:
    """Validate ``tickets`` and aggregate the run result.

    Tickets without requirements are counted as skipped and not reported.
    """
    start_time = datetime.now(UTC)
    parser = parser or RequirementParser(config.defaults)
    parsed = parser.parse_tickets(tickets)
    actionable = [p for p in parsed if p.requirements]
    skipped = len(parsed) - len(actionable)
    for p in parsed:
        if not p.requirements:
            logger.info(f"{p.ticket.key}: no requirements found, skipped")

    search_results = collect_reference_evidence(Path(config.paths.reference), actionable, error_log)

    reports: list[TicketReport] = []
    with ProgressTracker(len(actionable)) as progress:
        for p in actionable:
            progress.start_ticket(p.ticket.key)
            outcomes = [
                validate_requirement(req, i, validator, search_results, error_log)
                for i, req in enumerate(p.requirements, start=1)
            ]
            report = build_ticket_report(p, outcomes)
            reports.append(report)
            _log_ticket(report)
            progress.set_postfix(
                passed=sum(1 for r in reports if r.status is TicketStatus.PASSED),
                failed=sum(1 for r in reports if r.status is not TicketStatus.PASSED),
            )
            progress.finish_ticket()

    end_time = datetime.now(UTC)
    return RunResult(
        reports=tuple(reports),
        total_tickets=len(parsed),
        skipped_tickets=skipped,
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
    )


def _log_ticket(report: TicketReport) -> None:
    line = (
        f"{report.key}: {report.status.value} "
        f"requirements={report.passed_requirements}/{len(report.outcomes)} "
        f"codes={report.validated_codes}/{report.total_codes}"
    )
    if report.status is TicketStatus.PASSED:
        logger.info(line)
    else:
        logger.warning(line)
    for i, outcome in enumerate(report.outcomes, start=1):
        for msg in outcome.errors:
            logger.debug(f"{report.key} #{i} error: {msg}")
        for msg in outcome.warnings:
            logger.debug(f"{report.key} #{i} warning: {msg}")


def as_rows(result: RunResult) -> dict[str, list[dict[str, Any]]]:
    """Tabular view of a run for the xlsx report (sheet name -> rows)."""
    tickets: list[dict[str, Any]] = []
    requirements: list[dict[str, Any]] = []
    for report in result.reports:
        tickets.append(
            {
                "Ticket": report.key,
                "Summary": report.parsed.ticket.summary,
                "Status": report.status.value,
                "Requirements Passed": report.passed_requirements,
                "Requirements Failed": report.failed_requirements,
                "Codes Validated": report.validated_codes,
                "Codes Expected": report.total_codes,
                "Values Validated": report.validated_values,
                "Values Expected": report.total_values,
            }
        )
        for i, o in enumerate(report.outcomes, start=1):
            req = o.requirement
            requirements.append(
                {
                    "Ticket": report.key,
                    "Requirement": i,
                    "Type": req.kind.value,
                    "Table": req.qualified_table,
                    "Codes": ", ".join(req.codes),
                    "Values": ", ".join(req.values),
                    "Result": "PASS" if o.passed else "FAIL",
                    "Missing Codes": ", ".join(o.missing_codes),
                    "Missing Values": ", ".join(o.missing_values),
                    "SQL Rows": len(o.rows),
                    "Excel Matches": o.evidence_matches,
                    "Errors": "; ".join(o.errors),
                    "Warnings": "; ".join(o.warnings),
                }
            )
    return {"Tickets": tickets, "Requirements": requirements}
