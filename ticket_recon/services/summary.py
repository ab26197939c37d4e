from __future__ import annotations

from collections.abc import Sequence

from ..models.requirement import ParsedTicket
from ..models.spreadsheet import SpreadsheetSearchResult
from ..models.validation import RunResult, TicketStatus

"""Text renderers: SUMMARY line, validation report, parse summary and
Excel search report.

SUMMARY line format (parsed by wrappers, keep stable)::

    SUMMARY tickets=<validated>/<total> passed=<n> partial=<n> failed=<n> skipped=<n> requirements=<passed>/<total> elapsed_sec=<x>
"""

__all__ = [
    "format_elapsed",
    "render_summary_line",
    "render_validation_report",
    "render_parse_summary",
    "render_search_report",
]


def format_elapsed(seconds: float) -> str:
    """Elapsed seconds without scientific notation; integers without '.0'."""
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.3f}".rstrip("0").rstrip(".")


def _pct(part: int, whole: int) -> str:
    if whole == 0:
        return "0.0%"
    return f"{part / whole * 100:.1f}%"


def render_summary_line(result: RunResult) -> str:
    """Render the SUMMARY line for a validation run.

    ``tickets`` is validated/total: a run over 3 tickets where one had no
    requirements renders ``tickets=2/3 ... skipped=1``.
    """
    validated = len(result.reports)
    return (
        f"SUMMARY tickets={validated}/{result.total_tickets} "
        f"passed={result.count(TicketStatus.PASSED)} "
        f"partial={result.count(TicketStatus.PARTIAL)} "
        f"failed={result.count(TicketStatus.FAILED)} "
        f"skipped={result.skipped_tickets} "
        f"requirements={result.passed_requirements}/{result.total_requirements} "
        f"elapsed_sec={format_elapsed(result.elapsed_seconds)}"
    )


def render_validation_report(result: RunResult) -> str:
    lines = ["=== TICKET VALIDATION REPORT ===", ""]

    for index, report in enumerate(result.reports, start=1):
        lines.append(f"--- Ticket {index}: {report.key} ---")
        lines.append(f"Summary: {report.parsed.ticket.summary}")
        lines.append(f"Overall Status: {report.status.value}")
        lines.append(f"Requirements: {len(report.outcomes)}")
        lines.append(f"Passed: {report.passed_requirements}")
        lines.append(f"Failed: {report.failed_requirements}")
        lines.append(f"T-Codes: {report.validated_codes}/{report.total_codes}")

        for req_index, outcome in enumerate(report.outcomes, start=1):
            req = outcome.requirement
            lines.append("")
            lines.append(f"  Requirement {req_index}: {req.kind.value} {req.qualified_table}")
            lines.append(f"    T-Codes: {outcome.codes_found}/{len(req.codes)}")
            lines.append(f"    Values: {outcome.values_found}/{len(req.values)}")
            lines.append(f"    SQL Rows: {len(outcome.rows)}")
            lines.append(f"    Excel Matches: {outcome.evidence_matches}")
            lines.append(f"    Status: {'PASSED' if outcome.passed else 'FAILED'}")
            if outcome.errors:
                lines.append("    Errors:")
                lines.extend(f"      - {e}" for e in outcome.errors)
            if outcome.warnings:
                lines.append("    Warnings:")
                lines.extend(f"      - {w}" for w in outcome.warnings)
        lines.append("")

    total = len(result.reports)
    passed = result.count(TicketStatus.PASSED)
    failed = result.count(TicketStatus.FAILED)
    partial = result.count(TicketStatus.PARTIAL)
    total_reqs = result.total_requirements
    passed_reqs = result.passed_requirements
    total_codes = sum(r.total_codes for r in result.reports)
    validated_codes = sum(r.validated_codes for r in result.reports)

    lines.append("=== OVERALL SUMMARY ===")
    lines.append(f"Total Tickets: {total}")
    lines.append(f"Skipped Tickets (no requirements): {result.skipped_tickets}")
    lines.append(f"Passed: {passed} ({_pct(passed, total)})")
    lines.append(f"Failed: {failed} ({_pct(failed, total)})")
    lines.append(f"Partial: {partial} ({_pct(partial, total)})")
    lines.append(f"Total Requirements: {total_reqs}")
    lines.append(f"Passed Requirements: {passed_reqs} ({_pct(passed_reqs, total_reqs)})")
    lines.append(f"Failed Requirements: {total_reqs - passed_reqs} ({_pct(total_reqs - passed_reqs, total_reqs)})")
    lines.append(f"T-Codes Validated: {validated_codes}/{total_codes} ({_pct(validated_codes, total_codes)})")
    return "\n".join(lines) + "\n"


def render_parse_summary(parsed: Sequence[ParsedTicket]) -> str:
    lines = ["=== TICKET PARSING SUMMARY ===", "", f"Total Tickets Parsed: {len(parsed)}"]
    for index, p in enumerate(parsed, start=1):
        lines.append("")
        lines.append(f"--- Ticket {index}: {p.ticket.key} ---")
        lines.append(f"Summary: {p.ticket.summary}")
        lines.append(f"Requirements: {len(p.requirements)}")
        lines.append(f"T-Codes: {p.total_codes}")
        lines.append(f"Excel Files: {len(p.excel_files)}")
        if p.requirements:
            lines.append("Requirements:")
            for req_index, req in enumerate(p.requirements, start=1):
                lines.append(f"  {req_index}. {req.kind.value} {req.qualified_table}: {', '.join(req.codes)}")
                if req.values:
                    lines.append(f"     Values: {', '.join(req.values)}")

    lines.append("")
    lines.append("=== OVERALL SUMMARY ===")
    lines.append(f"Total Requirements: {sum(len(p.requirements) for p in parsed)}")
    lines.append(f"Total T-Codes: {sum(p.total_codes for p in parsed)}")
    lines.append(f"Total Excel Files: {sum(len(p.excel_files) for p in parsed)}")
    return "\n".join(lines) + "\n"


def render_search_report(results: Sequence[SpreadsheetSearchResult]) -> str:
    lines = ["=== EXCEL SEARCH REPORT ===", ""]
    for index, result in enumerate(results, start=1):
        lines.append(f"--- File {index}: {result.file_path} ---")
        if result.missing:
            lines.append(f"Not searched: {result.error or 'file missing'}")
            lines.append("")
            continue
        lines.append(f"Sheets Processed: {result.sheets_processed}")
        lines.append(f"Total Rows: {result.total_rows}")
        lines.append(f"Matches Found: {len(result.matches)}")
        if result.matches:
            lines.append("Matches:")
            for match_index, m in enumerate(result.matches, start=1):
                lines.append(
                    f"  {match_index}. T-Code: {m.code}, Sheet: {m.sheet_name}, Row: {m.row}, Column: {m.column}"
                )
                lines.append(f"     Value: {m.value}")
        lines.append("")

    lines.append("=== OVERALL SUMMARY ===")
    lines.append(f"Files Searched: {len(results)}")
    lines.append(f"Total Sheets: {sum(r.sheets_processed for r in results)}")
    lines.append(f"Total Rows: {sum(r.total_rows for r in results)}")
    lines.append(f"Total Matches: {sum(len(r.matches) for r in results)}")
    return "\n".join(lines) + "\n"
