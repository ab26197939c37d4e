from __future__ import annotations

import argparse
import re
import sys
from datetime import UTC, datetime
from pathlib import Path

from dotenv import load_dotenv

from ticket_recon.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config, validate_jira_config
from ticket_recon.db.connection import ConnectionFailure, sql_connection
from ticket_recon.db.validator import DatabaseValidator, QueryFailure, SchemaMismatch
from ticket_recon.excel.reader import write_rows
from ticket_recon.jira.fetcher import JiraClient, JiraFetchError, SprintFetch
from ticket_recon.jira.mock_data import mock_sprint_fetch
from ticket_recon.logging.error_log import ErrorLogBuffer
from ticket_recon.logging.init import log_error_block, log_summary, set_debug, setup_logging
from ticket_recon.models.config_models import ReconConfig
from ticket_recon.models.requirement import OperationKind, Requirement
from ticket_recon.models.ticket import Ticket
from ticket_recon.parsing.requirements import RequirementParser
from ticket_recon.services.aggregator import evaluate_requirement
from ticket_recon.services.orchestrator import RUN_TICKET, as_rows, collect_reference_evidence, process_tickets
from ticket_recon.services.summary import (
    render_parse_summary,
    render_search_report,
    render_summary_line,
    render_validation_report,
)
from ticket_recon.services.workspace import (
    COMPLETED,
    IN_PROGRESS,
    SprintWorkspace,
    WorkspaceError,
    parse_snapshot,
    render_snapshot,
    snapshot_filename,
)

"""CLI entrypoint.

Commands:
- fetch     open-sprint tickets -> snapshot file in fetched/
- promote   move a snapshot fetched -> inProgress -> completed
- parse     print what the requirement parser extracts from a snapshot
- validate  parse + SQL Server + reference workbooks -> reports, SUMMARY line
- query     ad-hoc check of codes (and values) in one table

Exit codes: 0 all tickets PASSED, 2 some FAILED/PARTIAL, 1 fatal.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

SQL_HINT = "check SQL_SERVER / SQL_DATABASE / SQL_USER / SQL_PASSWORD in .env and that the ODBC driver is installed"
JIRA_HINT = "check JIRA_BASE_URL / JIRA_USERNAME / JIRA_API_TOKEN in .env (or rerun with --allow-mock)"

QUERY_USAGE = """Usage:
  For NEW data:     ticket-recon query new <table_name> <tcode1,tcode2,...> [schema]
  For UPDATED data: ticket-recon query update <table_name> <tcodes> <values> [schema]

Codes and values are separated by ',' or '/'.

Examples:
  ticket-recon query new STaxCodeRules OH-VIO3,OH-VIO4
  ticket-recon query update sTaxTable OH-VIO3/OH-VIO4 0.023 escher"""

_LIST_SPLIT_RE = re.compile(r"[,/]")


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True: .env の値で既存環境変数を上書き (接続情報は .env を最優先)
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="ticket-recon",
        description="Reconcile tax-code tickets against SQL Server and Excel reference files",
    )
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Config YAML path")
    sub = p.add_subparsers(dest="command", required=True)

    fetch = sub.add_parser("fetch", help="Fetch open-sprint tickets into fetched/")
    fetch.add_argument("--allow-mock", action="store_true", help="Use bundled sample tickets when JIRA is unreachable")

    promote = sub.add_parser("promote", help="Move a snapshot to the next workflow folder")
    promote.add_argument("filename")
    promote.add_argument("to", choices=[IN_PROGRESS, COMPLETED])

    for name, help_text in (
        ("parse", "Show requirements extracted from a snapshot"),
        ("validate", "Validate a snapshot against SQL Server and reference files"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--snapshot", type=Path, default=None, help="Snapshot file (default: newest in inProgress/)")
        if name == "parse":
            cmd.add_argument("--search", action="store_true", help="Also search reference workbooks for the codes")

    query = sub.add_parser("query", help="Ad-hoc code/value check in one table", add_help=True)
    query.add_argument("mode", nargs="?")
    query.add_argument("table", nargs="?")
    query.add_argument("codes", nargs="?")
    query.add_argument("values", nargs="?")
    query.add_argument("schema", nargs="?")
    return p.parse_args(argv)


def _split_list(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(dict.fromkeys(s.strip() for s in _LIST_SPLIT_RE.split(raw) if s.strip()))


def _workspace(cfg: ReconConfig) -> SprintWorkspace:
    return SprintWorkspace(cfg.paths.sprint_data, cfg.paths.output)


def _load_snapshot(cfg: ReconConfig, snapshot: Path | None, logger) -> list[Ticket] | None:
    path = snapshot or _workspace(cfg).latest_snapshot(IN_PROGRESS)
    if path is None:
        logger.error(f"no snapshot found in {Path(cfg.paths.sprint_data) / IN_PROGRESS}; run fetch and promote first")
        return None
    if not path.is_file():
        logger.error(f"snapshot not found: {path}")
        return None
    tickets = parse_snapshot(path.read_text(encoding="utf-8"))
    logger.info(f"snapshot: {path} tickets={len(tickets)}")
    return tickets


def _cmd_fetch(cfg: ReconConfig, args: argparse.Namespace, logger) -> int:
    problems = validate_jira_config(cfg.jira)
    fetched: SprintFetch | None = None
    if problems:
        if not args.allow_mock:
            log_error_block("JIRA configuration incomplete", "\n".join(problems), hint=JIRA_HINT)
            return EXIT_FATAL
        logger.warning("JIRA configuration incomplete -> using sample tickets")
    else:
        try:
            fetched = JiraClient(cfg.jira).fetch_sprint_tickets(cfg.jira.project)
        except JiraFetchError as e:
            if not args.allow_mock:
                log_error_block("JIRA request failed", str(e), hint=JIRA_HINT)
                return EXIT_FATAL
            logger.warning(f"JIRA request failed -> using sample tickets: {e}")
    if fetched is None:
        fetched = mock_sprint_fetch()

    ws = _workspace(cfg)
    filename = snapshot_filename(cfg.jira.project, fetched.sprint_name, fetched.end_date)
    for copy in ws.existing_in_workflow(filename):
        logger.warning(
            f"{filename} already exists in {copy.folder} "
            f"(size={copy.size} modified={copy.modified.isoformat()})"
        )
    content = render_snapshot(cfg.jira.project, fetched.tickets, fetched.sprint_name)
    ws.save_fetched(filename, content)
    logger.info(f"tickets={len(fetched.tickets)} sprint={fetched.sprint_name or '-'}")
    return EXIT_SUCCESS_ALL


def _cmd_promote(cfg: ReconConfig, args: argparse.Namespace, logger) -> int:
    try:
        _workspace(cfg).promote(args.filename, args.to)
    except WorkspaceError as e:
        logger.error(str(e))
        return EXIT_FATAL
    return EXIT_SUCCESS_ALL


def _cmd_parse(cfg: ReconConfig, args: argparse.Namespace, logger) -> int:
    tickets = _load_snapshot(cfg, args.snapshot, logger)
    if tickets is None:
        return EXIT_FATAL
    parsed = RequirementParser(cfg.defaults).parse_tickets(tickets)
    print(render_parse_summary(parsed), end="")
    if args.search:
        error_log = ErrorLogBuffer()
        results = collect_reference_evidence(Path(cfg.paths.reference), parsed, error_log)
        print("")
        print(render_search_report(results), end="")
        error_log.flush()
    return EXIT_SUCCESS_ALL


def _write_reports(cfg: ReconConfig, result, logger) -> None:
    out = _workspace(cfg).output_dir()
    stamp = datetime.now(UTC).date().isoformat()
    text_path = out / f"validation-report-{stamp}.txt"
    text_path.write_text(render_validation_report(result), encoding="utf-8")
    xlsx_path = write_rows(out / f"validation-report-{stamp}.xlsx", as_rows(result))
    logger.info(f"report: {text_path}")
    logger.info(f"report: {xlsx_path}")


def _cmd_validate(cfg: ReconConfig, args: argparse.Namespace, logger) -> int:
    tickets = _load_snapshot(cfg, args.snapshot, logger)
    if tickets is None:
        return EXIT_FATAL

    error_log = ErrorLogBuffer()
    try:
        with sql_connection(cfg.sql) as cur:
            result = process_tickets(cfg, tickets, DatabaseValidator(cur), error_log)
    except ConnectionFailure as e:
        log_error_block("SQL Server connection failed", str(e), hint=SQL_HINT)
        error_log.record(RUN_TICKET, -1, "CONNECTION_FAILURE", str(e))
        error_log.flush()
        return EXIT_FATAL

    _write_reports(cfg, result, logger)
    log_path = error_log.flush()
    if log_path is not None:
        logger.info(f"error log: {log_path}")

    # log_summary が "SUMMARY " を付けるので除去して渡す
    log_summary(render_summary_line(result)[len("SUMMARY "):])
    return EXIT_SUCCESS_ALL if result.all_passed else EXIT_PARTIAL_FAILURE


def _cmd_query(cfg: ReconConfig, args: argparse.Namespace, logger) -> int:
    codes = _split_list(args.codes)
    if not (args.mode and args.table and codes):
        print(QUERY_USAGE)
        return EXIT_SUCCESS_ALL
    mode = args.mode.lower()
    if mode not in ("new", "update"):
        logger.error(f"invalid query type '{args.mode}'. Use 'new' or 'update'")
        return EXIT_FATAL

    if mode == "new":
        # new: 4 番目の位置引数はスキーマ
        values: tuple[str, ...] = ()
        schema = args.values or args.schema or cfg.defaults.schema
    else:
        values = _split_list(args.values)
        schema = args.schema or cfg.defaults.schema
    requirement = Requirement(
        kind=OperationKind.ADD if mode == "new" else OperationKind.UPDATE,
        schema=schema,
        table=args.table,
        codes=codes,
        values=values,
        description=f"query {mode}",
        ticket_key="QUERY",
    )
    logger.info(f"query {mode} {requirement.qualified_table} codes={','.join(codes)} values={','.join(values) or '-'}")

    try:
        with sql_connection(cfg.sql) as cur:
            result = DatabaseValidator(cur).fetch_rows(requirement)
    except ConnectionFailure as e:
        log_error_block("SQL Server connection failed", str(e), hint=SQL_HINT)
        return EXIT_FATAL
    except (QueryFailure, SchemaMismatch) as e:
        log_error_block("Query failed", str(e), hint=f"check that {requirement.qualified_table} exists")
        return EXIT_FATAL

    outcome = evaluate_requirement(requirement, result.rows, key_column=result.key_column)
    print(f"Found {len(result.rows)} rows")
    for index, row in enumerate(result.rows, start=1):
        print(f"\nRow {index}:")
        for column, value in row.items():
            print(f"  {column}: {value}")
    print("")
    print(f"T-Codes: {outcome.codes_found}/{len(codes)}")
    for msg in (*outcome.errors, *outcome.warnings):
        print(f"  - {msg}")
    return EXIT_SUCCESS_ALL if outcome.passed else EXIT_PARTIAL_FAILURE


COMMANDS = {
    "fetch": _cmd_fetch,
    "promote": _cmd_promote,
    "parse": _cmd_parse,
    "validate": _cmd_validate,
    "query": _cmd_query,
}


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # NOTE: [] が渡された場合に sys.argv[1:] を読まないよう None のときのみ参照
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug(True)
        logger.debug("debug mode enabled")

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    return COMMANDS[args.command](cfg, args, logger)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
