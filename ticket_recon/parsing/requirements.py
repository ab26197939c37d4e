from __future__ import annotations

import re
from collections.abc import Iterable

from ticket_recon.models.config_models import ParserDefaults
from ticket_recon.models.requirement import OperationKind, ParsedTicket, Requirement
from ticket_recon.models.ticket import Ticket

"""Requirement extraction from free-text ticket descriptions.

The rules are deliberately crude pattern heuristics and downstream validation
relies on them as they are:

- ``<name>.xlsx`` anywhere in the text -> source file reference (first one wins)
- each ``Added:`` fragment (label to end of line, no colon) -> one ADD requirement
- each ``Updates:`` fragment -> one UPDATE requirement
- codes: ``[A-Z]{2}-[A-Z0-9]+`` (e.g. OH-VIO3), case sensitive
- values (UPDATE only): bare numbers, double-quoted strings and the text after
  "updated to" / "changed to" up to the next comma or newline, unioned
- table/schema: first word ending in Table/_table (Schema/_schema), lower-cased;
  otherwise the configured defaults (sTaxTable / escher). A wrong default is
  possible when the ticket names its table some other way.

Fragments with no code never become requirements. No errors are raised for
malformed text.
"""

__all__ = [
    "RequirementParser",
    "extract_codes",
    "extract_values",
    "extract_excel_files",
    "infer_table_name",
    "infer_schema_name",
]

EXCEL_FILE_RE = re.compile(r"([A-Za-z0-9_-]+\.xlsx)", re.IGNORECASE)
ADDED_RE = re.compile(r"Added:\s*[^:]+?(?=\n|\Z)", re.IGNORECASE)
UPDATES_RE = re.compile(r"Updates:\s*[^:]+?(?=\n|\Z)", re.IGNORECASE)
CODE_RE = re.compile(r"[A-Z]{2}-[A-Z0-9]+")
NUMBER_RE = re.compile(r"\d+\.?\d*")
QUOTED_RE = re.compile(r'"([^"]+)"')
UPDATED_TO_RE = re.compile(r"(?:updated to|changed to)\s+([^,\n]+)", re.IGNORECASE)
TABLE_RE = re.compile(r"[A-Za-z]+Table|[A-Za-z]+_table", re.IGNORECASE)
SCHEMA_RE = re.compile(r"[A-Za-z]+Schema|[A-Za-z]+_schema", re.IGNORECASE)


def _unique(items: Iterable[str]) -> tuple[str, ...]:
    # 出現順を保持したまま重複除去
    return tuple(dict.fromkeys(items))


def extract_codes(text: str) -> tuple[str, ...]:
    """T-Codes in ``text`` (e.g. OH-VIO3), first-appearance order."""
    return _unique(CODE_RE.findall(text))


def extract_values(text: str) -> tuple[str, ...]:
    """Expected values in an update fragment.

    Three independent passes (numbers, quoted strings, "updated to"/"changed to"
    tails) are unioned. Numbers embedded in codes are picked up as well.
    """
    values: list[str] = []
    values.extend(NUMBER_RE.findall(text))
    values.extend(QUOTED_RE.findall(text))
    values.extend(m.strip() for m in UPDATED_TO_RE.findall(text))
    return _unique(v for v in values if v)


def extract_excel_files(text: str) -> tuple[str, ...]:
    return _unique(EXCEL_FILE_RE.findall(text))


def infer_table_name(text: str, default: str = ParserDefaults.table) -> str:
    m = TABLE_RE.search(text)
    return m.group(0).lower() if m else default


def infer_schema_name(text: str, default: str = ParserDefaults.schema) -> str:
    m = SCHEMA_RE.search(text)
    return m.group(0).lower() if m else default


class RequirementParser:
    """Turns tickets into structured requirements."""

    def __init__(self, defaults: ParserDefaults | None = None) -> None:
        self.defaults = defaults or ParserDefaults()

    def parse_text(self, text: str, ticket_key: str = "") -> list[Requirement]:
        excel_files = extract_excel_files(text)
        source_file = excel_files[0] if excel_files else None
        table = infer_table_name(text, self.defaults.table)
        schema = infer_schema_name(text, self.defaults.schema)

        requirements: list[Requirement] = []
        for kind, pattern in ((OperationKind.ADD, ADDED_RE), (OperationKind.UPDATE, UPDATES_RE)):
            for match in pattern.finditer(text):
                fragment = match.group(0)
                codes = extract_codes(fragment)
                if not codes:
                    continue
                values = extract_values(fragment) if kind is OperationKind.UPDATE else ()
                requirements.append(
                    Requirement(
                        kind=kind,
                        schema=schema,
                        table=table,
                        codes=codes,
                        values=values,
                        description=fragment.strip(),
                        source_file=source_file,
                        ticket_key=ticket_key,
                    )
                )
        return requirements

    def parse_ticket(self, ticket: Ticket) -> ParsedTicket:
        text = ticket.text
        return ParsedTicket(
            ticket=ticket,
            requirements=tuple(self.parse_text(text, ticket.key)),
            excel_files=extract_excel_files(text),
        )

    def parse_tickets(self, tickets: Iterable[Ticket]) -> list[ParsedTicket]:
        return [self.parse_ticket(t) for t in tickets]


def all_codes(parsed: Iterable[ParsedTicket]) -> list[str]:
    return list(_unique(c for p in parsed for r in p.requirements for c in r.codes))
