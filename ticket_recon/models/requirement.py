from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .ticket import Ticket

"""Requirement domain model.

A Requirement is one add/update/delete instruction extracted from a ticket's
free text. Several requirements may come from one ticket.
"""

__all__ = [
    "OperationKind",
    "Requirement",
    "ParsedTicket",
]


class OperationKind(Enum):
    """Kind of table change a requirement asks for.

    The parser emits ADD ("Added:" lines) and UPDATE ("Updates:" lines).
    DELETE is part of the model for requirements built by hand (query command).
    """
    ADD = "ADD"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class Requirement:
    kind: OperationKind
    schema: str  # target schema (e.g. escher)
    table: str  # target table (e.g. sTaxTable)
    codes: tuple[str, ...]  # T-Codes, order of first appearance, no duplicates
    values: tuple[str, ...] = ()  # expected values (UPDATE only)
    description: str = ""  # originating text fragment ("Added: OH-VIO3 ...")
    source_file: str | None = None  # referenced <name>.xlsx, if any
    ticket_key: str = ""

    @property
    def qualified_table(self) -> str:
        return f"{self.schema}.{self.table}"


@dataclass(frozen=True)
class ParsedTicket:
    """A ticket together with everything the parser extracted from it."""
    ticket: Ticket
    requirements: tuple[Requirement, ...]
    excel_files: tuple[str, ...] = ()

    @property
    def total_codes(self) -> int:
        return sum(len(r.codes) for r in self.requirements)
