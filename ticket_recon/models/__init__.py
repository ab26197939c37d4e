"""Domain models for the ticket reconciliation tool."""

from .config_models import JiraConfig, ParserDefaults, PathsConfig, ReconConfig, SqlConfig
from .error_record import ErrorRecord
from .requirement import OperationKind, ParsedTicket, Requirement
from .spreadsheet import SpreadsheetMatch, SpreadsheetSearchResult
from .ticket import Ticket
from .validation import RunResult, TicketReport, TicketStatus, ValidationOutcome

__all__ = [
    # Configuration models
    "JiraConfig",
    "ParserDefaults",
    "PathsConfig",
    "ReconConfig",
    "SqlConfig",
    # Pipeline models
    "ErrorRecord",
    "OperationKind",
    "ParsedTicket",
    "Requirement",
    "RunResult",
    "SpreadsheetMatch",
    "SpreadsheetSearchResult",
    "Ticket",
    "TicketReport",
    "TicketStatus",
    "ValidationOutcome",
]
