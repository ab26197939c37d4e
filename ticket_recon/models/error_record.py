from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the per-run error log.

One record per requirement-level failure (query failure, schema mismatch,
missing or unreadable reference file). ``requirement`` is the 1-based index of
the requirement within its ticket; -1 marks ticket-level or run-level records.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        ticket: Ticket key (e.g. WTCI-101), "<RUN>" for run-level errors
        requirement: 1-based requirement index, -1 when not applicable
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Driver / filesystem message or description
    """
    timestamp: str
    ticket: str
    requirement: int
    error_type: str
    message: str

    @staticmethod
    def create(ticket: str, requirement: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            ticket=ticket,
            requirement=requirement,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
