from __future__ import annotations

from dataclasses import dataclass

"""Ticket domain model.

A Ticket is the issue-tracker record as fetched (or as re-read from a sprint
snapshot file). Immutable once created.
"""

__all__ = [
    "Ticket",
]


@dataclass(frozen=True)
class Ticket:
    key: str  # e.g. WTCI-101
    summary: str
    status: str = ""
    assignee: str = ""
    priority: str = ""
    created: str = ""
    updated: str = ""
    description: str = ""  # free text (rich text already flattened)
    sprints: tuple[str, ...] = ()

    @property
    def text(self) -> str:
        """Summary and description joined, the input of requirement parsing."""
        return f"{self.summary} {self.description}"
