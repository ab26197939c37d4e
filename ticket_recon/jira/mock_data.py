from __future__ import annotations

from ticket_recon.models.ticket import Ticket

from .fetcher import SprintFetch

"""Static sample sprint used when JIRA is unreachable and the caller opts in
(``fetch --allow-mock``). Keeps the rest of the workflow demonstrable offline.
"""

MOCK_SPRINT_NAME = "WTCI Sprint 9/25/2025"

MOCK_TICKETS: tuple[Ticket, ...] = (
    Ticket(
        key="WTCI-1001",
        summary="Add new Ohio violation tax codes",
        status="In Progress",
        assignee="Unassigned",
        priority="Medium",
        created="2025-09-15T09:12:00.000-0400",
        updated="2025-09-18T14:03:00.000-0400",
        description=(
            "Please load the attached OH_violation_codes.xlsx into the sTaxTable.\n"
            "Added: OH-VIO3 OH-VIO4\n"
        ),
        sprints=(MOCK_SPRINT_NAME,),
    ),
    Ticket(
        key="WTCI-1002",
        summary="Update Canton tax collector",
        status="To Do",
        assignee="Unassigned",
        priority="High",
        created="2025-09-16T10:40:00.000-0400",
        updated="2025-09-16T10:40:00.000-0400",
        description=(
            "Updates: OH-CAN2/OH-CAN5 - TaxCollector updated to Regional Income Tax Agency\n"
        ),
        sprints=(MOCK_SPRINT_NAME,),
    ),
    Ticket(
        key="WTCI-1003",
        summary="Rate change for Cleveland",
        status="To Do",
        assignee="Unassigned",
        priority="Low",
        created="2025-09-17T08:00:00.000-0400",
        updated="2025-09-17T08:00:00.000-0400",
        description="Updates: OH-CLE1 rate changed to 0.025\n",
        sprints=(MOCK_SPRINT_NAME,),
    ),
)


def mock_sprint_fetch() -> SprintFetch:
    return SprintFetch(tickets=MOCK_TICKETS, sprint_name=MOCK_SPRINT_NAME, end_date=None)
