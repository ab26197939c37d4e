from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime
from pathlib import Path

from ticket_recon.models.ticket import Ticket

"""Sprint snapshot workspace.

Layout under ``paths.sprint_data``::

    fetched/      newly retrieved snapshots
    inProgress/   snapshots a user has confirmed for validation
    completed/    validated snapshots

Snapshot file name: ``<project>-sprint-tickets-<YYYY-MM-DD>.txt``. The date
comes from an ``M/D/YYYY`` token in the sprint name, else the sprint end date,
else today.

The snapshot text format is both written (render_snapshot) and read back
(parse_snapshot) so that validation can run from a confirmed file without
touching JIRA again.
"""

__all__ = [
    "FETCHED",
    "IN_PROGRESS",
    "COMPLETED",
    "SprintWorkspace",
    "WorkspaceError",
    "snapshot_filename",
    "snapshot_date",
    "render_snapshot",
    "parse_snapshot",
    "normalize_filename",
]

logger = logging.getLogger(__name__)

FETCHED = "fetched"
IN_PROGRESS = "inProgress"
COMPLETED = "completed"
FOLDERS = (FETCHED, IN_PROGRESS, COMPLETED)

HEADER_RULE = "=" * 80
TICKET_RULE = "=" * 60
DESCRIPTION_INDENT = " " * 5

_MDY_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")
_DUP_SUFFIX_RE = re.compile(r"\(\d+\)\.txt$")
_RULE_RE = re.compile(r"^={60,}\s*$", re.MULTILINE)
_TICKET_HEAD_RE = re.compile(r"^\d+\.\s+(\S+)\s+-\s?(.*)$")
_FIELD_PREFIXES = {
    "Status:": "status",
    "Assignee:": "assignee",
    "Priority:": "priority",
    "Created:": "created",
    "Updated:": "updated",
    "Sprint:": "sprint",
}


class WorkspaceError(Exception):
    pass


def snapshot_date(sprint_name: str | None, end_date: date | None = None, today: date | None = None) -> date:
    if sprint_name:
        m = _MDY_RE.search(sprint_name)
        if m:
            month, day, year = (int(g) for g in m.groups())
            try:
                return date(year, month, day)
            except ValueError:
                logger.debug("sprint name date out of range: %s", sprint_name)
    if end_date is not None:
        return end_date
    return today or datetime.now(UTC).date()


def snapshot_filename(
    project: str, sprint_name: str | None, end_date: date | None = None, today: date | None = None
) -> str:
    d = snapshot_date(sprint_name, end_date, today)
    return f"{project.lower()}-sprint-tickets-{d.isoformat()}.txt"


def normalize_filename(filename: str) -> str:
    """Drop a browser-style duplicate suffix: ``x(1).txt`` -> ``x.txt``."""
    return _DUP_SUFFIX_RE.sub(".txt", filename)


def render_snapshot(
    project: str, tickets: Iterable[Ticket], sprint_name: str | None = None, generated: datetime | None = None
) -> str:
    tickets = list(tickets)
    generated = generated or datetime.now(UTC)
    lines = [
        f"{project} Sprint Tickets Report",
        f"Generated: {generated.isoformat()}",
    ]
    if sprint_name:
        lines.append(f"Sprint Name: {sprint_name}")
    lines.append(f"Total Tickets: {len(tickets)}")
    lines.append(HEADER_RULE)
    lines.append("")

    for index, t in enumerate(tickets, start=1):
        lines.append(f"{index}. {t.key} - {t.summary}")
        lines.append(f"   Status: {t.status}")
        lines.append(f"   Assignee: {t.assignee or 'Unassigned'}")
        lines.append(f"   Priority: {t.priority or 'None'}")
        lines.append(f"   Created: {t.created}")
        lines.append(f"   Updated: {t.updated}")
        lines.append(f"   Sprint: {', '.join(t.sprints) or 'Not assigned'}")
        lines.append("   Description:")
        description = t.description or "No description available"
        for dline in description.rstrip("\n").split("\n"):
            lines.append(DESCRIPTION_INDENT + dline if dline.strip() else "")
        lines.append("")
        lines.append(TICKET_RULE)
        lines.append("")
    return "\n".join(lines) + "\n"


def _parse_ticket_block(block: str) -> Ticket | None:
    raw_lines = block.split("\n")
    # 先頭の空行を除去
    while raw_lines and not raw_lines[0].strip():
        raw_lines.pop(0)
    if not raw_lines:
        return None
    head = _TICKET_HEAD_RE.match(raw_lines[0].strip())
    if head is None:
        return None

    fields: dict[str, str] = {}
    description: list[str] = []
    in_description = False
    for line in raw_lines[1:]:
        stripped = line.strip()
        if in_description:
            description.append(line[len(DESCRIPTION_INDENT):] if line.startswith(DESCRIPTION_INDENT) else stripped)
            continue
        if stripped == "Description:":
            in_description = True
            continue
        for prefix, name in _FIELD_PREFIXES.items():
            if stripped.startswith(prefix):
                fields[name] = stripped[len(prefix):].strip()
                break

    text = "\n".join(description).strip("\n")
    if text == "No description available":
        text = ""
    sprint = fields.get("sprint", "")
    sprints = () if sprint in ("", "Not assigned") else tuple(s.strip() for s in sprint.split(","))
    assignee = fields.get("assignee", "")
    return Ticket(
        key=head.group(1),
        summary=head.group(2).strip(),
        status=fields.get("status", ""),
        assignee="" if assignee == "Unassigned" else assignee,
        priority="" if fields.get("priority") == "None" else fields.get("priority", ""),
        created=fields.get("created", ""),
        updated=fields.get("updated", ""),
        description=text + "\n" if text else "",
        sprints=sprints,
    )


def parse_snapshot(text: str) -> list[Ticket]:
    """Read tickets back from a snapshot file's text.

    Blocks that do not start with ``<n>. <KEY> - <summary>`` (the report
    header, trailing whitespace) are ignored.
    """
    tickets: list[Ticket] = []
    seen: set[str] = set()
    for block in _RULE_RE.split(text):
        ticket = _parse_ticket_block(block)
        if ticket is None or ticket.key in seen:
            continue
        seen.add(ticket.key)
        tickets.append(ticket)
    return tickets


@dataclass(frozen=True)
class ExistingCopy:
    folder: str
    path: Path
    size: int
    modified: datetime


class SprintWorkspace:
    def __init__(self, root: Path, output: Path) -> None:
        self.root = Path(root)
        self.output = Path(output)

    def folder(self, name: str) -> Path:
        if name not in FOLDERS:
            raise WorkspaceError(f"unknown workspace folder: {name} (expected one of {', '.join(FOLDERS)})")
        path = self.root / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    def output_dir(self) -> Path:
        self.output.mkdir(parents=True, exist_ok=True)
        return self.output

    def save_fetched(self, filename: str, content: str) -> Path:
        path = self.folder(FETCHED) / filename
        path.write_text(content, encoding="utf-8")
        logger.info(f"snapshot saved: {path}")
        return path

    def existing_in_workflow(self, filename: str) -> list[ExistingCopy]:
        """Copies of ``filename`` already in inProgress/completed (ignores ``(n)`` suffix)."""
        wanted = normalize_filename(filename)
        found: list[ExistingCopy] = []
        for name in (IN_PROGRESS, COMPLETED):
            folder = self.root / name
            if not folder.is_dir():
                continue
            for p in sorted(folder.iterdir()):
                if p.is_file() and normalize_filename(p.name) == wanted:
                    st = p.stat()
                    found.append(
                        ExistingCopy(
                            folder=name,
                            path=p,
                            size=st.st_size,
                            modified=datetime.fromtimestamp(st.st_mtime, UTC),
                        )
                    )
        return found

    def promote(self, filename: str, to: str) -> Path:
        """Move a snapshot one step along fetched -> inProgress -> completed."""
        if to == IN_PROGRESS:
            source_folder = FETCHED
        elif to == COMPLETED:
            source_folder = IN_PROGRESS
        else:
            raise WorkspaceError(f"cannot promote to '{to}' (expected {IN_PROGRESS} or {COMPLETED})")
        source = self.root / source_folder / filename
        if not source.is_file():
            raise WorkspaceError(f"file not found in {source_folder} folder: {filename}")
        target = self.folder(to) / filename
        shutil.move(str(source), str(target))
        logger.info(f"moved {filename} to {to} folder")
        return target

    def latest_snapshot(self, folder: str = IN_PROGRESS) -> Path | None:
        base = self.root / folder
        if not base.is_dir():
            return None
        candidates = [p for p in base.iterdir() if p.is_file() and p.suffix == ".txt"]
        if not candidates:
            return None
        # ファイル名に日付が入るので名前順 = 日付順
        return max(candidates, key=lambda p: (p.name, p.stat().st_mtime))
