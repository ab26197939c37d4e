from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import requests
from requests.auth import HTTPBasicAuth

from ticket_recon.models.config_models import JiraConfig
from ticket_recon.models.ticket import Ticket

"""JIRA REST client (API v3) for sprint ticket retrieval.

Only the read side is needed: JQL search, single issue lookup and the
open-sprint query used by the ``fetch`` command. Rich-text (ADF) descriptions
are flattened to plain text so that the requirement parser sees the same line
structure a human sees in the browser.
"""

__all__ = [
    "JiraClient",
    "JiraFetchError",
    "SprintFetch",
    "adf_to_text",
    "map_issue",
]

logger = logging.getLogger(__name__)

DEFAULT_FIELDS = [
    "summary",
    "status",
    "assignee",
    "priority",
    "created",
    "updated",
    "sprint",
    "description",
]
OPEN_SPRINT_JQL = "project = {project} AND sprint in openSprints() ORDER BY Rank ASC"


class JiraFetchError(Exception):
    """Network failure or unexpected response while talking to JIRA."""


@dataclass(frozen=True)
class SprintFetch:
    tickets: tuple[Ticket, ...]
    sprint_name: str | None
    end_date: date | None


def adf_to_text(node: Any) -> str:
    """Flatten an Atlassian Document Format node to text.

    paragraph -> children + newline, hardBreak -> newline, text -> its text,
    anything else recurses into ``content``.
    """
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if isinstance(node, list):
        return "".join(adf_to_text(n) for n in node)
    if not isinstance(node, dict):
        return ""

    node_type = node.get("type")
    if node_type == "paragraph":
        return adf_to_text(node.get("content", [])) + "\n"
    if node_type == "hardBreak":
        return "\n"
    if node_type == "text":
        return node.get("text", "")
    if "content" in node:
        return adf_to_text(node["content"])
    return node.get("text", "")


def _description_text(raw: Any) -> str:
    if not raw:
        return ""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict):
        return adf_to_text(raw.get("content", []))
    return ""


def _sprint_names(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, list):
        return ()
    return tuple(s["name"] for s in raw if isinstance(s, dict) and s.get("name"))


def map_issue(issue: dict[str, Any]) -> Ticket:
    fields = issue.get("fields") or {}
    assignee = fields.get("assignee") or {}
    return Ticket(
        key=issue.get("key", ""),
        summary=fields.get("summary") or "",
        status=(fields.get("status") or {}).get("name", ""),
        assignee=assignee.get("displayName") or assignee.get("emailAddress") or "",
        priority=(fields.get("priority") or {}).get("name", ""),
        created=fields.get("created") or "",
        updated=fields.get("updated") or "",
        description=_description_text(fields.get("description")),
        sprints=_sprint_names(fields.get("sprint")),
    )


def _parse_end_date(raw: Any) -> date | None:
    if not raw or not isinstance(raw, str):
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        return None


class JiraClient:
    """Thin wrapper over a requests.Session with basic auth."""

    def __init__(self, config: JiraConfig, session: requests.Session | None = None) -> None:
        if not config.base_url:
            raise JiraFetchError("JIRA base URL is not configured")
        self.config = config
        self.api_url = f"{config.base_url.rstrip('/')}/rest/api/3"
        self.session = session or requests.Session()
        self.session.auth = HTTPBasicAuth(config.username or "", config.api_token or "")
        self.session.headers.update({"Accept": "application/json", "Content-Type": "application/json"})

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.api_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.config.timeout, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as e:
            raise JiraFetchError(f"{method} {path} failed: {e}") from e
        except ValueError as e:  # JSON decode
            raise JiraFetchError(f"{method} {path} returned invalid JSON: {e}") from e

    def test_connection(self) -> bool:
        try:
            self._request("GET", "/myself")
        except JiraFetchError as e:
            logger.warning("JIRA connection test failed: %s", e)
            return False
        return True

    def _search_raw(self, jql: str, fields: list[str] | None, max_results: int | None) -> list[dict[str, Any]]:
        payload = {
            "jql": jql,
            "fields": fields or DEFAULT_FIELDS,
            "maxResults": max_results or self.config.max_results,
        }
        logger.debug("jql=%s", jql)
        data = self._request("POST", "/search/jql", json=payload)
        issues = data.get("issues") if isinstance(data, dict) else None
        if not isinstance(issues, list):
            raise JiraFetchError("search response has no 'issues' list")
        return issues

    def search(self, jql: str, fields: list[str] | None = None, max_results: int | None = None) -> list[Ticket]:
        return [map_issue(i) for i in self._search_raw(jql, fields, max_results)]

    def get_ticket(self, key: str) -> Ticket:
        data = self._request("GET", f"/issue/{key}", params={"fields": ",".join(DEFAULT_FIELDS)})
        return map_issue(data)

    def project_tickets(self, project: str) -> list[Ticket]:
        return self.search(f'project = "{project}" ORDER BY created DESC')

    def fetch_sprint_tickets(self, project: str | None = None) -> SprintFetch:
        """Tickets of the project's open sprints.

        Sprint name = most common sprint name among the tickets, end date =
        latest sprint end date seen. Duplicate keys are dropped.
        """
        project = project or self.config.project
        issues = self._search_raw(OPEN_SPRINT_JQL.format(project=project), None, None)

        name_counts: Counter[str] = Counter()
        end_dates: list[date] = []
        tickets: list[Ticket] = []
        seen: set[str] = set()
        for issue in issues:
            for sprint in (issue.get("fields") or {}).get("sprint") or []:
                if not isinstance(sprint, dict):
                    continue
                if sprint.get("name"):
                    name_counts[sprint["name"]] += 1
                end = _parse_end_date(sprint.get("endDate") or sprint.get("endDateTime"))
                if end is not None:
                    end_dates.append(end)
            key = issue.get("key")
            if key in seen:
                continue
            seen.add(key)
            tickets.append(map_issue(issue))

        sprint_name = name_counts.most_common(1)[0][0] if name_counts else None
        end_date = max(end_dates) if end_dates else None
        logger.info(f"fetched {len(tickets)} tickets from open sprints of {project}")
        return SprintFetch(tickets=tuple(tickets), sprint_name=sprint_name, end_date=end_date)
