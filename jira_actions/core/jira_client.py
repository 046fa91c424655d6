"""Jira API client wrapper: issues with their changelog, and user lookups."""

from __future__ import annotations

from typing import Any

import requests
from jira import JIRA, JIRAError

from .errors import UserLookupError

SEARCH_PATH = "/rest/api/3/search/jql"
HISTORY_EXPAND = "changelog"


class JiraAPI:
    def __init__(self, server: str, email: str, token: str):
        self.server = server.rstrip("/")
        self.client = JIRA(
            basic_auth=(email, token), options={"server": self.server, "rest_api_version": "3"}
        )

    def search_issues_with_history(
        self,
        jql: str,
        fields: list[str],
        page_size: int = 100,
    ) -> list[dict[str, Any]]:
        """Raw issues matching ``jql``, each with its changelog expanded.

        Follows ``nextPageToken`` until Jira reports the last page. Embedded
        changelogs and comment lists may still be truncated per issue; callers
        compare them against the reported totals.
        """
        session = getattr(self.client, "_session", None)
        if session is None:
            raise RuntimeError("JIRA session unavailable")
        params = {
            "jql": jql,
            "maxResults": page_size,
            "fields": ",".join(fields),
            "expand": HISTORY_EXPAND,
        }
        out: list[dict[str, Any]] = []
        token = None
        while True:
            if token:
                params["nextPageToken"] = token
            resp = session.get(f"{self.server}{SEARCH_PATH}", params=params)
            if resp.status_code >= 400:
                raise RuntimeError(f"Issue search failed {resp.status_code}: {resp.text[:200]}")
            data = resp.json()
            out.extend(data.get("issues", []))
            token = data.get("nextPageToken")
            if not token or data.get("isLast") is True:
                break
        return out

    def fetch_issue_raw(self, issue_key: str) -> dict[str, Any]:
        """One issue with its full changelog and comments."""
        try:
            issue = self.client.issue(issue_key, expand=HISTORY_EXPAND)
        except JIRAError as exc:  # pragma: no cover - network error path
            raise RuntimeError(f"Failed to fetch issue {issue_key}: {exc}") from exc
        if hasattr(issue, "raw"):
            return issue.raw
        raise RuntimeError(f"Unexpected issue payload type for {issue_key}: {type(issue)!r}")

    def fetch_user_raw(self, user_key: str) -> dict[str, Any] | None:
        """Return the raw user payload, or None when Jira does not know the key."""
        try:
            user = self.client.user(user_key)
        except JIRAError as exc:
            if exc.status_code == 404:
                return None
            raise UserLookupError(f"Failed to look up user {user_key}: {exc}") from exc
        except requests.RequestException as exc:
            raise UserLookupError(f"Failed to look up user {user_key}: {exc}") from exc
        if hasattr(user, "raw"):
            return user.raw
        if isinstance(user, dict):
            return user
        raise UserLookupError(f"Unexpected user payload type for {user_key}: {type(user)!r}")
