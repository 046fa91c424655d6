"""ActionService: orchestrates fetching, mapping, and action reconstruction."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import pytz

from .config import (
    ACTION_BUILD_MAX_WORKERS,
    ACTION_BUILD_MIN_PARALLEL,
    JIRA_FETCH_BASE_FIELDS,
    TIMEZONE,
)
from .custom_fields import CustomFieldApiParser
from .errors import ActionsError, ReconstructionError
from .factory import ActionFactory
from .jira_client import JiraAPI
from .mappers import map_issue
from .models import Action, Comment, CustomFieldDefinition, History, Issue
from .users import UserLookupService

ProgressCallback = Callable[[str, int | None, int | None], None]

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ActionBatch:
    actions: dict[str, list[Action]] = field(default_factory=dict)
    failures: dict[str, ReconstructionError] = field(default_factory=dict)


def chronological_events(issue: Issue) -> list[History | Comment]:
    """Merge changelog entries and comments into one time-ordered stream.

    The sort is stable; on equal timestamps a changelog entry comes before a
    comment, and each kind keeps its payload order.
    """
    keyed: list[tuple[datetime, int, int, History | Comment]] = []
    keyed.extend((h.created, 0, idx, h) for idx, h in enumerate(issue.histories))
    keyed.extend((c.created, 1, idx, c) for idx, c in enumerate(issue.comments))
    keyed.sort(key=lambda tup: tup[:3])
    return [tup[3] for tup in keyed]


def actions_in_window(
    actions: Iterable[Action],
    start: datetime,
    end: datetime,
    tz=None,
) -> list[Action]:
    """Keep actions with ``start <= timestamp < end``.

    Naive bounds are interpreted in ``tz`` (defaults to the configured TIMEZONE).
    """
    tz = tz or pytz.timezone(TIMEZONE)
    start_tz = start if start.tzinfo else tz.localize(start)
    end_tz = end if end.tzinfo else tz.localize(end)
    return [a for a in actions if start_tz <= a.timestamp < end_tz]


class ActionService:
    def __init__(
        self,
        api: JiraAPI,
        *,
        custom_fields: Sequence[CustomFieldDefinition] = (),
        factory: ActionFactory | None = None,
    ):
        self.api = api
        self.custom_fields = tuple(custom_fields)
        self.factory = factory or ActionFactory(
            UserLookupService(api),
            CustomFieldApiParser(),
            self.custom_fields,
        )
        self._tz = pytz.timezone(TIMEZONE)

    # ------------------ Reconstruction ------------------
    def build_actions(self, issue: Issue) -> list[Action]:
        """Reconstruct every action of ``issue``, oldest first.

        Raises ReconstructionError on the first failing event; no partial
        sequence is returned.
        """
        actions: list[Action] = []
        index = 0
        try:
            prev = self.factory.create(issue)
            actions.append(prev)
            for index, event in enumerate(chronological_events(issue), start=1):
                if isinstance(event, History):
                    prev = self.factory.update(prev, event)
                else:
                    prev = self.factory.comment(prev, event)
                actions.append(prev)
        except ActionsError as exc:
            raise ReconstructionError(
                issue.key,
                f"Failed to reconstruct actions: {exc}",
                field=exc.field,
                event_index=index,
            ) from exc
        logger.debug("Built %s actions for %s", len(actions), issue.key)
        return actions

    def build_many(
        self,
        issues: Sequence[Issue],
        *,
        progress: ProgressCallback | None = None,
    ) -> ActionBatch:
        """Reconstruct issues independently; a failing issue is logged and skipped."""
        batch = ActionBatch()
        if not issues:
            return batch

        def _record(issue: Issue, result: list[Action] | ReconstructionError) -> None:
            if isinstance(result, ReconstructionError):
                logger.warning("Skipping %s: %s", issue.key, result)
                batch.failures[issue.key] = result
            else:
                batch.actions[issue.key] = result

        # Sequential short-circuit
        if len(issues) < ACTION_BUILD_MIN_PARALLEL:
            if progress:
                progress("Reconstructing issue actions", 0, len(issues))
            for idx, issue in enumerate(issues, start=1):
                _record(issue, self._build_isolated(issue))
                if progress:
                    progress("Reconstructing issue actions", idx, len(issues))
            return batch

        # Parallel build using threads (user lookups are I/O bound HTTP calls)
        from concurrent.futures import ThreadPoolExecutor, as_completed

        if progress:
            progress("Reconstructing issue actions", 0, len(issues))
        completed = 0
        with ThreadPoolExecutor(max_workers=ACTION_BUILD_MAX_WORKERS) as pool:
            futures = {pool.submit(self._build_isolated, issue): issue for issue in issues}
            for fut in as_completed(futures):
                _record(futures[fut], fut.result())
                completed += 1
                if progress:
                    progress("Reconstructing issue actions", completed, len(issues))
        # Keep the caller's issue order
        batch.actions = {i.key: batch.actions[i.key] for i in issues if i.key in batch.actions}
        return batch

    def _build_isolated(self, issue: Issue) -> list[Action] | ReconstructionError:
        try:
            return self.build_actions(issue)
        except ReconstructionError as exc:
            return exc
        except Exception as exc:
            wrapped = ReconstructionError(issue.key, f"Unexpected failure: {exc}")
            wrapped.__cause__ = exc
            return wrapped

    # ------------------ Fetch Methods ------------------
    def fetch_issue(self, issue_key: str) -> Issue:
        return map_issue(self.api.fetch_issue_raw(issue_key))

    def fetch_issue_actions(self, issue_key: str) -> list[Action]:
        return self.build_actions(self.fetch_issue(issue_key))

    def fetch_project_actions(
        self,
        project_key: str,
        start: datetime,
        end: datetime,
        *,
        progress: ProgressCallback | None = None,
    ) -> ActionBatch:
        """Reconstruct actions of every issue with activity in ``[start, end]`` days.

        ``end`` is extended by one day so callers can pass inclusive date
        pickers; only actions inside the window are kept.
        """
        start_tz = start.astimezone(self._tz) if start.tzinfo else self._tz.localize(start)
        end_tz = end.astimezone(self._tz) if end.tzinfo else self._tz.localize(end)
        end_plus = end_tz + timedelta(days=1)
        jql = (
            f"project = {project_key} AND updated >= '{start_tz.strftime('%Y-%m-%d')}'"
            f" AND created < '{end_plus.strftime('%Y-%m-%d')}'"
        )
        if progress:
            progress(f"Querying issues for {project_key}", None, None)
        fields = list(JIRA_FETCH_BASE_FIELDS) + [d.field_id for d in self.custom_fields]
        raw = self.api.search_issues_with_history(jql, fields)
        self._inflate_truncated(raw, progress=progress)

        issues: list[Issue] = []
        failures: dict[str, ReconstructionError] = {}
        for r in raw:
            key = r.get("key") or ""
            try:
                issues.append(map_issue(r))
            except ActionsError as exc:
                logger.warning("Skipping %s: %s", key, exc)
                failures[key] = ReconstructionError(key, f"Malformed issue payload: {exc}", field=exc.field)

        batch = self.build_many(issues, progress=progress)
        batch.failures.update(failures)
        windowed: dict[str, list[Action]] = {}
        for key, actions in batch.actions.items():
            kept = actions_in_window(actions, start_tz, end_plus)
            if kept:
                windowed[key] = kept
        batch.actions = windowed
        return batch

    # ------------------ Internal Helpers ------------------
    def _inflate_truncated(
        self,
        raw_issues: list[dict[str, Any]],
        *,
        progress: ProgressCallback | None = None,
    ) -> None:
        """Replace truncated changelog/comment arrays with full ones (in-place).

        Search results embed a single page of histories and comments but report
        the totals; a single-issue fetch returns more. Reconstruction needs every
        event, so affected issues are re-fetched.
        """
        work: list[dict[str, Any]] = []
        for issue in raw_issues:
            changelog = issue.get("changelog") or {}
            histories = changelog.get("histories") or []
            comment_block = (issue.get("fields") or {}).get("comment") or {}
            comments = comment_block.get("comments") or []
            h_total = changelog.get("total")
            c_total = comment_block.get("total")
            if (isinstance(h_total, int) and h_total > len(histories)) or (
                isinstance(c_total, int) and c_total > len(comments)
            ):
                work.append(issue)
        if not work:
            return
        if progress:
            progress("Loading complete issue history", 0, len(work))
        for idx, issue in enumerate(work, start=1):
            key = issue.get("key")
            detail = self.api.fetch_issue_raw(key)
            issue["changelog"] = detail.get("changelog") or issue.get("changelog")
            detail_comments = (detail.get("fields") or {}).get("comment")
            if detail_comments:
                issue.setdefault("fields", {})["comment"] = detail_comments
            logger.debug("Hydrated %s history", key)
            if progress:
                progress("Loading complete issue history", idx, len(work))
