"""ActionFactory: builds create, update, and comment actions for one issue.

Each action is a full snapshot. ``update`` and ``comment`` derive the next
action from the previous one; all state lives in that chain of actions, so a
factory instance can serve many issues concurrently.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from .config import (
    ACTION_COMMENT,
    ACTION_CREATE,
    ACTION_UPDATE,
    DUE_DATE_TIME_SUFFIX,
    FIELDS_CHANGED_COMMENT,
    FIELDS_CHANGED_CREATED,
)
from .errors import ActionsError
from .models import INVALID_USER, Action, Comment, CustomFieldDefinition, History, Issue, User

logger = logging.getLogger(__name__)


class UserResolver(Protocol):
    def get_user(self, key: str | None) -> User: ...


class CustomFieldParser(Protocol):
    def parse_initial_value(self, definition: CustomFieldDefinition, issue: Issue) -> str: ...

    def parse_non_initial_value(
        self, definition: CustomFieldDefinition, prev_action: Action, history: History
    ) -> str: ...


def strip_due_date_time(value: str) -> str:
    return value.replace(DUE_DATE_TIME_SUFFIX, "")


@dataclass(frozen=True, slots=True)
class FieldRule:
    """How one tracked field maps onto an Action.

    ``field`` is the tracked (changelog) name, ``attr`` the Action attribute.
    User fields also set ``username_attr`` from the resolved reference key.
    ``transform`` applies only to values taken from a change event.
    """

    field: str
    attr: str
    username_attr: str | None = None
    transform: Callable[[str], str] | None = None

    def convert(self, value: str) -> str:
        return self.transform(value) if self.transform else value


TRACKED_FIELD_RULES: Sequence[FieldRule] = (
    FieldRule("status", "status"),
    FieldRule("assignee", "assignee", username_attr="assignee_username"),
    FieldRule("reporter", "reporter", username_attr="reporter_username"),
    FieldRule("issuetype", "issue_type"),
    FieldRule("project", "project"),
    FieldRule("projectkey", "project_key"),
    FieldRule("resolution", "resolution"),
    FieldRule("summary", "summary"),
    FieldRule("category", "category"),
    FieldRule("fixversions", "fix_versions"),
    FieldRule("duedate", "due_date", transform=strip_due_date_time),
    FieldRule("components", "components"),
    FieldRule("labels", "labels"),
)


def time_diff(before: datetime, after: datetime) -> int:
    """Whole seconds from ``before`` to ``after``, truncated toward zero."""
    millis = (after - before) // timedelta(milliseconds=1)
    return int(millis / 1000)


def time_in_state(prev_action: Action, change_timestamp: datetime) -> int:
    # prev_action entered a new status itself, so the clock restarts from it.
    if prev_action.prev_status != prev_action.status:
        return time_diff(prev_action.timestamp, change_timestamp)
    return time_diff(prev_action.timestamp, change_timestamp) + prev_action.time_in_state


def _actor(author: User | None) -> User:
    return author if author is not None else INVALID_USER


class ActionFactory:
    def __init__(
        self,
        user_lookup: UserResolver,
        custom_field_parser: CustomFieldParser,
        custom_fields: Sequence[CustomFieldDefinition] = (),
        rules: Sequence[FieldRule] = TRACKED_FIELD_RULES,
    ):
        self.user_lookup = user_lookup
        self.custom_field_parser = custom_field_parser
        self.custom_fields = tuple(custom_fields)
        self.rules = tuple(rules)

    def create(self, issue: Issue) -> Action:
        actor = _actor(issue.creator)
        values: dict[str, str] = {}
        for rule in self.rules:
            values[rule.attr] = issue.initial_value(rule.field)
            if rule.username_attr:
                values[rule.username_attr] = self._username(rule.field, issue.initial_value_key(rule.field))

        custom_values: dict[CustomFieldDefinition, str] = {}
        for definition in self.custom_fields:
            custom_values[definition] = self._parse_custom(
                definition, self.custom_field_parser.parse_initial_value, definition, issue
            )

        return Action(
            action=ACTION_CREATE,
            actor=actor.display_name,
            actor_username=actor.name,
            issue_key=issue.key,
            fields_changed=FIELDS_CHANGED_CREATED,
            timestamp=issue.created,
            prev_status="",
            issue_age=0,
            time_in_state=0,
            time_since_action=0,
            custom_field_values=custom_values,
            **values,
        )

    def update(self, prev_action: Action, history: History) -> Action:
        actor = _actor(history.author)
        overrides: dict[str, str] = {}
        for rule in self.rules:
            if not history.item_exists(rule.field):
                continue
            overrides[rule.attr] = rule.convert(history.get_item_last_value(rule.field))
            if rule.username_attr:
                overrides[rule.username_attr] = self._username(
                    rule.field, history.get_item_last_value_key(rule.field)
                )

        custom_values: dict[CustomFieldDefinition, str] = {}
        for definition in self.custom_fields:
            custom_values[definition] = self._parse_custom(
                definition,
                self.custom_field_parser.parse_non_initial_value,
                definition,
                prev_action,
                history,
            )

        elapsed = time_diff(prev_action.timestamp, history.created)
        return prev_action.with_overrides(
            action=ACTION_UPDATE,
            actor=actor.display_name,
            actor_username=actor.name,
            fields_changed=history.changed_fields,
            prev_status=prev_action.status,
            issue_age=prev_action.issue_age + elapsed,
            time_in_state=time_in_state(prev_action, history.created),
            time_since_action=elapsed,
            timestamp=history.created,
            custom_field_values=custom_values,
            **overrides,
        )

    def comment(self, prev_action: Action, comment: Comment) -> Action:
        actor = _actor(comment.author)
        elapsed = time_diff(prev_action.timestamp, comment.created)
        return prev_action.with_overrides(
            action=ACTION_COMMENT,
            actor=actor.display_name,
            actor_username=actor.name,
            fields_changed=FIELDS_CHANGED_COMMENT,
            issue_age=prev_action.issue_age + elapsed,
            time_in_state=time_in_state(prev_action, comment.created),
            time_since_action=elapsed,
            timestamp=comment.created,
        )

    def _username(self, field_name: str, key: str | None) -> str:
        try:
            return self.user_lookup.get_user(key).name
        except ActionsError as exc:
            exc.field = exc.field or field_name
            raise

    def _parse_custom(self, definition: CustomFieldDefinition, parse, *args) -> str:
        try:
            return parse(*args)
        except ActionsError as exc:
            exc.field = exc.field or definition.name
            raise
