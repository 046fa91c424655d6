"""Domain data models for Jira issues, change histories, comments, and actions."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any

from .config import INVALID_USER_DISPLAY_NAME, INVALID_USER_NAME
from .errors import MissingFieldError


@dataclass(frozen=True, slots=True)
class User:
    key: str
    display_name: str
    name: str


INVALID_USER = User(key="", display_name=INVALID_USER_DISPLAY_NAME, name=INVALID_USER_NAME)


@dataclass(frozen=True, slots=True)
class CustomFieldDefinition:
    name: str
    field_id: str
    history_name: str
    separator: str = "|"


@dataclass(slots=True)
class ChangeItem:
    field: str
    from_value: str | None = None
    from_string: str | None = None
    to_value: str | None = None
    to_string: str | None = None


@dataclass(slots=True)
class History:
    """One changelog entry: who changed what, and when."""

    author: User | None
    created: datetime
    items: list[ChangeItem] = field(default_factory=list)

    def item_exists(self, field_name: str) -> bool:
        return any(item.field == field_name for item in self.items)

    def _last_item(self, field_name: str) -> ChangeItem | None:
        for item in reversed(self.items):
            if item.field == field_name:
                return item
        return None

    def get_item_last_value(self, field_name: str) -> str:
        item = self._last_item(field_name)
        if item is None:
            raise KeyError(field_name)
        return item.to_string or ""

    def get_item_last_value_key(self, field_name: str) -> str | None:
        item = self._last_item(field_name)
        if item is None:
            raise KeyError(field_name)
        return item.to_value

    @property
    def changed_fields(self) -> str:
        seen: list[str] = []
        for item in self.items:
            if item.field not in seen:
                seen.append(item.field)
        return ",".join(seen)


@dataclass(slots=True)
class Comment:
    author: User | None
    created: datetime
    body: str | None = None


@dataclass(slots=True)
class Issue:
    """An issue as fetched: current field state plus its full history.

    ``fields`` holds the current text of each tracked field, ``field_keys`` the
    current user reference keys of user fields, and ``custom_fields`` the raw
    current custom field payloads keyed by field id.
    """

    key: str
    created: datetime
    creator: User | None = None
    fields: dict[str, str] = field(default_factory=dict)
    field_keys: dict[str, str | None] = field(default_factory=dict)
    custom_fields: dict[str, Any] = field(default_factory=dict)
    histories: list[History] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)

    def history_item_exists(self, field_name: str) -> bool:
        return any(h.item_exists(field_name) for h in self.histories)

    def first_history_item(self, field_name: str) -> ChangeItem | None:
        for history in self.histories:
            for item in history.items:
                if item.field == field_name:
                    return item
        return None

    def initial_value(self, field_name: str) -> str:
        """Value of ``field_name`` when the issue was created.

        A field with changelog entries started out at the first entry's old
        value; a field that was never changed still holds its creation value.
        """
        item = self.first_history_item(field_name)
        if item is not None:
            return item.from_string or ""
        if field_name in self.fields:
            return self.fields[field_name] or ""
        raise MissingFieldError(f"No initial value for {field_name} on {self.key}", field=field_name)

    def initial_value_key(self, field_name: str) -> str | None:
        item = self.first_history_item(field_name)
        if item is not None:
            return item.from_value
        if field_name in self.field_keys:
            return self.field_keys[field_name]
        if field_name in self.fields:
            return None
        raise MissingFieldError(f"No initial reference for {field_name} on {self.key}", field=field_name)


@dataclass(frozen=True, slots=True)
class Action:
    """Full snapshot of an issue right after one create, update, or comment."""

    action: str
    actor: str
    actor_username: str
    issue_key: str
    fields_changed: str
    timestamp: datetime
    status: str = ""
    prev_status: str = ""
    assignee: str = ""
    assignee_username: str = ""
    reporter: str = ""
    reporter_username: str = ""
    issue_type: str = ""
    project: str = ""
    project_key: str = ""
    resolution: str = ""
    summary: str = ""
    category: str = ""
    fix_versions: str = ""
    due_date: str = ""
    components: str = ""
    labels: str = ""
    issue_age: int = 0
    time_in_state: int = 0
    time_since_action: int = 0
    # Read-only copy per action; excluded from the hash
    custom_field_values: Mapping[CustomFieldDefinition, str] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "custom_field_values", MappingProxyType(dict(self.custom_field_values)))

    def with_overrides(self, **changes: Any) -> Action:
        return replace(self, **changes)

    @classmethod
    def field_names(cls) -> list[str]:
        return [f.name for f in fields(cls) if f.name != "custom_field_values"]

    def to_record(self) -> dict[str, Any]:
        record = {name: getattr(self, name) for name in self.field_names()}
        for definition, value in self.custom_field_values.items():
            record[definition.name] = value
        return record
