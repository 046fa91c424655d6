"""Mapping raw Jira issue JSON into Issue models, and actions into DataFrames."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import pandas as pd

from .config import LABELS_SEPARATOR, MULTI_VALUE_SEPARATOR, USER_FIELDS, normalize_field_name
from .errors import MissingFieldError
from .models import Action, ChangeItem, Comment, History, Issue
from .users import user_from_raw


def parse_dt(val):
    if not val:
        return None
    ts = pd.to_datetime(val, utc=True, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    return ts.to_pydatetime()


def _name(node: Any, attr: str = "name") -> str:
    if isinstance(node, dict):
        value = node.get(attr)
        return "" if value is None else str(value)
    return ""


def _join_names(nodes: Any, separator: str = MULTI_VALUE_SEPARATOR) -> str:
    if not isinstance(nodes, list):
        return ""
    return separator.join(_name(n) for n in nodes if _name(n))


def _current_fields(fields: dict[str, Any]) -> tuple[dict[str, str], dict[str, str | None]]:
    """Flatten the current issue fields into tracked-name -> text (and user keys)."""
    project = fields.get("project") or {}
    current: dict[str, str] = {
        "status": _name(fields.get("status")),
        "issuetype": _name(fields.get("issuetype")),
        "project": _name(project),
        "projectkey": _name(project, "key"),
        "category": _name(project.get("projectCategory")),
        "resolution": _name(fields.get("resolution")),
        "summary": fields.get("summary") or "",
        "fixversions": _join_names(fields.get("fixVersions")),
        "duedate": fields.get("duedate") or "",
        "components": _join_names(fields.get("components")),
        "labels": LABELS_SEPARATOR.join(fields.get("labels") or []),
    }
    keys: dict[str, str | None] = {}
    for name in USER_FIELDS:
        user = user_from_raw(fields.get(name))
        current[name] = user.display_name if user else ""
        keys[name] = user.key if user else None
    return current, keys


def map_history(raw: dict[str, Any], issue_key: str) -> History:
    created = parse_dt(raw.get("created"))
    if created is None:
        raise MissingFieldError(
            f"Changelog entry {raw.get('id')} on {issue_key} has no timestamp", field="created"
        )
    items = [
        ChangeItem(
            field=normalize_field_name(it.get("field")),
            from_value=it.get("from"),
            from_string=it.get("fromString"),
            to_value=it.get("to"),
            to_string=it.get("toString"),
        )
        for it in raw.get("items") or []
    ]
    return History(author=user_from_raw(raw.get("author")), created=created, items=items)


def map_comment(raw: dict[str, Any], issue_key: str) -> Comment:
    created = parse_dt(raw.get("created"))
    if created is None:
        raise MissingFieldError(
            f"Comment {raw.get('id')} on {issue_key} has no timestamp", field="created"
        )
    return Comment(author=user_from_raw(raw.get("author")), created=created, body=raw.get("body"))


def map_issue(raw: dict[str, Any]) -> Issue:
    key = raw.get("key") or ""
    fields = raw.get("fields", {}) or {}
    created = parse_dt(fields.get("created"))
    if created is None:
        raise MissingFieldError(f"Issue {key} has no creation timestamp", field="created")
    current, keys = _current_fields(fields)

    histories_raw = (raw.get("changelog") or {}).get("histories", []) or []
    comments_raw = (fields.get("comment") or {}).get("comments", []) or []

    return Issue(
        key=key,
        created=created,
        creator=user_from_raw(fields.get("creator")),
        fields=current,
        field_keys=keys,
        custom_fields={k: v for k, v in fields.items() if k.startswith("customfield_")},
        histories=[map_history(h, key) for h in histories_raw],
        comments=[map_comment(c, key) for c in comments_raw],
    )


def actions_to_dataframe(actions: Iterable[Action]) -> pd.DataFrame:
    rows = [a.to_record() for a in actions]
    if not rows:
        return pd.DataFrame(columns=Action.field_names())
    df = pd.DataFrame(rows)
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, errors="coerce")
    for col in ("issue_age", "time_in_state", "time_since_action"):
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0).astype("int64")
    return df
