"""Custom field definitions (YAML) and the parser that values them per action."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from .config import MULTI_VALUE_SEPARATOR, normalize_field_name
from .errors import CustomFieldParseError
from .models import Action, CustomFieldDefinition, History, Issue

logger = logging.getLogger(__name__)


def load_custom_field_definitions(path: str | Path | None = None) -> list[CustomFieldDefinition]:
    """Load the ordered custom field definitions from ``custom_fields.yaml``.

    The file is optional; a missing file yields no definitions. Each entry
    needs ``name`` and ``field_id`` and may set ``history_name`` (the changelog
    label, defaults to ``name``) and ``separator``.
    """
    yaml_path = Path(path) if path else Path(__file__).resolve().parents[2] / "custom_fields.yaml"
    if not yaml_path.exists():
        logger.debug("No custom field file at %s", yaml_path)
        return []
    data = yaml.safe_load(yaml_path.read_text()) or {}
    out: list[CustomFieldDefinition] = []
    for entry in data.get("custom_fields") or []:
        if not isinstance(entry, dict) or not entry.get("name") or not entry.get("field_id"):
            raise ValueError(f"Invalid custom field entry in {yaml_path}: {entry!r}")
        out.append(
            CustomFieldDefinition(
                name=str(entry["name"]),
                field_id=str(entry["field_id"]),
                history_name=normalize_field_name(entry.get("history_name") or entry["name"]),
                separator=str(entry.get("separator", MULTI_VALUE_SEPARATOR)),
            )
        )
    return out


def render_custom_value(definition: CustomFieldDefinition, value: Any) -> str:
    """Render a raw custom field payload from the issue fields as text.

    Handles the common Jira shapes: scalars, option/user objects and lists of
    either. Anything else is a parse failure rather than a guess.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, str | int | float):
        return str(value)
    if isinstance(value, dict):
        for key in ("value", "name", "displayName"):
            if isinstance(value.get(key), str):
                text = value[key]
                child = value.get("child")
                if isinstance(child, dict):
                    text = f"{text}{definition.separator}{render_custom_value(definition, child)}"
                return text
        raise CustomFieldParseError(
            f"Unrecognized object payload for {definition.name}: keys={sorted(value)}",
            field=definition.name,
        )
    if isinstance(value, list):
        return definition.separator.join(render_custom_value(definition, v) for v in value)
    raise CustomFieldParseError(
        f"Unsupported payload type for {definition.name}: {type(value).__name__}",
        field=definition.name,
    )


class CustomFieldApiParser:
    def parse_initial_value(self, definition: CustomFieldDefinition, issue: Issue) -> str:
        item = issue.first_history_item(normalize_field_name(definition.history_name))
        if item is not None:
            return item.from_string or ""
        return render_custom_value(definition, issue.custom_fields.get(definition.field_id))

    def parse_non_initial_value(
        self,
        definition: CustomFieldDefinition,
        prev_action: Action,
        history: History,
    ) -> str:
        history_name = normalize_field_name(definition.history_name)
        if history.item_exists(history_name):
            return history.get_item_last_value(history_name)
        return prev_action.custom_field_values.get(definition, "")
