"""Central configuration, constants, tracked field names, and field name normalization."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

# =============================================================================
# Jira Connection Settings
# =============================================================================
JIRA_DEFAULT_SERVER = "https://jira.example.com"
TIMEZONE = "UTC"

# =============================================================================
# Sentinel identity for absent user references
# =============================================================================
INVALID_USER_DISPLAY_NAME = "Invalid User"
INVALID_USER_NAME = "invaliduser"

# =============================================================================
# Action kinds and literals
# =============================================================================
ACTION_CREATE = "create"
ACTION_UPDATE = "update"
ACTION_COMMENT = "comment"

FIELDS_CHANGED_CREATED = "created"
FIELDS_CHANGED_COMMENT = "comment"

# Jira renders date-only fields in the changelog with a midnight suffix
DUE_DATE_TIME_SUFFIX = " 00:00:00.0"

# =============================================================================
# Tracked Fields
# =============================================================================
# Canonical (lowercase) names of the business fields carried on every action.
TRACKED_FIELDS: Sequence[str] = (
    "status",
    "assignee",
    "reporter",
    "issuetype",
    "project",
    "projectkey",
    "resolution",
    "summary",
    "category",
    "fixversions",
    "duedate",
    "components",
    "labels",
)

# Fields whose changelog items carry a user reference key in ``from``/``to``
USER_FIELDS: frozenset[str] = frozenset({"assignee", "reporter"})

# Map changelog field labels to tracked names
# Keys should be lowercase for case-insensitive matching
CHANGELOG_FIELD_ALIASES: dict[str, str] = {
    "fix version": "fixversions",
    "fix versions": "fixversions",
    "fixversion": "fixversions",
    "component": "components",
    "due date": "duedate",
    "issue type": "issuetype",
    "label": "labels",
    "project key": "projectkey",
}

# Multi-valued current field values are joined with these separators
MULTI_VALUE_SEPARATOR = "|"
LABELS_SEPARATOR = " "

# Canonical field list for Jira fetches (changelog is requested via expand)
JIRA_FETCH_BASE_FIELDS = [
    "summary",
    "created",
    "creator",
    "assignee",
    "reporter",
    "status",
    "resolution",
    "issuetype",
    "project",
    "fixVersions",
    "duedate",
    "components",
    "labels",
    "comment",
]

# Parallel reconstruction tuning
# Threads only pay off when the user lookup has to go to the network.
ACTION_BUILD_MAX_WORKERS = 8
ACTION_BUILD_MIN_PARALLEL = 4  # below this, stay sequential to reduce overhead

ACTION_TABLE_COLUMNS: Sequence[str] = (
    "issue_key",
    "action",
    "timestamp",
    "actor",
    "fields_changed",
    "prev_status",
    "status",
    "assignee",
    "reporter",
    "resolution",
    "time_since_action",
    "time_in_state",
    "issue_age",
)


@dataclass(slots=True)
class AppSettings:
    max_table_rows: int = 1000
    user_cache_size: int = 10000


SETTINGS = AppSettings()


def normalize_field_name(name: str | None) -> str:
    """Normalize a changelog field label to its tracked field name.

    Handles variations like:
    - Case and whitespace: "  Status " -> "status"
    - Jira display labels: "Fix Version" -> "fixversions"

    Parameters
    ----------
    name : str or None
        Raw ``field`` value from a changelog item.

    Returns
    -------
    str
        Canonical field name, or the lowercased label if no alias matches.
    """
    if name is None:
        return ""
    cleaned = " ".join(str(name).split()).lower()
    return CHANGELOG_FIELD_ALIASES.get(cleaned, cleaned)
