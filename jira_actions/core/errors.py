"""Error types raised while reconstructing issue actions."""

from __future__ import annotations


class ActionsError(RuntimeError):
    """Base class; ``field`` names the tracked or custom field involved, if known."""

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field


class UserLookupError(ActionsError):
    """The user lookup backend could not service a present reference."""


class CustomFieldParseError(ActionsError):
    """A custom field payload could not be interpreted."""


class MissingFieldError(ActionsError):
    """Neither history nor current state yields a value for a field."""


class ReconstructionError(ActionsError):
    """Reconstruction of one issue aborted; wraps the underlying failure.

    ``event_index`` is 0 for the create action and ``n`` for the n-th event
    folded after it.
    """

    def __init__(
        self,
        issue_key: str,
        message: str,
        *,
        field: str | None = None,
        event_index: int | None = None,
    ):
        super().__init__(message, field=field)
        self.issue_key = issue_key
        self.event_index = event_index

    def __str__(self) -> str:
        parts = [f"issue={self.issue_key}"]
        if self.event_index is not None:
            parts.append(f"event={self.event_index}")
        if self.field:
            parts.append(f"field={self.field}")
        return f"{super().__str__()} ({', '.join(parts)})"
