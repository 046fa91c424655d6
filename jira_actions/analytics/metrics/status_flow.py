"""Status dwell analysis over reconstructed action frames.

Each action's ``time_since_action`` was spent in the status held by the action
before it, so summing those gaps per (issue, previous status) gives the time
an issue sat in each status up to its latest action.
"""

from __future__ import annotations

import pandas as pd

DURATION_COLUMNS = ["issue_key", "status", "duration_seconds", "duration_days"]


def status_durations(frame: pd.DataFrame) -> pd.DataFrame:
    """Sum seconds spent per issue and status.

    Parameters
    ----------
    frame : pd.DataFrame
        Output of ``actions_to_dataframe`` (one row per action).

    Returns
    -------
    pd.DataFrame
        Columns: issue_key, status, duration_seconds, duration_days.
        Empty when the frame lacks the needed columns or has no transitions.
    """
    required = {"issue_key", "status", "timestamp", "time_since_action"}
    if frame.empty or not required.issubset(frame.columns):
        return pd.DataFrame(columns=DURATION_COLUMNS)

    work = frame.sort_values(["issue_key", "timestamp"], kind="stable").copy()
    work["held_status"] = work.groupby("issue_key", sort=False)["status"].shift(1)
    work = work.dropna(subset=["held_status"])
    if work.empty:
        return pd.DataFrame(columns=DURATION_COLUMNS)

    out = (
        work.groupby(["issue_key", "held_status"], sort=False)["time_since_action"]
        .sum()
        .reset_index()
        .rename(columns={"held_status": "status", "time_since_action": "duration_seconds"})
    )
    out["duration_days"] = out["duration_seconds"] / 86400.0
    return out[DURATION_COLUMNS]


def current_status_age(frame: pd.DataFrame) -> pd.DataFrame:
    """Latest status and time-in-state per issue, as of its last action."""
    required = {"issue_key", "status", "timestamp", "time_in_state"}
    if frame.empty or not required.issubset(frame.columns):
        return pd.DataFrame(columns=["issue_key", "status", "time_in_state", "timestamp"])
    latest = frame.sort_values(["issue_key", "timestamp"], kind="stable").groupby("issue_key").tail(1)
    return latest[["issue_key", "status", "time_in_state", "timestamp"]].reset_index(drop=True)
