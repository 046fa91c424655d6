"""Issue actions page: reconstruct and inspect the action history of issues."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, timedelta

import pandas as pd
import streamlit as st

from jira_actions.analytics.metrics.status_flow import current_status_age, status_durations
from jira_actions.app import register_page
from jira_actions.core.config import ACTION_TABLE_COLUMNS, SETTINGS
from jira_actions.core.mappers import actions_to_dataframe
from jira_actions.core.models import Action
from jira_actions.visual.progress import ProgressReporter

logger = logging.getLogger(__name__)


def build_action_table(actions: Iterable[Action]) -> pd.DataFrame:
    """Action frame with the display columns first, custom fields after."""
    df = actions_to_dataframe(actions)
    if df.empty:
        return df
    leading = [c for c in ACTION_TABLE_COLUMNS if c in df.columns]
    trailing = [c for c in df.columns if c not in leading]
    return df[leading + trailing].head(SETTINGS.max_table_rows)


def _render_frames(df: pd.DataFrame) -> None:
    st.dataframe(df, hide_index=True, width="stretch")
    durations = status_durations(df)
    if not durations.empty:
        st.markdown("#### Time per status")
        st.dataframe(durations, hide_index=True, width="stretch")
    current = current_status_age(df)
    if not current.empty:
        st.markdown("#### Current status age")
        st.dataframe(current, hide_index=True, width="stretch")


@register_page("Issue Actions")
def render():
    st.title("Issue Actions")

    service = st.session_state.get("action_service")
    if service is None:
        st.warning("Initialize the Jira connection on the Setup page first.")
        return

    st.markdown("### Single issue")
    issue_key_input = st.text_input("Issue key", value=st.session_state.get("actions_issue_key", ""))
    if st.button("Reconstruct issue", type="primary") and issue_key_input.strip():
        issue_key = issue_key_input.strip().upper()
        st.session_state["actions_issue_key"] = issue_key
        reporter = ProgressReporter(f"Reconstructing actions for {issue_key}")
        try:
            actions = service.fetch_issue_actions(issue_key)
        except RuntimeError as exc:
            logger.warning("Reconstruction of %s failed: %s", issue_key, exc)
            reporter.error(f"Failed to reconstruct {issue_key}: {exc}")
        else:
            reporter.complete(f"{len(actions)} actions for {issue_key}")
            _render_frames(build_action_table(actions))

    st.markdown("---")
    st.markdown("### Project window")
    project_key = st.text_input("Project key", value=st.session_state.get("actions_project_key", ""))
    today = date.today()
    window = st.date_input("Window", value=(today - timedelta(days=7), today))
    if not isinstance(window, tuple) or len(window) != 2:
        st.info("Pick both a start and an end date.")
        return
    start_date, end_date = window
    if st.button("Reconstruct project") and project_key.strip():
        key = project_key.strip().upper()
        st.session_state["actions_project_key"] = key
        reporter = ProgressReporter(f"Reconstructing actions for {key}")
        start = datetime.combine(start_date, datetime.min.time())
        end = datetime.combine(end_date, datetime.min.time())
        try:
            batch = service.fetch_project_actions(key, start, end, progress=reporter.callback)
        except RuntimeError as exc:
            reporter.error(f"Failed to fetch {key}: {exc}")
            return
        reporter.complete(f"{len(batch.actions)} issues reconstructed, {len(batch.failures)} skipped")
        all_actions = [a for actions in batch.actions.values() for a in actions]
        _render_frames(build_action_table(all_actions))
        if batch.failures:
            st.markdown("#### Skipped issues")
            st.dataframe(
                pd.DataFrame(
                    [
                        {"issue_key": k, "event": e.event_index, "field": e.field, "error": str(e)}
                        for k, e in batch.failures.items()
                    ]
                ),
                hide_index=True,
                width="stretch",
            )
