"""Connection setup page: collect Jira credentials and initialize ActionService."""

from __future__ import annotations

import streamlit as st

from jira_actions.app import register_page
from jira_actions.core.config import JIRA_DEFAULT_SERVER
from jira_actions.core.custom_fields import load_custom_field_definitions
from jira_actions.core.jira_client import JiraAPI
from jira_actions.core.service import ActionService


def read_jira_secrets() -> tuple[str | None, str | None, str | None]:
    """Return (server, email, token) from a [jira] secrets section or top-level keys."""
    jira_secrets = st.secrets.get("jira", {})
    server = jira_secrets.get("JIRA_SERVER") or st.secrets.get("JIRA_SERVER")
    email = jira_secrets.get("JIRA_EMAIL") or st.secrets.get("JIRA_EMAIL")
    token = (
        jira_secrets.get("JIRA_API_TOKEN")
        or st.secrets.get("JIRA_API_TOKEN")
        or jira_secrets.get("JIRA_TOKEN")
        or st.secrets.get("JIRA_TOKEN")
    )
    return server, email, token


@register_page("Setup / Connection")
def setup_page():
    st.title("Jira Connection Setup")
    st.caption("Enter credentials (use secrets manager in production).")

    secret_server, secret_email, secret_token = read_jira_secrets()
    server = st.text_input(
        "Jira Server URL",
        value=st.session_state.get("jira_server") or secret_server or "",
        placeholder=JIRA_DEFAULT_SERVER,
    )
    email = st.text_input(
        "Email / Username",
        value=st.session_state.get("jira_email") or secret_email or "",
    )
    token = st.text_input("API Token", type="password", value=secret_token or "")
    fields_path = st.text_input(
        "Custom field definitions (YAML path, optional)",
        value=st.session_state.get("custom_fields_path", ""),
    )
    init_btn = st.button("Initialize Connection", type="primary")

    if init_btn:
        if not (server and email and token):
            st.error("All fields required.")
            return
        try:
            custom_fields = load_custom_field_definitions(fields_path or None)
        except (OSError, ValueError) as exc:
            st.error(f"Could not load custom field definitions: {exc}")
            return
        try:
            api = JiraAPI(server, email, token)
        except Exception as e:  # pragma: no cover
            st.error(f"Failed to initialize Jira client: {e}")
            return
        st.session_state["jira_server"] = server
        st.session_state["jira_email"] = email
        st.session_state["custom_fields_path"] = fields_path
        st.session_state["action_service"] = ActionService(api, custom_fields=custom_fields)
        st.success(f"Connection initialized ({len(custom_fields)} custom fields tracked).")

    if "action_service" in st.session_state:
        st.info("ActionService ready.")
