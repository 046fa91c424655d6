"""Convenience launcher for the Streamlit app.

Usage:
  streamlit run run_dashboard.py

Automatically imports every module in ``jira_actions/pages`` so each page
decorated with ``@register_page`` registers itself without manual edits here.
"""

import logging
from importlib import import_module
from pathlib import Path

import streamlit as st

from jira_actions.app import main

st.set_page_config(layout="wide")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("jira_actions")


def _auto_init_action_service():
    """Initialize the action service from Streamlit secrets if available."""
    if "action_service" in st.session_state:
        return

    from jira_actions.pages.setup import read_jira_secrets

    server, email, token = read_jira_secrets()
    if server and email and token:
        try:
            from jira_actions.core.custom_fields import load_custom_field_definitions
            from jira_actions.core.jira_client import JiraAPI
            from jira_actions.core.service import ActionService

            api = JiraAPI(server, email, token)
            st.session_state["jira_server"] = server
            st.session_state["action_service"] = ActionService(
                api, custom_fields=load_custom_field_definitions()
            )
            st.sidebar.success("Jira connection successful!")
        except Exception as e:
            st.sidebar.error(f"Jira connection failed: {e}")
            st.session_state.pop("action_service", None)
    else:
        st.sidebar.warning("Jira secrets not found. Please use the Setup page.")


PAGES_DIR = Path(__file__).parent / "jira_actions" / "pages"
for py in sorted(PAGES_DIR.glob("[!_]*.py")):
    mod_name = f"jira_actions.pages.{py.stem}"
    try:
        import_module(mod_name)
    except Exception as e:  # pragma: no cover
        logger.error("Failed importing page %s: %s", mod_name, e)

_auto_init_action_service()

if __name__ == "__main__":
    main()
