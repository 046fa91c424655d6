"""Application entry point: page registry and router."""

from __future__ import annotations

import streamlit as st

PAGES = {}


def register_page(label):
    def decorator(func):
        PAGES[label] = func
        return func

    return decorator


def main():
    st.sidebar.title("Jira Issue Actions")
    pages = sorted(PAGES.keys())
    if not pages:
        st.write("No pages registered yet.")
        return
    # Send first-time visitors to setup until a service exists
    if "Setup / Connection" in pages and "action_service" not in st.session_state:
        default = pages.index("Setup / Connection")
    else:
        default = 0
    page = st.sidebar.selectbox("Page", pages, index=default)
    PAGES[page]()


if __name__ == "__main__":
    main()
