from __future__ import annotations

import streamlit as st

from flowforge.core.config import settings
from flowforge.core import logging as _logging  # noqa: F401 ensures logging configured
from flowforge.data.db import init_db
from flowforge.ui import chat, graph, projects


TAB_MAP = {
    "Projects": projects.render,
    "Chat": chat.render,
    "Graph": graph.render,
}


def bootstrap() -> None:
    """Perform one-time bootstrap tasks."""

    init_db()


def main() -> None:
    st.set_page_config(page_title=settings.app_name, layout="wide")
    bootstrap()

    st.sidebar.title(settings.app_name)
    st.sidebar.caption("Conversational requirements capture backed by a project graph")

    tab_name = st.sidebar.radio("Workflow", list(TAB_MAP.keys()), index=0)
    render_tab = TAB_MAP[tab_name]
    render_tab()


if __name__ == "__main__":
    main()
