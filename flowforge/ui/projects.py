from __future__ import annotations

from typing import Optional

import streamlit as st

from flowforge.data.store import ProjectRecord, SqlGraphStore


def render() -> None:
    """Create projects and pick the one the other pages work on."""
    st.header("Projects")
    st.caption("Each project starts with a single anchor node that the assistant builds around.")

    _render_flash()

    store = SqlGraphStore()
    projects = store.list_projects()
    if projects:
        labels = {f"{project.title} (#{project.id})": project.id for project in projects}
        current = st.session_state.get("project_id")
        ids = list(labels.values())
        index = ids.index(current) if current in ids else 0
        choice = st.selectbox("Active project", list(labels.keys()), index=index)
        st.session_state["project_id"] = labels[choice]
    else:
        st.info("No projects yet. Create one below to start the requirements conversation.")

    st.divider()
    st.subheader("New project")
    with st.form("create_project", clear_on_submit=True):
        title = st.text_input("Title", max_chars=200)
        description = st.text_area("Description", help="Optional context passed to the assistant.")
        submitted = st.form_submit_button("Create project")
    if submitted:
        if not title.strip():
            st.error("A project title is required.")
            return
        project = store.create_project(title.strip(), description.strip() or None)
        st.session_state["project_id"] = project.id
        st.session_state["projects_flash"] = {"type": "success", "message": f"Created project '{project.title}'."}
        st.rerun()


def active_project() -> Optional[ProjectRecord]:
    """Return the project selected on this page, or show a hint when none is."""
    project_id = st.session_state.get("project_id")
    project = SqlGraphStore().get_project(project_id) if project_id is not None else None
    if project is None:
        st.info("Select or create a project on the Projects page first.")
    return project


def _render_flash() -> None:
    flash = st.session_state.pop("projects_flash", None)
    if not flash:
        return
    if flash.get("type") == "success":
        st.success(flash.get("message", ""))
    else:
        st.info(flash.get("message", ""))
