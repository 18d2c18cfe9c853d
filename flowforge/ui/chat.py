from __future__ import annotations

from typing import List, Optional

import streamlit as st

from flowforge.llm.schemas import SuggestionGroup
from flowforge.services import ChatMessageView, ChatService, SuggestionService

from .projects import active_project


def render() -> None:
    """Requirements conversation that feeds suggestions into the project graph."""
    st.header("Requirements Assistant")
    st.write(
        "Answer the assistant's questions. Suggested features, tech stack entries, data entities"
        " and user flows are added to the project graph as they arrive."
    )

    project = active_project()
    if project is None:
        return

    _render_toasts()

    service = ChatService()
    history = service.history(project.id)

    with st.sidebar:
        st.subheader(project.title)
        if project.description:
            st.caption(project.description)
        if st.session_state.get("graph_version", 0) > st.session_state.get("graph_seen_version", 0):
            st.info("The project graph has new nodes. Open the Graph page to review them.")
        if history and st.button("Clear conversation"):
            service.clear_history(project.id)
            st.rerun()

    if not history:
        if st.button("Start conversation", type="primary"):
            with st.spinner("Contacting the assistant…"):
                turn = _run_turn(lambda: service.start_conversation(project.id))
            if turn is not None and turn.suggestions is not None:
                _apply_suggestions(project.id, turn.suggestions)
            st.rerun()
        return

    _render_history(history)

    latest = history[-1]
    if latest.role.value == "assistant" and latest.options:
        selected = st.multiselect("Pick one or more options", latest.options, key=f"options_{latest.id}")
        if selected and st.button("Send selection"):
            _send(service, project.id, "\n".join(selected))
            return

    prompt = st.chat_input("Describe your project or answer the question…")
    if prompt:
        _send(service, project.id, prompt)


def _render_history(history: List[ChatMessageView]) -> None:
    for message in history:
        with st.chat_message(message.role.value):
            st.markdown(message.content)
            if message.suggestions is not None:
                _render_suggestions(message.suggestions)


def _render_suggestions(group: SuggestionGroup) -> None:
    with st.expander(f"Suggestions ({group.type}, {len(group.items)})", expanded=False):
        for item in group.items:
            label = item.action_label or "Suggestion"
            st.markdown(f"**{item.title}** _({label})_")
            if item.description:
                st.caption(item.description)
            if item.metadata:
                st.json(item.metadata)


def _send(service: ChatService, project_id: int, text: str) -> None:
    with st.spinner("Waiting for the assistant…"):
        turn = _run_turn(lambda: service.send_message(project_id, text))
    if turn is not None and turn.suggestions is not None:
        _apply_suggestions(project_id, turn.suggestions)
    st.rerun()


def _run_turn(action):
    try:
        return action()
    except Exception as exc:  # noqa: BLE001
        st.error(f"Assistant request failed: {exc}")
        return None


def _apply_suggestions(project_id: int, group: SuggestionGroup) -> None:
    service = SuggestionService(notifier=_toast)
    service.process_suggestions(
        project_id,
        group,
        on_complete=_mark_graph_stale,
        is_active=lambda: st.session_state.get("project_id") == project_id,
    )


def _toast(level: str, message: str) -> None:
    # Displayed by _render_toasts after the rerun
    st.session_state.setdefault("chat_toasts", []).append((level, message))


def _render_toasts() -> None:
    for level, message in st.session_state.pop("chat_toasts", []):
        icon: Optional[str] = "⚠️" if level == "error" else "✅"
        st.toast(message, icon=icon)


def _mark_graph_stale() -> None:
    st.session_state["graph_version"] = st.session_state.get("graph_version", 0) + 1
