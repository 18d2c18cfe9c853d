from __future__ import annotations

from typing import Any, Dict, List

import networkx as nx
import orjson
import streamlit as st
import streamlit.components.v1 as components
from pyvis.network import Network

from flowforge.data import models
from flowforge.data.store import NodeRecord
from flowforge.services import GraphSnapshot, NodeService
from flowforge.utils.categories import CATEGORY_REGISTRY, color_for

from .projects import active_project


def render() -> None:
    """Render the project graph with its stored canvas positions."""
    st.header("Project Graph")
    st.write("Nodes keep the positions assigned when they were created. Add nodes manually below.")

    project = active_project()
    if project is None:
        return

    st.session_state["graph_seen_version"] = st.session_state.get("graph_version", 0)
    service = NodeService()
    snapshot = service.snapshot(project.id)

    _render_graph(snapshot)
    _render_node_table(snapshot)

    st.divider()
    st.subheader("Add a node")
    _render_create_form(service, snapshot)

    st.divider()
    st.subheader("Node details")
    _render_node_details(service, snapshot)


def _render_graph(snapshot: GraphSnapshot) -> None:
    if not snapshot.nodes:
        st.info("This project has no nodes yet.")
        return

    graph = nx.DiGraph()
    for node in snapshot.nodes:
        graph.add_node(
            node.id,
            label=node.title,
            title=_format_node_tooltip(node),
            color=color_for(node.category),
            x=node.position_x,
            y=node.position_y,
            shape="box",
        )
    for edge in snapshot.edges:
        graph.add_edge(edge.source_id, edge.target_id, title=edge.edge_type.value)

    net = Network(height="600px", width="100%", directed=True)
    net.from_nx(graph)
    net.toggle_physics(False)

    html = net.generate_html(notebook=False)
    components.html(html, height=650, scrolling=True)


def _render_node_table(snapshot: GraphSnapshot) -> None:
    rows: List[Dict[str, Any]] = []
    for node in snapshot.nodes:
        rows.append(
            {
                "id": node.id,
                "title": node.title,
                "category": node.category,
                "status": node.status.value,
                "x": round(node.position_x, 1),
                "y": round(node.position_y, 1),
            }
        )
    if rows:
        st.dataframe(rows, use_container_width=True, hide_index=True)


def _render_create_form(service: NodeService, snapshot: GraphSnapshot) -> None:
    if not snapshot.nodes:
        return
    parents = {f"{node.title} (#{node.id})": node.id for node in snapshot.nodes}
    categories = {descriptor.display_name: tag for tag, descriptor in CATEGORY_REGISTRY.items()}
    with st.form("create_child_node"):
        parent_label = st.selectbox("Next to", list(parents.keys()))
        category_label = st.selectbox("Category", list(categories.keys()))
        direction = st.selectbox("Side", [handle.value for handle in models.Handle], index=1)
        title = st.text_input("Title", help="Used for Database and User Flows nodes")
        description = st.text_area("Description")
        submitted = st.form_submit_button("Add node")
    if not submitted:
        return
    try:
        node = service.create_child_node(
            snapshot.project_id,
            parents[parent_label],
            categories[category_label],
            direction,
            title=title or None,
            metadata=_seed_metadata(categories[category_label], description),
        )
    except Exception as exc:  # noqa: BLE001
        st.error(f"Could not add node: {exc}")
        return
    st.success(f"Added '{node.title}'.")
    st.rerun()


def _render_node_details(service: NodeService, snapshot: GraphSnapshot) -> None:
    candidates = [node for node in snapshot.nodes if node.category != models.ROOT_CATEGORY]
    if not candidates:
        st.caption("Category nodes appear here once suggestions are applied.")
        return
    labels = {f"{node.title} (#{node.id})": node for node in candidates}
    node = labels[st.selectbox("Node", list(labels.keys()))]
    _render_edit_form(service, node)

    col1, col2, col3 = st.columns(3)
    x = col1.number_input("x", value=float(node.position_x), key=f"x_{node.id}")
    y = col2.number_input("y", value=float(node.position_y), key=f"y_{node.id}")
    if col3.button("Move", key=f"move_{node.id}"):
        service.update_node_position(node.id, x, y)
        st.rerun()
    if st.button("Delete node", key=f"delete_{node.id}"):
        service.delete_node(node.id)
        st.rerun()


def _seed_metadata(category: str, description: str) -> Dict[str, Any]:
    descriptor = CATEGORY_REGISTRY[category]
    if not description.strip() or descriptor.is_singleton:
        return {}
    return {"description": description.strip()}


def _render_edit_form(service: NodeService, node: NodeRecord) -> None:
    descriptor = CATEGORY_REGISTRY.get(node.category)
    if descriptor is None:
        st.json(node.metadata)
        return

    with st.form(f"edit_node_{node.id}"):
        if descriptor.is_singleton:
            st.caption(descriptor.display_name)
            entries = st.data_editor(
                list(node.metadata.get(descriptor.list_field) or []),
                num_rows="dynamic",
                use_container_width=True,
                key=f"entries_{node.id}",
            )
        else:
            title = st.text_input("Title", value=node.title)
            raw = st.text_area(
                "Metadata (JSON)",
                value=orjson.dumps(node.metadata, option=orjson.OPT_INDENT_2).decode(),
                height=220,
            )
        submitted = st.form_submit_button("Save changes")
    if not submitted:
        return

    try:
        if descriptor.is_singleton:
            service.update_entries(node.id, [_clean_row(row) for row in entries])
        else:
            if title.strip() != node.title:
                service.update_node_title(node.id, title)
            service.update_node_metadata(node.id, orjson.loads(raw))
    except orjson.JSONDecodeError as exc:
        st.error(f"Metadata is not valid JSON: {exc}")
        return
    except Exception as exc:  # noqa: BLE001
        st.error(f"Could not save node: {exc}")
        return
    st.success("Saved.")
    st.rerun()


def _clean_row(row: Dict[str, Any]) -> Dict[str, Any]:
    # Empty cells come back as None or NaN
    return {key: value for key, value in dict(row).items() if value is not None and value == value}


def _format_node_tooltip(node: NodeRecord) -> str:
    lines = [node.title, f"Category: {node.category}"]
    if node.category in CATEGORY_REGISTRY:
        descriptor = CATEGORY_REGISTRY[node.category]
        if descriptor.is_singleton:
            entries = node.metadata.get(descriptor.list_field) or []
            lines.append(f"Entries: {len(entries)}")
        elif node.metadata.get("description"):
            lines.append(str(node.metadata["description"]))
    return "\n".join(lines)
