from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from flowforge.core.errors import EdgeConflictError, NodeCreationError, NodeNotFoundError, NodeUpdateError
from flowforge.data import models
from flowforge.data.store import EdgeRecord, NodeRecord, SqlGraphStore
from flowforge.utils.categories import CategoryDescriptor, classify
from flowforge.utils.layout import NodeFootprint, compute_directional_position, opposite_handle

from .suggestion_service import EdgeSynthesizer, next_entry_id


logger = logging.getLogger(__name__)


@dataclass
class GraphSnapshot:
    project_id: int
    nodes: List[NodeRecord] = field(default_factory=list)
    edges: List[EdgeRecord] = field(default_factory=list)

    def node(self, node_id: int) -> Optional[NodeRecord]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


class NodeService:
    """Manual graph edits made from the canvas: adding, renaming, editing and moving nodes."""

    def __init__(self, store: Optional[SqlGraphStore] = None, footprint: Optional[NodeFootprint] = None):
        self.store = store or SqlGraphStore()
        self.footprint = footprint
        self.edges = EdgeSynthesizer(self.store)

    def snapshot(self, project_id: int) -> GraphSnapshot:
        return GraphSnapshot(
            project_id=project_id,
            nodes=self.store.list_nodes(project_id),
            edges=self.store.list_edges(project_id),
        )

    def create_child_node(
        self,
        project_id: int,
        parent_id: int,
        category: CategoryDescriptor | str,
        direction: models.Handle | str,
        *,
        title: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> NodeRecord:
        """Add a node next to ``parent`` on the given side and connect it.

        The edge leaves ``parent`` through ``direction`` and enters the new node
        on the opposite side. If the edge cannot be written the node is removed
        again and ``EdgeCreationError`` propagates.

        ``title`` names a multi-instance node (singletons always take their
        default title) and ``metadata`` seeds the node's document.
        """
        descriptor = classify(category) if isinstance(category, str) else category
        direction = models.Handle(direction)

        parent = self.store.get_node(parent_id)
        if parent is None or parent.project_id != project_id:
            raise NodeNotFoundError(parent_id)

        if descriptor.is_singleton:
            if self.store.find_node_by_category(project_id, descriptor.tag) is not None:
                raise NodeCreationError(f"Project {project_id} already has a {descriptor.display_name} node")
            title = descriptor.default_title
        elif title and title.strip():
            title = title.strip()
            if self.store.find_node_by_category_and_title(project_id, descriptor.tag, title) is not None:
                raise NodeCreationError(f"A {descriptor.display_name} node titled {title!r} already exists")
        else:
            title = self._unique_title(project_id, parent_id, descriptor, f"New {descriptor.display_name}")

        document = {**(metadata or {}), **descriptor.empty_metadata(title)}
        if descriptor.is_singleton and metadata and descriptor.list_field in metadata:
            document[descriptor.list_field] = self._numbered(metadata[descriptor.list_field])

        position = compute_directional_position(parent.position, direction, self.footprint)
        node = self.store.create_node(
            project_id,
            descriptor.tag,
            parent_id,
            title,
            position.x,
            position.y,
            document,
        )
        self.edges.connect(
            project_id,
            parent_id,
            node.id,
            direction,
            opposite_handle(direction),
            created=True,
        )
        logger.info("Added %s node %s beside node %s (%s)", descriptor.tag, node.id, parent_id, direction.value)
        return node

    def connect_nodes(
        self,
        project_id: int,
        source_id: int,
        target_id: int,
        edge_type: models.EdgeType | str = models.EdgeType.related_to,
    ) -> Optional[EdgeRecord]:
        """Link two existing nodes; returns ``None`` when the link already exists."""
        try:
            return self.store.create_edge(project_id, source_id, target_id, None, None, models.EdgeType(edge_type))
        except EdgeConflictError:
            return None

    def update_node_position(self, node_id: int, x: float, y: float) -> NodeRecord:
        return self.store.update_node_position(node_id, x, y)

    def update_node_title(self, node_id: int, title: str) -> NodeRecord:
        """Rename a category node.

        Multi-instance nodes carry their title in metadata as well, so the
        canonical field is rewritten in the same transaction. The anchor and
        singleton nodes keep their fixed titles.
        """
        node = self._editable(node_id)
        descriptor = classify(node.category)
        if descriptor.is_singleton:
            raise NodeUpdateError(f"{descriptor.display_name} nodes keep the title {descriptor.default_title!r}")
        cleaned = (title or "").strip()
        clash = self.store.find_node_by_category_and_title(node.project_id, node.category, cleaned)
        if clash is not None and clash.id != node_id:
            raise NodeUpdateError(f"A {descriptor.display_name} node titled {cleaned!r} already exists")
        metadata = dict(node.metadata)
        metadata[descriptor.canonical_field] = cleaned
        renamed = self.store.update_node_title(node_id, title, metadata)
        logger.info("Renamed node %s from %r to %r", node_id, node.title, renamed.title)
        return renamed

    def update_node_metadata(self, node_id: int, metadata: dict) -> NodeRecord:
        """Replace a node's metadata after checking it against its category schema."""
        node = self._editable(node_id)
        document = dict(metadata or {})
        descriptor = classify(node.category)
        if not descriptor.is_singleton:
            # The title is edited through update_node_title
            document[descriptor.canonical_field] = node.title
        return self.store.update_node_metadata(node_id, document)

    def update_entries(self, node_id: int, entries: List[dict]) -> NodeRecord:
        """Replace the entry list of a singleton node, numbering new entries."""
        node = self._editable(node_id)
        descriptor = classify(node.category)
        if not descriptor.is_singleton:
            raise NodeUpdateError(f"{descriptor.display_name} nodes have no entry list")
        metadata = dict(node.metadata)
        metadata[descriptor.list_field] = self._numbered(entries)
        return self.store.update_node_metadata(node_id, metadata)

    def delete_node(self, node_id: int) -> None:
        node = self.store.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        if node.category == models.ROOT_CATEGORY:
            raise ValueError("The project anchor node cannot be deleted")
        self.store.delete_node(node_id)

    def _editable(self, node_id: int) -> NodeRecord:
        node = self.store.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        if node.category == models.ROOT_CATEGORY:
            raise NodeUpdateError("The project anchor node is edited through the project itself")
        return node

    @staticmethod
    def _numbered(entries) -> List[dict]:
        numbered: List[dict] = []
        for entry in entries or []:
            if not isinstance(entry, dict):
                continue
            entry = {key: value for key, value in entry.items() if value is not None}
            if isinstance(entry.get("id"), float) and entry["id"].is_integer():
                entry["id"] = int(entry["id"])
            if not isinstance(entry.get("id"), int) or isinstance(entry.get("id"), bool):
                entry["id"] = next_entry_id(numbered + [e for e in entries if isinstance(e, dict)])
            numbered.append(entry)
        return numbered

    def _unique_title(self, project_id: int, parent_id: int, descriptor: CategoryDescriptor, base: str) -> str:
        taken = {
            node.title
            for node in self.store.list_nodes(project_id)
            if node.parent_id == parent_id and node.category == descriptor.tag
        }
        if base not in taken:
            return base
        suffix = 2
        while f"{base} {suffix}" in taken:
            suffix += 1
        return f"{base} {suffix}"
