"""Graph store used by the suggestion engine.

Every call runs in its own transaction. Nothing spans a node insert and the
edge insert that follows it, which is why callers compensate on failure
instead of relying on a rollback.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol

from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from flowforge.core.errors import (
    EdgeConflictError,
    EdgeCreationError,
    MetadataValidationError,
    NodeCreationError,
    NodeNotFoundError,
    NodeUpdateError,
    UnknownCategoryError,
)
from flowforge.utils.categories import metadata_schema_for
from flowforge.utils.layout import Position

from . import models
from .db import session_scope
from .repositories import EdgeRepository, NodeRepository, ProjectRepository


logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200


@dataclass
class NodeRecord:
    id: int
    project_id: int
    category: str
    parent_id: Optional[int]
    title: str
    position_x: float
    position_y: float
    status: models.NodeStatus
    priority: Optional[models.NodePriority]
    metadata: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def position(self) -> Position:
        return Position(x=self.position_x, y=self.position_y)

    @classmethod
    def from_model(cls, node: models.Node) -> "NodeRecord":
        return cls(
            id=node.id,
            project_id=node.project_id,
            category=node.category,
            parent_id=node.parent_id,
            title=node.title,
            position_x=node.position_x,
            position_y=node.position_y,
            status=node.status,
            priority=node.priority,
            metadata=copy.deepcopy(node.meta or {}),
            created_at=node.created_at,
            updated_at=node.updated_at,
        )


@dataclass
class EdgeRecord:
    id: int
    project_id: int
    source_id: int
    target_id: int
    source_handle: Optional[models.Handle]
    target_handle: Optional[models.Handle]
    edge_type: models.EdgeType
    label: Optional[str] = None

    @classmethod
    def from_model(cls, edge: models.Edge) -> "EdgeRecord":
        return cls(
            id=edge.id,
            project_id=edge.project_id,
            source_id=edge.source_id,
            target_id=edge.target_id,
            source_handle=edge.source_handle,
            target_handle=edge.target_handle,
            edge_type=edge.edge_type,
            label=edge.label,
        )


@dataclass
class ProjectRecord:
    id: int
    title: str
    description: Optional[str]
    created_at: Optional[datetime] = None


class GraphStore(Protocol):
    """Operations the suggestion engine needs from the project graph."""

    def get_anchor_node(self, project_id: int) -> Optional[NodeRecord]: ...

    def get_node(self, node_id: int) -> Optional[NodeRecord]: ...

    def find_node_by_category(self, project_id: int, category: str) -> Optional[NodeRecord]: ...

    def find_node_by_category_and_title(
        self, project_id: int, category: str, title: str
    ) -> Optional[NodeRecord]: ...

    def count_children(self, parent_id: int) -> int: ...

    def create_node(
        self,
        project_id: int,
        category: str,
        parent_id: Optional[int],
        title: str,
        x: float,
        y: float,
        metadata: Optional[dict] = None,
    ) -> NodeRecord: ...

    def update_node_metadata(self, node_id: int, metadata: dict) -> NodeRecord: ...

    def create_edge(
        self,
        project_id: int,
        source_id: int,
        target_id: int,
        source_handle: Optional[models.Handle],
        target_handle: Optional[models.Handle],
        edge_type: models.EdgeType = models.EdgeType.parent_child,
    ) -> EdgeRecord: ...

    def delete_node(self, node_id: int) -> None: ...


def validate_metadata(category: str, metadata: Optional[dict]) -> dict:
    """Check ``metadata`` against the category schema and return a detached copy."""
    document = copy.deepcopy(metadata or {})
    if not isinstance(document, dict):
        raise MetadataValidationError(f"Metadata for {category!r} must be an object")
    try:
        schema = metadata_schema_for(category)
        schema.model_validate(document)
    except UnknownCategoryError as exc:
        raise MetadataValidationError(str(exc)) from exc
    except ValidationError as exc:
        raise MetadataValidationError(f"Invalid metadata for {category!r}: {exc}") from exc
    return document


def clean_title(title: Optional[str]) -> Optional[str]:
    """Return ``title`` trimmed, or ``None`` when it is empty or too long."""
    cleaned = (title or "").strip()
    if not cleaned or len(cleaned) > MAX_TITLE_LENGTH:
        return None
    return cleaned


class SqlGraphStore:
    """``GraphStore`` backed by the SQLModel tables."""

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine

    # --- Projects ------------------------------------------------------------------

    def create_project(self, title: str, description: Optional[str] = None) -> ProjectRecord:
        with session_scope(self.engine) as session:
            project = ProjectRepository(session).create_project(title=title, description=description)
            return ProjectRecord(
                id=project.id,
                title=project.title,
                description=project.description,
                created_at=project.created_at,
            )

    def list_projects(self) -> List[ProjectRecord]:
        with session_scope(self.engine) as session:
            return [
                ProjectRecord(id=p.id, title=p.title, description=p.description, created_at=p.created_at)
                for p in ProjectRepository(session).list_projects()
            ]

    def get_project(self, project_id: int) -> Optional[ProjectRecord]:
        with session_scope(self.engine) as session:
            project = ProjectRepository(session).get(project_id)
            if project is None:
                return None
            return ProjectRecord(
                id=project.id,
                title=project.title,
                description=project.description,
                created_at=project.created_at,
            )

    # --- Lookups -------------------------------------------------------------------

    def get_anchor_node(self, project_id: int) -> Optional[NodeRecord]:
        with session_scope(self.engine) as session:
            node = NodeRepository(session).get_anchor(project_id)
            return NodeRecord.from_model(node) if node else None

    def get_node(self, node_id: int) -> Optional[NodeRecord]:
        with session_scope(self.engine) as session:
            node = NodeRepository(session).get(node_id)
            return NodeRecord.from_model(node) if node else None

    def find_node_by_category(self, project_id: int, category: str) -> Optional[NodeRecord]:
        with session_scope(self.engine) as session:
            node = NodeRepository(session).find_by_category(project_id, category)
            return NodeRecord.from_model(node) if node else None

    def find_node_by_category_and_title(
        self, project_id: int, category: str, title: str
    ) -> Optional[NodeRecord]:
        with session_scope(self.engine) as session:
            node = NodeRepository(session).find_by_category_and_title(project_id, category, title)
            return NodeRecord.from_model(node) if node else None

    def count_children(self, parent_id: int) -> int:
        with session_scope(self.engine) as session:
            return NodeRepository(session).count_children(parent_id)

    def list_nodes(self, project_id: int) -> List[NodeRecord]:
        with session_scope(self.engine) as session:
            return [NodeRecord.from_model(node) for node in NodeRepository(session).list_for_project(project_id)]

    def list_edges(self, project_id: int) -> List[EdgeRecord]:
        with session_scope(self.engine) as session:
            return [EdgeRecord.from_model(edge) for edge in EdgeRepository(session).list_for_project(project_id)]

    # --- Writes --------------------------------------------------------------------

    def create_node(
        self,
        project_id: int,
        category: str,
        parent_id: Optional[int],
        title: str,
        x: float,
        y: float,
        metadata: Optional[dict] = None,
    ) -> NodeRecord:
        cleaned = clean_title(title)
        if cleaned is None:
            raise NodeCreationError(f"Node title must be 1-{MAX_TITLE_LENGTH} characters")
        try:
            document = validate_metadata(category, metadata)
        except MetadataValidationError as exc:
            raise NodeCreationError(str(exc)) from exc

        try:
            with session_scope(self.engine) as session:
                node = NodeRepository(session).create_node(
                    project_id=project_id,
                    category=category,
                    parent_id=parent_id,
                    title=cleaned,
                    position_x=float(x),
                    position_y=float(y),
                    meta=document,
                )
                return NodeRecord.from_model(node)
        except SQLAlchemyError as exc:
            logger.error("Node insert failed for project %s (%s %r): %s", project_id, category, cleaned, exc)
            raise NodeCreationError(f"Failed to create {category} node {cleaned!r}") from exc

    def update_node_metadata(self, node_id: int, metadata: dict) -> NodeRecord:
        with session_scope(self.engine) as session:
            repo = NodeRepository(session)
            node = repo.get(node_id)
            if node is None:
                raise NodeNotFoundError(node_id)
            document = validate_metadata(node.category, metadata)
            return NodeRecord.from_model(repo.update_metadata(node, document))

    def update_node_title(self, node_id: int, title: str, metadata: Optional[dict] = None) -> NodeRecord:
        """Rename a node, optionally replacing its metadata in the same transaction."""
        cleaned = clean_title(title)
        if cleaned is None:
            raise NodeUpdateError(f"Node title must be 1-{MAX_TITLE_LENGTH} characters")
        try:
            with session_scope(self.engine) as session:
                repo = NodeRepository(session)
                node = repo.get(node_id)
                if node is None:
                    raise NodeNotFoundError(node_id)
                document = validate_metadata(node.category, metadata) if metadata is not None else None
                return NodeRecord.from_model(repo.update_title(node, cleaned, document))
        except SQLAlchemyError as exc:
            logger.error("Renaming node %s to %r failed: %s", node_id, cleaned, exc)
            raise NodeUpdateError(f"Cannot rename node {node_id} to {cleaned!r}") from exc

    def update_node_position(self, node_id: int, x: float, y: float) -> NodeRecord:
        with session_scope(self.engine) as session:
            repo = NodeRepository(session)
            node = repo.get(node_id)
            if node is None:
                raise NodeNotFoundError(node_id)
            return NodeRecord.from_model(repo.update_position(node, position_x=float(x), position_y=float(y)))

    def create_edge(
        self,
        project_id: int,
        source_id: int,
        target_id: int,
        source_handle: Optional[models.Handle],
        target_handle: Optional[models.Handle],
        edge_type: models.EdgeType = models.EdgeType.parent_child,
    ) -> EdgeRecord:
        """Insert an edge; duplicates raise ``EdgeConflictError``, other refusals ``EdgeCreationError``."""
        edge_type = models.EdgeType(edge_type)
        if source_id == target_id:
            raise EdgeCreationError(f"Refusing self-loop edge on node {source_id}")
        try:
            with session_scope(self.engine) as session:
                nodes = NodeRepository(session)
                for node_id in (source_id, target_id):
                    node = nodes.get(node_id)
                    if node is None or node.project_id != project_id:
                        raise EdgeCreationError(f"Node {node_id} does not belong to project {project_id}")
                edges = EdgeRepository(session)
                if edges.find(source_id, target_id, edge_type) is not None:
                    raise EdgeConflictError(source_id, target_id, edge_type.value)
                edge = edges.create_edge(
                    project_id=project_id,
                    source_id=source_id,
                    target_id=target_id,
                    source_handle=models.Handle(source_handle) if source_handle else None,
                    target_handle=models.Handle(target_handle) if target_handle else None,
                    edge_type=edge_type,
                )
                return EdgeRecord.from_model(edge)
        except IntegrityError as exc:
            if "UNIQUE" in str(exc.orig).upper():
                raise EdgeConflictError(source_id, target_id, edge_type.value) from exc
            raise EdgeCreationError(f"Edge {source_id} -> {target_id} rejected: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            raise EdgeCreationError(f"Edge {source_id} -> {target_id} failed: {exc}") from exc

    def delete_node(self, node_id: int) -> None:
        with session_scope(self.engine) as session:
            repo = NodeRepository(session)
            node = repo.get(node_id)
            if node is None:
                raise NodeNotFoundError(node_id)
            repo.delete_node(node)
