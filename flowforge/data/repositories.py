from __future__ import annotations

import logging
from typing import List, Optional

from sqlmodel import Session, func, select

from . import models


logger = logging.getLogger(__name__)


class ProjectRepository:
    """Persistence helpers for projects and their anchor nodes."""

    def __init__(self, session: Session):
        """Store the active SQLModel session for subsequent operations."""
        self.session = session

    def get(self, project_id: int) -> Optional[models.Project]:
        return self.session.get(models.Project, project_id)

    def list_projects(self) -> List[models.Project]:
        """Return all projects ordered by newest first."""
        statement = select(models.Project).order_by(models.Project.created_at.desc())
        return list(self.session.exec(statement))

    def create_project(self, *, title: str, description: Optional[str] = None) -> models.Project:
        """Insert a project together with its unparented anchor node at the canvas origin."""
        project = models.Project(title=title.strip(), description=description)
        self.session.add(project)
        self.session.flush()
        anchor = models.Node(
            project_id=project.id,
            category=models.ROOT_CATEGORY,
            parent_id=None,
            title=project.title,
            position_x=0.0,
            position_y=0.0,
            meta={},
        )
        self.session.add(anchor)
        self.session.flush()
        return project


class NodeRepository:
    """Utility methods for reading or creating graph nodes."""

    def __init__(self, session: Session):
        """Bind the repository to a SQLModel session."""
        self.session = session

    def get(self, node_id: int) -> Optional[models.Node]:
        return self.session.get(models.Node, node_id)

    def get_anchor(self, project_id: int) -> Optional[models.Node]:
        """Return the project's unparented root node."""
        statement = (
            select(models.Node)
            .where(models.Node.project_id == project_id)
            .where(models.Node.parent_id.is_(None))
            .where(models.Node.category == models.ROOT_CATEGORY)
            .order_by(models.Node.id)
        )
        return self.session.exec(statement).first()

    def find_by_category(self, project_id: int, category: str) -> Optional[models.Node]:
        statement = (
            select(models.Node)
            .where(models.Node.project_id == project_id)
            .where(models.Node.category == category)
            .order_by(models.Node.id)
        )
        return self.session.exec(statement).first()

    def find_by_category_and_title(self, project_id: int, category: str, title: str) -> Optional[models.Node]:
        """Return the node of ``category`` whose title matches ``title`` exactly."""
        statement = (
            select(models.Node)
            .where(models.Node.project_id == project_id)
            .where(models.Node.category == category)
            .where(models.Node.title == title)
            .order_by(models.Node.id)
        )
        return self.session.exec(statement).first()

    def count_children(self, parent_id: int) -> int:
        statement = select(func.count()).select_from(models.Node).where(models.Node.parent_id == parent_id)
        return self.session.exec(statement).one()

    def list_for_project(self, project_id: int) -> List[models.Node]:
        statement = (
            select(models.Node)
            .where(models.Node.project_id == project_id)
            .order_by(models.Node.id)
        )
        return list(self.session.exec(statement))

    def create_node(
        self,
        *,
        project_id: int,
        category: str,
        parent_id: Optional[int],
        title: str,
        position_x: float,
        position_y: float,
        meta: Optional[dict] = None,
    ) -> models.Node:
        """Insert a new node row and return the persisted instance."""
        node = models.Node(
            project_id=project_id,
            category=category,
            parent_id=parent_id,
            title=title,
            position_x=position_x,
            position_y=position_y,
            status=models.NodeStatus.draft,
            meta=meta or {},
        )
        self.session.add(node)
        self.session.flush()
        return node

    def update_metadata(self, node: models.Node, meta: dict) -> models.Node:
        # Assign a fresh dict so the JSON column registers the change
        node.meta = dict(meta)
        node.updated_at = models.utcnow()
        self.session.add(node)
        self.session.flush()
        return node

    def update_title(self, node: models.Node, title: str, meta: Optional[dict] = None) -> models.Node:
        node.title = title
        if meta is not None:
            node.meta = dict(meta)
        node.updated_at = models.utcnow()
        self.session.add(node)
        self.session.flush()
        return node

    def update_position(self, node: models.Node, *, position_x: float, position_y: float) -> models.Node:
        node.position_x = position_x
        node.position_y = position_y
        node.updated_at = models.utcnow()
        self.session.add(node)
        return node

    def delete_node(self, node: models.Node) -> None:
        """Remove ``node``, its descendants and every edge touching them."""
        children = list(self.session.exec(select(models.Node).where(models.Node.parent_id == node.id)))
        for child in children:
            self.delete_node(child)
        EdgeRepository(self.session).delete_for_node(node.id)
        self.session.delete(node)
        self.session.flush()


class EdgeRepository:
    """Operations for the directed connections between nodes."""

    def __init__(self, session: Session):
        """Store the SQLModel session."""
        self.session = session

    def find(self, source_id: int, target_id: int, edge_type: models.EdgeType) -> Optional[models.Edge]:
        statement = (
            select(models.Edge)
            .where(models.Edge.source_id == source_id)
            .where(models.Edge.target_id == target_id)
            .where(models.Edge.edge_type == edge_type)
        )
        return self.session.exec(statement).first()

    def create_edge(
        self,
        *,
        project_id: int,
        source_id: int,
        target_id: int,
        source_handle: Optional[models.Handle],
        target_handle: Optional[models.Handle],
        edge_type: models.EdgeType = models.EdgeType.parent_child,
        label: Optional[str] = None,
    ) -> models.Edge:
        edge = models.Edge(
            project_id=project_id,
            source_id=source_id,
            target_id=target_id,
            source_handle=source_handle,
            target_handle=target_handle,
            edge_type=edge_type,
            label=label,
        )
        self.session.add(edge)
        self.session.flush()
        return edge

    def list_for_project(self, project_id: int) -> List[models.Edge]:
        statement = (
            select(models.Edge)
            .where(models.Edge.project_id == project_id)
            .order_by(models.Edge.id)
        )
        return list(self.session.exec(statement))

    def delete_for_node(self, node_id: int) -> int:
        """Delete every edge that starts or ends at ``node_id`` and return how many were removed."""
        statement = select(models.Edge).where(
            (models.Edge.source_id == node_id) | (models.Edge.target_id == node_id)
        )
        removed = 0
        for edge in self.session.exec(statement):
            self.session.delete(edge)
            removed += 1
        return removed


class ChatHistoryRepository:
    """Per-project transcript of the requirements conversation."""

    def __init__(self, session: Session):
        self.session = session

    def list_messages(self, project_id: int, limit: Optional[int] = None) -> List[models.ChatMessage]:
        """Return messages oldest first; ``limit`` keeps only the most recent ones."""
        statement = (
            select(models.ChatMessage)
            .where(models.ChatMessage.project_id == project_id)
            .order_by(models.ChatMessage.id.desc())
        )
        if limit is not None:
            statement = statement.limit(limit)
        return list(reversed(list(self.session.exec(statement))))

    def add_message(
        self,
        *,
        project_id: int,
        role: models.MessageRole,
        content: str,
        options: Optional[List[str]] = None,
        suggestions: Optional[dict] = None,
    ) -> models.ChatMessage:
        message = models.ChatMessage(
            project_id=project_id,
            role=role,
            content=content,
            options=list(options or []),
            suggestions=suggestions,
        )
        self.session.add(message)
        self.session.flush()
        return message

    def clear(self, project_id: int) -> int:
        removed = 0
        statement = select(models.ChatMessage).where(models.ChatMessage.project_id == project_id)
        for message in self.session.exec(statement):
            self.session.delete(message)
            removed += 1
        logger.info("Cleared %d chat messages for project %s", removed, project_id)
        return removed
