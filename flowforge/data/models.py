import enum
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import CheckConstraint, Column, UniqueConstraint
from sqlalchemy.dialects.sqlite import JSON as SQLiteJSON
from sqlmodel import Field, SQLModel


# --- Enumerations -----------------------------------------------------------------


class NodeStatus(str, enum.Enum):
    draft = "draft"
    in_progress = "in_progress"
    completed = "completed"
    archived = "archived"


class NodePriority(str, enum.Enum):
    core = "core"
    important = "important"
    nice_to_have = "nice_to_have"
    future = "future"


class EdgeType(str, enum.Enum):
    parent_child = "parent_child"
    depends_on = "depends_on"
    implements = "implements"
    related_to = "related_to"
    conflicts_with = "conflicts_with"


class Handle(str, enum.Enum):
    """Compass connection points on a node."""

    top = "top"
    right = "right"
    bottom = "bottom"
    left = "left"


class MessageRole(str, enum.Enum):
    user = "user"
    assistant = "assistant"


ROOT_CATEGORY = "root"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Core domain tables ------------------------------------------------------------


class Project(SQLModel, table=True):
    __tablename__ = "projects"
    __table_args__ = {"extend_existing": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(index=True)
    description: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class Node(SQLModel, table=True):
    __tablename__ = "nodes"
    __table_args__ = (
        CheckConstraint(
            "length(trim(title)) >= 1 AND length(trim(title)) <= 200",
            name="nodes_title_length",
        ),
        CheckConstraint(
            "status IN ('draft','in_progress','completed','archived')",
            name="nodes_status_values",
        ),
        UniqueConstraint("project_id", "parent_id", "category", "title", name="nodes_unique_category_title_per_parent"),
        {"extend_existing": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", nullable=False, index=True)
    category: str = Field(nullable=False, index=True)
    parent_id: Optional[int] = Field(default=None, foreign_key="nodes.id", index=True)
    title: str = Field(nullable=False)
    position_x: float = Field(default=0.0, nullable=False)
    position_y: float = Field(default=0.0, nullable=False)
    status: NodeStatus = Field(default=NodeStatus.draft, nullable=False)
    priority: Optional[NodePriority] = Field(default=None)
    # ``metadata`` is reserved on declarative classes, so the attribute is ``meta``
    meta: dict = Field(default_factory=dict, sa_column=Column("metadata", SQLiteJSON))
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)


class Edge(SQLModel, table=True):
    __tablename__ = "edges"
    __table_args__ = (
        CheckConstraint("source_id != target_id", name="edges_no_self_loop"),
        CheckConstraint(
            "label IS NULL OR length(label) <= 100",
            name="edges_label_length",
        ),
        UniqueConstraint("source_id", "target_id", "edge_type", name="edges_unique_connection"),
        {"extend_existing": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", nullable=False, index=True)
    source_id: int = Field(foreign_key="nodes.id", nullable=False, index=True)
    target_id: int = Field(foreign_key="nodes.id", nullable=False, index=True)
    source_handle: Optional[Handle] = Field(default=None)
    target_handle: Optional[Handle] = Field(default=None)
    edge_type: EdgeType = Field(default=EdgeType.parent_child, nullable=False, index=True)
    label: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class ChatMessage(SQLModel, table=True):
    __tablename__ = "chat_messages"
    __table_args__ = {"extend_existing": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", nullable=False, index=True)
    role: MessageRole = Field(nullable=False)
    content: str = Field(nullable=False)
    options: List[str] = Field(default_factory=list, sa_column=Column(SQLiteJSON))
    suggestions: Optional[dict] = Field(default=None, sa_column=Column(SQLiteJSON))
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
