from __future__ import annotations

from typing import List, Optional


class FlowForgeError(Exception):
    """Base class for errors raised by the suggestion engine and graph store."""


class ProtocolParseError(FlowForgeError):
    """A SUGGESTIONS block was present but could not be decoded or validated."""


class UnknownCategoryError(FlowForgeError):
    """The category tag is not declared in the category registry."""

    def __init__(self, category: Optional[str]):
        super().__init__(f"Unknown suggestion category: {category!r}")
        self.category = category


class RootNodeMissingError(FlowForgeError):
    """The project has no anchor node to attach category nodes to."""

    def __init__(self, project_id: int):
        super().__init__(f"Root node not found for project {project_id}")
        self.project_id = project_id


class NodeNotFoundError(FlowForgeError):
    def __init__(self, node_id: int):
        super().__init__(f"Node {node_id} not found")
        self.node_id = node_id


class NodeCreationError(FlowForgeError):
    """The store refused to create a node."""


class NodeUpdateError(FlowForgeError):
    """The store refused to rename a node."""


class MetadataValidationError(FlowForgeError):
    """A metadata document does not fit its category schema."""


class EdgeConflictError(FlowForgeError):
    """An edge with the same (source, target, type) already exists."""

    def __init__(self, source_id: int, target_id: int, edge_type: str):
        super().__init__(f"Edge {source_id} -> {target_id} ({edge_type}) already exists")
        self.source_id = source_id
        self.target_id = target_id
        self.edge_type = edge_type


class EdgeCreationError(FlowForgeError):
    """The store refused to create an edge for a reason other than a duplicate.

    ``rollback_failures`` lists compensations that could not be completed after
    the failure, so a half-applied write stays visible to the caller.
    """

    def __init__(self, message: str, *, rollback_failures: Optional[List[str]] = None):
        super().__init__(message)
        self.rollback_failures: List[str] = list(rollback_failures or [])
