"""Static registry of requirement-node categories.

Every category-specific rule (cardinality, default title, connection handles,
metadata layout) is declared here and nowhere else.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Optional, Type

from pydantic import BaseModel

from flowforge.core.errors import UnknownCategoryError
from flowforge.data.metadata import (
    DataEntityMetadata,
    FeatureSetMetadata,
    RootMetadata,
    TechStackMetadata,
    UserFlowMetadata,
)
from flowforge.data.models import ROOT_CATEGORY, Handle


DEFAULT_COLOR = "#6c757d"
ROOT_COLOR = "#343a40"


class Cardinality(str, enum.Enum):
    singleton = "singleton"
    multi_instance = "multi_instance"


@dataclass(frozen=True)
class CategoryDescriptor:
    tag: str
    display_name: str
    cardinality: Cardinality
    default_title: str
    # Edges leave the anchor through ``source_handle`` and enter the category node through ``target_handle``
    source_handle: Handle
    target_handle: Handle
    metadata_schema: Type[BaseModel]
    # Singletons keep a list of entries under ``list_field``, titled by ``entry_title_field``
    list_field: Optional[str] = None
    entry_title_field: Optional[str] = None
    # Multi-instance nodes mirror their title into ``canonical_field``
    canonical_field: Optional[str] = None
    # Fill colour on the graph page
    color: str = DEFAULT_COLOR

    @property
    def is_singleton(self) -> bool:
        return self.cardinality == Cardinality.singleton

    def empty_metadata(self, title: str) -> dict:
        """Return the metadata shell written when a node of this category is created."""
        if self.is_singleton:
            return {self.list_field: []}
        return {self.canonical_field: title}


FEATURE_SET = "feature-set"
TECH_STACK = "tech-stack"
DATA_ENTITY = "data-entity"
USER_FLOW = "user-flow"


CATEGORY_REGISTRY: Dict[str, CategoryDescriptor] = {
    FEATURE_SET: CategoryDescriptor(
        tag=FEATURE_SET,
        display_name="Features",
        cardinality=Cardinality.singleton,
        default_title="Features",
        source_handle=Handle.right,
        target_handle=Handle.left,
        metadata_schema=FeatureSetMetadata,
        list_field="features",
        entry_title_field="title",
        color="#1f77b4",
    ),
    TECH_STACK: CategoryDescriptor(
        tag=TECH_STACK,
        display_name="Tech Stack",
        cardinality=Cardinality.singleton,
        default_title="Tech Stack",
        source_handle=Handle.bottom,
        target_handle=Handle.top,
        metadata_schema=TechStackMetadata,
        list_field="techStack",
        entry_title_field="name",
        color="#ff7f0e",
    ),
    DATA_ENTITY: CategoryDescriptor(
        tag=DATA_ENTITY,
        display_name="Database",
        cardinality=Cardinality.multi_instance,
        default_title="Database",
        source_handle=Handle.left,
        target_handle=Handle.right,
        metadata_schema=DataEntityMetadata,
        canonical_field="entity_name",
        color="#2ca02c",
    ),
    USER_FLOW: CategoryDescriptor(
        tag=USER_FLOW,
        display_name="User Flows",
        cardinality=Cardinality.multi_instance,
        default_title="User Flows",
        source_handle=Handle.top,
        target_handle=Handle.bottom,
        metadata_schema=UserFlowMetadata,
        canonical_field="flow_name",
        color="#9467bd",
    ),
}

# Tags emitted by the assistant protocol and older store category names
_ALIASES: Dict[str, str] = {
    "features": FEATURE_SET,
    "feature": FEATURE_SET,
    "tech_stack": TECH_STACK,
    "techstack": TECH_STACK,
    "database": DATA_ENTITY,
    "entity": DATA_ENTITY,
    "user_flows": USER_FLOW,
    "user-flows": USER_FLOW,
}


def normalize_category(tag: Optional[str]) -> Optional[str]:
    """Map a raw category tag onto its registry key, or ``None`` when unknown."""
    if not isinstance(tag, str):
        return None
    cleaned = tag.strip().lower()
    if cleaned in CATEGORY_REGISTRY:
        return cleaned
    if cleaned in _ALIASES:
        return _ALIASES[cleaned]
    dashed = cleaned.replace("_", "-").replace(" ", "-")
    if dashed in CATEGORY_REGISTRY:
        return dashed
    return _ALIASES.get(dashed)


def classify(tag: Optional[str]) -> CategoryDescriptor:
    """Return the descriptor for ``tag`` or raise ``UnknownCategoryError``."""
    key = normalize_category(tag)
    if key is None:
        raise UnknownCategoryError(tag)
    return CATEGORY_REGISTRY[key]


def color_for(category: str) -> str:
    """Return the graph colour for a stored category tag."""
    if category == ROOT_CATEGORY:
        return ROOT_COLOR
    key = normalize_category(category)
    return CATEGORY_REGISTRY[key].color if key else DEFAULT_COLOR


def metadata_schema_for(category: str) -> Type[BaseModel]:
    if category == ROOT_CATEGORY:
        return RootMetadata
    return classify(category).metadata_schema
