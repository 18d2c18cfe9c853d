"""Per-category metadata documents stored on nodes.

Each category owns one schema. Documents are validated against it whenever the
store writes metadata; keys the schema does not declare are kept as-is so that
fields added by the assistant or by manual edits survive later merges.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _MetadataModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class FeatureEntry(_MetadataModel):
    id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None


class FeatureSetMetadata(_MetadataModel):
    features: List[FeatureEntry] = Field(default_factory=list)


class TechStackEntry(_MetadataModel):
    id: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    version: Optional[str | float | int] = None


class TechStackMetadata(_MetadataModel):
    techStack: List[TechStackEntry] = Field(default_factory=list)


class DataEntityMetadata(_MetadataModel):
    entity_name: Optional[str] = None
    description: Optional[str] = None
    security_model: Optional[str] = None
    notes: Optional[str] = None


class UserFlowMetadata(_MetadataModel):
    flow_name: Optional[str] = None
    description: Optional[str] = None
    start_state: Optional[str] = None
    end_state: Optional[str] = None
    steps: Any = None
    notes: Optional[str] = None


class RootMetadata(_MetadataModel):
    pass
