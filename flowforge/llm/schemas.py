from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class SuggestionItem(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str = Field(..., min_length=1)
    description: str = Field(default="")
    action_label: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("actionLabel", "action_label"),
        serialization_alias="actionLabel",
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("description", mode="before")
    @classmethod
    def _none_description(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_metadata(cls, value: Any) -> Any:
        return {} if value is None else value


class SuggestionGroup(BaseModel):
    # The category tag is kept verbatim; the registry decides whether it is known.
    type: str = Field(..., min_length=1)
    items: List[SuggestionItem] = Field(default_factory=list)


class ParsedResponse(BaseModel):
    display_message: str = Field(default="")
    options: Optional[List[str]] = None
    suggestions: Optional[SuggestionGroup] = None

