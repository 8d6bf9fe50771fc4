"""Routing rule schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from txrouter.models.enums import AUTO_DETECT, FieldType, MatchType

ProjectTarget = int | Literal["auto-detect"]


class RuleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    field_type: FieldType = FieldType.memo
    field_name: str | None = None
    match_type: MatchType = MatchType.contains
    match_value: str = Field(max_length=500)
    target_project_id: ProjectTarget = AUTO_DETECT
    priority: int = 1
    is_active: bool = True
    case_sensitive: bool = False
    exclude_patterns: list[str] | None = None

    @field_validator("exclude_patterns")
    @classmethod
    def _drop_blank_patterns(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return None
        return [p.strip() for p in v if p and p.strip()]


class RuleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    field_type: FieldType | None = None
    field_name: str | None = None
    match_type: MatchType | None = None
    match_value: str | None = Field(default=None, max_length=500)
    target_project_id: ProjectTarget | None = None
    priority: int | None = None
    is_active: bool | None = None
    case_sensitive: bool | None = None
    exclude_patterns: list[str] | None = None


class RuleResponse(BaseModel):
    id: int
    company_id: int
    name: str
    description: str | None = None
    field_type: FieldType
    field_name: str | None = None
    match_type: MatchType
    match_value: str
    target_project_id: ProjectTarget
    priority: int
    is_active: bool
    case_sensitive: bool
    exclude_patterns: list[str] | None = None
    matches_count: int
    last_matched_at: datetime | None = None
    revision: int
    created_at: datetime
    updated_at: datetime
