"""
Pydantic schemas for request/response validation
Separate from SQLAlchemy models for clean API contracts
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from database.models import QuestionStatus, QuestionType


# ==========================================
# CATEGORY SCHEMAS
# ==========================================

class CategoryLocale(BaseModel):
    language: str = Field(..., min_length=2)
    value: str = Field(..., min_length=1)


class CategoryCreate(BaseModel):
    """Schema for creating a new Category"""
    id: Optional[int] = Field(None, gt=0, description="Explicit id; generated when omitted")
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: Optional[int] = Field(None, gt=0)
    locales: List[CategoryLocale] = Field(default_factory=list)


class CategoryResponse(BaseModel):
    id: int
    name: str
    parent_id: Optional[int] = None
    ancestors: List[int] = Field(default_factory=list)
    locales: List[CategoryLocale] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


# ==========================================
# QUESTION QUERY SCHEMAS
# ==========================================

class QuestionFilters(BaseModel):
    """Filters for the question list; page/limit fall back to 1/10"""
    page: int = 1
    limit: int = 10
    status: Optional[QuestionStatus] = None
    type: Optional[QuestionType] = None
    difficulty: Optional[int] = Field(None, ge=1, le=5)
    category_id: Optional[int] = None
    title: Optional[str] = None

    @field_validator("page", "limit", mode="before")
    @classmethod
    def _positive_or_default(cls, v, info):
        default = 1 if info.field_name == "page" else 10
        try:
            v = int(v)
        except (TypeError, ValueError):
            return default
        return v if v > 0 else default


# ==========================================
# USAGE LOG SCHEMAS
# ==========================================

class GenerationLogFilters(BaseModel):
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    min_tokens: Optional[int] = Field(None, ge=0)
    max_tokens: Optional[int] = Field(None, ge=0)


class TranslationLogFilters(BaseModel):
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    min_characters: Optional[int] = Field(None, ge=0)
    max_characters: Optional[int] = Field(None, ge=0)
    source_language: Optional[str] = None
    target_language: Optional[str] = None
    page: int = 1
    limit: int = 10

    @field_validator("page", "limit", mode="before")
    @classmethod
    def _positive_or_default(cls, v, info):
        default = 1 if info.field_name == "page" else 10
        try:
            v = int(v)
        except (TypeError, ValueError):
            return default
        return v if v > 0 else default


class GenerationLogResponse(BaseModel):
    id: int
    category_id: int
    question_ids: List[str]
    tokens_used: int
    completion_tokens: int
    request_prompt: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TranslationLogResponse(BaseModel):
    id: int
    subject_id: str
    characters_used: int
    source_language: Optional[str] = None
    target_language: str
    request_text: str
    result_text: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TranslationLogPage(BaseModel):
    logs: List[TranslationLogResponse]
    total_characters: int
    total_requests: int
    total_pages: int


class GenerationTotals(BaseModel):
    total_tokens: int
    total_requests: int


class TranslationTotals(BaseModel):
    total_characters: int
    total_requests: int