"""
SQLAlchemy models for the primary (working) store

Category → Question hierarchy plus append-only usage logs.
Locales, tags and language lists are JSON columns: a question is always
read and written as one document.
"""

import enum
import uuid

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database.database import Base


class QuestionStatus(str, enum.Enum):
    """Lifecycle states of a question"""
    GENERATED = "generated"
    PROOF_READING = "proof_reading"
    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"


class QuestionType(str, enum.Enum):
    """choice → text answer + 3 wrong answers; map → [lat, lng] answer"""
    CHOICE = "choice"
    MAP = "map"


def _new_question_id() -> str:
    return str(uuid.uuid4())


# ==========================================
# CATEGORIES
# ==========================================

class Category(Base):
    """
    Question category.
    ancestors is the root-to-parent path of ids; parent_id is its last element.
    locales holds [{"language", "value"}] display names.
    """
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    parent_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    ancestors = Column(JSON, nullable=False, default=list)
    locales = Column(JSON, nullable=False, default=list)

    questions = relationship("Question", back_populates="category")

    def display_name(self, language: str = None) -> str:
        """Localised name for prompts; falls back to the canonical name."""
        if language:
            base = language.split("-")[0].lower()
            for loc in self.locales or []:
                code = str(loc.get("language", "")).lower()
                if code == language.lower() or code.split("-")[0] == base:
                    return loc.get("value") or self.name
        return self.name

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}', parent_id={self.parent_id})>"


# ==========================================
# QUESTIONS
# ==========================================

class Question(Base):
    """
    Central aggregate.
    locales: ordered [{"language", "question", "correct", "wrong"?, "is_valid", "sources"?}],
    first entry is the reference locale unless a caller names another.
    main_db_id is the integer key of the legacy projection once promoted.
    """
    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=_new_question_id)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    main_db_id = Column(Integer, nullable=True, unique=True, index=True)
    status = Column(String(20), nullable=False, default=QuestionStatus.GENERATED.value, index=True)
    type = Column(String(10), nullable=False, default=QuestionType.CHOICE.value)
    difficulty = Column(Integer, nullable=False, default=3)
    required_languages = Column(JSON, nullable=False, default=list)
    tags = Column(JSON, nullable=False, default=list)
    locales = Column(JSON, nullable=False, default=list)
    track = Column(String(255), nullable=True)
    audio_id = Column(String(255), nullable=True)
    image_id = Column(String(255), nullable=True)
    author_id = Column(String(255), nullable=True)
    is_valid = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category = relationship("Category", back_populates="questions")

    def __repr__(self):
        return f"<Question(id={self.id}, status='{self.status}', type='{self.type}')>"


# ==========================================
# USAGE LOGS (append-only)
# ==========================================

class QuestionGenerationLog(Base):
    """One billed completion call: category → generated question ids → tokens."""
    __tablename__ = "question_generation_logs"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, nullable=False, index=True)
    question_ids = Column(JSON, nullable=False, default=list)
    tokens_used = Column(Integer, nullable=False)
    completion_tokens = Column(Integer, nullable=False, default=0)
    request_prompt = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class TranslationUsageLog(Base):
    """One billed translated string."""
    __tablename__ = "translation_usage_logs"

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(String(64), nullable=False, index=True)   # question id (or category id)
    characters_used = Column(Integer, nullable=False)
    source_language = Column(String(16), nullable=True)
    target_language = Column(String(16), nullable=False)
    request_text = Column(Text, nullable=False)
    result_text = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
