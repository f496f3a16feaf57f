"""
SQLAlchemy models for the legacy store

Schema-compatible subset of the primary models, keyed by integers allocated
at promotion time (no autoincrement: the key is chosen by the promoter).
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func

from database.database import LegacyBase


class LegacyQuestion(LegacyBase):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, autoincrement=False)
    origin_id = Column(String(36), nullable=True, index=True)   # primary-store question id
    category_id = Column(Integer, nullable=False, index=True)
    status = Column(String(20), nullable=False, default="generated")
    type = Column(String(10), nullable=False, default="choice")
    difficulty = Column(Integer, nullable=False)
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

    def __repr__(self):
        return f"<LegacyQuestion(id={self.id}, origin_id={self.origin_id}, status='{self.status}')>"
