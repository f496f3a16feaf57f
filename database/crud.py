"""
CRUD operations for the primary store
All question/category reads and writes go through these functions
"""

import math
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import String, cast, func
from sqlalchemy.orm import Session

from database import models, schemas
from services.errors import Conflict, NotFound


# ==========================================
# CATEGORY CRUD
# ==========================================

def get_category(db: Session, category_id: int) -> Optional[models.Category]:
    """Get category by ID"""
    return db.query(models.Category).filter(models.Category.id == category_id).first()


def get_category_or_404(db: Session, category_id: int, operation: str = "") -> models.Category:
    category = get_category(db, category_id)
    if not category:
        raise NotFound("category", category_id, operation)
    return category


def get_category_by_name(db: Session, name: str) -> Optional[models.Category]:
    """Get category by name"""
    return db.query(models.Category).filter(models.Category.name == name).first()


def create_category(db: Session, category: schemas.CategoryCreate) -> models.Category:
    """Create a new category; ancestors = parent's ancestors + [parent_id]"""
    if get_category_by_name(db, category.name):
        raise Conflict("category with this name already exists", "create_category", name=category.name)

    ancestors: List[int] = []
    if category.parent_id is not None:
        parent = get_category_or_404(db, category.parent_id, "create_category")
        ancestors = list(parent.ancestors or []) + [parent.id]

    db_category = models.Category(
        id=category.id,
        name=category.name,
        parent_id=category.parent_id,
        ancestors=ancestors,
        locales=[loc.model_dump() for loc in category.locales],
    )
    db.add(db_category)
    db.commit()
    db.refresh(db_category)
    return db_category


def save_category(db: Session, category: models.Category) -> models.Category:
    db.commit()
    db.refresh(category)
    return category


# ==========================================
# QUESTION CRUD
# ==========================================

def get_question(db: Session, question_id: str) -> Optional[models.Question]:
    """Get question by ID"""
    return db.query(models.Question).filter(models.Question.id == question_id).first()


def get_question_or_404(db: Session, question_id: str, operation: str = "") -> models.Question:
    question = get_question(db, question_id)
    if not question:
        raise NotFound("question", question_id, operation)
    return question


def get_questions_by_ids(db: Session, question_ids: Iterable[str]) -> List[models.Question]:
    ids = list(question_ids)
    if not ids:
        return []
    return db.query(models.Question).filter(models.Question.id.in_(ids)).all()


def get_questions_by_category(db: Session, category_id: int) -> List[models.Question]:
    """All questions of a category, oldest first"""
    return (
        db.query(models.Question)
        .filter(models.Question.category_id == category_id)
        .order_by(models.Question.created_at, models.Question.id)
        .all()
    )


def list_questions(db: Session, filters: schemas.QuestionFilters) -> Tuple[List[models.Question], int, int]:
    """
    Filtered, paginated question list.

    Returns:
        (questions, total, total_pages)
    """
    q = db.query(models.Question)
    if filters.status:
        q = q.filter(models.Question.status == filters.status.value)
    if filters.type:
        q = q.filter(models.Question.type == filters.type.value)
    if filters.difficulty:
        q = q.filter(models.Question.difficulty == filters.difficulty)
    if filters.category_id:
        q = q.filter(models.Question.category_id == filters.category_id)
    if filters.title:
        # locales is a JSON document; a text cast is enough for a contains-search
        q = q.filter(func.lower(cast(models.Question.locales, String)).contains(filters.title.lower()))

    total = q.count()
    questions = (
        q.order_by(models.Question.created_at.desc(), models.Question.id)
        .offset((filters.page - 1) * filters.limit)
        .limit(filters.limit)
        .all()
    )
    total_pages = math.ceil(total / filters.limit) if total else 1
    return questions, total, total_pages


def add_questions(db: Session, questions: List[models.Question]) -> List[models.Question]:
    """Bulk insert in one transaction"""
    db.add_all(questions)
    db.commit()
    for question in questions:
        db.refresh(question)
    return questions


def save_question(db: Session, question: models.Question) -> models.Question:
    db.commit()
    db.refresh(question)
    return question


def delete_question(db: Session, question: models.Question) -> None:
    db.delete(question)
    db.commit()


def delete_question_locale(db: Session, question_id: str, language: str) -> models.Question:
    """Remove one locale; the last remaining locale cannot be removed"""
    question = get_question_or_404(db, question_id, "delete_locale")
    locales = list(question.locales or [])
    remaining = [loc for loc in locales if loc.get("language") != language]
    if len(remaining) == len(locales):
        raise NotFound("locale", f"{question_id}/{language}", "delete_locale")
    if not remaining:
        raise Conflict("a question must keep at least one locale", "delete_locale", question=question_id)

    question.locales = remaining
    return save_question(db, question)
