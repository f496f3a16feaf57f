"""
Categories Router: /categories

  POST   /categories                      create (ancestors derived from the parent)
  GET    /categories/{id}
  POST   /categories/{id}/translate       translate the name into display names
  DELETE /categories/{id}/cache           forget the generation conversation
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import crud, schemas
from database.database import get_db
from generation.question_generator import QuestionGenerator
from generation.schemas import CategoryTranslateRequest, CategoryTranslationResult
from routers.deps import get_generator, get_translator
from translation.translator import TranslationOrchestrator

router = APIRouter(prefix="/categories", tags=["categories"])

log = logging.getLogger(__name__)


@router.post("", response_model=schemas.CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(category: schemas.CategoryCreate, db: Session = Depends(get_db)):
    """Create a category; its ancestors are the parent's ancestors plus the parent."""
    created = crud.create_category(db, category)
    log.info(f"[CATEGORY] created id={created.id} name={created.name!r} ancestors={created.ancestors}")
    return created


@router.get("/{category_id}", response_model=schemas.CategoryResponse)
def get_category(category_id: int, db: Session = Depends(get_db)):
    return crud.get_category_or_404(db, category_id, "get_category")


@router.post("/{category_id}/translate", response_model=CategoryTranslationResult)
async def translate_category(
    category_id: int,
    request: CategoryTranslateRequest,
    db: Session = Depends(get_db),
    translator: TranslationOrchestrator = Depends(get_translator),
):
    return await translator.translate_category(db, category_id, request.languages, request.source_language)


@router.delete("/{category_id}/cache")
def clear_generation_cache(
    category_id: int,
    generator: QuestionGenerator = Depends(get_generator),
):
    """Forget the category's generation conversation; the next batch starts fresh."""
    return {"category_id": category_id, "cleared": generator.clear_cache(category_id)}
