"""
Stats Router: /stats

Usage audit: completion tokens per generation call, billed DeepL characters
per translated string.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import schemas
from database.database import get_db
from generation.usage_tracker import UsageMeter
from routers.deps import get_usage

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/generation-logs", response_model=List[schemas.GenerationLogResponse])
def generation_logs(
    filters: schemas.GenerationLogFilters = Depends(),
    db: Session = Depends(get_db),
    usage: UsageMeter = Depends(get_usage),
):
    return usage.generation_logs(db, filters)


@router.get("/generation-logs/totals", response_model=schemas.GenerationTotals)
def generation_totals(db: Session = Depends(get_db), usage: UsageMeter = Depends(get_usage)):
    return usage.generation_totals(db)


@router.delete("/generation-logs")
def clear_generation_logs(db: Session = Depends(get_db), usage: UsageMeter = Depends(get_usage)):
    return {"deleted": usage.clear_generation_logs(db)}


@router.get("/translation-logs", response_model=schemas.TranslationLogPage)
def translation_logs(
    filters: schemas.TranslationLogFilters = Depends(),
    db: Session = Depends(get_db),
    usage: UsageMeter = Depends(get_usage),
):
    return usage.translation_logs(db, filters)


@router.get("/translation-logs/totals", response_model=schemas.TranslationTotals)
def translation_totals(db: Session = Depends(get_db), usage: UsageMeter = Depends(get_usage)):
    return usage.translation_totals(db)


@router.delete("/translation-logs")
def clear_translation_logs(db: Session = Depends(get_db), usage: UsageMeter = Depends(get_usage)):
    return {"deleted": usage.clear_translation_logs(db)}
