"""
Questions Router: /questions

  POST   /questions/generate                       generate a batch for a category
  POST   /questions/import                         extract questions from pasted text
  GET    /questions                                filtered, paginated list
  GET    /questions/duplicates/{category_id}       exact + semantic duplicate groups
  POST   /questions/validate-many                  fact-check many questions
  POST   /questions/confirm-many | reject-many | promote-many
  GET    /questions/{id}
  PUT    /questions/{id}                           reviewer edit (locales, tags, review queue)
  POST   /questions/{id}/translate                 upsert one locale
  DELETE /questions/{id}/locales/{language}
  POST   /questions/{id}/validate                  fact-check one question
  POST   /questions/{id}/validate-translation      check one locale against the reference
  POST   /questions/{id}/validate-translations     check every locale
  POST   /questions/{id}/confirm | reject | promote

Batch endpoints answer 207 with per-item outcomes when any item failed.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import crud
from database.database import get_db
from database.schemas import QuestionFilters
from generation.duplicate_detector import DuplicateDetector
from generation.question_generator import QuestionGenerator
from generation.schemas import (
    BatchOutcome,
    ConfirmResult,
    CorrectnessVerdict,
    DuplicateReport,
    GenerateQuestionsRequest,
    GenerationResult,
    IdsRequest,
    ImportQuestionsRequest,
    PromotionResult,
    QuestionOut,
    QuestionPage,
    QuestionUpdate,
    RejectResult,
    TranslateRequest,
    TranslationCheckRequest,
    TranslationResult,
    TranslationVerdict,
)
from generation.validator import ValidationAgent
from routers.deps import (
    get_duplicate_detector,
    get_generator,
    get_lifecycle,
    get_translator,
    get_validator,
)
from services.errors import PartialBatchFailure
from services.lifecycle import LifecycleCoordinator
from translation.translator import TranslationOrchestrator

router = APIRouter(prefix="/questions", tags=["questions"])

log = logging.getLogger("generation.pipeline")


def _settle(outcome: BatchOutcome, operation: str) -> BatchOutcome:
    if outcome.failed:
        raise PartialBatchFailure(outcome, operation)
    return outcome


# ─── Generation ────────────────────────────────────────────────────────────────

@router.post("/generate", response_model=GenerationResult)
async def generate_questions(
    request: GenerateQuestionsRequest,
    db: Session = Depends(get_db),
    generator: QuestionGenerator = Depends(get_generator),
):
    """
    Generate `count` questions for a category in the first required language.
    Successive calls for the same category continue one conversation, so the
    model avoids repeating itself until the token ceiling is reached.
    """
    return await generator.generate(db, request)


@router.post("/import", response_model=GenerationResult)
async def import_questions(
    request: ImportQuestionsRequest,
    db: Session = Depends(get_db),
    generator: QuestionGenerator = Depends(get_generator),
):
    return await generator.import_questions(db, request)


# ─── Reads ─────────────────────────────────────────────────────────────────────

@router.get("", response_model=QuestionPage)
def list_questions(filters: QuestionFilters = Depends(), db: Session = Depends(get_db)):
    questions, total, total_pages = crud.list_questions(db, filters)
    return QuestionPage(
        questions=[QuestionOut.model_validate(q) for q in questions],
        total=total,
        total_pages=total_pages,
    )


@router.get("/duplicates/{category_id}", response_model=DuplicateReport)
async def find_duplicates(
    category_id: int,
    db: Session = Depends(get_db),
    detector: DuplicateDetector = Depends(get_duplicate_detector),
):
    return await detector.detect(db, category_id)


# ─── Batches ───────────────────────────────────────────────────────────────────

@router.post("/validate-many", response_model=BatchOutcome)
async def validate_many(
    request: IdsRequest,
    db: Session = Depends(get_db),
    validator: ValidationAgent = Depends(get_validator),
):
    return _settle(await validator.validate_many(db, request.ids), "validate_many")


@router.post("/confirm-many", response_model=BatchOutcome)
async def confirm_many(
    request: IdsRequest,
    db: Session = Depends(get_db),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    return _settle(await lifecycle.confirm_many(db, request.ids), "confirm_many")


@router.post("/reject-many", response_model=BatchOutcome)
async def reject_many(
    request: IdsRequest,
    db: Session = Depends(get_db),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    return _settle(await lifecycle.reject_many(db, request.ids), "reject_many")


@router.post("/promote-many", response_model=BatchOutcome)
async def promote_many(
    request: IdsRequest,
    db: Session = Depends(get_db),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    return _settle(await lifecycle.promote_many(db, request.ids), "promote_many")


# ─── Single question ───────────────────────────────────────────────────────────

@router.get("/{question_id}", response_model=QuestionOut)
def get_question(question_id: str, db: Session = Depends(get_db)):
    return crud.get_question_or_404(db, question_id, "get_question")


@router.put("/{question_id}", response_model=QuestionOut)
async def update_question(
    question_id: str,
    changes: QuestionUpdate,
    db: Session = Depends(get_db),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    """Reviewer edit: apply a suggestion or move the question between review queues."""
    return await lifecycle.update(db, question_id, changes)


@router.post("/{question_id}/translate", response_model=TranslationResult)
async def translate_question(
    question_id: str,
    request: TranslateRequest,
    db: Session = Depends(get_db),
    translator: TranslationOrchestrator = Depends(get_translator),
):
    return await translator.translate(db, question_id, request.language)


@router.delete("/{question_id}/locales/{language}", response_model=QuestionOut)
def delete_locale(question_id: str, language: str, db: Session = Depends(get_db)):
    question = crud.delete_question_locale(db, question_id, language)
    log.info(f"[LOCALE] question={question_id} removed {language}")
    return question


@router.post("/{question_id}/validate", response_model=CorrectnessVerdict)
async def validate_question(
    question_id: str,
    db: Session = Depends(get_db),
    validator: ValidationAgent = Depends(get_validator),
):
    return await validator.validate_correctness(db, question_id)


@router.post("/{question_id}/validate-translation", response_model=TranslationVerdict)
async def validate_translation(
    question_id: str,
    request: TranslationCheckRequest,
    db: Session = Depends(get_db),
    validator: ValidationAgent = Depends(get_validator),
):
    return await validator.validate_translation(
        db, question_id, request.target_language, request.original_language
    )


@router.post("/{question_id}/validate-translations", response_model=BatchOutcome)
async def validate_translations(
    question_id: str,
    original_language: Optional[str] = None,
    db: Session = Depends(get_db),
    validator: ValidationAgent = Depends(get_validator),
):
    outcome = await validator.validate_translations(db, question_id, original_language)
    return _settle(outcome, "validate_translations")


@router.post("/{question_id}/confirm", response_model=ConfirmResult)
async def confirm_question(
    question_id: str,
    db: Session = Depends(get_db),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    return await lifecycle.confirm(db, question_id)


@router.post("/{question_id}/reject", response_model=RejectResult)
async def reject_question(
    question_id: str,
    db: Session = Depends(get_db),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    return await lifecycle.reject(db, question_id)


@router.post("/{question_id}/promote", response_model=PromotionResult)
async def promote_question(
    question_id: str,
    db: Session = Depends(get_db),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    return await lifecycle.promote(db, question_id)
