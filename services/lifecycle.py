"""
Lifecycle Coordinator

Question state machine:

    generated ──confirm──▶ in_progress ──promote──▶ approved
        │                      │  ▲
        │                      ▼  │ update (manual review queues: pending / proof_reading)
        └──reject: deleted     └──reject: status=rejected (legacy projection kept in sync)

Promotion mirrors the question into the legacy store under an integer key
allocated as max+1. Allocation is serialised per legacy collection; it is the
only place a lock is held across an await.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Sequence, Tuple

from sqlalchemy.orm import Session

from database import crud
from database.models import Question, QuestionStatus
from generation.schemas import (
    BatchOutcome,
    ConfirmResult,
    ItemOutcome,
    PromotionResult,
    QuestionOut,
    QuestionUpdate,
    RejectResult,
    check_locale,
)
from services.errors import Conflict, PipelineError, ValidationFailed, describe
from services.legacy_promotion import LegacyPromotionPort, to_legacy_document
from translation.translator import TranslationOrchestrator

log = logging.getLogger(__name__)

# Locales every confirmed question is translated into
REQUIRED_LOCALES = ("ru", "uk", "en-US", "es", "fr", "de", "it", "pl", "tr")

PROMOTABLE = {
    QuestionStatus.IN_PROGRESS.value,
    QuestionStatus.PENDING.value,
    QuestionStatus.PROOF_READING.value,
    QuestionStatus.APPROVED.value,
}

# statuses a reviewer may set by hand; the rest belong to confirm/reject/promote
MANUAL_STATUSES = {
    QuestionStatus.IN_PROGRESS.value,
    QuestionStatus.PENDING.value,
    QuestionStatus.PROOF_READING.value,
}

# one lock per legacy collection, shared by every coordinator in the process
_allocation_locks: Dict[str, asyncio.Lock] = {}


def _allocation_lock(collection: str) -> asyncio.Lock:
    if collection not in _allocation_locks:
        _allocation_locks[collection] = asyncio.Lock()
    return _allocation_locks[collection]


class LifecycleCoordinator:
    def __init__(
        self,
        translator: TranslationOrchestrator,
        legacy: LegacyPromotionPort,
        required_locales: Sequence[str] = REQUIRED_LOCALES,
    ):
        self.translator = translator
        self.legacy = legacy
        self.required_locales = tuple(required_locales)

    async def _batch(
        self, ids: Sequence[str], action: Callable[[str], Awaitable], operation: str, concurrent: bool = True
    ) -> BatchOutcome:
        """Run `action` per id; every item reports its own outcome."""
        unique = list(dict.fromkeys(ids))
        if concurrent:
            results = await asyncio.gather(*(action(i) for i in unique), return_exceptions=True)
        else:
            results = []
            for question_id in unique:
                try:
                    results.append(await action(question_id))
                except Exception as e:
                    results.append(e)

        items: List[ItemOutcome] = []
        for question_id, result in zip(unique, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                log.error(f"[{operation.upper()}] question={question_id} failed: {describe(result)}")
                items.append(ItemOutcome(id=question_id, ok=False, error=str(result), error_kind=type(result).__name__))
            else:
                items.append(ItemOutcome(id=question_id, ok=True, result=result.model_dump(mode="json")))
        return BatchOutcome(items=items)

    # ── Confirm ───────────────────────────────────────────────────────────────

    async def confirm(self, db: Session, question_id: str) -> ConfirmResult:
        """
        generated → in_progress, then translate into every required locale.
        The status change is committed first and stands even when some
        locales fail; failed locales are listed in the result for retry.
        """
        question = crud.get_question_or_404(db, question_id, "confirm")
        if question.status != QuestionStatus.GENERATED.value:
            raise Conflict("only generated questions can be confirmed", "confirm",
                           question=question_id, status=question.status)

        question.status = QuestionStatus.IN_PROGRESS.value
        crud.save_question(db, question)
        log.info(f"[CONFIRM] question={question_id} → in_progress, translating {len(self.required_locales)} locales")

        outcomes = await self.translator.translate_many_locales(db, question, self.required_locales)
        result = ConfirmResult(
            question_id=question_id,
            status=QuestionStatus(question.status),
            translation_results=outcomes,
        )
        if result.failed_languages:
            log.warning(f"[CONFIRM] question={question_id} untranslated: {result.failed_languages}")
        return result

    async def confirm_many(self, db: Session, question_ids: Sequence[str]) -> BatchOutcome:
        return await self._batch(question_ids, lambda i: self.confirm(db, i), "confirm")

    # ── Reject ────────────────────────────────────────────────────────────────

    async def reject(self, db: Session, question_id: str) -> RejectResult:
        """
        generated drafts are deleted; anything further along is kept with
        status=rejected, and its legacy projection (if promoted) follows.
        """
        question = crud.get_question_or_404(db, question_id, "reject")

        if question.status == QuestionStatus.GENERATED.value:
            crud.delete_question(db, question)
            log.info(f"[REJECT] question={question_id} deleted")
            return RejectResult(deleted=[question_id])

        question.status = QuestionStatus.REJECTED.value
        crud.save_question(db, question)
        if question.main_db_id is not None:
            await self._project(question, question.main_db_id)
        log.info(f"[REJECT] question={question_id} → rejected (main_db_id={question.main_db_id})")
        return RejectResult(rejected=[question_id])

    async def reject_many(self, db: Session, question_ids: Sequence[str]) -> BatchOutcome:
        return await self._batch(question_ids, lambda i: self.reject(db, i), "reject")

    # ── Update ────────────────────────────────────────────────────────────────

    async def update(self, db: Session, question_id: str, changes: QuestionUpdate) -> QuestionOut:
        """
        Reviewer edit: apply a suggestion, retag, or move the question between
        the manual review queues. Everything is checked before anything is
        written; a promoted question's legacy projection follows the edit.

        Raises:
            NotFound:         unknown question or category
            Conflict:         status change that is not a manual review move
            ValidationFailed: a locale that breaks the shape rules of the question type
        """
        question = crud.get_question_or_404(db, question_id, "update")

        status = changes.status.value if changes.status is not None else question.status
        if status != question.status:
            if status not in MANUAL_STATUSES or question.status not in PROMOTABLE:
                raise Conflict("status change must go through confirm, reject or promote", "update",
                               question=question_id, status=question.status, requested=status)

        if changes.category_id is not None:
            crud.get_category_or_404(db, changes.category_id, "update")

        if changes.locales is not None:
            languages = [loc.language for loc in changes.locales]
            if len(set(languages)) != len(languages):
                raise ValidationFailed("each language may appear once", "update",
                                       question=question_id, languages=languages)
            for locale in changes.locales:
                check_locale(question.type, locale)
            question.locales = [locale.to_document() for locale in changes.locales]

        for field, value in changes.model_dump(exclude_none=True, exclude={"locales", "status"}).items():
            setattr(question, field, value)
        question.status = status
        crud.save_question(db, question)

        if question.main_db_id is not None:
            await self._project(question, question.main_db_id)
        log.info(f"[UPDATE] question={question_id} status={question.status} fields={sorted(changes.model_fields_set)}")
        return QuestionOut.model_validate(question)

    # ── Promote ───────────────────────────────────────────────────────────────

    async def _project(self, question: Question, key: int) -> bool:
        """Write the legacy projection at `key`; Conflict if the key belongs to another question."""
        existing = await self.legacy.get(key)
        if existing is not None and existing.get("origin_id") not in (None, question.id):
            raise Conflict("legacy record belongs to another question", "promote",
                           question=question.id, main_db_id=key, owner=existing.get("origin_id"))
        return await self.legacy.upsert(key, to_legacy_document(question, key))

    async def _allocate_or_reuse(self, question: Question) -> Tuple[int, bool]:
        """Key of the question's legacy record, inserting one at max+1 when none exists."""
        async with _allocation_lock(self.legacy.collection):
            # looked up under the lock: a concurrent promotion of the same
            # question, or an interrupted earlier one, may already own a record
            existing = await self.legacy.find_by_origin(question.id)
            if existing is not None:
                return existing["id"], await self._project(question, existing["id"])
            key = await self.legacy.find_max_key() + 1
            await self.legacy.insert(key, to_legacy_document(question, key))
            return key, True

    async def promote(self, db: Session, question_id: str) -> PromotionResult:
        """
        Mirror the question into the legacy store and mark it approved.

        Idempotent: a question that already has a main_db_id (or whose legacy
        record exists from an earlier, interrupted or concurrent promotion) is
        updated in place.
        """
        question = crud.get_question_or_404(db, question_id, "promote")
        if question.status not in PROMOTABLE:
            raise Conflict("question is not in a promotable state", "promote",
                           question=question_id, status=question.status)

        question.status = QuestionStatus.APPROVED.value
        try:
            if question.main_db_id is not None:
                key = question.main_db_id
                created = await self._project(question, key)
            else:
                key, created = await self._allocate_or_reuse(question)
        except PipelineError:
            db.rollback()
            raise

        question.main_db_id = key
        crud.save_question(db, question)
        log.info(f"[PROMOTE] question={question_id} main_db_id={key} created={created}")
        return PromotionResult(question_id=question_id, main_db_id=key, created=created)

    async def promote_many(self, db: Session, question_ids: Sequence[str]) -> BatchOutcome:
        # sequential: keys are handed out in request order
        return await self._batch(question_ids, lambda i: self.promote(db, i), "promote", concurrent=False)
