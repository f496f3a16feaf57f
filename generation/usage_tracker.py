"""
Usage Tracker

Append-only audit of billed work:
  - completion tokens per generation call (category → question ids → prompt)
  - translated characters per string (question or category → source/target language → text)

Plus the read side: filtered listings, totals, and bulk clear.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import schemas
from database.models import QuestionGenerationLog, TranslationUsageLog

log = logging.getLogger("generation.pipeline")


@dataclass
class TranslationUsage:
    """One translated string, staged until the owning question is committed."""
    subject_id: str
    characters: int
    source_language: Optional[str]
    target_language: str
    request_text: str
    result_text: Optional[str]


class UsageMeter:

    # ── Write side ────────────────────────────────────────────────────────────

    def record_generation(
        self,
        db: Session,
        category_id: int,
        question_ids: Sequence[str],
        tokens_used: int,
        completion_tokens: int,
        request_prompt: str,
    ) -> Optional[QuestionGenerationLog]:
        """
        Record one completion call. Best-effort: a failed write is rolled back
        and logged with everything needed to replay it, never raised.
        """
        entry = QuestionGenerationLog(
            category_id=category_id,
            question_ids=list(question_ids),
            tokens_used=tokens_used,
            completion_tokens=completion_tokens,
            request_prompt=request_prompt,
        )
        try:
            db.add(entry)
            db.commit()
            return entry
        except SQLAlchemyError as e:
            db.rollback()
            log.warning(
                f"[USAGE] failed to record generation usage: category={category_id} "
                f"questions={list(question_ids)} tokens={tokens_used} prompt={request_prompt[:200]!r}: {e}"
            )
            return None

    def stage_translations(self, db: Session, usages: Sequence[TranslationUsage]) -> List[TranslationUsageLog]:
        """
        Add translation entries to the session without committing; they are
        committed together with the locale they paid for.
        """
        entries = [
            TranslationUsageLog(
                subject_id=u.subject_id,
                characters_used=u.characters,
                source_language=u.source_language,
                target_language=u.target_language,
                request_text=u.request_text,
                result_text=u.result_text,
            )
            for u in usages
        ]
        db.add_all(entries)
        return entries

    # ── Read side ─────────────────────────────────────────────────────────────

    def generation_logs(self, db: Session, filters: schemas.GenerationLogFilters) -> List[QuestionGenerationLog]:
        """Generation logs, newest first"""
        q = db.query(QuestionGenerationLog)
        if filters.date_from:
            q = q.filter(QuestionGenerationLog.created_at >= filters.date_from)
        if filters.date_to:
            q = q.filter(QuestionGenerationLog.created_at <= filters.date_to)
        if filters.min_tokens is not None:
            q = q.filter(QuestionGenerationLog.tokens_used >= filters.min_tokens)
        if filters.max_tokens is not None:
            q = q.filter(QuestionGenerationLog.tokens_used <= filters.max_tokens)
        return q.order_by(QuestionGenerationLog.created_at.desc(), QuestionGenerationLog.id.desc()).all()

    def generation_totals(self, db: Session) -> schemas.GenerationTotals:
        tokens, requests = db.query(
            func.coalesce(func.sum(QuestionGenerationLog.tokens_used), 0),
            func.count(QuestionGenerationLog.id),
        ).one()
        return schemas.GenerationTotals(total_tokens=int(tokens), total_requests=int(requests))

    def translation_logs(self, db: Session, filters: schemas.TranslationLogFilters) -> schemas.TranslationLogPage:
        """Paginated translation logs with totals over every matching log"""
        q = db.query(TranslationUsageLog)
        if filters.date_from:
            q = q.filter(TranslationUsageLog.created_at >= filters.date_from)
        if filters.date_to:
            q = q.filter(TranslationUsageLog.created_at <= filters.date_to)
        if filters.min_characters is not None:
            q = q.filter(TranslationUsageLog.characters_used >= filters.min_characters)
        if filters.max_characters is not None:
            q = q.filter(TranslationUsageLog.characters_used <= filters.max_characters)
        if filters.source_language:
            q = q.filter(TranslationUsageLog.source_language == filters.source_language)
        if filters.target_language:
            q = q.filter(TranslationUsageLog.target_language == filters.target_language)

        logs = (
            q.order_by(TranslationUsageLog.created_at.desc(), TranslationUsageLog.id.desc())
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
            .all()
        )
        characters, requests = q.with_entities(
            func.coalesce(func.sum(TranslationUsageLog.characters_used), 0),
            func.count(TranslationUsageLog.id),
        ).one()
        return schemas.TranslationLogPage(
            logs=[schemas.TranslationLogResponse.model_validate(entry) for entry in logs],
            total_characters=int(characters),
            total_requests=int(requests),
            total_pages=math.ceil(int(requests) / filters.limit),
        )

    def translation_totals(self, db: Session) -> schemas.TranslationTotals:
        characters, requests = db.query(
            func.coalesce(func.sum(TranslationUsageLog.characters_used), 0),
            func.count(TranslationUsageLog.id),
        ).one()
        return schemas.TranslationTotals(total_characters=int(characters), total_requests=int(requests))

    def clear_generation_logs(self, db: Session) -> int:
        deleted = db.query(QuestionGenerationLog).delete()
        db.commit()
        log.info(f"[USAGE] cleared {deleted} generation logs")
        return deleted

    def clear_translation_logs(self, db: Session) -> int:
        deleted = db.query(TranslationUsageLog).delete()
        db.commit()
        log.info(f"[USAGE] cleared {deleted} translation logs")
        return deleted
