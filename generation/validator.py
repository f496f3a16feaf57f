"""
Step 3: Validation Agent

Two independent checks, both through the completion service:
  - correctness: fact-check the reference locale with web search
                 → {isValid, source, suggestion|null}
  - translation: compare a translated locale against the reference locale
                 → {isValid, suggestions[]}, every suggestion tagged is_valid=False

Validation sets Question.is_valid and locale is_valid flags; it never changes status.
Batch variants run the completion calls concurrently (bounded) and apply the
verdicts afterwards, one outcome per item.
"""

import asyncio
import logging
import os
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.orm import Session

from database import crud
from database.models import Question, QuestionType
from generation.gpt_client import GPT_MODEL, GPT_VALIDATION_MODEL, GptClient
from generation.prompt_builder import build_fact_check_request, build_translation_check_request
from generation.schemas import (
    BatchOutcome,
    CorrectnessVerdict,
    ItemOutcome,
    Locale,
    TranslationVerdict,
    check_locale,
    locales_of,
    reference_index,
)
from services.errors import Conflict, NotFound, PipelineError, ValidationFailed, describe

log = logging.getLogger("generation.pipeline")

VALIDATION_CONCURRENCY = int(os.getenv("VALIDATION_CONCURRENCY", "5"))


def _set_locale_valid(question: Question, index: int, is_valid: bool) -> None:
    docs = [dict(doc) for doc in question.locales or []]
    docs[index]["is_valid"] = is_valid
    question.locales = docs


def _failure(item_id: str, error: Exception) -> ItemOutcome:
    return ItemOutcome(id=item_id, ok=False, error=str(error), error_kind=type(error).__name__)


class ValidationAgent:
    def __init__(
        self,
        gpt: GptClient,
        model: Optional[str] = None,
        translation_model: Optional[str] = None,
        concurrency: int = VALIDATION_CONCURRENCY,
    ):
        self.gpt = gpt
        self.model = model or GPT_VALIDATION_MODEL
        self.translation_model = translation_model or GPT_MODEL
        self.concurrency = max(1, concurrency)

    async def _bounded(self, calls: List[Callable[[], Awaitable[Any]]]) -> List[Any]:
        """Run calls with at most `concurrency` outstanding; exceptions are returned in place."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(call):
            async with semaphore:
                return await call()

        return await asyncio.gather(*(run(c) for c in calls), return_exceptions=True)

    # ── Correctness ───────────────────────────────────────────────────────────

    async def _fact_check(self, question: Question) -> CorrectnessVerdict:
        locales = locales_of(question)
        reference = locales[reference_index(locales)]
        request = build_fact_check_request(QuestionType(question.type), reference, self.model)
        result = await self.gpt.complete(request, "validate_correctness")

        is_valid = result.data.get("isValid")
        if not isinstance(is_valid, bool):
            raise ValidationFailed("fact-check verdict has no boolean isValid", "validate_correctness",
                                   question=question.id)
        suggestion = result.data.get("suggestion")
        return CorrectnessVerdict(
            question_id=question.id,
            is_valid=is_valid,
            source=str(result.data.get("source") or ""),
            suggestion=None if is_valid else (str(suggestion) if suggestion else None),
        )

    @staticmethod
    def _apply_correctness(question: Question, verdict: CorrectnessVerdict) -> None:
        locales = locales_of(question)
        question.is_valid = verdict.is_valid
        _set_locale_valid(question, reference_index(locales), verdict.is_valid)

    async def validate_correctness(self, db: Session, question_id: str) -> CorrectnessVerdict:
        """
        Fact-check one question and store the verdict.

        Raises:
            NotFound:             unknown question
            UpstreamServiceError: completion failure or malformed verdict
        """
        question = crud.get_question_or_404(db, question_id, "validate_correctness")
        try:
            verdict = await self._fact_check(question)
        except PipelineError as e:
            log.error(f"[VALIDATE] question={question_id} fact-check failed: {describe(e)}")
            raise

        self._apply_correctness(question, verdict)
        crud.save_question(db, question)
        log.info(f"[VALIDATE] question={question_id} is_valid={verdict.is_valid}")
        return verdict

    async def validate_many(self, db: Session, question_ids: List[str]) -> BatchOutcome:
        """
        Fact-check many questions concurrently. One item failing (unknown id,
        upstream error) never aborts the others.
        """
        ids = list(dict.fromkeys(question_ids))
        found = {q.id: q for q in crud.get_questions_by_ids(db, ids)}
        targets = [found[i] for i in ids if i in found]

        results = await self._bounded([lambda q=q: self._fact_check(q) for q in targets])
        by_id: Dict[str, Any] = {q.id: r for q, r in zip(targets, results)}

        items: List[ItemOutcome] = []
        for question_id in ids:
            if question_id not in found:
                items.append(_failure(question_id, NotFound("question", question_id, "validate_many")))
                continue
            result = by_id[question_id]
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                log.error(f"[VALIDATE] question={question_id} fact-check failed: {describe(result)}")
                items.append(_failure(question_id, result))
                continue
            self._apply_correctness(found[question_id], result)
            items.append(ItemOutcome(id=question_id, ok=True, result=result.model_dump()))

        db.commit()
        outcome = BatchOutcome(items=items)
        log.info(f"[VALIDATE] batch of {len(ids)}: ok={outcome.succeeded} failed={outcome.failed}")
        return outcome

    # ── Translation ───────────────────────────────────────────────────────────

    async def _check_translation(
        self, question: Question, reference: Locale, target: Locale
    ) -> TranslationVerdict:
        question_type = QuestionType(question.type)
        request = build_translation_check_request(question_type, reference, target, self.translation_model)
        result = await self.gpt.complete(request, "validate_translation")

        is_valid = result.data.get("isValid")
        if not isinstance(is_valid, bool):
            raise ValidationFailed("translation verdict has no boolean isValid", "validate_translation",
                                   question=question.id, language=target.language)

        suggestions: List[Locale] = []
        if not is_valid:
            for item in result.data.get("suggestions") or []:
                try:
                    suggestion = Locale(
                        language=target.language,
                        question=str(item.get("question") or "").strip(),
                        correct=target.correct if question_type == QuestionType.MAP else item.get("correct"),
                        wrong=item.get("wrong") if question_type == QuestionType.CHOICE else None,
                        is_valid=False,
                    )
                except (ValidationError, AttributeError) as e:
                    raise ValidationFailed("translation suggestion does not match the question schema",
                                           "validate_translation", question=question.id) from e
                check_locale(question_type.value, suggestion)
                suggestions.append(suggestion)

        return TranslationVerdict(
            question_id=question.id,
            reference_language=reference.language,
            language=target.language,
            is_valid=is_valid,
            suggestions=suggestions,
        )

    async def validate_translation(
        self,
        db: Session,
        question_id: str,
        target_language: str,
        original_language: Optional[str] = None,
    ) -> TranslationVerdict:
        """
        Check one translated locale against the reference locale (the one
        matching original_language, else the first).
        """
        question = crud.get_question_or_404(db, question_id, "validate_translation")
        locales = locales_of(question)
        ref_idx = reference_index(locales, original_language)
        reference = locales[ref_idx]

        target_idx = next((i for i, loc in enumerate(locales) if loc.language == target_language), None)
        if target_idx is None:
            raise NotFound("locale", f"{question_id}/{target_language}", "validate_translation")
        if target_idx == ref_idx:
            raise Conflict("the reference locale cannot be checked against itself", "validate_translation",
                           question=question_id, language=target_language)

        try:
            verdict = await self._check_translation(question, reference, locales[target_idx])
        except PipelineError as e:
            log.error(f"[VALIDATE] question={question_id} lang={target_language} check failed: {describe(e)}")
            raise

        _set_locale_valid(question, target_idx, verdict.is_valid)
        crud.save_question(db, question)
        log.info(
            f"[VALIDATE] question={question_id} {reference.language}->{target_language} "
            f"is_valid={verdict.is_valid} suggestions={len(verdict.suggestions)}"
        )
        return verdict

    async def validate_translations(
        self, db: Session, question_id: str, original_language: Optional[str] = None
    ) -> BatchOutcome:
        """Check every non-reference locale concurrently; one outcome per language."""
        question = crud.get_question_or_404(db, question_id, "validate_translations")
        locales = locales_of(question)
        ref_idx = reference_index(locales, original_language)
        reference = locales[ref_idx]
        targets: List[Tuple[int, Locale]] = [(i, loc) for i, loc in enumerate(locales) if i != ref_idx]

        results = await self._bounded(
            [lambda t=t: self._check_translation(question, reference, t) for _, t in targets]
        )

        items: List[ItemOutcome] = []
        for (index, target), result in zip(targets, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                log.error(f"[VALIDATE] question={question_id} lang={target.language} check failed: {describe(result)}")
                items.append(_failure(target.language, result))
                continue
            _set_locale_valid(question, index, result.is_valid)
            items.append(ItemOutcome(id=target.language, ok=True, result=result.model_dump(mode="json")))

        crud.save_question(db, question)
        return BatchOutcome(items=items)
