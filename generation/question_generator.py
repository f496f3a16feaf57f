"""
Step 1: Question Generation Engine

Generates a batch of trivia questions for one category:
  category → prompt → continuation handle → completion → parse → persist → usage

Also imports pre-written questions pasted as free text through the same parser.

Output: GenerationResult with the persisted questions (status=generated).
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import crud
from database.models import Question
from generation.continuation_cache import ContinuationCache
from generation.gpt_client import GPT_MODEL, CompletionResult, GptClient
from generation.prompt_builder import build_generation_request, build_import_request
from generation.response_parser import build_questions, parse_locales
from generation.schemas import (
    GenerateQuestionsRequest,
    GenerationResult,
    ImportQuestionsRequest,
    QuestionOut,
)
from generation.usage_tracker import UsageMeter
from services.errors import GenerationFailed, PipelineError, describe

log = logging.getLogger("generation.pipeline")


class QuestionGenerator:
    def __init__(self, gpt: GptClient, cache: ContinuationCache, usage: UsageMeter):
        self.gpt = gpt
        self.cache = cache
        self.usage = usage

    async def generate(self, db: Session, request: GenerateQuestionsRequest) -> GenerationResult:
        """
        Generate `count` questions in the request's first language.

        A failed attempt evicts the category's continuation handle so the next
        call starts a fresh conversation, and surfaces as GenerationFailed.
        That includes a batch that could not be stored; a billed call is logged
        either way.
        Raises NotFound when the category does not exist.
        """
        category = crud.get_category_or_404(db, request.category, "generate_questions")
        category_name = category.display_name(request.locale)
        model = request.model or GPT_MODEL

        handle = self.cache.get(category.id)
        completion = build_generation_request(
            request,
            category_name,
            model,
            previous_response_id=handle.conversation_handle_id if handle else None,
        )
        log.info(
            f"[GEN] category={category.id} ({category_name}) count={request.count} type={request.type.value} "
            f"lang={request.locale} continued={handle is not None}"
        )

        result: Optional[CompletionResult] = None
        try:
            result = await self.gpt.complete(completion, "generate_questions")
            locales = parse_locales(result.data, request.type, request.locale, expected_count=request.count)
            questions = build_questions(locales, category.id, request.type, request.difficulty, request.locale)
            crud.add_questions(db, questions)
        except (PipelineError, SQLAlchemyError) as e:
            db.rollback()
            self.cache.evict(category.id)
            self._record_unstored(db, category.id, result, completion.input)
            log.error(f"[GEN] category={category.id} failed: {describe(e)}")
            raise GenerationFailed(
                "question generation failed", "generate_questions", category=category.id, cause=describe(e)
            ) from e

        consumed = (handle.tokens_consumed if handle else 0) + result.total_tokens
        self.cache.set(category.id, result.response_id, consumed)
        self.usage.record_generation(
            db,
            category.id,
            [q.id for q in questions],
            result.total_tokens,
            result.output_tokens,
            completion.input,
        )

        log.info(f"[GEN] category={category.id} stored {len(questions)} questions, conversation at {consumed} tokens")
        return self._result(questions, result)

    async def import_questions(self, db: Session, request: ImportQuestionsRequest) -> GenerationResult:
        """
        Extract questions from pasted text. No continuation: each import is a
        fresh conversation. Choice items always end up with exactly 3 wrong answers.
        """
        category = crud.get_category_or_404(db, request.category, "import_questions")
        category_name = category.display_name(request.language)
        completion = build_import_request(request, category_name, request.model or GPT_MODEL)

        result: Optional[CompletionResult] = None
        try:
            result = await self.gpt.complete(completion, "import_questions")
            locales = parse_locales(result.data, request.type, request.language)
            questions = build_questions(locales, category.id, request.type, request.difficulty, request.language)
            crud.add_questions(db, questions)
        except (PipelineError, SQLAlchemyError) as e:
            db.rollback()
            self._record_unstored(db, category.id, result, completion.input)
            log.error(f"[IMPORT] category={category.id} failed: {describe(e)}")
            raise GenerationFailed(
                "question import failed", "import_questions", category=category.id, cause=describe(e)
            ) from e

        self.usage.record_generation(
            db,
            category.id,
            [q.id for q in questions],
            result.total_tokens,
            result.output_tokens,
            completion.input,
        )
        log.info(f"[IMPORT] category={category.id} stored {len(questions)} questions")
        return self._result(questions, result)

    def clear_cache(self, category_id: int) -> bool:
        """Drop the category's conversation so the next generation starts fresh."""
        removed = self.cache.evict(category_id)
        log.info(f"[GEN] cache clear category={category_id} removed={removed}")
        return removed

    def _record_unstored(self, db: Session, category_id: int, result: Optional[CompletionResult], prompt: str) -> None:
        """Usage of a billed call whose questions were never stored."""
        if result is not None:
            self.usage.record_generation(db, category_id, [], result.total_tokens, result.output_tokens, prompt)

    @staticmethod
    def _result(questions: List[Question], result: CompletionResult) -> GenerationResult:
        return GenerationResult(
            questions=[QuestionOut.model_validate(q) for q in questions],
            total_tokens_used=result.total_tokens,
            completion_tokens_used=result.output_tokens,
        )
