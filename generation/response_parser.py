"""
Response Parser

Turns schema-validated completion output into Question aggregates:
one Question per generated item, fresh identity, status=generated,
a single unvalidated reference locale.

Fails closed: one malformed item rejects the whole batch with ValidationFailed.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from database.models import Question, QuestionStatus, QuestionType
from generation.schemas import Locale, check_locale
from services.errors import ValidationFailed

log = logging.getLogger("generation.pipeline")


def _item_to_locale(item: Dict[str, Any], question_type: QuestionType, language: str, index: int) -> Locale:
    if not isinstance(item, dict):
        raise ValidationFailed("generated item is not an object", "parse_response", index=index)

    returned_language = str(item.get("language") or "").strip()
    if returned_language and returned_language.lower() != language.lower():
        log.warning(f"[PARSE] item {index} reported language={returned_language!r}, expected {language!r}")

    source = str(item.get("source") or "").strip()
    try:
        locale = Locale(
            language=language,
            question=str(item.get("question") or "").strip(),
            correct=item.get("correct"),
            wrong=item.get("wrong") if question_type == QuestionType.CHOICE else None,
            is_valid=False,
            sources=[source] if source else None,
        )
    except ValidationError as e:
        raise ValidationFailed(
            "generated item does not match the question schema", "parse_response", index=index,
            errors=e.error_count(),
        ) from e

    if not locale.question:
        raise ValidationFailed("generated item has no question text", "parse_response", index=index)
    if question_type == QuestionType.CHOICE:
        locale.wrong = [w.strip() for w in locale.wrong or []]
    try:
        check_locale(question_type.value, locale)
    except ValidationFailed as e:
        e.context["index"] = index
        raise
    return locale


def parse_locales(
    data: Dict[str, Any],
    question_type: QuestionType,
    language: str,
    expected_count: Optional[int] = None,
) -> List[Locale]:
    """
    Validate the {"questions": [...]} payload into reference locales.

    Extra items beyond expected_count are dropped; fewer items are kept
    and logged.
    """
    items = data.get("questions")
    if not isinstance(items, list) or not items:
        raise ValidationFailed("completion returned no questions", "parse_response")

    locales = [_item_to_locale(item, question_type, language, i) for i, item in enumerate(items)]

    if expected_count is not None:
        if len(locales) > expected_count:
            log.info(f"[PARSE] trimming {len(locales)} items to the requested {expected_count}")
            locales = locales[:expected_count]
        elif len(locales) < expected_count:
            log.warning(f"[PARSE] requested {expected_count} questions, got {len(locales)}")
    return locales


def build_questions(
    locales: List[Locale],
    category_id: int,
    question_type: QuestionType,
    difficulty: int,
    language: str,
) -> List[Question]:
    """New, unsaved Question rows in the generated state."""
    return [
        Question(
            id=str(uuid.uuid4()),
            category_id=category_id,
            status=QuestionStatus.GENERATED.value,
            type=question_type.value,
            difficulty=difficulty,
            required_languages=[language],
            tags=[],
            locales=[locale.to_document()],
            is_valid=False,
        )
        for locale in locales
    ]
