"""
Translation Orchestrator

Fans a question's reference locale (the first one) out to target languages:
  choice → question text, every wrong answer and the correct answer, one DeepL batch
  map    → question text only; the coordinates pass through unchanged

The question row is mutated only after every string of a locale has come back,
and the usage entries are committed in the same transaction as the locale.

Category names are translated the same way, one string per target language,
and stored as the category's display names.
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from database import crud
from database.models import Question, QuestionType
from generation.schemas import (
    CategoryTranslationResult,
    LocaleOutcome,
    Locale,
    TranslationResult,
    check_locale,
    locales_of,
)
from generation.usage_tracker import TranslationUsage, UsageMeter
from services.errors import Conflict, PipelineError, UpstreamServiceError, describe
from translation.deepl_client import DeepLClient

log = logging.getLogger("generation.pipeline")


def upsert_locale(question: Question, locale: Locale) -> bool:
    """Replace the locale for locale.language in place, or append it. True when replaced."""
    docs = [dict(doc) for doc in question.locales or []]
    document = locale.to_document()
    for i, doc in enumerate(docs):
        if doc.get("language") == locale.language:
            docs[i] = document
            question.locales = docs
            return True
    docs.append(document)
    question.locales = docs
    return False


class TranslationOrchestrator:
    def __init__(self, deepl: DeepLClient, usage: UsageMeter):
        self.deepl = deepl
        self.usage = usage

    async def translate_locale(
        self, question: Question, reference: Locale, language: str
    ) -> Tuple[Locale, List[TranslationUsage]]:
        """I/O only: build the translated locale and its usage entries without touching the row."""
        question_type = QuestionType(question.type)

        if question_type == QuestionType.MAP:
            texts = [reference.question]
        else:
            texts = [reference.question, *(reference.wrong or []), reference.correct]

        translated = await self.deepl.translate_texts(texts, language, reference.language)

        if question_type == QuestionType.MAP:
            locale = Locale(language=language, question=translated[0].text, correct=reference.correct)
        else:
            locale = Locale(
                language=language,
                question=translated[0].text,
                wrong=[t.text for t in translated[1:-1]],
                correct=translated[-1].text,
            )
        check_locale(question_type.value, locale, require_full_choice=False)

        usages = [
            TranslationUsage(
                subject_id=question.id,
                characters=t.billed_characters,
                source_language=reference.language,
                target_language=language,
                request_text=original,
                result_text=t.text,
            )
            for original, t in zip(texts, translated)
        ]
        return locale, usages

    async def translate(self, db: Session, question_id: str, language: str) -> TranslationResult:
        """
        Translate the reference locale into `language` and upsert it.

        Raises:
            NotFound:             unknown question
            Conflict:             `language` is the reference language
            UpstreamServiceError: translation backend failure
        """
        question = crud.get_question_or_404(db, question_id, "translate")
        reference = locales_of(question)[0]
        if language == reference.language:
            raise Conflict("cannot translate a question into its reference language", "translate",
                           question=question_id, language=language)

        try:
            locale, usages = await self.translate_locale(question, reference, language)
        except PipelineError as e:
            log.error(f"[TRANSLATE] question={question_id} target={language} failed: {describe(e)}")
            raise

        replaced = upsert_locale(question, locale)
        self.usage.stage_translations(db, usages)
        crud.save_question(db, question)

        billed = sum(u.characters for u in usages)
        log.info(
            f"[TRANSLATE] question={question_id} {reference.language}->{language} "
            f"billed={billed} replaced={replaced}"
        )
        return TranslationResult(question_id=question_id, locale=locale, billed_characters=billed, replaced=replaced)

    async def translate_many_locales(
        self, db: Session, question: Question, languages: Sequence[str]
    ) -> List[LocaleOutcome]:
        """
        Translate into every language concurrently; failed languages are
        reported, successful ones applied and committed together.
        The reference language itself is skipped.
        """
        reference = locales_of(question)[0]
        targets = [lang for lang in dict.fromkeys(languages) if lang != reference.language]

        results = await asyncio.gather(
            *(self.translate_locale(question, reference, lang) for lang in targets),
            return_exceptions=True,
        )

        outcomes: List[LocaleOutcome] = []
        for language, result in zip(targets, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                log.warning(f"[TRANSLATE] question={question.id} target={language} failed: {describe(result)}")
                outcomes.append(LocaleOutcome(language=language, ok=False, error=str(result)))
                continue
            locale, usages = result
            upsert_locale(question, locale)
            self.usage.stage_translations(db, usages)
            outcomes.append(LocaleOutcome(language=language, ok=True))

        crud.save_question(db, question)
        ok = sum(1 for o in outcomes if o.ok)
        log.info(f"[TRANSLATE] question={question.id} fan-out {ok}/{len(outcomes)} locales")
        return outcomes

    async def translate_category(
        self,
        db: Session,
        category_id: int,
        languages: Sequence[str],
        source_language: Optional[str] = None,
    ) -> CategoryTranslationResult:
        """
        Translate the category name into every language concurrently and store
        each result as a display name (replacing an existing one).

        Raises:
            NotFound:             unknown category
            UpstreamServiceError: not a single language could be translated
        """
        category = crud.get_category_or_404(db, category_id, "translate_category")
        targets = [lang for lang in dict.fromkeys(languages) if lang != source_language]

        results = await asyncio.gather(
            *(self.deepl.translate(category.name, lang, source_language) for lang in targets),
            return_exceptions=True,
        )

        names = [dict(loc) for loc in category.locales or []]
        outcomes: List[LocaleOutcome] = []
        usages: List[TranslationUsage] = []
        for language, result in zip(targets, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                log.warning(f"[TRANSLATE] category={category_id} target={language} failed: {describe(result)}")
                outcomes.append(LocaleOutcome(language=language, ok=False, error=str(result)))
                continue

            names = [loc for loc in names if loc.get("language") != language]
            names.append({"language": language, "value": result.text})
            usages.append(
                TranslationUsage(
                    subject_id=f"category:{category_id}",
                    characters=result.billed_characters,
                    source_language=source_language or (result.detected_source_language or "").lower() or None,
                    target_language=language,
                    request_text=category.name,
                    result_text=result.text,
                )
            )
            outcomes.append(LocaleOutcome(language=language, ok=True))

        if targets and not usages:
            raise UpstreamServiceError(
                "no category translation succeeded", "translate_category",
                category=category_id, languages=targets,
            )

        category.locales = names
        self.usage.stage_translations(db, usages)
        crud.save_category(db, category)
        log.info(f"[TRANSLATE] category={category_id} names {len(usages)}/{len(targets)} locales")
        return CategoryTranslationResult(
            category_id=category_id, locales=category.locales, translation_results=outcomes
        )
