"""
Pydantic schemas for the question pipeline.
Supports: choice (text answer + 3 wrong answers) AND map (coordinate answer) questions.

Locale documents are stored as plain dicts on Question.locales; these models
are the typed view used everywhere in between.
"""

from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from database.models import QuestionStatus, QuestionType
from services.errors import ValidationFailed

WRONG_ANSWERS_PER_CHOICE = 3


# ─── Answer variant ────────────────────────────────────────────────────────────

class GeoPoint(NamedTuple):
    """Correct answer of a map question. Serialised as [lat, lng]."""
    lat: float
    lng: float


# str for choice questions, GeoPoint for map questions
Correct = Union[GeoPoint, str]


class Locale(BaseModel):
    """One language version of a question."""
    language: str
    question: str
    correct: Correct
    wrong: Optional[List[str]] = None
    is_valid: bool = False
    sources: Optional[List[str]] = None

    def to_document(self) -> Dict[str, Any]:
        """Dict stored in Question.locales."""
        return self.model_dump(mode="json", exclude_none=True)


def check_locale(question_type: str, locale: Locale, require_full_choice: bool = True) -> None:
    """
    Enforce the shape invariants of a locale for its question type.

    map:    correct is a GeoPoint, wrong is never populated
    choice: correct is non-empty text, exactly 3 wrong answers (when require_full_choice)
    """
    if question_type == QuestionType.MAP.value:
        if not isinstance(locale.correct, GeoPoint):
            raise ValidationFailed(
                "map question needs a [lat, lng] answer", "check_locale", language=locale.language
            )
        if locale.wrong:
            raise ValidationFailed(
                "map question cannot carry wrong answers", "check_locale", language=locale.language
            )
        return

    if not isinstance(locale.correct, str) or not locale.correct.strip():
        raise ValidationFailed(
            "choice question needs a text answer", "check_locale", language=locale.language
        )
    if require_full_choice and len(locale.wrong or []) != WRONG_ANSWERS_PER_CHOICE:
        raise ValidationFailed(
            f"choice question needs exactly {WRONG_ANSWERS_PER_CHOICE} wrong answers",
            "check_locale",
            language=locale.language,
            got=len(locale.wrong or []),
        )


def locales_of(question) -> List[Locale]:
    """Typed locales of an ORM Question."""
    return [Locale.model_validate(doc) for doc in (question.locales or [])]


def reference_index(locales: List[Locale], original_language: Optional[str] = None) -> int:
    """Index of the locale matching original_language, or the first locale."""
    if original_language:
        for i, loc in enumerate(locales):
            if loc.language == original_language:
                return i
    return 0


def reference_locale(locales: List[Locale], original_language: Optional[str] = None) -> Locale:
    return locales[reference_index(locales, original_language)]


# ─── Requests ──────────────────────────────────────────────────────────────────

class GenerateQuestionsRequest(BaseModel):
    """Caller-facing request to generate a batch of questions."""
    prompt: str = Field(..., min_length=1, description="What the questions should be about")
    count: int = Field(..., ge=1, le=50, description="Number of questions to generate")
    category: int = Field(..., description="Category ID")
    type: QuestionType = QuestionType.CHOICE
    difficulty: int = Field(3, ge=1, le=5)
    required_languages: List[str] = Field(..., min_length=1, description="First entry is the generation language")
    temperature: float = Field(1.0, ge=0.0, le=2.0)
    model: Optional[str] = Field(None, description="Completion model; server default when omitted")

    @property
    def locale(self) -> str:
        return self.required_languages[0]


class ImportQuestionsRequest(BaseModel):
    """Pre-written questions pasted as free text, to be extracted into the schema."""
    text: str = Field(..., min_length=1)
    language: str = Field(..., min_length=2)
    type: QuestionType = QuestionType.CHOICE
    category: int
    difficulty: int = Field(3, ge=1, le=5)
    model: Optional[str] = None


class TranslateRequest(BaseModel):
    language: str = Field(..., min_length=2, max_length=8)


class TranslationCheckRequest(BaseModel):
    original_language: Optional[str] = Field(None, min_length=2, max_length=8)
    target_language: str = Field(..., min_length=2, max_length=8)


class IdsRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1)


class QuestionUpdate(BaseModel):
    """Partial reviewer edit; omitted fields keep their stored value. The type never changes."""
    category_id: Optional[int] = None
    status: Optional[QuestionStatus] = None
    difficulty: Optional[int] = Field(None, ge=1, le=5)
    required_languages: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    locales: Optional[List[Locale]] = Field(None, min_length=1)
    track: Optional[str] = None
    audio_id: Optional[str] = None
    image_id: Optional[str] = None
    author_id: Optional[str] = None
    is_valid: Optional[bool] = None


class CategoryTranslateRequest(BaseModel):
    languages: List[str] = Field(..., min_length=1)
    source_language: Optional[str] = Field(None, description="Language of the category name; auto-detected when omitted")


# ─── Outputs ───────────────────────────────────────────────────────────────────

class QuestionOut(BaseModel):
    id: str
    category_id: int
    main_db_id: Optional[int] = None
    status: QuestionStatus
    type: QuestionType
    difficulty: int
    required_languages: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    locales: List[Locale]
    track: Optional[str] = None
    audio_id: Optional[str] = None
    image_id: Optional[str] = None
    author_id: Optional[str] = None
    is_valid: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class QuestionPage(BaseModel):
    questions: List[QuestionOut]
    total: int
    total_pages: int


class GenerationResult(BaseModel):
    questions: List[QuestionOut]
    total_tokens_used: int
    completion_tokens_used: int


class DuplicateReport(BaseModel):
    """Disjoint groups of question ids judged equivalent; singletons never appear."""
    duplicates: List[List[str]]
    questions: List[QuestionOut]


class CorrectnessVerdict(BaseModel):
    question_id: str
    is_valid: bool
    source: str
    suggestion: Optional[str] = None   # only when is_valid is False


class TranslationVerdict(BaseModel):
    question_id: str
    reference_language: str
    language: str
    is_valid: bool
    suggestions: List[Locale] = Field(default_factory=list)   # every suggestion has is_valid=False


class ItemOutcome(BaseModel):
    """Per-item result inside a batch operation."""
    id: str
    ok: bool
    result: Optional[Any] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


class BatchOutcome(BaseModel):
    items: List[ItemOutcome]

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.ok)

    @property
    def failed(self) -> int:
        return len(self.items) - self.succeeded

    @property
    def partial(self) -> bool:
        return self.succeeded > 0 and self.failed > 0


class TranslationResult(BaseModel):
    question_id: str
    locale: Locale
    billed_characters: int
    replaced: bool   # True when an existing locale for the language was overwritten


class LocaleOutcome(BaseModel):
    language: str
    ok: bool
    error: Optional[str] = None


class CategoryTranslationResult(BaseModel):
    category_id: int
    locales: List[Dict[str, str]]   # every display name of the category afterwards
    translation_results: List[LocaleOutcome]


class ConfirmResult(BaseModel):
    """Status change is committed even when some locales failed to translate."""
    question_id: str
    status: QuestionStatus
    translation_results: List[LocaleOutcome]

    @property
    def failed_languages(self) -> List[str]:
        return [r.language for r in self.translation_results if not r.ok]


class RejectResult(BaseModel):
    deleted: List[str] = Field(default_factory=list)
    rejected: List[str] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.deleted) + len(self.rejected)


class PromotionResult(BaseModel):
    question_id: str
    main_db_id: int
    created: bool   # False when an existing legacy record was updated
