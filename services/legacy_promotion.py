"""
Legacy store projection

The legacy store is what the consumer product reads. It is a derived
projection of the primary store: integer keys allocated at promotion time,
locale codes in the legacy naming, no citation sources.

  - to_legacy_document(): pure remap Question → legacy document
  - LegacyPromotionPort:  what promotion needs from the legacy store
  - SqlLegacyStore:       the SQLAlchemy adapter over the legacy database
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database.database import LegacySessionLocal
from database.legacy_models import LegacyQuestion
from database.models import Question, QuestionType
from services.errors import Conflict, UpstreamServiceError, describe

log = logging.getLogger(__name__)

# primary-store code → legacy code
LOCALE_RENAMES = {"uk": "ua", "en-US": "en"}

_PROJECTED_FIELDS = (
    "category_id", "status", "type", "difficulty", "tags",
    "track", "audio_id", "image_id", "author_id", "is_valid",
)


# ─── Pure remap ────────────────────────────────────────────────────────────────

def remap_locales(locales: List[Dict[str, Any]], question_type: str) -> List[Dict[str, Any]]:
    """
    Rename locale codes for the legacy store. A renamed locale whose target
    code already exists is dropped (uk next to ua, en-US next to en).
    """
    present = {doc.get("language") for doc in locales}
    projected = []
    for doc in locales:
        language = doc.get("language")
        renamed = LOCALE_RENAMES.get(language, language)
        if renamed != language and renamed in present:
            continue
        present.add(renamed)

        entry: Dict[str, Any] = {
            "language": renamed,
            "question": doc.get("question"),
            "correct": doc.get("correct"),
            "isValid": bool(doc.get("is_valid", False)),
        }
        if question_type == QuestionType.CHOICE.value:
            entry["wrong"] = list(doc.get("wrong") or [])
        projected.append(entry)
    return projected


def to_legacy_document(question: Question, main_db_id: int) -> Dict[str, Any]:
    """Legacy projection of a question; required_languages follows the final locales."""
    locales = remap_locales(list(question.locales or []), question.type)
    document: Dict[str, Any] = {field: getattr(question, field) for field in _PROJECTED_FIELDS}
    document.update(
        id=main_db_id,
        origin_id=question.id,
        tags=list(question.tags or []),
        locales=locales,
        required_languages=[loc["language"] for loc in locales],
    )
    return document


# ─── Port ──────────────────────────────────────────────────────────────────────

class LegacyPromotionPort(ABC):
    """Keyspace of integer-keyed legacy documents."""

    collection = "questions"

    @abstractmethod
    async def find_max_key(self) -> int:
        """Largest key in use, 0 when empty."""

    @abstractmethod
    async def get(self, key: int) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def find_by_origin(self, origin_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def insert(self, key: int, document: Dict[str, Any]) -> None:
        """Raises Conflict when the key is taken."""

    @abstractmethod
    async def update(self, key: int, document: Dict[str, Any]) -> None:
        ...

    async def upsert(self, key: int, document: Dict[str, Any]) -> bool:
        """Full-document write; True when a new record was created."""
        if await self.get(key) is None:
            await self.insert(key, document)
            return True
        await self.update(key, document)
        return False


# ─── SQL adapter ───────────────────────────────────────────────────────────────

def _as_document(row: LegacyQuestion) -> Dict[str, Any]:
    return {
        "id": row.id,
        "origin_id": row.origin_id,
        "required_languages": list(row.required_languages or []),
        "locales": list(row.locales or []),
        **{field: getattr(row, field) for field in _PROJECTED_FIELDS},
    }


class SqlLegacyStore(LegacyPromotionPort):
    """
    Blocking SQL on the caller's thread, like the routes' own sessions: no method
    yields to the event loop. Adapters whose methods do await depend on the
    coordinator's allocation lock for unique keys.
    """

    def __init__(self, session_factory=LegacySessionLocal):
        self.session_factory = session_factory

    def _fail(self, operation: str, key: Any, error: SQLAlchemyError):
        log.error(f"[LEGACY] {operation} key={key} failed: {describe(error)}")
        return UpstreamServiceError("legacy store operation failed", operation, key=key, cause=describe(error))

    async def find_max_key(self) -> int:
        with self.session_factory() as db:
            try:
                return int(db.query(func.coalesce(func.max(LegacyQuestion.id), 0)).scalar() or 0)
            except SQLAlchemyError as e:
                raise self._fail("find_max_key", None, e) from e

    async def get(self, key: int) -> Optional[Dict[str, Any]]:
        with self.session_factory() as db:
            try:
                row = db.get(LegacyQuestion, key)
            except SQLAlchemyError as e:
                raise self._fail("get", key, e) from e
            return _as_document(row) if row else None

    async def find_by_origin(self, origin_id: str) -> Optional[Dict[str, Any]]:
        with self.session_factory() as db:
            try:
                row = db.query(LegacyQuestion).filter(LegacyQuestion.origin_id == origin_id).first()
            except SQLAlchemyError as e:
                raise self._fail("find_by_origin", origin_id, e) from e
            return _as_document(row) if row else None

    async def insert(self, key: int, document: Dict[str, Any]) -> None:
        with self.session_factory() as db:
            values = {k: v for k, v in document.items() if k != "id"}
            db.add(LegacyQuestion(id=key, **values))
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                log.error(f"[LEGACY] key {key} already taken (origin={document.get('origin_id')})")
                raise Conflict("legacy key already in use", "legacy_insert", key=key) from e
            except SQLAlchemyError as e:
                db.rollback()
                raise self._fail("insert", key, e) from e

    async def update(self, key: int, document: Dict[str, Any]) -> None:
        with self.session_factory() as db:
            try:
                row = db.get(LegacyQuestion, key)
                if row is None:
                    raise Conflict("legacy record disappeared during update", "legacy_update", key=key)
                for field, value in document.items():
                    if field != "id":
                        setattr(row, field, value)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise self._fail("update", key, e) from e
